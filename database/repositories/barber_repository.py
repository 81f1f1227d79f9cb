"""Репозиторий барберов"""

import json
import logging
from typing import Dict, List, Optional

from database.base_repository import BaseRepository
from database.models import Barber, WorkingDay
from utils.helpers import now_local


def _parse_working_hours(raw: Optional[str]) -> Dict[str, WorkingDay]:
    if not raw:
        return {}
    return {day: WorkingDay(**hours) for day, hours in json.loads(raw).items()}


def _dump_working_hours(working_hours: Dict[str, WorkingDay]) -> Optional[str]:
    if not working_hours:
        return None
    return json.dumps(
        {
            day: {"enabled": hours.enabled, "start": hours.start, "end": hours.end}
            for day, hours in working_hours.items()
        }
    )


def _row_to_barber(row) -> Barber:
    return Barber(
        id=row["id"],
        name=row["name"],
        user_id=row["user_id"],
        is_active=bool(row["is_active"]),
        working_hours=_parse_working_hours(row["working_hours"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class BarberRepository(BaseRepository):
    """Барберы салона"""

    @staticmethod
    async def get_barbers(active_only: bool = True) -> List[Barber]:
        """Барберы в порядке id"""
        query = "SELECT * FROM barbers"
        if active_only:
            query += " WHERE is_active=1"
        rows = await BarberRepository._execute_query(query + " ORDER BY id", fetch_all=True)
        return [_row_to_barber(row) for row in rows or []]

    @staticmethod
    async def get_barber_by_id(barber_id: int) -> Optional[Barber]:
        row = await BarberRepository._execute_query(
            "SELECT * FROM barbers WHERE id=?", (barber_id,), fetch_one=True
        )
        return _row_to_barber(row) if row else None

    @staticmethod
    async def get_barber_by_user(user_id: int) -> Optional[Barber]:
        """Барбер, привязанный к аккаунту Telegram"""
        row = await BarberRepository._execute_query(
            "SELECT * FROM barbers WHERE user_id=?", (user_id,), fetch_one=True
        )
        return _row_to_barber(row) if row else None

    @staticmethod
    async def create_barber(barber: Barber) -> int:
        barber_id = await BarberRepository._execute_query(
            """INSERT INTO barbers (name, user_id, is_active, working_hours, created_at)
            VALUES (?, ?, ?, ?, ?)""",
            (
                barber.name,
                barber.user_id,
                barber.is_active,
                _dump_working_hours(barber.working_hours),
                now_local().isoformat(),
            ),
            commit=True,
        )
        logging.info(f"Barber {barber_id} created: {barber.name}")
        return barber_id

    @staticmethod
    async def set_active(barber_id: int, is_active: bool) -> bool:
        """Активация/деактивация. Существующие записи не трогаем."""
        updated = await BarberRepository._execute_query(
            "UPDATE barbers SET is_active=?, updated_at=? WHERE id=?",
            (is_active, now_local().isoformat(), barber_id),
            commit=True,
        )
        return updated > 0

    @staticmethod
    async def set_working_hours(barber_id: int, working_hours: Dict[str, WorkingDay]) -> bool:
        updated = await BarberRepository._execute_query(
            "UPDATE barbers SET working_hours=?, updated_at=? WHERE id=?",
            (_dump_working_hours(working_hours), now_local().isoformat(), barber_id),
            commit=True,
        )
        return updated > 0
