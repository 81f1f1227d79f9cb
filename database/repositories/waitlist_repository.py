"""Репозиторий листа ожидания"""

import logging
from typing import Iterable, List, Optional

import aiosqlite

from database.base_repository import BaseRepository
from database.models import WaitlistEntry, WaitlistStatus
from utils.helpers import now_local


def _row_to_entry(row) -> WaitlistEntry:
    return WaitlistEntry(
        id=row["id"],
        user_id=row["user_id"],
        service_id=row["service_id"],
        barber_id=row["barber_id"],
        date=row["date"],
        time=row["time"],
        status=WaitlistStatus(row["status"]),
        notified_at=row["notified_at"],
        created_at=row["created_at"],
    )


class WaitlistRepository(BaseRepository):
    """Заявки на уведомление об освободившемся времени"""

    @staticmethod
    async def insert_entry(entry: WaitlistEntry) -> Optional[int]:
        """Добавить заявку. None - уже есть активная такая же."""
        try:
            return await WaitlistRepository._execute_query(
                """INSERT INTO waiting_list
                (user_id, service_id, barber_id, date, time, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    entry.user_id,
                    entry.service_id,
                    entry.barber_id,
                    entry.date,
                    entry.time,
                    WaitlistStatus.ACTIVE.value,
                    now_local().isoformat(),
                ),
                commit=True,
            )
        except aiosqlite.IntegrityError:
            logging.info(
                f"User {entry.user_id} already waiting for {entry.date} {entry.time}"
            )
            return None

    @staticmethod
    async def get_by_id(entry_id: int) -> Optional[WaitlistEntry]:
        row = await WaitlistRepository._execute_query(
            "SELECT * FROM waiting_list WHERE id=?", (entry_id,), fetch_one=True
        )
        return _row_to_entry(row) if row else None

    @staticmethod
    async def find_active_for_slots(
        date_str: str,
        times: Iterable[str],
        barber_id: Optional[int],
        shop_wide: bool = False,
    ) -> List[WaitlistEntry]:
        """Активные заявки на освободившиеся слоты

        Подходят заявки "любой барбер" и заявки на освободившегося барбера.
        barber_id=None - освободилось место без барбера, подходят только
        заявки "любой барбер". shop_wide=True - подходят все заявки.
        """
        times = list(times)
        if not times:
            return []

        placeholders = ", ".join("?" for _ in times)
        query = (
            f"SELECT * FROM waiting_list WHERE date=? AND time IN ({placeholders}) "
            "AND status=?"
        )
        params = [date_str, *times, WaitlistStatus.ACTIVE.value]
        if barber_id is not None:
            query += " AND (barber_id IS NULL OR barber_id=?)"
            params.append(barber_id)
        elif not shop_wide:
            query += " AND barber_id IS NULL"

        rows = await WaitlistRepository._execute_query(
            query + " ORDER BY created_at, id", params, fetch_all=True
        )
        return [_row_to_entry(row) for row in rows or []]

    @staticmethod
    async def mark_notified(entry_id: int) -> bool:
        """active -> notified; False если заявку уже обработали"""
        updated = await WaitlistRepository._execute_query(
            "UPDATE waiting_list SET status=?, notified_at=? WHERE id=? AND status=?",
            (
                WaitlistStatus.NOTIFIED.value,
                now_local().isoformat(),
                entry_id,
                WaitlistStatus.ACTIVE.value,
            ),
            commit=True,
        )
        return updated > 0

    @staticmethod
    async def remove_entry(entry_id: int) -> bool:
        """Клиент вышел из листа ожидания"""
        updated = await WaitlistRepository._execute_query(
            "UPDATE waiting_list SET status=? WHERE id=? AND status IN (?, ?)",
            (
                WaitlistStatus.REMOVED.value,
                entry_id,
                WaitlistStatus.ACTIVE.value,
                WaitlistStatus.NOTIFIED.value,
            ),
            commit=True,
        )
        return updated > 0

    @staticmethod
    async def remove_for_booking(
        user_id: int, service_id: int, date_str: str, time_str: str
    ) -> int:
        """Клиент сам записался на это время - заявки больше не нужны"""
        return await WaitlistRepository._execute_query(
            """UPDATE waiting_list SET status=?
            WHERE user_id=? AND service_id=? AND date=? AND time=? AND status IN (?, ?)""",
            (
                WaitlistStatus.REMOVED.value,
                user_id,
                service_id,
                date_str,
                time_str,
                WaitlistStatus.ACTIVE.value,
                WaitlistStatus.NOTIFIED.value,
            ),
            commit=True,
        )

    @staticmethod
    async def expire_before(date_str: str, time_str: str) -> int:
        """Просрочить заявки на время раньше (date_str, time_str)"""
        return await WaitlistRepository._execute_query(
            """UPDATE waiting_list SET status=?
            WHERE status IN (?, ?) AND (date < ? OR (date = ? AND time < ?))""",
            (
                WaitlistStatus.EXPIRED.value,
                WaitlistStatus.ACTIVE.value,
                WaitlistStatus.NOTIFIED.value,
                date_str,
                date_str,
                time_str,
            ),
            commit=True,
        )

    @staticmethod
    async def get_user_entries(user_id: int) -> List[WaitlistEntry]:
        """active и notified заявки клиента"""
        rows = await WaitlistRepository._execute_query(
            "SELECT * FROM waiting_list WHERE user_id=? AND status IN (?, ?) ORDER BY date, time",
            (user_id, WaitlistStatus.ACTIVE.value, WaitlistStatus.NOTIFIED.value),
            fetch_all=True,
        )
        return [_row_to_entry(row) for row in rows or []]
