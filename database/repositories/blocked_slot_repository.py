"""Репозиторий заблокированных слотов"""

import logging
from typing import List, Optional

import aiosqlite

from database.base_repository import BaseRepository
from database.models import BlockedSlot
from utils.helpers import now_local


def _row_to_blocked(row) -> BlockedSlot:
    return BlockedSlot(
        id=row["id"],
        date=row["date"],
        time=row["time"],
        barber_id=row["barber_id"],
        reason=row["reason"],
        blocked_by=row["blocked_by"],
        blocked_at=row["blocked_at"],
    )


class BlockedSlotRepository(BaseRepository):
    """Слоты, закрытые администратором"""

    @staticmethod
    async def block_slot(
        date_str: str,
        time_str: str,
        admin_id: int,
        barber_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> bool:
        """Заблокировать слот (barber_id=None - весь салон)"""
        try:
            await BlockedSlotRepository._execute_query(
                """INSERT INTO blocked_slots (date, time, barber_id, reason, blocked_by, blocked_at)
                VALUES (?, ?, ?, ?, ?, ?)""",
                (date_str, time_str, barber_id, reason, admin_id, now_local().isoformat()),
                commit=True,
            )
        except aiosqlite.IntegrityError:
            logging.warning(f"Slot {date_str} {time_str} already blocked")
            return False

        logging.info(f"Slot {date_str} {time_str} (barber {barber_id}) blocked by {admin_id}")
        return True

    @staticmethod
    async def unblock_slot(
        date_str: str, time_str: str, barber_id: Optional[int] = None
    ) -> bool:
        deleted = await BlockedSlotRepository._execute_query(
            "DELETE FROM blocked_slots WHERE date=? AND time=? AND COALESCE(barber_id, 0)=?",
            (date_str, time_str, barber_id or 0),
            commit=True,
        )
        if deleted:
            logging.info(f"Slot {date_str} {time_str} (barber {barber_id}) unblocked")
        return deleted > 0

    @staticmethod
    async def get_blocked_slots(date_str: str) -> List[BlockedSlot]:
        rows = await BlockedSlotRepository._execute_query(
            "SELECT * FROM blocked_slots WHERE date=? ORDER BY time", (date_str,), fetch_all=True
        )
        return [_row_to_blocked(row) for row in rows or []]

    @staticmethod
    async def fetch_blocked_times(
        db: aiosqlite.Connection, date_str: str, barber_id: int
    ) -> List[str]:
        """Блокировки барбера и всего салона - внутри транзакции записи"""
        async with db.execute(
            "SELECT time FROM blocked_slots WHERE date=? AND (barber_id IS NULL OR barber_id=?)",
            (date_str, barber_id),
        ) as cursor:
            return [time_str for (time_str,) in await cursor.fetchall()]
