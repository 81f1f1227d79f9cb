"""Журнал событий"""

import logging

import aiosqlite

from database.base_repository import BaseRepository
from utils.helpers import now_local


class AuditRepository(BaseRepository):
    """События записи: создание, отмена, смена статуса, уведомления"""

    @staticmethod
    async def log_event(user_id: int, event: str, data: str = ""):
        """Записать событие. Ошибка журнала не должна ронять операцию."""
        try:
            await AuditRepository._execute_query(
                "INSERT INTO audit_log (user_id, event, data, timestamp) VALUES (?, ?, ?, ?)",
                (user_id, event, data, now_local().isoformat()),
                commit=True,
            )
        except aiosqlite.Error as e:
            logging.error(f"Failed to log event {event} for user {user_id}: {e}")

    @staticmethod
    async def count_events(event: str, user_id: int = None) -> int:
        if user_id is None:
            return await AuditRepository._count("audit_log", "event=?", (event,))
        return await AuditRepository._count(
            "audit_log", "event=? AND user_id=?", (event, user_id)
        )
