"""Репозиторий записей"""

from typing import Dict, Iterable, List, Optional

import aiosqlite

from database.base_repository import BaseRepository
from database.models import ACTIVE_STATUSES, Appointment, AppointmentStatus
from utils.helpers import now_local


def _row_to_appointment(row) -> Appointment:
    return Appointment(
        id=row["id"],
        customer_id=row["customer_id"],
        username=row["username"],
        barber_id=row["barber_id"],
        service_id=row["service_id"],
        date=row["date"],
        time=row["time"],
        span=row["span"],
        duration_minutes=row["duration_minutes"],
        status=AppointmentStatus(row["status"]),
        notes=row["notes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class AppointmentRepository(BaseRepository):
    """Чтение записей и условные обновления статуса"""

    @staticmethod
    async def get_by_id(appointment_id: int) -> Optional[Appointment]:
        row = await AppointmentRepository._execute_query(
            "SELECT * FROM appointments WHERE id=?", (appointment_id,), fetch_one=True
        )
        return _row_to_appointment(row) if row else None

    @staticmethod
    async def get_active_for_day(
        date_str: str, barber_ids: Optional[Iterable[int]] = None
    ) -> List[Appointment]:
        """pending/confirmed записи за день

        barber_ids=None - все записи, включая записи без барбера.
        """
        query = "SELECT * FROM appointments WHERE date=? AND status IN (?, ?)"
        params = [date_str, *ACTIVE_STATUSES]
        if barber_ids is not None:
            barber_ids = list(barber_ids)
            if not barber_ids:
                return []
            placeholders = ", ".join("?" for _ in barber_ids)
            query += f" AND barber_id IN ({placeholders})"
            params.extend(barber_ids)

        rows = await AppointmentRepository._execute_query(
            query + " ORDER BY time, id", params, fetch_all=True
        )
        return [_row_to_appointment(row) for row in rows or []]

    @staticmethod
    async def get_customer_appointments(
        customer_id: int, from_date: Optional[str] = None
    ) -> List[Appointment]:
        """Записи клиента (по умолчанию - начиная с сегодня)"""
        from_date = from_date or now_local().strftime("%Y-%m-%d")
        rows = await AppointmentRepository._execute_query(
            "SELECT * FROM appointments WHERE customer_id=? AND date >= ? ORDER BY date, time",
            (customer_id, from_date),
            fetch_all=True,
        )
        return [_row_to_appointment(row) for row in rows or []]

    @staticmethod
    async def update_status(
        appointment_id: int, current: AppointmentStatus, target: AppointmentStatus
    ) -> bool:
        """Сменить статус, только если он все еще равен current"""
        updated = await AppointmentRepository._execute_query(
            "UPDATE appointments SET status=?, updated_at=? WHERE id=? AND status=?",
            (target.value, now_local().isoformat(), appointment_id, current.value),
            commit=True,
        )
        return updated > 0

    # === ВНУТРИ ТРАНЗАКЦИИ ЗАПИСИ ===

    @staticmethod
    async def fetch_barber_day(
        db: aiosqlite.Connection, date_str: str, barber_id: int
    ) -> List[tuple]:
        """(time, span) активных записей барбера - свежие данные внутри транзакции"""
        async with db.execute(
            "SELECT time, span FROM appointments WHERE date=? AND barber_id=? AND status IN (?, ?)",
            (date_str, barber_id, *ACTIVE_STATUSES),
        ) as cursor:
            return list(await cursor.fetchall())

    @staticmethod
    async def insert(db: aiosqlite.Connection, appointment: Appointment) -> int:
        """Вставка без commit - коммитит владелец транзакции"""
        timestamp = now_local().isoformat()
        cursor = await db.execute(
            """INSERT INTO appointments
            (customer_id, username, barber_id, service_id, date, time, span,
             duration_minutes, status, notes, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                appointment.customer_id,
                appointment.username,
                appointment.barber_id,
                appointment.service_id,
                appointment.date,
                appointment.time,
                appointment.span,
                appointment.duration_minutes,
                appointment.status.value,
                appointment.notes,
                timestamp,
                timestamp,
            ),
        )
        appointment.created_at = appointment.updated_at = timestamp
        return cursor.lastrowid

    @staticmethod
    async def count_active_by_barber(date_str: str) -> Dict[int, int]:
        """Сколько активных записей у каждого барбера за день"""
        rows = await AppointmentRepository._execute_query(
            """SELECT barber_id, COUNT(*) FROM appointments
            WHERE date=? AND barber_id IS NOT NULL AND status IN (?, ?)
            GROUP BY barber_id""",
            (date_str, *ACTIVE_STATUSES),
            fetch_all=True,
        )
        return {barber_id: count for barber_id, count in rows or []}
