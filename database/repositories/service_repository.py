"""Репозиторий для работы с услугами"""

from typing import List, Optional

from database.base_repository import BaseRepository
from database.models import Service


def _row_to_service(row) -> Service:
    return Service(
        id=row["id"],
        name=row["name"],
        category=row["category"],
        duration_minutes=row["duration_minutes"],
        price=row["price"],
        is_active=bool(row["is_active"]),
    )


class ServiceRepository(BaseRepository):
    """Репозиторий для услуг"""

    @staticmethod
    async def get_all_services(active_only: bool = True) -> List[Service]:
        query = "SELECT * FROM services"
        if active_only:
            query += " WHERE is_active=1"
        rows = await ServiceRepository._execute_query(
            query + " ORDER BY category, name", fetch_all=True
        )
        return [_row_to_service(row) for row in rows or []]

    @staticmethod
    async def get_service_by_id(service_id: int) -> Optional[Service]:
        row = await ServiceRepository._execute_query(
            "SELECT * FROM services WHERE id=?", (service_id,), fetch_one=True
        )
        return _row_to_service(row) if row else None

    @staticmethod
    async def create_service(service: Service) -> int:
        return await ServiceRepository._execute_query(
            """INSERT INTO services (name, category, duration_minutes, price, is_active)
            VALUES (?, ?, ?, ?, ?)""",
            (
                service.name,
                service.category,
                service.duration_minutes,
                service.price,
                service.is_active,
            ),
            commit=True,
        )

    @staticmethod
    async def delete_service(service_id: int) -> bool:
        """Удалить услугу (мягкое удаление)"""
        updated = await ServiceRepository._execute_query(
            "UPDATE services SET is_active=0 WHERE id=?", (service_id,), commit=True
        )
        return updated > 0
