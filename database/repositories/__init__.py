"""Репозитории для работы с базой данных"""

from database.repositories.appointment_repository import AppointmentRepository
from database.repositories.audit_repository import AuditRepository
from database.repositories.barber_repository import BarberRepository
from database.repositories.blocked_slot_repository import BlockedSlotRepository
from database.repositories.service_repository import ServiceRepository
from database.repositories.waitlist_repository import WaitlistRepository

__all__ = [
    "AppointmentRepository",
    "AuditRepository",
    "BarberRepository",
    "BlockedSlotRepository",
    "ServiceRepository",
    "WaitlistRepository",
]
