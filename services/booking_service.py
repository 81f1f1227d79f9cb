"""Сервис бронирования - единственный путь создания записи

Проверка и вставка выполняются атомарно:
1. asyncio-блокировка на (дата, барбер) внутри процесса;
2. BEGIN IMMEDIATE в SQLite - между процессами.
Внутри транзакции занятость барбера перечитывается и проверяется заново.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

import aiosqlite

from config import BOOKING_LOCK_TIMEOUT, NON_SCHEDULABLE_CATEGORIES
from database.models import (
    Appointment,
    AppointmentStatus,
    Barber,
    Caller,
    Service,
    can_transition,
)
from database.queries import Database
from database.repositories import (
    AppointmentRepository,
    AuditRepository,
    BarberRepository,
    BlockedSlotRepository,
    ServiceRepository,
)
from services.conflict_detector import ConflictDetector
from services.exceptions import (
    BookingTimeout,
    FullyBooked,
    InvalidResource,
    InvalidService,
    InvalidTransition,
    NotFound,
    SlotConflict,
    Unauthorized,
)
from services.slot_grid import SlotGrid
from utils.locks import KeyedLock


@dataclass
class BookingRequest:
    """Параметры записи"""

    customer_id: int
    service_id: int
    date: str
    time: str
    barber_id: Optional[int] = None  # None = любой барбер
    notes: Optional[str] = None
    username: Optional[str] = None


class BookingService:
    """Транзакция записи и переходы статусов"""

    def __init__(
        self,
        grid: SlotGrid,
        detector: Optional[ConflictDetector] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self.grid = grid
        self.detector = detector or ConflictDetector(grid)
        self.locks = locks or KeyedLock(BOOKING_LOCK_TIMEOUT)

    # === ВАЛИДАЦИЯ (до любой записи в БД) ===

    @staticmethod
    async def get_schedulable_service(service_id: int) -> Service:
        service = await ServiceRepository.get_service_by_id(service_id)
        if not service or not service.is_active:
            raise InvalidService(f"Service {service_id} is not available", service_id=service_id)
        if service.category in NON_SCHEDULABLE_CATEGORIES:
            raise InvalidService(
                f"Service {service_id} ({service.category}) is not booked with a barber",
                service_id=service_id,
            )
        return service

    @staticmethod
    async def get_active_barber(barber_id: int) -> Barber:
        barber = await BarberRepository.get_barber_by_id(barber_id)
        if not barber or not barber.is_active:
            raise InvalidResource(f"Barber {barber_id} is not available", barber_id=barber_id)
        return barber

    # === СОЗДАНИЕ ЗАПИСИ ===

    async def create_booking(self, request: BookingRequest) -> Appointment:
        """Создать запись со статусом pending

        Returns:
            Appointment с назначенным барбером

        Raises:
            InvalidDate, OutOfHours, InvalidDuration, InvalidService,
            InvalidResource, SlotConflict, FullyBooked, BookingTimeout
        """
        date_str, time_str, start = self.grid.canonical_slot(request.date, request.time)
        request = replace(request, date=date_str, time=time_str)
        self.grid.ensure_not_started(request.date, start)
        service = await self.get_schedulable_service(request.service_id)
        span = self.grid.span_for(service.duration_minutes)
        self.grid.check_range(start, span)

        if request.barber_id is not None:
            barber = await self.get_active_barber(request.barber_id)
            appointment = await self._commit_for_barber(request, service, barber, start, span)
            if appointment is None:
                raise SlotConflict(
                    f"Barber {barber.id} is taken at {request.date} {request.time}",
                    barber_id=barber.id,
                    date=request.date,
                    time=request.time,
                )
            return appointment

        # Любой барбер: предварительный отбор без блокировок,
        # окончательный выбор - внутри транзакции
        barbers = await BarberRepository.get_barbers(active_only=True)
        occupancy = await self.grid.load_occupancy(request.date, barbers)
        placement = self.detector.check(
            occupancy, start, span, active_barbers=[b.id for b in barbers]
        )
        placement.raise_for_failure(request.date, request.time)

        by_id = {b.id: b for b in barbers}
        for barber_id in await self._order_candidates(request.date, placement.candidates):
            appointment = await self._commit_for_barber(
                request, service, by_id[barber_id], start, span
            )
            if appointment is not None:
                return appointment
            logging.info(f"Candidate barber {barber_id} lost the race for {request.date} {request.time}")

        raise FullyBooked(
            f"All candidates taken at {request.date} {request.time}",
            date=request.date,
            time=request.time,
        )

    async def _order_candidates(self, date_str: str, candidates: Sequence[int]) -> List[int]:
        """Меньше записей за день - раньше; при равенстве - по id"""
        load = await AppointmentRepository.count_active_by_barber(date_str)
        return sorted(candidates, key=lambda barber_id: (load.get(barber_id, 0), barber_id))

    async def _commit_for_barber(
        self,
        request: BookingRequest,
        service: Service,
        barber: Barber,
        start: int,
        span: int,
    ) -> Optional[Appointment]:
        """Проверка + вставка для одного барбера. None - барбер занят."""
        async with self.locks.hold((request.date, barber.id)):
            try:
                async with Database.connect() as db:
                    await db.execute("BEGIN IMMEDIATE")
                    try:
                        appointment = await self._insert_if_free(
                            db, request, service, barber, start, span
                        )
                        if appointment is None:
                            await db.rollback()
                            return None
                        await db.commit()
                    except Exception:
                        await db.rollback()
                        raise
            except aiosqlite.OperationalError as e:
                if "locked" in str(e) or "busy" in str(e):
                    raise BookingTimeout(
                        f"Database busy for {request.date} barber {barber.id}"
                    ) from e
                raise

        logging.info(
            f"Appointment {appointment.id} created: {request.date} {request.time} "
            f"barber {barber.id} customer {request.customer_id}"
        )
        await AuditRepository.log_event(
            request.customer_id,
            "booking_created",
            f"{request.date} {request.time} barber={barber.id} appointment={appointment.id}",
        )
        return appointment

    async def _insert_if_free(
        self,
        db: aiosqlite.Connection,
        request: BookingRequest,
        service: Service,
        barber: Barber,
        start: int,
        span: int,
    ) -> Optional[Appointment]:
        """Перечитать занятость внутри транзакции и вставить запись"""
        async with db.execute("SELECT is_active FROM barbers WHERE id=?", (barber.id,)) as cursor:
            row = await cursor.fetchone()
        if not row or not row[0]:
            logging.info(f"Barber {barber.id} deactivated before commit")
            return None

        bookings = await AppointmentRepository.fetch_barber_day(db, request.date, barber.id)
        blocked = await BlockedSlotRepository.fetch_blocked_times(db, request.date, barber.id)
        occupancy = self.grid.build_occupancy(
            request.date,
            [barber],
            [(barber.id, time_str, booked_span) for time_str, booked_span in bookings],
            [(barber.id, time_str) for time_str in blocked],
        )
        if not self.detector.check(occupancy, start, span, barber_id=barber.id).ok:
            return None

        appointment = Appointment(
            id=None,
            customer_id=request.customer_id,
            username=request.username,
            barber_id=barber.id,
            service_id=service.id,
            date=request.date,
            time=request.time,
            span=span,
            duration_minutes=service.duration_minutes,
            status=AppointmentStatus.PENDING,
            notes=request.notes,
        )
        appointment.id = await AppointmentRepository.insert(db, appointment)
        return appointment

    # === СМЕНА СТАТУСА ===

    @staticmethod
    def _authorize(appointment: Appointment, target: AppointmentStatus, caller: Caller):
        """Клиент - только отмена своей записи; барбер - свои записи; админ - все"""
        if caller.is_admin:
            return
        if caller.is_barber and caller.barber_id is not None and caller.barber_id == appointment.barber_id:
            return
        if target == AppointmentStatus.CANCELLED and caller.user_id == appointment.customer_id:
            return
        raise Unauthorized(
            f"User {caller.user_id} cannot set appointment {appointment.id} to {target.value}"
        )

    async def transition_status(
        self, appointment_id: int, target: AppointmentStatus, caller: Caller
    ) -> Appointment:
        """Перевести запись в target по таблице ALLOWED_TRANSITIONS"""
        appointment = await AppointmentRepository.get_by_id(appointment_id)
        if appointment is None:
            raise NotFound(f"Appointment {appointment_id} not found", appointment_id=appointment_id)

        self._authorize(appointment, target, caller)

        current = appointment.status
        if not can_transition(current, target):
            raise InvalidTransition(
                f"Appointment {appointment_id}: {current.value} -> {target.value}",
                current=current.value,
                target=target.value,
            )

        async with self.locks.hold((appointment.date, appointment.barber_id)):
            updated = await AppointmentRepository.update_status(appointment_id, current, target)

        if not updated:
            # Статус успели сменить параллельно
            fresh = await AppointmentRepository.get_by_id(appointment_id)
            raise InvalidTransition(
                f"Appointment {appointment_id} changed concurrently",
                current=fresh.status.value if fresh else current.value,
                target=target.value,
            )

        appointment.status = target
        logging.info(
            f"Appointment {appointment_id}: {current.value} -> {target.value} by {caller.user_id}"
        )
        await AuditRepository.log_event(
            caller.user_id,
            f"booking_{target.value}",
            f"appointment={appointment_id} {appointment.date} {appointment.time}",
        )
        return appointment
