"""Фасад планирования - единственная точка входа для обработчиков

Связывает сетку слотов, детектор конфликтов, транзакцию записи и лист
ожидания в порядке: чтение занятости -> проверка -> запись -> (при отмене)
уведомление ожидающих.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from config import BOOKING_RETRY_ATTEMPTS, BOOKING_RETRY_DELAY
from database.models import (
    Appointment,
    AppointmentStatus,
    Barber,
    Caller,
    Role,
    Service,
    SlotStatus,
    WaitlistEntry,
    WorkingDay,
)
from database.repositories import (
    AppointmentRepository,
    BarberRepository,
    BlockedSlotRepository,
    ServiceRepository,
)
from services.booking_service import BookingRequest, BookingService
from services.conflict_detector import PlacementKind
from services.exceptions import (
    BookingTimeout,
    InvalidDate,
    InvalidDuration,
    InvalidResource,
    NotFound,
    OutOfHours,
    Unauthorized,
)
from services.notification_service import NotificationService
from services.slot_grid import SlotGrid, SlotState
from services.waitlist_service import WaitlistService
from utils.datetime_utils import get_month_dates, parse_date, parse_time
from utils.helpers import is_admin, today_local
from utils.retry import async_retry


@dataclass(frozen=True)
class SlotAvailability:
    """Время начала и барберы, которые могут принять услугу"""

    time: str
    status: SlotStatus
    barber_ids: Tuple[int, ...] = ()

    @property
    def is_free(self) -> bool:
        return self.status in (SlotStatus.OPEN, SlotStatus.LIMITED)


@dataclass
class BookingResult:
    appointment: Appointment
    barber: Barber


@dataclass
class CancellationResult:
    appointment: Appointment
    notified: List[WaitlistEntry] = field(default_factory=list)


class SchedulingService:
    """Операции, доступные клиентам, барберам и админам"""

    def __init__(
        self,
        notification_service: NotificationService,
        grid: Optional[SlotGrid] = None,
        booking_service: Optional[BookingService] = None,
        waitlist_service: Optional[WaitlistService] = None,
    ):
        self.grid = grid or SlotGrid()
        self.notification_service = notification_service
        self.booking_service = booking_service or BookingService(self.grid)
        self.waitlist_service = waitlist_service or WaitlistService(
            notification_service, self.grid, self.booking_service.locks
        )
        self.detector = self.booking_service.detector

    # === ИДЕНТИФИКАЦИЯ ===

    @staticmethod
    async def resolve_caller(user_id: int) -> Caller:
        """Роли пользователя: админ по ADMIN_IDS, барбер по barbers.user_id"""
        roles = {Role.CUSTOMER}
        if is_admin(user_id):
            roles.add(Role.ADMIN)

        barber = await BarberRepository.get_barber_by_user(user_id)
        if barber:
            roles.add(Role.BARBER)
        return Caller(user_id, frozenset(roles), barber.id if barber else None)

    @staticmethod
    def _require_admin(caller: Caller):
        if not caller.is_admin:
            raise Unauthorized(f"User {caller.user_id} is not an admin")

    # === ДОСТУПНОСТЬ ===

    async def get_availability(
        self, date_str: str, service_id: int, barber_id: Optional[int] = None
    ) -> List[SlotAvailability]:
        """Все начала слотов на дату с учетом длительности услуги

        Для конкретного барбера слот либо open, либо full. Для любого
        барбера: open - свободны все, limited - часть, full - никто.
        """
        date_str = self.grid.canonical_date(date_str)
        day = parse_date(date_str)
        service = await BookingService.get_schedulable_service(service_id)
        span = self.grid.span_for(service.duration_minutes)

        if barber_id is not None:
            barbers = [await BookingService.get_active_barber(barber_id)]
        else:
            barbers = await BarberRepository.get_barbers(active_only=True)
        barber_ids = [b.id for b in barbers]
        occupancy = await self.grid.load_occupancy(date_str, barbers)

        slots = []
        first = self.grid.first_bookable_index(day)
        for start in range(first, self.grid.slot_count - span + 1):
            time_str = self.grid.time_of(start)
            placement = self.detector.check(
                occupancy, start, span, barber_id=barber_id, active_barbers=barber_ids
            )

            if placement.kind == PlacementKind.AVAILABLE:
                slots.append(SlotAvailability(time_str, SlotStatus.OPEN, (barber_id,)))
            elif placement.kind == PlacementKind.AVAILABLE_WITH:
                capacity = len(placement.candidates) - occupancy.unassigned_load(start, span)
                status = SlotStatus.OPEN if capacity == len(barber_ids) else SlotStatus.LIMITED
                slots.append(SlotAvailability(time_str, status, placement.candidates))
            else:
                slots.append(SlotAvailability(time_str, SlotStatus.FULL))
        return slots

    async def get_day_overview(self, date_str: str) -> List[SlotState]:
        return await self.grid.day_overview(date_str)

    async def get_month_overview(self, year: int, month: int) -> Dict[str, SlotStatus]:
        """Статус каждого дня месяца для календаря

        closed - прошлое, выходной или за горизонтом записи;
        open - все слоты свободны; full - свободных слотов нет.
        """
        today = today_local()
        barbers = await BarberRepository.get_barbers(active_only=True)
        barber_ids = [b.id for b in barbers]

        overview = {}
        for day in get_month_dates(year, month):
            date_str = day.strftime("%Y-%m-%d")
            try:
                self.grid.validate_date(date_str, today)
            except InvalidDate:
                overview[date_str] = SlotStatus.CLOSED
                continue
            if not barber_ids:
                overview[date_str] = SlotStatus.CLOSED
                continue

            occupancy = await self.grid.load_occupancy(date_str, barbers)
            states = self.grid.aggregate(occupancy, barber_ids)[self.grid.first_bookable_index(day):]
            statuses = {state.status for state in states}

            if not statuses or statuses == {SlotStatus.FULL}:
                overview[date_str] = SlotStatus.FULL
            elif statuses == {SlotStatus.OPEN}:
                overview[date_str] = SlotStatus.OPEN
            else:
                overview[date_str] = SlotStatus.LIMITED
        return overview

    # === ЗАПИСЬ ===

    @async_retry(
        max_attempts=BOOKING_RETRY_ATTEMPTS,
        delay=BOOKING_RETRY_DELAY,
        exceptions=(BookingTimeout,),
    )
    async def _create_booking(self, request: BookingRequest) -> Appointment:
        return await self.booking_service.create_booking(request)

    async def place_booking(self, request: BookingRequest) -> BookingResult:
        """Создать запись. Повторяется только BookingTimeout.

        После коммита запись считается созданной: ошибки очистки листа
        ожидания и уведомления админов только логируются.
        """
        appointment = await self._create_booking(request)
        barber = await BarberRepository.get_barber_by_id(appointment.barber_id)

        try:
            await self.waitlist_service.on_booked(
                appointment.customer_id, appointment.service_id, appointment.date, appointment.time
            )
        except Exception:
            logging.exception(f"Waitlist cleanup failed after booking {appointment.id}")

        try:
            await self.notification_service.notify_admin_new_booking(appointment, barber.name)
        except Exception:
            logging.exception(f"Admin notification failed for booking {appointment.id}")
        return BookingResult(appointment, barber)

    async def cancel_booking(self, appointment_id: int, caller: Caller) -> CancellationResult:
        """Отменить запись и уведомить лист ожидания

        Отмена считается успешной независимо от результата уведомлений.
        """
        appointment = await self.booking_service.transition_status(
            appointment_id, AppointmentStatus.CANCELLED, caller
        )

        notified = []
        try:
            notified = await self.waitlist_service.on_slots_freed(
                appointment.date, appointment.time, appointment.span, appointment.barber_id
            )
        except Exception:
            logging.exception(f"Waitlist matching failed after cancelling {appointment_id}")

        try:
            barber = (
                await BarberRepository.get_barber_by_id(appointment.barber_id)
                if appointment.barber_id
                else None
            )
            await self.notification_service.notify_admin_cancellation(
                appointment, barber.name if barber else "-"
            )
        except Exception:
            logging.exception(f"Admin notification failed for cancellation {appointment_id}")
        return CancellationResult(appointment, notified)

    async def confirm_booking(self, appointment_id: int, caller: Caller) -> Appointment:
        return await self.booking_service.transition_status(
            appointment_id, AppointmentStatus.CONFIRMED, caller
        )

    async def complete_booking(self, appointment_id: int, caller: Caller) -> Appointment:
        return await self.booking_service.transition_status(
            appointment_id, AppointmentStatus.COMPLETED, caller
        )

    async def my_appointments(self, user_id: int) -> List[Appointment]:
        """Предстоящие записи клиента"""
        appointments = await AppointmentRepository.get_customer_appointments(
            user_id, from_date=today_local().strftime("%Y-%m-%d")
        )
        return [a for a in appointments if a.is_active]

    # === ЛИСТ ОЖИДАНИЯ ===

    async def join_waitlist(
        self,
        user_id: int,
        service_id: int,
        date_str: str,
        time_str: str,
        barber_id: Optional[int] = None,
    ) -> WaitlistEntry:
        return await self.waitlist_service.join(user_id, service_id, date_str, time_str, barber_id)

    async def leave_waitlist(self, entry_id: int, caller: Caller) -> WaitlistEntry:
        return await self.waitlist_service.leave(entry_id, caller)

    async def my_waitlist(self, user_id: int) -> List[WaitlistEntry]:
        return await self.waitlist_service.get_user_entries(user_id)

    # === БЛОКИРОВКИ (админ) ===

    async def _check_slot(
        self, date_str: str, time_str: str, barber_id: Optional[int]
    ) -> Tuple[str, str]:
        date_str, time_str, _ = self.grid.canonical_slot(date_str, time_str)
        if barber_id is not None and not await BarberRepository.get_barber_by_id(barber_id):
            raise InvalidResource(f"Barber {barber_id} not found", barber_id=barber_id)
        return date_str, time_str

    async def block_slot(
        self,
        caller: Caller,
        date_str: str,
        time_str: str,
        barber_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> bool:
        """Закрыть слот. Существующие записи не отменяются."""
        self._require_admin(caller)
        date_str, time_str = await self._check_slot(date_str, time_str, barber_id)
        return await BlockedSlotRepository.block_slot(
            date_str, time_str, caller.user_id, barber_id, reason
        )

    async def unblock_slot(
        self, caller: Caller, date_str: str, time_str: str, barber_id: Optional[int] = None
    ) -> List[WaitlistEntry]:
        """Открыть слот и уведомить ожидающих

        Raises:
            NotFound: слот не был заблокирован
        """
        self._require_admin(caller)
        date_str, time_str = await self._check_slot(date_str, time_str, barber_id)
        if not await BlockedSlotRepository.unblock_slot(date_str, time_str, barber_id):
            raise NotFound(f"Slot {date_str} {time_str} is not blocked", date=date_str, time=time_str)

        try:
            return await self.waitlist_service.on_slots_freed(
                date_str, time_str, 1, barber_id, shop_wide=barber_id is None
            )
        except Exception:
            logging.exception(f"Waitlist matching failed after unblocking {date_str} {time_str}")
            return []

    # === БАРБЕРЫ И УСЛУГИ (админ) ===

    @staticmethod
    async def get_barbers() -> List[Barber]:
        return await BarberRepository.get_barbers(active_only=True)

    @staticmethod
    async def get_services() -> List[Service]:
        return await ServiceRepository.get_all_services(active_only=True)

    @staticmethod
    async def get_service(service_id: int) -> Service:
        """Услуга по id, включая неактивные (для уже созданных записей)"""
        service = await ServiceRepository.get_service_by_id(service_id)
        if service is None:
            raise NotFound(f"Service {service_id} not found")
        return service

    async def add_barber(
        self,
        caller: Caller,
        name: str,
        user_id: Optional[int] = None,
        working_hours: Optional[Dict[str, WorkingDay]] = None,
    ) -> Barber:
        self._require_admin(caller)
        barber = Barber(id=None, name=name, user_id=user_id, working_hours=working_hours or {})
        barber.id = await BarberRepository.create_barber(barber)
        return barber

    async def set_barber_active(self, caller: Caller, barber_id: int, is_active: bool) -> Barber:
        """Деактивация скрывает барбера из доступности, записи остаются"""
        self._require_admin(caller)
        if not await BarberRepository.set_active(barber_id, is_active):
            raise InvalidResource(f"Barber {barber_id} not found", barber_id=barber_id)
        logging.info(f"Barber {barber_id} active={is_active} by {caller.user_id}")
        return await BarberRepository.get_barber_by_id(barber_id)

    async def set_working_hours(
        self, caller: Caller, barber_id: int, working_hours: Dict[str, WorkingDay]
    ) -> Barber:
        """Рабочие часы барбера (владелец-барбер или админ)"""
        if not caller.is_admin and caller.barber_id != barber_id:
            raise Unauthorized(f"User {caller.user_id} cannot edit barber {barber_id}")
        for day, hours in working_hours.items():
            if hours.enabled and parse_time(hours.start) >= parse_time(hours.end):
                raise OutOfHours(f"{day}: {hours.start} is not before {hours.end}", time=hours.start)
        if not await BarberRepository.set_working_hours(barber_id, working_hours):
            raise InvalidResource(f"Barber {barber_id} not found", barber_id=barber_id)
        return await BarberRepository.get_barber_by_id(barber_id)

    async def add_service(
        self,
        caller: Caller,
        name: str,
        duration_minutes: int,
        price: float = 0.0,
        category: str = "haircut",
    ) -> Service:
        self._require_admin(caller)
        if duration_minutes <= 0:
            raise InvalidDuration(f"Duration must be positive, got {duration_minutes}")
        service = Service(
            id=None, name=name, duration_minutes=duration_minutes, price=price, category=category
        )
        service.id = await ServiceRepository.create_service(service)
        logging.info(f"Service {service.id} created: {name} ({duration_minutes} min)")
        return service

    async def deactivate_service(self, caller: Caller, service_id: int) -> bool:
        self._require_admin(caller)
        return await ServiceRepository.delete_service(service_id)
