"""Тесты для SchedulingService

Сценарии целиком через фасад:
- доступность и календарь
- запись, отмена с каскадом в лист ожидания
- повтор при таймауте
- блокировки и администрирование
"""

from datetime import timedelta

import aiosqlite
import pytest

from config import WEEKDAY_KEYS
from database.models import AppointmentStatus, Role, SlotStatus, WaitlistStatus, WorkingDay
from database.repositories import AppointmentRepository, WaitlistRepository
from services.booking_service import BookingRequest
from services.exceptions import (
    BookingTimeout,
    FullyBooked,
    InvalidDuration,
    InvalidResource,
    InvalidService,
    NotFound,
    OutOfHours,
    SlotConflict,
    Unauthorized,
)
from utils.datetime_utils import parse_date
from utils.helpers import now_local


@pytest.fixture
async def shop(create_barber, create_service):
    first = await create_barber("Иван", user_id=555)
    second = await create_barber("Петр")
    haircut = await create_service("Стрижка", duration_minutes=30)
    combo = await create_service("Стрижка + борода", duration_minutes=60)
    return first, second, haircut, combo


class TestResolveCaller:
    """Роли пользователя"""

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_roles(self, scheduling_service, shop):
        first = shop[0]

        admin = await scheduling_service.resolve_caller(12345)
        barber = await scheduling_service.resolve_caller(555)
        customer = await scheduling_service.resolve_caller(111)

        assert admin.is_admin and not admin.is_barber
        assert barber.is_barber and barber.barber_id == first.id
        assert customer.roles == frozenset({Role.CUSTOMER})


class TestAvailability:
    """Запрос свободного времени"""

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_any_barber_statuses(self, scheduling_service, shop, tomorrow_date):
        first, second, haircut, _ = shop
        await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "10:00", first.id)
        )
        for customer_id, barber in ((222, first), (333, second)):
            await scheduling_service.place_booking(
                BookingRequest(customer_id, haircut.id, tomorrow_date, "11:00", barber.id)
            )

        slots = {s.time: s for s in await scheduling_service.get_availability(tomorrow_date, haircut.id)}

        assert len(slots) == 22
        assert slots["09:00"].status == SlotStatus.OPEN
        assert slots["10:00"].status == SlotStatus.LIMITED
        assert slots["10:00"].barber_ids == (second.id,)
        assert slots["11:00"].status == SlotStatus.FULL
        assert not slots["11:00"].is_free

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_long_service_respects_span(self, scheduling_service, shop, tomorrow_date):
        first, _, haircut, combo = shop
        await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "11:00", first.id)
        )

        slots = {
            s.time: s.status
            for s in await scheduling_service.get_availability(tomorrow_date, combo.id, first.id)
        }

        # 60 минут: последний старт 19:00, 10:30 пересекается с 11:00
        assert "19:30" not in slots
        assert slots["19:00"] == SlotStatus.OPEN
        assert slots["10:30"] == SlotStatus.FULL
        assert slots["11:00"] == SlotStatus.FULL
        assert slots["11:30"] == SlotStatus.OPEN

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_working_hours_in_availability(self, scheduling_service, shop, tomorrow_date, admin_caller):
        first, _, haircut, _ = shop
        day_key = WEEKDAY_KEYS[parse_date(tomorrow_date).weekday()]
        await scheduling_service.set_working_hours(
            admin_caller, first.id, {day_key: WorkingDay(True, "12:00", "14:00")}
        )

        slots = await scheduling_service.get_availability(tomorrow_date, haircut.id, first.id)
        assert [s.time for s in slots if s.is_free] == ["12:00", "12:30", "13:00", "13:30"]

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_month_overview(self, scheduling_service, shop, tomorrow_date, sunday_date):
        day = now_local().date()
        overview = await scheduling_service.get_month_overview(day.year, day.month)

        yesterday = (day - timedelta(days=1)).strftime("%Y-%m-%d")
        if yesterday in overview:
            assert overview[yesterday] == SlotStatus.CLOSED
        if sunday_date in overview:
            assert overview[sunday_date] == SlotStatus.CLOSED
        if tomorrow_date in overview:
            assert overview[tomorrow_date] == SlotStatus.OPEN

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_month_overview_full_day(
        self, scheduling_service, create_barber, create_service, insert_appointment, next_week_date
    ):
        barber = await create_barber()
        service = await create_service()
        await insert_appointment(next_week_date, "09:00", service.id, barber.id, span=22)

        year, month = int(next_week_date[:4]), int(next_week_date[5:7])
        overview = await scheduling_service.get_month_overview(year, month)
        assert overview[next_week_date] == SlotStatus.FULL


class TestBookingScenarios:
    """Сквозные сценарии"""

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_free_one_barber_then_any_succeeds(
        self, scheduling_service, shop, tomorrow_date, customer_caller
    ):
        """Оба заняты в 14:00 -> FullyBooked; отмена у одного -> запись к нему"""
        first, second, haircut, _ = shop
        await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "14:00", first.id)
        )
        second_booking = await scheduling_service.place_booking(
            BookingRequest(222, haircut.id, tomorrow_date, "14:00", second.id)
        )

        with pytest.raises(FullyBooked):
            await scheduling_service.place_booking(
                BookingRequest(333, haircut.id, tomorrow_date, "14:00")
            )

        await scheduling_service.cancel_booking(second_booking.appointment.id, customer_caller(222))

        result = await scheduling_service.place_booking(
            BookingRequest(333, haircut.id, tomorrow_date, "14:00")
        )
        assert result.barber.id == second.id
        assert result.appointment.barber_id == second.id

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_cancel_notifies_waitlist(
        self, scheduling_service, shop, tomorrow_date, customer_caller, mock_bot
    ):
        first, _, haircut, _ = shop
        booking = await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "14:00", first.id)
        )
        entry = await scheduling_service.join_waitlist(222, haircut.id, tomorrow_date, "14:00", first.id)

        result = await scheduling_service.cancel_booking(booking.appointment.id, customer_caller(111))

        assert result.appointment.status == AppointmentStatus.CANCELLED
        assert [e.id for e in result.notified] == [entry.id]
        assert len(mock_bot.messages_to(222)) == 1
        # Уведомление не резервирует слот: записаться может кто угодно
        other = await scheduling_service.place_booking(
            BookingRequest(333, haircut.id, tomorrow_date, "14:00", first.id)
        )
        assert other.appointment.customer_id == 333

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_cancel_succeeds_when_dispatch_fails(
        self, scheduling_service, shop, tomorrow_date, customer_caller, mock_bot
    ):
        first, _, haircut, _ = shop
        booking = await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "14:00", first.id)
        )
        entry = await scheduling_service.join_waitlist(222, haircut.id, tomorrow_date, "14:00")
        mock_bot.fail_for.update({222, 12345})

        result = await scheduling_service.cancel_booking(booking.appointment.id, customer_caller(111))

        assert result.appointment.status == AppointmentStatus.CANCELLED
        assert result.notified == []
        assert (await WaitlistRepository.get_by_id(entry.id)).status == WaitlistStatus.ACTIVE

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_cancel_survives_matcher_crash(
        self, scheduling_service, shop, tomorrow_date, customer_caller, monkeypatch
    ):
        first, _, haircut, _ = shop
        booking = await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "14:00", first.id)
        )

        async def broken(*args, **kwargs):
            raise RuntimeError("matcher down")

        monkeypatch.setattr(scheduling_service.waitlist_service, "on_slots_freed", broken)

        result = await scheduling_service.cancel_booking(booking.appointment.id, customer_caller(111))
        assert result.appointment.status == AppointmentStatus.CANCELLED

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_cancel_unassigned_row_keeps_pinned_entries(
        self, scheduling_service, shop, tomorrow_date, insert_appointment, admin_caller, mock_bot
    ):
        """Отмена записи без барбера не освобождает конкретного барбера"""
        first, _, haircut, _ = shop
        await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "12:00", first.id)
        )
        legacy_id = await insert_appointment(tomorrow_date, "12:00", haircut.id, barber_id=None)
        pinned = await scheduling_service.join_waitlist(222, haircut.id, tomorrow_date, "12:00", first.id)
        any_entry = await scheduling_service.join_waitlist(333, haircut.id, tomorrow_date, "12:00")

        result = await scheduling_service.cancel_booking(legacy_id, admin_caller)

        assert [e.id for e in result.notified] == [any_entry.id]
        assert mock_bot.messages_to(222) == []
        assert (await WaitlistRepository.get_by_id(pinned.id)).status == WaitlistStatus.ACTIVE

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_committed_booking_survives_post_commit_failures(
        self, scheduling_service, shop, tomorrow_date, monkeypatch
    ):
        first, _, haircut, _ = shop

        async def locked(*args, **kwargs):
            raise aiosqlite.OperationalError("database is locked")

        monkeypatch.setattr(scheduling_service.waitlist_service, "on_booked", locked)
        monkeypatch.setattr(scheduling_service.notification_service, "notify_admin_new_booking", locked)

        result = await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "14:00", first.id)
        )

        assert result.appointment.id is not None
        stored = await AppointmentRepository.get_by_id(result.appointment.id)
        assert stored.status == AppointmentStatus.PENDING

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_booking_clears_own_waitlist(self, scheduling_service, shop, tomorrow_date):
        first, _, haircut, _ = shop
        await scheduling_service.join_waitlist(111, haircut.id, tomorrow_date, "14:00")

        await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "14:00", first.id)
        )

        assert await scheduling_service.my_waitlist(111) == []
        appointments = await scheduling_service.my_appointments(111)
        assert [a.time for a in appointments] == ["14:00"]

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_admins_notified(self, scheduling_service, shop, tomorrow_date, mock_bot, customer_caller):
        first, _, haircut, _ = shop
        booking = await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "14:00", first.id, username="client")
        )
        await scheduling_service.cancel_booking(booking.appointment.id, customer_caller(111))

        admin_messages = mock_bot.messages_to(12345)
        assert len(admin_messages) == 2
        assert "@client" in admin_messages[0]

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_staff_confirm_and_complete(
        self, scheduling_service, shop, tomorrow_date, barber_caller, customer_caller
    ):
        first, _, haircut, _ = shop
        booking = await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "14:00", first.id)
        )
        staff = barber_caller(first.id, user_id=555)

        with pytest.raises(Unauthorized):
            await scheduling_service.confirm_booking(booking.appointment.id, customer_caller(111))

        confirmed = await scheduling_service.confirm_booking(booking.appointment.id, staff)
        completed = await scheduling_service.complete_booking(booking.appointment.id, staff)
        assert confirmed.status == AppointmentStatus.CONFIRMED
        assert completed.status == AppointmentStatus.COMPLETED
        assert await scheduling_service.my_appointments(111) == []


class TestRetry:
    """Повтор только при таймауте"""

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_timeout_is_retried(self, scheduling_service, shop, tomorrow_date, monkeypatch):
        first, _, haircut, _ = shop
        original = scheduling_service.booking_service.create_booking
        calls = []

        async def flaky(request):
            calls.append(request)
            if len(calls) == 1:
                raise BookingTimeout("busy")
            return await original(request)

        monkeypatch.setattr(scheduling_service.booking_service, "create_booking", flaky)

        result = await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "14:00", first.id)
        )
        assert len(calls) == 2
        assert result.barber.id == first.id

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_timeout_retries_are_bounded(self, scheduling_service, shop, tomorrow_date, monkeypatch):
        first, _, haircut, _ = shop
        calls = []

        async def always_busy(request):
            calls.append(request)
            raise BookingTimeout("busy")

        monkeypatch.setattr(scheduling_service.booking_service, "create_booking", always_busy)

        with pytest.raises(BookingTimeout):
            await scheduling_service.place_booking(
                BookingRequest(111, haircut.id, tomorrow_date, "14:00", first.id)
            )
        assert len(calls) == 3

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_conflict_is_not_retried(self, scheduling_service, shop, tomorrow_date, monkeypatch):
        first, _, haircut, _ = shop
        await scheduling_service.place_booking(
            BookingRequest(111, haircut.id, tomorrow_date, "14:00", first.id)
        )
        original = scheduling_service.booking_service.create_booking
        calls = []

        async def counting(request):
            calls.append(request)
            return await original(request)

        monkeypatch.setattr(scheduling_service.booking_service, "create_booking", counting)

        with pytest.raises(SlotConflict):
            await scheduling_service.place_booking(
                BookingRequest(222, haircut.id, tomorrow_date, "14:00", first.id)
            )
        assert len(calls) == 1


class TestBlockedSlots:
    """Блокировки слотов администратором"""

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_block_requires_admin(self, scheduling_service, shop, tomorrow_date, customer_caller):
        with pytest.raises(Unauthorized):
            await scheduling_service.block_slot(customer_caller(111), tomorrow_date, "14:00")

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_block_and_unblock(self, scheduling_service, shop, tomorrow_date, admin_caller, mock_bot):
        first, _, haircut, _ = shop

        assert await scheduling_service.block_slot(admin_caller, tomorrow_date, "14:00", first.id)
        assert not await scheduling_service.block_slot(admin_caller, tomorrow_date, "14:00", first.id)

        with pytest.raises(SlotConflict):
            await scheduling_service.place_booking(
                BookingRequest(111, haircut.id, tomorrow_date, "14:00", first.id)
            )
        entry = await scheduling_service.join_waitlist(111, haircut.id, tomorrow_date, "14:00", first.id)

        notified = await scheduling_service.unblock_slot(admin_caller, tomorrow_date, "14:00", first.id)

        assert [e.id for e in notified] == [entry.id]
        assert len(mock_bot.messages_to(111)) == 1

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_shop_wide_unblock_with_unpadded_input(
        self, scheduling_service, shop, early_month_dates, admin_caller
    ):
        first, second, haircut, _ = shop
        padded, short = early_month_dates

        assert await scheduling_service.block_slot(admin_caller, short, "9:30")
        assert not await scheduling_service.block_slot(admin_caller, padded, "09:30")
        slots = {s.time: s for s in await scheduling_service.get_availability(short, haircut.id)}
        assert slots["09:30"].status == SlotStatus.FULL

        first_entry = await scheduling_service.join_waitlist(111, haircut.id, short, "9:30", first.id)
        second_entry = await scheduling_service.join_waitlist(222, haircut.id, padded, "09:30", second.id)

        notified = await scheduling_service.unblock_slot(admin_caller, padded, "09:30")
        assert {e.id for e in notified} == {first_entry.id, second_entry.id}

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_unblock_not_blocked(self, scheduling_service, shop, tomorrow_date, admin_caller):
        with pytest.raises(NotFound):
            await scheduling_service.unblock_slot(admin_caller, tomorrow_date, "14:00")

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_block_validates_slot(self, scheduling_service, shop, tomorrow_date, admin_caller):
        with pytest.raises(OutOfHours):
            await scheduling_service.block_slot(admin_caller, tomorrow_date, "21:00")
        with pytest.raises(InvalidResource):
            await scheduling_service.block_slot(admin_caller, tomorrow_date, "14:00", 9999)


class TestAdministration:
    """Барберы и услуги"""

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_add_barber_and_service(self, scheduling_service, init_database, admin_caller, tomorrow_date):
        barber = await scheduling_service.add_barber(admin_caller, "Сергей")
        service = await scheduling_service.add_service(admin_caller, "Бритье", 45, price=900)

        assert [b.id for b in await scheduling_service.get_barbers()] == [barber.id]
        assert [s.id for s in await scheduling_service.get_services()] == [service.id]

        result = await scheduling_service.place_booking(
            BookingRequest(111, service.id, tomorrow_date, "10:00")
        )
        assert result.appointment.span == 2

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_admin_only(self, scheduling_service, init_database, customer_caller):
        with pytest.raises(Unauthorized):
            await scheduling_service.add_barber(customer_caller(111), "Сергей")
        with pytest.raises(Unauthorized):
            await scheduling_service.add_service(customer_caller(111), "Бритье", 45)

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_invalid_service_duration(self, scheduling_service, init_database, admin_caller):
        with pytest.raises(InvalidDuration):
            await scheduling_service.add_service(admin_caller, "Ноль", 0)

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_deactivated_barber_hidden_from_availability(
        self, scheduling_service, shop, tomorrow_date, admin_caller
    ):
        first, second, haircut, _ = shop
        await scheduling_service.set_barber_active(admin_caller, second.id, False)

        slots = await scheduling_service.get_availability(tomorrow_date, haircut.id)
        assert all(s.barber_ids == (first.id,) for s in slots)

        with pytest.raises(InvalidResource):
            await scheduling_service.set_barber_active(admin_caller, 9999, False)

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_working_hours_permissions(self, scheduling_service, shop, barber_caller, admin_caller):
        first, second, _, _ = shop
        hours = {"monday": WorkingDay(True, "10:00", "18:00")}

        updated = await scheduling_service.set_working_hours(barber_caller(first.id), first.id, hours)
        assert updated.working_hours["monday"].start == "10:00"

        with pytest.raises(Unauthorized):
            await scheduling_service.set_working_hours(barber_caller(first.id), second.id, hours)
        with pytest.raises(OutOfHours):
            await scheduling_service.set_working_hours(
                admin_caller, first.id, {"monday": WorkingDay(True, "18:00", "10:00")}
            )

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_deactivated_service_not_bookable(self, scheduling_service, shop, tomorrow_date, admin_caller):
        _, _, haircut, _ = shop

        assert await scheduling_service.deactivate_service(admin_caller, haircut.id)
        assert haircut.id not in [s.id for s in await scheduling_service.get_services()]

        with pytest.raises(InvalidService):
            await scheduling_service.place_booking(BookingRequest(111, haircut.id, tomorrow_date, "10:00"))

    @pytest.mark.asyncio
    @pytest.mark.unit
    async def test_day_overview(self, scheduling_service, shop, tomorrow_date):
        first, second, haircut, _ = shop
        await scheduling_service.place_booking(BookingRequest(111, haircut.id, tomorrow_date, "10:00", first.id))
        await scheduling_service.place_booking(BookingRequest(222, haircut.id, tomorrow_date, "11:00", first.id))
        await scheduling_service.place_booking(BookingRequest(333, haircut.id, tomorrow_date, "11:00", second.id))

        overview = {s.time: s for s in await scheduling_service.get_day_overview(tomorrow_date)}
        assert len(overview) == 22
        assert overview["09:00"].status == SlotStatus.OPEN
        assert overview["10:00"].status == SlotStatus.LIMITED
        assert overview["10:00"].free_barbers == (second.id,)
        assert overview["11:00"].status == SlotStatus.FULL
