"""Команды клиента: свободное время, запись, отмена, лист ожидания"""

import logging
from typing import List, Optional, Tuple

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from services.booking_service import BookingRequest
from services.exceptions import SchedulingError
from services.scheduling_service import SchedulingService
from utils.helpers import format_date
from utils.i18n import error_text, t

router = Router()


def parse_slot_args(
    command: CommandObject, with_time: bool
) -> Optional[Tuple[str, Optional[str], int, Optional[int]]]:
    """ДАТА [ВРЕМЯ] ID_услуги [ID_барбера] -> кортеж или None при ошибке формата"""
    args: List[str] = (command.args or "").split()
    required = 3 if with_time else 2
    if len(args) not in (required, required + 1):
        return None

    date_str = args[0]
    time_str = args[1] if with_time else None
    try:
        service_id = int(args[required - 1])
        barber_id = int(args[required]) if len(args) > required else None
    except ValueError:
        return None
    return date_str, time_str, service_id, barber_id


def parse_id(command: CommandObject) -> Optional[int]:
    try:
        return int((command.args or "").strip())
    except ValueError:
        return None


@router.message(Command("slots"))
async def cmd_slots(message: Message, command: CommandObject, scheduling_service: SchedulingService):
    """Свободное время на дату"""
    parsed = parse_slot_args(command, with_time=False)
    if not parsed:
        await message.answer(t("slots.usage"))
        return
    date_str, _, service_id, barber_id = parsed

    try:
        slots = await scheduling_service.get_availability(date_str, service_id, barber_id)
    except SchedulingError as e:
        await message.answer(error_text(e))
        return

    free = [slot.time for slot in slots if slot.is_free]
    if not free:
        await message.answer(t("slots.empty", date=format_date(date_str)))
        return
    await message.answer(t("slots.header", date=format_date(date_str)) + "\n" + " ".join(free))


@router.message(Command("book"))
async def cmd_book(message: Message, command: CommandObject, scheduling_service: SchedulingService):
    """Записаться к барберу или к любому свободному"""
    parsed = parse_slot_args(command, with_time=True)
    if not parsed:
        await message.answer(t("booking.usage"))
        return
    date_str, time_str, service_id, barber_id = parsed

    request = BookingRequest(
        customer_id=message.from_user.id,
        username=message.from_user.username,
        service_id=service_id,
        date=date_str,
        time=time_str,
        barber_id=barber_id,
    )
    try:
        result = await scheduling_service.place_booking(request)
    except SchedulingError as e:
        logging.info(f"Booking rejected for {message.from_user.id}: {e.code}")
        await message.answer(error_text(e))
        return

    appointment = result.appointment
    service = await scheduling_service.get_service(appointment.service_id)
    await message.answer(
        t(
            "booking.created",
            date=format_date(appointment.date),
            time=appointment.time,
            barber=result.barber.name,
            service=service.name,
            duration=service.get_duration_display(),
            id=appointment.id,
        )
    )


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, command: CommandObject, scheduling_service: SchedulingService):
    appointment_id = parse_id(command)
    if appointment_id is None:
        await message.answer(t("common.usage_id", command="cancel"))
        return

    try:
        caller = await scheduling_service.resolve_caller(message.from_user.id)
        result = await scheduling_service.cancel_booking(appointment_id, caller)
    except SchedulingError as e:
        await message.answer(error_text(e))
        return
    await message.answer(t("booking.cancelled", id=result.appointment.id))


@router.message(Command("wait"))
async def cmd_wait(message: Message, command: CommandObject, scheduling_service: SchedulingService):
    """Встать в лист ожидания"""
    parsed = parse_slot_args(command, with_time=True)
    if not parsed:
        await message.answer(t("waitlist.usage"))
        return
    date_str, time_str, service_id, barber_id = parsed

    try:
        entry = await scheduling_service.join_waitlist(
            message.from_user.id, service_id, date_str, time_str, barber_id
        )
    except SchedulingError as e:
        await message.answer(error_text(e))
        return
    await message.answer(t("waitlist.joined", date=format_date(entry.date), time=entry.time))


@router.message(Command("leave"))
async def cmd_leave(message: Message, command: CommandObject, scheduling_service: SchedulingService):
    entry_id = parse_id(command)
    if entry_id is None:
        await message.answer(t("common.usage_id", command="leave"))
        return

    try:
        caller = await scheduling_service.resolve_caller(message.from_user.id)
        await scheduling_service.leave_waitlist(entry_id, caller)
    except SchedulingError as e:
        await message.answer(error_text(e))
        return
    await message.answer(t("waitlist.left"))


@router.message(Command("my"))
async def cmd_my(message: Message, scheduling_service: SchedulingService):
    """Мои записи и заявки в листе ожидания"""
    appointments = await scheduling_service.my_appointments(message.from_user.id)
    entries = await scheduling_service.my_waitlist(message.from_user.id)

    lines = []
    if appointments:
        lines.append(t("booking.my_header"))
        for a in appointments:
            lines.append(
                t("booking.my_item", id=a.id, date=format_date(a.date), time=a.time, status=a.status.value)
            )
    else:
        lines.append(t("booking.my_empty"))

    if entries:
        lines.append("")
        lines.append(t("waitlist.my_header"))
        for entry in entries:
            lines.append(
                t(
                    "waitlist.my_item",
                    id=entry.id,
                    date=format_date(entry.date),
                    time=entry.time,
                    status=entry.status.value,
                )
            )

    await message.answer("\n".join(lines))
