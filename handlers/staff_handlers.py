"""Команды барберов и админов: подтверждение, завершение, блокировки"""

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from handlers.scheduling_handlers import parse_id
from services.exceptions import SchedulingError
from services.scheduling_service import SchedulingService
from utils.helpers import format_date
from utils.i18n import error_text, t

router = Router()


async def _transition(message: Message, command: CommandObject, scheduling_service: SchedulingService, action: str):
    appointment_id = parse_id(command)
    if appointment_id is None:
        await message.answer(t("common.usage_id", command=action))
        return

    try:
        caller = await scheduling_service.resolve_caller(message.from_user.id)
        if action == "confirm":
            appointment = await scheduling_service.confirm_booking(appointment_id, caller)
            await message.answer(t("booking.confirmed", id=appointment.id))
        else:
            appointment = await scheduling_service.complete_booking(appointment_id, caller)
            await message.answer(t("booking.completed", id=appointment.id))
    except SchedulingError as e:
        await message.answer(error_text(e))


@router.message(Command("confirm"))
async def cmd_confirm(message: Message, command: CommandObject, scheduling_service: SchedulingService):
    await _transition(message, command, scheduling_service, "confirm")


@router.message(Command("complete"))
async def cmd_complete(message: Message, command: CommandObject, scheduling_service: SchedulingService):
    await _transition(message, command, scheduling_service, "complete")


def _parse_block_args(command: CommandObject):
    """ДАТА ВРЕМЯ [ID_барбера]"""
    args = (command.args or "").split()
    if len(args) not in (2, 3):
        return None
    try:
        barber_id = int(args[2]) if len(args) == 3 else None
    except ValueError:
        return None
    return args[0], args[1], barber_id


@router.message(Command("block"))
async def cmd_block(message: Message, command: CommandObject, scheduling_service: SchedulingService):
    """Закрыть слот для барбера или всего салона"""
    parsed = _parse_block_args(command)
    if not parsed:
        await message.answer(t("admin.block_usage", command="block"))
        return
    date_str, time_str, barber_id = parsed

    try:
        caller = await scheduling_service.resolve_caller(message.from_user.id)
        blocked = await scheduling_service.block_slot(caller, date_str, time_str, barber_id)
    except SchedulingError as e:
        await message.answer(error_text(e))
        return

    key = "admin.blocked" if blocked else "admin.already_blocked"
    await message.answer(t(key, date=format_date(date_str), time=time_str))


@router.message(Command("unblock"))
async def cmd_unblock(message: Message, command: CommandObject, scheduling_service: SchedulingService):
    """Открыть слот; ожидающие получат уведомление"""
    parsed = _parse_block_args(command)
    if not parsed:
        await message.answer(t("admin.block_usage", command="unblock"))
        return
    date_str, time_str, barber_id = parsed

    try:
        caller = await scheduling_service.resolve_caller(message.from_user.id)
        await scheduling_service.unblock_slot(caller, date_str, time_str, barber_id)
    except SchedulingError as e:
        if e.code == "not_found":
            await message.answer(t("admin.not_blocked", date=format_date(date_str), time=time_str))
        else:
            await message.answer(error_text(e))
        return
    await message.answer(t("admin.unblocked", date=format_date(date_str), time=time_str))
