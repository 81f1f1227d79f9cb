"""Сервис уведомлений"""

import logging

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from config import ADMIN_IDS
from database.models import Appointment
from utils.helpers import format_date
from utils.i18n import t


class NotificationService:
    """Отправка сообщений через Telegram: send(recipient, text) -> accepted|failed"""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(self, recipient: int, text: str) -> bool:
        """Отправить сообщение. False - Telegram не принял сообщение."""
        try:
            await self.bot.send_message(recipient, text)
        except TelegramAPIError as e:
            logging.warning(f"Failed to deliver message to {recipient}: {e}")
            return False
        return True

    async def notify_admins(self, text: str) -> int:
        """Разослать всем админам, вернуть число доставленных"""
        delivered = 0
        for admin_id in ADMIN_IDS:
            if await self.send(admin_id, text):
                delivered += 1
        return delivered

    async def notify_admin_new_booking(self, appointment: Appointment, barber_name: str):
        """Уведомление админам о новой записи"""
        await self.notify_admins(
            t(
                "admin.new_booking",
                date=format_date(appointment.date),
                time=appointment.time,
                barber=barber_name,
                username=appointment.username or appointment.customer_id,
            )
        )

    async def notify_admin_cancellation(self, appointment: Appointment, barber_name: str):
        """Уведомление админам об отмене"""
        await self.notify_admins(
            t(
                "admin.cancellation",
                date=format_date(appointment.date),
                time=appointment.time,
                barber=barber_name,
                user_id=appointment.customer_id,
            )
        )
