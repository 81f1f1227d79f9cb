"""Главный файл приложения"""

import asyncio
import logging

from aiogram import Bot, Dispatcher
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import BOT_TOKEN, TIMEZONE
from database.queries import Database
from handlers import scheduling_handlers, staff_handlers
from services.notification_service import NotificationService
from services.scheduling_service import SchedulingService

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


async def main():
    """Главная функция"""
    bot = Bot(token=BOT_TOKEN)
    dp = Dispatcher()

    scheduler = AsyncIOScheduler(
        timezone=TIMEZONE,
        job_defaults={"coalesce": True, "max_instances": 1},
    )

    await Database.init_db()

    # Сервисы
    notification_service = NotificationService(bot)
    scheduling_service = SchedulingService(notification_service)

    # Регистрация сервисов для dependency injection
    dp["scheduling_service"] = scheduling_service
    dp["notification_service"] = notification_service

    dp.include_router(staff_handlers.router)
    dp.include_router(scheduling_handlers.router)

    # Просрочка заявок листа ожидания
    scheduling_service.waitlist_service.schedule_expiry(scheduler)
    await scheduling_service.waitlist_service.expire_stale_entries()
    scheduler.start()

    logging.info("🚀 Bot started")

    try:
        await dp.start_polling(bot, skip_updates=True)
    finally:
        await bot.session.close()
        scheduler.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
