"""Конфигурация приложения"""

import os

import pytz
from dotenv import load_dotenv

load_dotenv()

# Telegram
BOT_TOKEN = os.getenv("BOT_TOKEN")

# Админы (поддержка нескольких)
ADMIN_IDS_STR = os.getenv("ADMIN_IDS", "")
if not ADMIN_IDS_STR:
    raise ValueError("ADMIN_IDS not found in .env file")

ADMIN_IDS = [int(id.strip()) for id in ADMIN_IDS_STR.split(",") if id.strip()]

if not BOT_TOKEN:
    raise ValueError("BOT_TOKEN not found in .env file")
if not ADMIN_IDS:
    raise ValueError("No valid admin IDs provided")

# База данных
DATABASE_PATH = os.getenv("DATABASE_PATH", "barbershop.db")

# Сетка слотов
SLOT_MINUTES = int(os.getenv("SLOT_MINUTES", "30"))
WORK_HOURS_START = int(os.getenv("WORK_HOURS_START", "9"))
WORK_HOURS_END = int(os.getenv("WORK_HOURS_END", "20"))

# Выходные дни недели (0 = понедельник)
CLOSED_WEEKDAYS = tuple(
    int(day) for day in os.getenv("CLOSED_WEEKDAYS", "6").split(",") if day.strip()
)

# Настройки бронирования
BOOKING_MAX_DAYS_AHEAD = int(os.getenv("BOOKING_MAX_DAYS_AHEAD", "90"))
BOOKING_LOCK_TIMEOUT = float(os.getenv("BOOKING_LOCK_TIMEOUT", "5.0"))
BOOKING_RETRY_ATTEMPTS = 3
BOOKING_RETRY_DELAY = 0.2

# Категории услуг, которые не занимают барбера (напитки и т.п.)
NON_SCHEDULABLE_CATEGORIES = ("beverages",)

# Лист ожидания
WAITLIST_EXPIRY_INTERVAL_MINUTES = 60

# Временная зона
TIMEZONE = pytz.timezone(os.getenv("TIMEZONE", "Europe/Moscow"))

# Названия дней недели (ключи для working_hours)
WEEKDAY_KEYS = [
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
]
