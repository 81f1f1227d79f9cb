"""Вспомогательные функции"""

from datetime import date, datetime

from config import ADMIN_IDS, TIMEZONE


def now_local() -> datetime:
    """Текущее время в таймзоне салона"""
    return datetime.now(TIMEZONE)


def today_local() -> date:
    """Текущая дата в таймзоне салона"""
    return now_local().date()


def is_admin(user_id: int) -> bool:
    """Проверка прав администратора"""
    return user_id in ADMIN_IDS


def format_date(date_str: str) -> str:
    """Дата для сообщений: 2024-05-17 -> 17.05.2024"""
    return datetime.strptime(date_str, "%Y-%m-%d").strftime("%d.%m.%Y")
