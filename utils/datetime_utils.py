"""Утилиты для работы с датами и временем"""

from datetime import date, datetime, timedelta
from typing import List


def parse_date(date_str: str) -> date:
    """Парсинг даты YYYY-MM-DD"""
    return datetime.strptime(date_str, "%Y-%m-%d").date()


def parse_time(time_str: str) -> int:
    """Время HH:MM -> минуты от полуночи"""
    parsed = datetime.strptime(time_str, "%H:%M")
    return parsed.hour * 60 + parsed.minute


def format_minutes(minutes: int) -> str:
    """Минуты от полуночи -> HH:MM"""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def get_month_dates(year: int, month: int) -> List[date]:
    """Все даты месяца"""
    first = date(year, month, 1)
    next_month = date(year + month // 12, month % 12 + 1, 1)
    return [first + timedelta(days=i) for i in range((next_month - first).days)]
