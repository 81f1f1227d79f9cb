"""Конфигурация pytest и общие фикстуры для всех тестов

Этот файл содержит:
- Настройку тестовой среды (переменные окружения до импорта config)
- Mock объекты для aiogram (Bot, Message) и APScheduler
- Фикстуры для БД и сервисов
- Фабрики барберов и услуг
- Автоматическую очистку после тестов
"""

import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
from unittest.mock import AsyncMock, Mock

import aiosqlite
import pytest
from aiogram.exceptions import TelegramForbiddenError
from aiogram.types import Chat, Message, User

# Добавляем корневую папку в PYTHONPATH
sys.path.insert(0, str(Path(__file__).parent.parent))

# ============================================================================
# НАСТРОЙКА ТЕСТОВОЙ СРЕДЫ
# ============================================================================

# Настройка переменных окружения ДО импорта config
os.environ["DATABASE_PATH"] = "./test_barbershop.db"
os.environ["BOT_TOKEN"] = "1234567890:ABCdefGHIjklMNOpqrsTUVwxyz12345678"
os.environ["ADMIN_IDS"] = "12345"

# Теперь можно импортировать модули проекта
from config import ADMIN_IDS, DATABASE_PATH  # noqa: E402
from database.models import Barber, Caller, Role, Service, WorkingDay  # noqa: E402
from database.queries import Database  # noqa: E402
from database.repositories import BarberRepository, ServiceRepository  # noqa: E402
from services.booking_service import BookingService  # noqa: E402
from services.notification_service import NotificationService  # noqa: E402
from services.scheduling_service import SchedulingService  # noqa: E402
from services.slot_grid import SlotGrid  # noqa: E402
from utils.helpers import now_local  # noqa: E402

ADMIN_ID = ADMIN_IDS[0]
TABLES = ["appointments", "waiting_list", "blocked_slots", "barbers", "services", "audit_log"]


# ============================================================================
# ОЧИСТКА БД
# ============================================================================


@pytest.fixture(autouse=True)
async def cleanup_database():
    """Автоматическая очистка БД после каждого теста"""
    yield

    try:
        async with aiosqlite.connect(DATABASE_PATH) as db:
            for table in TABLES:
                await db.execute(f"DELETE FROM {table}")
            await db.commit()
    except aiosqlite.Error as e:
        print(f"Warning: Failed to cleanup test database: {e}")


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_db_on_exit():
    """Удаляем тестовую БД (и файлы WAL) после всех тестов"""
    yield

    for path in (DATABASE_PATH, f"{DATABASE_PATH}-wal", f"{DATABASE_PATH}-shm"):
        if os.path.exists(path):
            try:
                os.remove(path)
            except OSError as e:
                print(f"\n⚠️  Warning: Could not remove {path}: {e}")


@pytest.fixture
async def init_database():
    """Инициализация тестовой БД"""
    await Database.init_db()
    yield


# ============================================================================
# MOCK SCHEDULER
# ============================================================================


class MockScheduler:
    """Mock APScheduler для тестов"""

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.job_history: List[Dict[str, Any]] = []

    def add_job(self, func, trigger, args=None, kwargs=None, id=None, replace_existing=False, **trigger_args):
        """Мок add_job"""
        if id in self.jobs and not replace_existing:
            raise ValueError(f"Job {id} already exists")

        self.jobs[id] = {
            "func": func,
            "trigger": trigger,
            "args": args or [],
            "kwargs": kwargs or {},
            "trigger_args": trigger_args,
        }
        self.job_history.append({"action": "add", "id": id})
        return Mock()

    def get_job(self, job_id: str):
        return self.jobs.get(job_id)

    def shutdown(self, wait=True):
        self.jobs.clear()


@pytest.fixture
def mock_scheduler():
    """Фикстура mock scheduler"""
    return MockScheduler()


# ============================================================================
# MOCK BOT
# ============================================================================


class MockBot:
    """Mock Telegram Bot для тестов

    fail_for - получатели, для которых send_message падает как
    заблокированный пользователь.
    """

    def __init__(self):
        self.sent_messages: List[Dict[str, Any]] = []
        self.fail_for: Set[int] = set()
        self.session = Mock()
        self.session.close = AsyncMock()

    async def send_message(self, chat_id: int, text: str, reply_markup=None, **kwargs):
        """Мок send_message"""
        if chat_id in self.fail_for:
            raise TelegramForbiddenError(method=Mock(), message="Forbidden: bot was blocked by the user")

        self.sent_messages.append({"chat_id": chat_id, "text": text, "reply_markup": reply_markup, **kwargs})

        message = Mock(spec=Message)
        message.message_id = len(self.sent_messages)
        message.text = text
        return message

    def messages_to(self, chat_id: int) -> List[str]:
        return [m["text"] for m in self.sent_messages if m["chat_id"] == chat_id]

    def clear_history(self):
        self.sent_messages.clear()


@pytest.fixture
def mock_bot():
    """Фикстура mock bot"""
    return MockBot()


# ============================================================================
# MOCK AIOGRAM OBJECTS
# ============================================================================


@pytest.fixture
def mock_message():
    """Создание mock Message"""

    def _create_message(text: str = "/start", user_id: int = 111, username: str = "testuser") -> Message:
        message = Mock(spec=Message)
        message.text = text
        message.message_id = 1
        message.date = datetime.now()

        message.from_user = Mock(spec=User)
        message.from_user.id = user_id
        message.from_user.username = username
        message.chat = Mock(spec=Chat)
        message.chat.id = user_id

        message.answer = AsyncMock(return_value=Mock(spec=Message))
        return message

    return _create_message


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def grid():
    """Сетка по умолчанию: 09:00-20:00, слоты по 30 минут, воскресенье выходной"""
    return SlotGrid(slot_minutes=30, start_hour=9, end_hour=20, closed_weekdays=(6,), max_days_ahead=90)


@pytest.fixture
def notification_service(mock_bot):
    return NotificationService(mock_bot)


@pytest.fixture
def booking_service(grid, init_database):
    """Фикстура BookingService"""
    return BookingService(grid)


@pytest.fixture
def scheduling_service(grid, notification_service, init_database):
    """Фикстура SchedulingService"""
    return SchedulingService(notification_service, grid)


@pytest.fixture
def waitlist_service(scheduling_service):
    return scheduling_service.waitlist_service


# ============================================================================
# CALLERS
# ============================================================================


@pytest.fixture
def admin_caller():
    return Caller(ADMIN_ID, frozenset({Role.CUSTOMER, Role.ADMIN}))


@pytest.fixture
def customer_caller():
    """Фабрика клиентов"""

    def _create(user_id: int = 111) -> Caller:
        return Caller(user_id)

    return _create


@pytest.fixture
def barber_caller():
    """Фабрика барберов-пользователей"""

    def _create(barber_id: int, user_id: int = 555) -> Caller:
        return Caller(user_id, frozenset({Role.CUSTOMER, Role.BARBER}), barber_id)

    return _create


# ============================================================================
# HELPER FIXTURES
# ============================================================================


def next_open_day(days_ahead: int = 1, closed_weekdays=(6,)) -> str:
    """Ближайший рабочий день не раньше чем через days_ahead дней"""
    day = now_local().date() + timedelta(days=days_ahead)
    while day.weekday() in closed_weekdays:
        day += timedelta(days=1)
    return day.strftime("%Y-%m-%d")


def next_closed_day() -> str:
    day = now_local().date() + timedelta(days=1)
    while day.weekday() != 6:
        day += timedelta(days=1)
    return day.strftime("%Y-%m-%d")


@pytest.fixture
def tomorrow_date():
    """Ближайший рабочий день начиная с завтра (YYYY-MM-DD)"""
    return next_open_day(1)


@pytest.fixture
def next_week_date():
    return next_open_day(7)


@pytest.fixture
def yesterday_date():
    return (now_local() - timedelta(days=1)).strftime("%Y-%m-%d")


@pytest.fixture
def sunday_date():
    return next_closed_day()


# ============================================================================
# DATABASE HELPER FIXTURES
# ============================================================================


@pytest.fixture
def create_barber(init_database):
    """Создание барбера в БД"""

    async def _create(
        name: str = "Иван",
        user_id: Optional[int] = None,
        is_active: bool = True,
        working_hours: Optional[Dict[str, WorkingDay]] = None,
    ) -> Barber:
        barber = Barber(
            id=None, name=name, user_id=user_id, is_active=is_active, working_hours=working_hours or {}
        )
        barber.id = await BarberRepository.create_barber(barber)
        return barber

    return _create


@pytest.fixture
def create_service(init_database):
    """Создание услуги в БД"""

    async def _create(
        name: str = "Стрижка",
        duration_minutes: int = 30,
        price: float = 1500.0,
        category: str = "haircut",
        is_active: bool = True,
    ) -> Service:
        service = Service(
            id=None,
            name=name,
            duration_minutes=duration_minutes,
            price=price,
            category=category,
            is_active=is_active,
        )
        service.id = await ServiceRepository.create_service(service)
        return service

    return _create


@pytest.fixture
async def insert_appointment(init_database):
    """Прямая вставка записи в обход транзакции (для устаревших данных)"""

    async def _insert(
        date_str: str,
        time_str: str,
        service_id: int,
        barber_id: Optional[int] = None,
        span: int = 1,
        customer_id: int = 999,
        status: str = "pending",
    ) -> int:
        timestamp = now_local().isoformat()
        async with aiosqlite.connect(DATABASE_PATH) as db:
            cursor = await db.execute(
                """INSERT INTO appointments
                (customer_id, barber_id, service_id, date, time, span, duration_minutes,
                 status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (customer_id, barber_id, service_id, date_str, time_str, span, span * 30,
                 status, timestamp, timestamp),
            )
            await db.commit()
            return cursor.lastrowid

    return _insert


@pytest.fixture
def early_month_dates():
    """Рабочий день с числом 1-9 в двух записях: (2026-11-03, 2026-11-3)"""
    day = now_local().date() + timedelta(days=1)
    while day.day >= 10 or day.weekday() == 6:
        day += timedelta(days=1)
    return day.strftime("%Y-%m-%d"), f"{day.year}-{day.month}-{day.day}"
