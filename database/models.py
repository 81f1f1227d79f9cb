"""Модели данных"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Единственная точка проверки переходов статуса записи.
# completed и cancelled - терминальные состояния.
ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

# Статусы, которые занимают время барбера
ACTIVE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """Разрешен ли переход current -> target"""
    return target in ALLOWED_TRANSITIONS[current]


class WaitlistStatus(str, Enum):
    ACTIVE = "active"
    NOTIFIED = "notified"
    EXPIRED = "expired"
    REMOVED = "removed"


class SlotStatus(str, Enum):
    """Статус слота в сводке по салону"""

    OPEN = "open"  # свободны все барберы
    LIMITED = "limited"  # свободна часть барберов
    FULL = "full"  # свободных барберов нет
    CLOSED = "closed"  # выходной / нет активных барберов


class Role(str, Enum):
    CUSTOMER = "customer"
    BARBER = "barber"
    ADMIN = "admin"


@dataclass(frozen=True)
class Caller:
    """Кто вызывает операцию"""

    user_id: int
    roles: FrozenSet[Role] = frozenset({Role.CUSTOMER})
    barber_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles

    @property
    def is_barber(self) -> bool:
        return Role.BARBER in self.roles


@dataclass
class WorkingDay:
    """Рабочие часы барбера в конкретный день недели"""

    enabled: bool = True
    start: str = "09:00"
    end: str = "20:00"


@dataclass
class Barber:
    """Модель барбера (ресурса)"""

    id: Optional[int]
    name: str
    user_id: Optional[int] = None
    is_active: bool = True
    # monday..sunday -> WorkingDay; пустой словарь = часы салона
    working_hours: Dict[str, WorkingDay] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Service:
    """Модель услуги"""

    id: Optional[int]
    name: str
    duration_minutes: int
    price: float = 0.0
    category: str = "haircut"
    is_active: bool = True

    def get_duration_display(self) -> str:
        """Отображение длительности в читаемом формате"""
        hours = self.duration_minutes // 60
        minutes = self.duration_minutes % 60

        if hours and minutes:
            return f"{hours} ч {minutes} мин"
        elif hours:
            return f"{hours} ч"
        return f"{minutes} мин"


@dataclass
class Appointment:
    """Запись клиента к барберу"""

    id: Optional[int]
    customer_id: int
    service_id: int
    date: str
    time: str
    span: int
    duration_minutes: int
    barber_id: Optional[int] = None
    status: AppointmentStatus = AppointmentStatus.PENDING
    username: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status.value in ACTIVE_STATUSES


@dataclass
class WaitlistEntry:
    """Запись в листе ожидания"""

    id: Optional[int]
    user_id: int
    service_id: int
    date: str
    time: str
    barber_id: Optional[int] = None  # None = любой барбер
    status: WaitlistStatus = WaitlistStatus.ACTIVE
    notified_at: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class BlockedSlot:
    """Слот, закрытый администратором"""

    id: Optional[int]
    date: str
    time: str
    barber_id: Optional[int] = None  # None = весь салон
    reason: Optional[str] = None
    blocked_by: Optional[int] = None
    blocked_at: Optional[datetime] = None
