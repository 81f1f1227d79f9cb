"""Сетка слотов рабочего дня

Рабочий день разбивается на слоты фиксированной ширины (SLOT_MINUTES).
Занятость считается на лету из записей, блокировок и рабочих часов
барберов - сетка ничего не хранит и ничего не пишет.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from config import (
    BOOKING_MAX_DAYS_AHEAD,
    CLOSED_WEEKDAYS,
    SLOT_MINUTES,
    WEEKDAY_KEYS,
    WORK_HOURS_END,
    WORK_HOURS_START,
)
from database.models import Barber, SlotStatus
from database.repositories import (
    AppointmentRepository,
    BarberRepository,
    BlockedSlotRepository,
)
from services.exceptions import InvalidDate, InvalidDuration, OutOfHours
from utils.datetime_utils import format_minutes, parse_date, parse_time
from utils.helpers import now_local

# (barber_id, time, span); barber_id=None - запись без барбера
BookingRow = Tuple[Optional[int], str, int]
# (barber_id, time); barber_id=None - блокировка всего салона
BlockedRow = Tuple[Optional[int], str]


@dataclass
class Occupancy:
    """Снимок занятости на дату: барбер -> занятые индексы слотов"""

    date: str
    by_barber: Dict[int, Set[int]] = field(default_factory=dict)
    # индекс слота -> сколько записей без барбера его занимают
    unassigned: Counter = field(default_factory=Counter)

    def occupied(self, barber_id: int) -> Set[int]:
        return self.by_barber.get(barber_id, set())

    def is_free(self, barber_id: int, start: int, span: int) -> bool:
        return self.occupied(barber_id).isdisjoint(range(start, start + span))

    def unassigned_load(self, start: int, span: int) -> int:
        """Максимум записей без барбера на любом слоте интервала"""
        return max((self.unassigned[i] for i in range(start, start + span)), default=0)


@dataclass(frozen=True)
class SlotState:
    """Состояние слота в сводке по салону"""

    index: int
    time: str
    status: SlotStatus
    free_barbers: Tuple[int, ...] = ()


class SlotGrid:
    """Дискретизация дня и вычисление занятости"""

    def __init__(
        self,
        slot_minutes: int = SLOT_MINUTES,
        start_hour: int = WORK_HOURS_START,
        end_hour: int = WORK_HOURS_END,
        closed_weekdays: Sequence[int] = CLOSED_WEEKDAYS,
        max_days_ahead: int = BOOKING_MAX_DAYS_AHEAD,
    ):
        if slot_minutes <= 0 or end_hour <= start_hour:
            raise ValueError("Invalid slot grid configuration")
        self.slot_minutes = slot_minutes
        self.open_minute = start_hour * 60
        self.close_minute = end_hour * 60
        self.closed_weekdays = frozenset(closed_weekdays)
        self.max_days_ahead = max_days_ahead
        self.slot_count = (self.close_minute - self.open_minute) // slot_minutes

    # === ГЕОМЕТРИЯ СЕТКИ ===

    def times(self) -> List[str]:
        """Начала всех слотов дня: 09:00, 09:30, ..."""
        return [self.time_of(i) for i in range(self.slot_count)]

    def time_of(self, index: int) -> str:
        return format_minutes(self.open_minute + index * self.slot_minutes)

    def index_of(self, time_str: str) -> int:
        """HH:MM -> индекс слота; время вне сетки - OutOfHours"""
        try:
            minutes = parse_time(time_str)
        except (TypeError, ValueError):
            raise OutOfHours(f"Bad time {time_str!r}", time=time_str) from None

        index, remainder = divmod(minutes - self.open_minute, self.slot_minutes)
        if index < 0 or remainder or index >= self.slot_count:
            raise OutOfHours(f"{time_str} is not a slot start", time=time_str)
        return index

    def span_for(self, duration_minutes: int) -> int:
        """Длительность услуги -> число слотов (с округлением вверх)"""
        if duration_minutes is None or duration_minutes <= 0:
            raise InvalidDuration(f"Duration must be positive, got {duration_minutes}")
        return math.ceil(duration_minutes / self.slot_minutes)

    def check_range(self, start: int, span: int) -> range:
        """Индексы [start, start+span), не выходящие за рабочий день"""
        if span <= 0:
            raise InvalidDuration(f"Span must be positive, got {span}")
        if start < 0 or start + span > self.slot_count:
            raise OutOfHours(
                f"Slots {start}..{start + span} run past the end of the day",
                time=self.time_of(start) if start >= 0 else None,
            )
        return range(start, start + span)

    def expand(self, time_str: str, span: int) -> Set[int]:
        """Индексы, которые занимает запись; части вне сетки отбрасываются"""
        offset = parse_time(time_str) - self.open_minute
        first = offset // self.slot_minutes
        return {i for i in range(first, first + span) if 0 <= i < self.slot_count}

    # === ДАТЫ ===

    def is_open_day(self, day: date) -> bool:
        return day.weekday() not in self.closed_weekdays

    def validate_date(self, date_str: str, today: Optional[date] = None) -> date:
        """Дата доступна для записи: не в прошлом, не выходной, в пределах горизонта"""
        try:
            day = parse_date(date_str)
        except (TypeError, ValueError):
            raise InvalidDate(f"Bad date {date_str!r}", date=date_str) from None

        today = today or now_local().date()
        if day < today:
            raise InvalidDate(f"{date_str} is in the past", date=date_str)
        if not self.is_open_day(day):
            raise InvalidDate(f"{date_str} is a day off", date=date_str)
        if (day - today).days > self.max_days_ahead:
            raise InvalidDate(f"{date_str} is beyond the booking horizon", date=date_str)
        return day

    def canonical_date(self, date_str: str) -> str:
        """Проверенная дата в виде YYYY-MM-DD"""
        return self.validate_date(date_str).strftime("%Y-%m-%d")

    def canonical_slot(self, date_str: str, time_str: str) -> Tuple[str, str, int]:
        """Проверить дату и время слота: (YYYY-MM-DD, HH:MM, индекс)

        В БД, ключах блокировок и выборках используется только эта форма:
        2026-11-3 9:00 превращается в 2026-11-03 09:00.
        """
        date_str = self.canonical_date(date_str)
        start = self.index_of(time_str)
        return date_str, self.time_of(start), start

    def first_bookable_index(self, day: date, now: Optional[datetime] = None) -> int:
        """Для сегодняшней даты - первый слот, который еще не начался"""
        now = now or now_local()
        if day != now.date():
            return 0
        minutes_now = now.hour * 60 + now.minute
        passed = minutes_now - self.open_minute
        if passed < 0:
            return 0
        return min(passed // self.slot_minutes + 1, self.slot_count)

    def ensure_not_started(self, date_str: str, start: int, now: Optional[datetime] = None):
        if start < self.first_bookable_index(parse_date(date_str), now):
            raise InvalidDate(
                f"Slot {self.time_of(start)} on {date_str} has already started",
                date=date_str,
            )

    # === ЗАНЯТОСТЬ ===

    def off_hours(self, barber: Barber, day: date) -> Set[int]:
        """Слоты вне рабочих часов барбера"""
        hours = barber.working_hours.get(WEEKDAY_KEYS[day.weekday()])
        if hours is None:
            return set()
        if not hours.enabled:
            return set(range(self.slot_count))

        start, end = parse_time(hours.start), parse_time(hours.end)
        off = set()
        for i in range(self.slot_count):
            slot_start = self.open_minute + i * self.slot_minutes
            if slot_start < start or slot_start + self.slot_minutes > end:
                off.add(i)
        return off

    def build_occupancy(
        self,
        date_str: str,
        barbers: Iterable[Barber],
        bookings: Iterable[BookingRow],
        blocked: Iterable[BlockedRow] = (),
    ) -> Occupancy:
        """Собрать занятость из уже прочитанных данных (без I/O)"""
        day = parse_date(date_str)
        barbers = list(barbers)
        occupancy = Occupancy(
            date=date_str, by_barber={b.id: self.off_hours(b, day) for b in barbers}
        )

        for barber_id, time_str, span in bookings:
            indices = self.expand(time_str, span)
            if barber_id is None:
                occupancy.unassigned.update(indices)
            elif barber_id in occupancy.by_barber:
                occupancy.by_barber[barber_id] |= indices

        for barber_id, time_str in blocked:
            indices = self.expand(time_str, 1)
            for owner_id, occupied in occupancy.by_barber.items():
                if barber_id is None or barber_id == owner_id:
                    occupied |= indices

        return occupancy

    async def load_occupancy(self, date_str: str, barbers: Sequence[Barber]) -> Occupancy:
        """occupancy(date, resourceSet): прочитать записи и блокировки за день"""
        appointments = await AppointmentRepository.get_active_for_day(date_str)
        blocked = await BlockedSlotRepository.get_blocked_slots(date_str)
        return self.build_occupancy(
            date_str,
            barbers,
            [(a.barber_id, a.time, a.span) for a in appointments],
            [(b.barber_id, b.time) for b in blocked],
        )

    def aggregate(self, occupancy: Occupancy, barber_ids: Sequence[int]) -> List[SlotState]:
        """Сводка по салону: open / limited / full для каждого слота"""
        states = []
        for i in range(self.slot_count):
            free = tuple(b for b in barber_ids if i not in occupancy.occupied(b))
            capacity = len(free) - occupancy.unassigned[i]

            if not barber_ids:
                status = SlotStatus.CLOSED
            elif capacity <= 0:
                status = SlotStatus.FULL
            elif capacity == len(barber_ids):
                status = SlotStatus.OPEN
            else:
                status = SlotStatus.LIMITED
            states.append(SlotState(i, self.time_of(i), status, free if capacity > 0 else ()))
        return states

    async def day_overview(self, date_str: str) -> List[SlotState]:
        """aggregate(date): сводка по всем активным барберам"""
        date_str = self.canonical_date(date_str)
        barbers = await BarberRepository.get_barbers(active_only=True)
        occupancy = await self.load_occupancy(date_str, barbers)
        return self.aggregate(occupancy, [b.id for b in barbers])
