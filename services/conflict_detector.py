"""Проверка конфликтов размещения записи

Чистая логика без побочных эффектов: можно вызывать сколько угодно раз
для предпросмотра. Для "любого барбера" конкретный барбер не выбирается -
выбор делает транзакция записи.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from services.exceptions import FullyBooked, SlotConflict
from services.slot_grid import Occupancy, SlotGrid


class PlacementKind(str, Enum):
    AVAILABLE = "available"
    CONFLICT = "conflict"
    AVAILABLE_WITH = "available_with"
    FULLY_BOOKED = "fully_booked"


@dataclass(frozen=True)
class Placement:
    """Результат проверки: available / conflict(barber) / available_with(candidates) / fully_booked"""

    kind: PlacementKind
    barber_id: Optional[int] = None
    candidates: Tuple[int, ...] = ()

    @property
    def ok(self) -> bool:
        return self.kind in (PlacementKind.AVAILABLE, PlacementKind.AVAILABLE_WITH)

    def raise_for_failure(self, date_str: str, time_str: str):
        """Превратить неудачный результат в типизированную ошибку"""
        if self.kind == PlacementKind.CONFLICT:
            raise SlotConflict(
                f"Barber {self.barber_id} is taken at {date_str} {time_str}",
                barber_id=self.barber_id,
                date=date_str,
                time=time_str,
            )
        if self.kind == PlacementKind.FULLY_BOOKED:
            raise FullyBooked(
                f"No barber available at {date_str} {time_str}",
                date=date_str,
                time=time_str,
            )


class ConflictDetector:
    """Решает, можно ли разместить [start, start+span) на барбере или на любом"""

    def __init__(self, grid: SlotGrid):
        self.grid = grid

    def check(
        self,
        occupancy: Occupancy,
        start: int,
        span: int,
        barber_id: Optional[int] = None,
        active_barbers: Sequence[int] = (),
    ) -> Placement:
        """
        Args:
            occupancy: Снимок занятости от SlotGrid
            start: Индекс первого слота
            span: Число слотов
            barber_id: Конкретный барбер или None (любой)
            active_barbers: Кандидаты для "любого барбера"

        Raises:
            InvalidDuration: span <= 0
            OutOfHours: интервал выходит за рабочий день
        """
        self.grid.check_range(start, span)

        if barber_id is not None:
            if occupancy.is_free(barber_id, start, span):
                return Placement(PlacementKind.AVAILABLE, barber_id=barber_id)
            return Placement(PlacementKind.CONFLICT, barber_id=barber_id)

        candidates = tuple(b for b in active_barbers if occupancy.is_free(b, start, span))
        # Записи без барбера съедают часть свободных мест
        if len(candidates) <= occupancy.unassigned_load(start, span):
            return Placement(PlacementKind.FULLY_BOOKED)
        return Placement(PlacementKind.AVAILABLE_WITH, candidates=candidates)
