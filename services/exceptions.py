"""Типизированные ошибки планирования

Каждая ошибка несет стабильный `code` - по нему вызывающая сторона
выбирает текст для пользователя (locales/*.json, раздел errors).
"""


class SchedulingError(Exception):
    """Базовая ошибка движка записи"""

    code = "scheduling_error"

    def __init__(self, message: str = "", **details):
        self.details = details
        super().__init__(message or self.code)


class InvalidDate(SchedulingError):
    """Дата в прошлом, выходной или за горизонтом записи"""

    code = "invalid_date"


class OutOfHours(SchedulingError):
    """Интервал выходит за рабочий день или не попадает в сетку"""

    code = "out_of_hours"


class InvalidDuration(SchedulingError):
    code = "invalid_duration"


class InvalidService(SchedulingError):
    """Услуга не существует, неактивна или не требует барбера"""

    code = "invalid_service"


class InvalidResource(SchedulingError):
    """Барбер не существует или неактивен"""

    code = "invalid_resource"


class SlotConflict(SchedulingError):
    """Конкретный барбер занят в это время"""

    code = "slot_conflict"


class FullyBooked(SchedulingError):
    """Нет ни одного свободного барбера в это время"""

    code = "fully_booked"


class InvalidTransition(SchedulingError):
    code = "invalid_transition"


class AlreadyWaiting(SchedulingError):
    code = "already_waiting"


class BookingTimeout(SchedulingError):
    """Не удалось дождаться точки сериализации"""

    code = "timeout"


class Unauthorized(SchedulingError):
    code = "unauthorized"


class NotFound(SchedulingError):
    code = "not_found"
