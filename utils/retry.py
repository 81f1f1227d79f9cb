"""Утилиты для повторных попыток"""

import asyncio
import logging
from functools import wraps
from typing import Callable


def async_retry(
    max_attempts: int = 3,
    delay: float = 0.2,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,),
):
    """Декоратор для ограниченных повторов асинхронных функций

    Повторяются только исключения из `exceptions`, остальные
    пробрасываются сразу.

    Args:
        max_attempts: Максимальное количество попыток
        delay: Начальная задержка между попытками (секунды)
        backoff: Множитель для экспоненциальной задержки
        exceptions: Кортеж исключений, допускающих повтор
    """

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            current_delay = delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        logging.error(
                            f"{func.__name__} gave up after {max_attempts} attempts: {e}"
                        )
                        raise

                    logging.warning(
                        f"Attempt {attempt}/{max_attempts} of {func.__name__} failed: {e}. "
                        f"Retrying in {current_delay}s"
                    )
                    await asyncio.sleep(current_delay)
                    current_delay *= backoff

        return wrapper

    return decorator
