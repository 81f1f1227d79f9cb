"""Именованные блокировки для сериализации записи"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Hashable, Optional

from services.exceptions import BookingTimeout


class KeyedLock:
    """Отдельный asyncio.Lock на каждый ключ, например (дата, барбер)

    Записи с разными ключами не ждут друг друга. Неиспользуемые
    блокировки удаляются, чтобы реестр не рос бесконечно.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable, timeout: Optional[float] = None):
        """Захватить блокировку ключа или упасть с BookingTimeout"""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(
                    lock.acquire(), timeout if timeout is not None else self.timeout
                )
            except asyncio.TimeoutError:
                logging.warning(f"Timed out waiting for lock {key}")
                raise BookingTimeout(f"lock {key} is busy", key=key) from None

            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
