"""Подключение к базе данных и инициализация схемы"""

import logging

import aiosqlite

from config import BOOKING_LOCK_TIMEOUT, DATABASE_PATH
from database.migrations.migration_manager import MigrationManager
from database.migrations.versions import ALL_MIGRATIONS


class Database:
    """Точка входа для работы с SQLite"""

    @staticmethod
    def connect(timeout: float = BOOKING_LOCK_TIMEOUT) -> aiosqlite.Connection:
        """Новое соединение; timeout - ожидание блокировки файла БД"""
        return aiosqlite.connect(DATABASE_PATH, timeout=timeout)

    @staticmethod
    def migration_manager() -> MigrationManager:
        manager = MigrationManager(DATABASE_PATH)
        manager.register(*ALL_MIGRATIONS)
        return manager

    @staticmethod
    async def init_db() -> int:
        """Применить все миграции, вернуть версию схемы"""
        version = await Database.migration_manager().migrate()
        async with Database.connect() as db:
            # WAL: читатели не ждут пишущую транзакцию
            await db.execute("PRAGMA journal_mode=WAL")
            await db.commit()
        logging.info(f"Database initialized at schema version {version}")
        return version
