"""Менеджер миграций базы данных"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Type

import aiosqlite


class Migration(ABC):
    """Базовый класс для миграций"""

    version: int
    description: str

    @abstractmethod
    async def upgrade(self, db: aiosqlite.Connection):
        """Применить миграцию"""

    @abstractmethod
    async def downgrade(self, db: aiosqlite.Connection):
        """Откатить миграцию"""


class MigrationManager:
    """Версионирование схемы: таблица schema_migrations + upgrade/downgrade"""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.migrations: List[Type[Migration]] = []

    def register(self, *migration_classes: Type[Migration]):
        """Регистрация миграций (порядок - по версии)"""
        self.migrations.extend(migration_classes)
        self.migrations.sort(key=lambda m: m.version)

    @property
    def latest_version(self) -> int:
        return self.migrations[-1].version if self.migrations else 0

    async def init_migrations_table(self):
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """CREATE TABLE IF NOT EXISTS schema_migrations
                (version INTEGER PRIMARY KEY,
                 description TEXT,
                 applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"""
            )
            await db.commit()

    async def get_current_version(self) -> int:
        """Текущая версия схемы (0 - пустая БД)"""
        await self.init_migrations_table()
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT MAX(version) FROM schema_migrations") as cursor:
                result = await cursor.fetchone()
                return result[0] if result and result[0] else 0

    async def migrate(self, target_version: Optional[int] = None) -> int:
        """Применить миграции до target_version, вернуть итоговую версию"""
        current = await self.get_current_version()
        target = target_version if target_version is not None else self.latest_version

        if current >= target:
            logging.info(f"Database already at version {current}")
            return current

        pending = [m for m in self.migrations if current < m.version <= target]
        await self._apply(pending, upgrade=True)
        return pending[-1].version if pending else current

    async def rollback(self, target_version: int) -> int:
        """Откатить миграции до target_version"""
        current = await self.get_current_version()

        if current <= target_version:
            logging.info("Nothing to rollback")
            return current

        applied = [
            m for m in reversed(self.migrations) if target_version < m.version <= current
        ]
        await self._apply(applied, upgrade=False)
        return target_version

    async def _apply(self, migration_classes: Iterable[Type[Migration]], upgrade: bool):
        """Каждая миграция - отдельная транзакция"""
        async with aiosqlite.connect(self.db_path) as db:
            for migration_class in migration_classes:
                migration = migration_class()
                action = "Applying" if upgrade else "Rolling back"
                logging.info(f"{action} migration {migration.version}: {migration.description}")

                try:
                    await db.execute("BEGIN")
                    if upgrade:
                        await migration.upgrade(db)
                        await db.execute(
                            "INSERT INTO schema_migrations (version, description) VALUES (?, ?)",
                            (migration.version, migration.description),
                        )
                    else:
                        await migration.downgrade(db)
                        await db.execute(
                            "DELETE FROM schema_migrations WHERE version=?",
                            (migration.version,),
                        )
                    await db.commit()
                    logging.info(f"✅ Migration {migration.version} done")
                except aiosqlite.Error as e:
                    await db.rollback()
                    logging.error(f"❌ Migration {migration.version} failed: {e}")
                    raise
