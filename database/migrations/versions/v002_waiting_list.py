"""Лист ожидания"""

from database.migrations.migration_manager import Migration


class AddWaitingList(Migration):
    version = 2
    description = "Waiting list with one active entry per customer request"

    async def upgrade(self, db):
        await db.execute(
            """CREATE TABLE IF NOT EXISTS waiting_list
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            service_id INTEGER NOT NULL REFERENCES services(id),
            barber_id INTEGER REFERENCES barbers(id),
            date TEXT NOT NULL,
            time TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active'
                CHECK (status IN ('active', 'notified', 'expired', 'removed')),
            notified_at TEXT,
            created_at TEXT NOT NULL)"""
        )

        # Не больше одной активной заявки на (клиент, услуга, дата, время, барбер)
        await db.execute(
            """CREATE UNIQUE INDEX IF NOT EXISTS idx_waiting_list_active
            ON waiting_list(user_id, service_id, date, time, COALESCE(barber_id, 0))
            WHERE status = 'active'"""
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_waiting_list_slot "
            "ON waiting_list(date, time, status)"
        )

    async def downgrade(self, db):
        await db.execute("DROP TABLE IF EXISTS waiting_list")
