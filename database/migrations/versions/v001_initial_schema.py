"""Начальная схема: барберы, услуги, записи, блокировки, аудит"""

from database.migrations.migration_manager import Migration


class InitialSchema(Migration):
    version = 1
    description = "Barbers, services, appointments, blocked slots and audit log"

    async def upgrade(self, db):
        await db.execute(
            """CREATE TABLE IF NOT EXISTS barbers
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            user_id INTEGER UNIQUE,
            is_active BOOLEAN NOT NULL DEFAULT 1,
            working_hours TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT)"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS services
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            category TEXT NOT NULL DEFAULT 'haircut',
            duration_minutes INTEGER NOT NULL,
            price REAL NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT 1)"""
        )

        # barber_id NULL - старая запись без барбера, новые всегда с барбером
        await db.execute(
            """CREATE TABLE IF NOT EXISTS appointments
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            customer_id INTEGER NOT NULL,
            username TEXT,
            barber_id INTEGER REFERENCES barbers(id),
            service_id INTEGER NOT NULL REFERENCES services(id),
            date TEXT NOT NULL,
            time TEXT NOT NULL,
            span INTEGER NOT NULL CHECK (span > 0),
            duration_minutes INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'confirmed', 'completed', 'cancelled')),
            notes TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL)"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS blocked_slots
            (id INTEGER PRIMARY KEY AUTOINCREMENT,
            date TEXT NOT NULL,
            time TEXT NOT NULL,
            barber_id INTEGER REFERENCES barbers(id),
            reason TEXT,
            blocked_by INTEGER NOT NULL,
            blocked_at TEXT NOT NULL)"""
        )

        await db.execute(
            """CREATE TABLE IF NOT EXISTS audit_log
            (user_id INTEGER, event TEXT, data TEXT, timestamp TEXT)"""
        )

        # Индексы
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_appointments_day "
            "ON appointments(date, barber_id, status)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_appointments_customer "
            "ON appointments(customer_id)"
        )
        await db.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_blocked_unique "
            "ON blocked_slots(date, time, COALESCE(barber_id, 0))"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_audit_user ON audit_log(user_id, event)"
        )

    async def downgrade(self, db):
        await db.execute("DROP TABLE IF EXISTS audit_log")
        await db.execute("DROP TABLE IF EXISTS blocked_slots")
        await db.execute("DROP TABLE IF EXISTS appointments")
        await db.execute("DROP TABLE IF EXISTS services")
        await db.execute("DROP TABLE IF EXISTS barbers")
