"""
CLI для управления схемой базы салона

Использование:
    python migrate.py migrate        # Применить все миграции
    python migrate.py migrate 1      # Применить до версии 1
    python migrate.py rollback 1     # Откатить до версии 1
    python migrate.py current        # Показать текущую версию
"""

import asyncio
import logging
import sys

import aiosqlite

from database.queries import Database

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def print_usage():
    print(__doc__)
    sys.exit(1)


async def main():
    if len(sys.argv) < 2:
        print_usage()

    manager = Database.migration_manager()
    command = sys.argv[1].lower()

    try:
        if command == "migrate":
            target = int(sys.argv[2]) if len(sys.argv) > 2 else None
            version = await manager.migrate(target)
            print(f"\n✅ Migration completed! Current version: {version}")

        elif command == "rollback":
            if len(sys.argv) < 3:
                print("❌ rollback requires target version")
                print_usage()
            version = await manager.rollback(int(sys.argv[2]))
            print(f"\n✅ Rollback completed! Current version: {version}")

        elif command == "current":
            version = await manager.get_current_version()
            print(f"\n📊 Current database version: {version}")
            print(f"🎯 Latest available version: {manager.latest_version}")
            if version < manager.latest_version:
                print("\n⚠️  Database needs migration. Run: python migrate.py migrate")

        else:
            print(f"❌ Unknown command: {command}")
            print_usage()

    except (aiosqlite.Error, ValueError) as e:
        logging.error(f"❌ Migration failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
