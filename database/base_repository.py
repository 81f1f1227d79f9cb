"""Базовый репозиторий с общими запросами"""

from typing import Any, Iterable, Optional

import aiosqlite

from database.queries import Database


class BaseRepository:
    """Общие хелперы: одно соединение на запрос"""

    @staticmethod
    async def _execute_query(
        query: str,
        params: Iterable[Any] = (),
        fetch_one: bool = False,
        fetch_all: bool = False,
        commit: bool = False,
    ) -> Optional[Any]:
        """Выполнить запрос

        Returns:
            строку (fetch_one), список строк (fetch_all),
            rowcount (commit) или lastrowid для INSERT
        """
        async with Database.connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, tuple(params))
            try:
                if fetch_one:
                    return await cursor.fetchone()
                if fetch_all:
                    return await cursor.fetchall()
                if commit:
                    await db.commit()
                    if query.lstrip().upper().startswith("INSERT"):
                        return cursor.lastrowid
                    return cursor.rowcount
                return None
            finally:
                await cursor.close()

    @staticmethod
    async def _count(table: str, where: str = "1=1", params: Iterable[Any] = ()) -> int:
        row = await BaseRepository._execute_query(
            f"SELECT COUNT(*) FROM {table} WHERE {where}", params, fetch_one=True
        )
        return row[0] if row else 0
