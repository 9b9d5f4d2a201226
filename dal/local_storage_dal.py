"""Async Data Access Layer for the LOCAL_STORAGE table.

Provides `LocalStorageDAL`, a key/value store with the same shape as
browser `localStorage` (string keys, string values), built on
`utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import time
from typing import Optional

from utils.database_init import AsyncDatabaseInitializer


class LocalStorageDAL:
    """Data access layer for LOCAL_STORAGE rows.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def get_item(self, key: str) -> Optional[str]:
        """Return the stored value for `key`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT value FROM LOCAL_STORAGE WHERE key = ?", (key,))
            row = await cur.fetchone()
            return row[0] if row else None

    async def set_item(self, key: str, value: str) -> None:
        """Insert or overwrite the value stored under `key`."""
        async with self._db.connection() as conn:
            await conn.execute(
                """
                INSERT INTO LOCAL_STORAGE (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, int(time.time())),
            )
            await conn.commit()

