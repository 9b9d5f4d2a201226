import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

LOGGER = logging.getLogger(__name__)

DATABASE_FILENAME = "app.db"
IMAGES_DIRNAME = "images"

LOCAL_STORAGE_SCHEMA = """
CREATE TABLE IF NOT EXISTS LOCAL_STORAGE (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at INTEGER
)
"""


def resolve_database_dir(db_dir: Optional[Path | str] = None) -> Path:
    """
    Return the storage directory, creating it and its images folder.

    `db_dir` wins over the DATABASE_DIR environment variable.

    Raises:
        RuntimeError: If neither is set, the path is a file, or it cannot be created.
    """
    raw = str(db_dir) if db_dir is not None else os.getenv("DATABASE_DIR")
    if raw is None or not raw.strip():
        raise RuntimeError(
            "DATABASE_DIR environment variable must be set to a writable "
            "directory path where the session store will be kept."
        )

    directory = Path(raw).expanduser()
    if directory.exists() and not directory.is_dir():
        raise RuntimeError(
            f"DATABASE_DIR={raw!r} points to a file, not a directory "
            f"({directory}). Please set DATABASE_DIR to a directory path."
        )
    try:
        (directory / IMAGES_DIRNAME).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(f"Failed to create or access database directory at {directory}") from exc
    return directory


class AsyncDatabaseInitializer:
    """
    Own the SQLite file that plays the part of browser local storage.

    - Database file: <DATABASE_DIR>/app.db, one LOCAL_STORAGE key/value table.
    - Generated images: <DATABASE_DIR>/images.
    - Rows are kept across restarts; `ensure_database()` only creates what is
      missing and is a no-op after its first success, so `connection()` may
      call it freely.
    """

    def __init__(self, db_dir: Optional[Path | str] = None) -> None:
        self.db_dir = resolve_database_dir(db_dir)
        self.db_path = self.db_dir / DATABASE_FILENAME
        self.images_dir = self.db_dir / IMAGES_DIRNAME
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def ensure_database(self) -> None:
        """
        Create the LOCAL_STORAGE table if absent and switch the file to WAL mode.

        Retries a few times when the file briefly disappears under a
        concurrent writer.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            for attempt in range(1, 4):
                try:
                    async with aiosqlite.connect(self.db_path) as db:
                        await db.execute("PRAGMA journal_mode=WAL")
                        await db.execute(LOCAL_STORAGE_SCHEMA)
                        await db.commit()
                    break
                except FileNotFoundError:
                    if attempt == 3:
                        raise
                    LOGGER.warning("Database file vanished during setup; retrying (%d)", attempt)
                    await asyncio.sleep(0.1 * attempt)
            self._initialized = True
            LOGGER.info("Local storage ready at %s", self.db_path)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield an `aiosqlite.Connection` to the storage file."""
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
