import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

logger = logging.getLogger(__name__)


class AsyncDatabaseInitializer:
    """
    Manage the async SQLite database that backs diagnosis history.

    - The database file is located at: <db_dir>/app.db, where db_dir is the
      constructor argument or the DATABASE_DIR environment variable.
    - A RuntimeError is raised if neither is set or the path is unusable;
      callers treat that as "store not configured".
    - `ensure_database()` creates the `diagnoses` and `diagnosis_details`
      tables if they are missing. Existing history is kept.
    """

    def __init__(self, db_dir: Optional[Path | str] = None) -> None:
        raw_dir = str(db_dir) if db_dir is not None else os.getenv("DATABASE_DIR")

        if raw_dir is None or not raw_dir.strip():
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite database file will be stored."
            )

        path = Path(raw_dir).expanduser()

        if path.exists() and not path.is_dir():
            raise RuntimeError(
                f"DATABASE_DIR={raw_dir!r} points to a file, not a directory "
                f"({path}). Please set DATABASE_DIR to a directory path."
            )

        try:
            path.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(f"Failed to create or access database directory at {path}") from exc

        self.db_dir = path
        self.db_path = self.db_dir / "app.db"
        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Create the schema on first use. Subsequent calls on the same instance are no-ops.
        """
        if self._initialized:
            return

        max_attempts = 3
        for attempt in range(1, max_attempts + 1):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute(
                        """
                        CREATE TABLE IF NOT EXISTS diagnoses (
                            id TEXT PRIMARY KEY,
                            created_at TEXT NOT NULL,
                            image_path TEXT NOT NULL,
                            is_healthy INTEGER NOT NULL,
                            disease_name TEXT,
                            confidence_score INTEGER NOT NULL,
                            plant_type TEXT NOT NULL,
                            description TEXT NOT NULL
                        )
                        """
                    )
                    await db.execute(
                        """
                        CREATE TABLE IF NOT EXISTS diagnosis_details (
                            id INTEGER PRIMARY KEY AUTOINCREMENT,
                            diagnosis_id TEXT NOT NULL UNIQUE
                                REFERENCES diagnoses(id) ON DELETE CASCADE,
                            symptoms TEXT NOT NULL DEFAULT '[]',
                            treatment_options TEXT NOT NULL DEFAULT '[]',
                            product_recommendations TEXT NOT NULL DEFAULT '[]',
                            feedback_helpful INTEGER,
                            feedback_comments TEXT
                        )
                        """
                    )
                    await db.execute(
                        "CREATE INDEX IF NOT EXISTS idx_diagnoses_created_at ON diagnoses(created_at)"
                    )
                    await db.commit()
                break
            except FileNotFoundError:
                # On some platforms a transient missing file error may occur; retry a few times.
                if attempt >= max_attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection` with foreign keys enabled.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=ON")
            yield conn
        finally:
            await conn.close()

    async def is_reachable(self) -> bool:
        """Return True if the database can be opened and queried."""
        try:
            async with self.connection() as conn:
                cur = await conn.execute("SELECT 1 FROM diagnoses LIMIT 1")
                await cur.fetchall()
            return True
        except (aiosqlite.Error, OSError) as exc:
            logger.error("Database not reachable at %s: %s", self.db_path, exc)
            return False
