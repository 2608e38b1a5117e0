"""
SQLite ledger.

Durable key/value ledger backed by aiosqlite. Values are JSON encoded with
orjson and stored in a single table:

    ledger(key TEXT PRIMARY KEY, value TEXT NOT NULL, updated_at TEXT NOT NULL)

Every write commits immediately, so a record written before a crash is never
lost.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

import aiosqlite
import orjson

from boxcache.exceptions import LedgerError
from boxcache.ledger.base import Ledger
from boxcache.logging import get_logger
from boxcache.types import utc_now

logger = get_logger(__name__)


@contextmanager
def _ledger_errors(key: str, operation: str) -> Generator[None, None, None]:
    """Re-raise database failures as LedgerError."""
    try:
        yield
    except aiosqlite.Error as e:
        raise LedgerError(
            f"Ledger {operation} failed: {e}",
            context={"key": key, "operation": operation},
        ) from e


class SQLiteLedger(Ledger):
    """Ledger persisted to a SQLite database file."""

    def __init__(self, db_path: str | Path) -> None:
        """Initialize the ledger.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the database and create the schema."""
        if self._db is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS ledger (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await self._db.commit()
        logger.debug("Ledger opened", db_path=str(self.db_path))

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("SQLiteLedger not connected. Call connect() first.")
        return self._db

    async def get(self, key: str) -> Any | None:
        with _ledger_errors(key, "get"):
            async with self._conn().execute(
                "SELECT value FROM ledger WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()

        if not row:
            return None

        try:
            return orjson.loads(row["value"])
        except orjson.JSONDecodeError as e:
            raise LedgerError("Corrupt ledger value", context={"key": key}) from e

    async def set(self, key: str, value: Any) -> None:
        db = self._conn()
        encoded = self._encode(key, value)
        with _ledger_errors(key, "set"):
            await db.execute(
                """
                INSERT INTO ledger (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, encoded, utc_now().isoformat()),
            )
            await db.commit()

    async def remove(self, key: str) -> bool:
        db = self._conn()
        with _ledger_errors(key, "remove"):
            cursor = await db.execute("DELETE FROM ledger WHERE key = ?", (key,))
            await db.commit()
        return cursor.rowcount > 0

    async def init(self, key: str, value: Any) -> bool:
        db = self._conn()
        encoded = self._encode(key, value)
        with _ledger_errors(key, "init"):
            cursor = await db.execute(
                "INSERT OR IGNORE INTO ledger (key, value, updated_at) VALUES (?, ?, ?)",
                (key, encoded, utc_now().isoformat()),
            )
            await db.commit()
        return cursor.rowcount > 0

    async def keys(self) -> list[str]:
        """List stored keys in key order."""
        async with self._conn().execute("SELECT key FROM ledger ORDER BY key") as cursor:
            rows = await cursor.fetchall()
        return [row["key"] for row in rows]

    @staticmethod
    def _encode(key: str, value: Any) -> str:
        try:
            return orjson.dumps(value).decode("utf-8")
        except TypeError as e:
            raise LedgerError("Value is not JSON serializable", context={"key": key}) from e
