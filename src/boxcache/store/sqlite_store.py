"""
SQLite content store.

Stores response bodies as files under {cache_dir}/blobs/{sha256_hash} and
entry metadata in SQLite at {cache_dir}/store.db. Identical bodies cached
under different URLs or namespaces share one blob; a blob is deleted once no
entry references its hash.
"""

from __future__ import annotations

import hashlib
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Generator

import aiosqlite
import orjson

from boxcache.exceptions import ContentStoreError
from boxcache.logging import get_logger
from boxcache.retrieval.base import Fetcher
from boxcache.store.base import ContentStore, StoreHandle
from boxcache.types import CachedResponse

logger = get_logger(__name__)


@contextmanager
def _store_errors(namespace: str, operation: str) -> Generator[None, None, None]:
    """Re-raise backend failures as ContentStoreError."""
    try:
        yield
    except (aiosqlite.Error, OSError) as e:
        raise ContentStoreError(
            f"Content store {operation} failed: {e}",
            context={"namespace": namespace, "operation": operation},
        ) from e


class SQLiteStoreHandle(StoreHandle):
    """One namespace of a SQLiteContentStore."""

    def __init__(self, store: SQLiteContentStore, namespace: str) -> None:
        super().__init__(namespace, store.fetcher)
        self._store = store

    async def keys(self) -> list[str]:
        with _store_errors(self.namespace, "keys"):
            async with self._store.conn().execute(
                "SELECT url FROM entries WHERE namespace = ? ORDER BY rowid",
                (self.namespace,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [row["url"] for row in rows]

    async def match(self, url: str) -> CachedResponse | None:
        with _store_errors(self.namespace, "match"):
            async with self._store.conn().execute(
                "SELECT * FROM entries WHERE namespace = ? AND url = ?",
                (self.namespace, url),
            ) as cursor:
                row = await cursor.fetchone()

            if not row:
                return None

            blob_path = self._store.get_blob_path(row["content_hash"])
            if not blob_path.exists():
                logger.warning("Blob file missing", url=url, hash=row["content_hash"][:12])
                return None

            return CachedResponse(
                url=row["url"],
                status_code=row["status_code"],
                content=blob_path.read_bytes(),
                headers=orjson.loads(row["headers"]),
                content_type=row["content_type"],
                stored_at=datetime.fromisoformat(row["stored_at"]),
            )

    async def put_many(self, responses: list[CachedResponse]) -> None:
        if not responses:
            return

        db = self._store.conn()
        with _store_errors(self.namespace, "put"):
            rows = []
            for response in responses:
                content_hash = self._store.store_blob(response.content)
                rows.append((
                    self.namespace,
                    response.url,
                    response.status_code,
                    orjson.dumps(response.headers).decode("utf-8"),
                    response.content_type,
                    content_hash,
                    response.stored_at.isoformat(),
                ))

            replaced = await self._store.hashes_for(self.namespace, [r.url for r in responses])

            try:
                await db.executemany(
                    """
                    INSERT INTO entries (
                        namespace, url, status_code, headers, content_type,
                        content_hash, stored_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(namespace, url) DO UPDATE SET
                        status_code = excluded.status_code,
                        headers = excluded.headers,
                        content_type = excluded.content_type,
                        content_hash = excluded.content_hash,
                        stored_at = excluded.stored_at
                    """,
                    rows,
                )
                await db.commit()
            except aiosqlite.Error:
                await db.rollback()
                raise

            await self._store.collect_blobs(replaced)

        logger.debug("Stored entries", namespace=self.namespace, count=len(rows))

    async def delete(self, url: str) -> bool:
        db = self._store.conn()
        with _store_errors(self.namespace, "delete"):
            hashes = await self._store.hashes_for(self.namespace, [url])
            cursor = await db.execute(
                "DELETE FROM entries WHERE namespace = ? AND url = ?",
                (self.namespace, url),
            )
            await db.commit()
            await self._store.collect_blobs(hashes)
        return cursor.rowcount > 0


class SQLiteContentStore(ContentStore):
    """Content store persisted to SQLite plus a blob directory."""

    def __init__(self, cache_dir: str | Path, fetcher: Fetcher | None = None) -> None:
        """Initialize the content store.

        Args:
            cache_dir: Base directory for store.db and blobs/.
            fetcher: Fetcher used by StoreHandle.add_all.
        """
        self.cache_dir = Path(cache_dir)
        self.blobs_dir = self.cache_dir / "blobs"
        self.db_path = self.cache_dir / "store.db"
        self.fetcher = fetcher
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize the store - create directories and database schema."""
        if self._db is not None:
            return

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.blobs_dir.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS entries (
                namespace TEXT NOT NULL,
                url TEXT NOT NULL,
                status_code INTEGER NOT NULL,
                headers TEXT NOT NULL,
                content_type TEXT NOT NULL,
                content_hash TEXT NOT NULL,
                stored_at TEXT NOT NULL,
                PRIMARY KEY (namespace, url)
            )
        """)
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_entries_hash ON entries(content_hash)"
        )
        await self._db.commit()
        logger.info("Content store initialized", cache_dir=str(self.cache_dir))

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def conn(self) -> aiosqlite.Connection:
        """Get the open connection."""
        if not self._db:
            raise RuntimeError("SQLiteContentStore not initialized. Call init() first.")
        return self._db

    async def open(self, namespace: str) -> SQLiteStoreHandle:
        self.conn()
        return SQLiteStoreHandle(self, namespace)

    async def namespaces(self) -> list[str]:
        async with self.conn().execute(
            "SELECT DISTINCT namespace FROM entries ORDER BY namespace"
        ) as cursor:
            rows = await cursor.fetchall()
        return [row["namespace"] for row in rows]

    def get_blob_path(self, content_hash: str) -> Path:
        """Get the path for a blob file based on content hash.

        Uses first 2 chars as subdirectory for better filesystem performance.
        """
        return self.blobs_dir / content_hash[:2] / content_hash

    def store_blob(self, content: bytes) -> str:
        """Store blob content if not already present.

        Returns:
            SHA-256 hex digest of the content.
        """
        content_hash = hashlib.sha256(content).hexdigest()
        blob_path = self.get_blob_path(content_hash)

        if not blob_path.exists():
            blob_path.parent.mkdir(parents=True, exist_ok=True)
            blob_path.write_bytes(content)
            logger.debug("Stored blob", hash=content_hash[:12], size=len(content))

        return content_hash

    async def hashes_for(self, namespace: str, urls: list[str]) -> set[str]:
        """Get the content hashes currently stored for urls in namespace."""
        hashes: set[str] = set()
        # Stay below SQLite's bound-parameter limit
        for start in range(0, len(urls), 500):
            chunk = urls[start:start + 500]
            placeholders = ", ".join("?" for _ in chunk)
            async with self.conn().execute(
                f"SELECT content_hash FROM entries WHERE namespace = ? AND url IN ({placeholders})",
                (namespace, *chunk),
            ) as cursor:
                rows = await cursor.fetchall()
            hashes.update(row["content_hash"] for row in rows)
        return hashes

    async def collect_blobs(self, hashes: set[str]) -> int:
        """Delete blobs whose hash no entry references any more.

        Returns:
            Number of blob files deleted.
        """
        deleted = 0
        for content_hash in hashes:
            async with self.conn().execute(
                "SELECT 1 FROM entries WHERE content_hash = ? LIMIT 1", (content_hash,)
            ) as cursor:
                if await cursor.fetchone():
                    continue
            blob_path = self.get_blob_path(content_hash)
            if blob_path.exists():
                blob_path.unlink()
                deleted += 1
        return deleted
