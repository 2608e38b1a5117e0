"""
Tests for the content stores.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from boxcache.exceptions import ContentStoreError, FetchError
from boxcache.store.memory import InMemoryContentStore
from boxcache.store.sqlite_store import SQLiteContentStore
from boxcache.types import CachedResponse

from conftest import StubFetcher

URL_A = "https://example.com/a"
URL_B = "https://example.com/b"


@pytest.fixture
async def sqlite_store(temp_dir: Path, fetcher: StubFetcher) -> SQLiteContentStore:
    """Create an initialized SQLite content store for testing."""
    store = SQLiteContentStore(temp_dir / "cache", fetcher)
    await store.init()
    yield store
    await store.close()


def blob_files(store: SQLiteContentStore) -> list[Path]:
    return [p for p in store.blobs_dir.rglob("*") if p.is_file()]


class TestSQLiteStoreBasics:
    """Test basic SQLite store operations."""

    @pytest.mark.asyncio
    async def test_put_and_match(self, sqlite_store: SQLiteContentStore) -> None:
        """Test storing and retrieving a response."""
        handle = await sqlite_store.open("ns")
        await handle.put(CachedResponse(
            url=URL_A,
            status_code=200,
            content=b"hello",
            headers={"content-type": "text/plain"},
            content_type="text/plain",
        ))

        entry = await handle.match(URL_A)
        assert entry is not None
        assert entry.content == b"hello"
        assert entry.headers == {"content-type": "text/plain"}
        assert entry.content_type == "text/plain"
        assert entry.stored_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_match_missing(self, sqlite_store: SQLiteContentStore) -> None:
        """Test that an unknown URL returns None."""
        handle = await sqlite_store.open("ns")
        assert await handle.match(URL_A) is None

    @pytest.mark.asyncio
    async def test_keys_in_insertion_order(self, sqlite_store: SQLiteContentStore) -> None:
        """Test that keys are listed in insertion order."""
        handle = await sqlite_store.open("ns")
        await handle.put(CachedResponse(url=URL_B, status_code=200, content=b"b"))
        await handle.put(CachedResponse(url=URL_A, status_code=200, content=b"a"))

        assert await handle.keys() == [URL_B, URL_A]

    @pytest.mark.asyncio
    async def test_put_replaces_entry(self, sqlite_store: SQLiteContentStore) -> None:
        """Test that storing a URL twice keeps one entry with the new body."""
        handle = await sqlite_store.open("ns")
        await handle.put(CachedResponse(url=URL_A, status_code=200, content=b"old"))
        await handle.put(CachedResponse(url=URL_A, status_code=200, content=b"new"))

        assert await handle.keys() == [URL_A]
        assert (await handle.match(URL_A)).content == b"new"
        assert len(blob_files(sqlite_store)) == 1

    @pytest.mark.asyncio
    async def test_delete(self, sqlite_store: SQLiteContentStore) -> None:
        """Test that delete reports whether an entry was removed."""
        handle = await sqlite_store.open("ns")
        await handle.put(CachedResponse(url=URL_A, status_code=200, content=b"a"))

        assert await handle.delete(URL_A) is True
        assert await handle.delete(URL_A) is False
        assert await handle.match(URL_A) is None
        assert blob_files(sqlite_store) == []

    @pytest.mark.asyncio
    async def test_missing_blob_is_a_miss(self, sqlite_store: SQLiteContentStore) -> None:
        """Test that an entry whose blob file vanished matches as None."""
        handle = await sqlite_store.open("ns")
        await handle.put(CachedResponse(url=URL_A, status_code=200, content=b"a"))
        for path in blob_files(sqlite_store):
            path.unlink()

        assert await handle.match(URL_A) is None

    @pytest.mark.asyncio
    async def test_persistence_across_instances(
        self, temp_dir: Path, fetcher: StubFetcher
    ) -> None:
        """Test that entries survive closing and reopening the store."""
        store = SQLiteContentStore(temp_dir / "persist", fetcher)
        await store.init()
        handle = await store.open("ns")
        await handle.put(CachedResponse(url=URL_A, status_code=200, content=b"kept"))
        await store.close()

        reopened = SQLiteContentStore(temp_dir / "persist", fetcher)
        await reopened.init()
        try:
            entry = await (await reopened.open("ns")).match(URL_A)
            assert entry is not None
            assert entry.content == b"kept"
        finally:
            await reopened.close()

    @pytest.mark.asyncio
    async def test_open_before_init(self, temp_dir: Path) -> None:
        """Test that using an uninitialized store fails loudly."""
        store = SQLiteContentStore(temp_dir / "cache")
        with pytest.raises(RuntimeError):
            await store.open("ns")


class TestSQLiteStoreNamespaces:
    """Test namespace isolation and blob sharing."""

    @pytest.mark.asyncio
    async def test_namespaces_are_isolated(self, sqlite_store: SQLiteContentStore) -> None:
        """Test that the same URL is independent across namespaces."""
        one = await sqlite_store.open("one")
        two = await sqlite_store.open("two")
        await one.put(CachedResponse(url=URL_A, status_code=200, content=b"a"))

        assert await two.match(URL_A) is None
        assert await two.delete(URL_A) is False
        assert await one.match(URL_A) is not None
        assert await sqlite_store.namespaces() == ["one"]

    @pytest.mark.asyncio
    async def test_shared_blob_survives_partial_delete(
        self, sqlite_store: SQLiteContentStore
    ) -> None:
        """Test that identical bodies share a blob until the last entry goes."""
        one = await sqlite_store.open("one")
        two = await sqlite_store.open("two")
        await one.put(CachedResponse(url=URL_A, status_code=200, content=b"same"))
        await two.put(CachedResponse(url=URL_B, status_code=200, content=b"same"))

        assert len(blob_files(sqlite_store)) == 1

        await one.delete(URL_A)
        assert (await two.match(URL_B)).content == b"same"
        assert len(blob_files(sqlite_store)) == 1

        await two.delete(URL_B)
        assert blob_files(sqlite_store) == []


class TestAddAll:
    """Test batch fetching into a namespace."""

    @pytest.mark.asyncio
    async def test_add_all_stores_every_url(
        self, sqlite_store: SQLiteContentStore, fetcher: StubFetcher
    ) -> None:
        """Test that add_all fetches and stores each URL."""
        handle = await sqlite_store.open("ns")
        await handle.add_all([URL_A, URL_B])

        assert await handle.keys() == [URL_A, URL_B]
        assert (await handle.match(URL_B)).text == f"data for {URL_B}"
        assert fetcher.batches == [[URL_A, URL_B]]

    @pytest.mark.asyncio
    async def test_add_all_is_atomic(
        self, sqlite_store: SQLiteContentStore, fetcher: StubFetcher
    ) -> None:
        """Test that one failing URL leaves the namespace untouched."""
        fetcher.failing = {URL_B}
        handle = await sqlite_store.open("ns")

        with pytest.raises(FetchError) as exc_info:
            await handle.add_all([URL_A, URL_B])

        assert exc_info.value.context["failed"] == [URL_B]
        assert await handle.keys() == []

    @pytest.mark.asyncio
    async def test_add_all_empty_skips_fetch(
        self, sqlite_store: SQLiteContentStore, fetcher: StubFetcher
    ) -> None:
        """Test that an empty batch does not call the fetcher."""
        handle = await sqlite_store.open("ns")
        await handle.add_all([])

        assert fetcher.batches == []

    @pytest.mark.asyncio
    async def test_add_all_without_fetcher(self) -> None:
        """Test that a store without a fetcher raises ContentStoreError."""
        handle = await InMemoryContentStore().open("ns")

        with pytest.raises(ContentStoreError):
            await handle.add_all([URL_A])


class TestInMemoryStore:
    """Test the in-memory content store."""

    @pytest.mark.asyncio
    async def test_basic_operations(self, content_store: InMemoryContentStore) -> None:
        """Test put, match, keys and delete."""
        handle = await content_store.open("ns")
        await handle.put(CachedResponse(url=URL_A, status_code=200, content=b"a"))

        assert await handle.keys() == [URL_A]
        assert (await handle.match(URL_A)).content == b"a"
        assert await handle.delete(URL_A) is True
        assert await handle.delete(URL_A) is False

    @pytest.mark.asyncio
    async def test_handles_share_state(self, content_store: InMemoryContentStore) -> None:
        """Test that two handles on one namespace see the same entries."""
        first = await content_store.open("ns")
        second = await content_store.open("ns")
        await first.put(CachedResponse(url=URL_A, status_code=200, content=b"a"))

        assert await second.keys() == [URL_A]
        assert await content_store.namespaces() == ["ns"]
