"""
Pytest configuration and fixtures for box cache tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator, Generator
from unittest.mock import patch

import pytest

from boxcache.config import Settings, clear_settings_cache
from boxcache.coordinator import CacheCoordinator
from boxcache.exceptions import FetchError
from boxcache.ledger.memory import InMemoryLedger
from boxcache.retrieval.base import Fetcher
from boxcache.store.memory import InMemoryContentStore
from boxcache.types import CachedResponse


class StubFetcher(Fetcher):
    """Fetcher that fabricates responses without touching the network.

    URLs listed in `failing` raise FetchError, which fails the whole batch.
    """

    def __init__(self) -> None:
        self.failing: set[str] = set()
        self.batches: list[list[str]] = []

    async def fetch(self, url: str) -> CachedResponse:
        if url in self.failing:
            raise FetchError(f"Stub failure for {url}", context={"url": url})
        return CachedResponse(
            url=url,
            status_code=200,
            content=f"data for {url}".encode(),
            headers={"content-type": "text/plain"},
            content_type="text/plain",
        )

    async def fetch_all(self, urls: list[str]) -> list[CachedResponse]:
        self.batches.append(list(urls))
        failed = [url for url in urls if url in self.failing]
        if failed:
            raise FetchError("Stub batch failure", context={"failed": failed})
        return [await self.fetch(url) for url in urls]

    @property
    def fetched(self) -> list[str]:
        """Every URL requested so far, across batches."""
        return [url for batch in self.batches for url in batch]


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "BOXCACHE_CACHE_DIR": str(temp_dir / "cache"),
        "BOXCACHE_DEFAULT_BOX_NAME": "test_box",
        "BOXCACHE_REGISTRY_KEY": "test_registry",
        "BOXCACHE_FETCH_MAX_RETRIES": "1",
        "BOXCACHE_FETCH_BACKOFF_SECONDS": "0",
        "BOXCACHE_LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration."""
    from boxcache.config import get_settings

    settings = get_settings()
    settings.ensure_directories()
    yield settings
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def fetcher() -> StubFetcher:
    """Provide a stub fetcher."""
    return StubFetcher()


@pytest.fixture
def ledger() -> InMemoryLedger:
    """Provide an empty in-memory ledger."""
    return InMemoryLedger()


@pytest.fixture
def content_store(fetcher: StubFetcher) -> InMemoryContentStore:
    """Provide an in-memory content store using the stub fetcher."""
    return InMemoryContentStore(fetcher)


@pytest.fixture
async def coordinator(
    ledger: InMemoryLedger,
    content_store: InMemoryContentStore,
) -> AsyncGenerator[CacheCoordinator, None]:
    """Provide an initialized coordinator over in-memory backends."""
    coordinator = CacheCoordinator(ledger, content_store)
    await coordinator.init()
    yield coordinator
    await coordinator.close()
