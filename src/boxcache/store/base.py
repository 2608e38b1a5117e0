"""
Base classes for content stores.

A content store is partitioned into named namespaces. Each namespace maps
canonical URLs to CachedResponse entries and is shared by every box bound
to it; which entries survive is decided by the reconciler, not the store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from boxcache.exceptions import ContentStoreError
from boxcache.retrieval.base import Fetcher
from boxcache.types import CachedResponse


class StoreHandle(ABC):
    """One open namespace of a content store."""

    def __init__(self, namespace: str, fetcher: Fetcher | None) -> None:
        self.namespace = namespace
        self._fetcher = fetcher

    @abstractmethod
    async def keys(self) -> list[str]:
        """List every URL stored in the namespace."""
        ...

    @abstractmethod
    async def match(self, url: str) -> CachedResponse | None:
        """Get the entry stored for url, or None."""
        ...

    @abstractmethod
    async def put_many(self, responses: list[CachedResponse]) -> None:
        """Store responses atomically, replacing entries with the same URL."""
        ...

    @abstractmethod
    async def delete(self, url: str) -> bool:
        """Delete the entry for url. Returns True if an entry was removed."""
        ...

    async def put(self, response: CachedResponse) -> None:
        """Store a single response."""
        await self.put_many([response])

    async def add_all(self, urls: list[str]) -> None:
        """Fetch every URL and store the responses.

        The batch fails as a unit: if any fetch fails nothing is stored and
        the FetchError propagates.
        """
        if not urls:
            return
        if self._fetcher is None:
            raise ContentStoreError(
                "Store has no fetcher configured",
                context={"namespace": self.namespace, "operation": "add_all"},
            )
        responses = await self._fetcher.fetch_all(list(urls))
        await self.put_many(responses)


class ContentStore(ABC):
    """Abstract interface for content stores."""

    @abstractmethod
    async def open(self, namespace: str) -> StoreHandle:
        """Open (creating if needed) a namespace."""
        ...

    @abstractmethod
    async def namespaces(self) -> list[str]:
        """List namespaces that currently hold entries."""
        ...
