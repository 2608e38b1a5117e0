"""
In-memory content store.

Same semantics as the SQLite store, without persistence.
"""

from __future__ import annotations

from boxcache.retrieval.base import Fetcher
from boxcache.store.base import ContentStore, StoreHandle
from boxcache.types import CachedResponse


class InMemoryStoreHandle(StoreHandle):
    """Namespace backed by a plain dict owned by the store."""

    def __init__(
        self,
        namespace: str,
        entries: dict[str, CachedResponse],
        fetcher: Fetcher | None,
    ) -> None:
        super().__init__(namespace, fetcher)
        self._entries = entries

    async def keys(self) -> list[str]:
        return list(self._entries)

    async def match(self, url: str) -> CachedResponse | None:
        return self._entries.get(url)

    async def put_many(self, responses: list[CachedResponse]) -> None:
        self._entries.update({response.url: response for response in responses})

    async def delete(self, url: str) -> bool:
        return self._entries.pop(url, None) is not None


class InMemoryContentStore(ContentStore):
    """Dict-of-dicts content store."""

    def __init__(self, fetcher: Fetcher | None = None) -> None:
        self.fetcher = fetcher
        self._namespaces: dict[str, dict[str, CachedResponse]] = {}

    async def open(self, namespace: str) -> InMemoryStoreHandle:
        entries = self._namespaces.setdefault(namespace, {})
        return InMemoryStoreHandle(namespace, entries, self.fetcher)

    async def namespaces(self) -> list[str]:
        return [name for name, entries in self._namespaces.items() if entries]
