"""
Base class for fetchers.

A fetcher turns a canonical URL into a CachedResponse. fetch_all is the
batch used by StoreHandle.add_all and must fail as a unit: either every URL
yields a response or FetchError is raised.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from boxcache.types import CachedResponse


class Fetcher(ABC):
    """Abstract base class for response fetchers."""

    @abstractmethod
    async def fetch(self, url: str) -> CachedResponse:
        """Fetch one URL. Raises FetchError on failure."""
        ...

    @abstractmethod
    async def fetch_all(self, urls: list[str]) -> list[CachedResponse]:
        """Fetch every URL, in input order. Raises FetchError if any fails."""
        ...

    async def close(self) -> None:
        """Close any open connections."""
        return None
