"""
Core types for the box cache.

This module defines the fundamental data structures used throughout the system:
- CacheStatus enum for the validation state machine
- Box, the durable record of a box's namespace and tracked URLs
- CachedResponse, a stored response in a content-store namespace
- Result pairs returned by the bulk coordinator operations
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Iterable


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class CacheStatus(IntEnum):
    """Validation status of a URL within a box.

    NOT_CACHED: the box does not track the URL.
    INVALID: the box tracks the URL but the content store has no entry.
    VALID: the box tracks the URL and the content store has an entry.
    """

    NOT_CACHED = 0
    INVALID = 1
    VALID = 2


@dataclass(frozen=True)
class Box:
    """Durable record of one box.

    The box owns its URL list; the content-store namespace is shared with
    every other box bound to the same cache_name.
    """

    cache_name: str
    urls: tuple[str, ...] = ()

    @classmethod
    def empty(cls, cache_name: str) -> Box:
        """Record used for a box that has not been written yet."""
        return cls(cache_name=cache_name)

    def contains(self, url: str) -> bool:
        """Check whether the box tracks a canonical URL."""
        return url in self.urls

    def with_urls(self, urls: Iterable[str]) -> Box:
        """Return a copy tracking the union of existing and new URLs.

        Existing URLs keep their position; new ones follow in input order.
        """
        merged = list(dict.fromkeys([*self.urls, *urls]))
        return Box(cache_name=self.cache_name, urls=tuple(merged))

    def without_url(self, url: str) -> Box:
        """Return a copy that no longer tracks url."""
        return Box(
            cache_name=self.cache_name,
            urls=tuple(u for u in self.urls if u != url),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the ledger representation."""
        return {"cache_name": self.cache_name, "urls": list(self.urls)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Box:
        """Create from the ledger representation."""
        return cls(
            cache_name=data["cache_name"],
            urls=tuple(dict.fromkeys(data.get("urls") or ())),
        )


@dataclass(frozen=True)
class CachedResponse:
    """A response stored under a canonical URL in a content-store namespace.

    Freshness is not tracked; an entry is either present or absent.
    """

    url: str
    status_code: int
    content: bytes
    headers: dict[str, str] = field(default_factory=dict)
    content_type: str = "application/octet-stream"
    stored_at: datetime = field(default_factory=utc_now)

    @property
    def ok(self) -> bool:
        """Whether the stored status is 2xx."""
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        """Body decoded as UTF-8, replacing undecodable bytes."""
        return self.content.decode("utf-8", errors="replace")

    @property
    def size(self) -> int:
        """Body size in bytes."""
        return len(self.content)


@dataclass(frozen=True)
class RemovalResult:
    """Outcome of removing one URL while purging a box.

    removed reflects whether the content store dropped an entry, not
    whether the box stopped tracking the URL.
    """

    url: str
    removed: bool


@dataclass(frozen=True)
class ValidationResult:
    """Validation status of one URL in a box."""

    url: str
    status: CacheStatus
