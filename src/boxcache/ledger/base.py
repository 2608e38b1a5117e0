"""
Base class for ledgers.

A ledger maps string keys to JSON-compatible values and must be durable
across calls within a session. Box records and the box registry are stored
as ledger entries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Ledger(ABC):
    """Abstract interface for ledger implementations."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Get the value stored under key, or None if absent."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store value under key, replacing any previous value."""
        ...

    @abstractmethod
    async def remove(self, key: str) -> bool:
        """Remove key. Returns True if it was present."""
        ...

    @abstractmethod
    async def init(self, key: str, value: Any) -> bool:
        """Store value under key only if the key is absent.

        Returns:
            True if the value was written.
        """
        ...
