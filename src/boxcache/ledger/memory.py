"""
In-memory ledger.

Values are deep-copied on the way in and out so callers cannot change ledger
state by mutating a returned list or dict.
"""

from __future__ import annotations

import copy
from typing import Any

from boxcache.ledger.base import Ledger


class InMemoryLedger(Ledger):
    """Dict-backed ledger. Durable only for the lifetime of the object."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    async def init(self, key: str, value: Any) -> bool:
        if key in self._data:
            return False
        self._data[key] = copy.deepcopy(value)
        return True

    async def keys(self) -> list[str]:
        """List stored keys in insertion order."""
        return list(self._data)
