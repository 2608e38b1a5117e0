"""
Box records.

Each box is stored in the ledger under its own name as
{"cache_name": ..., "urls": [...]}. A missing record means the box does not
exist; Box.empty() stands in for it until the first write.
"""

from __future__ import annotations

from boxcache.exceptions import LedgerError, NamespaceMismatchError
from boxcache.ledger.base import Ledger
from boxcache.types import Box


class BoxRepository:
    """Loads and saves Box records in a ledger."""

    def __init__(self, ledger: Ledger) -> None:
        self.ledger = ledger

    async def load(self, box_name: str) -> Box | None:
        """Load a box record, or None if the box does not exist."""
        data = await self.ledger.get(box_name)
        if data is None:
            return None
        try:
            return Box.from_dict(data)
        except (KeyError, TypeError) as e:
            raise LedgerError("Malformed box record", context={"key": box_name}) from e

    async def load_or_default(self, box_name: str, cache_name: str) -> Box:
        """Load a box record, falling back to an empty box bound to cache_name.

        Raises:
            NamespaceMismatchError: If the box exists under another namespace.
        """
        box = await self.load(box_name)
        if box is None:
            return Box.empty(cache_name)
        ensure_namespace(box_name, box, cache_name)
        return box

    async def save(self, box_name: str, box: Box) -> None:
        """Persist a box record."""
        await self.ledger.set(box_name, box.to_dict())

    async def delete(self, box_name: str) -> bool:
        """Delete a box record. Returns True if it existed."""
        return await self.ledger.remove(box_name)


def ensure_namespace(box_name: str, box: Box | None, cache_name: str) -> None:
    """Raise NamespaceMismatchError if box is bound to a different namespace."""
    if box is not None and box.cache_name != cache_name:
        raise NamespaceMismatchError(
            f"Cache name mismatch: expected {box.cache_name}, got {cache_name}",
            context={"box": box_name, "expected": box.cache_name, "got": cache_name},
        )
