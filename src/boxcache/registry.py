"""
Box registry.

The registry is a single ledger entry holding the names of every box that
has been created and not yet purged, in registration order. It may list a
name whose record is gone; box records stay authoritative for membership.
"""

from __future__ import annotations

from boxcache.config import DEFAULT_REGISTRY_KEY
from boxcache.exceptions import InvalidBoxNameError
from boxcache.ledger.base import Ledger
from boxcache.logging import get_logger

logger = get_logger(__name__)


class BoxRegistry:
    """Durable set of box names stored under one ledger key."""

    def __init__(self, ledger: Ledger, key: str = DEFAULT_REGISTRY_KEY) -> None:
        """Initialize the registry.

        Args:
            ledger: Ledger holding the registry and box records.
            key: Ledger key of the registry entry.
        """
        self.ledger = ledger
        self.key = key

    def check_name(self, box_name: str) -> None:
        """Reject box names that cannot be stored as a ledger key."""
        if not box_name:
            raise InvalidBoxNameError("Box name must not be empty")
        if box_name == self.key:
            raise InvalidBoxNameError(
                "Box name collides with the registry key",
                context={"box": box_name},
            )

    async def initialize(self) -> bool:
        """Create an empty registry if none exists.

        Returns:
            True if the registry was created by this call.
        """
        created = await self.ledger.init(self.key, [])
        if created:
            logger.info("Box registry created", key=self.key)
        return created

    async def list_all(self) -> list[str]:
        """Get every registered box name in registration order."""
        return list(await self.ledger.get(self.key) or [])

    async def contains(self, box_name: str) -> bool:
        """Check whether a box name is registered."""
        return box_name in await self.list_all()

    async def register(self, box_name: str) -> bool:
        """Add a box name. Writes the ledger only if the name is new.

        Returns:
            True if the name was added.
        """
        self.check_name(box_name)
        names = await self.list_all()
        if box_name in names:
            return False
        await self.ledger.set(self.key, [*names, box_name])
        logger.debug("Registered box", box=box_name)
        return True

    async def unregister(self, box_name: str) -> None:
        """Remove a box name and delete its box record."""
        names = await self.list_all()
        if box_name in names:
            await self.ledger.set(self.key, [n for n in names if n != box_name])
        if box_name != self.key:
            await self.ledger.remove(box_name)
        logger.debug("Unregistered box", box=box_name)
