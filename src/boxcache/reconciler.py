"""
Reconciler: prunes content-store entries no box references.

After tidy(N) completes, the URLs stored in namespace N equal the union of
the URLs tracked by every registered box bound to N. References are found by
scanning box records; there is no reference counter to drift.
"""

from __future__ import annotations

import asyncio

from boxcache.boxes import BoxRepository
from boxcache.exceptions import BoxCacheError
from boxcache.logging import get_logger
from boxcache.registry import BoxRegistry
from boxcache.store.base import ContentStore

logger = get_logger(__name__)


class Reconciler:
    """Keeps content-store namespaces in line with the boxes bound to them."""

    def __init__(
        self,
        registry: BoxRegistry,
        boxes: BoxRepository,
        content_store: ContentStore,
    ) -> None:
        self.registry = registry
        self.boxes = boxes
        self.content_store = content_store

    async def referenced_urls(self, cache_name: str) -> set[str]:
        """Union of URLs tracked by registered boxes bound to cache_name."""
        keep: set[str] = set()
        for box_name in await self.registry.list_all():
            box = await self.boxes.load(box_name)
            if box is not None and box.cache_name == cache_name:
                keep.update(box.urls)
        return keep

    async def is_referenced(self, url: str, exclude: str | None = None) -> bool:
        """Check whether any registered box other than exclude tracks url."""
        for box_name in await self.registry.list_all():
            if box_name == exclude:
                continue
            box = await self.boxes.load(box_name)
            if box is not None and box.contains(url):
                return True
        return False

    async def tidy(self, cache_name: str) -> None:
        """Delete every entry in cache_name that no box references.

        Deletions run concurrently and independently. Failures are logged and
        left for a later tidy to retry. If the box records or the namespace
        cannot be read, nothing is deleted.
        """
        try:
            keep = await self.referenced_urls(cache_name)
            handle = await self.content_store.open(cache_name)
            present = await handle.keys()
        except BoxCacheError as e:
            # Never prune against an incomplete keep set
            logger.warning("Error clearing cache", cache_name=cache_name, error=str(e))
            return

        stale = [url for url in present if url not in keep]
        if not stale:
            return

        results = await asyncio.gather(
            *[handle.delete(url) for url in stale],
            return_exceptions=True,
        )

        pruned = 0
        for url, result in zip(stale, results):
            if isinstance(result, Exception):
                logger.warning("Failed to prune entry", cache_name=cache_name, url=url, error=str(result))
            elif result:
                pruned += 1

        logger.info("Pruned unreferenced entries", cache_name=cache_name, pruned=pruned, kept=len(keep))
