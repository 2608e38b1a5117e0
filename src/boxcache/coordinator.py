"""
Cache coordinator: the public API of the box cache.

Every operation loads the box from the ledger, enforces the namespace
binding, touches the content store, writes the box back and, for add and
remove, lets the reconciler prune entries no box references any more.

Error policy:
    - NamespaceMismatchError always reaches the caller.
    - ContentStoreError (including FetchError) is logged and treated as "this
      step did not happen". The ledger already records intent, and heal_by_box
      repairs the gap later.
    - Without a content store every operation returns its empty result.
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Callable, Iterable

import httpx

from boxcache.boxes import BoxRepository, ensure_namespace
from boxcache.config import DEFAULT_BOX_NAME, DEFAULT_REGISTRY_KEY, Settings, get_settings
from boxcache.exceptions import ConfigurationError, ContentStoreError
from boxcache.ledger.base import Ledger
from boxcache.ledger.sqlite_ledger import SQLiteLedger
from boxcache.logging import get_logger, log_context
from boxcache.reconciler import Reconciler
from boxcache.registry import BoxRegistry
from boxcache.retrieval.fetch import ResponseFetcher
from boxcache.store.base import ContentStore
from boxcache.store.sqlite_store import SQLiteContentStore
from boxcache.types import (
    Box,
    CachedResponse,
    CacheStatus,
    RemovalResult,
    ValidationResult,
)
from boxcache.urls import canonicalize_url

logger = get_logger(__name__)


class CacheCoordinator:
    """Coordinates box records in a ledger with entries in a content store."""

    def __init__(
        self,
        ledger: Ledger,
        content_store: ContentStore | None,
        *,
        default_box: str = DEFAULT_BOX_NAME,
        registry_key: str = DEFAULT_REGISTRY_KEY,
        base_url: str | None = None,
        canonicalize: Callable[[str], str] | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            ledger: Durable ledger for box records and the registry.
            content_store: Content store, or None where caching is unsupported.
            default_box: Box used when an operation is called without one.
            registry_key: Ledger key of the box registry.
            base_url: Base for resolving relative URLs.
            canonicalize: URL canonicalizer; defaults to canonicalize_url.
        """
        self.ledger = ledger
        self.content_store = content_store
        self.default_box = default_box
        self.registry = BoxRegistry(ledger, registry_key)
        self.boxes = BoxRepository(ledger)
        self.reconciler = (
            Reconciler(self.registry, self.boxes, content_store) if content_store else None
        )
        self._canonicalize = canonicalize or partial(canonicalize_url, base_url=base_url)
        self._resources: list[Any] = []

    @classmethod
    async def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> CacheCoordinator:
        """Open the SQLite ledger, SQLite content store and HTTP fetcher.

        Runs init() with the configured vaults before returning.

        Args:
            settings: Settings to use; defaults to get_settings().
            transport: Optional httpx transport for the fetcher.

        Raises:
            ConfigurationError: If the cache directory cannot be created.
        """
        settings = settings or get_settings()
        try:
            settings.ensure_directories()
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create cache directory: {e}",
                context={"cache_dir": str(settings.CACHE_DIR), "ledger_path": str(settings.ledger_path)},
            ) from e

        ledger = SQLiteLedger(settings.ledger_path)
        await ledger.connect()
        fetcher = ResponseFetcher.from_settings(settings, transport=transport)
        store = SQLiteContentStore(settings.CACHE_DIR, fetcher)
        await store.init()

        coordinator = cls(
            ledger,
            store,
            default_box=settings.DEFAULT_BOX_NAME,
            registry_key=settings.REGISTRY_KEY,
            base_url=settings.BASE_URL,
        )
        coordinator._resources = [store, fetcher, ledger]
        await coordinator.init(settings.vaults)
        return coordinator

    async def close(self) -> None:
        """Close the resources opened by from_settings()."""
        for resource in self._resources:
            await resource.close()
        self._resources = []

    async def __aenter__(self) -> CacheCoordinator:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def supported(self) -> bool:
        """Whether a content store is available."""
        return self.content_store is not None

    def _check_support(self) -> bool:
        if not self.supported:
            logger.warning("Manual cache is not supported in this environment.")
        return self.supported

    def canonicalize(self, url: str) -> str:
        """Canonicalize a URL the way box and store keys are formed."""
        return self._canonicalize(url)

    def _resolve_box(self, box_name: str | None) -> str:
        name = self.default_box if box_name is None else box_name
        self.registry.check_name(name)
        return name

    async def _match_all(self, cache_name: str, urls: list[str]) -> list[CachedResponse | None]:
        try:
            handle = await self.content_store.open(cache_name)
        except ContentStoreError as e:
            logger.warning("Error opening cache", cache_name=cache_name, error=str(e))
            return [None] * len(urls)

        results: list[CachedResponse | None] = []
        for url in urls:
            try:
                results.append(await handle.match(url))
            except ContentStoreError as e:
                logger.warning("Error reading cache entry", url=url, error=str(e))
                results.append(None)
        return results

    async def init(self, vaults: Iterable[str] = ()) -> None:
        """Once-per-process startup step.

        Creates the registry if it does not exist yet. If it already
        existed, tidies every namespace in vaults.
        """
        if not self.supported:
            return

        created = await self.registry.initialize()
        if created:
            return

        for vault in vaults:
            await self.tidy(vault)

    async def tidy(self, cache_name: str) -> None:
        """Prune entries in cache_name that no box references."""
        if not self._check_support():
            return

        with log_context(cache_name=cache_name, operation="tidy"):
            await self.reconciler.tidy(cache_name)

    async def get_from_cache(self, cache_name: str, url: str) -> CachedResponse | None:
        """Get the stored response for a URL in a namespace, or None."""
        if not self._check_support():
            return None

        (response,) = await self._match_all(cache_name, [self._canonicalize(url)])
        return response

    async def get_all_in_box(self, box_name: str | None = None) -> list[CachedResponse | None]:
        """Get the stored response for every URL in a box, in box order."""
        if not self._check_support():
            return []

        box = await self.boxes.load(self._resolve_box(box_name))
        if box is None:
            return []
        return await self._match_all(box.cache_name, list(box.urls))

    async def get_cache_name_for_box(self, box_name: str | None = None) -> str | None:
        """Get the namespace a box is bound to, or None if it does not exist."""
        if not self._check_support():
            return None

        box = await self.boxes.load(self._resolve_box(box_name))
        return box.cache_name if box else None

    async def list_boxes(self) -> dict[str, Box]:
        """Get every registered box that has a record, in registration order."""
        if not self._check_support():
            return {}

        boxes: dict[str, Box] = {}
        for name in await self.registry.list_all():
            box = await self.boxes.load(name)
            if box is not None:
                boxes[name] = box
        return boxes

    async def add_to_box(
        self,
        cache_name: str,
        urls: Iterable[str],
        box_name: str | None = None,
    ) -> list[CachedResponse | None]:
        """Track URLs in a box and cache any that are not stored yet.

        The box record is written before the content store is touched. A
        failed fetch is logged, not raised; the URL then validates as INVALID
        until healed.

        Args:
            cache_name: Namespace the box is (or becomes) bound to.
            urls: URLs to add, in any absolute or relative form.
            box_name: Box to add to; defaults to the default box.

        Returns:
            The stored response (or None) for each canonical input URL, in input order.

        Raises:
            NamespaceMismatchError: If the box is bound to another namespace.
            InvalidURLError: If a URL cannot be canonicalized.
        """
        if not self._check_support():
            return []

        name = self._resolve_box(box_name)
        with log_context(box=name, cache_name=cache_name, operation="add"):
            new_urls = [self._canonicalize(url) for url in urls]
            if not new_urls:
                return []

            await self.registry.register(name)
            box = await self.boxes.load_or_default(name, cache_name)
            await self.boxes.save(name, box.with_urls(new_urls))

            try:
                handle = await self.content_store.open(cache_name)
                present = set(await handle.keys())
                missing = [url for url in dict.fromkeys(new_urls) if url not in present]
                await handle.add_all(missing)
                if missing:
                    logger.info("Cached URLs", count=len(missing))
            except ContentStoreError as e:
                logger.warning(f"Error adding to cache {cache_name}", error=str(e))

            await self.reconciler.tidy(cache_name)

            return await self._match_all(cache_name, new_urls)

    async def remove_from_box(
        self,
        cache_name: str,
        url: str,
        box_name: str | None = None,
    ) -> bool:
        """Stop tracking a URL in a box and drop it from the store if unreferenced.

        Returns:
            True only if the content store actually removed an entry. False if
            the box does not exist, another box still references the URL, or
            the store had nothing to remove.

        Raises:
            NamespaceMismatchError: If the box is bound to another namespace.
        """
        if not self._check_support():
            return False

        name = self._resolve_box(box_name)
        with log_context(box=name, cache_name=cache_name, operation="remove"):
            url = self._canonicalize(url)
            box = await self.boxes.load(name)
            if box is None:
                return False
            ensure_namespace(name, box, cache_name)

            if box.contains(url):
                await self.boxes.save(name, box.without_url(url))

            if await self.reconciler.is_referenced(url, exclude=name):
                logger.debug("URL still referenced by another box", url=url)
                return False

            try:
                handle = await self.content_store.open(cache_name)
                return await handle.delete(url)
            except ContentStoreError as e:
                logger.warning("Error removing cache entry", url=url, error=str(e))
                return False

    async def remove_by_box(self, box_name: str | None = None) -> list[RemovalResult]:
        """Remove every URL of a box, then delete the box and unregister it.

        URLs are removed one at a time in box order. The box is unregistered
        even if some removals returned False.
        """
        if not self._check_support():
            return []

        name = self._resolve_box(box_name)
        with log_context(box=name, operation="purge"):
            box = await self.boxes.load(name)
            if box is None:
                return []

            results: list[RemovalResult] = []
            for url in box.urls:
                removed = await self.remove_from_box(box.cache_name, url, box_name=name)
                results.append(RemovalResult(url=url, removed=removed))

            await self.registry.unregister(name)
            logger.info(
                "Purged box",
                urls=len(results),
                removed=sum(1 for r in results if r.removed),
            )
            return results

    async def validate(
        self,
        cache_name: str,
        url: str,
        box_name: str | None = None,
    ) -> CacheStatus:
        """Compute the cache status of a URL in a box.

        Returns:
            NOT_CACHED if the box does not track the URL, VALID if the store
            has an entry, INVALID otherwise (including lookup failures).

        Raises:
            NamespaceMismatchError: If the box is bound to another namespace.
        """
        if not self._check_support():
            return CacheStatus.NOT_CACHED

        name = self._resolve_box(box_name)
        url = self._canonicalize(url)
        box = await self.boxes.load(name)
        ensure_namespace(name, box, cache_name)

        if box is None or not box.contains(url):
            return CacheStatus.NOT_CACHED

        try:
            handle = await self.content_store.open(cache_name)
            entry = await handle.match(url)
        except Exception as e:
            logger.warning(
                f"Error validating cache {cache_name} for {url}",
                box=name,
                error=str(e),
            )
            return CacheStatus.INVALID

        return CacheStatus.VALID if entry is not None else CacheStatus.INVALID

    async def validate_by_box(self, box_name: str | None = None) -> list[ValidationResult]:
        """Validate every URL of a box, in box order."""
        if not self._check_support():
            return []

        name = self._resolve_box(box_name)
        box = await self.boxes.load(name)
        if box is None:
            return []

        statuses = await asyncio.gather(
            *[self.validate(box.cache_name, url, box_name=name) for url in box.urls]
        )
        return [
            ValidationResult(url=url, status=status)
            for url, status in zip(box.urls, statuses)
        ]

    async def heal_by_box(self, box_name: str | None = None) -> list[str]:
        """Re-cache the URLs of a box that validate as INVALID.

        Tidies the box's namespace first, then re-fetches exactly the invalid
        URLs in one batch. A failed batch is logged; the next heal retries it.

        Returns:
            URLs that were re-cached (empty if nothing needed healing or the batch failed).
        """
        if not self._check_support():
            return []

        name = self._resolve_box(box_name)
        with log_context(box=name, operation="heal"):
            box = await self.boxes.load(name)
            if box is None:
                return []

            await self.reconciler.tidy(box.cache_name)

            results = await self.validate_by_box(name)
            invalid = [r.url for r in results if r.status is CacheStatus.INVALID]
            if not invalid:
                return []

            try:
                handle = await self.content_store.open(box.cache_name)
                await handle.add_all(invalid)
            except ContentStoreError as e:
                logger.warning("Healing failed, will retry", urls=len(invalid), error=str(e))
                return []

            logger.info("Healed box", healed=len(invalid))
            return invalid

    async def heal_all(self) -> dict[str, list[str]]:
        """Heal every registered box independently.

        Returns:
            Healed URLs per box. Boxes whose healing raised are logged and omitted.
        """
        if not self._check_support():
            return {}

        names = await self.registry.list_all()
        results = await asyncio.gather(
            *[self.heal_by_box(name) for name in names],
            return_exceptions=True,
        )

        healed: dict[str, list[str]] = {}
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error("Healing box failed", box=name, error=str(result))
                continue
            healed[name] = result
        return healed
