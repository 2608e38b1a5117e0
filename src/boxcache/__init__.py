"""
Box cache: a URL response cache kept consistent with a durable ledger of boxes.

A box is a named group of canonical URLs bound to one content-store namespace.
Several boxes may share a namespace; a cached response is only evicted once no
box references it any more.
"""

from boxcache.coordinator import CacheCoordinator
from boxcache.exceptions import (
    BoxCacheError,
    ContentStoreError,
    FetchError,
    NamespaceMismatchError,
)
from boxcache.types import Box, CachedResponse, CacheStatus

__version__ = "0.1.0"

__all__ = [
    "Box",
    "BoxCacheError",
    "CacheCoordinator",
    "CacheStatus",
    "CachedResponse",
    "ContentStoreError",
    "FetchError",
    "NamespaceMismatchError",
    "__version__",
]
