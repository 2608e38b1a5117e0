"""
Store package: the content store holding cached responses by canonical URL.

- base.py: ContentStore / StoreHandle capability consumed by the coordinator
- sqlite_store.py: aiosqlite metadata with content-addressed blobs on disk
- memory.py: dict-backed store for tests and embedding
"""

from boxcache.store.base import ContentStore, StoreHandle
from boxcache.store.memory import InMemoryContentStore
from boxcache.store.sqlite_store import SQLiteContentStore

__all__ = ["ContentStore", "InMemoryContentStore", "SQLiteContentStore", "StoreHandle"]
