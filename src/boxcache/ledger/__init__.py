"""
Ledger package: durable key/value storage for box records and the registry.

- base.py: Ledger capability consumed by the coordinator
- sqlite_ledger.py: aiosqlite-backed ledger with orjson values
- memory.py: dict-backed ledger for tests and embedding
"""

from boxcache.ledger.base import Ledger
from boxcache.ledger.memory import InMemoryLedger
from boxcache.ledger.sqlite_ledger import SQLiteLedger

__all__ = ["InMemoryLedger", "Ledger", "SQLiteLedger"]
