"""Storage backends for gigmarket.

- base.py: MarketplaceStorage protocol (CRUD + transaction boundary)
- memory.py: InMemoryStorage for tests and local development
- sqlite.py: SQLiteStorage, the persistent backend
- schema.py: SQLite DDL and initialization
"""

from gigmarket.storage.base import MarketplaceStorage
from gigmarket.storage.memory import InMemoryStorage
from gigmarket.storage.sqlite import SQLiteStorage

__all__ = [
    "MarketplaceStorage",
    "InMemoryStorage",
    "SQLiteStorage",
]
