# Infrastructure History Adapters Package
from .memory_store import InMemoryHistoryStore
from .sqlite_store import SqliteHistoryStore

__all__ = ["InMemoryHistoryStore", "SqliteHistoryStore"]
