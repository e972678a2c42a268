"""Core storage - adapters the sync engine persists through."""

from core.storage.base import StorageAdapter, SYNC_STATE_FIELDS
from core.storage.memory import InMemoryStorageAdapter
from core.storage.sqlite import SQLiteStorageAdapter

__all__ = [
    "StorageAdapter",
    "SYNC_STATE_FIELDS",
    "InMemoryStorageAdapter",
    "SQLiteStorageAdapter",
]
