"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements a local JSON file backend, plus in-memory stores for
tests, behind the same interface.
"""

from finvault.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStoreInterface,
    NotFoundError,
    StorageCorruptedError,
    StorageError,
)
from finvault.services.storage.file_store import (
    FileKeyValueStore,
    JsonlAuditStorage,
)
from finvault.services.storage.memory_store import (
    InMemoryAuditStorage,
    InMemoryKeyValueStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStoreInterface",
    # Exceptions
    "NotFoundError",
    "StorageCorruptedError",
    "StorageError",
    # Local file implementation
    "FileKeyValueStore",
    "JsonlAuditStorage",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryKeyValueStore",
]
