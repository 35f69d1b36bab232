"""Services package."""

from finvault.services.storage import (
    AuditStorageInterface,
    FileKeyValueStore,
    InMemoryAuditStorage,
    InMemoryKeyValueStore,
    JsonlAuditStorage,
    KeyValueStoreInterface,
    NotFoundError,
    StorageCorruptedError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "FileKeyValueStore",
    "InMemoryAuditStorage",
    "InMemoryKeyValueStore",
    "JsonlAuditStorage",
    "KeyValueStoreInterface",
    "NotFoundError",
    "StorageCorruptedError",
    "StorageError",
]
