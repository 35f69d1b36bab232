"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the vault on a local JSON file today and swap the backend later
2. Use in-memory storage for testing (including simulated write failures)
3. Keep the vault logic decoupled from how bytes reach the disk

The interface is intentionally simple - a string key-value store.
Values are opaque strings (JSON text); the vault layer owns their meaning.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Mapping, Optional
from uuid import UUID

from finvault.models.audit import AuditEvent


class KeyValueStoreInterface(ABC):
    """
    Abstract interface for durable key-value storage.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Args:
            key: Storage key

        Returns:
            The stored string, or None if the key is absent

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """
        Write a value, replacing any previous one.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def set_many(self, values: Mapping[str, str]) -> None:
        """
        Write several values atomically: either all land or none do.

        Raises:
            StorageError: If the write fails (nothing was changed)
        """
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove a key. Removing an absent key is not an error."""
        pass

    @abstractmethod
    async def remove_many(self, keys: Iterable[str]) -> None:
        """Remove several keys atomically."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one unlock-edit-save cycle).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_for_ledger(
        self,
        ledger_id: str,
    ) -> list[AuditEvent]:
        """
        Get every operation event recorded against one ledger.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class StorageCorruptedError(StorageError):
    """The backing file exists but cannot be parsed."""
    pass
