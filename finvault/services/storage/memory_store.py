"""
In-Memory Storage Implementation

Dict-backed stores for tests and for running without a data directory.
`fail_writes` makes every write raise StorageError without touching the
stored values, which is how the save-failure path is exercised.
"""

from typing import Iterable, Mapping, Optional
from uuid import UUID

from finvault.models.audit import AuditEvent
from finvault.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStoreInterface,
    StorageError,
)


class InMemoryKeyValueStore(KeyValueStoreInterface):

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})
        self.fail_writes = False
        self.write_count = 0

    def snapshot(self) -> dict[str, str]:
        """Copy of everything currently stored."""
        return dict(self._data)

    def _check_writable(self) -> None:
        if self.fail_writes:
            raise StorageError("Simulated storage failure (quota exceeded)")

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: Mapping[str, str]) -> None:
        self._check_writable()
        self._data.update(values)
        self.write_count += 1

    async def remove(self, key: str) -> None:
        await self.remove_many([key])

    async def remove_many(self, keys: Iterable[str]) -> None:
        self._check_writable()
        for key in keys:
            self._data.pop(key, None)
        self.write_count += 1


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return sorted(
            (e for e in self.events if e.correlation_id == correlation_id),
            key=lambda e: e.occurred_at,
        )

    async def get_events_for_ledger(
        self,
        ledger_id: str,
    ) -> list[AuditEvent]:
        return sorted(
            (e for e in self.events if e.ledger_id == ledger_id),
            key=lambda e: e.occurred_at,
        )

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.occurred_at, reverse=True)[:limit]
