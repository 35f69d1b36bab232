"""
Local File Storage Implementation

DESIGN DECISION: The whole key-value store is one JSON object in one file,
because the vault is a handful of small records:
1. Every write rewrites the file through a temp file + os.replace, so a
   crash mid-write leaves either the old or the new file, never half of one
2. set_many is therefore atomic for free
3. The file is human-inspectable (the vault record itself is ciphertext)

TRADEOFFS:
- Each write costs a full rewrite (fine at this size)
- Single-process only; there is no cross-process locking

Transient OS errors (e.g. a file briefly locked by a backup tool) are retried
with tenacity before being surfaced as StorageError.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Iterable, Mapping, Optional
from uuid import UUID

import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from finvault.models.audit import AuditEvent
from finvault.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStoreInterface,
    StorageCorruptedError,
    StorageError,
)


logger = structlog.get_logger(__name__)

_retry_os_errors = retry(
    retry=retry_if_exception_type(OSError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
    reraise=True,
)


class FileKeyValueStore(KeyValueStoreInterface):
    """
    Key-value store persisted as a single JSON object file.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @_retry_os_errors
    def _read_text(self) -> Optional[str]:
        try:
            return self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _read_all(self) -> dict[str, str]:
        try:
            text = self._read_text()
        except OSError as e:
            raise StorageError(f"Failed to read store {self._path}: {e}") from e

        if text is None or not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageCorruptedError(f"Store file is not valid JSON: {self._path}") from e
        if not isinstance(data, dict):
            raise StorageCorruptedError(f"Store file is not a JSON object: {self._path}")
        return data

    @_retry_os_errors
    def _replace_file(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def _write_all(self, data: dict[str, str]) -> None:
        try:
            self._replace_file(data)
        except OSError as e:
            logger.error("store_write_failed", path=str(self._path), error=str(e))
            raise StorageError(f"Failed to write store {self._path}: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._read_all().get(key)

    async def set(self, key: str, value: str) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: Mapping[str, str]) -> None:
        async with self._lock:
            data = self._read_all()
            data.update(values)
            self._write_all(data)

    async def remove(self, key: str) -> None:
        await self.remove_many([key])

    async def remove_many(self, keys: Iterable[str]) -> None:
        async with self._lock:
            data = self._read_all()
            removed = False
            for key in keys:
                if key in data:
                    del data[key]
                    removed = True
            if removed:
                self._write_all(data)


class JsonlAuditStorage(AuditStorageInterface):
    """
    Append-only audit trail, one JSON event per line.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    @_retry_os_errors
    def _append_line(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    def _read_events(self) -> list[AuditEvent]:
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(f"Failed to read audit trail: {e}") from e

        events = []
        for line in lines:
            if not line.strip():
                continue
            try:
                events.append(AuditEvent.model_validate_json(line))
            except ValueError:
                # Skip lines written by an incompatible version
                continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._append_line(event.to_json_line())
            return True
        except OSError as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.occurred_at)
        return events

    async def get_events_for_ledger(
        self,
        ledger_id: str,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.ledger_id == ledger_id]
        events.sort(key=lambda e: e.occurred_at)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._read_events()
        # Sort newest first
        events.sort(key=lambda e: e.occurred_at, reverse=True)
        return events[:limit]
