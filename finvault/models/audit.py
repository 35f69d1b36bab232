"""
Audit Models for finvault

The audit trail records what happened to the vault: unlocks (and failed
unlocks), saves, PIN-lock changes, backups, resets and every ledger
operation with the ids it touched.

DESIGN DECISION: The trail is written next to the vault UNENCRYPTED.
Events therefore carry ids, operation kinds and diagnostic reasons only.
PINs, keys, amounts, notes and account names never go into an event.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Vault lifecycle
    VAULT_CREATED = "vault_created"
    VAULT_UNLOCKED = "vault_unlocked"
    UNLOCK_FAILED = "unlock_failed"
    VAULT_SAVED = "vault_saved"
    SAVE_FAILED = "save_failed"
    VAULT_LOCKED = "vault_locked"
    VAULT_RESET = "vault_reset"
    PIN_LOCK_ENABLED = "pin_lock_enabled"
    PIN_LOCK_DISABLED = "pin_lock_disabled"

    # Backups
    BACKUP_EXPORTED = "backup_exported"
    BACKUP_IMPORTED = "backup_imported"
    BACKUP_REJECTED = "backup_rejected"

    # Ledger operations
    OPERATION_APPLIED = "operation_applied"
    OPERATION_REJECTED = "operation_rejected"
    OPERATION_NOTICE = "operation_notice"

    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level; doubles as the structlog method name."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditSubject(str, Enum):
    """What part of the vault an event is about."""
    VAULT = "vault"
    BACKUP = "backup"
    LEDGER = "ledger"
    SYSTEM = "system"


class AuditEvent(BaseModel):
    """One line of the audit trail."""

    event_id: UUID = Field(default_factory=uuid4)
    occurred_at: datetime = Field(
        default_factory=_utc_now,
        description="Timezone-aware UTC time of the event"
    )
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO
    subject: AuditSubject = AuditSubject.VAULT
    ledger_id: Optional[str] = Field(
        default=None,
        description="Ledger an operation ran against"
    )
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Shared by the events of one user action (unlock, mutate + save)"
    )
    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Ids, kinds and counts only"
    )
    reason: Optional[str] = Field(
        default=None,
        description="Machine-readable cause, e.g. 'authentication_failed'"
    )
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Flat, JSON-safe fields for the structured local log."""
        data = self.model_dump(mode="json", exclude_none=True)
        if not data.get("details"):
            data.pop("details", None)
        return data

    def to_json_line(self) -> str:
        """One line of the JSONL audit trail."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True)


class AuditEventBuilder:
    """
    Factory methods for the events the controller emits.

    Usage:
        event = AuditEventBuilder.vault_unlocked(correlation_id)
        event = AuditEventBuilder.operation_applied("transfer", ledger_id, entry_ids, correlation_id)
    """

    # ===== VAULT =====

    @staticmethod
    def vault_created(iterations: int, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VAULT_CREATED,
            correlation_id=correlation_id,
            description="PIN set and encrypted vault created",
            details={"iterations": iterations},
        )

    @staticmethod
    def vault_unlocked(correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VAULT_UNLOCKED,
            correlation_id=correlation_id,
            description="Vault unlocked",
        )

    @staticmethod
    def unlock_failed(reason: str, correlation_id: Optional[UUID] = None) -> AuditEvent:
        """reason is WrongPinOrCorrupt.reason; the user only ever sees one message."""
        return AuditEvent(
            event_type=AuditEventType.UNLOCK_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description="Vault could not be opened",
            reason=reason,
        )

    @staticmethod
    def vault_saved(encrypted: bool, correlation_id: Optional[UUID] = None) -> AuditEvent:
        mode = "encrypted" if encrypted else "plaintext"
        return AuditEvent(
            event_type=AuditEventType.VAULT_SAVED,
            severity=AuditSeverity.DEBUG,
            correlation_id=correlation_id,
            description=f"Vault saved ({mode})",
            details={"encrypted": encrypted},
        )

    @staticmethod
    def save_failed(error_message: str, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description="Save failed; the change is kept in memory only",
            reason="storage_error",
            error_message=error_message,
        )

    @staticmethod
    def vault_locked(correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VAULT_LOCKED,
            correlation_id=correlation_id,
            description="Vault locked",
        )

    @staticmethod
    def vault_reset(correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VAULT_RESET,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description="Metadata, encrypted and plaintext records erased",
        )

    @staticmethod
    def pin_lock_changed(enabled: bool, correlation_id: Optional[UUID] = None) -> AuditEvent:
        if enabled:
            return AuditEvent(
                event_type=AuditEventType.PIN_LOCK_ENABLED,
                correlation_id=correlation_id,
                description="PIN lock enabled; plaintext copy removed",
            )
        return AuditEvent(
            event_type=AuditEventType.PIN_LOCK_DISABLED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description="PIN lock disabled; document stored unencrypted",
        )

    # ===== BACKUP =====

    @staticmethod
    def backup_exported(correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_EXPORTED,
            subject=AuditSubject.BACKUP,
            correlation_id=correlation_id,
            description="Encrypted backup exported",
        )

    @staticmethod
    def backup_imported(correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_IMPORTED,
            severity=AuditSeverity.WARNING,
            subject=AuditSubject.BACKUP,
            correlation_id=correlation_id,
            description="Backup replaced the local vault",
        )

    @staticmethod
    def backup_rejected(error_message: str, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_REJECTED,
            severity=AuditSeverity.WARNING,
            subject=AuditSubject.BACKUP,
            correlation_id=correlation_id,
            description="Backup rejected; local vault unchanged",
            reason="invalid_backup",
            error_message=error_message,
        )

    # ===== LEDGER =====

    @staticmethod
    def operation_applied(
        operation: str,
        ledger_id: str,
        entry_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_APPLIED,
            subject=AuditSubject.LEDGER,
            ledger_id=ledger_id,
            correlation_id=correlation_id,
            description=f"Applied {operation}",
            details={"operation": operation, "entry_ids": entry_ids},
        )

    @staticmethod
    def operation_rejected(
        operation: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            subject=AuditSubject.LEDGER,
            correlation_id=correlation_id,
            description=f"Rejected {operation}; document unchanged",
            details={"operation": operation},
            reason=reason,
        )

    @staticmethod
    def operation_notice(
        operation: str,
        notice_count: int,
        ledger_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        # Notice texts name accounts, so only their number is recorded
        return AuditEvent(
            event_type=AuditEventType.OPERATION_NOTICE,
            severity=AuditSeverity.WARNING,
            subject=AuditSubject.LEDGER,
            ledger_id=ledger_id,
            correlation_id=correlation_id,
            description=f"{operation} completed with notices",
            details={"operation": operation, "notice_count": notice_count},
        )

    # ===== SYSTEM =====

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            subject=AuditSubject.SYSTEM,
            correlation_id=correlation_id,
            description=f"System error: {error_type}",
            details=details or {},
            reason=error_type,
            error_message=error_message,
        )
