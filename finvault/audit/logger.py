"""
Audit Logger

DESIGN DECISION: Every vault action leaves an event.
- Locally, through structlog, as one JSON object per line (or a readable
  console line in debug mode).
- Optionally in an AuditStorageInterface backend (the JSONL trail next to
  the vault file).

A storage failure is logged and reported as False. It never reaches the
caller, so an unwritable audit file cannot block an unlock or a save.
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finvault.models.audit import AuditEvent, AuditEventBuilder
from finvault.services.storage import AuditStorageInterface


def configure_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure structlog on top of the stdlib logging module.

    Called once at import with defaults and again by create_app_components()
    with AppSettings.log_level / debug_mode.
    """
    level = logging.getLevelName(log_level.upper())
    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger().setLevel(level)

    renderer = (
        structlog.processors.JSONRenderer() if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Reconfiguration must reach module-level loggers created earlier
        cache_logger_on_first_use=False,
    )


configure_logging()


class AuditLogger:
    """
    Writes audit events to the local log and, if given, to a trail backend.

    Usage:
        audit = AuditLogger(JsonlAuditStorage(path))
        await audit.log_vault_unlocked(create_correlation_id())
    """

    def __init__(self, storage: Optional[AuditStorageInterface] = None):
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns:
            False only when a configured backend failed to store it
        """
        emit = getattr(self._logger, event.severity.value)
        emit("audit_event", **event.to_log_dict())

        if self._storage is None:
            return True
        try:
            return await self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
                event_type=event.event_type.value,
            )
            return False

    # ===== VAULT =====

    async def log_vault_created(self, iterations: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.vault_created(iterations, correlation_id))

    async def log_vault_unlocked(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.vault_unlocked(correlation_id))

    async def log_unlock_failed(self, reason: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.unlock_failed(reason, correlation_id))

    async def log_vault_saved(self, encrypted: bool, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.vault_saved(encrypted, correlation_id))

    async def log_save_failed(self, error_message: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.save_failed(error_message, correlation_id))

    async def log_vault_locked(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.vault_locked(correlation_id))

    async def log_vault_reset(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.vault_reset(correlation_id))

    async def log_pin_lock_changed(self, enabled: bool, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.pin_lock_changed(enabled, correlation_id))

    # ===== BACKUP =====

    async def log_backup_exported(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.backup_exported(correlation_id))

    async def log_backup_imported(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.backup_imported(correlation_id))

    async def log_backup_rejected(self, error_message: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.backup_rejected(error_message, correlation_id))

    # ===== LEDGER =====

    async def log_operation_applied(
        self,
        operation: str,
        ledger_id: str,
        entry_ids: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.operation_applied(
            operation, ledger_id, entry_ids, correlation_id
        ))

    async def log_operation_rejected(self, operation: str, reason: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.operation_rejected(operation, reason, correlation_id))

    async def log_operation_notice(
        self,
        operation: str,
        notices: list[str],
        ledger_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        """The notice texts stay in the caller's result; only their count is audited."""
        await self.log(AuditEventBuilder.operation_notice(
            operation, len(notices), ledger_id, correlation_id
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.system_error(
            error_type, error_message, details, correlation_id
        ))


def create_correlation_id() -> UUID:
    """New id shared by the events of one user action."""
    return uuid4()
