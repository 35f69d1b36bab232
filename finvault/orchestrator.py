"""
Main Orchestrator for finvault

This module ties together all the components and exposes the operations
the UI calls:
1. Start-up (which screen: set PIN, unlock, or straight into the app)
2. PIN setup, unlock and lock
3. Mutations (operation -> validate -> new document -> persist)
4. PIN-lock toggle, backup export/import and reset

DESIGN DECISION: The controller exclusively owns the in-memory document and
the unlocked session. Sub-components receive the document for one call and
hand back a new one.

Persistence after a mutation is optimistic: the new document becomes the
in-memory state first, then it is saved. A failed save is reported on the
MutationResult (persisted=False, persist_error) and the in-memory state is
NOT rolled back.
"""

from datetime import date
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import TypeAdapter

from finvault.audit import AuditLogger, configure_logging, create_correlation_id
from finvault.config import Settings, get_settings
from finvault.crypto import check_pin
from finvault.ledger.engine import BalanceEngine
from finvault.ledger.model import AccountNotFound, EntryNotFound, OperationRejected
from finvault.models.ledger import VaultDocument
from finvault.models.operations import LedgerOperation, MutationResult
from finvault.models.vault import VaultSession
from finvault.services.storage import (
    FileKeyValueStore,
    JsonlAuditStorage,
    KeyValueStoreInterface,
    StorageCorruptedError,
    StorageError,
)
from finvault.vault import (
    InvalidBackup,
    NoPinSet,
    PinMismatch,
    VaultError,
    VaultStore,
    WrongPinOrCorrupt,
)


_operation_adapter = TypeAdapter(LedgerOperation)


def parse_operation(data: Any):
    """Build an operation model from a dict such as {"op": "transfer", ...}."""
    if isinstance(data, dict):
        return _operation_adapter.validate_python(data)
    return data


class VaultStage(str, Enum):
    """Which screen the application starts on."""
    SET_PIN = "setpin"
    UNLOCK = "unlock"
    APP = "app"


class VaultController:
    """
    Upward interface of the vault.

    Flow:
    1. start() -> VaultStage
    2. set_pin() or unlock() (PIN lock on), nothing (PIN lock off)
    3. mutate() for every change
    4. lock() to drop the session
    """

    def __init__(
        self,
        store: VaultStore,
        engine: Optional[BalanceEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._engine = engine or BalanceEngine()
        self._audit_logger = audit_logger
        self._session: Optional[VaultSession] = None
        self._document: Optional[VaultDocument] = None
        self._pin_lock_enabled = False

    @property
    def document(self) -> Optional[VaultDocument]:
        return self._document

    @property
    def session(self) -> Optional[VaultSession]:
        return self._session

    @property
    def pin_lock_enabled(self) -> bool:
        return self._pin_lock_enabled

    # =========================================================================
    # START-UP, PIN AND SESSION
    # =========================================================================

    async def start(self) -> VaultStage:
        """
        Decide the first screen.

        With PIN lock disabled the plaintext document is loaded right away.

        Raises:
            StorageCorruptedError: The plaintext record is unreadable (audited)
        """
        self._pin_lock_enabled = await self._store.is_pin_lock_enabled()
        if not self._pin_lock_enabled:
            try:
                self._document = await self._store.load_vault_plain()
            except StorageCorruptedError as e:
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        "plaintext_vault_unreadable",
                        type(e.__cause__ or e).__name__,
                        correlation_id=create_correlation_id(),
                    )
                raise
            return VaultStage.APP
        if await self._store.has_pin():
            return VaultStage.UNLOCK
        return VaultStage.SET_PIN

    async def set_pin(self, pin: str, pin2: str) -> VaultDocument:
        """
        Create the encrypted vault and unlock it.

        A document already open in plaintext mode is carried into the new
        vault; otherwise the vault starts empty.

        Raises:
            PinTooShort: PIN below the minimum length
            PinMismatch: The two entries differ
            PinAlreadySet: A PIN exists already
        """
        correlation_id = create_correlation_id()
        check_pin(pin, self._store.settings.min_pin_length)
        if pin != pin2:
            raise PinMismatch("PINs do not match.")

        document = await self._store.set_new_pin(pin)
        if self._document is not None:
            document = self._document.model_copy(deep=True)
        document.settings.pin_lock_enabled = True

        await self._store.save_vault(pin, document)
        await self._store.set_pin_lock_enabled(True)
        self._pin_lock_enabled = True
        self._session = VaultSession(pin=pin)
        self._document = document

        if self._audit_logger:
            await self._audit_logger.log_vault_created(
                iterations=self._store.settings.kdf_iterations,
                correlation_id=correlation_id,
            )
        return document

    async def unlock(self, pin: str) -> VaultDocument:
        """
        Open the encrypted vault.

        A failed unlock leaves the previous in-memory state untouched.

        Raises:
            NoPinSet: No vault exists yet
            WrongPinOrCorrupt: Wrong PIN or unreadable vault
        """
        correlation_id = create_correlation_id()
        try:
            document = await self._store.load_vault(pin)
        except WrongPinOrCorrupt as e:
            if self._audit_logger:
                await self._audit_logger.log_unlock_failed(e.reason, correlation_id)
            raise

        self._session = VaultSession(pin=pin)
        self._document = document
        self._pin_lock_enabled = True

        if self._audit_logger:
            await self._audit_logger.log_vault_unlocked(correlation_id)

        # Store the normalised form (legacy shapes are migrated once)
        document.settings.pin_lock_enabled = True
        await self._persist(document, correlation_id)
        await self._store.set_pin_lock_enabled(True)
        return document

    async def lock(self) -> None:
        """Drop the session and the in-memory document."""
        self._session = None
        self._document = None
        if self._audit_logger:
            await self._audit_logger.log_vault_locked(create_correlation_id())

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def mutate(
        self,
        operation,
        as_of: Optional[date] = None,
    ) -> MutationResult:
        """
        Apply one operation and persist the result.

        Args:
            operation: An operation model or its dict form
            as_of: "Today" for default dates

        Returns:
            MutationResult; persisted/persist_error report the save

        Raises:
            VaultLocked: No document is open
            OperationRejected: Validation failed (document unchanged)
            AccountNotFound: A multi-leg operation could not resolve an account
            EntryNotFound: The target entry or transaction does not exist
        """
        document = self._require_document()
        operation = parse_operation(operation)
        correlation_id = create_correlation_id()

        try:
            result = self._engine.apply(document, operation, as_of)
        except OperationRejected as e:
            if self._audit_logger:
                reasons = [i.issue_type for i in e.result.issues if i.severity == "error"]
                await self._audit_logger.log_operation_rejected(
                    operation.op, ",".join(reasons), correlation_id
                )
            raise
        except (AccountNotFound, EntryNotFound) as e:
            if self._audit_logger:
                await self._audit_logger.log_operation_rejected(
                    operation.op, type(e).__name__, correlation_id
                )
            raise

        # Optimistic: the new document is current before it is saved
        self._document = result.document
        result.persisted, result.persist_error = await self._persist(
            result.document, correlation_id
        )

        if self._audit_logger:
            await self._audit_logger.log_operation_applied(
                operation=operation.op,
                ledger_id=result.document.active_ledger_id,
                entry_ids=result.entry_ids,
                correlation_id=correlation_id,
            )
            if result.notices:
                await self._audit_logger.log_operation_notice(
                    operation.op,
                    result.notices,
                    result.document.active_ledger_id,
                    correlation_id,
                )
        return result

    def _require_document(self) -> VaultDocument:
        if self._document is None:
            raise VaultLocked("Vault is locked.")
        if self._pin_lock_enabled and self._session is None:
            raise VaultLocked("Vault is locked.")
        return self._document

    async def _persist(
        self,
        document: VaultDocument,
        correlation_id: UUID,
    ) -> tuple[bool, Optional[str]]:
        """Save in the current mode. Returns (persisted, error message)."""
        try:
            if self._pin_lock_enabled:
                await self._store.save_vault(self._session.reveal_pin(), document)
            else:
                await self._store.save_vault_plain(document)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(str(e), correlation_id)
            return False, str(e)

        if self._audit_logger:
            await self._audit_logger.log_vault_saved(self._pin_lock_enabled, correlation_id)
        return True, None

    # =========================================================================
    # PIN LOCK TOGGLE
    # =========================================================================

    async def enable_pin_lock(self, pin: str) -> VaultDocument:
        """
        Move the plaintext document into the encrypted vault.

        The plaintext record is removed afterwards.

        Raises:
            NoPinSet: No PIN exists; use set_pin() instead
            WrongPinOrCorrupt: PIN does not match the vault
        """
        if not await self._store.has_pin():
            raise NoPinSet("Set a PIN to enable lock.")
        document = self._document or await self._store.load_vault_plain()
        document = document.model_copy(deep=True)
        document.settings.pin_lock_enabled = True

        await self._store.save_vault(pin, document)
        await self._store.set_pin_lock_enabled(True)
        await self._store.clear_vault_plain()

        self._pin_lock_enabled = True
        self._session = VaultSession(pin=pin)
        self._document = document
        if self._audit_logger:
            await self._audit_logger.log_pin_lock_changed(True, create_correlation_id())
        return document

    async def disable_pin_lock(self, pin: Optional[str] = None) -> VaultDocument:
        """
        Move the decrypted document into the plaintext record.

        Needs the PIN whenever one is set.

        Raises:
            WrongPinOrCorrupt: Wrong PIN or unreadable vault
        """
        if pin is None and self._session is not None:
            pin = self._session.reveal_pin()
        if await self._store.has_pin():
            if pin is None:
                raise WrongPinOrCorrupt("missing_pin")
            document = await self._store.load_vault(pin)
        else:
            document = self._document or await self._store.load_vault_plain()
            document = document.model_copy(deep=True)
        document.settings.pin_lock_enabled = False

        await self._store.save_vault_plain(document)
        await self._store.set_pin_lock_enabled(False)

        self._pin_lock_enabled = False
        self._session = None
        self._document = document
        if self._audit_logger:
            await self._audit_logger.log_pin_lock_changed(False, create_correlation_id())
        return document

    # =========================================================================
    # BACKUP AND RESET
    # =========================================================================

    async def export_backup(self) -> str:
        backup = await self._store.export_backup()
        if self._audit_logger:
            await self._audit_logger.log_backup_exported(create_correlation_id())
        return backup

    async def import_backup(self, text: str) -> None:
        """
        Replace the local vault with a backup and lock.

        The imported vault is opened with unlock() and the backup's PIN.

        Raises:
            InvalidBackup: Nothing was changed
        """
        correlation_id = create_correlation_id()
        try:
            await self._store.import_backup(text)
        except InvalidBackup as e:
            if self._audit_logger:
                await self._audit_logger.log_backup_rejected(str(e), correlation_id)
            raise

        await self._store.set_pin_lock_enabled(True)
        self._pin_lock_enabled = True
        self._session = None
        self._document = None
        if self._audit_logger:
            await self._audit_logger.log_backup_imported(correlation_id)

    async def reset_all(self) -> None:
        """Erase metadata, encrypted and plaintext records; drop the session."""
        await self._store.reset_all()
        self._session = None
        self._document = None
        if self._audit_logger:
            await self._audit_logger.log_vault_reset(create_correlation_id())


def create_app_components(
    settings: Optional[Settings] = None,
    kv: Optional[KeyValueStoreInterface] = None,
) -> VaultController:
    """
    Factory function to create the controller with its collaborators.

    Args:
        settings: Settings to use (default: get_settings())
        kv: Key-value backend; defaults to the JSON file under data_dir

    Returns:
        A VaultController; call start() next
    """
    settings = settings or get_settings()
    app_settings = settings.app
    configure_logging(app_settings.log_level, json_logs=not app_settings.debug_mode)
    storage_settings = settings.storage

    kv = kv or FileKeyValueStore(storage_settings.store_path)
    if storage_settings.audit_enabled:
        audit_logger = AuditLogger(JsonlAuditStorage(storage_settings.audit_path))
    else:
        audit_logger = AuditLogger()  # Local-only logging

    store = VaultStore(kv, settings.vault)
    engine = BalanceEngine()
    return VaultController(store, engine, audit_logger)


class VaultLocked(VaultError):
    """A mutation was attempted without an open document."""
    pass
