"""
Tests for the vault controller (session, mutations, PIN-lock toggle, backups).
"""

import json
import pytest
from decimal import Decimal

from finvault.audit import AuditLogger
from finvault.config import Settings
from finvault.crypto import PinTooShort
from finvault.ledger import OperationRejected
from finvault.ledger.engine import BalanceEngine
from finvault.models.audit import AuditEventType
from finvault.models.ledger import Direction
from finvault.models.operations import AddAccountEntry
from finvault.orchestrator import (
    VaultController,
    VaultLocked,
    VaultStage,
    create_app_components,
)
from finvault.services.storage import InMemoryKeyValueStore, StorageCorruptedError
from finvault.vault import (
    InvalidBackup,
    NoPinSet,
    PinMismatch,
    VaultStore,
    WrongPinOrCorrupt,
)

from helpers import TODAY, account, build_document


PIN = "2468"


@pytest.fixture
def controller(store, audit_storage):
    return VaultController(store, BalanceEngine(), AuditLogger(audit_storage))


async def seed(store):
    """An encrypted vault holding the standard test document."""
    await store.set_new_pin(PIN)
    await store.save_vault(PIN, build_document())
    await store.set_pin_lock_enabled(True)


def deposit(amount="100"):
    return AddAccountEntry(account_id="cash", amount=Decimal(amount), direction=Direction.IN)


def event_types(audit_storage):
    return [e.event_type for e in audit_storage.events]


class TestStartup:
    """Tests for choosing the first screen."""

    @pytest.mark.asyncio
    async def test_fresh_install_opens_plaintext(self, controller):
        assert await controller.start() == VaultStage.APP
        assert not controller.pin_lock_enabled
        assert len(controller.document.ledgers) == 1

    @pytest.mark.asyncio
    async def test_lock_enabled_without_pin(self, controller, store):
        await store.set_pin_lock_enabled(True)
        assert await controller.start() == VaultStage.SET_PIN

    @pytest.mark.asyncio
    async def test_lock_enabled_with_pin(self, controller, store):
        await seed(store)
        assert await controller.start() == VaultStage.UNLOCK
        assert controller.document is None

    @pytest.mark.asyncio
    async def test_unreadable_plaintext_is_audited(self, controller, kv, vault_settings, audit_storage):
        await kv.set(vault_settings.plain_key, "{not json")
        with pytest.raises(StorageCorruptedError):
            await controller.start()
        errors = [e for e in audit_storage.events if e.event_type == AuditEventType.SYSTEM_ERROR]
        assert errors[0].reason == "plaintext_vault_unreadable"
        assert controller.document is None


class TestPinAndSession:
    """Tests for PIN setup, unlock and lock."""

    @pytest.mark.asyncio
    async def test_set_pin_validation(self, controller):
        with pytest.raises(PinTooShort):
            await controller.set_pin("12", "12")
        with pytest.raises(PinMismatch):
            await controller.set_pin("1234", "1235")

    @pytest.mark.asyncio
    async def test_set_pin_carries_open_document(self, controller, store):
        await controller.start()
        await controller.mutate({"op": "upsert_account", "name": "Wallet", "opening_balance": "40"}, as_of=TODAY)

        document = await controller.set_pin(PIN, PIN)
        assert document.settings.pin_lock_enabled
        assert controller.session is not None
        assert await store.is_pin_lock_enabled()

        loaded = await store.load_vault(PIN)
        assert [a.name for a in loaded.active_ledger.accounts] == ["Wallet"]

    @pytest.mark.asyncio
    async def test_wrong_pin(self, controller, store, audit_storage):
        await seed(store)
        await controller.start()
        with pytest.raises(WrongPinOrCorrupt):
            await controller.unlock("1357")
        assert controller.session is None
        assert controller.document is None
        assert AuditEventType.UNLOCK_FAILED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_unlock_and_lock(self, controller, store, audit_storage):
        await seed(store)
        await controller.start()
        document = await controller.unlock(PIN)
        assert account(document, "cash").balance == Decimal("1000")
        assert document.settings.pin_lock_enabled

        await controller.lock()
        assert controller.document is None
        with pytest.raises(VaultLocked):
            await controller.mutate(deposit())

        types = event_types(audit_storage)
        assert types.index(AuditEventType.VAULT_UNLOCKED) < types.index(AuditEventType.VAULT_LOCKED)


class TestMutations:
    """Tests for mutate() and persistence after it."""

    @pytest.mark.asyncio
    async def test_mutation_is_saved_encrypted(self, controller, store):
        await seed(store)
        await controller.start()
        await controller.unlock(PIN)

        result = await controller.mutate(deposit(), as_of=TODAY)
        assert result.persisted is True
        assert result.persist_error is None
        assert account(controller.document, "cash").balance == Decimal("1100")

        reloaded = await store.load_vault(PIN)
        assert account(reloaded, "cash").balance == Decimal("1100")

    @pytest.mark.asyncio
    async def test_dict_operations_are_accepted(self, controller, store):
        await seed(store)
        await controller.start()
        await controller.unlock(PIN)
        result = await controller.mutate({
            "op": "transfer",
            "from_account_id": "cash",
            "to_account_id": "card",
            "amount": "250",
        }, as_of=TODAY)
        assert account(result.document, "card").balance == Decimal("250")

    @pytest.mark.asyncio
    async def test_save_failure_keeps_in_memory_state(self, controller, store, kv, audit_storage):
        await seed(store)
        await controller.start()
        await controller.unlock(PIN)
        before = kv.snapshot()
        kv.fail_writes = True

        result = await controller.mutate(deposit(), as_of=TODAY)
        assert result.persisted is False
        assert "Simulated storage failure" in result.persist_error
        assert account(controller.document, "cash").balance == Decimal("1100")
        assert kv.snapshot() == before
        assert AuditEventType.SAVE_FAILED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_rejected_operation_changes_nothing(self, controller, store, audit_storage):
        await seed(store)
        await controller.start()
        await controller.unlock(PIN)
        current = controller.document

        with pytest.raises(OperationRejected):
            await controller.mutate(deposit("0"))
        assert controller.document is current
        assert AuditEventType.OPERATION_REJECTED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_plaintext_mode_saves_plaintext(self, controller, store):
        await controller.start()
        await controller.mutate({"op": "upsert_account", "name": "Wallet"}, as_of=TODAY)
        loaded = await store.load_vault_plain()
        assert [a.name for a in loaded.active_ledger.accounts] == ["Wallet"]

    @pytest.mark.asyncio
    async def test_audit_trail_carries_no_amounts(self, controller, store, audit_storage):
        await seed(store)
        await controller.start()
        await controller.unlock(PIN)
        result = await controller.mutate(deposit("777"), as_of=TODAY)

        applied = [e for e in audit_storage.events if e.event_type == AuditEventType.OPERATION_APPLIED]
        assert applied[0].details == {"operation": "add_account_entry", "entry_ids": result.entry_ids}
        for event in audit_storage.events:
            assert "amount" not in event.details
            assert "pin" not in event.details

    @pytest.mark.asyncio
    async def test_notices_are_audited(self, controller, store, audit_storage):
        await seed(store)
        await controller.start()
        await controller.unlock(PIN)
        result = await controller.mutate({
            "op": "add_account_entry", "account_id": "nowhere", "amount": "5", "direction": "in",
        })
        assert result.notices
        notice = next(e for e in audit_storage.events if e.event_type == AuditEventType.OPERATION_NOTICE)
        assert notice.details["notice_count"] == len(result.notices)
        assert "nowhere" not in notice.to_json_line()


class TestPinLockToggle:

    @pytest.mark.asyncio
    async def test_disable_then_enable(self, controller, store, kv, vault_settings):
        await seed(store)
        await controller.start()
        await controller.unlock(PIN)

        document = await controller.disable_pin_lock()
        assert not document.settings.pin_lock_enabled
        assert not await store.is_pin_lock_enabled()
        assert controller.session is None
        assert account(await store.load_vault_plain(), "cash").balance == Decimal("1000")

        await controller.mutate(deposit(), as_of=TODAY)
        await controller.enable_pin_lock(PIN)
        assert await store.is_pin_lock_enabled()
        assert vault_settings.plain_key not in kv.snapshot()
        assert account(await store.load_vault(PIN), "cash").balance == Decimal("1100")

    @pytest.mark.asyncio
    async def test_disable_needs_the_pin(self, controller, store):
        await seed(store)
        await controller.start()
        with pytest.raises(WrongPinOrCorrupt):
            await controller.disable_pin_lock()
        with pytest.raises(WrongPinOrCorrupt):
            await controller.disable_pin_lock("1357")
        assert await store.is_pin_lock_enabled()

    @pytest.mark.asyncio
    async def test_enable_without_pin(self, controller):
        await controller.start()
        with pytest.raises(NoPinSet):
            await controller.enable_pin_lock(PIN)


class TestBackupAndReset:

    @pytest.mark.asyncio
    async def test_restore_on_new_device(self, controller, store, vault_settings):
        await seed(store)
        backup = await controller.export_backup()

        other_store = VaultStore(InMemoryKeyValueStore(), vault_settings)
        other = VaultController(other_store)
        await other.import_backup(backup)
        assert other.document is None
        assert await other.start() == VaultStage.UNLOCK
        document = await other.unlock(PIN)
        assert account(document, "cash").balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_invalid_backup_is_audited(self, controller, store, kv, audit_storage):
        await seed(store)
        before = kv.snapshot()
        with pytest.raises(InvalidBackup):
            await controller.import_backup(json.dumps({"meta": None}))
        assert kv.snapshot() == before
        assert AuditEventType.BACKUP_REJECTED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_reset(self, controller, store, audit_storage):
        await seed(store)
        await controller.start()
        await controller.unlock(PIN)
        await controller.reset_all()
        assert not await store.has_pin()
        assert controller.document is None
        assert AuditEventType.VAULT_RESET in event_types(audit_storage)


class TestFactory:

    @pytest.mark.asyncio
    async def test_components_use_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FINVAULT_STORAGE_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("FINVAULT_VAULT_KDF_ITERATIONS", "1000")
        controller = create_app_components(Settings())

        assert await controller.start() == VaultStage.APP
        result = await controller.mutate({"op": "upsert_account", "name": "Cash"}, as_of=TODAY)
        assert result.persisted
        assert (tmp_path / "store.json").exists()
        assert (tmp_path / "audit.jsonl").exists()

    @pytest.mark.asyncio
    async def test_in_memory_backend_can_be_injected(self, monkeypatch):
        monkeypatch.setenv("FINVAULT_STORAGE_AUDIT_ENABLED", "false")
        kv = InMemoryKeyValueStore()
        controller = create_app_components(Settings(), kv=kv)
        await controller.start()
        await controller.mutate({"op": "add_ledger", "name": "Business"})
        assert kv.write_count == 1
