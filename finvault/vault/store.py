"""
Vault Store

Persists the vault on top of a KeyValueStoreInterface:
- `meta`: key-derivation metadata {saltB64, verifierB64, iterations}
- `vault`: the encrypted document {ivB64, ctB64}
- `vaultPlain`: the unencrypted document used while PIN lock is disabled
- the "PIN lock enabled" flag

DESIGN DECISION: No key caching. Every load and save re-derives the key
from the PIN held by the caller's session. Key derivation and AES-GCM are
CPU-bound, so both run in a worker thread (asyncio.to_thread) to keep the
event loop responsive.

Failures during load never touch stored state. Writes that change more
than one record (new PIN, backup import) go through set_many so they land
together or not at all.
"""

import asyncio
import json
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from finvault.config import VaultSettings, get_settings
from finvault.crypto import (
    AuthenticationFailure,
    InvalidPin,
    check_pin,
    decrypt,
    derive_key,
    encrypt,
    make_verifier,
    new_salt,
    verify_pin,
)
from finvault.models.ledger import VaultDocument
from finvault.models.vault import (
    BackupBundle,
    EncryptedRecord,
    VaultMetadata,
    b64encode,
)
from finvault.services.storage import KeyValueStoreInterface
from finvault.services.storage.interface import StorageCorruptedError
from finvault.vault.normalize import normalize_document, parse_document_json, serialize_document


logger = structlog.get_logger(__name__)


class VaultStore:
    """
    Encrypted and plaintext persistence of the vault document.

    Usage:
        store = VaultStore(FileKeyValueStore(path))
        if not await store.has_pin():
            document = await store.set_new_pin("1234")
        document = await store.load_vault("1234")
        await store.save_vault("1234", document)
    """

    def __init__(
        self,
        kv: KeyValueStoreInterface,
        settings: Optional[VaultSettings] = None,
    ):
        self._kv = kv
        self._settings = settings or get_settings().vault

    @property
    def settings(self) -> VaultSettings:
        return self._settings

    # ===== RAW RECORDS =====

    async def _get_json(self, key: str) -> Any:
        """Stored JSON value, or None when absent or not valid JSON."""
        text = await self._kv.get(key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except ValueError:
            logger.warning("stored_record_not_json", key=key)
            return None

    async def get_metadata(self) -> Optional[VaultMetadata]:
        """Key-derivation metadata, or None when no usable PIN setup exists."""
        raw = await self._get_json(self._settings.meta_key)
        if not isinstance(raw, dict):
            return None
        try:
            return VaultMetadata.model_validate(raw)
        except ValidationError:
            logger.warning("vault_metadata_invalid")
            return None

    async def _get_record(self) -> Optional[EncryptedRecord]:
        raw = await self._get_json(self._settings.vault_key)
        if not isinstance(raw, dict):
            return None
        try:
            return EncryptedRecord.model_validate(raw)
        except ValidationError:
            return None

    async def has_pin(self) -> bool:
        return await self.get_metadata() is not None

    async def _require_metadata(self) -> VaultMetadata:
        meta = await self.get_metadata()
        if meta is None:
            raise NoPinSet("No PIN set.")
        return meta

    async def _key_for(self, pin: str, meta: VaultMetadata) -> bytes:
        check_pin(pin, self._settings.min_pin_length)
        if self._settings.verify_pin_on_unlock and not verify_pin(pin, meta.salt, meta.verifier):
            raise WrongPinOrCorrupt("verifier_mismatch")
        return await asyncio.to_thread(
            derive_key,
            pin,
            meta.salt,
            meta.iterations,
            self._settings.min_pin_length,
        )

    def _seal(self, key: bytes, document: VaultDocument) -> EncryptedRecord:
        sealed = encrypt(
            key,
            serialize_document(document).encode("utf-8"),
            self._settings.nonce_bytes,
        )
        return EncryptedRecord(
            ivB64=b64encode(sealed.nonce),
            ctB64=b64encode(sealed.ciphertext),
        )

    @staticmethod
    def _record_json(record: EncryptedRecord) -> str:
        return json.dumps(record.model_dump(by_alias=True))

    @staticmethod
    def _meta_json(meta: VaultMetadata) -> str:
        return json.dumps(meta.model_dump(by_alias=True))

    # ===== PIN SETUP =====

    async def set_new_pin(self, pin: str) -> VaultDocument:
        """
        Create metadata, verifier and an empty encrypted vault.

        Raises:
            PinAlreadySet: A PIN exists; reset_all() first
            PinTooShort: PIN below the minimum length
        """
        if await self.has_pin():
            raise PinAlreadySet("A PIN is already set. Reset the vault first.")
        check_pin(pin, self._settings.min_pin_length)

        salt = new_salt(self._settings.salt_bytes)
        meta = VaultMetadata(
            saltB64=b64encode(salt),
            verifierB64=b64encode(make_verifier(pin, salt)),
            iterations=self._settings.kdf_iterations,
        )
        document = normalize_document(None)
        key = await asyncio.to_thread(
            derive_key, pin, salt, meta.iterations, self._settings.min_pin_length
        )
        record = await asyncio.to_thread(self._seal, key, document)

        await self._kv.set_many({
            self._settings.meta_key: self._meta_json(meta),
            self._settings.vault_key: self._record_json(record),
        })
        logger.info("vault_created", iterations=meta.iterations)
        return document

    # ===== ENCRYPTED VAULT =====

    async def load_vault(self, pin: str) -> VaultDocument:
        """
        Decrypt and normalise the stored document.

        A PIN setup without a stored record yields an empty document.

        Raises:
            NoPinSet: No metadata stored
            PinTooShort: PIN below the minimum length
            WrongPinOrCorrupt: Verifier, authentication or parse failure
        """
        meta = await self._require_metadata()
        key = await self._key_for(pin, meta)

        text = await self._kv.get(self._settings.vault_key)
        if text is None:
            return normalize_document(None)
        try:
            record = EncryptedRecord.model_validate(json.loads(text))
        except ValueError as e:
            raise WrongPinOrCorrupt("malformed_record") from e

        try:
            plaintext = await asyncio.to_thread(decrypt, key, record.nonce, record.ciphertext)
        except AuthenticationFailure as e:
            raise WrongPinOrCorrupt("authentication_failed") from e

        try:
            return parse_document_json(plaintext.decode("utf-8"))
        except ValueError as e:
            raise WrongPinOrCorrupt("invalid_json") from e

    async def save_vault(self, pin: str, document: VaultDocument) -> None:
        """
        Encrypt the document under a fresh nonce and overwrite the record.

        Raises:
            NoPinSet: No metadata stored
            WrongPinOrCorrupt: PIN does not match the stored verifier
            StorageError: The write failed
        """
        meta = await self._require_metadata()
        key = await self._key_for(pin, meta)
        record = await asyncio.to_thread(self._seal, key, document)
        await self._kv.set(self._settings.vault_key, self._record_json(record))
        logger.debug("vault_saved", encrypted=True)

    # ===== PLAINTEXT FALLBACK =====

    async def load_vault_plain(self) -> VaultDocument:
        """
        The unencrypted document (empty when none stored).

        Raises:
            StorageCorruptedError: The stored record is not valid JSON
        """
        text = await self._kv.get(self._settings.plain_key)
        if text is None:
            return normalize_document(None)
        try:
            return parse_document_json(text)
        except ValueError as e:
            raise StorageCorruptedError(f"Plaintext vault is unreadable: {e}") from e

    async def save_vault_plain(self, document: VaultDocument) -> None:
        await self._kv.set(self._settings.plain_key, serialize_document(document))
        logger.debug("vault_saved", encrypted=False)

    async def clear_vault_plain(self) -> None:
        await self._kv.remove(self._settings.plain_key)

    # ===== FLAGS =====

    async def is_pin_lock_enabled(self) -> bool:
        """The persisted "PIN lock enabled" flag; absent means disabled."""
        return await self._get_json(self._settings.pin_lock_key) is True

    async def set_pin_lock_enabled(self, enabled: bool) -> None:
        await self._kv.set(self._settings.pin_lock_key, json.dumps(bool(enabled)))

    # ===== BACKUP =====

    async def export_backup(self) -> str:
        """
        Serialise {meta, vault} for backup.

        Either side is null when absent. The document stays encrypted, so
        the backup is only useful together with the PIN.
        """
        bundle = BackupBundle(
            meta=await self.get_metadata(),
            vault=await self._get_record(),
        )
        return json.dumps(bundle.to_json_dict(), indent=2)

    async def import_backup(self, text: str) -> BackupBundle:
        """
        Replace local metadata and encrypted record with a backup.

        The whole payload is validated before anything is written, and both
        records are written together.

        Raises:
            InvalidBackup: Not JSON, not an object, or meta/vault missing or malformed
            StorageError: The write failed (nothing was changed)
        """
        try:
            raw = json.loads(text)
        except (TypeError, ValueError) as e:
            raise InvalidBackup("Invalid backup file.") from e
        if not isinstance(raw, dict):
            raise InvalidBackup("Invalid backup file.")
        if not raw.get("meta") or not raw.get("vault"):
            raise InvalidBackup("Backup missing meta or vault.")
        try:
            bundle = BackupBundle.model_validate(raw)
        except ValidationError as e:
            raise InvalidBackup(f"Backup fields are malformed: {e.error_count()} error(s)") from e

        await self._kv.set_many({
            self._settings.meta_key: self._meta_json(bundle.meta),
            self._settings.vault_key: self._record_json(bundle.vault),
        })
        logger.info("backup_imported", iterations=bundle.meta.iterations)
        return bundle

    # ===== RESET =====

    async def reset_all(self) -> None:
        """Remove metadata, encrypted record and plaintext record."""
        await self._kv.remove_many([
            self._settings.meta_key,
            self._settings.vault_key,
            self._settings.plain_key,
        ])
        logger.info("vault_reset")


class VaultError(Exception):
    """Base exception for vault persistence."""
    pass


class NoPinSet(VaultError):
    """An operation needing a PIN ran before one was set."""
    pass


class PinAlreadySet(VaultError):
    """set_new_pin() on a vault that already has a PIN."""
    pass


class PinMismatch(InvalidPin):
    """PIN and its confirmation differ."""
    pass


class WrongPinOrCorrupt(VaultError):
    """
    The vault could not be opened.

    The message never says whether the PIN or the data was at fault;
    `reason` keeps that for diagnostics.
    """

    MESSAGE = "Wrong PIN or vault corrupted."

    def __init__(self, reason: str):
        super().__init__(self.MESSAGE)
        self.reason = reason


class InvalidBackup(VaultError):
    """Backup payload missing required fields or malformed."""
    pass
