"""
Vault Record Models for finvault

The at-rest records: key-derivation metadata, the encrypted document and the
backup bundle that carries both. Field aliases match what earlier versions
persisted ({saltB64, verifierB64, iterations} and {ivB64, ctB64}).
"""

import base64
import binascii
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


def _check_b64(v: str) -> str:
    try:
        b64decode(v)
    except (binascii.Error, ValueError, UnicodeEncodeError) as e:
        raise ValueError(f"Not valid base64: {e}")
    return v


class VaultMetadata(BaseModel):
    """
    Key-derivation parameters of one vault.

    Created once when the first PIN is set. The iteration count is read
    back from here forever after, so changing the default never locks
    anyone out of an older vault.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    salt_b64: str = Field(..., alias="saltB64", min_length=1)
    verifier_b64: str = Field(..., alias="verifierB64", min_length=1)
    iterations: int = Field(default=200_000, ge=1)

    @field_validator("salt_b64", "verifier_b64")
    @classmethod
    def validate_b64(cls, v: str) -> str:
        return _check_b64(v)

    @field_validator("iterations", mode="before")
    @classmethod
    def default_iterations(cls, v):
        """Very old metadata did not record the count."""
        return 200_000 if v in (None, "", 0) else v

    @property
    def salt(self) -> bytes:
        return b64decode(self.salt_b64)

    @property
    def verifier(self) -> bytes:
        return b64decode(self.verifier_b64)


class EncryptedRecord(BaseModel):
    """Nonce and AES-GCM ciphertext (tag appended) of the vault document."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    iv_b64: str = Field(..., alias="ivB64", min_length=1)
    ct_b64: str = Field(..., alias="ctB64", min_length=1)

    @field_validator("iv_b64", "ct_b64")
    @classmethod
    def validate_b64(cls, v: str) -> str:
        return _check_b64(v)

    @property
    def nonce(self) -> bytes:
        return b64decode(self.iv_b64)

    @property
    def ciphertext(self) -> bytes:
        return b64decode(self.ct_b64)


class BackupBundle(BaseModel):
    """Export format: {meta, vault}; either may be null on export."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    meta: Optional[VaultMetadata] = None
    vault: Optional[EncryptedRecord] = None

    def to_json_dict(self) -> dict:
        return {
            "meta": self.meta.model_dump(by_alias=True) if self.meta else None,
            "vault": self.vault.model_dump(by_alias=True) if self.vault else None,
        }


class VaultSession(BaseModel):
    """
    An unlocked session.

    Passed explicitly to every save/load instead of keeping the PIN in
    ambient state; dropping the session is what "lock" means.
    """

    pin: SecretStr
    unlocked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def reveal_pin(self) -> str:
        return self.pin.get_secret_value()
