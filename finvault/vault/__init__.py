"""
Vault Package

Encrypted persistence of the vault document and normalisation of every
stored shape earlier versions wrote.
"""

from finvault.vault.normalize import (
    RawShape,
    classify_raw,
    normalize_document,
    parse_document_json,
    serialize_document,
)
from finvault.vault.store import (
    InvalidBackup,
    NoPinSet,
    PinAlreadySet,
    PinMismatch,
    VaultError,
    VaultStore,
    WrongPinOrCorrupt,
)

__all__ = [
    "RawShape",
    "VaultStore",
    "classify_raw",
    "normalize_document",
    "parse_document_json",
    "serialize_document",
    # Exceptions
    "InvalidBackup",
    "NoPinSet",
    "PinAlreadySet",
    "PinMismatch",
    "VaultError",
    "WrongPinOrCorrupt",
]
