"""
Crypto Package

PIN-based key derivation and authenticated encryption of the vault payload.
"""

from finvault.crypto.kdf import (
    InvalidPin,
    PinTooShort,
    RandomnessUnavailable,
    check_pin,
    derive_key,
    make_verifier,
    new_salt,
    random_bytes,
    verify_pin,
)
from finvault.crypto.cipher import (
    AuthenticationFailure,
    SealedPayload,
    decrypt,
    encrypt,
)

__all__ = [
    # Key derivation
    "check_pin",
    "derive_key",
    "make_verifier",
    "new_salt",
    "random_bytes",
    "verify_pin",
    # Cipher
    "SealedPayload",
    "decrypt",
    "encrypt",
    # Exceptions
    "AuthenticationFailure",
    "InvalidPin",
    "PinTooShort",
    "RandomnessUnavailable",
]
