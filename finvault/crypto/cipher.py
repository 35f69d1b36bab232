"""
Vault Cipher

AES-256-GCM encryption of the serialized vault document.

DESIGN DECISION: encrypt() takes no nonce argument. A fresh random nonce is
generated inside every call and returned with the ciphertext, so a caller
cannot reuse one under the same key.
"""

from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from finvault.crypto.kdf import random_bytes


NONCE_BYTES = 12


@dataclass(frozen=True)
class SealedPayload:
    """Output of one encryption: the nonce and ciphertext-with-tag."""

    nonce: bytes
    ciphertext: bytes


def encrypt(key: bytes, plaintext: bytes, nonce_bytes: int = NONCE_BYTES) -> SealedPayload:
    """
    Encrypt plaintext under key with a freshly generated nonce.

    Raises:
        RandomnessUnavailable: If no nonce could be generated
    """
    nonce = random_bytes(nonce_bytes)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
    return SealedPayload(nonce=nonce, ciphertext=ciphertext)


def decrypt(key: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
    """
    Decrypt and authenticate.

    Raises:
        AuthenticationFailure: On a wrong key, a tampered ciphertext or a
            malformed nonce/key. The message never says which.
    """
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except (InvalidTag, ValueError) as e:
        raise AuthenticationFailure("Authentication failed") from e


class AuthenticationFailure(Exception):
    """AEAD tag did not verify."""
    pass
