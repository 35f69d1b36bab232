"""
Key Derivation

Turns a PIN + salt + iteration count into a 256-bit AES key with
PBKDF2-HMAC-SHA256, and produces the independent PIN verifier stored in
the vault metadata.

DESIGN DECISION: derive_key is pure and deterministic. It never picks its
own salt or iteration count - those always come from the vault metadata,
so a vault created with an older default stays decryptable forever.
"""

import hashlib
import hmac
import secrets

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


MIN_PIN_LENGTH = 4
KEY_LENGTH = 32
DEFAULT_ITERATIONS = 200_000
DEFAULT_SALT_BYTES = 16


def check_pin(pin: str, min_length: int = MIN_PIN_LENGTH) -> None:
    """
    Raise PinTooShort unless pin has at least min_length characters.
    """
    if not isinstance(pin, str) or len(pin) < min_length:
        raise PinTooShort(f"PIN must be at least {min_length} characters.")


def derive_key(
    pin: str,
    salt: bytes,
    iterations: int,
    min_length: int = MIN_PIN_LENGTH,
) -> bytes:
    """
    Derive the vault key.

    Args:
        pin: The user's PIN
        salt: Per-vault random salt (from metadata)
        iterations: PBKDF2 iteration count (from metadata)
        min_length: Minimum accepted PIN length

    Returns:
        32 key bytes, identical for identical inputs

    Raises:
        PinTooShort: If the PIN is below the minimum length
    """
    check_pin(pin, min_length)
    if iterations < 1:
        raise ValueError("iterations must be positive")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(pin.encode("utf-8"))


def make_verifier(pin: str, salt: bytes) -> bytes:
    """One-way PIN verifier: SHA-256 over the PIN bytes followed by the salt."""
    return hashlib.sha256(pin.encode("utf-8") + salt).digest()


def verify_pin(pin: str, salt: bytes, verifier: bytes) -> bool:
    """Constant-time comparison of a candidate PIN against a stored verifier."""
    return hmac.compare_digest(make_verifier(pin, salt), verifier)


def random_bytes(length: int) -> bytes:
    """
    Cryptographically secure random bytes.

    Raises:
        RandomnessUnavailable: If the OS random source fails
    """
    try:
        return secrets.token_bytes(length)
    except (OSError, NotImplementedError) as e:
        raise RandomnessUnavailable(f"Secure random source unavailable: {e}") from e


def new_salt(length: int = DEFAULT_SALT_BYTES) -> bytes:
    if length < DEFAULT_SALT_BYTES:
        raise ValueError(f"Salt must be at least {DEFAULT_SALT_BYTES} bytes")
    return random_bytes(length)


class InvalidPin(Exception):
    """PIN rejected (too short, or confirmation mismatch at setup)."""
    pass


class PinTooShort(InvalidPin):
    """PIN shorter than the minimum length."""
    pass


class RandomnessUnavailable(Exception):
    """The secure random byte generator failed."""
    pass
