"""
Tests for key derivation and the vault cipher.
"""

import pytest

from finvault.crypto import (
    AuthenticationFailure,
    InvalidPin,
    PinTooShort,
    RandomnessUnavailable,
    decrypt,
    derive_key,
    encrypt,
    make_verifier,
    new_salt,
    random_bytes,
    verify_pin,
)
from finvault.crypto import kdf


SALT = bytes(range(16))
ITERATIONS = 1_000


class TestKeyDerivation:
    """Tests for PIN-based key derivation."""

    def test_derivation_is_deterministic(self):
        assert derive_key("1234", SALT, ITERATIONS) == derive_key("1234", SALT, ITERATIONS)

    def test_key_is_32_bytes(self):
        assert len(derive_key("1234", SALT, ITERATIONS)) == 32

    def test_inputs_change_the_key(self):
        key = derive_key("1234", SALT, ITERATIONS)
        assert key != derive_key("1235", SALT, ITERATIONS)
        assert key != derive_key("1234", bytes(16), ITERATIONS)
        assert key != derive_key("1234", SALT, ITERATIONS + 1)

    def test_short_pin_is_rejected(self):
        with pytest.raises(PinTooShort):
            derive_key("123", SALT, ITERATIONS)

    def test_pin_too_short_is_an_invalid_pin(self):
        with pytest.raises(InvalidPin):
            derive_key("", SALT, ITERATIONS)

    def test_non_positive_iterations_rejected(self):
        with pytest.raises(ValueError):
            derive_key("1234", SALT, 0)

    def test_verifier_matches_only_its_pin(self):
        verifier = make_verifier("1234", SALT)
        assert verify_pin("1234", SALT, verifier)
        assert not verify_pin("4321", SALT, verifier)
        assert not verify_pin("1234", bytes(16), verifier)

    def test_verifier_is_independent_of_derived_key(self):
        assert make_verifier("1234", SALT) != derive_key("1234", SALT, ITERATIONS)

    def test_salt_has_minimum_length(self):
        assert len(new_salt()) == 16
        with pytest.raises(ValueError):
            new_salt(8)

    def test_rng_failure_is_reported(self, monkeypatch):
        def broken(length):
            raise OSError("no entropy")

        monkeypatch.setattr(kdf.secrets, "token_bytes", broken)
        with pytest.raises(RandomnessUnavailable):
            random_bytes(12)


class TestVaultCipher:
    """Tests for AES-GCM encryption of the payload."""

    @pytest.fixture
    def key(self):
        return derive_key("1234", SALT, ITERATIONS)

    def test_round_trip(self, key):
        sealed = encrypt(key, b'{"ledgers": []}')
        assert decrypt(key, sealed.nonce, sealed.ciphertext) == b'{"ledgers": []}'

    def test_nonce_is_12_bytes_and_fresh(self, key):
        nonces = {encrypt(key, b"same payload").nonce for _ in range(50)}
        assert len(nonces) == 50
        assert all(len(n) == 12 for n in nonces)

    def test_wrong_key_fails_authentication(self, key):
        sealed = encrypt(key, b"secret")
        other = derive_key("9999", SALT, ITERATIONS)
        with pytest.raises(AuthenticationFailure):
            decrypt(other, sealed.nonce, sealed.ciphertext)

    def test_tampered_ciphertext_fails_authentication(self, key):
        sealed = encrypt(key, b"secret")
        tampered = bytes([sealed.ciphertext[0] ^ 1]) + sealed.ciphertext[1:]
        with pytest.raises(AuthenticationFailure):
            decrypt(key, sealed.nonce, tampered)

    def test_malformed_nonce_fails_the_same_way(self, key):
        sealed = encrypt(key, b"secret")
        with pytest.raises(AuthenticationFailure):
            decrypt(key, b"", sealed.ciphertext)
