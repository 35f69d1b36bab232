"""
Shared fixtures.

Vault tests run against the in-memory key-value store with a reduced PBKDF2
iteration count; nothing touches the real data directory.
"""

import pytest

from finvault.config import VaultSettings
from finvault.ledger.engine import BalanceEngine
from finvault.services.storage import InMemoryAuditStorage, InMemoryKeyValueStore
from finvault.vault import VaultStore

from helpers import build_document


@pytest.fixture
def vault_settings():
    return VaultSettings(kdf_iterations=1_000)


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv, vault_settings):
    return VaultStore(kv, vault_settings)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def engine():
    return BalanceEngine()


@pytest.fixture
def document():
    return build_document()
