"""
Stored Document Normalisation

Every shape the vault payload has ever been persisted in maps onto the
current VaultDocument through exactly one adapter.

DESIGN DECISION: The set of input shapes is closed. classify_raw() tags the
raw value once and the matching adapter does the conversion, instead of
shape checks spread across the loaders:

- EMPTY: nothing stored yet (or something unusable) -> one empty ledger
- TRANSACTION_ARRAY: the oldest format, a bare list of transactions
- LEDGERS: an object with a `ledgers` array (current format)
- FLAT_LEGACY: a single-book object with top-level txns/categories

Normalising an already-normalised document returns an equal document.
"""

import json
from enum import Enum
from typing import Any

from finvault.ledger.model import create_ledger, normalize_ledger
from finvault.models.ledger import (
    Account,
    AccountTransaction,
    Categories,
    CategoryMeta,
    Ledger,
    Transaction,
    VaultDocument,
)


class RawShape(str, Enum):
    EMPTY = "empty"
    TRANSACTION_ARRAY = "transaction_array"
    LEDGERS = "ledgers"
    FLAT_LEGACY = "flat_legacy"


# Vault-level keys that older versions wrote next to (or instead of) ledgers
_LEGACY_TOP_LEVEL_KEYS = ("accounts", "accountTxns", "accountTransactions")
_KNOWN_TOP_LEVEL_KEYS = {
    "ledgers", "activeLedgerId", "settings",
    "txns", "transactions", "categories", "categoryMeta",
    *_LEGACY_TOP_LEVEL_KEYS,
}


def classify_raw(raw: Any) -> RawShape:
    if isinstance(raw, list):
        return RawShape.TRANSACTION_ARRAY
    if not isinstance(raw, dict) or not raw:
        return RawShape.EMPTY
    if isinstance(raw.get("ledgers"), list):
        return RawShape.LEDGERS
    return RawShape.FLAT_LEGACY


def _settings_of(raw: dict) -> dict:
    settings = raw.get("settings")
    settings = dict(settings) if isinstance(settings, dict) else {}
    settings["pinLockEnabled"] = bool(settings.get("pinLockEnabled"))
    return settings


def _unknown_keys(raw: dict) -> dict:
    """Top-level keys this version does not model, kept as they are."""
    return {k: v for k, v in raw.items() if k not in _KNOWN_TOP_LEVEL_KEYS}


def _list_of(raw: dict, *keys: str) -> list:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, list):
            return value
    return []


# =============================================================================
# ADAPTERS
# =============================================================================

def _from_empty(raw: Any) -> VaultDocument:
    ledger = create_ledger()
    return VaultDocument(ledgers=[ledger], active_ledger_id=ledger.id)


def _from_transaction_array(raw: list) -> VaultDocument:
    transactions = [Transaction.model_validate(t) for t in raw if isinstance(t, dict)]
    ledger = create_ledger(transactions=transactions)
    return VaultDocument(ledgers=[ledger], active_ledger_id=ledger.id)


def _from_ledgers(raw: dict) -> VaultDocument:
    ledgers = [normalize_ledger(item) for item in raw["ledgers"]]
    document = VaultDocument(
        ledgers=ledgers,
        active_ledger_id=raw.get("activeLedgerId") or "",
        settings=_settings_of(raw),
        **_unknown_keys(raw),
    )
    _migrate_top_level_accounts(document, raw)
    return document


def _from_flat_legacy(raw: dict) -> VaultDocument:
    ledger = create_ledger(
        transactions=[
            Transaction.model_validate(t)
            for t in _list_of(raw, "txns", "transactions")
            if isinstance(t, dict)
        ],
        categories=Categories.model_validate(raw["categories"])
        if isinstance(raw.get("categories"), dict) else None,
        category_meta=CategoryMeta.model_validate(raw["categoryMeta"])
        if isinstance(raw.get("categoryMeta"), dict) else None,
    )
    document = VaultDocument(
        ledgers=[ledger],
        active_ledger_id=ledger.id,
        settings=_settings_of(raw),
        **_unknown_keys(raw),
    )
    _migrate_top_level_accounts(document, raw)
    return document


_ADAPTERS = {
    RawShape.EMPTY: _from_empty,
    RawShape.TRANSACTION_ARRAY: _from_transaction_array,
    RawShape.LEDGERS: _from_ledgers,
    RawShape.FLAT_LEGACY: _from_flat_legacy,
}


def _migrate_top_level_accounts(document: VaultDocument, raw: dict) -> None:
    """
    Move vault-level accounts and entries into their ledgers.

    An account goes to the ledger its ledgerId names, else the active
    ledger. An entry goes to the ledger that now owns its account, else the
    active ledger. Ids already present in the target are skipped.
    """
    accounts = [Account.model_validate(a) for a in _list_of(raw, "accounts") if isinstance(a, dict)]
    entries = [
        AccountTransaction.model_validate(e)
        for e in _list_of(raw, "accountTxns", "accountTransactions")
        if isinstance(e, dict) and e.get("accountId")
    ]
    if not accounts and not entries:
        return

    owner_of: dict[str, Ledger] = {}
    for ledger in document.ledgers:
        for account in ledger.accounts:
            owner_of[account.id] = ledger

    for account in accounts:
        if account.id in owner_of:
            continue
        target = document.find_ledger(account.ledger_id) or document.active_ledger
        target.accounts.append(account)
        owner_of[account.id] = target

    for entry in entries:
        target = owner_of.get(entry.account_id, document.active_ledger)
        if target.find_entry(entry.id) is None:
            target.account_transactions.append(entry)

    # Re-run ledger defaults so migrated accounts get groups and ledger ids
    document.ledgers = [normalize_ledger(ledger) for ledger in document.ledgers]


def normalize_document(raw: Any) -> VaultDocument:
    """
    Convert any stored payload into a VaultDocument.

    Accepts the decoded JSON value (or an already-built VaultDocument).
    """
    if isinstance(raw, VaultDocument):
        raw = raw.to_json_dict()
    return _ADAPTERS[classify_raw(raw)](raw)


def parse_document_json(text: str) -> VaultDocument:
    """
    Decode a stored JSON payload and normalise it.

    Raises:
        ValueError: text is not valid JSON
    """
    return normalize_document(json.loads(text))


def serialize_document(document: VaultDocument) -> str:
    return json.dumps(document.to_json_dict(), ensure_ascii=False)
