"""
Ledger Model

Builds and repairs ledgers, and answers structural questions about a vault
document: which accounts a ledger sees, which ledger owns an account, how a
free-text account reference resolves.

DESIGN DECISION: Normalisation only fills what is missing or malformed.
Ids, names and groups the user customised are never rewritten, so running
it twice yields the same ledger.
"""

from typing import Any, Iterable, Optional

from finvault.models.ledger import (
    Account,
    AccountTransaction,
    Categories,
    CategoryMeta,
    EntryKind,
    Group,
    GroupType,
    Ledger,
    SubAccount,
    Transaction,
    VaultDocument,
    default_groups,
    new_id,
)
from finvault.models.operations import ValidationResult


# Keys older versions used inside a ledger object
_LEGACY_LEDGER_KEYS = {
    "txns": "transactions",
    "accountTxns": "accountTransactions",
}


def create_ledger(
    name: str = "Personal",
    *,
    ledger_id: Optional[str] = None,
    transactions: Optional[list[Transaction]] = None,
    accounts: Optional[list[Account]] = None,
    account_transactions: Optional[list[AccountTransaction]] = None,
    categories: Optional[Categories] = None,
    category_meta: Optional[CategoryMeta] = None,
    groups: Optional[list[Group]] = None,
) -> Ledger:
    """
    Create a ledger with defaults for everything not given.

    Missing groups become the three starter groups, missing category lists
    become the default expense/income lists, and accounts without a
    resolvable group are assigned one.
    """
    ledger = Ledger(
        id=ledger_id or new_id(),
        name=name or "Personal",
        transactions=list(transactions or []),
        account_transactions=list(account_transactions or []),
        categories=categories or Categories(),
        category_meta=category_meta or CategoryMeta(),
        groups=list(groups) if groups else default_groups(),
    )
    ledger.accounts = normalize_accounts_with_groups(accounts or [], ledger.groups)
    _fill_ledger_ids(ledger)
    return ledger


def rename_legacy_ledger_keys(data: dict) -> dict:
    """Map `txns` / `accountTxns` onto the current key names."""
    data = dict(data)
    for old, new in _LEGACY_LEDGER_KEYS.items():
        if old in data:
            value = data.pop(old)
            data.setdefault(new, value)
    return data


def normalize_ledger(raw: Any) -> Ledger:
    """
    Apply create_ledger defaults to a possibly partial stored ledger.

    Accepts a raw dict (as stored) or an already-parsed Ledger. Anything
    else yields a fresh empty ledger.
    """
    if isinstance(raw, Ledger):
        ledger = raw.model_copy(deep=True)
    elif isinstance(raw, dict):
        ledger = Ledger.model_validate(rename_legacy_ledger_keys(raw))
    else:
        return create_ledger()

    ledger.accounts = normalize_accounts_with_groups(ledger.accounts, ledger.groups)
    _fill_ledger_ids(ledger)
    return ledger


def normalize_accounts_with_groups(
    accounts: Iterable[Account],
    groups: list[Group],
) -> list[Account]:
    """
    Give every account a group that exists.

    An account keeps a group id that resolves. Otherwise the legacy
    `groupType`/`type` hint (or its own account_type) picks the first group
    of that type, and failing that the first group.
    """
    group_ids = {g.id for g in groups}
    by_type: dict[str, Group] = {}
    for group in groups:
        by_type.setdefault(group.type.value, group)
    fallback = groups[0] if groups else None

    result = []
    for account in accounts:
        if account.group_id in group_ids:
            result.append(account)
            continue
        hint = account.legacy_type_hint()
        if hint is None and account.account_type is not None:
            hint = account.account_type.value
        group = by_type.get(hint) if hint else None
        group = group or fallback
        if group is None:
            result.append(account)
        else:
            result.append(account.model_copy(update={"group_id": group.id}))
    return result


def _fill_ledger_ids(ledger: Ledger) -> None:
    for account in ledger.accounts:
        if account.ledger_id is None:
            account.ledger_id = ledger.id
        for sub in account.sub_accounts:
            if sub.ledger_id is None:
                sub.ledger_id = account.ledger_id


# =============================================================================
# LOOKUPS
# =============================================================================

def account_type(account: Account, groups: list[Group]) -> GroupType:
    """
    Classification of an account: its own override, else its group's type,
    else the legacy hint, else debit.
    """
    if account.account_type is not None:
        return account.account_type
    for group in groups:
        if group.id == account.group_id:
            return group.type
    hint = account.legacy_type_hint()
    if hint in {t.value for t in GroupType}:
        return GroupType(hint)
    return GroupType.DEBIT


def locate_account(
    document: VaultDocument,
    account_id: Optional[str],
) -> Optional[tuple[Ledger, Account]]:
    """Find an account by id in any ledger; returns (owning ledger, account)."""
    if not account_id:
        return None
    for ledger in document.ledgers:
        account = ledger.find_account(account_id)
        if account is not None:
            return ledger, account
    return None


def locate_entry(
    document: VaultDocument,
    entry_id: str,
) -> Optional[tuple[Ledger, AccountTransaction]]:
    for ledger in document.ledgers:
        entry = ledger.find_entry(entry_id)
        if entry is not None:
            return ledger, entry
    return None


def locate_transaction(
    document: VaultDocument,
    transaction_id: str,
    prefer_ledger_id: Optional[str] = None,
) -> Optional[tuple[Ledger, Transaction]]:
    preferred = document.find_ledger(prefer_ledger_id)
    ordered = ([preferred] if preferred else []) + [
        l for l in document.ledgers if l is not preferred
    ]
    for ledger in ordered:
        txn = ledger.find_transaction(transaction_id)
        if txn is not None:
            return ledger, txn
    return None


def account_visible_in(account: Account, owner: Ledger, ledger_id: str) -> bool:
    """An account is visible in a ledger it is assigned to, or that one of its sub-accounts is."""
    if (account.ledger_id or owner.id) == ledger_id:
        return True
    return any(sub.ledger_id == ledger_id for sub in account.sub_accounts)


def accounts_in_ledger(
    document: VaultDocument,
    ledger_id: Optional[str] = None,
    include_archived: bool = True,
) -> list[Account]:
    """
    Accounts visible in one ledger: its own plus accounts of other ledgers
    shared into it. The ledger's own accounts come first.
    """
    ledger_id = ledger_id or document.active_ledger_id
    own = document.find_ledger(ledger_id)
    ordered = ([own] if own else []) + [l for l in document.ledgers if l is not own]

    seen: set[str] = set()
    result = []
    for ledger in ordered:
        for account in ledger.accounts:
            if account.id in seen:
                continue
            if not include_archived and account.archived:
                continue
            if account_visible_in(account, ledger, ledger_id):
                seen.add(account.id)
                result.append(account)
    return result


def sub_accounts_in_ledger(account: Account, ledger_id: Optional[str]) -> list[SubAccount]:
    """Sub-accounts counted in a ledger's view (unassigned ones count everywhere)."""
    if ledger_id is None:
        return list(account.sub_accounts)
    return [
        sub for sub in account.sub_accounts
        if sub.ledger_id is None or sub.ledger_id == ledger_id
    ]


def resolve_account_ref(
    document: VaultDocument,
    ref: Optional[str],
    ledger_id: Optional[str] = None,
) -> Optional[tuple[Ledger, Account]]:
    """
    Resolve an account by id, or failing that by exact name.

    Names are looked up in the given (default: active) ledger's view first,
    then anywhere in the document.
    """
    if not ref:
        return None
    found = locate_account(document, ref)
    if found is not None:
        return found

    for account in accounts_in_ledger(document, ledger_id):
        if account.name == ref:
            return locate_account(document, account.id)
    for ledger in document.ledgers:
        for account in ledger.accounts:
            if account.name == ref:
                return ledger, account
    return None


def resolve_sub_account_id(account: Account, requested: Optional[str]) -> Optional[str]:
    """
    Pick the sub-account a new entry is booked against.

    The requested one when it exists, else the first (default) sub-account,
    else None for an account without sub-accounts.
    """
    if not account.sub_accounts:
        return None
    if requested and account.find_sub_account(requested) is not None:
        return requested
    return account.sub_accounts[0].id


def linked_entries(
    document: VaultDocument,
    entry: AccountTransaction,
) -> list[tuple[Ledger, AccountTransaction]]:
    """
    The other legs of a multi-leg entry.

    Legs share a link_id; transfers written without one are paired by the
    `<base>-in` / `<base>-out` id convention.
    """
    result = []
    base = entry.transfer_base_id if entry.kind == EntryKind.TRANSFER else None
    for ledger in document.ledgers:
        for other in ledger.account_transactions:
            if other.id == entry.id:
                continue
            if entry.link_id:
                if other.link_id == entry.link_id:
                    result.append((ledger, other))
            elif base and other.kind == EntryKind.TRANSFER and other.transfer_base_id == base:
                result.append((ledger, other))
    return result


def has_history(document: VaultDocument, account_id: str) -> bool:
    """True when any entry or category transaction references the account."""
    for ledger in document.ledgers:
        if any(e.account_id == account_id for e in ledger.account_transactions):
            return True
        if any(t.account_id == account_id for t in ledger.transactions):
            return True
    return False


def entries_for_account(document: VaultDocument, account_id: str) -> list[AccountTransaction]:
    """Every entry booked against an account, across all ledgers, in stored order."""
    return [
        entry
        for ledger in document.ledgers
        for entry in ledger.account_transactions
        if entry.account_id == account_id
    ]


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class AccountNotFound(LedgerError):
    """An account id or name did not resolve."""
    pass


class LedgerNotFound(LedgerError):
    """A ledger id did not resolve."""
    pass


class EntryNotFound(LedgerError):
    """An account entry or category transaction id did not resolve."""
    pass


class OperationRejected(LedgerError):
    """Validation found error-level issues; nothing was changed."""

    def __init__(self, result: ValidationResult):
        super().__init__(result.summary())
        self.result = result
