"""
Balances: delta routing, read-side figures and the replay reference.

Account and sub-account balances are caches maintained incrementally by the
engine. Everything here either applies one delta to that cache, reads a
displayable figure from it, or rebuilds it from the full entry log so the
cache can be checked.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from finvault.ledger.assets import AssetSummary, calculate_asset_metrics
from finvault.ledger.interest import CreditSummary, credit_summary
from finvault.ledger.model import (
    account_type,
    accounts_in_ledger,
    entries_for_account,
    locate_account,
    sub_accounts_in_ledger,
)
from finvault.models.ledger import Account, GroupType, VaultDocument


LIABILITY_TYPES = (GroupType.CREDIT, GroupType.LOAN)


def apply_account_delta(account: Account, sub_account_id: Optional[str], delta: Decimal) -> None:
    """
    Add delta to the cached balance an entry is booked against.

    The named sub-account when it exists; otherwise the account's own
    balance (accounts without sub-accounts, and entries recorded before the
    account had any).
    """
    if delta == 0:
        return
    sub = account.find_sub_account(sub_account_id)
    if sub is not None:
        sub.balance += delta
    else:
        account.balance += delta


def base_balance(account: Account, ledger_id: Optional[str] = None) -> Decimal:
    """
    Cash / principal figure before interest or mark-to-market.

    With sub-accounts it is the sum of those counted in ledger_id's view
    (all of them when ledger_id is None); without, the account balance.
    """
    if account.has_sub_accounts:
        return sum(
            (sub.balance for sub in sub_accounts_in_ledger(account, ledger_id)),
            Decimal(0),
        )
    return account.balance


def _groups_for(document: VaultDocument, account: Account):
    found = locate_account(document, account.id)
    if found is not None:
        return found[0].groups
    return document.active_ledger.groups


def resolved_account_type(document: VaultDocument, account: Account) -> GroupType:
    return account_type(account, _groups_for(document, account))


def asset_summary(document: VaultDocument, account: Account) -> AssetSummary:
    return calculate_asset_metrics(entries_for_account(document, account.id))


def account_credit_summary(
    document: VaultDocument,
    account: Account,
    as_of: Optional[date] = None,
) -> CreditSummary:
    return credit_summary(entries_for_account(document, account.id), as_of)


def effective_balance(
    document: VaultDocument,
    account: Account,
    ledger_id: Optional[str] = None,
    as_of: Optional[date] = None,
) -> Decimal:
    """
    The displayable balance of an account.

    - debit: the base balance
    - credit / loan: base balance plus interest accrued as of `as_of`
    - asset: market value of held units plus uninvested cash, where
      uninvested cash = base balance - cost basis + realized gain
    """
    base = base_balance(account, ledger_id)
    kind = resolved_account_type(document, account)

    if kind in LIABILITY_TYPES:
        return base + account_credit_summary(document, account, as_of).accrued
    if kind == GroupType.ASSET:
        summary = asset_summary(document, account)
        return summary.market_value + (base - summary.cost_basis + summary.realized_gain_total)
    return base


@dataclass(frozen=True)
class LedgerTotals:
    assets: Decimal
    liabilities: Decimal

    @property
    def net_worth(self) -> Decimal:
        return self.assets - self.liabilities


def ledger_totals(
    document: VaultDocument,
    ledger_id: Optional[str] = None,
    as_of: Optional[date] = None,
) -> LedgerTotals:
    """
    Assets (debit + asset accounts) and liabilities (credit + loan accounts)
    over the non-archived accounts visible in a ledger.
    """
    ledger_id = ledger_id or document.active_ledger_id
    assets = Decimal(0)
    liabilities = Decimal(0)
    for account in accounts_in_ledger(document, ledger_id, include_archived=False):
        value = effective_balance(document, account, ledger_id, as_of)
        if resolved_account_type(document, account) in LIABILITY_TYPES:
            liabilities += value
        else:
            assets += value
    return LedgerTotals(assets=assets, liabilities=liabilities)


# =============================================================================
# REPLAY REFERENCE
# =============================================================================

def recompute_from_scratch(document: VaultDocument) -> VaultDocument:
    """
    Rebuild every cached balance by replaying all entries from zero.

    Returns a new document; the input is not modified. Entries whose
    account no longer exists are skipped. A parent balance of an account
    with sub-accounts is rebuilt too (it only receives entries booked
    without a sub-account).
    """
    rebuilt = document.model_copy(deep=True)
    for ledger in rebuilt.ledgers:
        for account in ledger.accounts:
            account.balance = Decimal(0)
            for sub in account.sub_accounts:
                sub.balance = Decimal(0)

    for ledger in rebuilt.ledgers:
        for entry in ledger.account_transactions:
            found = locate_account(rebuilt, entry.account_id)
            if found is None:
                continue
            apply_account_delta(found[1], entry.sub_account_id, entry.delta)
    return rebuilt


@dataclass(frozen=True)
class BalanceDrift:
    account_id: str
    sub_account_id: Optional[str]
    cached: Decimal
    replayed: Decimal

    @property
    def difference(self) -> Decimal:
        return self.cached - self.replayed


def find_balance_drift(document: VaultDocument) -> list[BalanceDrift]:
    """Every cached balance that differs from its replayed value."""
    replayed = recompute_from_scratch(document)
    drift = []
    for ledger, rebuilt_ledger in zip(document.ledgers, replayed.ledgers):
        for account, rebuilt in zip(ledger.accounts, rebuilt_ledger.accounts):
            if account.balance != rebuilt.balance:
                drift.append(BalanceDrift(account.id, None, account.balance, rebuilt.balance))
            for sub, rebuilt_sub in zip(account.sub_accounts, rebuilt.sub_accounts):
                if sub.balance != rebuilt_sub.balance:
                    drift.append(BalanceDrift(account.id, sub.id, sub.balance, rebuilt_sub.balance))
    return drift
