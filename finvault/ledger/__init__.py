"""
Ledger package.

Structure helpers, interest and asset calculations, and balance figures.
The engine that applies operations lives in finvault.ledger.engine.
"""

from finvault.ledger.assets import AssetSummary, calculate_asset_metrics
from finvault.ledger.balances import (
    BalanceDrift,
    LedgerTotals,
    apply_account_delta,
    base_balance,
    effective_balance,
    find_balance_drift,
    ledger_totals,
    recompute_from_scratch,
)
from finvault.ledger.interest import (
    CreditSummary,
    accrued_interest,
    add_months,
    credit_summary,
    days_between,
    months_between,
)
from finvault.ledger.model import (
    AccountNotFound,
    EntryNotFound,
    LedgerError,
    LedgerNotFound,
    OperationRejected,
    accounts_in_ledger,
    create_ledger,
    normalize_ledger,
    resolve_account_ref,
)

__all__ = [
    "AccountNotFound",
    "AssetSummary",
    "BalanceDrift",
    "CreditSummary",
    "EntryNotFound",
    "LedgerError",
    "LedgerNotFound",
    "LedgerTotals",
    "OperationRejected",
    "accounts_in_ledger",
    "accrued_interest",
    "add_months",
    "apply_account_delta",
    "base_balance",
    "calculate_asset_metrics",
    "create_ledger",
    "credit_summary",
    "days_between",
    "effective_balance",
    "find_balance_drift",
    "ledger_totals",
    "months_between",
    "normalize_ledger",
    "recompute_from_scratch",
    "resolve_account_ref",
]
