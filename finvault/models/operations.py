"""
Mutation Operation Models

Every change to the vault document is expressed as one of these intents.
The UI builds an intent, the validator checks it, the engine turns it into
a new document. Nothing mutates the document directly.

DESIGN DECISION: Operations form a closed, discriminated union on `op`.
Adding a new kind of change means adding a model here and a handler in the
engine - there is no free-form "patch" operation.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from finvault.models.ledger import (
    Categories,
    CategoryMeta,
    CreditType,
    Direction,
    Group,
    GroupType,
    TransactionType,
    VaultDocument,
)


class OperationModel(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


# =============================================================================
# CATEGORY TRANSACTIONS
# =============================================================================

class AddTransaction(OperationModel):
    """Record income/expense; optionally move money on an account (by id or name)."""
    op: Literal["add_transaction"] = "add_transaction"
    type: TransactionType
    amount: Decimal
    category: str = ""
    note: str = ""
    on: Optional[date] = Field(default=None, description="Transaction date (default today)")
    account_id: Optional[str] = None
    sub_account_id: Optional[str] = None


class UpdateTransaction(OperationModel):
    """Edit a category transaction. Only fields explicitly set are changed."""
    op: Literal["update_transaction"] = "update_transaction"
    transaction_id: str
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = None
    category: Optional[str] = None
    note: Optional[str] = None
    on: Optional[date] = None
    account_id: Optional[str] = None
    sub_account_id: Optional[str] = None


class DeleteTransaction(OperationModel):
    op: Literal["delete_transaction"] = "delete_transaction"
    transaction_id: str


class AddReimbursement(OperationModel):
    """Income that pays back part of an earlier expense."""
    op: Literal["add_reimbursement"] = "add_reimbursement"
    original_transaction_id: str
    amount: Decimal
    account_id: str
    sub_account_id: Optional[str] = None
    on: Optional[date] = None


# =============================================================================
# ACCOUNT ENTRIES
# =============================================================================

class AddAccountEntry(OperationModel):
    """A standalone balance adjustment on one account."""
    op: Literal["add_account_entry"] = "add_account_entry"
    account_id: str
    amount: Decimal
    direction: Direction
    note: str = ""
    sub_account_id: Optional[str] = None
    on: Optional[date] = None


class Transfer(OperationModel):
    op: Literal["transfer"] = "transfer"
    from_account_id: str
    to_account_id: str
    amount: Decimal
    note: str = ""
    from_sub_account_id: Optional[str] = None
    to_sub_account_id: Optional[str] = None
    on: Optional[date] = None


class AddCredit(OperationModel):
    """
    Principal received from a creditor.

    The creditor account gets the interest-bearing "in" entry; when
    credit_to_account_id is given the cash also lands there.
    """
    op: Literal["add_credit"] = "add_credit"
    account_id: str
    amount: Decimal
    credit_rate: Decimal = Decimal(0)
    credit_type: CreditType = CreditType.SIMPLE
    receive_date: Optional[date] = None
    interest_start_date: Optional[date] = None
    note: str = ""
    sub_account_id: Optional[str] = None
    credit_to_account_id: Optional[str] = None
    credit_to_sub_account_id: Optional[str] = None


class UpdateAccountEntry(OperationModel):
    """
    Edit an entry. Only fields explicitly set are changed.

    Balance effects (of the entry and of its transfer/credit pair) are
    reverted and re-applied, never overwritten.
    """
    op: Literal["update_account_entry"] = "update_account_entry"
    entry_id: str
    amount: Optional[Decimal] = None
    account_id: Optional[str] = None
    sub_account_id: Optional[str] = None
    direction: Optional[Direction] = None
    note: Optional[str] = None
    on: Optional[date] = None
    credit_rate: Optional[Decimal] = None
    credit_type: Optional[CreditType] = None
    receive_date: Optional[date] = None
    interest_start_date: Optional[date] = None
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None


class DeleteAccountEntry(OperationModel):
    op: Literal["delete_account_entry"] = "delete_account_entry"
    entry_id: str


# =============================================================================
# ASSET EVENTS
# =============================================================================

class AssetPurchase(OperationModel):
    """
    Buy units. amount is the total cost including fees and is what the
    cost basis grows by; unit_price is informational.
    """
    op: Literal["asset_purchase"] = "asset_purchase"
    account_id: str
    amount: Decimal
    quantity: Decimal
    unit: Optional[str] = None
    unit_price: Optional[Decimal] = None
    fee: Optional[Decimal] = None
    note: str = ""
    sub_account_id: Optional[str] = None
    funding_account_id: Optional[str] = None
    funding_sub_account_id: Optional[str] = None
    on: Optional[date] = None


class AssetSale(OperationModel):
    """Sell units for amount (proceeds), optionally depositing them elsewhere."""
    op: Literal["asset_sale"] = "asset_sale"
    account_id: str
    amount: Decimal
    quantity: Decimal
    unit_price: Optional[Decimal] = None
    fee: Optional[Decimal] = None
    note: str = ""
    sub_account_id: Optional[str] = None
    proceeds_account_id: Optional[str] = None
    proceeds_sub_account_id: Optional[str] = None
    on: Optional[date] = None


class AssetValuation(OperationModel):
    """Mark held units to a new unit price. Moves no cash."""
    op: Literal["asset_valuation"] = "asset_valuation"
    account_id: str
    unit_price: Decimal
    note: str = ""
    on: Optional[date] = None


# =============================================================================
# LEDGER / ACCOUNT STRUCTURE
# =============================================================================

class AddLedger(OperationModel):
    op: Literal["add_ledger"] = "add_ledger"
    name: str = Field(..., min_length=1)


class SelectLedger(OperationModel):
    op: Literal["select_ledger"] = "select_ledger"
    ledger_id: str


class UpdateLedger(OperationModel):
    op: Literal["update_ledger"] = "update_ledger"
    ledger_id: Optional[str] = None
    name: Optional[str] = None
    categories: Optional[Categories] = None
    category_meta: Optional[CategoryMeta] = None
    groups: Optional[list[Group]] = None


class SetCategoryBudget(OperationModel):
    """Advisory budget; never blocks a transaction."""
    op: Literal["set_category_budget"] = "set_category_budget"
    type: TransactionType
    category: str = Field(..., min_length=1)
    budget: Decimal = Field(..., ge=0)


class UpsertAccount(OperationModel):
    """Create (no account_id, or unknown id) or update an account."""
    op: Literal["upsert_account"] = "upsert_account"
    account_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    group_id: Optional[str] = None
    account_type: Optional[GroupType] = None
    opening_balance: Decimal = Decimal(0)
    ledger_id: Optional[str] = None
    archived: Optional[bool] = None


class AddSubAccount(OperationModel):
    op: Literal["add_sub_account"] = "add_sub_account"
    account_id: str
    name: str = Field(..., min_length=1)
    ledger_id: Optional[str] = None


class DeleteAccount(OperationModel):
    """Hard-delete an account without history; archive one that has history."""
    op: Literal["delete_account"] = "delete_account"
    account_id: str


class UpdateGroups(OperationModel):
    op: Literal["update_groups"] = "update_groups"
    groups: list[Group] = Field(..., min_length=1)


class UpdateSettings(OperationModel):
    op: Literal["update_settings"] = "update_settings"
    pin_lock_enabled: Optional[bool] = None


LedgerOperation = Annotated[
    Union[
        AddTransaction,
        UpdateTransaction,
        DeleteTransaction,
        AddReimbursement,
        AddAccountEntry,
        Transfer,
        AddCredit,
        UpdateAccountEntry,
        DeleteAccountEntry,
        AssetPurchase,
        AssetSale,
        AssetValuation,
        AddLedger,
        SelectLedger,
        UpdateLedger,
        SetCategoryBudget,
        UpsertAccount,
        AddSubAccount,
        DeleteAccount,
        UpdateGroups,
        UpdateSettings,
    ],
    Field(discriminator="op"),
]


# =============================================================================
# RESULTS
# =============================================================================

class MutationResult(BaseModel):
    """
    Outcome of applying one operation.

    notices carries non-fatal problems (e.g. a single-leg operation whose
    account could not be found - the document is returned unchanged).
    persisted is filled in by the controller after the save attempt.
    """
    document: VaultDocument
    notices: list[str] = Field(default_factory=list)
    entry_ids: list[str] = Field(
        default_factory=list,
        description="Account entries created or changed"
    )
    persisted: Optional[bool] = None
    persist_error: Optional[str] = None


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'oversell')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix for the user"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Shape validation (amounts, required selections)
    Stage 2: Semantic validation (against the current document)
    """

    operation: str = Field(
        ...,
        description="The `op` of the validated operation"
    )
    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    shape_valid: bool
    semantic_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    def summary(self) -> str:
        """Short, user-facing summary (first error wins)."""
        for issue in self.issues:
            if issue.severity == "error":
                return issue.message
        return "OK"
