"""
Ledger Document Models for finvault

These models define the decrypted vault payload: ledgers, groups, accounts,
sub-accounts, account entries and category transactions.
They are designed to:
1. Accept every shape earlier versions of the app persisted
2. Round-trip exactly through JSON (amounts are Decimals, persisted as strings)
3. Keep unknown keys, so nothing a newer or older client wrote is dropped

DESIGN DECISION: Python attributes are snake_case, persisted keys are
camelCase (via alias_generator). Always dump with by_alias=True.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


DEFAULT_EXPENSE_CATEGORIES = [
    "Food",
    "Personal Care",
    "Personal Comms",
    "Transportation",
    "Family Utilities",
    "Technology Tools",
    "Family Expenses",
    "Helping Out",
    "Loans",
    "Charges",
]

DEFAULT_INCOME_CATEGORIES = [
    "Salary",
    "Business",
    "Investments",
    "Refunds",
    "Gifts",
]

GROUP_IDS = {
    "debit": "group-debit",
    "credit": "group-credit",
    "asset": "group-invest",
}


def new_id() -> str:
    """Generate a fresh entity id."""
    return str(uuid4())


# =============================================================================
# COERCION HELPERS - legacy documents store "" and JSON floats for numbers
# =============================================================================

def _to_decimal(value: Any) -> Any:
    if value is None or value == "":
        return Decimal(0)
    if isinstance(value, float):
        return Decimal(repr(value))
    return value


def _to_optional_decimal(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, float):
        return Decimal(repr(value))
    return value


def _to_optional_date(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, str) and len(value) > 10 and value[10] == "T":
        return value[:10]
    return value


def _to_entry_date(value: Any) -> Any:
    value = _to_optional_date(value)
    return date.today() if value is None else value


def _to_text(value: Any) -> Any:
    return "" if value is None else value


def _to_list(value: Any) -> Any:
    return value if isinstance(value, list) else []


def _to_optional_id(value: Any) -> Any:
    if value is None or value == "":
        return None
    return str(value)


Money = Annotated[Decimal, BeforeValidator(_to_decimal)]
OptionalMoney = Annotated[Optional[Decimal], BeforeValidator(_to_optional_decimal)]
EntryDate = Annotated[date, BeforeValidator(_to_entry_date)]
OptionalDate = Annotated[Optional[date], BeforeValidator(_to_optional_date)]
Text = Annotated[str, BeforeValidator(_to_text)]
OptionalId = Annotated[Optional[str], BeforeValidator(_to_optional_id)]


class DocumentModel(BaseModel):
    """Base for every persisted document model."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_json_dict(self) -> dict:
        """Dump using the persisted (camelCase) key names."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class GroupType(str, Enum):
    """Classification of a group (and the default for its accounts)."""
    DEBIT = "debit"
    CREDIT = "credit"
    ASSET = "asset"
    LOAN = "loan"


class Direction(str, Enum):
    IN = "in"
    OUT = "out"


class EntryKind(str, Enum):
    """What produced an account entry."""
    ADJUST = "adjust"
    TRANSFER = "transfer"
    TXN = "txn"            # shadow of a category transaction
    CREDIT = "credit"
    PURCHASE = "purchase"
    SALE = "sale"
    VALUATION = "valuation"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class CreditType(str, Enum):
    SIMPLE = "simple"
    COMPOUND = "compound"


# =============================================================================
# ACCOUNT STRUCTURE
# =============================================================================

class Group(DocumentModel):
    """A named bucket of accounts sharing a classification."""

    id: str = Field(default_factory=new_id)
    name: str = "Group"
    type: GroupType = GroupType.DEBIT
    collapsed: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def fill_id(cls, v: Any) -> Any:
        return v or new_id()

    @field_validator("name", mode="before")
    @classmethod
    def fill_name(cls, v: Any) -> Any:
        return v or "Group"

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> Any:
        """Unknown group types fall back to debit."""
        valid = {t.value for t in GroupType}
        return v if v in valid else GroupType.DEBIT.value

    @field_validator("collapsed", mode="before")
    @classmethod
    def coerce_collapsed(cls, v: Any) -> bool:
        return bool(v)


def default_groups() -> list[Group]:
    """The three starter groups every new ledger gets."""
    return [
        Group(id=GROUP_IDS["debit"], name="Debit", type=GroupType.DEBIT),
        Group(id=GROUP_IDS["credit"], name="Credit", type=GroupType.CREDIT),
        Group(id=GROUP_IDS["asset"], name="Invest", type=GroupType.ASSET),
    ]


class SubAccount(DocumentModel):
    """
    A balance-holding slice of an account.

    Its ledger_id decides which ledger's view includes it, which lets one
    physical account be split across ledgers.
    """

    id: str = Field(default_factory=new_id)
    name: Text = ""
    balance: Money = Decimal(0)
    ledger_id: OptionalId = None

    @field_validator("id", mode="before")
    @classmethod
    def fill_id(cls, v: Any) -> Any:
        return v or new_id()


class Account(DocumentModel):
    """
    A balance-holding entity.

    balance is authoritative only while sub_accounts is empty; once
    sub-accounts exist the account's balance is the sum of theirs and the
    bare field is a legacy residual.
    """

    id: str = Field(default_factory=new_id)
    name: Text = ""
    group_id: OptionalId = None
    account_type: Optional[GroupType] = None
    balance: Money = Decimal(0)
    ledger_id: OptionalId = None
    sub_accounts: Annotated[list[SubAccount], BeforeValidator(_to_list)] = Field(
        default_factory=list
    )
    archived: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def fill_id(cls, v: Any) -> Any:
        return v or new_id()

    @field_validator("account_type", mode="before")
    @classmethod
    def coerce_account_type(cls, v: Any) -> Any:
        valid = {t.value for t in GroupType}
        return v if v in valid else None

    @field_validator("archived", mode="before")
    @classmethod
    def coerce_archived(cls, v: Any) -> bool:
        return bool(v)

    @property
    def has_sub_accounts(self) -> bool:
        return bool(self.sub_accounts)

    def find_sub_account(self, sub_account_id: Optional[str]) -> Optional[SubAccount]:
        if sub_account_id is None:
            return None
        for sub in self.sub_accounts:
            if sub.id == sub_account_id:
                return sub
        return None

    def legacy_type_hint(self) -> Optional[str]:
        """The `groupType`/`type` key older documents stored on accounts."""
        extra = self.model_extra or {}
        return extra.get("groupType") or extra.get("type")


# =============================================================================
# ENTRIES AND TRANSACTIONS
# =============================================================================

class AccountTransaction(DocumentModel):
    """
    A balance-affecting entry against an account.

    The id never changes once assigned; the content may be edited, in which
    case the balance effect is reverted and re-applied.
    """

    id: str = Field(default_factory=new_id)
    account_id: str
    sub_account_id: OptionalId = None
    amount: Money = Decimal(0)
    direction: Direction = Direction.IN
    kind: EntryKind = EntryKind.ADJUST
    related_account_id: OptionalId = None
    note: Text = ""
    date: EntryDate = Field(default_factory=date.today)

    # Credit fields
    credit_rate: OptionalMoney = None
    credit_type: Optional[CreditType] = None
    interest_start_date: OptionalDate = None
    receive_date: OptionalDate = None

    # Asset fields
    unit: Optional[str] = None
    quantity: OptionalMoney = None
    unit_price: OptionalMoney = None
    fee: OptionalMoney = None

    category: Optional[str] = None
    link_id: OptionalId = None
    paid_back: Annotated[list[dict[str, Any]], BeforeValidator(_to_list)] = Field(
        default_factory=list
    )

    @field_validator("credit_type", mode="before")
    @classmethod
    def coerce_credit_type(cls, v: Any) -> Any:
        if v in (None, ""):
            return None
        return v if v in {t.value for t in CreditType} else CreditType.SIMPLE.value

    @property
    def delta(self) -> Decimal:
        """Signed balance effect of this entry (valuations move no cash)."""
        if self.kind == EntryKind.VALUATION:
            return Decimal(0)
        return self.amount if self.direction == Direction.IN else -self.amount

    @property
    def transfer_base_id(self) -> Optional[str]:
        """Shared prefix of a `<base>-in` / `<base>-out` transfer pair."""
        for suffix in ("-in", "-out"):
            if self.id.endswith(suffix):
                return self.id[: -len(suffix)]
        return None


class ReimbursementRef(DocumentModel):
    """Back-reference from an expense to an income that repaid part of it."""

    txn_id: str
    amount: Money = Decimal(0)


class Transaction(DocumentModel):
    """
    A category-classified income/expense record.

    When linked to an account, its balance effect is carried by a shadow
    AccountTransaction of kind "txn" with id `txn-<transaction id>`.
    """

    id: str = Field(default_factory=new_id)
    type: TransactionType = TransactionType.EXPENSE
    amount: Money = Decimal(0)
    category: Text = ""
    note: Text = ""
    date: EntryDate = Field(default_factory=date.today)
    account_id: OptionalId = None
    sub_account_id: OptionalId = None
    reimbursed_by: Annotated[list[ReimbursementRef], BeforeValidator(_to_list)] = Field(
        default_factory=list
    )
    reimbursement_of: OptionalId = None

    @property
    def shadow_entry_id(self) -> str:
        return f"txn-{self.id}"

    @property
    def reimbursed_total(self) -> Decimal:
        return sum((r.amount for r in self.reimbursed_by), Decimal(0))


# =============================================================================
# CATEGORIES
# =============================================================================

def _to_dict(value: Any) -> Any:
    """Stored mappings and already-built models pass; anything else becomes {}."""
    return value if isinstance(value, (dict, BaseModel)) else {}


class CategoryInfo(DocumentModel):
    """Advisory budget and sub-categories for one category."""

    budget: Money = Decimal(0)
    subs: Annotated[list[str], BeforeValidator(_to_list)] = Field(default_factory=list)


class Categories(DocumentModel):
    expense: Annotated[list[str], BeforeValidator(_to_list)] = Field(
        default_factory=lambda: list(DEFAULT_EXPENSE_CATEGORIES)
    )
    income: Annotated[list[str], BeforeValidator(_to_list)] = Field(
        default_factory=lambda: list(DEFAULT_INCOME_CATEGORIES)
    )

    @model_validator(mode="before")
    @classmethod
    def fill_missing_lists(cls, data: Any) -> Any:
        """A list that is absent or malformed gets the default list."""
        if isinstance(data, BaseModel):
            return data
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if k not in ("expense", "income") or isinstance(v, list)}


class CategoryMeta(DocumentModel):
    expense: Annotated[dict[str, CategoryInfo], BeforeValidator(_to_dict)] = Field(
        default_factory=dict
    )
    income: Annotated[dict[str, CategoryInfo], BeforeValidator(_to_dict)] = Field(
        default_factory=dict
    )


# =============================================================================
# LEDGER AND VAULT DOCUMENT
# =============================================================================

class Ledger(DocumentModel):
    """One fully isolated financial book."""

    id: str = Field(default_factory=new_id)
    name: str = "Personal"
    transactions: Annotated[list[Transaction], BeforeValidator(_to_list)] = Field(
        default_factory=list
    )
    accounts: Annotated[list[Account], BeforeValidator(_to_list)] = Field(
        default_factory=list
    )
    account_transactions: Annotated[
        list[AccountTransaction], BeforeValidator(_to_list)
    ] = Field(default_factory=list)
    categories: Categories = Field(default_factory=Categories)
    category_meta: CategoryMeta = Field(default_factory=CategoryMeta)
    groups: list[Group] = Field(default_factory=default_groups)

    @field_validator("id", mode="before")
    @classmethod
    def fill_id(cls, v: Any) -> Any:
        return v or new_id()

    @field_validator("name", mode="before")
    @classmethod
    def fill_name(cls, v: Any) -> Any:
        return v or "Personal"

    @field_validator("categories", "category_meta", mode="before")
    @classmethod
    def coerce_mapping(cls, v: Any) -> Any:
        return _to_dict(v)

    @field_validator("groups", mode="before")
    @classmethod
    def fill_groups(cls, v: Any) -> Any:
        """Only an absent or empty group list gets the starter groups."""
        if not isinstance(v, list) or not v:
            return default_groups()
        return v

    def find_account(self, account_id: str) -> Optional[Account]:
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None

    def find_group(self, group_id: Optional[str]) -> Optional[Group]:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def find_entry(self, entry_id: str) -> Optional[AccountTransaction]:
        for entry in self.account_transactions:
            if entry.id == entry_id:
                return entry
        return None

    def find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for txn in self.transactions:
            if txn.id == transaction_id:
                return txn
        return None


class DocumentSettings(DocumentModel):
    """In-document preferences. Unknown keys are preserved."""

    pin_lock_enabled: bool = False

    @field_validator("pin_lock_enabled", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> bool:
        return bool(v)


class VaultDocument(DocumentModel):
    """
    The decrypted vault payload.

    Invariant: ledgers is never empty and active_ledger_id always names one
    of them (repaired to the first ledger otherwise).
    """

    ledgers: list[Ledger] = Field(default_factory=list)
    active_ledger_id: str = ""
    settings: DocumentSettings = Field(default_factory=DocumentSettings)

    @field_validator("settings", mode="before")
    @classmethod
    def coerce_settings(cls, v: Any) -> Any:
        return _to_dict(v)

    @model_validator(mode="after")
    def repair_active_ledger(self) -> "VaultDocument":
        if not self.ledgers:
            self.ledgers = [Ledger()]
        if self.find_ledger(self.active_ledger_id) is None:
            self.active_ledger_id = self.ledgers[0].id
        return self

    @property
    def active_ledger(self) -> Ledger:
        return self.find_ledger(self.active_ledger_id) or self.ledgers[0]

    def find_ledger(self, ledger_id: Optional[str]) -> Optional[Ledger]:
        for ledger in self.ledgers:
            if ledger.id == ledger_id:
                return ledger
        return None
