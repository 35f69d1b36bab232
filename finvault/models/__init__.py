"""
Data Models Package

This package contains all Pydantic models used in finvault.
All data flowing through the system must conform to these schemas.
"""

from finvault.models.ledger import (
    Account,
    AccountTransaction,
    Categories,
    CategoryInfo,
    CategoryMeta,
    CreditType,
    Direction,
    DocumentSettings,
    EntryKind,
    Group,
    GroupType,
    Ledger,
    ReimbursementRef,
    SubAccount,
    Transaction,
    TransactionType,
    VaultDocument,
    default_groups,
    new_id,
)
from finvault.models.vault import (
    BackupBundle,
    EncryptedRecord,
    VaultMetadata,
    VaultSession,
)
from finvault.models.operations import (
    AddAccountEntry,
    AddCredit,
    AddLedger,
    AddReimbursement,
    AddSubAccount,
    AddTransaction,
    AssetPurchase,
    AssetSale,
    AssetValuation,
    DeleteAccount,
    DeleteAccountEntry,
    DeleteTransaction,
    LedgerOperation,
    MutationResult,
    SelectLedger,
    SetCategoryBudget,
    Transfer,
    UpdateAccountEntry,
    UpdateGroups,
    UpdateLedger,
    UpdateSettings,
    UpdateTransaction,
    UpsertAccount,
    ValidationIssue,
    ValidationResult,
)
from finvault.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    AuditSubject,
)

__all__ = [
    # Ledger document
    "Account",
    "AccountTransaction",
    "Categories",
    "CategoryInfo",
    "CategoryMeta",
    "CreditType",
    "Direction",
    "DocumentSettings",
    "EntryKind",
    "Group",
    "GroupType",
    "Ledger",
    "ReimbursementRef",
    "SubAccount",
    "Transaction",
    "TransactionType",
    "VaultDocument",
    "default_groups",
    "new_id",
    # Vault records
    "BackupBundle",
    "EncryptedRecord",
    "VaultMetadata",
    "VaultSession",
    # Operations
    "AddAccountEntry",
    "AddCredit",
    "AddLedger",
    "AddReimbursement",
    "AddSubAccount",
    "AddTransaction",
    "AssetPurchase",
    "AssetSale",
    "AssetValuation",
    "DeleteAccount",
    "DeleteAccountEntry",
    "DeleteTransaction",
    "LedgerOperation",
    "MutationResult",
    "SelectLedger",
    "SetCategoryBudget",
    "Transfer",
    "UpdateAccountEntry",
    "UpdateGroups",
    "UpdateLedger",
    "UpdateSettings",
    "UpdateTransaction",
    "UpsertAccount",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    "AuditSubject",
]
