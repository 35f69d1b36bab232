"""
Two-Stage Operation Validation

DESIGN DECISION: Every mutation intent is validated in two distinct stages
before the engine builds anything:

STAGE 1 - SHAPE VALIDATION:
- Amounts positive and below the sanity ceiling
- Required selections present (target account, quantity, rate)
- Needs nothing but the operation itself

STAGE 2 - SEMANTIC VALIDATION:
- Checks against the current document
- Transfer onto the same (account, sub-account)
- Selling more units than are held, including after a purchase is
  edited or deleted
- Reimbursing more than remains of the expense
- Direction changes on entries whose other legs cannot follow

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the engine refuses operations with error-level issues.
"""

from decimal import Decimal
from typing import Optional

from finvault.config import AppSettings, get_settings
from finvault.ledger.assets import calculate_asset_metrics
from finvault.ledger.model import (
    account_type,
    entries_for_account,
    linked_entries,
    locate_entry,
    locate_transaction,
    resolve_account_ref,
    resolve_sub_account_id,
)
from finvault.models.ledger import AccountTransaction, EntryKind, GroupType, VaultDocument
from finvault.models.operations import (
    AddAccountEntry,
    AddCredit,
    AddReimbursement,
    AddTransaction,
    AssetPurchase,
    AssetSale,
    AssetValuation,
    DeleteAccountEntry,
    SetCategoryBudget,
    Transfer,
    UpdateAccountEntry,
    UpdateTransaction,
    UpsertAccount,
    ValidationIssue,
    ValidationResult,
)


_AMOUNT_OPERATIONS = (
    AddTransaction,
    AddReimbursement,
    AddAccountEntry,
    Transfer,
    AddCredit,
    AssetPurchase,
    AssetSale,
)


def _error(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=fix,
    )


def _warning(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
        suggested_fix=fix,
    )


def _first_oversold_sale(entries) -> Optional[tuple[AccountTransaction, Decimal]]:
    """
    Walk purchases and sales in date order and return the first sale that
    exceeds the units held at that point, with the units it had available.
    """
    ordered = sorted(
        (e for e in entries if e.kind in (EntryKind.PURCHASE, EntryKind.SALE)),
        key=lambda e: e.date,
    )
    held = Decimal(0)
    for entry in ordered:
        quantity = entry.quantity or Decimal(0)
        if entry.kind == EntryKind.PURCHASE:
            held += quantity
        elif quantity > held:
            return entry, held
        else:
            held -= quantity
    return None


def _oversell_after(before, after, field: str) -> list[ValidationIssue]:
    """Report a sale left uncovered by the change, unless it already was."""
    found = _first_oversold_sale(after)
    if found is None or _first_oversold_sale(before) is not None:
        return []
    sale, held = found
    return [_error(
        field,
        "oversell",
        f"A sale of {sale.quantity} on {sale.date} would exceed the {held} then held.",
        "Delete or reduce the later sale first",
    )]


class OperationValidator:
    """
    Validates ledger operations through a two-stage pipeline.

    Stage 1: Shape validation (operation only)
    Stage 2: Semantic validation (against the document)
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _check_amount(self, field: str, amount: Optional[Decimal]) -> list[ValidationIssue]:
        if amount is None or amount <= 0:
            return [_error(field, "invalid_value", "Enter a valid amount.")]
        if amount > self._settings.max_amount:
            return [_error(
                field,
                "suspicious_value",
                f"Amount {amount} is above the allowed maximum",
                "Check the number of digits",
            )]
        return []

    def _validate_shape(self, operation) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Shape validation.

        Returns: (is_valid, list_of_issues)
        """
        issues: list[ValidationIssue] = []

        if isinstance(operation, _AMOUNT_OPERATIONS):
            issues.extend(self._check_amount("amount", operation.amount))

        if isinstance(operation, (UpdateTransaction, UpdateAccountEntry)):
            if "amount" in operation.model_fields_set:
                issues.extend(self._check_amount("amount", operation.amount))

        if isinstance(operation, Transfer) and not operation.to_account_id:
            issues.append(_error("to_account_id", "missing", "Select a target account."))

        if isinstance(operation, AddReimbursement) and not operation.account_id:
            issues.append(_error(
                "account_id",
                "missing",
                "Select an account to receive the reimbursement.",
            ))

        if isinstance(operation, (AddCredit, UpdateAccountEntry)):
            if operation.credit_rate is not None and operation.credit_rate < 0:
                issues.append(_error("credit_rate", "invalid_value", "Enter a valid interest rate."))

        if isinstance(operation, AddCredit):
            if (
                operation.receive_date
                and operation.interest_start_date
                and operation.interest_start_date < operation.receive_date
            ):
                issues.append(_warning(
                    "interest_start_date",
                    "inconsistent",
                    "Interest starts before the credit was received",
                ))

        if isinstance(operation, (AssetPurchase, AssetSale)):
            if operation.quantity is None or operation.quantity <= 0:
                issues.append(_error("quantity", "invalid_value", "Enter a valid quantity."))
            if operation.fee is not None and operation.fee < 0:
                issues.append(_error("fee", "invalid_value", "Fee cannot be negative."))
            if operation.unit_price is not None and operation.unit_price < 0:
                issues.append(_error("unit_price", "invalid_value", "Enter a valid unit price."))

        if isinstance(operation, UpdateAccountEntry):
            if operation.quantity is not None and operation.quantity <= 0:
                issues.append(_error("quantity", "invalid_value", "Enter a valid quantity."))

        if isinstance(operation, AssetValuation) and operation.unit_price <= 0:
            issues.append(_error("unit_price", "invalid_value", "Enter a valid unit price."))

        if isinstance(operation, UpsertAccount):
            if abs(operation.opening_balance) > self._settings.max_amount:
                issues.append(_error(
                    "opening_balance",
                    "suspicious_value",
                    "Opening balance is above the allowed maximum",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        document: VaultDocument,
        operation,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Unresolvable accounts are not reported here; whether they are fatal
        depends on the operation and is decided by the engine.

        Returns: (is_valid, list_of_issues)
        """
        issues: list[ValidationIssue] = []

        if isinstance(operation, Transfer):
            issues.extend(self._check_transfer(document, operation))
        elif isinstance(operation, AssetSale):
            issues.extend(self._check_sale(document, operation))
        elif isinstance(operation, AddReimbursement):
            issues.extend(self._check_reimbursement(document, operation))
        elif isinstance(operation, UpdateAccountEntry):
            issues.extend(self._check_entry_update(document, operation))
        elif isinstance(operation, DeleteAccountEntry):
            issues.extend(self._check_entry_delete(document, operation))
        elif isinstance(operation, SetCategoryBudget):
            ledger = document.active_ledger
            names = getattr(ledger.categories, operation.type.value)
            if operation.category not in names:
                issues.append(_warning(
                    "category",
                    "unknown_category",
                    f"'{operation.category}' is not in the {operation.type.value} categories",
                ))

        if isinstance(operation, (AssetPurchase, AssetSale, AssetValuation)):
            issues.extend(self._expect_type(document, operation.account_id, (GroupType.ASSET,)))
        elif isinstance(operation, AddCredit):
            issues.extend(self._expect_type(
                document, operation.account_id, (GroupType.CREDIT, GroupType.LOAN)
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _expect_type(self, document, ref, expected) -> list[ValidationIssue]:
        found = resolve_account_ref(document, ref)
        if found is None:
            return []
        ledger, account = found
        kind = account_type(account, ledger.groups)
        if kind not in expected:
            return [_warning(
                "account_id",
                "unexpected_account_type",
                f"{account.name} is a {kind.value} account",
            )]
        return []

    def _check_transfer(self, document, operation: Transfer) -> list[ValidationIssue]:
        source = resolve_account_ref(document, operation.from_account_id)
        target = resolve_account_ref(document, operation.to_account_id)
        if source is None or target is None:
            return []
        source_account, target_account = source[1], target[1]
        if source_account.id != target_account.id:
            return []
        from_sub = resolve_sub_account_id(source_account, operation.from_sub_account_id)
        to_sub = resolve_sub_account_id(target_account, operation.to_sub_account_id)
        if from_sub == to_sub:
            return [_error(
                "to_account_id",
                "same_account",
                "Select a different account or sub-account.",
            )]
        return []

    def _check_sale(self, document, operation: AssetSale) -> list[ValidationIssue]:
        found = resolve_account_ref(document, operation.account_id)
        if found is None:
            return []
        held = calculate_asset_metrics(entries_for_account(document, found[1].id)).quantity_held
        if operation.quantity > held:
            return [_error(
                "quantity",
                "oversell",
                f"Cannot sell {operation.quantity}; only {held} held.",
            )]
        return []

    def _check_reimbursement(self, document, operation: AddReimbursement) -> list[ValidationIssue]:
        found = locate_transaction(
            document, operation.original_transaction_id, document.active_ledger_id
        )
        if found is None:
            return []
        original = found[1]
        remaining = original.amount - original.reimbursed_total
        if operation.amount > remaining:
            return [_error(
                "amount",
                "over_reimbursed",
                f"Cannot reimburse more than the remaining {remaining}.",
            )]
        return []

    def _check_entry_update(self, document, operation: UpdateAccountEntry) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        found = locate_entry(document, operation.entry_id)
        if found is None:
            return issues
        entry = found[1]
        legs = linked_entries(document, entry)

        if operation.direction is not None and operation.direction != entry.direction and legs:
            all_transfers = entry.kind == EntryKind.TRANSFER and all(
                leg.kind == EntryKind.TRANSFER for _, leg in legs
            )
            if not all_transfers:
                issues.append(_error(
                    "direction",
                    "linked_direction",
                    "Direction of a linked entry can only change on a transfer.",
                ))

        if entry.kind == EntryKind.SALE and operation.quantity is not None:
            others = [
                e for e in entries_for_account(document, entry.account_id) if e.id != entry.id
            ]
            held = calculate_asset_metrics(others).quantity_held
            if operation.quantity > held:
                issues.append(_error(
                    "quantity",
                    "oversell",
                    f"Cannot sell {operation.quantity}; only {held} held.",
                ))

        if entry.kind == EntryKind.PURCHASE:
            changes = {}
            if operation.quantity is not None:
                changes["quantity"] = operation.quantity
            if operation.on is not None:
                changes["date"] = operation.on
            if changes:
                edited = entry.model_copy(update=changes)
                current = entries_for_account(document, entry.account_id)
                after = [edited if e.id == entry.id else e for e in current]
                issues.extend(_oversell_after(current, after, "quantity"))
        return issues

    def _check_entry_delete(self, document, operation: DeleteAccountEntry) -> list[ValidationIssue]:
        """Deleting a purchase, directly or through its funding leg, must leave later sales covered."""
        found = locate_entry(document, operation.entry_id)
        if found is None:
            return []
        entry = found[1]
        removed = [entry] + [leg for _, leg in linked_entries(document, entry)]
        issues: list[ValidationIssue] = []
        for purchase in removed:
            if purchase.kind != EntryKind.PURCHASE:
                continue
            current = entries_for_account(document, purchase.account_id)
            remaining = [e for e in current if e.id != purchase.id]
            issues.extend(_oversell_after(current, remaining, "entry_id"))
        return issues

    def validate(self, document: VaultDocument, operation) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            document: The current vault document
            operation: Any ledger operation

        Returns:
            ValidationResult with all issues found
        """
        all_issues: list[ValidationIssue] = []

        shape_valid, shape_issues = self._validate_shape(operation)
        all_issues.extend(shape_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if shape_valid:
            semantic_valid, semantic_issues = self._validate_semantic(document, operation)
            all_issues.extend(semantic_issues)

        return ValidationResult(
            operation=operation.op,
            shape_valid=shape_valid,
            semantic_valid=semantic_valid,
            issues=all_issues,
        )
