"""
Tests for two-stage operation validation.
"""

import pytest
from datetime import date
from decimal import Decimal

from finvault.config import AppSettings
from finvault.models.ledger import AccountTransaction, Direction, EntryKind, TransactionType
from finvault.models.operations import (
    AddCredit,
    AddTransaction,
    AssetPurchase,
    AssetSale,
    AssetValuation,
    DeleteAccountEntry,
    SetCategoryBudget,
    Transfer,
    UpdateAccountEntry,
    UpsertAccount,
)
from finvault.validation import OperationValidator

from helpers import build_document


@pytest.fixture
def validator():
    return OperationValidator(AppSettings(max_amount=Decimal("1000000")))


def issue_types(result):
    return [issue.issue_type for issue in result.issues]


class TestShapeValidation:
    """Stage 1: the operation on its own."""

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_amount_must_be_positive(self, validator, document, amount):
        result = validator.validate(document, AddTransaction(
            type=TransactionType.EXPENSE, amount=Decimal(amount),
        ))
        assert not result.shape_valid
        assert result.summary() == "Enter a valid amount."

    def test_amount_ceiling(self, validator, document):
        result = validator.validate(document, AddTransaction(
            type=TransactionType.INCOME, amount=Decimal("1000001"),
        ))
        assert issue_types(result) == ["suspicious_value"]

    def test_transfer_needs_target(self, validator, document):
        result = validator.validate(document, Transfer(
            from_account_id="cash", to_account_id="", amount=Decimal("1"),
        ))
        assert "missing" in issue_types(result)

    def test_negative_rate(self, validator, document):
        result = validator.validate(document, AddCredit(
            account_id="card", amount=Decimal("1"), credit_rate=Decimal("-1"),
        ))
        assert issue_types(result) == ["invalid_value"]

    def test_interest_before_receipt_is_only_a_warning(self, validator, document):
        result = validator.validate(document, AddCredit(
            account_id="card", amount=Decimal("1"),
            receive_date=date(2024, 2, 1), interest_start_date=date(2024, 1, 1),
        ))
        assert result.is_valid
        assert issue_types(result) == ["inconsistent"]

    def test_asset_quantity_and_fee(self, validator, document):
        result = validator.validate(document, AssetPurchase(
            account_id="land", amount=Decimal("10"), quantity=Decimal("0"), fee=Decimal("-1"),
        ))
        assert issue_types(result) == ["invalid_value", "invalid_value"]

    def test_valuation_price(self, validator, document):
        result = validator.validate(document, AssetValuation(account_id="land", unit_price=Decimal("0")))
        assert not result.is_valid

    def test_opening_balance_ceiling(self, validator, document):
        result = validator.validate(document, UpsertAccount(name="Big", opening_balance=Decimal("-2000000")))
        assert issue_types(result) == ["suspicious_value"]

    def test_semantic_stage_skipped_after_shape_errors(self, validator, document):
        result = validator.validate(document, Transfer(
            from_account_id="cash", to_account_id="cash", amount=Decimal("0"),
        ))
        assert not result.semantic_valid
        assert issue_types(result) == ["invalid_value"]


class TestSemanticValidation:
    """Stage 2: the operation against the document."""

    def test_transfer_to_same_place(self, validator, document):
        result = validator.validate(document, Transfer(
            from_account_id="bank", from_sub_account_id="savings",
            to_account_id="Bank", amount=Decimal("1"),
        ))
        assert issue_types(result) == ["same_account"]

    def test_unknown_accounts_are_left_to_the_engine(self, validator, document):
        result = validator.validate(document, Transfer(
            from_account_id="cash", to_account_id="nowhere", amount=Decimal("1"),
        ))
        assert result.is_valid
        assert result.issues == []

    def test_oversell(self, validator, document):
        document.active_ledger.account_transactions.append(AccountTransaction(
            account_id="land", kind=EntryKind.PURCHASE, amount=Decimal("100"), quantity=Decimal("2"),
        ))
        ok = validator.validate(document, AssetSale(account_id="land", amount=Decimal("1"), quantity=Decimal("2")))
        assert ok.is_valid
        too_many = validator.validate(document, AssetSale(
            account_id="land", amount=Decimal("1"), quantity=Decimal("3"),
        ))
        assert issue_types(too_many) == ["oversell"]

    def test_wrong_account_type_is_a_warning(self, validator, document):
        result = validator.validate(document, AssetValuation(account_id="cash", unit_price=Decimal("5")))
        assert result.is_valid
        assert issue_types(result) == ["unexpected_account_type"]
        result = validator.validate(document, AddCredit(account_id="cash", amount=Decimal("5")))
        assert issue_types(result) == ["unexpected_account_type"]

    def test_unknown_budget_category_is_a_warning(self, validator, document):
        result = validator.validate(document, SetCategoryBudget(
            type=TransactionType.EXPENSE, category="Yachts", budget=Decimal("1"),
        ))
        assert result.is_valid
        assert issue_types(result) == ["unknown_category"]

    def test_editing_sale_quantity_beyond_holdings(self, validator, document):
        document.active_ledger.account_transactions.extend([
            AccountTransaction(
                account_id="land", kind=EntryKind.PURCHASE, amount=Decimal("100"), quantity=Decimal("2"),
            ),
            AccountTransaction(
                id="sale-1", account_id="land", kind=EntryKind.SALE, direction=Direction.OUT,
                amount=Decimal("60"), quantity=Decimal("1"),
            ),
        ])
        ok = validator.validate(document, UpdateAccountEntry(entry_id="sale-1", quantity=Decimal("2")))
        assert ok.is_valid
        too_many = validator.validate(document, UpdateAccountEntry(entry_id="sale-1", quantity=Decimal("3")))
        assert issue_types(too_many) == ["oversell"]

    def test_purchase_changes_must_keep_later_sales_covered(self, validator, document):
        """Deleting or shrinking a purchase cannot leave a recorded sale without units."""
        document.active_ledger.account_transactions.extend([
            AccountTransaction(
                id="buy-1", account_id="land", kind=EntryKind.PURCHASE, amount=Decimal("1000"),
                quantity=Decimal("10"), date=date(2024, 1, 1),
            ),
            AccountTransaction(
                id="sale-1", account_id="land", kind=EntryKind.SALE, direction=Direction.OUT,
                amount=Decimal("800"), quantity=Decimal("5"), date=date(2024, 3, 1),
            ),
        ])
        deleted = validator.validate(document, DeleteAccountEntry(entry_id="buy-1"))
        assert issue_types(deleted) == ["oversell"]
        assert not deleted.is_valid

        shrunk = validator.validate(document, UpdateAccountEntry(entry_id="buy-1", quantity=Decimal("4")))
        assert issue_types(shrunk) == ["oversell"]

        moved = validator.validate(document, UpdateAccountEntry(entry_id="buy-1", on=date(2024, 4, 1)))
        assert issue_types(moved) == ["oversell"]

        ok = validator.validate(document, UpdateAccountEntry(entry_id="buy-1", quantity=Decimal("5")))
        assert ok.is_valid
        assert validator.validate(document, DeleteAccountEntry(entry_id="sale-1")).is_valid

    def test_already_oversold_history_does_not_block_purchase_edits(self, validator, document):
        document.active_ledger.account_transactions.extend([
            AccountTransaction(
                id="sale-1", account_id="land", kind=EntryKind.SALE, direction=Direction.OUT,
                amount=Decimal("800"), quantity=Decimal("5"), date=date(2024, 1, 1),
            ),
            AccountTransaction(
                id="buy-1", account_id="land", kind=EntryKind.PURCHASE, amount=Decimal("1000"),
                quantity=Decimal("10"), date=date(2024, 3, 1),
            ),
        ])
        result = validator.validate(document, UpdateAccountEntry(entry_id="buy-1", quantity=Decimal("8")))
        assert result.is_valid

    def test_result_records_operation(self, validator):
        result = validator.validate(build_document(), AssetValuation(account_id="land", unit_price=Decimal("5")))
        assert result.operation == "asset_valuation"
        assert result.shape_valid and result.semantic_valid
