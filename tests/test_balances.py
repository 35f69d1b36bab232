"""
Tests for balance figures and the replay reference.
"""

from datetime import date
from decimal import Decimal

from finvault.ledger import (
    apply_account_delta,
    base_balance,
    effective_balance,
    find_balance_drift,
    ledger_totals,
    recompute_from_scratch,
)
from finvault.ledger.model import create_ledger
from finvault.models.ledger import AccountTransaction, CreditType, Direction, EntryKind

from helpers import account, build_document, sub_balance


class TestDeltaRouting:

    def test_delta_goes_to_named_sub_account(self):
        document = build_document()
        bank = account(document, "bank")
        apply_account_delta(bank, "current", Decimal("50"))
        assert sub_balance(document, "bank", "current") == Decimal("250")
        assert bank.balance == 0

    def test_unknown_sub_account_falls_back_to_account(self):
        document = build_document()
        cash = account(document, "cash")
        apply_account_delta(cash, "nope", Decimal("-40"))
        assert cash.balance == Decimal("960")


class TestEffectiveBalance:
    """Displayable balances per account type."""

    def test_debit_is_base(self):
        document = build_document()
        assert effective_balance(document, account(document, "cash")) == Decimal("1000")

    def test_sub_accounts_are_summed(self):
        document = build_document()
        bank = account(document, "bank")
        bank.balance = Decimal("999")  # legacy residual, not shown
        assert base_balance(bank) == Decimal("700")

    def test_sub_accounts_filtered_by_ledger(self):
        document = build_document()
        document.ledgers.append(create_ledger("Business", ledger_id="ledger-2"))
        bank = account(document, "bank")
        bank.sub_accounts[1].ledger_id = "ledger-2"
        assert base_balance(bank, "ledger-1") == Decimal("500")
        assert base_balance(bank, "ledger-2") == Decimal("200")

    def test_credit_adds_accrued_interest(self):
        document = build_document()
        card = account(document, "card")
        card.balance = Decimal("1000000")
        document.active_ledger.account_transactions.append(AccountTransaction(
            account_id="card",
            kind=EntryKind.CREDIT,
            amount=Decimal("1000000"),
            credit_rate=Decimal("12"),
            credit_type=CreditType.SIMPLE,
            interest_start_date=date(2023, 1, 1),
        ))
        assert effective_balance(document, card, as_of=date(2024, 1, 1)) == Decimal("1120000")
        assert effective_balance(document, card, as_of=date(2022, 1, 1)) == Decimal("1000000")

    def test_asset_is_market_value_plus_uninvested_cash(self):
        document = build_document()
        land = account(document, "land")
        land.balance = Decimal("1000")
        document.active_ledger.account_transactions.extend([
            AccountTransaction(
                account_id="land", kind=EntryKind.PURCHASE, amount=Decimal("1000"),
                quantity=Decimal("10"), date=date(2024, 1, 1),
            ),
            AccountTransaction(
                account_id="land", kind=EntryKind.VALUATION, amount=Decimal("1500"),
                unit_price=Decimal("150"), date=date(2024, 2, 1),
            ),
        ])
        # 10 units at 150, and no uninvested cash
        assert effective_balance(document, land) == Decimal("1500")

    def test_asset_after_full_sale_keeps_only_cash_left_on_account(self):
        document = build_document()
        land = account(document, "land")
        land.balance = Decimal("100") - Decimal("130")
        document.active_ledger.account_transactions.extend([
            AccountTransaction(
                account_id="land", kind=EntryKind.PURCHASE, amount=Decimal("100"),
                quantity=Decimal("1"), date=date(2024, 1, 1),
            ),
            AccountTransaction(
                account_id="land", kind=EntryKind.SALE, direction=Direction.OUT,
                amount=Decimal("130"), quantity=Decimal("1"), date=date(2024, 1, 2),
            ),
        ])
        assert effective_balance(document, land) == 0


class TestLedgerTotals:

    def test_assets_and_liabilities(self):
        document = build_document()
        account(document, "card").balance = Decimal("300")
        totals = ledger_totals(document)
        assert totals.assets == Decimal("1700")
        assert totals.liabilities == Decimal("300")
        assert totals.net_worth == Decimal("1400")

    def test_archived_accounts_are_excluded(self):
        document = build_document()
        account(document, "cash").archived = True
        assert ledger_totals(document).assets == Decimal("700")


class TestReplay:
    """Cached balances against a full replay of the entry log."""

    def test_recompute_does_not_touch_input(self):
        document = build_document()
        rebuilt = recompute_from_scratch(document)
        assert account(rebuilt, "cash").balance == 0
        assert account(document, "cash").balance == Decimal("1000")

    def test_replay_routes_entries_to_sub_accounts(self):
        document = build_document()
        document.active_ledger.account_transactions.extend([
            AccountTransaction(account_id="bank", sub_account_id="savings", amount=Decimal("500")),
            AccountTransaction(account_id="bank", sub_account_id="current", amount=Decimal("200")),
            AccountTransaction(account_id="cash", amount=Decimal("1000")),
            AccountTransaction(account_id="gone", amount=Decimal("5")),
        ])
        assert find_balance_drift(document) == []

    def test_drift_is_reported(self):
        document = build_document()
        drift = find_balance_drift(document)
        assert {(d.account_id, d.sub_account_id) for d in drift} == {
            ("cash", None),
            ("bank", "savings"),
            ("bank", "current"),
        }
        cash = next(d for d in drift if d.account_id == "cash")
        assert cash.difference == Decimal("1000")
