"""
Tests for weighted-average asset accounting.
"""

from datetime import date
from decimal import Decimal

from finvault.ledger import calculate_asset_metrics
from finvault.models.ledger import AccountTransaction, Direction, EntryKind


def asset_entry(kind, amount, quantity=None, day=1, unit_price=None, **kwargs):
    return AccountTransaction(
        account_id="land",
        kind=kind,
        direction=Direction.OUT if kind == EntryKind.SALE else Direction.IN,
        amount=Decimal(amount),
        quantity=Decimal(quantity) if quantity is not None else None,
        unit_price=Decimal(unit_price) if unit_price is not None else None,
        date=date(2024, 1, day),
        **kwargs,
    )


class TestWeightedAverage:
    """Tests for cost basis and realized gain."""

    def test_two_purchases_then_partial_sale(self):
        summary = calculate_asset_metrics([
            asset_entry(EntryKind.PURCHASE, "100000", "10", day=1),
            asset_entry(EntryKind.PURCHASE, "140000", "10", day=2),
            asset_entry(EntryKind.SALE, "80000", "5", day=3),
        ])
        assert summary.quantity_held == Decimal("15")
        assert summary.cost_basis == Decimal("180000")
        assert summary.realized_gain_total == Decimal("20000")
        assert summary.average_cost_per_unit == Decimal("12000")

    def test_full_sale_clears_cost_basis(self):
        summary = calculate_asset_metrics([
            asset_entry(EntryKind.PURCHASE, "100", "3", day=1),
            asset_entry(EntryKind.SALE, "130", "3", day=2),
        ])
        assert summary.quantity_held == 0
        assert summary.cost_basis == 0
        assert summary.realized_gain_total == Decimal("30")
        assert summary.average_cost_per_unit == 0
        assert summary.has_data

    def test_oversell_is_clamped(self):
        summary = calculate_asset_metrics([
            asset_entry(EntryKind.PURCHASE, "100", "2", day=1),
            asset_entry(EntryKind.SALE, "300", "5", day=2),
        ])
        assert summary.quantity_held == 0
        assert summary.cost_basis == 0
        assert summary.realized_gain_total == Decimal("200")

    def test_entries_replay_in_date_order(self):
        summary = calculate_asset_metrics([
            asset_entry(EntryKind.SALE, "80000", "5", day=3),
            asset_entry(EntryKind.PURCHASE, "140000", "10", day=2),
            asset_entry(EntryKind.PURCHASE, "100000", "10", day=1),
        ])
        assert summary.realized_gain_total == Decimal("20000")

    def test_other_kinds_are_ignored(self):
        summary = calculate_asset_metrics([
            AccountTransaction(account_id="land", amount=Decimal(500)),
        ])
        assert not summary.has_data
        assert summary.quantity_held == 0


class TestValuation:
    """Tests for market price tracking."""

    def test_valuation_sets_price_without_moving_cost(self):
        summary = calculate_asset_metrics([
            asset_entry(EntryKind.PURCHASE, "1000", "10", day=1, unit="acre"),
            asset_entry(EntryKind.VALUATION, "1500", day=2, unit_price="150"),
        ])
        assert summary.current_unit_price == Decimal("150")
        assert summary.cost_basis == Decimal("1000")
        assert summary.market_value == Decimal("1500")
        assert summary.unrealized_gain == Decimal("500")
        assert summary.unit == "acre"

    def test_purchase_price_derived_from_amount(self):
        summary = calculate_asset_metrics([
            asset_entry(EntryKind.PURCHASE, "1000", "4", day=1),
        ])
        assert summary.current_unit_price == Decimal("250")


class TestReconciliation:
    """Buy, revalue and sell everything; nothing may be left on the account."""

    def test_full_cycle(self):
        entries = [
            asset_entry(EntryKind.PURCHASE, "5858755", "3594", day=1),
            asset_entry(EntryKind.VALUATION, "8941872", day=2, unit_price="2488"),
            asset_entry(EntryKind.SALE, "8940910", "3594", day=3),
        ]
        summary = calculate_asset_metrics(entries)
        assert summary.quantity_held == 0
        assert summary.cost_basis == 0
        assert summary.realized_gain_total == Decimal("3082155")
        assert summary.market_value == 0

        # purchase adds, sale removes, valuation moves nothing
        base = sum((e.delta for e in entries), Decimal(0))
        effective = summary.market_value + base - summary.cost_basis + summary.realized_gain_total
        assert effective == 0
