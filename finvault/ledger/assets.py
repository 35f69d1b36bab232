"""
Asset Accounting

Cost basis, holdings and realized gain for discrete-unit asset accounts,
derived from the account's purchase / sale / valuation entries alone.

DESIGN DECISION: Weighted-average cost, not FIFO/LIFO. Before each sale the
average cost per unit is cost_basis / quantity_held; the sale removes
average * quantity_sold from the cost basis and books
proceeds - average * quantity_sold as realized gain.

Selling more than is held never drives holdings negative: the sale is
clamped to the quantity available. (The validator rejects such a sale
before it is recorded; the clamp only matters for imported or legacy data.)
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from finvault.models.ledger import AccountTransaction, EntryKind


ZERO = Decimal(0)


@dataclass(frozen=True)
class AssetSummary:
    """Queryable position of one asset account."""

    quantity_held: Decimal = ZERO
    unit: Optional[str] = None
    current_unit_price: Decimal = ZERO
    average_cost_per_unit: Decimal = ZERO
    cost_basis: Decimal = ZERO
    realized_gain_total: Decimal = ZERO
    has_data: bool = False

    @property
    def market_value(self) -> Decimal:
        return self.quantity_held * self.current_unit_price

    @property
    def unrealized_gain(self) -> Decimal:
        return self.market_value - self.cost_basis


def _entry_unit_price(entry: AccountTransaction) -> Optional[Decimal]:
    if entry.unit_price is not None and entry.unit_price > 0:
        return entry.unit_price
    if entry.quantity:
        return entry.amount / entry.quantity
    return None


def calculate_asset_metrics(entries: Iterable[AccountTransaction]) -> AssetSummary:
    """
    Replay one account's asset entries in date order.

    Entries of other kinds are ignored; entries on the same date keep their
    stored order.
    """
    ordered = sorted(
        (e for e in entries if e.kind in (EntryKind.PURCHASE, EntryKind.SALE, EntryKind.VALUATION)),
        key=lambda e: e.date,
    )

    held = ZERO
    cost = ZERO
    realized = ZERO
    price = ZERO
    unit = None
    any_purchase = False

    for entry in ordered:
        quantity = entry.quantity or ZERO
        if entry.unit:
            unit = entry.unit

        if entry.kind == EntryKind.PURCHASE:
            any_purchase = True
            held += quantity
            cost += entry.amount
            price = _entry_unit_price(entry) or price

        elif entry.kind == EntryKind.SALE:
            sold = min(quantity, held)
            if sold > 0:
                if sold == held:
                    removed = cost
                else:
                    removed = cost / held * sold
                realized += entry.amount - removed
                cost -= removed
                held -= sold
            else:
                # nothing held: the whole proceeds are gain
                realized += entry.amount
            price = _entry_unit_price(entry) or price

        else:
            if entry.unit_price is not None:
                price = entry.unit_price

    average = cost / held if held > 0 else ZERO
    return AssetSummary(
        quantity_held=held,
        unit=unit,
        current_unit_price=price,
        average_cost_per_unit=average,
        cost_basis=cost,
        realized_gain_total=realized,
        has_data=held > 0 or any_purchase,
    )
