"""
Credit Interest Accrual

Interest is never stored as entries; it is computed on read from each credit
entry's rate, start date and compounding mode, as of a given day.

Simple:   principal * rate * days / 365
Compound: monthly compounding over whole months elapsed, then simple daily
          interest on the compounded base for the remaining days.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from finvault.models.ledger import AccountTransaction, CreditType, EntryKind


DAYS_PER_YEAR = Decimal(365)
MONTHS_PER_YEAR = Decimal(12)


def days_between(start: date, end: date) -> int:
    """Whole days from start to end, never negative."""
    return max(0, (end - start).days)


def months_between(start: date, end: date) -> int:
    """
    Whole months from start to end, never negative.

    A month only counts once end's day-of-month has reached start's.
    """
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(0, months)


def add_months(start: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    index = start.month - 1 + months
    year = start.year + index // 12
    month = index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def accrued_interest(entry: AccountTransaction, as_of: Optional[date] = None) -> Decimal:
    """
    Interest accrued on one credit entry as of a day.

    Entries that are not credits, or carry no positive rate or no start
    date, accrue nothing.
    """
    if entry.kind != EntryKind.CREDIT:
        return Decimal(0)
    if not entry.credit_rate or entry.credit_rate <= 0 or entry.interest_start_date is None:
        return Decimal(0)

    as_of = as_of or date.today()
    start = entry.interest_start_date
    principal = entry.amount
    rate = entry.credit_rate / Decimal(100)

    if entry.credit_type == CreditType.COMPOUND:
        months = months_between(start, as_of)
        compounded = principal * (1 + rate / MONTHS_PER_YEAR) ** months
        remaining_days = days_between(add_months(start, months), as_of)
        daily = compounded * rate * remaining_days / DAYS_PER_YEAR
        return daily + (compounded - principal)

    days = days_between(start, as_of)
    return principal * rate * days / DAYS_PER_YEAR


@dataclass(frozen=True)
class CreditSummary:
    principal: Decimal
    accrued: Decimal

    @property
    def total(self) -> Decimal:
        return self.principal + self.accrued


def credit_summary(
    entries: Iterable[AccountTransaction],
    as_of: Optional[date] = None,
) -> CreditSummary:
    """
    Principal and accrued interest over an account's credit entries.

    Each entry accrues independently; the account total is the sum.
    """
    principal = Decimal(0)
    accrued = Decimal(0)
    for entry in entries:
        if entry.kind != EntryKind.CREDIT:
            continue
        principal += entry.delta
        accrued += accrued_interest(entry, as_of)
    return CreditSummary(principal=principal, accrued=accrued)
