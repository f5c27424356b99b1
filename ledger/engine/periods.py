"""
Period Aggregator and Calendar Helpers

Period keys are "YYYY" or "YYYY-MM". Matching is a lexical prefix test on
the zero-padded ISO date, the same test the record store's string dates
support, so a record belongs to "2024-03" exactly when its date string
starts with "2024-03".

All functions here are pure. Running them twice on the same records gives
the same totals.
"""

import calendar
import datetime as dt
from decimal import Decimal
from typing import Any, Iterable, Optional

from ledger.models.enums import TransactionKind


ZERO = Decimal("0")


# =============================================================================
# PERIOD KEYS
# =============================================================================

def month_key(day: dt.date) -> str:
    """'2024-03' for any day in March 2024."""
    return day.isoformat()[:7]


def year_key(day: dt.date) -> str:
    return day.isoformat()[:4]


def previous_month_key(day: dt.date) -> str:
    first = day.replace(day=1)
    return month_key(first - dt.timedelta(days=1))


def in_period(value: Optional[dt.date], period: str) -> bool:
    """Records without a date never belong to any period."""
    if value is None:
        return False
    return value.isoformat().startswith(period)


# =============================================================================
# CALENDAR
# =============================================================================

def days_in_month(day: dt.date) -> int:
    return calendar.monthrange(day.year, day.month)[1]


def days_remaining_in_month(today: dt.date) -> int:
    """Days left in the month counting today, never less than 1."""
    return max(1, days_in_month(today) - today.day + 1)


def months_remaining_in_year(today: dt.date) -> int:
    """Months left in the year counting the current one, never less than 1."""
    return max(1, 12 - today.month + 1)


def whole_days_between(start: dt.date, end: dt.date) -> int:
    """Whole days from start to end, clamped at 0 when end is earlier."""
    if isinstance(start, dt.datetime):
        start = start.date()
    if isinstance(end, dt.datetime):
        end = end.date()
    return max(0, (end - start).days)


def clamp_day(year: int, month: int, day: int) -> dt.date:
    """Build a date, moving the day back to the month's last day if needed."""
    last = calendar.monthrange(year, month)[1]
    return dt.date(year, month, min(day, last))


# =============================================================================
# AGGREGATION
# =============================================================================

def sum_for_period(
    records: Iterable[Any],
    period: str,
    kind: Optional[TransactionKind] = None,
    taxable_only: bool = False,
) -> Decimal:
    """
    Sum ``amount`` over records dated inside ``period``.

    Works for transactions and savings entries alike. ``kind`` and
    ``taxable_only`` only apply to transactions.

    Example:
        income = sum_for_period(transactions, "2024-03", kind=TransactionKind.INCOME)
    """
    total = ZERO
    for record in records:
        if not in_period(getattr(record, "date", None), period):
            continue
        if kind is not None and getattr(record, "kind", None) != kind:
            continue
        if taxable_only and not getattr(record, "taxable", False):
            continue
        total += record.amount
    return total


def category_totals(
    transactions: Iterable[Any],
    period: str,
    kind: TransactionKind = TransactionKind.EXPENSE,
) -> dict[str, Decimal]:
    """Totals per category for one period, largest first."""
    totals: dict[str, Decimal] = {}
    for tx in transactions:
        if tx.kind != kind or not in_period(tx.date, period):
            continue
        totals[tx.category] = totals.get(tx.category, ZERO) + tx.amount
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def category_suggestions(
    transactions: Iterable[Any],
    kind: TransactionKind,
) -> list[str]:
    """Distinct categories already used for a kind, for input autocompletion."""
    seen = {
        tx.category.strip()
        for tx in transactions
        if tx.kind == kind and tx.category and tx.category.strip()
    }
    return sorted(seen, key=str.casefold)
