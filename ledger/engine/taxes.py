"""
Tax Reserve Calculator

Taxes are an annual statutory obligation. This module works out what is
due for the year, what has been paid, and a monthly planning reserve that
spreads the rest over the months left.

    flat_rate_due     = taxable income (year) * flat rate
    progressive_base  = max(0, taxable income (year) - threshold)
    progressive_due   = progressive_base * extra_rate
    fixed_levy_due    = annual_fixed_levy
    remaining (each)  = max(0, due - paid this year)
    monthly_reserve   = (progressive remaining + fixed remaining) / months left

The flat-rate tax is reserved separately, month by month, from that
month's taxable income (``flat_rate_monthly_reserve``).

IMPORTANT: Payments are manual. Nothing assumes they follow the smoothed
schedule.
"""

import datetime as dt
from decimal import Decimal
from typing import Iterable, Optional

from ledger.engine.periods import (
    ZERO,
    month_key,
    months_remaining_in_year,
    sum_for_period,
    year_key,
)
from ledger.models.derived import TaxSummary
from ledger.models.enums import TaxPaymentKind, TransactionKind
from ledger.models.records import TaxPayment, TaxSettings, Transaction


DEFAULT_FLAT_RATE = Decimal("0.06")
DEFAULT_PROGRESSIVE_THRESHOLD = Decimal("300000")


def paid_in_year(
    payments: Iterable[TaxPayment],
    year: str,
    kind: TaxPaymentKind,
) -> Decimal:
    """Sum payments of one kind attributed to a year (undated ones use created_at)."""
    return sum(
        (
            p.amount for p in payments
            if p.kind == kind and p.effective_date.isoformat().startswith(year)
        ),
        ZERO,
    )


def compute_tax_summary(
    transactions: Iterable[Transaction],
    payments: Iterable[TaxPayment],
    settings: Optional[TaxSettings],
    today: dt.date,
    flat_rate: Decimal = DEFAULT_FLAT_RATE,
    progressive_threshold: Decimal = DEFAULT_PROGRESSIVE_THRESHOLD,
) -> TaxSummary:
    """
    Compute the year's tax position as of ``today``.

    Missing settings fall back to the defaults of ``TaxSettings``.
    """
    transactions = list(transactions)
    payments = list(payments)
    settings = settings or TaxSettings()
    year = year_key(today)
    month = month_key(today)

    taxable_year = sum_for_period(transactions, year, kind=TransactionKind.INCOME, taxable_only=True)
    taxable_month = sum_for_period(transactions, month, kind=TransactionKind.INCOME, taxable_only=True)

    # Flat-rate tax
    flat_due = taxable_year * flat_rate
    flat_paid = paid_in_year(payments, year, TaxPaymentKind.FLAT_RATE_INCOME_TAX)

    # Progressive surcharge
    progressive_base = max(ZERO, taxable_year - progressive_threshold)
    progressive_due = progressive_base * settings.extra_rate
    progressive_paid = paid_in_year(payments, year, TaxPaymentKind.PROGRESSIVE_SURCHARGE)
    progressive_remaining = max(ZERO, progressive_due - progressive_paid)

    # Fixed levy
    fixed_due = settings.annual_fixed_levy
    fixed_paid = paid_in_year(payments, year, TaxPaymentKind.FIXED_INSURANCE)
    fixed_remaining = max(ZERO, fixed_due - fixed_paid)

    months_left = months_remaining_in_year(today)

    return TaxSummary(
        year=year,
        month=month,
        taxable_income_year=taxable_year,
        taxable_income_month=taxable_month,
        flat_rate=flat_rate,
        flat_rate_due=flat_due,
        flat_rate_paid=flat_paid,
        flat_rate_remaining=max(ZERO, flat_due - flat_paid),
        flat_rate_monthly_reserve=taxable_month * flat_rate,
        progressive_threshold=progressive_threshold,
        progressive_base=progressive_base,
        extra_rate=settings.extra_rate,
        progressive_due=progressive_due,
        progressive_paid=progressive_paid,
        progressive_remaining=progressive_remaining,
        fixed_levy_due=fixed_due,
        fixed_levy_paid=fixed_paid,
        fixed_levy_remaining=fixed_remaining,
        months_remaining=months_left,
        monthly_reserve=(progressive_remaining + fixed_remaining) / months_left,
    )
