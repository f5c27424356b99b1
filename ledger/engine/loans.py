"""
Loan Amortization Calculator

Each payment is amortized on its own against the real time elapsed since
the previous payment. There is no precomputed schedule: a late payment
pays more interest, an early one pays less.

    days      = whole days since last payment (or since the loan was created)
    interest  = balance * annual_rate / 100 / 365 * days
    principal = max(0, payment - interest)
    balance   = max(0, balance - principal)

IMPORTANT: Interest is rounded to cents (half-up) before the split, so
principal + interest equals the payment exactly whenever the payment
covers the interest. An underpayment leaves principal at 0 and the balance
unchanged.
"""

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from ledger.engine.periods import ZERO, clamp_day, whole_days_between
from ledger.models.derived import LoanPaymentBreakdown, LoanStatus
from ledger.models.records import Loan, LoanPayment


CENT = Decimal("0.01")
DAYS_IN_YEAR = Decimal("365")


def to_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def daily_rate(annual_rate: Decimal) -> Decimal:
    """Annual percentage rate to a simple daily rate."""
    return Decimal(annual_rate) / Decimal("100") / DAYS_IN_YEAR


def accrued_interest(loan: Loan, as_of: dt.date) -> Decimal:
    """Interest accrued since the last payment, as of a given day."""
    days = whole_days_between(loan.interest_start_date, as_of)
    return to_cents(loan.balance * daily_rate(loan.annual_rate) * days)


def amortize_payment(
    loan: Loan,
    payment_amount: Decimal,
    payment_date: dt.date,
) -> LoanPaymentBreakdown:
    """
    Split one payment into interest and principal.

    Pure: the loan is not modified. The caller persists the result.

    Raises:
        ValueError: If the payment is not positive
    """
    payment_amount = Decimal(payment_amount)
    if payment_amount <= 0:
        raise ValueError(f"Payment amount must be positive, got {payment_amount}")

    days = whole_days_between(loan.interest_start_date, payment_date)
    rate = daily_rate(loan.annual_rate)
    interest = to_cents(loan.balance * rate * days)
    principal = max(ZERO, payment_amount - interest)
    new_balance = max(ZERO, loan.balance - principal)

    return LoanPaymentBreakdown(
        loan_id=loan.id,
        payment_date=payment_date,
        days_since_payment=days,
        daily_rate=rate,
        payment_amount=payment_amount,
        interest_amount=interest,
        principal_amount=principal,
        balance_before=loan.balance,
        balance_after=new_balance,
        active=new_balance > 0,
    )


def rebuild_loan_balance(
    payments: Iterable[LoanPayment],
    opening_balance: Optional[Decimal] = None,
) -> Decimal:
    """
    Replay the immutable payment history to recover the balance.

    The opening balance defaults to the balance before the earliest
    recorded payment.

    Raises:
        ValueError: If there are no payments and no opening balance
    """
    ordered = sorted(payments, key=lambda p: (p.payment_date, p.created_at))
    if opening_balance is None:
        if not ordered:
            raise ValueError("Cannot rebuild a loan balance without payments or an opening balance")
        opening_balance = ordered[0].balance_before

    balance = Decimal(opening_balance)
    for payment in ordered:
        balance = max(ZERO, balance - payment.principal_amount)
    return balance


def planned_monthly_obligations(loans: Iterable[Loan]) -> Decimal:
    """Sum of monthly installments on active loans."""
    return sum((loan.monthly_payment for loan in loans if loan.active), ZERO)


def next_payment_date(loan: Loan, today: dt.date) -> dt.date:
    """Next scheduled payment day, today included."""
    candidate = clamp_day(today.year, today.month, loan.payment_day)
    if candidate >= today:
        return candidate
    if today.month == 12:
        return clamp_day(today.year + 1, 1, loan.payment_day)
    return clamp_day(today.year, today.month + 1, loan.payment_day)


def loan_status(loan: Loan, today: dt.date) -> LoanStatus:
    return LoanStatus(
        loan_id=loan.id,
        title=loan.title,
        balance=loan.balance,
        monthly_payment=loan.monthly_payment,
        annual_rate=loan.annual_rate,
        next_payment_date=next_payment_date(loan, today),
        interest_accrued_to_date=accrued_interest(loan, today),
        active=loan.active,
    )
