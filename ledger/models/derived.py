"""
Derived Figures

Outputs of the derivation engine. None of these are stored; they are
recomputed from a snapshot whenever it changes.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ledger.models.records import LoanPayment


class LoanPaymentBreakdown(BaseModel):
    """How one loan payment splits into interest and principal."""

    loan_id: UUID
    payment_date: dt.date
    days_since_payment: int = Field(..., ge=0)
    daily_rate: Decimal
    payment_amount: Decimal
    interest_amount: Decimal
    principal_amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    active: bool

    @property
    def is_underpayment(self) -> bool:
        """Payment did not cover the accrued interest."""
        return self.payment_amount < self.interest_amount

    def to_payment_record(self) -> LoanPayment:
        return LoanPayment(
            loan_id=self.loan_id,
            payment_date=self.payment_date,
            payment_amount=self.payment_amount,
            interest_amount=self.interest_amount,
            principal_amount=self.principal_amount,
            balance_before=self.balance_before,
            balance_after=self.balance_after,
        )


class TaxSummary(BaseModel):
    """
    Tax liabilities for the year and the monthly planning reserve.

    All ``*_remaining`` figures are floored at zero.
    """

    year: str
    month: str
    taxable_income_year: Decimal
    taxable_income_month: Decimal

    # Flat-rate income tax
    flat_rate: Decimal
    flat_rate_due: Decimal
    flat_rate_paid: Decimal
    flat_rate_remaining: Decimal
    flat_rate_monthly_reserve: Decimal = Field(
        ...,
        description="Flat-rate tax on this month's taxable income"
    )

    # Progressive surcharge
    progressive_threshold: Decimal
    progressive_base: Decimal
    extra_rate: Decimal
    progressive_due: Decimal
    progressive_paid: Decimal
    progressive_remaining: Decimal

    # Fixed insurance levy
    fixed_levy_due: Decimal
    fixed_levy_paid: Decimal
    fixed_levy_remaining: Decimal

    months_remaining: int = Field(..., ge=1)
    monthly_reserve: Decimal = Field(
        ...,
        description="Remaining surcharge + fixed levy spread over the months left"
    )


class SavingsProjection(BaseModel):
    """Progress toward the savings goal and today's recommended contribution."""

    goal_amount: Decimal
    target_monthly: Decimal
    total_saved: Decimal
    saved_this_month: Decimal
    remaining_to_goal: Decimal
    progress_pct: Decimal
    estimated_months_to_goal: Optional[int] = None
    remaining_this_month: Decimal
    days_remaining: int = Field(..., ge=1)
    recommended_daily_contribution: Decimal
    average_daily_contribution: Decimal

    @property
    def display_progress_pct(self) -> Decimal:
        return min(Decimal("100"), max(Decimal("0"), self.progress_pct))

    @property
    def goal_reached(self) -> bool:
        return self.remaining_to_goal == 0


class SpendingBudget(BaseModel):
    """
    Forecast-from-plan spending limits for one month.

    ``remaining_allowed_spend`` and ``daily_limit_from_today`` go negative
    when spending has already exceeded the allowance.
    """

    month: str
    base_income: Decimal
    used_planned_income: bool
    flat_tax_reserve: Decimal
    loan_obligations: Decimal
    tax_monthly_reserve: Decimal
    target_monthly_savings: Decimal
    spendable_before_saving: Decimal
    allowed_monthly_spend: Decimal
    days_in_month: int
    average_daily_limit: Decimal
    actual_expense: Decimal
    remaining_allowed_spend: Decimal
    days_remaining: int
    daily_limit_from_today: Decimal

    @property
    def overspent(self) -> bool:
        return self.remaining_allowed_spend < 0


class CashPosition(BaseModel):
    """Actual money position for the month, informational only."""

    month: str
    carry_in: Decimal
    income: Decimal
    expense: Decimal
    unmirrored_savings: Decimal
    balance_now: Decimal = Field(
        ...,
        description="carry_in + income - expense - savings not already in expenses"
    )
    forecast_free_money: Decimal = Field(
        ...,
        description="Income left after expenses, reserves, loans and savings"
    )


class LoanStatus(BaseModel):
    loan_id: UUID
    title: str
    balance: Decimal
    monthly_payment: Decimal
    annual_rate: Decimal
    next_payment_date: dt.date
    interest_accrued_to_date: Decimal
    active: bool


class CardStatus(BaseModel):
    card_id: UUID
    title: str
    balance: Decimal
    minimum_payment: Decimal
    next_due_date: dt.date
    paid_this_month: bool
    active: bool


class RecurringStatus(BaseModel):
    recurring_id: UUID
    title: str
    amount: Decimal
    pay_day: int
    paid: bool
    paid_date: Optional[dt.date] = None


class MonthlyOverview(BaseModel):
    """Everything the dashboard shows for one month, from one snapshot."""

    month: str
    today: dt.date
    snapshot_version: int
    income: Decimal
    expense: Decimal
    taxes: TaxSummary
    savings: SavingsProjection
    budget: SpendingBudget
    cash: CashPosition
    loans: list[LoanStatus] = Field(default_factory=list)
    cards: list[CardStatus] = Field(default_factory=list)
    recurring: list[RecurringStatus] = Field(default_factory=list)

    @property
    def recurring_unpaid_total(self) -> Decimal:
        return sum((r.amount for r in self.recurring if not r.paid), Decimal("0"))
