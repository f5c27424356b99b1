"""
Spending Budget Calculator

DESIGN DECISION: The budget is forecast-from-plan. The monthly allowance
is derived from the income expected this month (the planned figure, or
actual income so far when no positive plan exists) minus reserves and
obligations. Actual spending is then measured against that allowance:

    spendable_before_saving = max(0, income - flat reserve - loans - tax reserve)
    allowed_monthly_spend   = max(0, spendable_before_saving - savings target)
    average_daily_limit     = allowed_monthly_spend / days in month
    remaining_allowed_spend = allowed_monthly_spend - expense so far   (may be < 0)
    daily_limit_from_today  = remaining_allowed_spend / days left

The actual cash position (carry-in + income - expense - savings) is
reported next to it by ``compute_cash_position`` but never feeds the
limit. The two diverge whenever spending deviates from plan.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional

from ledger.engine.periods import (
    ZERO,
    days_in_month,
    days_remaining_in_month,
    month_key,
)
from ledger.models.derived import CashPosition, SpendingBudget


def compute_spending_budget(
    today: dt.date,
    actual_income: Decimal,
    actual_expense: Decimal,
    flat_tax_reserve: Decimal,
    loan_obligations: Decimal,
    tax_monthly_reserve: Decimal,
    target_monthly_savings: Decimal,
    planned_income: Optional[Decimal] = None,
) -> SpendingBudget:
    """Work out this month's spending allowance and today's daily limit."""
    used_plan = planned_income is not None and planned_income > 0
    base_income = planned_income if used_plan else actual_income

    spendable = max(ZERO, base_income - flat_tax_reserve - loan_obligations - tax_monthly_reserve)
    allowed = max(ZERO, spendable - target_monthly_savings)
    month_days = days_in_month(today)
    days_left = days_remaining_in_month(today)
    remaining = allowed - actual_expense

    return SpendingBudget(
        month=month_key(today),
        base_income=base_income,
        used_planned_income=used_plan,
        flat_tax_reserve=flat_tax_reserve,
        loan_obligations=loan_obligations,
        tax_monthly_reserve=tax_monthly_reserve,
        target_monthly_savings=target_monthly_savings,
        spendable_before_saving=spendable,
        allowed_monthly_spend=allowed,
        days_in_month=month_days,
        average_daily_limit=allowed / month_days,
        actual_expense=actual_expense,
        remaining_allowed_spend=remaining,
        days_remaining=days_left,
        daily_limit_from_today=remaining / days_left,
    )


def compute_cash_position(
    month: str,
    carry_in: Decimal,
    income: Decimal,
    expense: Decimal,
    unmirrored_savings: Decimal,
    flat_tax_reserve: Decimal,
    loan_obligations: Decimal,
    tax_monthly_reserve: Decimal,
) -> CashPosition:
    """
    Actual money position for the month.

    Savings already mirrored as expense transactions are inside ``expense``;
    only the unmirrored part is subtracted again.
    """
    return CashPosition(
        month=month,
        carry_in=carry_in,
        income=income,
        expense=expense,
        unmirrored_savings=unmirrored_savings,
        balance_now=carry_in + income - expense - unmirrored_savings,
        forecast_free_money=(
            income
            - expense
            - flat_tax_reserve
            - loan_obligations
            - tax_monthly_reserve
            - unmirrored_savings
        ),
    )
