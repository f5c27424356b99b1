"""
Ledger Derivation Engine

Pure calculators over a loaded snapshot: period sums, loan amortization,
card balances, tax reserves, savings projection and the spending budget.
"""

from ledger.models.normalize import normalize_kind, normalize_tax_kind
from ledger.engine.periods import (
    category_suggestions,
    category_totals,
    days_in_month,
    days_remaining_in_month,
    month_key,
    months_remaining_in_year,
    previous_month_key,
    sum_for_period,
    whole_days_between,
    year_key,
)
from ledger.engine.loans import (
    amortize_payment,
    planned_monthly_obligations,
    rebuild_loan_balance,
)
from ledger.engine.cards import (
    apply_interest,
    apply_payment,
    next_due_date,
    paid_this_month,
    rebuild_card_balance,
)
from ledger.engine.taxes import compute_tax_summary
from ledger.engine.savings import project_savings, recommended_amount_today
from ledger.engine.budget import compute_cash_position, compute_spending_budget
from ledger.engine.recurring import recurring_statuses
from ledger.engine.snapshot import LedgerSession, LedgerSnapshot
from ledger.engine.overview import LedgerEngine

__all__ = [
    # Normalizer
    "normalize_kind",
    "normalize_tax_kind",
    # Period aggregator
    "category_suggestions",
    "category_totals",
    "days_in_month",
    "days_remaining_in_month",
    "month_key",
    "months_remaining_in_year",
    "previous_month_key",
    "sum_for_period",
    "whole_days_between",
    "year_key",
    # Loans
    "amortize_payment",
    "planned_monthly_obligations",
    "rebuild_loan_balance",
    # Cards
    "apply_interest",
    "apply_payment",
    "next_due_date",
    "paid_this_month",
    "rebuild_card_balance",
    # Taxes, savings, budget
    "compute_tax_summary",
    "project_savings",
    "recommended_amount_today",
    "compute_cash_position",
    "compute_spending_budget",
    "recurring_statuses",
    # Snapshot and engine
    "LedgerEngine",
    "LedgerSession",
    "LedgerSnapshot",
]
