"""
Ledger Derivation Engine

Combines the calculators into one monthly overview computed from a single
snapshot.

DESIGN DECISION: Overviews are memoized by (snapshot version, day, planned
income). A reload publishes a new version, so a cached overview is never
served for data that has changed. The day is part of the key because the
daily limits depend on how many days are left.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional

from ledger.config import LedgerSettings, get_settings
from ledger.engine.budget import compute_cash_position, compute_spending_budget
from ledger.engine.cards import card_status
from ledger.engine.loans import loan_status, planned_monthly_obligations
from ledger.engine.periods import month_key, sum_for_period
from ledger.engine.recurring import recurring_statuses
from ledger.engine.savings import project_savings
from ledger.engine.snapshot import LedgerSnapshot
from ledger.engine.taxes import compute_tax_summary
from ledger.models.derived import MonthlyOverview
from ledger.models.enums import TransactionKind


MemoKey = tuple[int, dt.date, Optional[Decimal]]


class LedgerEngine:
    """
    Pure derivation over snapshots.

    Usage:
        engine = LedgerEngine()
        overview = engine.overview(session.snapshot, date.today())
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger
        self._memo: dict[MemoKey, MonthlyOverview] = {}

    @property
    def cache_size(self) -> int:
        return len(self._memo)

    def overview(
        self,
        snapshot: LedgerSnapshot,
        today: dt.date,
        planned_income: Optional[Decimal] = None,
    ) -> MonthlyOverview:
        """Derived figures for the month containing ``today``."""
        if planned_income is None:
            planned_income = self._settings.planned_monthly_income

        key = (snapshot.version, today, planned_income)
        cached = self._memo.get(key)
        if cached is not None:
            return cached

        # Entries for older versions can never be requested again
        self._memo = {k: v for k, v in self._memo.items() if k[0] == snapshot.version}
        result = self._compute(snapshot, today, planned_income)
        self._memo[key] = result
        return result

    def _compute(
        self,
        snapshot: LedgerSnapshot,
        today: dt.date,
        planned_income: Optional[Decimal],
    ) -> MonthlyOverview:
        month = month_key(today)
        income = sum_for_period(snapshot.transactions, month, kind=TransactionKind.INCOME)
        expense = sum_for_period(snapshot.transactions, month, kind=TransactionKind.EXPENSE)

        taxes = compute_tax_summary(
            snapshot.transactions,
            snapshot.tax_payments,
            snapshot.tax_settings,
            today,
            flat_rate=self._settings.flat_tax_rate,
            progressive_threshold=self._settings.progressive_threshold,
        )
        savings = project_savings(snapshot.savings_entries, snapshot.savings_settings, today)
        loan_obligations = planned_monthly_obligations(snapshot.loans)

        budget = compute_spending_budget(
            today,
            actual_income=income,
            actual_expense=expense,
            flat_tax_reserve=taxes.flat_rate_monthly_reserve,
            loan_obligations=loan_obligations,
            tax_monthly_reserve=taxes.monthly_reserve,
            target_monthly_savings=savings.target_monthly,
            planned_income=planned_income,
        )
        cash = compute_cash_position(
            month,
            carry_in=snapshot.carry_in_for(month),
            income=income,
            expense=expense,
            unmirrored_savings=snapshot.unmirrored_savings(month),
            flat_tax_reserve=taxes.flat_rate_monthly_reserve,
            loan_obligations=loan_obligations,
            tax_monthly_reserve=taxes.monthly_reserve,
        )

        recurring = recurring_statuses(
            snapshot.recurring_obligations,
            snapshot.recurring_payments,
            month,
        )

        return MonthlyOverview(
            month=month,
            today=today,
            snapshot_version=snapshot.version,
            income=income,
            expense=expense,
            taxes=taxes,
            savings=savings,
            budget=budget,
            cash=cash,
            loans=[loan_status(loan, today) for loan in snapshot.loans],
            cards=[
                card_status(card, snapshot.events_for_card(card.id), today)
                for card in snapshot.card_accounts
            ],
            recurring=recurring,
        )
