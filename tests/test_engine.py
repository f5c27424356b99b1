"""
Tests for the derivation engine calculators.

All calculators are pure: they are exercised with in-memory records only.
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from ledger.engine import (
    amortize_payment,
    apply_interest,
    apply_payment,
    category_suggestions,
    category_totals,
    compute_cash_position,
    compute_spending_budget,
    compute_tax_summary,
    days_in_month,
    days_remaining_in_month,
    month_key,
    months_remaining_in_year,
    next_due_date,
    paid_this_month,
    planned_monthly_obligations,
    previous_month_key,
    project_savings,
    rebuild_card_balance,
    rebuild_loan_balance,
    recommended_amount_today,
    recurring_statuses,
    sum_for_period,
    whole_days_between,
)
from ledger.engine.loans import accrued_interest, next_payment_date
from ledger.models import (
    CardAccount,
    CardEvent,
    Loan,
    RecurringObligation,
    RecurringPayment,
    SavingsEntry,
    SavingsSettings,
    TaxPayment,
    TaxSettings,
    Transaction,
    TransactionKind,
)


def tx(day, kind, amount, category="", taxable=None):
    return Transaction(
        date=day,
        kind=kind,
        amount=Decimal(amount),
        category=category,
        taxable=taxable,
    )


def loan_paid_on(last_payment, balance="100000", rate="24", monthly="5000"):
    return Loan(
        title="Car",
        balance=Decimal(balance),
        monthly_payment=Decimal(monthly),
        annual_rate=Decimal(rate),
        last_payment_date=last_payment,
    )


# =============================================================================
# PERIOD AGGREGATOR
# =============================================================================

class TestPeriods:
    """Tests for period keys and calendar helpers."""

    def test_previous_month_crosses_year(self):
        """Test that January rolls back to December of the previous year."""
        assert previous_month_key(date(2024, 1, 15)) == "2023-12"
        assert previous_month_key(date(2024, 3, 31)) == "2024-02"

    def test_leap_february(self):
        assert days_in_month(date(2024, 2, 10)) == 29
        assert days_in_month(date(2023, 2, 10)) == 28

    def test_days_remaining_counts_today(self):
        """Test that the last day of a month still has one day left."""
        assert days_remaining_in_month(date(2024, 3, 1)) == 31
        assert days_remaining_in_month(date(2024, 3, 31)) == 1

    def test_months_remaining(self):
        assert months_remaining_in_year(date(2024, 1, 1)) == 12
        assert months_remaining_in_year(date(2024, 12, 31)) == 1

    def test_whole_days_never_negative(self):
        """Test that a date before the start counts as zero days."""
        assert whole_days_between(date(2024, 3, 10), date(2024, 3, 1)) == 0
        assert whole_days_between(date(2024, 3, 1), date(2024, 3, 31)) == 30

    def test_sum_for_period_by_kind(self):
        records = [
            tx(date(2024, 3, 1), "income", "1000"),
            tx(date(2024, 3, 5), "доход", "500"),
            tx(date(2024, 3, 6), "expense", "200"),
            tx(date(2024, 4, 1), "income", "9999"),
        ]
        assert sum_for_period(records, "2024-03", kind=TransactionKind.INCOME) == Decimal("1500")
        assert sum_for_period(records, "2024-03", kind=TransactionKind.EXPENSE) == Decimal("200")
        assert sum_for_period(records, "2024", kind=TransactionKind.INCOME) == Decimal("11499")

    def test_months_add_up_to_year(self):
        """Test that monthly totals sum to the yearly total."""
        records = [
            tx(date(2024, month, 1 + month), "expense", str(month * 10))
            for month in range(1, 13)
        ]
        monthly = sum(
            sum_for_period(records, month_key(date(2024, m, 1)), kind=TransactionKind.EXPENSE)
            for m in range(1, 13)
        )
        assert monthly == sum_for_period(records, "2024", kind=TransactionKind.EXPENSE)

    def test_taxable_only(self):
        records = [
            tx(date(2024, 3, 1), "income", "1000", taxable=True),
            tx(date(2024, 3, 2), "income", "300", taxable=False),
        ]
        assert sum_for_period(records, "2024-03", TransactionKind.INCOME, taxable_only=True) == Decimal("1000")

    def test_category_totals_largest_first(self):
        records = [
            tx(date(2024, 3, 1), "expense", "100", "Food"),
            tx(date(2024, 3, 2), "expense", "500", "Rent"),
            tx(date(2024, 3, 3), "expense", "50", "Food"),
            tx(date(2024, 2, 3), "expense", "5000", "Food"),
        ]
        totals = category_totals(records, "2024-03")
        assert list(totals) == ["Rent", "Food"]
        assert totals["Food"] == Decimal("150")

    def test_category_suggestions_are_distinct(self):
        records = [
            tx(date(2024, 3, 1), "expense", "1", "food"),
            tx(date(2024, 3, 1), "expense", "1", "Rent"),
            tx(date(2024, 3, 1), "expense", "1", "food"),
            tx(date(2024, 3, 1), "income", "1", "Salary"),
        ]
        assert category_suggestions(records, TransactionKind.EXPENSE) == ["food", "Rent"]


# =============================================================================
# LOANS
# =============================================================================

class TestLoanAmortization:
    """Tests for the day-count amortization calculator."""

    def test_thirty_day_split(self):
        """Test the split of a 5000 payment after 30 days at 24% on 100000."""
        loan = loan_paid_on(date(2024, 3, 1))
        breakdown = amortize_payment(loan, Decimal("5000"), date(2024, 3, 31))

        assert breakdown.days_since_payment == 30
        assert breakdown.interest_amount == Decimal("1972.60")
        assert breakdown.principal_amount == Decimal("3027.40")
        assert breakdown.balance_after == Decimal("96972.60")
        assert breakdown.interest_amount + breakdown.principal_amount == breakdown.payment_amount
        assert breakdown.active

    def test_underpayment_leaves_balance(self):
        """Test that a payment below the interest repays no principal."""
        loan = loan_paid_on(date(2024, 3, 1))
        breakdown = amortize_payment(loan, Decimal("1000"), date(2024, 3, 31))

        assert breakdown.principal_amount == Decimal("0")
        assert breakdown.balance_after == loan.balance
        assert breakdown.is_underpayment

    def test_payment_before_last_payment_has_no_interest(self):
        loan = loan_paid_on(date(2024, 3, 10))
        breakdown = amortize_payment(loan, Decimal("500"), date(2024, 3, 1))
        assert breakdown.days_since_payment == 0
        assert breakdown.interest_amount == Decimal("0")
        assert breakdown.principal_amount == Decimal("500")

    def test_overpayment_closes_loan(self):
        loan = loan_paid_on(date(2024, 3, 1), balance="1000", rate="0")
        breakdown = amortize_payment(loan, Decimal("5000"), date(2024, 3, 2))
        assert breakdown.balance_after == Decimal("0")
        assert not breakdown.active

    def test_zero_rate(self):
        loan = loan_paid_on(date(2024, 1, 1), rate="0")
        breakdown = amortize_payment(loan, Decimal("5000"), date(2024, 3, 1))
        assert breakdown.interest_amount == Decimal("0")
        assert breakdown.principal_amount == Decimal("5000")

    def test_never_paid_loan_accrues_from_creation(self):
        loan = Loan(
            title="Car",
            balance=Decimal("36500"),
            monthly_payment=Decimal("1000"),
            annual_rate=Decimal("10"),
            created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
        )
        assert accrued_interest(loan, date(2024, 3, 11)) == Decimal("100.00")

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_non_positive_payment_rejected(self, amount):
        with pytest.raises(ValueError):
            amortize_payment(loan_paid_on(date(2024, 3, 1)), Decimal(amount), date(2024, 3, 31))

    def test_balance_is_monotonic(self):
        """Test that a sequence of payments never increases the balance."""
        loan = loan_paid_on(date(2024, 1, 1))
        day = date(2024, 1, 1)
        balances = [loan.balance]
        for amount in ["5000", "100", "5000", "20000"]:
            day = day + timedelta(days=31)
            breakdown = amortize_payment(loan, Decimal(amount), day)
            loan = loan.model_copy(update={
                "balance": breakdown.balance_after,
                "last_payment_date": day,
            })
            balances.append(loan.balance)
        assert balances == sorted(balances, reverse=True)

    def test_rebuild_from_history(self):
        """Test that replaying the stored payments reproduces the cached balance."""
        loan = loan_paid_on(date(2024, 1, 1))
        payments = []
        day = date(2024, 1, 1)
        for _ in range(3):
            day = day + timedelta(days=30)
            breakdown = amortize_payment(loan, Decimal("5000"), day)
            payments.append(breakdown.to_payment_record())
            loan = loan.model_copy(update={
                "balance": breakdown.balance_after,
                "last_payment_date": day,
            })

        assert rebuild_loan_balance(reversed(payments)) == loan.balance
        assert rebuild_loan_balance(payments, opening_balance=Decimal("100000")) == loan.balance

    def test_rebuild_needs_a_starting_point(self):
        with pytest.raises(ValueError):
            rebuild_loan_balance([])
        assert rebuild_loan_balance([], opening_balance=Decimal("42")) == Decimal("42")

    def test_planned_obligations_skip_closed_loans(self):
        loans = [
            loan_paid_on(None, monthly="5000"),
            loan_paid_on(None, monthly="3000"),
            loan_paid_on(None, monthly="7000").model_copy(update={"active": False}),
        ]
        assert planned_monthly_obligations(loans) == Decimal("8000")

    def test_next_payment_date_rolls_over(self):
        loan = Loan(title="Car", balance=Decimal("1"), monthly_payment=Decimal("1"), payment_day=10)
        assert next_payment_date(loan, date(2024, 3, 10)) == date(2024, 3, 10)
        assert next_payment_date(loan, date(2024, 3, 11)) == date(2024, 4, 10)
        assert next_payment_date(loan, date(2024, 12, 20)) == date(2025, 1, 10)


# =============================================================================
# CARDS
# =============================================================================

class TestCardTracker:
    """Tests for credit-card balance mutations."""

    def test_interest_grows_balance(self):
        card = CardAccount(title="Visa", balance=Decimal("0"), active=False)
        balance, active = apply_interest(card, Decimal("150"))
        assert balance == Decimal("150")
        assert active

    def test_payment_floors_at_zero(self):
        card = CardAccount(title="Visa", balance=Decimal("1000"))
        balance, active = apply_payment(card, Decimal("400"))
        assert (balance, active) == (Decimal("600"), True)

        balance, active = apply_payment(card, Decimal("5000"))
        assert (balance, active) == (Decimal("0"), False)

    def test_non_positive_amounts_rejected(self):
        card = CardAccount(title="Visa", balance=Decimal("1000"))
        with pytest.raises(ValueError):
            apply_payment(card, Decimal("0"))
        with pytest.raises(ValueError):
            apply_interest(card, Decimal("-1"))

    def test_rebuild_in_date_order(self):
        card_id = uuid4()
        events = [
            CardEvent(card_id=card_id, date=date(2024, 3, 20), kind="payment", amount=Decimal("300")),
            CardEvent(card_id=card_id, date=date(2024, 3, 1), kind="interest", amount=Decimal("100")),
            CardEvent(card_id=card_id, date=date(2024, 3, 10), kind="payment", amount=Decimal("50")),
        ]
        assert rebuild_card_balance(events, Decimal("1000")) == Decimal("750")
        assert rebuild_card_balance(events, Decimal("0")) == Decimal("0")

    def test_paid_this_month_ignores_interest(self):
        card_id = uuid4()
        events = [
            CardEvent(card_id=card_id, date=date(2024, 3, 1), kind="interest", amount=Decimal("100")),
            CardEvent(card_id=card_id, date=date(2024, 2, 25), kind="payment", amount=Decimal("100")),
        ]
        assert not paid_this_month(events, "2024-03")
        assert paid_this_month(events, "2024-02")

    def test_minimum_payment_and_due_date(self):
        card = CardAccount(title="Visa", balance=Decimal("2000"), due_day=25)
        assert card.minimum_payment == Decimal("100.00")
        assert next_due_date(card, date(2024, 3, 26)) == date(2024, 4, 25)


# =============================================================================
# TAXES
# =============================================================================

class TestTaxReserve:
    """Tests for the annual tax calculator."""

    def test_progressive_surcharge_above_threshold(self):
        """Test 1% on 200000 of taxable income above a 300000 threshold."""
        transactions = [tx(date(2024, 2, 1), "income", "500000", taxable=True)]
        summary = compute_tax_summary(
            transactions, [], TaxSettings(extra_rate=Decimal("0.01")), date(2024, 6, 15)
        )
        assert summary.progressive_base == Decimal("200000")
        assert summary.progressive_due == Decimal("2000")
        assert summary.months_remaining == 7

    def test_untaxed_income_is_ignored(self):
        transactions = [
            tx(date(2024, 3, 1), "income", "100000", taxable=True),
            tx(date(2024, 3, 2), "income", "900000", taxable=False),
        ]
        summary = compute_tax_summary(transactions, [], None, date(2024, 3, 15))
        assert summary.taxable_income_year == Decimal("100000")
        assert summary.flat_rate_due == Decimal("6000")
        assert summary.flat_rate_monthly_reserve == Decimal("6000")
        assert summary.progressive_due == Decimal("0")

    def test_payments_reduce_remaining(self):
        settings = TaxSettings(annual_fixed_levy=Decimal("12000"), extra_rate=Decimal("0.01"))
        payments = [
            TaxPayment(kind="fixed", amount=Decimal("5000"), date=date(2024, 2, 1)),
            TaxPayment(kind="fixed", amount=Decimal("9999"), date=date(2023, 12, 1)),
        ]
        summary = compute_tax_summary([], payments, settings, date(2024, 6, 1))
        assert summary.fixed_levy_paid == Decimal("5000")
        assert summary.fixed_levy_remaining == Decimal("7000")
        assert summary.monthly_reserve == Decimal("1000")

    def test_undated_payment_counts_in_creation_year(self):
        settings = TaxSettings(annual_fixed_levy=Decimal("1000"))
        payments = [
            TaxPayment(
                kind="any",
                amount=Decimal("1000"),
                created_at=datetime(2024, 5, 5, tzinfo=timezone.utc),
            ),
        ]
        summary = compute_tax_summary([], payments, settings, date(2024, 8, 1))
        assert summary.fixed_levy_paid == Decimal("1000")
        assert summary.fixed_levy_remaining == Decimal("0")

    def test_overpayment_floors_at_zero(self):
        settings = TaxSettings(annual_fixed_levy=Decimal("1000"))
        payments = [TaxPayment(kind="fixed", amount=Decimal("5000"), date=date(2024, 1, 1))]
        summary = compute_tax_summary([], payments, settings, date(2024, 2, 1))
        assert summary.fixed_levy_remaining == Decimal("0")
        assert summary.monthly_reserve == Decimal("0")

    def test_december_spreads_over_one_month(self):
        settings = TaxSettings(annual_fixed_levy=Decimal("12000"))
        summary = compute_tax_summary([], [], settings, date(2024, 12, 31))
        assert summary.months_remaining == 1
        assert summary.monthly_reserve == Decimal("12000")


# =============================================================================
# SAVINGS
# =============================================================================

class TestSavingsProjector:
    """Tests for savings goal progress."""

    def test_progress_and_months_to_goal(self):
        entries = [SavingsEntry(date=date(2024, 1, 10), amount=Decimal("250000"))]
        settings = SavingsSettings(goal_amount=Decimal("1000000"), target_monthly=Decimal("50000"))
        projection = project_savings(entries, settings, date(2024, 3, 1))

        assert projection.progress_pct == Decimal("25")
        assert projection.remaining_to_goal == Decimal("750000")
        assert projection.estimated_months_to_goal == 15
        assert projection.saved_this_month == Decimal("0")
        assert not projection.goal_reached

    def test_progress_display_is_clamped(self):
        entries = [SavingsEntry(date=date(2024, 1, 10), amount=Decimal("1500"))]
        settings = SavingsSettings(goal_amount=Decimal("1000"), target_monthly=Decimal("100"))
        projection = project_savings(entries, settings, date(2024, 3, 1))

        assert projection.progress_pct == Decimal("150")
        assert projection.display_progress_pct == Decimal("100")
        assert projection.goal_reached

    def test_months_to_goal_rounds_up(self):
        settings = SavingsSettings(goal_amount=Decimal("100"), target_monthly=Decimal("30"))
        projection = project_savings([], settings, date(2024, 3, 1))
        assert projection.estimated_months_to_goal == 4

    def test_no_target_means_no_estimate(self):
        projection = project_savings([], SavingsSettings(target_monthly=Decimal("0")), date(2024, 3, 1))
        assert projection.estimated_months_to_goal is None
        assert recommended_amount_today(projection) == Decimal("0")

    def test_recommended_daily_contribution(self):
        """Test that the rest of the monthly target is spread over the days left."""
        entries = [SavingsEntry(date=date(2024, 4, 1), amount=Decimal("10000"))]
        settings = SavingsSettings(goal_amount=Decimal("1000000"), target_monthly=Decimal("40000"))
        projection = project_savings(entries, settings, date(2024, 4, 21))

        assert projection.remaining_this_month == Decimal("30000")
        assert projection.days_remaining == 10
        assert projection.recommended_daily_contribution == Decimal("3000")
        assert recommended_amount_today(projection) == Decimal("3000")

    def test_target_met_recommends_nothing(self):
        entries = [SavingsEntry(date=date(2024, 4, 2), amount=Decimal("50000"))]
        settings = SavingsSettings(target_monthly=Decimal("40000"))
        projection = project_savings(entries, settings, date(2024, 4, 3))
        assert projection.remaining_this_month == Decimal("0")
        assert recommended_amount_today(projection) == Decimal("0")


# =============================================================================
# BUDGET
# =============================================================================

class TestSpendingBudget:
    """Tests for the forecast-from-plan spending budget."""

    def test_budget_from_actual_income(self):
        budget = compute_spending_budget(
            date(2024, 4, 1),
            actual_income=Decimal("100000"),
            actual_expense=Decimal("30000"),
            flat_tax_reserve=Decimal("6000"),
            loan_obligations=Decimal("10000"),
            tax_monthly_reserve=Decimal("4000"),
            target_monthly_savings=Decimal("20000"),
        )
        assert not budget.used_planned_income
        assert budget.spendable_before_saving == Decimal("80000")
        assert budget.allowed_monthly_spend == Decimal("60000")
        assert budget.average_daily_limit == Decimal("2000")
        assert budget.remaining_allowed_spend == Decimal("30000")
        assert budget.daily_limit_from_today == Decimal("1000")

    def test_planned_income_wins_when_positive(self):
        budget = compute_spending_budget(
            date(2024, 4, 1),
            actual_income=Decimal("0"),
            actual_expense=Decimal("0"),
            flat_tax_reserve=Decimal("0"),
            loan_obligations=Decimal("0"),
            tax_monthly_reserve=Decimal("0"),
            target_monthly_savings=Decimal("0"),
            planned_income=Decimal("90000"),
        )
        assert budget.used_planned_income
        assert budget.allowed_monthly_spend == Decimal("90000")

    def test_zero_plan_falls_back_to_actual(self):
        budget = compute_spending_budget(
            date(2024, 4, 1),
            actual_income=Decimal("3000"),
            actual_expense=Decimal("0"),
            flat_tax_reserve=Decimal("0"),
            loan_obligations=Decimal("0"),
            tax_monthly_reserve=Decimal("0"),
            target_monthly_savings=Decimal("0"),
            planned_income=Decimal("0"),
        )
        assert not budget.used_planned_income
        assert budget.base_income == Decimal("3000")

    def test_overspending_goes_negative(self):
        """Test that the allowance floors at zero but the remainder does not."""
        budget = compute_spending_budget(
            date(2024, 4, 30),
            actual_income=Decimal("10000"),
            actual_expense=Decimal("15000"),
            flat_tax_reserve=Decimal("0"),
            loan_obligations=Decimal("20000"),
            tax_monthly_reserve=Decimal("0"),
            target_monthly_savings=Decimal("0"),
        )
        assert budget.allowed_monthly_spend == Decimal("0")
        assert budget.remaining_allowed_spend == Decimal("-15000")
        assert budget.days_remaining == 1
        assert budget.overspent

    def test_cash_position_counts_savings_once(self):
        cash = compute_cash_position(
            "2024-04",
            carry_in=Decimal("-500"),
            income=Decimal("100000"),
            expense=Decimal("40000"),
            unmirrored_savings=Decimal("5000"),
            flat_tax_reserve=Decimal("6000"),
            loan_obligations=Decimal("10000"),
            tax_monthly_reserve=Decimal("1000"),
        )
        assert cash.balance_now == Decimal("54500")
        assert cash.forecast_free_money == Decimal("38000")


# =============================================================================
# RECURRING
# =============================================================================

class TestRecurringStatus:
    """Tests for the monthly recurring obligation checklist."""

    def test_paid_and_unpaid(self):
        rent = RecurringObligation(title="Rent", amount=Decimal("30000"), pay_day=5)
        phone = RecurringObligation(title="Phone", amount=Decimal("500"), pay_day=1)
        gym = RecurringObligation(title="Gym", amount=Decimal("2000"), active=False)
        payments = [
            RecurringPayment(
                recurring_id=rent.id,
                month="2024-04",
                paid_date=date(2024, 4, 4),
                amount=Decimal("30000"),
            ),
            RecurringPayment(
                recurring_id=phone.id,
                month="2024-03",
                paid_date=date(2024, 3, 1),
                amount=Decimal("500"),
            ),
        ]
        statuses = recurring_statuses([rent, phone, gym], payments, "2024-04")

        assert [s.title for s in statuses] == ["Phone", "Rent"]
        assert not statuses[0].paid
        assert statuses[1].paid
        assert statuses[1].paid_date == date(2024, 4, 4)
