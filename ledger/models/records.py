"""
Core Data Models for Household Ledger

These models define the strict schemas for every record kept in the store.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for any record store backend
4. Parse loose historical values at the boundary

DESIGN DECISION: Money is always Decimal. Float rounding would make the
loan split (interest + principal == payment) unreliable.

DESIGN DECISION: Audit-style records (LoanPayment, CardEvent) are frozen.
They are appended once and never edited.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from ledger.models.enums import (
    CardEventKind,
    Collection,
    ObligationKind,
    TaxPaymentKind,
    TransactionKind,
)
from ledger.models.normalize import normalize_kind, normalize_tax_kind


MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


def utcnow() -> dt.datetime:
    """Timezone-aware current time used for created_at defaults."""
    return dt.datetime.now(dt.timezone.utc)


# =============================================================================
# BASE RECORD
# =============================================================================

class StoredRecord(BaseModel):
    """
    Fields every stored record carries.

    The store may assign both on insert; models default them so records
    can also be built in memory.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique record ID"
    )
    created_at: dt.datetime = Field(
        default_factory=utcnow,
        description="When the record was created"
    )

    def to_record(self) -> dict[str, Any]:
        """Serialize to the plain dict shape written to the record store."""
        return self.model_dump(mode="json")


# =============================================================================
# LEDGER
# =============================================================================

class Transaction(StoredRecord):
    """
    A single cash movement.

    CRITICAL: ``kind`` is parsed through the normalizer, so records written
    with "доход", "+" or "outcome" by older versions load as a strict enum.
    """

    date: dt.date = Field(
        ...,
        description="Calendar day of the movement"
    )
    kind: TransactionKind = Field(
        ...,
        description="Income or expense"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Positive amount"
    )
    category: str = Field(
        default="",
        max_length=100,
        description="Free-text category"
    )
    taxable: Optional[bool] = Field(
        default=None,
        description="Subject to the flat-rate tax (income only)"
    )
    note: Optional[str] = Field(
        default=None,
        max_length=500
    )

    # Link to whatever caused a mirrored transaction
    obligation_kind: Optional[ObligationKind] = None
    obligation_id: Optional[UUID] = None
    source_event_id: Optional[UUID] = Field(
        default=None,
        description="ID of the payment/event record this transaction mirrors"
    )

    @field_validator('kind', mode='before')
    @classmethod
    def normalize_kind_label(cls, v: Any) -> TransactionKind:
        return normalize_kind(v)

    @field_validator('note', mode='before')
    @classmethod
    def blank_note_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode='after')
    def apply_kind_defaults(self) -> 'Transaction':
        if not self.category:
            self.category = "Income" if self.is_income else "Expense"
        if not self.is_income:
            self.taxable = None
        return self

    @property
    def is_income(self) -> bool:
        return self.kind == TransactionKind.INCOME

    @property
    def is_mirror(self) -> bool:
        """Was this transaction created automatically alongside another record?"""
        return self.source_event_id is not None


# =============================================================================
# LOANS
# =============================================================================

class Loan(StoredRecord):
    """
    An installment loan.

    ``balance`` is a cached projection of the payment history; it is only
    moved forward by the amortization calculator or rebuilt from history.
    """

    title: str = Field(
        ...,
        min_length=1,
        max_length=200
    )
    balance: Decimal = Field(
        ...,
        ge=0,
        description="Remaining principal"
    )
    monthly_payment: Decimal = Field(
        ...,
        ge=0,
        description="Planned monthly installment"
    )
    payment_day: int = Field(
        default=10,
        ge=1,
        le=28
    )
    annual_rate: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        le=200,
        description="Annual interest rate, percent"
    )
    last_payment_date: Optional[dt.date] = None
    active: bool = True

    @field_validator('annual_rate', mode='before')
    @classmethod
    def missing_rate_is_zero(cls, v: Any) -> Any:
        return Decimal("0") if v is None or v == "" else v

    @property
    def interest_start_date(self) -> dt.date:
        """Interest accrues from the last payment, or from creation if never paid."""
        return self.last_payment_date or self.created_at.date()


class LoanPayment(StoredRecord):
    """Immutable record of one loan payment and how it was split."""
    model_config = ConfigDict(frozen=True)

    loan_id: UUID
    payment_date: dt.date
    payment_amount: Decimal = Field(..., gt=0)
    interest_amount: Decimal = Field(..., ge=0)
    principal_amount: Decimal = Field(..., ge=0)
    balance_before: Decimal = Field(..., ge=0)
    balance_after: Decimal = Field(..., ge=0)


# =============================================================================
# CREDIT CARDS
# =============================================================================

class CardAccount(StoredRecord):
    """A revolving credit card balance."""

    title: str = Field(
        ...,
        min_length=1,
        max_length=200
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Current debt"
    )
    opening_balance: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Debt when the card was added; the replay start for rebuilds"
    )
    statement_day: int = Field(default=1, ge=1, le=28)
    due_day: int = Field(default=25, ge=1, le=28)
    min_payment_rate: Decimal = Field(
        default=Decimal("0.05"),
        ge=0,
        le=1,
        description="Minimum payment as a fraction of the balance"
    )
    active: bool = True

    @property
    def minimum_payment(self) -> Decimal:
        return self.balance * self.min_payment_rate


class CardEvent(StoredRecord):
    """Immutable interest accrual or payment on a card."""
    model_config = ConfigDict(frozen=True)

    card_id: UUID
    date: dt.date
    kind: CardEventKind
    amount: Decimal = Field(..., gt=0)
    note: Optional[str] = Field(default=None, max_length=500)

    @field_validator('kind', mode='before')
    @classmethod
    def lowercase_kind(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


# =============================================================================
# TAXES
# =============================================================================

class TaxSettings(StoredRecord):
    """Singleton settings row for tax reserves."""

    annual_fixed_levy: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Fixed annual insurance contribution"
    )
    extra_rate: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        le=1,
        description="Surcharge rate on taxable income above the threshold"
    )


class TaxPayment(StoredRecord):
    """A recorded tax or contribution payment."""

    kind: TaxPaymentKind = Field(
        default=TaxPaymentKind.FIXED_INSURANCE
    )
    amount: Decimal = Field(..., gt=0)
    note: Optional[str] = Field(default=None, max_length=500)
    transaction_id: Optional[UUID] = Field(
        default=None,
        description="Mirrored expense transaction"
    )
    date: Optional[dt.date] = None

    @field_validator('kind', mode='before')
    @classmethod
    def normalize_kind_label(cls, v: Any) -> TaxPaymentKind:
        return normalize_tax_kind(v)

    @property
    def effective_date(self) -> dt.date:
        """Payments without a date count toward the year they were recorded in."""
        return self.date or self.created_at.date()


# =============================================================================
# SAVINGS
# =============================================================================

class SavingsSettings(StoredRecord):
    """Singleton settings row for the savings goal."""

    goal_amount: Decimal = Field(
        default=Decimal("1000000"),
        ge=0
    )
    target_monthly: Decimal = Field(
        default=Decimal("0"),
        ge=0
    )


class SavingsEntry(StoredRecord):
    """One contribution to savings."""

    date: dt.date
    amount: Decimal = Field(..., gt=0)
    note: Optional[str] = Field(default=None, max_length=500)
    transaction_id: Optional[UUID] = Field(
        default=None,
        description="Mirrored expense transaction, when mirroring is enabled"
    )


# =============================================================================
# MONTH CLOSE AND RECURRING OBLIGATIONS
# =============================================================================

class MonthCarryover(StoredRecord):
    """
    Opening balance of a month, fixed by the user closing out the month before.

    It is never computed on read.
    """

    month: str = Field(..., pattern=MONTH_PATTERN)
    carry_in: Decimal = Field(
        default=Decimal("0"),
        description="Opening balance; negative when the previous month overran"
    )


class RecurringObligation(StoredRecord):
    """A fixed monthly bill (rent, subscriptions, ...)."""

    title: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    pay_day: int = Field(default=1, ge=1, le=28)
    active: bool = True


class RecurringPayment(StoredRecord):
    """Marks a recurring obligation as paid for one month."""

    recurring_id: UUID
    month: str = Field(..., pattern=MONTH_PATTERN)
    paid_date: dt.date
    amount: Decimal = Field(..., gt=0)
    transaction_id: Optional[UUID] = None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found in user input."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'not_a_number', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of validating one form submission.

    Errors block the write. Warnings are shown but don't block.
    """

    subject: str = Field(
        ...,
        description="What was validated (e.g., 'loan', 'transaction')"
    )
    validated_at: dt.datetime = Field(
        default_factory=utcnow
    )
    issues: list[ValidationIssue] = Field(default_factory=list)
    values: dict[str, Any] = Field(
        default_factory=dict,
        description="Parsed values, keyed by field name"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]


# =============================================================================
# COLLECTION MAPPING
# =============================================================================

COLLECTION_MODELS: dict[Collection, type[StoredRecord]] = {
    Collection.TRANSACTIONS: Transaction,
    Collection.LOANS: Loan,
    Collection.LOAN_PAYMENTS: LoanPayment,
    Collection.CARD_ACCOUNTS: CardAccount,
    Collection.CARD_EVENTS: CardEvent,
    Collection.TAX_SETTINGS: TaxSettings,
    Collection.TAX_PAYMENTS: TaxPayment,
    Collection.SAVINGS_SETTINGS: SavingsSettings,
    Collection.SAVINGS_ENTRIES: SavingsEntry,
    Collection.MONTH_CARRYOVERS: MonthCarryover,
    Collection.RECURRING_EXPENSES: RecurringObligation,
    Collection.RECURRING_PAYMENTS: RecurringPayment,
}
