"""
Data Models Package

This package contains all Pydantic models used in the Household Ledger.
All data flowing through the system must conform to these schemas.
"""

from ledger.models.enums import (
    CardEventKind,
    Collection,
    ObligationKind,
    TaxPaymentKind,
    TransactionKind,
)
from ledger.models.normalize import normalize_kind, normalize_tax_kind
from ledger.models.records import (
    CardAccount,
    CardEvent,
    Loan,
    LoanPayment,
    MonthCarryover,
    RecurringObligation,
    RecurringPayment,
    SavingsEntry,
    SavingsSettings,
    StoredRecord,
    TaxPayment,
    TaxSettings,
    Transaction,
    ValidationIssue,
    ValidationResult,
)
from ledger.models.derived import (
    CardStatus,
    CashPosition,
    LoanPaymentBreakdown,
    LoanStatus,
    MonthlyOverview,
    RecurringStatus,
    SavingsProjection,
    SpendingBudget,
    TaxSummary,
)
from ledger.models.reports import CategoryBreakdown, ReportQuery, ReportResult
from ledger.models.events import (
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
    LedgerSeverity,
)

__all__ = [
    # Enums
    "CardEventKind",
    "Collection",
    "ObligationKind",
    "TaxPaymentKind",
    "TransactionKind",
    # Normalizer
    "normalize_kind",
    "normalize_tax_kind",
    # Records
    "CardAccount",
    "CardEvent",
    "Loan",
    "LoanPayment",
    "MonthCarryover",
    "RecurringObligation",
    "RecurringPayment",
    "SavingsEntry",
    "SavingsSettings",
    "StoredRecord",
    "TaxPayment",
    "TaxSettings",
    "Transaction",
    "ValidationIssue",
    "ValidationResult",
    # Derived figures
    "CardStatus",
    "CashPosition",
    "LoanPaymentBreakdown",
    "LoanStatus",
    "MonthlyOverview",
    "RecurringStatus",
    "SavingsProjection",
    "SpendingBudget",
    "TaxSummary",
    # Reports
    "CategoryBreakdown",
    "ReportQuery",
    "ReportResult",
    # Log events
    "LedgerEvent",
    "LedgerEventBuilder",
    "LedgerEventType",
    "LedgerSeverity",
]
