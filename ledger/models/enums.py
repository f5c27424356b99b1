"""
Enumerations shared by records, the engine and the store.

DESIGN DECISION: Loose historical labels are parsed into these enums at
the model boundary (see ``ledger.models.normalize``). Nothing past the
boundary ever sees a raw label.
"""

from enum import Enum


class TransactionKind(str, Enum):
    """Direction of a cash movement."""
    INCOME = "income"
    EXPENSE = "expense"


class ObligationKind(str, Enum):
    """What kind of record caused a mirrored transaction."""
    LOAN = "loan"
    CARD = "card"
    RECURRING = "recurring"
    TAX = "tax"
    SAVINGS = "savings"


class CardEventKind(str, Enum):
    """Credit-card events. Interest grows the debt, a payment shrinks it."""
    INTEREST = "interest"
    PAYMENT = "payment"


class TaxPaymentKind(str, Enum):
    """Statutory payments tracked by the tax reserve calculator."""
    FLAT_RATE_INCOME_TAX = "flat_rate_income_tax"
    FIXED_INSURANCE = "fixed_insurance"
    PROGRESSIVE_SURCHARGE = "progressive_surcharge"


class Collection(str, Enum):
    """
    Named collections in the record store.

    One collection per record type; the two settings collections hold a
    single row each.
    """
    TRANSACTIONS = "transactions"
    LOANS = "loans"
    LOAN_PAYMENTS = "loan_payments"
    CARD_ACCOUNTS = "card_accounts"
    CARD_EVENTS = "card_events"
    TAX_SETTINGS = "tax_settings"
    TAX_PAYMENTS = "tax_payments"
    SAVINGS_SETTINGS = "savings_settings"
    SAVINGS_ENTRIES = "savings_entries"
    MONTH_CARRYOVERS = "month_carryovers"
    RECURRING_EXPENSES = "recurring_expenses"
    RECURRING_PAYMENTS = "recurring_payments"
