"""
Ledger Normalizer

The ledger accumulated several spellings of the same thing across schema
revisions: English and Russian words, bare signs, older tax payment kinds.
These functions classify any raw value into a strict enum.

IMPORTANT: They never raise. An unrecognized transaction label is treated
as an expense so that junk data can never inflate income.
"""

from typing import Any

from ledger.models.enums import TaxPaymentKind, TransactionKind


INCOME_LABELS = frozenset({"income", "доход", "+", "in"})
EXPENSE_LABELS = frozenset({"expense", "расход", "-", "outcome", "spend"})

TAX_KIND_LABELS = {
    "flat_rate_income_tax": TaxPaymentKind.FLAT_RATE_INCOME_TAX,
    "flat": TaxPaymentKind.FLAT_RATE_INCOME_TAX,
    "usn": TaxPaymentKind.FLAT_RATE_INCOME_TAX,
    "усн": TaxPaymentKind.FLAT_RATE_INCOME_TAX,
    "income_tax": TaxPaymentKind.FLAT_RATE_INCOME_TAX,
    "fixed_insurance": TaxPaymentKind.FIXED_INSURANCE,
    "fixed": TaxPaymentKind.FIXED_INSURANCE,
    "insurance": TaxPaymentKind.FIXED_INSURANCE,
    "взносы": TaxPaymentKind.FIXED_INSURANCE,
    "progressive_surcharge": TaxPaymentKind.PROGRESSIVE_SURCHARGE,
    "extra": TaxPaymentKind.PROGRESSIVE_SURCHARGE,
    "surcharge": TaxPaymentKind.PROGRESSIVE_SURCHARGE,
    "1%": TaxPaymentKind.PROGRESSIVE_SURCHARGE,
}


def _clean_label(raw: Any) -> str:
    if isinstance(raw, (TransactionKind, TaxPaymentKind)):
        return raw.value
    if raw is None:
        return ""
    try:
        return str(raw).strip().lower()
    except Exception:
        return ""


def normalize_kind(raw: Any) -> TransactionKind:
    """
    Classify a raw transaction kind label.

    >>> normalize_kind("Доход")
    <TransactionKind.INCOME: 'income'>
    >>> normalize_kind(None)
    <TransactionKind.EXPENSE: 'expense'>
    """
    label = _clean_label(raw)
    if label in INCOME_LABELS:
        return TransactionKind.INCOME
    return TransactionKind.EXPENSE


def normalize_tax_kind(raw: Any) -> TaxPaymentKind:
    """
    Classify a raw tax payment kind.

    The earliest schema used a catch-all ``any`` kind for insurance
    contributions; it and every other unknown label land on fixed insurance.
    """
    return TAX_KIND_LABELS.get(_clean_label(raw), TaxPaymentKind.FIXED_INSURANCE)
