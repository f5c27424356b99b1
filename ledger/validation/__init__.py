"""Validation package."""

from ledger.validation.formatting import format_money, parse_amount_loose
from ledger.validation.validator import InputValidationError, LedgerValidator

__all__ = [
    "InputValidationError",
    "LedgerValidator",
    "format_money",
    "parse_amount_loose",
]
