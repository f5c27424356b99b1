"""
Presentation boundary helpers.

Users type amounts the way they write them ("12 500,50"); figures go back
out integer-rounded with grouped thousands and a currency symbol.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional


def parse_amount_loose(raw: Any) -> Optional[Decimal]:
    """
    Parse a free-text number.

    Accepts a comma as the decimal separator and ignores any whitespace.
    Returns None for empty or non-numeric input instead of raising.

    >>> parse_amount_loose(" 12 500,50 ")
    Decimal('12500.50')
    >>> parse_amount_loose("abc") is None
    True
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else None
    if isinstance(raw, (int, float)):
        raw = str(raw)
    if not isinstance(raw, str):
        return None

    cleaned = "".join(raw.split()).replace(",", ".")
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def format_money(amount: Decimal, currency_symbol: str = "₽") -> str:
    """
    Integer-rounded amount with grouped thousands.

    >>> format_money(Decimal("1234567.5"))
    '1 234 568 ₽'
    """
    rounded = int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    grouped = f"{rounded:,}".replace(",", " ")
    return f"{grouped} {currency_symbol}" if currency_symbol else grouped
