"""
Credit-Card Balance Tracker

Two independent mutations on a card balance:
- interest: balance grows by the accrued amount, card is active
- payment:  balance = max(0, balance - amount), active while balance > 0

Interest is a liability increase, not cash leaving the household, so only
payments are mirrored into the ledger. Statement and due days are advisory:
nothing here enforces them.
"""

import datetime as dt
from decimal import Decimal
from typing import Iterable

from ledger.engine.periods import ZERO, clamp_day
from ledger.models.derived import CardStatus
from ledger.models.enums import CardEventKind
from ledger.models.records import CardAccount, CardEvent


def _positive(amount: Decimal) -> Decimal:
    amount = Decimal(amount)
    if amount <= 0:
        raise ValueError(f"Amount must be positive, got {amount}")
    return amount


def apply_interest(card: CardAccount, amount: Decimal) -> tuple[Decimal, bool]:
    """Return (new_balance, active) after accruing interest."""
    return card.balance + _positive(amount), True


def apply_payment(card: CardAccount, amount: Decimal) -> tuple[Decimal, bool]:
    """Return (new_balance, active) after a payment."""
    new_balance = max(ZERO, card.balance - _positive(amount))
    return new_balance, new_balance > 0


def rebuild_card_balance(
    events: Iterable[CardEvent],
    opening_balance: Decimal,
) -> Decimal:
    """Replay interest and payment events, in date order, from an opening balance."""
    balance = Decimal(opening_balance)
    for event in sorted(events, key=lambda e: (e.date, e.created_at)):
        if event.kind == CardEventKind.INTEREST:
            balance += event.amount
        else:
            balance = max(ZERO, balance - event.amount)
    return balance


def paid_this_month(events: Iterable[CardEvent], month: str) -> bool:
    """Was any payment event recorded in the given month?"""
    payment_months = {
        event.date.isoformat()[:7]
        for event in events
        if event.kind == CardEventKind.PAYMENT
    }
    return month in payment_months


def next_due_date(card: CardAccount, today: dt.date) -> dt.date:
    """Upcoming due day, today included."""
    candidate = clamp_day(today.year, today.month, card.due_day)
    if candidate >= today:
        return candidate
    if today.month == 12:
        return clamp_day(today.year + 1, 1, card.due_day)
    return clamp_day(today.year, today.month + 1, card.due_day)


def card_status(card: CardAccount, events: list[CardEvent], today: dt.date) -> CardStatus:
    return CardStatus(
        card_id=card.id,
        title=card.title,
        balance=card.balance,
        minimum_payment=card.minimum_payment,
        next_due_date=next_due_date(card, today),
        paid_this_month=paid_this_month(events, today.isoformat()[:7]),
        active=card.active,
    )
