"""
Savings Goal Projector

Tracks progress toward the savings goal and how much should still go in
this month, spread over the days left (today included).
"""

import datetime as dt
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from ledger.engine.periods import (
    ZERO,
    days_in_month,
    days_remaining_in_month,
    month_key,
)
from ledger.models.derived import SavingsProjection
from ledger.models.records import SavingsEntry, SavingsSettings


def project_savings(
    entries: Iterable[SavingsEntry],
    settings: Optional[SavingsSettings],
    today: dt.date,
) -> SavingsProjection:
    """
    Project savings progress as of ``today``.

    Example:
        goal 1,000,000, saved 250,000, target 50,000/month
        -> progress 25%, 750,000 to go, 15 months
    """
    entries = list(entries)
    settings = settings or SavingsSettings()
    goal = settings.goal_amount
    target = settings.target_monthly

    total_saved = sum((e.amount for e in entries), ZERO)
    month = month_key(today)
    saved_this_month = sum(
        (e.amount for e in entries if e.date.isoformat().startswith(month)),
        ZERO,
    )

    remaining_to_goal = max(ZERO, goal - total_saved)
    progress_pct = total_saved / goal * Decimal("100") if goal > 0 else ZERO

    estimated_months: Optional[int] = None
    if target > 0:
        estimated_months = math.ceil(remaining_to_goal / target)

    remaining_this_month = max(ZERO, target - saved_this_month)
    days_left = days_remaining_in_month(today)

    return SavingsProjection(
        goal_amount=goal,
        target_monthly=target,
        total_saved=total_saved,
        saved_this_month=saved_this_month,
        remaining_to_goal=remaining_to_goal,
        progress_pct=progress_pct,
        estimated_months_to_goal=estimated_months,
        remaining_this_month=remaining_this_month,
        days_remaining=days_left,
        recommended_daily_contribution=remaining_this_month / days_left,
        average_daily_contribution=target / days_in_month(today),
    )


def recommended_amount_today(projection: SavingsProjection) -> Decimal:
    """Today's recommended contribution rounded to whole units; 0 means skip."""
    amount = projection.recommended_daily_contribution.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return amount if amount > 0 else ZERO
