"""Monthly status of recurring obligations."""

from typing import Iterable

from ledger.models.derived import RecurringStatus
from ledger.models.records import RecurringObligation, RecurringPayment


def recurring_statuses(
    obligations: Iterable[RecurringObligation],
    payments: Iterable[RecurringPayment],
    month: str,
) -> list[RecurringStatus]:
    """Paid/unpaid status of each active obligation for a month, by pay day."""
    paid = {p.recurring_id: p for p in payments if p.month == month}
    statuses = []
    for obligation in sorted(obligations, key=lambda o: (o.pay_day, o.title)):
        if not obligation.active:
            continue
        payment = paid.get(obligation.id)
        statuses.append(RecurringStatus(
            recurring_id=obligation.id,
            title=obligation.title,
            amount=obligation.amount,
            pay_day=obligation.pay_day,
            paid=payment is not None,
            paid_date=payment.paid_date if payment else None,
        ))
    return statuses
