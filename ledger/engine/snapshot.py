"""
Ledger Snapshot and Session

A snapshot is an immutable bundle of every loaded collection plus a
version number. All derived figures are computed from one snapshot.

CRITICAL: A published snapshot is never mutated. Reloading a collection
builds a new snapshot with ``version + 1``; a calculation that already
holds the old one finishes on consistent data, and memoized results keyed
by version can never go stale.

The session reacts to store change notifications the same way every time:
the affected collection is marked dirty and reloaded in full on the next
``refresh()``. There is no incremental patching.
"""

import asyncio
import datetime as dt
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ledger.engine.periods import ZERO, in_period
from ledger.events import EventLogger
from ledger.models.enums import Collection
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
    TaxPayment,
    TaxSettings,
    Transaction,
    utcnow,
)
from ledger.services.repository import LedgerRepository


class LedgerSnapshot(BaseModel):
    """Everything loaded from the record store at one point in time."""
    model_config = ConfigDict(frozen=True)

    version: int = Field(default=0, ge=0)
    loaded_at: dt.datetime = Field(default_factory=utcnow)

    transactions: tuple[Transaction, ...] = ()
    loans: tuple[Loan, ...] = ()
    loan_payments: tuple[LoanPayment, ...] = ()
    card_accounts: tuple[CardAccount, ...] = ()
    card_events: tuple[CardEvent, ...] = ()
    tax_settings: Optional[TaxSettings] = None
    tax_payments: tuple[TaxPayment, ...] = ()
    savings_settings: Optional[SavingsSettings] = None
    savings_entries: tuple[SavingsEntry, ...] = ()
    month_carryovers: tuple[MonthCarryover, ...] = ()
    recurring_obligations: tuple[RecurringObligation, ...] = ()
    recurring_payments: tuple[RecurringPayment, ...] = ()

    def events_for_card(self, card_id: UUID) -> list[CardEvent]:
        return [e for e in self.card_events if e.card_id == card_id]

    def carry_in_for(self, month: str) -> Decimal:
        """Opening balance of a month; 0 when the previous month was never closed."""
        for row in self.month_carryovers:
            if row.month == month:
                return row.carry_in
        return ZERO

    def unmirrored_savings(self, period: str) -> Decimal:
        """Savings contributions in a period that have no expense transaction."""
        return sum(
            (
                e.amount for e in self.savings_entries
                if e.transaction_id is None and in_period(e.date, period)
            ),
            ZERO,
        )


# Snapshot field and repository loader for each collection
Loader = Callable[[LedgerRepository], Awaitable[Any]]

COLLECTION_LOADERS: dict[Collection, tuple[str, Loader, bool]] = {
    Collection.TRANSACTIONS: ("transactions", LedgerRepository.load_transactions, True),
    Collection.LOANS: ("loans", LedgerRepository.load_loans, True),
    Collection.LOAN_PAYMENTS: ("loan_payments", LedgerRepository.load_loan_payments, True),
    Collection.CARD_ACCOUNTS: ("card_accounts", LedgerRepository.load_card_accounts, True),
    Collection.CARD_EVENTS: ("card_events", LedgerRepository.load_card_events, True),
    Collection.TAX_SETTINGS: ("tax_settings", LedgerRepository.ensure_tax_settings, False),
    Collection.TAX_PAYMENTS: ("tax_payments", LedgerRepository.load_tax_payments, True),
    Collection.SAVINGS_SETTINGS: ("savings_settings", LedgerRepository.ensure_savings_settings, False),
    Collection.SAVINGS_ENTRIES: ("savings_entries", LedgerRepository.load_savings_entries, True),
    Collection.MONTH_CARRYOVERS: ("month_carryovers", LedgerRepository.load_month_carryovers, True),
    Collection.RECURRING_EXPENSES: ("recurring_obligations", LedgerRepository.load_recurring_obligations, True),
    Collection.RECURRING_PAYMENTS: ("recurring_payments", LedgerRepository.load_recurring_payments, True),
}


class LedgerSession:
    """
    Holds the current snapshot and keeps it in step with the store.

    Usage:
        session = LedgerSession(repository)
        snapshot = await session.load_all()
        session.subscribe()
        ...
        snapshot = await session.refresh()
    """

    def __init__(
        self,
        repository: LedgerRepository,
        event_logger: Optional[EventLogger] = None,
    ):
        self._repository = repository
        self._event_logger = event_logger
        self._snapshot = LedgerSnapshot()
        self._dirty: set[Collection] = set()
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def snapshot(self) -> LedgerSnapshot:
        return self._snapshot

    @property
    def dirty(self) -> frozenset[Collection]:
        return frozenset(self._dirty)

    @property
    def is_stale(self) -> bool:
        return bool(self._dirty)

    async def load_all(self) -> LedgerSnapshot:
        """Load every collection concurrently and publish a fresh snapshot."""
        return await self.reload(*COLLECTION_LOADERS.keys())

    async def reload(self, *collections: Collection) -> LedgerSnapshot:
        """
        Re-fetch the named collections in full and publish a new snapshot.

        Loads for independent collections are dispatched together and
        joined before anything is published.
        """
        targets = list(dict.fromkeys(collections))
        if not targets:
            return self._snapshot

        # Changes arriving while we load keep the collection dirty
        self._dirty.difference_update(targets)

        try:
            results = await asyncio.gather(
                *(COLLECTION_LOADERS[c][1](self._repository) for c in targets)
            )
        except (Exception, asyncio.CancelledError):
            # Failed loads stay dirty so the next refresh retries them
            self._dirty.update(targets)
            raise

        update: dict[str, Any] = {}
        counts: dict[str, int] = {}
        for collection, result in zip(targets, results):
            field_name, _, is_sequence = COLLECTION_LOADERS[collection]
            update[field_name] = tuple(result) if is_sequence else result
            counts[collection.value] = len(result) if is_sequence else 1

        update["version"] = self._snapshot.version + 1
        update["loaded_at"] = utcnow()
        self._snapshot = self._snapshot.model_copy(update=update)

        if self._event_logger:
            self._event_logger.log_snapshot(
                version=self._snapshot.version,
                collections=[c.value for c in targets],
                counts=counts,
            )
        return self._snapshot

    async def refresh(self) -> LedgerSnapshot:
        """Reload whatever the store reported as changed."""
        return await self.reload(*sorted(self._dirty, key=lambda c: c.value))

    def mark_dirty(self, collection: Collection) -> None:
        self._dirty.add(collection)

    def subscribe(self) -> None:
        """Listen for store changes on every collection."""
        if self._unsubscribers:
            return
        store = self._repository.store
        for collection in COLLECTION_LOADERS:
            self._unsubscribers.append(store.subscribe(collection, self.mark_dirty))

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
