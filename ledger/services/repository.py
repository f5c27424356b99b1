"""
Ledger Repository

Typed access to the record store. Raw dicts come in from the store and
leave as validated pydantic models; models go out as JSON-compatible dicts.

CRITICAL: Loading never fails because of one bad row. A record that does
not fit its model is skipped and logged as malformed; every calculator
downstream works from the rows that did parse.

DESIGN DECISION: The two settings collections are singletons created on
first use with the configured defaults, so a fresh ledger always has a
tax and savings configuration to compute against.
"""

from collections import defaultdict
from typing import Any, Optional, TypeVar
from uuid import UUID

from pydantic import ValidationError

from ledger.config import LedgerSettings, get_settings
from ledger.events import EventLogger
from ledger.models.enums import Collection
from ledger.models.events import LedgerEventType
from ledger.models.records import (
    COLLECTION_MODELS,
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
)
from ledger.services.storage import NotFoundError, RecordStoreInterface


RecordT = TypeVar("RecordT", bound=StoredRecord)


class LedgerRepository:
    """
    Maps record store rows to ledger models.

    Usage:
        repo = LedgerRepository(store)
        loans = await repo.load_loans()
        await repo.insert(Collection.LOANS, loan)
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        event_logger: Optional[EventLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._event_logger = event_logger
        self._settings = settings or get_settings().ledger

    @property
    def store(self) -> RecordStoreInterface:
        return self._store

    # =========================================================================
    # GENERIC OPERATIONS
    # =========================================================================

    def _parse(self, collection: Collection, raw: dict[str, Any]) -> Optional[StoredRecord]:
        model = COLLECTION_MODELS[collection]
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            if self._event_logger:
                self._event_logger.log_malformed_record(
                    collection=collection.value,
                    record_id=raw.get("id"),
                    error_message=str(e),
                )
            return None

    async def load(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[StoredRecord]:
        """Load and parse every record of a collection, skipping malformed rows."""
        rows = await self._store.list(
            collection,
            filters=filters,
            order_by=order_by,
            descending=descending,
        )
        parsed = (self._parse(collection, row) for row in rows)
        return [record for record in parsed if record is not None]

    async def get(self, collection: Collection, record_id: UUID) -> Optional[StoredRecord]:
        records = await self.load(collection, filters={"id": record_id})
        return records[0] if records else None

    async def insert(self, collection: Collection, record: RecordT) -> RecordT:
        """Insert a model and return it as the store saved it."""
        stored = await self._store.insert(collection, record.to_record())
        return type(record).model_validate(stored)

    async def update(
        self,
        collection: Collection,
        record_id: UUID,
        patch: dict[str, Any],
    ) -> StoredRecord:
        """
        Apply a partial update.

        The patch is validated against the model before it is sent, so a bad
        value never reaches the store.
        """
        current = await self.get(collection, record_id)
        if current is None:
            raise NotFoundError(f"{collection.value} record not found: {record_id}")
        model = COLLECTION_MODELS[collection]
        candidate = model.model_validate({**current.to_record(), **patch})
        json_patch = {
            key: value
            for key, value in candidate.to_record().items()
            if key in patch
        }
        stored = await self._store.update(collection, str(record_id), json_patch)
        return model.model_validate(stored)

    async def delete(self, collection: Collection, record_id: UUID) -> None:
        await self._store.delete(collection, str(record_id))

    # =========================================================================
    # TYPED LOADERS
    # =========================================================================

    async def load_transactions(self) -> list[Transaction]:
        return await self.load(Collection.TRANSACTIONS, order_by="date", descending=True)

    async def load_loans(self) -> list[Loan]:
        return await self.load(Collection.LOANS, order_by="created_at")

    async def load_loan_payments(self) -> list[LoanPayment]:
        return await self.load(Collection.LOAN_PAYMENTS, order_by="payment_date")

    async def load_card_accounts(self) -> list[CardAccount]:
        return await self.load(Collection.CARD_ACCOUNTS, order_by="created_at")

    async def load_card_events(self) -> list[CardEvent]:
        return await self.load(Collection.CARD_EVENTS, order_by="date")

    async def load_tax_payments(self) -> list[TaxPayment]:
        return await self.load(Collection.TAX_PAYMENTS, order_by="date", descending=True)

    async def load_savings_entries(self) -> list[SavingsEntry]:
        return await self.load(Collection.SAVINGS_ENTRIES, order_by="date", descending=True)

    async def load_month_carryovers(self) -> list[MonthCarryover]:
        return await self.load(Collection.MONTH_CARRYOVERS, order_by="month")

    async def load_recurring_obligations(self) -> list[RecurringObligation]:
        return await self.load(Collection.RECURRING_EXPENSES, order_by="pay_day")

    async def load_recurring_payments(self) -> list[RecurringPayment]:
        return await self.load(Collection.RECURRING_PAYMENTS, order_by="month")

    async def load_tax_settings(self) -> Optional[TaxSettings]:
        rows = await self.load(Collection.TAX_SETTINGS, order_by="created_at")
        return rows[0] if rows else None

    async def load_savings_settings(self) -> Optional[SavingsSettings]:
        rows = await self.load(Collection.SAVINGS_SETTINGS, order_by="created_at")
        return rows[0] if rows else None

    # =========================================================================
    # SINGLETON SETTINGS
    # =========================================================================

    async def ensure_tax_settings(self) -> TaxSettings:
        """Return the tax settings row, creating it with defaults if missing."""
        existing = await self.load_tax_settings()
        if existing is not None:
            return existing

        created = await self.insert(
            Collection.TAX_SETTINGS,
            TaxSettings(
                annual_fixed_levy=self._settings.default_annual_fixed_levy,
                extra_rate=self._settings.default_extra_rate,
            ),
        )
        if self._event_logger:
            self._event_logger.log_change(
                LedgerEventType.SETTINGS_CREATED,
                "tax_settings",
                created.id,
                "Tax settings created with defaults",
            )
        return created

    async def ensure_savings_settings(self) -> SavingsSettings:
        """Return the savings settings row, creating it with defaults if missing."""
        existing = await self.load_savings_settings()
        if existing is not None:
            return existing

        created = await self.insert(
            Collection.SAVINGS_SETTINGS,
            SavingsSettings(
                goal_amount=self._settings.default_goal_amount,
                target_monthly=self._settings.default_target_monthly,
            ),
        )
        if self._event_logger:
            self._event_logger.log_change(
                LedgerEventType.SETTINGS_CREATED,
                "savings_settings",
                created.id,
                "Savings settings created with defaults",
            )
        return created

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def find_mirror(self, source_event_id: UUID) -> Optional[Transaction]:
        """Find the transaction already mirroring a payment or event record."""
        rows = await self.load(
            Collection.TRANSACTIONS,
            filters={"source_event_id": source_event_id},
        )
        return rows[0] if rows else None

    async def find_recurring_payment(
        self,
        recurring_id: UUID,
        month: str,
    ) -> Optional[RecurringPayment]:
        rows = await self.load(
            Collection.RECURRING_PAYMENTS,
            filters={"recurring_id": recurring_id, "month": month},
        )
        return rows[0] if rows else None

    async def find_carryover(self, month: str) -> Optional[MonthCarryover]:
        rows = await self.load(Collection.MONTH_CARRYOVERS, filters={"month": month})
        return rows[0] if rows else None


def group_by_parent(records: list[RecordT], parent_field: str) -> dict[UUID, list[RecordT]]:
    """Group child records (loan payments, card events) by their parent id."""
    grouped: dict[UUID, list[RecordT]] = defaultdict(list)
    for record in records:
        grouped[getattr(record, parent_field)].append(record)
    return dict(grouped)
