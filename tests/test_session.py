"""
Tests for the repository, snapshot session and memoized engine.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal

from ledger.engine import LedgerEngine, LedgerSession
from ledger.events import EventLogger
from ledger.models import (
    Collection,
    LedgerEventType,
    Loan,
    LoanPayment,
    SavingsEntry,
    Transaction,
)
from ledger.services import InMemoryRecordStore, LedgerRepository, StorageError, group_by_parent


def make_session(store, settings):
    logger = EventLogger()
    repository = LedgerRepository(store, event_logger=logger, settings=settings)
    return LedgerSession(repository, event_logger=logger), repository, logger


def seed_transaction(store, day, kind, amount, **extra):
    record = Transaction(date=day, kind=kind, amount=Decimal(amount), **extra).to_record()
    return asyncio.run(store.insert(Collection.TRANSACTIONS, record))


class TestLedgerRepository:
    """Tests for typed access to the record store."""

    def test_malformed_rows_are_skipped_and_logged(self, settings):
        store = InMemoryRecordStore()
        seed_transaction(store, date(2024, 3, 1), "income", "1000")
        asyncio.run(store.insert(Collection.TRANSACTIONS, {
            "id": "broken-row",
            "date": "yesterday",
            "kind": "income",
            "amount": "lots",
        }))
        _, repository, logger = make_session(store, settings)

        loaded = asyncio.run(repository.load_transactions())

        assert len(loaded) == 1
        [event] = logger.events_of_type(LedgerEventType.MALFORMED_RECORD_SKIPPED)
        assert event.details["record_id"] == "broken-row"

    def test_legacy_labels_load_as_enums(self, settings):
        store = InMemoryRecordStore()
        asyncio.run(store.insert(Collection.TRANSACTIONS, {
            "date": "2024-03-01",
            "kind": "доход",
            "amount": "1500.00",
            "category": "",
        }))
        _, repository, _ = make_session(store, settings)

        [tx] = asyncio.run(repository.load_transactions())
        assert tx.is_income
        assert tx.category == "Income"

    def test_settings_rows_created_once(self, settings):
        store = InMemoryRecordStore()
        _, repository, logger = make_session(store, settings)

        async def scenario():
            first = await repository.ensure_tax_settings()
            second = await repository.ensure_tax_settings()
            return first, second

        first, second = asyncio.run(scenario())
        assert first.id == second.id
        assert first.extra_rate == settings.default_extra_rate
        assert store.count(Collection.TAX_SETTINGS) == 1
        assert len(logger.events_of_type(LedgerEventType.SETTINGS_CREATED)) == 1

    def test_update_validates_before_writing(self, settings):
        store = InMemoryRecordStore()
        _, repository, _ = make_session(store, settings)
        loan = asyncio.run(repository.insert(
            Collection.LOANS,
            Loan(title="Car", balance=Decimal("1000"), monthly_payment=Decimal("100")),
        ))

        with pytest.raises(ValueError):
            asyncio.run(repository.update(Collection.LOANS, loan.id, {"payment_day": 31}))

        [stored] = asyncio.run(store.list(Collection.LOANS))
        assert stored["payment_day"] == 10

    def test_find_mirror(self, settings):
        store = InMemoryRecordStore()
        _, repository, _ = make_session(store, settings)
        payment = LoanPayment(
            loan_id=Loan(title="x", balance=Decimal("1"), monthly_payment=Decimal("1")).id,
            payment_date=date(2024, 3, 1),
            payment_amount=Decimal("5"),
            interest_amount=Decimal("0"),
            principal_amount=Decimal("5"),
            balance_before=Decimal("5"),
            balance_after=Decimal("0"),
        )
        seed_transaction(store, date(2024, 3, 1), "expense", "5", source_event_id=payment.id)

        found = asyncio.run(repository.find_mirror(payment.id))
        assert found is not None
        assert found.source_event_id == payment.id

    def test_group_by_parent(self):
        loan_a = Loan(title="A", balance=Decimal("1"), monthly_payment=Decimal("1"))
        loan_b = Loan(title="B", balance=Decimal("1"), monthly_payment=Decimal("1"))

        def payment(loan):
            return LoanPayment(
                loan_id=loan.id,
                payment_date=date(2024, 3, 1),
                payment_amount=Decimal("1"),
                interest_amount=Decimal("0"),
                principal_amount=Decimal("1"),
                balance_before=Decimal("1"),
                balance_after=Decimal("0"),
            )

        grouped = group_by_parent([payment(loan_a), payment(loan_b), payment(loan_a)], "loan_id")
        assert len(grouped[loan_a.id]) == 2
        assert len(grouped[loan_b.id]) == 1


class TestLedgerSession:
    """Tests for snapshot loading and staleness."""

    def test_load_all_publishes_first_version(self, settings):
        store = InMemoryRecordStore()
        seed_transaction(store, date(2024, 3, 1), "income", "1000")
        session, _, logger = make_session(store, settings)

        snapshot = asyncio.run(session.load_all())

        assert snapshot.version == 1
        assert len(snapshot.transactions) == 1
        assert snapshot.tax_settings is not None
        assert snapshot.savings_settings is not None
        assert logger.events_of_type(LedgerEventType.SNAPSHOT_LOADED)

    def test_writes_mark_collections_dirty(self, settings):
        store = InMemoryRecordStore()
        session, _, _ = make_session(store, settings)
        asyncio.run(session.load_all())
        session.subscribe()

        assert not session.is_stale
        seed_transaction(store, date(2024, 3, 1), "income", "1000")
        assert session.dirty == frozenset({Collection.TRANSACTIONS})

        snapshot = asyncio.run(session.refresh())
        assert not session.is_stale
        assert snapshot.version == 2
        assert len(snapshot.transactions) == 1

        session.close()
        seed_transaction(store, date(2024, 3, 2), "income", "1000")
        assert not session.is_stale

    def test_old_snapshot_is_unchanged_after_reload(self, settings):
        store = InMemoryRecordStore()
        seed_transaction(store, date(2024, 3, 1), "income", "1000")
        session, _, _ = make_session(store, settings)
        before = asyncio.run(session.load_all())

        seed_transaction(store, date(2024, 3, 2), "expense", "300")
        after = asyncio.run(session.reload(Collection.TRANSACTIONS))

        assert before.version == 1
        assert len(before.transactions) == 1
        assert after.version == 2
        assert len(after.transactions) == 2
        assert after.savings_settings == before.savings_settings

    def test_failed_refresh_keeps_collections_dirty(self, settings, monkeypatch):
        store = InMemoryRecordStore()
        session, _, _ = make_session(store, settings)
        asyncio.run(session.load_all())
        session.subscribe()
        seed_transaction(store, date(2024, 3, 1), "income", "1000")

        async def unavailable(*args, **kwargs):
            raise StorageError("backend unavailable")

        monkeypatch.setattr(store, "list", unavailable)
        with pytest.raises(StorageError):
            asyncio.run(session.refresh())

        assert session.dirty == frozenset({Collection.TRANSACTIONS})
        assert session.snapshot.version == 1

        monkeypatch.undo()
        snapshot = asyncio.run(session.refresh())
        assert not session.is_stale
        assert snapshot.version == 2
        assert len(snapshot.transactions) == 1

    def test_refresh_without_changes_keeps_version(self, settings):
        session, _, _ = make_session(InMemoryRecordStore(), settings)
        snapshot = asyncio.run(session.load_all())
        assert asyncio.run(session.refresh()) is snapshot

    def test_unmirrored_savings(self, settings):
        store = InMemoryRecordStore()
        mirrored = SavingsEntry(date=date(2024, 3, 1), amount=Decimal("700"))
        mirrored = mirrored.model_copy(update={"transaction_id": mirrored.id})
        plain = SavingsEntry(date=date(2024, 3, 2), amount=Decimal("300"))
        asyncio.run(store.insert(Collection.SAVINGS_ENTRIES, mirrored.to_record()))
        asyncio.run(store.insert(Collection.SAVINGS_ENTRIES, plain.to_record()))
        session, _, _ = make_session(store, settings)

        snapshot = asyncio.run(session.load_all())
        assert snapshot.unmirrored_savings("2024-03") == Decimal("300")
        assert snapshot.unmirrored_savings("2024-04") == Decimal("0")
        assert snapshot.carry_in_for("2024-03") == Decimal("0")


class TestLedgerEngine:
    """Tests for the memoized monthly overview."""

    def test_overview_is_memoized_per_version(self, settings):
        store = InMemoryRecordStore()
        seed_transaction(store, date(2024, 3, 1), "income", "100000", taxable=True)
        session, _, _ = make_session(store, settings)
        engine = LedgerEngine(settings)
        snapshot = asyncio.run(session.load_all())

        first = engine.overview(snapshot, date(2024, 3, 10))
        assert engine.overview(snapshot, date(2024, 3, 10)) is first
        assert engine.cache_size == 1

        engine.overview(snapshot, date(2024, 3, 11))
        assert engine.cache_size == 2

        seed_transaction(store, date(2024, 3, 5), "expense", "1000")
        newer = asyncio.run(session.reload(Collection.TRANSACTIONS))
        second = engine.overview(newer, date(2024, 3, 10))

        assert second is not first
        assert second.expense == Decimal("1000")
        assert first.expense == Decimal("0")
        assert engine.cache_size == 1

    def test_overview_figures(self, settings):
        store = InMemoryRecordStore()
        seed_transaction(store, date(2024, 3, 1), "income", "100000", taxable=True)
        seed_transaction(store, date(2024, 3, 2), "expense", "20000")
        asyncio.run(store.insert(
            Collection.LOANS,
            Loan(title="Car", balance=Decimal("50000"), monthly_payment=Decimal("10000")).to_record(),
        ))
        session, _, _ = make_session(store, settings)
        snapshot = asyncio.run(session.load_all())

        overview = LedgerEngine(settings).overview(snapshot, date(2024, 3, 1))

        assert overview.income == Decimal("100000")
        assert overview.taxes.flat_rate_monthly_reserve == Decimal("6000")
        # 100000 - 6000 flat reserve - 10000 loan - 0 tax reserve - 0 savings
        assert overview.budget.allowed_monthly_spend == Decimal("84000")
        assert overview.budget.remaining_allowed_spend == Decimal("64000")
        assert overview.cash.balance_now == Decimal("80000")
        assert [loan.title for loan in overview.loans] == ["Car"]

    def test_planned_income_from_settings(self, settings):
        planned = settings.model_copy(update={"planned_monthly_income": Decimal("50000")})
        session, _, _ = make_session(InMemoryRecordStore(), planned)
        snapshot = asyncio.run(session.load_all())

        overview = LedgerEngine(planned).overview(snapshot, date(2024, 3, 1))
        assert overview.budget.used_planned_income
        assert overview.budget.allowed_monthly_spend == Decimal("50000")
