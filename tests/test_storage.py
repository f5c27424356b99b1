"""
Tests for the record store implementations.

The Google Sheets store is exercised against an in-process fake worksheet;
no network calls are made.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal

from ledger.models import Collection, Transaction
from ledger.services import (
    DuplicateError,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    NotFoundError,
    StorageError,
)
from ledger.services.storage.google_sheets import (
    collection_columns,
    decode_cell,
    encode_cell,
)
from ledger.services.storage.interface import matches_filters, order_records


class FakeWorksheet:
    """Minimal stand-in for a gspread worksheet."""

    def __init__(self, rows=None, fail_on_append=False):
        self.rows = [list(r) for r in (rows or [])]
        self.col_count = max((len(r) for r in self.rows), default=0)
        self.fail_on_append = fail_on_append

    def get_all_values(self):
        return [list(r) for r in self.rows]

    def append_row(self, values, value_input_option="USER_ENTERED"):
        if self.fail_on_append:
            raise RuntimeError("quota exceeded")
        self.rows.append(list(values))
        self.col_count = max(self.col_count, len(values))

    def update_cell(self, row, col, value):
        while len(self.rows) < row:
            self.rows.append([])
        target = self.rows[row - 1]
        while len(target) < col:
            target.append("")
        target[col - 1] = value

    def delete_rows(self, index):
        del self.rows[index - 1]

    def add_cols(self, count):
        self.col_count += count


class FakeClient:
    """Hands out one fake worksheet per collection."""

    def __init__(self, sheets=None):
        self.sheets = sheets or {}

    def get_worksheet(self, collection):
        return self.sheets.setdefault(collection, FakeWorksheet())


def transaction_record(**overrides):
    values = {
        "date": date(2024, 3, 1),
        "kind": "expense",
        "amount": Decimal("100"),
        "category": "Food",
    }
    values.update(overrides)
    return Transaction(**values).to_record()


# =============================================================================
# SHARED HELPERS
# =============================================================================

class TestStoreHelpers:
    """Tests for filtering and ordering shared by both stores."""

    def test_filters_compare_string_forms(self):
        record = {"kind": "income", "taxable": "true", "amount": "10"}
        assert matches_filters(record, {"kind": "income", "taxable": True})
        assert matches_filters(record, {"amount": 10})
        assert not matches_filters(record, {"kind": "expense"})

    def test_missing_field_matches_none(self):
        assert matches_filters({"note": ""}, {"note": None})
        assert matches_filters({}, {"note": None})

    def test_missing_values_sort_last(self):
        records = [{"d": "2024-03-02"}, {"d": None}, {"d": "2024-03-01"}]
        ordered = order_records(records, "d")
        assert [r["d"] for r in ordered] == ["2024-03-01", "2024-03-02", None]
        ordered = order_records(records, "d", descending=True)
        assert [r["d"] for r in ordered] == ["2024-03-02", "2024-03-01", None]

    def test_cell_codec(self):
        assert encode_cell(None) == ""
        assert encode_cell(True) == "true"
        assert encode_cell(Decimal("12.50")) == "12.50"
        assert decode_cell("") is None
        assert decode_cell("x") == "x"


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class TestInMemoryRecordStore:
    """Tests for the dict-backed store."""

    def test_insert_assigns_id_and_created_at(self):
        store = InMemoryRecordStore()
        stored = asyncio.run(store.insert(Collection.LOANS, {"title": "Car"}))
        assert stored["id"]
        assert stored["created_at"]
        assert store.count(Collection.LOANS) == 1

    def test_duplicate_id_rejected(self):
        store = InMemoryRecordStore()
        record = transaction_record()
        asyncio.run(store.insert(Collection.TRANSACTIONS, record))
        with pytest.raises(DuplicateError):
            asyncio.run(store.insert(Collection.TRANSACTIONS, record))

    def test_list_filters_orders_and_limits(self):
        store = InMemoryRecordStore()

        async def scenario():
            await store.insert(Collection.TRANSACTIONS, transaction_record(date=date(2024, 3, 5)))
            await store.insert(Collection.TRANSACTIONS, transaction_record(date=date(2024, 3, 1)))
            await store.insert(Collection.TRANSACTIONS, transaction_record(kind="income", date=date(2024, 3, 9)))
            return await store.list(
                Collection.TRANSACTIONS,
                filters={"kind": "expense"},
                order_by="date",
                descending=True,
                limit=1,
            )

        records = asyncio.run(scenario())
        assert [r["date"] for r in records] == ["2024-03-05"]

    def test_returned_records_are_copies(self):
        store = InMemoryRecordStore()

        async def scenario():
            stored = await store.insert(Collection.LOANS, {"title": "Car"})
            stored["title"] = "Changed"
            return await store.list(Collection.LOANS)

        assert asyncio.run(scenario())[0]["title"] == "Car"

    def test_update_merges_patch(self):
        store = InMemoryRecordStore()

        async def scenario():
            stored = await store.insert(Collection.LOANS, {"title": "Car", "balance": "100"})
            await store.update(Collection.LOANS, stored["id"], {"balance": "50", "id": "other"})
            return await store.list(Collection.LOANS)

        [loan] = asyncio.run(scenario())
        assert loan["balance"] == "50"
        assert loan["title"] == "Car"
        assert loan["id"] != "other"

    def test_missing_record_raises(self):
        store = InMemoryRecordStore()
        with pytest.raises(NotFoundError):
            asyncio.run(store.update(Collection.LOANS, "nope", {}))
        with pytest.raises(NotFoundError):
            asyncio.run(store.delete(Collection.LOANS, "nope"))

    def test_subscribers_hear_every_write(self):
        store = InMemoryRecordStore()
        heard = []
        unsubscribe = store.subscribe(Collection.LOANS, heard.append)

        async def scenario():
            stored = await store.insert(Collection.LOANS, {"title": "Car"})
            await store.update(Collection.LOANS, stored["id"], {"title": "Van"})
            await store.delete(Collection.LOANS, stored["id"])
            await store.insert(Collection.CARD_ACCOUNTS, {"title": "Visa"})

        asyncio.run(scenario())
        assert heard == [Collection.LOANS] * 3

        unsubscribe()
        asyncio.run(store.insert(Collection.LOANS, {"title": "Bike"}))
        assert len(heard) == 3


# =============================================================================
# GOOGLE SHEETS STORE
# =============================================================================

class TestGoogleSheetsRecordStore:
    """Tests for the Sheets store against a fake worksheet."""

    def test_empty_sheet_gets_header(self):
        client = FakeClient()
        store = GoogleSheetsRecordStore(client=client)
        assert asyncio.run(store.list(Collection.TRANSACTIONS)) == []
        sheet = client.sheets[Collection.TRANSACTIONS]
        assert sheet.rows[0] == collection_columns(Collection.TRANSACTIONS)

    def test_insert_then_list_parses_back(self):
        client = FakeClient()
        store = GoogleSheetsRecordStore(client=client)
        record = transaction_record(kind="income", taxable=True, amount=Decimal("12.50"))

        async def scenario():
            await store.insert(Collection.TRANSACTIONS, record)
            return await store.list(Collection.TRANSACTIONS)

        [row] = asyncio.run(scenario())
        assert row["taxable"] == "true"
        assert row["note"] is None

        parsed = Transaction.model_validate(row)
        assert parsed.id == Transaction.model_validate(record).id
        assert parsed.amount == Decimal("12.50")
        assert parsed.taxable is True

    def test_legacy_sheet_with_extra_and_missing_columns(self):
        """Test that rows from an older layout load by header name."""
        sheet = FakeWorksheet([
            ["id", "date", "kind", "amount", "legacy_flag"],
            ["a1", "2024-03-01", "доход", "500", "x"],
            ["", "", "", "", ""],
            ["a2", "2024-03-02", "-"],
        ])
        store = GoogleSheetsRecordStore(client=FakeClient({Collection.TRANSACTIONS: sheet}))
        rows = asyncio.run(store.list(Collection.TRANSACTIONS, order_by="date"))

        assert [r["id"] for r in rows] == ["a1", "a2"]
        assert rows[0]["legacy_flag"] == "x"
        assert rows[1]["amount"] is None

    def test_insert_adds_unknown_columns(self):
        sheet = FakeWorksheet([["id", "title"]])
        store = GoogleSheetsRecordStore(client=FakeClient({Collection.LOANS: sheet}))
        asyncio.run(store.insert(Collection.LOANS, {"id": "l1", "title": "Car", "balance": "100"}))

        assert sheet.rows[0] == ["id", "title", "balance", "created_at"]
        assert sheet.rows[1][0] == "l1"
        assert sheet.rows[1][2] == "100"

    def test_duplicate_id_rejected(self):
        sheet = FakeWorksheet([["id", "title"], ["l1", "Car"]])
        store = GoogleSheetsRecordStore(client=FakeClient({Collection.LOANS: sheet}))
        with pytest.raises(DuplicateError):
            asyncio.run(store.insert(Collection.LOANS, {"id": "l1", "title": "Van"}))

    def test_update_rewrites_row(self):
        sheet = FakeWorksheet([["id", "title", "balance"], ["l1", "Car", "100"], ["l2", "Van", "7"]])
        store = GoogleSheetsRecordStore(client=FakeClient({Collection.LOANS: sheet}))
        updated = asyncio.run(store.update(Collection.LOANS, "l2", {"balance": "5"}))

        assert updated == {"id": "l2", "title": "Van", "balance": "5"}
        assert sheet.rows[2] == ["l2", "Van", "5"]
        assert sheet.rows[1] == ["l1", "Car", "100"]

    def test_delete_removes_row(self):
        sheet = FakeWorksheet([["id", "title"], ["l1", "Car"], ["l2", "Van"]])
        store = GoogleSheetsRecordStore(client=FakeClient({Collection.LOANS: sheet}))
        asyncio.run(store.delete(Collection.LOANS, "l1"))
        assert sheet.rows == [["id", "title"], ["l2", "Van"]]

        with pytest.raises(NotFoundError):
            asyncio.run(store.delete(Collection.LOANS, "l1"))

    def test_backend_errors_become_storage_errors(self):
        sheet = FakeWorksheet([["id", "title"]], fail_on_append=True)
        store = GoogleSheetsRecordStore(client=FakeClient({Collection.LOANS: sheet}))
        heard = []
        store.subscribe(Collection.LOANS, heard.append)

        with pytest.raises(StorageError, match="quota exceeded"):
            asyncio.run(store.insert(Collection.LOANS, {"title": "Car"}))
        assert heard == []

    def test_subscribers_notified_after_write(self):
        store = GoogleSheetsRecordStore(client=FakeClient())
        heard = []
        store.subscribe(Collection.LOANS, heard.append)
        asyncio.run(store.insert(Collection.LOANS, {"title": "Car"}))
        assert heard == [Collection.LOANS]
