"""
Google Sheets Record Store

DESIGN DECISION: Google Sheets can serve as the managed record store because:
1. The household can look at its data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (multi-step writes can be left half-done)
- Limited query capabilities (we filter in Python)
- No push notifications; subscribers only hear about writes made
  through this store instance

Each collection is one worksheet. Row 1 holds column names; every cell is
a string and an empty cell means None. Rows are read by header name, so
sheets written by an older schema still load.
"""

import copy
from collections import defaultdict
from typing import Any, Optional
from uuid import uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledger.config import get_settings
from ledger.models.enums import Collection
from ledger.models.records import COLLECTION_MODELS, utcnow
from ledger.services.storage.interface import (
    ChangeCallback,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
    Unsubscribe,
    matches_filters,
    order_records,
)


def collection_columns(collection: Collection) -> list[str]:
    """Default header row for a collection, taken from its record model."""
    return list(COLLECTION_MODELS[collection].model_fields.keys())


def encode_cell(value: Any) -> str:
    """Convert a JSON-compatible value to a sheet cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def decode_cell(value: str) -> Optional[str]:
    return value if value != "" else None


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and retries establishing the connection.
    Individual record operations are not retried; their errors go straight
    back to the user.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[Collection, gspread.Worksheet] = {}
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, collection: Collection) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection."""
        if collection in self._worksheets:
            return self._worksheets[collection]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(collection.value)
        except gspread.WorksheetNotFound:
            columns = collection_columns(collection)
            sheet = spreadsheet.add_worksheet(
                title=collection.value,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)

        self._worksheets[collection] = sheet
        return sheet


class GoogleSheetsRecordStore(RecordStoreInterface):
    """
    Google Sheets implementation of the record store.

    Records are stored as rows with one record per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._subscribers: dict[Collection, list[ChangeCallback]] = defaultdict(list)

    def _notify(self, collection: Collection) -> None:
        for callback in list(self._subscribers[collection]):
            callback(collection)

    def _read(self, collection: Collection) -> tuple[gspread.Worksheet, list[str], list[list[str]]]:
        """Return the sheet, its header row and its data rows."""
        sheet = self._client.get_worksheet(collection)
        all_rows = sheet.get_all_values()
        if not all_rows:
            header = collection_columns(collection)
            sheet.append_row(header)
            return sheet, header, []
        return sheet, all_rows[0], all_rows[1:]

    def _row_to_record(self, header: list[str], row: list[str]) -> dict[str, Any]:
        # Handle short rows gracefully
        padded = row + [""] * (len(header) - len(row))
        return {name: decode_cell(value) for name, value in zip(header, padded) if name}

    def _record_to_row(self, header: list[str], record: dict[str, Any]) -> list[str]:
        return [encode_cell(record.get(name)) for name in header]

    def _ensure_columns(
        self,
        sheet: gspread.Worksheet,
        header: list[str],
        record: dict[str, Any],
    ) -> list[str]:
        """Append header cells for any fields the sheet doesn't know yet."""
        missing = [name for name in record if name not in header]
        if not missing:
            return header
        new_header = header + missing
        if sheet.col_count < len(new_header):
            sheet.add_cols(len(new_header) - sheet.col_count)
        for col_idx in range(len(header) + 1, len(new_header) + 1):
            sheet.update_cell(1, col_idx, new_header[col_idx - 1])
        return new_header

    async def insert(
        self,
        collection: Collection,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        stored = copy.deepcopy(record)
        stored["id"] = str(stored.get("id") or uuid4())
        stored.setdefault("created_at", utcnow().isoformat())

        try:
            sheet, header, rows = self._read(collection)
            if any(self._row_to_record(header, row).get("id") == stored["id"] for row in rows):
                raise DuplicateError(f"{collection.value} record already exists: {stored['id']}")
            header = self._ensure_columns(sheet, header, stored)
            sheet.append_row(self._record_to_row(header, stored), value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {collection.value}: {e}")

        self._notify(collection)
        return stored

    async def update(
        self,
        collection: Collection,
        record_id: str,
        patch: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            sheet, header, rows = self._read(collection)

            # Find the row with this ID
            for idx, row in enumerate(rows, start=2):  # Start from 2 (row 1 is header)
                current = self._row_to_record(header, row)
                if current.get("id") != str(record_id):
                    continue

                updated = {**current, **patch, "id": current["id"]}
                header = self._ensure_columns(sheet, header, updated)
                new_row = self._record_to_row(header, updated)

                # Update each cell in the row
                for col_idx, value in enumerate(new_row, start=1):
                    sheet.update_cell(idx, col_idx, value)
                break
            else:
                raise NotFoundError(f"{collection.value} record not found: {record_id}")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {collection.value}: {e}")

        self._notify(collection)
        return updated

    async def delete(
        self,
        collection: Collection,
        record_id: str,
    ) -> None:
        try:
            sheet, header, rows = self._read(collection)
            for idx, row in enumerate(rows, start=2):
                if self._row_to_record(header, row).get("id") == str(record_id):
                    sheet.delete_rows(idx)
                    break
            else:
                raise NotFoundError(f"{collection.value} record not found: {record_id}")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete from {collection.value}: {e}")

        self._notify(collection)

    def subscribe(
        self,
        collection: Collection,
        callback: ChangeCallback,
    ) -> Unsubscribe:
        self._subscribers[collection].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers[collection]:
                self._subscribers[collection].remove(callback)

        return unsubscribe

    async def list(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        try:
            _, header, rows = self._read(collection)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {collection.value}: {e}")

        records = []
        for row in rows:
            if not row or not any(row):  # Skip empty rows
                continue
            record = self._row_to_record(header, row)
            if matches_filters(record, filters):
                records.append(record)

        ordered = order_records(records, order_by, descending)
        if limit is not None:
            ordered = ordered[:limit]
        return ordered
