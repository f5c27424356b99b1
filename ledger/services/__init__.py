"""Services package."""

from ledger.services.storage import (
    ConnectionError,
    DuplicateError,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
)
from ledger.services.repository import LedgerRepository, group_by_parent

__all__ = [
    # Storage services
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    "InMemoryRecordStore",
    "NotFoundError",
    "RecordStoreInterface",
    "StorageError",
    # Repository
    "LedgerRepository",
    "group_by_parent",
]
