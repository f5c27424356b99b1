"""
Storage Services Package

Provides the abstract record store interface and its implementations:
an in-memory store and a Google Sheets backed store.
"""

from ledger.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
)
from ledger.services.storage.memory import InMemoryRecordStore
from ledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
)

__all__ = [
    # Interface
    "RecordStoreInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryRecordStore",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
]
