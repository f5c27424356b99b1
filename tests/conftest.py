"""Shared fixtures for the ledger test-suite."""

import pytest

from ledger.config import LedgerSettings
from ledger.orchestrator import create_ledger_components
from ledger.services import InMemoryRecordStore, StorageError


class FailingStore(InMemoryRecordStore):
    """In-memory store whose inserts into chosen collections fail."""

    def __init__(self):
        super().__init__()
        self.fail_inserts_on = set()

    async def insert(self, collection, record):
        if collection in self.fail_inserts_on:
            raise StorageError(f"insert into {collection.value} refused")
        return await super().insert(collection, record)


@pytest.fixture
def settings():
    return LedgerSettings(_env_file=None)


@pytest.fixture
def store():
    return FailingStore()


@pytest.fixture
def app(store, settings):
    return create_ledger_components(store=store, settings=settings)
