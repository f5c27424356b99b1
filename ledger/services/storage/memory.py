"""
In-Memory Record Store

Used by the test-suite and for running the engine without a backend.
Records are deep-copied on the way in and out so callers can never mutate
stored state by accident.
"""

import copy
from collections import defaultdict
from typing import Any, Optional
from uuid import uuid4

from ledger.models.enums import Collection
from ledger.models.records import utcnow
from ledger.services.storage.interface import (
    ChangeCallback,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    Unsubscribe,
    matches_filters,
    order_records,
)


class InMemoryRecordStore(RecordStoreInterface):
    """Dict-backed record store with synchronous change notification."""

    def __init__(self):
        self._records: dict[Collection, list[dict[str, Any]]] = defaultdict(list)
        self._subscribers: dict[Collection, list[ChangeCallback]] = defaultdict(list)

    def _notify(self, collection: Collection) -> None:
        for callback in list(self._subscribers[collection]):
            callback(collection)

    def _find_index(self, collection: Collection, record_id: str) -> int:
        for idx, record in enumerate(self._records[collection]):
            if str(record.get("id")) == str(record_id):
                return idx
        raise NotFoundError(f"{collection.value} record not found: {record_id}")

    async def insert(
        self,
        collection: Collection,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        stored = copy.deepcopy(record)
        stored["id"] = str(stored.get("id") or uuid4())
        stored.setdefault("created_at", utcnow().isoformat())

        if any(str(r.get("id")) == stored["id"] for r in self._records[collection]):
            raise DuplicateError(f"{collection.value} record already exists: {stored['id']}")

        self._records[collection].append(stored)
        self._notify(collection)
        return copy.deepcopy(stored)

    async def update(
        self,
        collection: Collection,
        record_id: str,
        patch: dict[str, Any],
    ) -> dict[str, Any]:
        idx = self._find_index(collection, record_id)
        updated = {**self._records[collection][idx], **copy.deepcopy(patch)}
        updated["id"] = self._records[collection][idx]["id"]
        self._records[collection][idx] = updated
        self._notify(collection)
        return copy.deepcopy(updated)

    async def delete(
        self,
        collection: Collection,
        record_id: str,
    ) -> None:
        idx = self._find_index(collection, record_id)
        del self._records[collection][idx]
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

    def count(self, collection: Collection) -> int:
        return len(self._records[collection])

    async def list(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        matching = [r for r in self._records[collection] if matches_filters(r, filters)]
        ordered = order_records(matching, order_by, descending)
        if limit is not None:
            ordered = ordered[:limit]
        return copy.deepcopy(ordered)
