"""
Abstract Record Store Interface

DESIGN DECISION: We define an abstract interface for a generic record store.
This allows us to:
1. Keep the engine independent of the managed backend
2. Use in-memory storage for testing
3. Swap Google Sheets for a real database later

The interface is intentionally simple - we're not building an ORM.
Records are plain dicts of JSON-compatible values, grouped in named
collections. The store assigns ``id`` and ``created_at`` on insert and
notifies subscribers after every write.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional

from ledger.models.enums import Collection


ChangeCallback = Callable[[Collection], None]
Unsubscribe = Callable[[], None]


class RecordStoreInterface(ABC):
    """
    Abstract interface for record store operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        List records in a collection.

        Args:
            collection: Collection to read
            filters: Field equality filters
            order_by: Field to sort by; records missing it sort last
            descending: Sort direction
            limit: Maximum number of records

        Returns:
            List of matching records

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def insert(
        self,
        collection: Collection,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Insert a record.

        Returns:
            The stored record, including assigned ``id`` and ``created_at``

        Raises:
            StorageError: If the write fails
            DuplicateError: If a record with the same id exists
        """
        pass

    @abstractmethod
    async def update(
        self,
        collection: Collection,
        record_id: str,
        patch: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Apply a partial update.

        Returns:
            The updated record

        Raises:
            NotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(
        self,
        collection: Collection,
        record_id: str,
    ) -> None:
        """
        Delete a record.

        Raises:
            NotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def subscribe(
        self,
        collection: Collection,
        callback: ChangeCallback,
    ) -> Unsubscribe:
        """
        Register a callback fired after any write to ``collection``.

        Returns:
            A function that removes the subscription
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


# =============================================================================
# Helpers shared by implementations
# =============================================================================

def _comparable(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "value"):  # enums
        value = value.value
    return str(value)


def matches_filters(record: dict[str, Any], filters: Optional[dict[str, Any]]) -> bool:
    """Equality match, comparing string forms so UUIDs and dates match their JSON shape."""
    if not filters:
        return True
    return all(
        _comparable(record.get(field)) == _comparable(expected)
        for field, expected in filters.items()
    )


def order_records(
    records: Iterable[dict[str, Any]],
    order_by: Optional[str],
    descending: bool = False,
) -> list[dict[str, Any]]:
    """Sort records by a field; missing or empty values always sort last."""
    records = list(records)
    if not order_by:
        return records

    present = [r for r in records if _comparable(r.get(order_by)) is not None]
    missing = [r for r in records if _comparable(r.get(order_by)) is None]
    present.sort(key=lambda r: _comparable(r.get(order_by)), reverse=descending)
    return present + missing
