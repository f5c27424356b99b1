"""
Log Event Models for Household Ledger

Every mutation and every reload produces a structured event that is
written to the local structured log.

DESIGN DECISION: Events are log lines, not records. They are never
persisted to the record store; the only history kept there is the
immutable payment/event records themselves.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ledger.models.records import utcnow


class LedgerEventType(str, Enum):
    """Types of events we log."""
    # Ledger
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    MIRROR_REUSED = "mirror_reused"

    # Loans
    LOAN_CREATED = "loan_created"
    LOAN_PAYMENT_RECORDED = "loan_payment_recorded"
    LOAN_DELETED = "loan_deleted"
    LOAN_BALANCE_REBUILT = "loan_balance_rebuilt"

    # Cards
    CARD_CREATED = "card_created"
    CARD_INTEREST_ACCRUED = "card_interest_accrued"
    CARD_PAYMENT_RECORDED = "card_payment_recorded"
    CARD_DELETED = "card_deleted"
    CARD_BALANCE_REBUILT = "card_balance_rebuilt"

    # Taxes and savings
    SETTINGS_CREATED = "settings_created"
    SETTINGS_UPDATED = "settings_updated"
    TAX_PAYMENT_RECORDED = "tax_payment_recorded"
    TAX_PAYMENT_DELETED = "tax_payment_deleted"
    SAVINGS_ENTRY_ADDED = "savings_entry_added"
    SAVINGS_ENTRY_UPDATED = "savings_entry_updated"
    SAVINGS_ENTRY_DELETED = "savings_entry_deleted"

    # Month close and recurring
    MONTH_CLOSED = "month_closed"
    RECURRING_CREATED = "recurring_created"
    RECURRING_PAID = "recurring_paid"

    # Snapshot
    SNAPSHOT_LOADED = "snapshot_loaded"
    COLLECTION_RELOADED = "collection_reloaded"
    MALFORMED_RECORD_SKIPPED = "malformed_record_skipped"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    PARTIAL_WRITE = "partial_write"
    STORAGE_ERROR = "storage_error"


class LedgerSeverity(str, Enum):
    """Severity level for log events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LedgerEvent(BaseModel):
    """A single structured log event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )
    event_type: LedgerEventType
    severity: LedgerSeverity = LedgerSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None

    # Correlation - for tracking the writes of one user action
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class LedgerEventBuilder:
    """
    Helper class to build log events with common patterns.

    Usage:
        event = LedgerEventBuilder.record_changed(
            LedgerEventType.LOAN_CREATED, "loan", loan.id, "Loan created: Car"
        )
    """

    @staticmethod
    def record_changed(
        event_type: LedgerEventType,
        entity_type: str,
        entity_id: Optional[UUID],
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def loan_payment_recorded(
        loan_id: UUID,
        payment_id: UUID,
        days: int,
        interest: str,
        principal: str,
        balance_after: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.LOAN_PAYMENT_RECORDED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan payment recorded after {days} days",
            details={
                "payment_id": str(payment_id),
                "days": days,
                "interest_amount": interest,
                "principal_amount": principal,
                "balance_after": balance_after,
            },
        )

    @staticmethod
    def validation_failed(
        subject: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.VALIDATION_FAILED,
            severity=LedgerSeverity.WARNING,
            entity_type=subject,
            correlation_id=correlation_id,
            description=f"{subject.capitalize()} input rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def malformed_record_skipped(
        collection: str,
        record_id: Optional[str],
        error_message: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.MALFORMED_RECORD_SKIPPED,
            severity=LedgerSeverity.WARNING,
            entity_type=collection,
            description=f"Skipped malformed record in {collection}",
            details={"record_id": record_id},
            error_message=error_message,
        )

    @staticmethod
    def snapshot_loaded(
        version: int,
        collections: list[str],
        counts: dict[str, int],
    ) -> LedgerEvent:
        event_type = (
            LedgerEventType.SNAPSHOT_LOADED
            if len(collections) > 1
            else LedgerEventType.COLLECTION_RELOADED
        )
        return LedgerEvent(
            event_type=event_type,
            severity=LedgerSeverity.DEBUG,
            entity_type="snapshot",
            description=f"Snapshot v{version}: reloaded {', '.join(collections)}",
            details={"version": version, "counts": counts},
        )

    @staticmethod
    def partial_write(
        operation: str,
        completed_steps: list[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.PARTIAL_WRITE,
            severity=LedgerSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"{operation} stopped after {len(completed_steps)} of its writes",
            details={
                "operation": operation,
                "completed_steps": completed_steps,
            },
            error_message=error_message,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.STORAGE_ERROR,
            severity=LedgerSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"Record store error during {operation}",
            details={"operation": operation},
            error_message=error_message,
        )
