"""
Event Logger

DESIGN DECISION: Every mutation and reload in the system is logged.
This provides:
1. Traceability of the multi-step writes (which step failed?)
2. Debugging capability when figures look wrong
3. A record of skipped malformed rows

The event logger:
- Writes JSON lines through structlog on top of stdlib logging
- Never raises (a logging failure must not abort a write)
- Supports correlation IDs to tie together the writes of one user action
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger.models.events import LedgerEvent, LedgerEventBuilder, LedgerEventType


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging and structlog for JSON output."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(ensure_ascii=False)
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class EventLogger:
    """
    Central event logging service.

    Keeps the last few events in memory so callers (and tests) can
    inspect what a flow did.
    """

    def __init__(self, keep_last: int = 200):
        self._logger = structlog.get_logger("ledger")
        self._keep_last = keep_last
        self._recent: list[LedgerEvent] = []

    @property
    def recent_events(self) -> list[LedgerEvent]:
        return list(self._recent)

    def events_of_type(self, event_type: LedgerEventType) -> list[LedgerEvent]:
        return [e for e in self._recent if e.event_type == event_type]

    def log(self, event: LedgerEvent) -> None:
        """Log an event at the level matching its severity."""
        self._recent.append(event)
        if len(self._recent) > self._keep_last:
            del self._recent[0]

        log_dict = event.to_log_dict()
        try:
            if event.severity.value == "error":
                self._logger.error("ledger_event", **log_dict)
            elif event.severity.value == "warning":
                self._logger.warning("ledger_event", **log_dict)
            elif event.severity.value == "debug":
                self._logger.debug("ledger_event", **log_dict)
            else:
                self._logger.info("ledger_event", **log_dict)
        except Exception as e:
            logging.getLogger("ledger").error("event logging failed: %s", e)

    def log_change(
        self,
        event_type: LedgerEventType,
        entity_type: str,
        entity_id: Optional[UUID],
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a create/update/delete of a record."""
        self.log(LedgerEventBuilder.record_changed(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details,
            correlation_id=correlation_id,
        ))

    def log_validation_failed(
        self,
        subject: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(LedgerEventBuilder.validation_failed(
            subject=subject,
            issues=issues,
            correlation_id=correlation_id,
        ))

    def log_malformed_record(
        self,
        collection: str,
        record_id: Optional[str],
        error_message: str,
    ) -> None:
        self.log(LedgerEventBuilder.malformed_record_skipped(
            collection=collection,
            record_id=record_id,
            error_message=error_message,
        ))

    def log_snapshot(
        self,
        version: int,
        collections: list[str],
        counts: dict[str, int],
    ) -> None:
        self.log(LedgerEventBuilder.snapshot_loaded(
            version=version,
            collections=collections,
            counts=counts,
        ))

    def log_partial_write(
        self,
        operation: str,
        completed_steps: list[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(LedgerEventBuilder.partial_write(
            operation=operation,
            completed_steps=completed_steps,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(LedgerEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., recording a loan payment).
    Pass it through all subsequent writes.
    """
    return uuid4()
