"""Report execution package."""

from ledger.queries.executor import QueryExecutionError, ReportExecutor

__all__ = ["QueryExecutionError", "ReportExecutor"]
