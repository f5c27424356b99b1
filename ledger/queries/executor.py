"""
Report Execution Engine

DESIGN DECISION: Reports are DETERMINISTIC.
They run against the loaded snapshot, never against the store directly,
so a report always agrees with the overview computed from the same
snapshot version.

GUARANTEES:
- Only returns real data from the snapshot
- Never invents or estimates
- Clear "no data found" if nothing matches
"""

import datetime as dt
from decimal import Decimal
from typing import Optional

from ledger.engine.periods import ZERO, category_suggestions, category_totals, in_period
from ledger.engine.snapshot import LedgerSnapshot
from ledger.models.enums import TransactionKind
from ledger.models.records import Transaction
from ledger.models.reports import CategoryBreakdown, ReportQuery, ReportResult


class QueryExecutionError(Exception):
    """Error during report execution."""
    pass


class ReportExecutor:
    """
    Executes report queries against a ledger snapshot.

    Usage:
        executor = ReportExecutor()
        result = executor.execute(session.snapshot, ReportQuery(period="2024-03"))
    """

    def execute(self, snapshot: LedgerSnapshot, query: ReportQuery) -> ReportResult:
        """Run a query and wrap any failure in an unsuccessful result."""
        try:
            if query.query_type == "aggregate":
                return self._execute_aggregate(snapshot, query)
            elif query.query_type == "exists":
                return self._execute_exists(snapshot, query)
            else:
                return self._execute_list(snapshot, query)
        except QueryExecutionError as e:
            return ReportResult(
                query_id=query.query_id,
                success=False,
                error_message=str(e),
                query_description=f"Query failed: {e}",
            )

    # =========================================================================
    # SELECTION
    # =========================================================================

    def select(self, snapshot: LedgerSnapshot, query: ReportQuery) -> list[Transaction]:
        """Transactions matching the query filters, newest first."""
        if query.date_from and query.date_to and query.date_from > query.date_to:
            raise QueryExecutionError("date_from is after date_to")

        category = query.category.strip().casefold() if query.category else None
        selected = []
        for tx in snapshot.transactions:
            if query.period and not in_period(tx.date, query.period):
                continue
            if query.kind is not None and tx.kind != query.kind:
                continue
            if category and tx.category.casefold() != category:
                continue
            if query.date_from and tx.date < query.date_from:
                continue
            if query.date_to and tx.date > query.date_to:
                continue
            if not query.include_mirrors and tx.is_mirror:
                continue
            selected.append(tx)

        selected.sort(key=lambda tx: (tx.date, tx.created_at), reverse=True)
        return selected

    def _execute_list(self, snapshot: LedgerSnapshot, query: ReportQuery) -> ReportResult:
        transactions = self.select(snapshot, query)[:query.limit]
        results = [self._transaction_to_dict(tx) for tx in transactions]
        return ReportResult(
            query_id=query.query_id,
            success=True,
            data_found=len(results) > 0,
            result_count=len(results),
            results=results,
            query_description=self._describe("Listing transactions", query),
        )

    def _execute_aggregate(self, snapshot: LedgerSnapshot, query: ReportQuery) -> ReportResult:
        transactions = self.select(snapshot, query)
        if not transactions:
            return ReportResult(
                query_id=query.query_id,
                success=True,
                data_found=False,
                query_description="No transactions found for aggregation",
            )

        amounts = [tx.amount for tx in transactions]
        aggregation_result = self._aggregate(amounts, query.aggregation_type)

        # Handle grouping
        if query.group_by:
            groups: dict[str, list[Decimal]] = {}
            for tx in transactions:
                groups.setdefault(self._group_key(tx, query.group_by), []).append(tx.amount)
            aggregation_result["breakdown"] = {
                key: self._aggregate(values, query.aggregation_type)
                for key, values in sorted(groups.items())
            }

        desc = f"Calculating {query.aggregation_type or 'total'}"
        if query.group_by:
            desc += f" grouped by {query.group_by}"
        return ReportResult(
            query_id=query.query_id,
            success=True,
            data_found=True,
            result_count=len(transactions),
            aggregation_result=aggregation_result,
            query_description=self._describe(desc, query),
        )

    def _execute_exists(self, snapshot: LedgerSnapshot, query: ReportQuery) -> ReportResult:
        transactions = self.select(snapshot, query)
        exists = len(transactions) > 0

        result_data = [{"exists": exists, "answer": "yes" if exists else "no"}]
        if exists:
            # Include the latest match for context
            result_data.append(self._transaction_to_dict(transactions[0]))

        return ReportResult(
            query_id=query.query_id,
            success=True,
            data_found=exists,
            result_count=1 if exists else 0,
            results=result_data,
            query_description=self._describe("Checking for transactions", query),
        )

    # =========================================================================
    # CATEGORY REPORTS
    # =========================================================================

    def category_breakdown(
        self,
        snapshot: LedgerSnapshot,
        period: str,
        kind: TransactionKind = TransactionKind.EXPENSE,
    ) -> CategoryBreakdown:
        totals = category_totals(snapshot.transactions, period, kind)
        return CategoryBreakdown(
            period=period,
            kind=kind,
            total=sum(totals.values(), ZERO),
            categories=totals,
        )

    def suggest_categories(
        self,
        snapshot: LedgerSnapshot,
        kind: TransactionKind,
    ) -> list[str]:
        return category_suggestions(snapshot.transactions, kind)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _aggregate(self, amounts: list[Decimal], aggregation_type: Optional[str]) -> dict:
        if aggregation_type == "count":
            return {"count": len(amounts)}
        elif aggregation_type == "average":
            return {"average_amount": sum(amounts, ZERO) / len(amounts), "count": len(amounts)}
        elif aggregation_type == "min":
            return {"minimum_amount": min(amounts)}
        elif aggregation_type == "max":
            return {"maximum_amount": max(amounts)}
        return {"total_amount": sum(amounts, ZERO), "count": len(amounts)}

    def _group_key(self, tx: Transaction, group_by: str) -> str:
        if group_by == "category":
            return tx.category
        elif group_by == "month":
            return tx.date.isoformat()[:7]
        elif group_by == "year":
            return tx.date.isoformat()[:4]
        return tx.kind.value

    def _transaction_to_dict(self, tx: Transaction) -> dict:
        return {
            "id": str(tx.id),
            "date": tx.date.isoformat(),
            "kind": tx.kind.value,
            "amount": tx.amount,
            "category": tx.category,
            "taxable": tx.taxable,
            "note": tx.note,
            "obligation_kind": tx.obligation_kind.value if tx.obligation_kind else None,
        }

    def _describe(self, action: str, query: ReportQuery) -> str:
        parts = [action]
        if query.kind:
            parts.append(query.kind.value)
        if query.category:
            parts.append(f"category: {query.category}")
        if query.period:
            parts.append(f"in {query.period}")
        if query.date_from or query.date_to:
            parts.append(self._date_range_str(query.date_from, query.date_to))
        return " | ".join(parts)

    def _date_range_str(
        self,
        date_from: Optional[dt.date],
        date_to: Optional[dt.date],
    ) -> str:
        """Format date range for description."""
        if date_from and date_to:
            if date_from == date_to:
                return f"on {date_from.isoformat()}"
            return f"from {date_from.isoformat()} to {date_to.isoformat()}"
        elif date_from:
            return f"from {date_from.isoformat()}"
        elif date_to:
            return f"until {date_to.isoformat()}"
        return ""
