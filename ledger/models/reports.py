"""
Report query models.

A ReportQuery describes what to look up in the ledger; the executor runs it
against a snapshot and returns a ReportResult built only from stored data.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from ledger.models.enums import TransactionKind
from ledger.models.normalize import normalize_kind


class ReportQuery(BaseModel):
    """A structured question about the ledger."""

    query_id: UUID = Field(default_factory=uuid4)
    query_type: str = Field(
        default="list",
        pattern="^(list|aggregate|exists)$",
        description="What kind of answer is wanted"
    )

    # Filters
    period: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4}(-(0[1-9]|1[0-2]))?$",
        description="YYYY or YYYY-MM"
    )
    kind: Optional[TransactionKind] = None
    category: Optional[str] = None
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    include_mirrors: bool = Field(
        default=True,
        description="Include transactions created alongside loan/card/tax/savings records"
    )

    # Aggregation
    aggregation_type: Optional[str] = Field(
        default=None,
        pattern="^(sum|count|average|min|max)$"
    )
    group_by: Optional[str] = Field(
        default=None,
        pattern="^(category|month|year|kind)$"
    )

    limit: int = Field(default=100, ge=1, le=10000)

    @field_validator('kind', mode='before')
    @classmethod
    def normalize_kind_label(cls, v: Any) -> Optional[TransactionKind]:
        if v is None or v == "":
            return None
        return normalize_kind(v)


class ReportResult(BaseModel):
    """Answer to a ReportQuery."""

    query_id: UUID
    success: bool
    error_message: Optional[str] = None

    data_found: bool = False
    result_count: int = 0
    results: list[dict[str, Any]] = Field(default_factory=list)
    aggregation_result: Optional[dict[str, Any]] = None

    query_description: str = ""


class CategoryBreakdown(BaseModel):
    """Spending or income split by category for one period."""

    period: str
    kind: TransactionKind
    total: Decimal
    categories: dict[str, Decimal] = Field(default_factory=dict)
