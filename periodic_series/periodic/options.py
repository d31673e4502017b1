"""
QueryOptions -- the validated, immutable description of one periodic
aggregation request.

Both the bucket width and the aggregate operation come from closed sets:
they end up as SQL function arguments, so anything outside the sets is
rejected before a plan is built.
"""
from __future__ import annotations

import datetime
import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from periodic_series.core.utils import to_naive_utc

_COLUMN_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class IntervalUnit(str, Enum):
    """Bucket widths accepted by PostgreSQL's date_trunc."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class Operation(str, Enum):
    """Aggregates that can be re-applied as window functions."""

    COUNT = "count"
    SUM = "sum"
    MIN = "min"
    MAX = "max"

    @property
    def fold(self) -> "Operation":
        """Aggregate that combines already-aggregated partial results."""
        return Operation.SUM if self is Operation.COUNT else self

    @property
    def zero_when_empty(self) -> bool:
        return self in (Operation.COUNT, Operation.SUM)


class QueryOptions(BaseModel):
    """Parsed representation of a periodic aggregation request."""

    model_config = ConfigDict(frozen=True)

    operation: Operation = Field(Operation.COUNT, description="count | sum | min | max")
    column_name: str = Field("*", description="Column the aggregate is applied to ('*' for count only)")
    timestamp_column: str = Field("created_at", description="Column holding the event time (UTC)")
    interval_unit: IntervalUnit = Field(IntervalUnit.DAY, description="day | week | month | year")
    window_start: datetime.datetime = Field(..., description="Inclusive window start, UTC")
    window_end: datetime.datetime = Field(..., description="Inclusive window end, UTC")
    timezone_offset: int = Field(0, description="Seconds to shift bucket boundaries into local time")
    cumulative: bool = Field(False, description="Running total instead of per-bucket totals")
    restore_utc: bool = Field(False, description="Shift returned bucket keys back to true UTC")

    @field_validator("operation", "interval_unit", mode="before")
    @classmethod
    def _lowercase(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("column_name", "timestamp_column")
    @classmethod
    def _plain_identifier(cls, value: str, info) -> str:
        value = value.strip()
        if value == "*" and info.field_name == "column_name":
            return value
        if not _COLUMN_RE.match(value):
            raise ValueError(f"'{value}' is not a plain column reference")
        return value

    @field_validator("window_start", "window_end", mode="before")
    @classmethod
    def _promote_dates(cls, value):
        if isinstance(value, datetime.date):
            return to_naive_utc(value)
        return value

    @field_validator("window_start", "window_end")
    @classmethod
    def _naive_utc(cls, value: datetime.datetime) -> datetime.datetime:
        return to_naive_utc(value)

    @model_validator(mode="after")
    def _star_only_for_count(self) -> "QueryOptions":
        if self.column_name == "*" and self.operation is not Operation.COUNT:
            raise ValueError(f"'{self.operation.value}' needs a column, '*' is only valid for count")
        return self

    # ── Derived values ───────────────────────────────

    @property
    def interval_step(self) -> str:
        """Grid step, one bucket wide (e.g. '1 MONTH')."""
        return f"1 {self.interval_unit.value.upper()}"

    @property
    def offset_string(self) -> str:
        """Timezone shift as an interval literal (e.g. '3600 seconds')."""
        return f"{self.timezone_offset} seconds"

    @property
    def offset(self) -> datetime.timedelta:
        return datetime.timedelta(seconds=self.timezone_offset)
