"""
Plan assembler -- turns an upstream Select plus QueryOptions into a single
gap-free, timezone-aware periodic aggregation statement (PostgreSQL).

Stages, each a CTE feeding the next:

  1. grid                  one row per expected bucket in the shifted window,
                           with a NULL result (makes gaps representable)
  2. preprocessed_results  upstream rows grouped by the shifted, truncated
                           timestamp, aggregated with the requested operation
  3. results               (1) UNION ALL (2), folded with a window function:
                           ORDER BY frame for running totals, PARTITION BY
                           frame for per-bucket totals; DISTINCT keeps one row
                           per bucket
  4. final select          buckets outside the window are trimmed and the
                           rest ordered by frame

Trimming must stay after the window function: a running total at the first
visible bucket depends on rows that fall before the window.

Every dynamic value is a named bind parameter (see `BIND_NAMES`); option
values are never rendered into the statement text.
"""
from __future__ import annotations

from sqlalchemy import (
    DateTime,
    Integer,
    String,
    bindparam,
    cast,
    func,
    literal_column,
    null,
    select,
    union_all,
)
from sqlalchemy.dialects.postgresql import INTERVAL, TIMESTAMP
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.selectable import FromClause, Join

from periodic_series.core.logging import get_logger
from periodic_series.periodic.errors import UnknownColumnError
from periodic_series.periodic.options import QueryOptions

logger = get_logger(__name__)

UNIT = "unit"
INTERVAL_STEP = "interval"
WINDOW_START = "start"
WINDOW_END = "end"
OFFSET = "offset"

BIND_NAMES = (UNIT, INTERVAL_STEP, WINDOW_START, WINDOW_END, OFFSET)


# ── Column resolution ────────────────────────────────────

def _selectables(from_: FromClause):
    if isinstance(from_, Join):
        yield from _selectables(from_.left)
        yield from _selectables(from_.right)
    else:
        yield from_


def resolve_column(relation: Select, column_name: str) -> ColumnElement:
    """Find `column_name` (optionally 'table.column') among the relation's FROMs.

    Unqualified names resolve to the first FROM that has the column.
    """
    table_name, _, name = column_name.rpartition(".")
    available: list[str] = []
    for from_ in relation.get_final_froms():
        for selectable in _selectables(from_):
            sel_name = getattr(selectable, "name", None)
            available.extend(f"{sel_name}.{c.key}" for c in selectable.c)
            if table_name and sel_name != table_name:
                continue
            if name in selectable.c:
                return selectable.c[name]
    raise UnknownColumnError(column_name, available)


def _event_time(relation: Select, options: QueryOptions) -> ColumnElement:
    """Timestamp column as naive UTC wall time."""
    column = resolve_column(relation, options.timestamp_column)
    if isinstance(column.type, DateTime) and column.type.timezone:
        return func.timezone("UTC", column, type_=DateTime())
    return column


def _aggregate(relation: Select, options: QueryOptions) -> ColumnElement:
    if options.column_name == "*":
        return func.count()
    column = resolve_column(relation, options.column_name)
    return getattr(func, options.operation.value)(column)


def _trunc(unit: ColumnElement, expr: ColumnElement) -> ColumnElement:
    return func.date_trunc(unit, expr, type_=TIMESTAMP())


# ── Plan ─────────────────────────────────────────────────

def build_plan(relation: Select, options: QueryOptions) -> Select:
    """Compose the four-stage periodic statement over `relation`.

    The relation's WHERE / JOIN criteria are kept, its projection, ordering
    and grouping are replaced.  The relation itself is not modified.
    """
    unit = bindparam(UNIT, type_=String())
    step = cast(bindparam(INTERVAL_STEP, type_=String()), INTERVAL())
    offset = cast(bindparam(OFFSET, type_=String()), INTERVAL())
    start = cast(bindparam(WINDOW_START, type_=DateTime()), TIMESTAMP()) + offset
    end = cast(bindparam(WINDOW_END, type_=DateTime()), TIMESTAMP()) + offset

    first_bucket = _trunc(unit, start)
    last_bucket = _trunc(unit, end)

    # 1. grid of every bucket in the (shifted) window; stepping from bucket
    #    starts so the bucket holding `end` is always reached
    serie = func.generate_series(first_bucket, last_bucket, step).column_valued("serie")
    grid = select(
        _trunc(unit, serie).label("frame"),
        cast(null(), Integer()).label("result"),
    ).cte("grid")

    # 2. upstream rows grouped by (shifted) bucket
    frame = _trunc(unit, _event_time(relation, options) + offset)
    preprocessed = (
        relation.with_only_columns(
            frame.label("frame"),
            _aggregate(relation, options).label("result"),
        )
        .order_by(None)
        .group_by(None)
        .group_by(frame)
        .cte("preprocessed_results")
    )

    # 3. fill gaps / accumulate
    fulfilled = union_all(
        select(preprocessed.c.frame, preprocessed.c.result),
        select(grid.c.frame, grid.c.result),
    ).subquery("fulfilled_gaps")

    fold = getattr(func, options.operation.fold.value)(fulfilled.c.result)
    if options.cumulative:
        windowed = fold.over(order_by=fulfilled.c.frame)
    else:
        windowed = fold.over(partition_by=fulfilled.c.frame)
    if options.operation.zero_when_empty:
        windowed = func.coalesce(windowed, literal_column("0"))

    results = (
        select(fulfilled.c.frame, windowed.label("result"))
        .distinct()
        .cte("results")
    )

    # 4. trim to the window
    plan = (
        select(results.c.frame, results.c.result)
        .where(results.c.frame.between(first_bucket, last_bucket))
        .order_by(results.c.frame.asc())
    )
    logger.debug(
        "Built periodic plan  op=%s  column=%s  cumulative=%s",
        options.operation.value, options.column_name, options.cumulative,
    )
    return plan


def plan_shape(options: QueryOptions) -> tuple:
    """Option fields that change the statement text (the rest are bind values)."""
    return (
        options.operation.value,
        options.column_name,
        options.timestamp_column,
        options.cumulative,
    )
