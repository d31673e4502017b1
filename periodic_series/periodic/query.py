"""
Periodic query service -- options -> plan -> bound statement -> series.

`execute` is the public entry point: it returns one point per bucket of
the requested window, ascending, with gaps filled.  Either the whole
series comes back or a single `PeriodicQueryError` is raised.
"""
from __future__ import annotations

import datetime
from typing import Any, NamedTuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import Select

from periodic_series.core.config import get_settings
from periodic_series.core.logging import get_logger
from periodic_series.core.utils import to_naive_utc
from periodic_series.db.executor import execute_readonly
from periodic_series.periodic.binder import BoundQuery, bind
from periodic_series.periodic.cache import get_plan_cache, plan_key
from periodic_series.periodic.errors import QueryExecutionError, ResultMappingError
from periodic_series.periodic.options import QueryOptions
from periodic_series.periodic.plan import build_plan

logger = get_logger(__name__)


class SeriesPoint(NamedTuple):
    """Start of a bucket (aware, UTC) and the aggregate for it."""
    time: datetime.datetime
    value: int | None


# ── Statement preparation ────────────────────────────────

def prepare(relation: Select, options: QueryOptions) -> BoundQuery:
    """Build (or fetch from the plan cache) and bind the periodic statement."""
    if not get_settings().plan_cache_enabled:
        return bind(build_plan(relation, options), options)

    cache = get_plan_cache()
    key = plan_key(relation, options)
    plan = cache.get(key)
    if plan is None:
        plan = build_plan(relation, options)
        cache.put(key, plan)
    return bind(plan, options)


# ── Row mapping ──────────────────────────────────────────

def _parse_frame(value: Any) -> datetime.datetime:
    if isinstance(value, (datetime.datetime, datetime.date)):
        return to_naive_utc(value)
    if isinstance(value, str):
        try:
            return to_naive_utc(datetime.datetime.fromisoformat(value.strip()))
        except ValueError as exc:
            raise ResultMappingError(f"Unparseable bucket key {value!r}") from exc
    raise ResultMappingError(f"Unexpected bucket key type {type(value).__name__}")


def _parse_result(value: Any, options: QueryOptions) -> int | None:
    if value is None:
        if options.operation.zero_when_empty:
            raise ResultMappingError(f"NULL result for '{options.operation.value}'")
        return None
    if isinstance(value, bool):
        raise ResultMappingError(f"Unexpected boolean result {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ResultMappingError(f"Unparseable result {value!r}") from exc


def to_point(row: dict[str, Any], options: QueryOptions) -> SeriesPoint:
    """Map one `(frame, result)` row to a SeriesPoint.

    `frame` is the locally truncated bucket start.  With `restore_utc` the
    timezone offset is taken back off so the key is the true UTC instant.
    """
    try:
        frame, result = row["frame"], row["result"]
    except KeyError as exc:
        raise ResultMappingError(f"Row is missing column {exc}") from exc

    bucket = _parse_frame(frame)
    if options.restore_utc:
        bucket -= options.offset
    return SeriesPoint(
        bucket.replace(tzinfo=datetime.timezone.utc),
        _parse_result(result, options),
    )


# ── Public API ───────────────────────────────────────────

def execute(relation: Select, options: QueryOptions) -> list[SeriesPoint]:
    """Run the periodic aggregation of `relation` described by `options`.

    Raises
    ------
    UnknownColumnError
        If a column named in `options` is not part of the relation.
    QueryExecutionError
        If the database rejects the statement or the connection fails.
    ResultMappingError
        If a returned row cannot be converted.
    """
    bound = prepare(relation, options)
    try:
        rows = execute_readonly(bound.statement, bound.params)
    except SQLAlchemyError as exc:
        logger.error("Periodic query failed  unit=%s  op=%s: %s",
                     options.interval_unit.value, options.operation.value, exc)
        raise QueryExecutionError(str(exc)) from exc

    return [to_point(row, options) for row in rows]


def periodic_operation(
    relation: Select,
    operation: str,
    column_name: str,
    window_start: datetime.datetime | datetime.date,
    window_end: datetime.datetime | datetime.date,
    **options: Any,
) -> list[SeriesPoint]:
    """Shorthand for `execute(relation, QueryOptions(...))`."""
    query_options = QueryOptions(
        operation=operation,
        column_name=column_name,
        window_start=window_start,
        window_end=window_end,
        **options,
    )
    return execute(relation, query_options)


def periodic_count(relation: Select, window_start, window_end, column_name: str = "*", **options: Any) -> list[SeriesPoint]:
    return periodic_operation(relation, "count", column_name, window_start, window_end, **options)


def periodic_sum(relation: Select, column_name: str, window_start, window_end, **options: Any) -> list[SeriesPoint]:
    return periodic_operation(relation, "sum", column_name, window_start, window_end, **options)


def periodic_min(relation: Select, column_name: str, window_start, window_end, **options: Any) -> list[SeriesPoint]:
    return periodic_operation(relation, "min", column_name, window_start, window_end, **options)


def periodic_max(relation: Select, column_name: str, window_start, window_end, **options: Any) -> list[SeriesPoint]:
    return periodic_operation(relation, "max", column_name, window_start, window_end, **options)
