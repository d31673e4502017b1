"""
Read-only statement executor.

Runs a statement (a SQLAlchemy Executable, or raw SQL wrapped in text())
inside a READ ONLY transaction with a per-statement timeout, and returns
the raw rows as dicts.  Type conversion is left to the caller.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.sql import Executable

from periodic_series.db.connection import readonly_connection
from periodic_series.core.config import get_settings
from periodic_series.core.logging import get_logger
from periodic_series.core.utils import timer

logger = get_logger(__name__)


def execute_readonly(
    statement: Executable | str,
    params: dict[str, Any] | None = None,
    timeout_ms: int | None = None,
) -> list[dict[str, Any]]:
    """Execute a read-only statement and return rows as dicts.

    Any database error propagates to the caller.
    """
    if timeout_ms is None:
        timeout_ms = get_settings().query_timeout_ms
    if isinstance(statement, str):
        statement = text(statement)

    logger.debug("Executing %s (%d params)", type(statement).__name__, len(params or {}))

    with timer() as t, readonly_connection() as conn:
        conn.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))

        result = conn.execute(statement, params or {})
        columns = list(result.keys())
        rows = [dict(zip(columns, row)) for row in result.fetchall()]

    logger.info("Returned %d rows in %d ms", len(rows), t["elapsed_ms"])
    return rows
