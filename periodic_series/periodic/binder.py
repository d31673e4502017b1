"""
Parameter binder -- pairs a periodic plan with its named bind values.

The plan itself is executed, so SQLAlchemy expands upstream parameters
(``IN`` lists and the like) at execution time.  Option values only ever
travel as bind parameters; `BoundQuery.sql` is the psycopg2 rendering of
the statement, with ``%(name)s`` placeholders, for logging and inspection.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

from sqlalchemy.dialects.postgresql.psycopg2 import PGDialect_psycopg2
from sqlalchemy.sql import Select

from periodic_series.periodic.options import QueryOptions
from periodic_series.periodic.plan import (
    INTERVAL_STEP,
    OFFSET,
    UNIT,
    WINDOW_END,
    WINDOW_START,
)

# Client-side interpolation: the repeated date_trunc(%(unit)s, ...) in SELECT
# and GROUP BY reaches PostgreSQL as identical text.
DIALECT = PGDialect_psycopg2()


@dataclass(frozen=True, eq=False)
class BoundQuery:
    """A periodic plan plus the values for its named parameters."""
    statement: Select
    params: dict[str, Any] = field(default_factory=dict)

    @cached_property
    def sql(self) -> str:
        return compile_plan(self.statement)


def bind_values(options: QueryOptions) -> dict[str, Any]:
    """The five runtime values a periodic plan is parameterised on."""
    return {
        UNIT: options.interval_unit.value,
        INTERVAL_STEP: options.interval_step,
        WINDOW_START: options.window_start,
        WINDOW_END: options.window_end,
        OFFSET: options.offset_string,
    }


def compile_plan(plan: Select) -> str:
    return str(plan.compile(dialect=DIALECT))


def bind(plan: Select, options: QueryOptions) -> BoundQuery:
    """Attach the values of `options` to `plan`.

    Values carried by the upstream relation (its WHERE criteria) stay on
    the statement and are rendered by SQLAlchemy on execution.
    """
    return BoundQuery(statement=plan, params=bind_values(options))
