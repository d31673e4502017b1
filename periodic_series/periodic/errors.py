"""
Exceptions raised while building or running a periodic series query.
"""
from __future__ import annotations


class PeriodicQueryError(RuntimeError):
    """Base class for every failure surfaced by `execute`."""


class UnknownColumnError(PeriodicQueryError, ValueError):
    """A column named in the options is not reachable from the relation."""

    def __init__(self, column_name: str, available: list[str]):
        self.column_name = column_name
        self.available = available
        super().__init__(
            f"Unknown column '{column_name}'. "
            f"Available: {', '.join(available) or '(none)'}"
        )


class QueryExecutionError(PeriodicQueryError):
    """The data source rejected the statement or the connection failed."""


class ResultMappingError(PeriodicQueryError):
    """A returned row could not be converted into a series point."""
