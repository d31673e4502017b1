"""
Small shared utilities.
"""
from __future__ import annotations

import datetime
import time
from contextlib import contextmanager
from typing import Generator


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def to_naive_utc(value: datetime.datetime | datetime.date) -> datetime.datetime:
    """Normalise a date/datetime to a naive datetime expressed in UTC.

    Aware datetimes are converted to UTC; naive ones are assumed to be UTC
    already; plain dates become midnight.
    """
    if not isinstance(value, datetime.datetime):
        return datetime.datetime.combine(value, datetime.time.min)
    if value.tzinfo is not None:
        return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value
