"""
Plan cache.

Building a periodic plan only depends on the upstream relation and on the
option fields that shape the statement (operation, columns, cumulative).
Interval unit, window bounds and offset are bind values, so one plan serves
all of them; SQLAlchemy's own compiled cache then reuses the compiled form
of that same statement object.

Process-local, least-recently-used eviction plus a TTL, guarded by a lock.
"""
from __future__ import annotations

import hashlib
import threading
import time
from collections import OrderedDict

from sqlalchemy.sql import Select

from periodic_series.core.config import get_settings
from periodic_series.core.logging import get_logger
from periodic_series.periodic.binder import DIALECT
from periodic_series.periodic.options import QueryOptions
from periodic_series.periodic.plan import plan_shape

logger = get_logger(__name__)


class PlanCache:
    """Thread-safe LRU cache of built plans, entries expire after `ttl` seconds."""

    def __init__(self, ttl: float, max_size: int):
        self._plans: OrderedDict[str, tuple[float, Select]] = OrderedDict()
        self._lock = threading.Lock()
        self._ttl = ttl
        self._max_size = max_size
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Select | None:
        now = time.monotonic()
        with self._lock:
            cached = self._plans.get(key)
            if cached is not None and cached[0] <= now:
                del self._plans[key]
                cached = None
            if cached is None:
                self._misses += 1
                return None
            self._plans.move_to_end(key)
            self._hits += 1
        return cached[1]

    def put(self, key: str, plan: Select) -> None:
        with self._lock:
            self._plans[key] = (time.monotonic() + self._ttl, plan)
            self._plans.move_to_end(key)
            while len(self._plans) > self._max_size:
                evicted, _ = self._plans.popitem(last=False)
                logger.debug("Plan cache evicted %s", evicted[:16])

    def invalidate(self, key: str | None = None) -> int:
        """Drop one plan, or all of them when `key` is None. Returns the count dropped."""
        with self._lock:
            if key is None:
                count = len(self._plans)
                self._plans.clear()
                return count
            return 1 if self._plans.pop(key, None) is not None else 0

    def stats(self) -> dict[str, float | int]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._plans),
                "max_size": self._max_size,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / lookups, 3) if lookups else 0.0,
            }


def plan_key(relation: Select, options: QueryOptions) -> str:
    """Key from the relation's compiled text, its literal values and the
    statement-shaping option fields."""
    compiled = relation.compile(dialect=DIALECT)
    literals = sorted((name, repr(value)) for name, value in compiled.params.items())
    raw = f"{compiled.string}|{literals!r}|{plan_shape(options)!r}"
    return hashlib.sha256(raw.encode()).hexdigest()


_cache: PlanCache | None = None


def get_plan_cache() -> PlanCache:
    """Process-wide plan cache, sized from settings on first use."""
    global _cache
    if _cache is None:
        settings = get_settings()
        _cache = PlanCache(
            ttl=settings.plan_cache_ttl_seconds,
            max_size=settings.plan_cache_max_size,
        )
    return _cache
