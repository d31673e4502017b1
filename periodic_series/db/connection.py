"""SQLAlchemy engine factory.

Single shared engine with connection pooling.  Series queries run
through `readonly_connection`, which sets the transaction to READ ONLY
before anything else is executed.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from periodic_series.core.config import get_settings
from periodic_series.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine (lazy-created, cached)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            # shows up in pg_stat_activity next to long-running series queries
            connect_args={"application_name": settings.db_application_name},
            echo=False,
        )
        logger.info(
            "DB engine created  host=%s  db=%s  pool=%d+%d",
            settings.postgres_host, settings.postgres_db,
            settings.db_pool_size, settings.db_max_overflow,
        )
    return _engine


@contextmanager
def readonly_connection() -> Generator[Connection, None, None]:
    """Yield a connection set to READ ONLY transaction mode.

    The connection is returned to the pool on exit, whether the body
    succeeded or raised.
    """
    engine = get_engine()
    conn = engine.connect()
    try:
        conn.execute(text("SET TRANSACTION READ ONLY"))
        yield conn
    finally:
        conn.close()
