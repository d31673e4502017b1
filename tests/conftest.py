"""
Shared fixtures -- table definitions and a baseline upstream relation.
"""
from __future__ import annotations

import pytest
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    select,
)

from periodic_series.periodic.cache import get_plan_cache

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("country", String(2)),
)

activities = Table(
    "activities",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("kind", String(40)),
    Column("amount", Numeric(12, 2)),
    Column("created_at", DateTime),
)

events_tz = Table(
    "events_tz",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("amount", Integer),
    Column("happened_at", DateTime(timezone=True)),
)


@pytest.fixture
def activities_table() -> Table:
    return activities


@pytest.fixture
def users_table() -> Table:
    return users


@pytest.fixture
def events_tz_table() -> Table:
    return events_tz


@pytest.fixture
def relation():
    """Upstream relation: signups only, ordered (ordering is dropped by the plan)."""
    return (
        select(activities)
        .where(activities.c.kind == "signup")
        .order_by(activities.c.created_at.desc())
    )


@pytest.fixture(autouse=True)
def _clear_plan_cache():
    get_plan_cache().invalidate()
    yield
    get_plan_cache().invalidate()

