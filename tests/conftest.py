import os
import sys
from datetime import date, timedelta

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

# Ensure the flat-layout modules are importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from database import create_db_and_tables  # noqa: E402
from engine.repository import InMemoryRepository  # noqa: E402
from engine.store import SqlRepository  # noqa: E402


def daily(values, start=date(2026, 9, 1)):
    """Raw points on consecutive days."""
    return [{"date": start + timedelta(days=i), "value": v} for i, v in enumerate(values)]


@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def sql_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_repo(sql_engine):
    return SqlRepository(bind=sql_engine)
