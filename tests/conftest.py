"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of moodify.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from moodify.config import MoodifyConfig  # noqa: E402
from moodify.database.models import Base  # noqa: E402
from moodify.engine.cache import LedgerCache  # noqa: E402
from moodify.services.user_service import Identity  # noqa: E402


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Moodify tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def config() -> MoodifyConfig:
    return MoodifyConfig()


@pytest.fixture
def ledger_cache() -> LedgerCache:
    return LedgerCache()


@pytest.fixture
def alice() -> Identity:
    return Identity(user_id="u-alice", nickname="Alice")


def make_token(sub: str = "u-alice", nickname: str = "Alice") -> str:
    """Create a session JWT.  Usable from any test module."""
    from moodify.api.deps import issue_token

    return issue_token(sub, nickname)


@pytest.fixture
def client(db_engine, config):
    """FastAPI TestClient wired to the in-memory engine and default config."""
    from fastapi.testclient import TestClient

    from moodify.api.deps import get_config, get_engine, get_ledger_cache
    from moodify.api.main import app

    cache = LedgerCache()
    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_ledger_cache] = lambda: cache
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
