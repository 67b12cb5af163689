"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os
from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of forge.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from forge.config import ForgeConfig  # noqa: E402
from forge.database.models import Base, Quest, User  # noqa: E402
from forge.database.seed import seed_default_achievements  # noqa: E402
from forge.services import leaderboard_service  # noqa: E402

# Wednesday; the week runs Sunday 2025-03-09 .. Saturday 2025-03-15.
NOW = datetime(2025, 3, 12, 15, 0, tzinfo=UTC)

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Game Forge tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (FastAPI runs sync routes on a worker thread).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def seeded_engine(db_engine: Engine) -> Engine:
    """db_engine with the default badge and title catalogue loaded."""
    seed_default_achievements(db_engine)
    return db_engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture(autouse=True)
def _clear_leaderboard_cache():
    """The leaderboard cache is process-wide; never leak entries between tests."""
    leaderboard_service.leaderboard_cache.clear()
    yield
    leaderboard_service.leaderboard_cache.clear()


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
def make_user(
    engine: Engine,
    username: str,
    *,
    xp: int = 0,
    domain: str | None = None,
    role: str = "member",
    is_active: bool = True,
    user_id: str | None = None,
) -> str:
    """Insert a user and return its id."""
    from forge.constants import calculate_level

    with Session(engine) as session:
        user = User(
            username=username,
            xp=xp,
            level=calculate_level(xp),
            domain=domain,
            role=role,
            is_active=is_active,
        )
        if user_id is not None:
            user.id = user_id
        session.add(user)
        session.commit()
        return user.id


def make_quest(
    engine: Engine,
    title: str = "Share a work-in-progress",
    *,
    quest_type: str = "daily",
    xp_reward: int = 50,
    domain: str | None = None,
    is_active: bool = True,
) -> int:
    """Insert a quest and return its id."""
    with Session(engine) as session:
        quest = Quest(
            title=title,
            quest_type=quest_type,
            xp_reward=xp_reward,
            domain=domain,
            is_active=is_active,
        )
        session.add(quest)
        session.commit()
        return quest.id


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------
def make_token(
    sub: str,
    *,
    username: str = "FixtureUser",
    role: str = "member",
    domain: str | None = None,
) -> str:
    """Create a bearer JWT the way the identity provider would."""
    import jwt

    from forge.api.deps import JWT_ALGORITHM, JWT_SECRET

    claims = {"sub": sub, "username": username, "role": role}
    if domain is not None:
        claims["domain"] = domain
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def test_config() -> ForgeConfig:
    return ForgeConfig(
        community_name="Test Forge",
        community_motto="Ship it",
        dashboard_port=8501,
        archive_retention_weeks=4,
    )


@pytest.fixture
def client(seeded_engine: Engine, test_config: ForgeConfig):
    """FastAPI TestClient bound to the in-memory database.

    Created without a ``with`` block, so the lifespan hook (which would
    build an engine from DATABASE_URL) does not run.
    """
    from fastapi.testclient import TestClient

    from forge.api.deps import get_engine, get_optional_config
    from forge.api.main import app

    app.dependency_overrides[get_engine] = lambda: seeded_engine
    app.dependency_overrides[get_optional_config] = lambda: test_config
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
