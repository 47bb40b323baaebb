"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of rankboard.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite renders JSONB as TEXT; SQLAlchemy's JSON type handles the values.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from rankboard.config import RankboardConfig  # noqa: E402
from rankboard.database.engine import get_session  # noqa: E402
from rankboard.database.models import Base, Platform  # noqa: E402
from rankboard.engine.cache import LeaderboardCache, MemoryCacheBackend  # noqa: E402
from rankboard.services import score_store  # noqa: E402
from rankboard.services.game_service import create_game  # noqa: E402
from rankboard.services.player_tokens import PlayerClaims, issue_player_token  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()

JWT_SECRET = os.environ["JWT_SECRET"]

# Fixed base time so tie-breaks on updated_at are deterministic
T0 = datetime(2020, 1, 1, 12, 0, 0, tzinfo=UTC)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Rankboard tables.

    StaticPool keeps every thread (``run_db`` uses ``asyncio.to_thread``)
    on the same in-memory database.
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
def cfg() -> RankboardConfig:
    return RankboardConfig()


@pytest.fixture
def cache() -> LeaderboardCache:
    return LeaderboardCache(MemoryCacheBackend())


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
def make_game(engine: Engine, short_name: str = "g1", *, is_active: bool = True) -> int:
    with get_session(engine) as session:
        game = create_game(
            session, name=f"Game {short_name}", short_name=short_name, is_active=is_active,
        )
        return game.id


def make_player(
    engine: Engine,
    game_id: int,
    external_id: str,
    score: int,
    *,
    platform: Platform = Platform.WECHAT,
    updated: float | None = 0,
    nickname: str | None = None,
) -> int:
    """Insert a player whose ``updated_at`` is ``T0 + updated`` seconds (now if None)."""
    with get_session(engine) as session:
        player = score_store.upsert_player(
            session,
            game_id,
            platform,
            external_id,
            nickname=nickname or external_id,
            score=score,
            now=at(updated) if updated is not None else None,
        )
        return player.id


def make_token(player_id: int, game_id: int, platform: str = "WECHAT", **kwargs) -> str:
    """Create a player JWT.  Usable from any test module."""
    return issue_player_token(
        PlayerClaims(player_id=player_id, game_id=game_id, platform=platform),
        JWT_SECRET,
        **kwargs,
    )


@pytest.fixture
def game_id(db_engine: Engine) -> int:
    return make_game(db_engine)


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
@pytest.fixture
def client(db_engine: Engine, cache: LeaderboardCache, cfg: RankboardConfig):
    """TestClient wired to the in-memory engine and memory cache.

    The lifespan is not entered, so no DATABASE_URL or Redis is needed.
    """
    from fastapi.testclient import TestClient

    from rankboard.api.deps import get_cache, get_config, get_engine
    from rankboard.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_config] = lambda: cfg
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
