"""
rankboard.database.engine — Database Connection & Async Helper
===============================================================

SQLAlchemy + psycopg2 is **synchronous**.  The API's async routes ship
blocking store work to a worker thread with :func:`run_db`, so the event
loop stays free and a write that has already been handed to a thread
finishes even if the awaiting request is cancelled.

Every store call is bounded: the pool gives up after ``pool_timeout`` and,
on PostgreSQL, each statement carries a ``statement_timeout``.  Failures
surface as :class:`~rankboard.errors.DatabaseError` via :func:`db_errors`.

Usage::

    from rankboard.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async route:
    data = await run_db(read_leaderboard, engine, window, cfg)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rankboard.config import RankboardConfig
from rankboard.database.models import Base
from rankboard.errors import DatabaseError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(cfg: RankboardConfig | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    * ``pool_size=5`` / ``max_overflow=10`` — up to 15 concurrent requests.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.
    * PostgreSQL only: ``statement_timeout`` from *cfg* and a 5 s connect
      timeout.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    cfg = cfg or RankboardConfig()
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    connect_args: dict = {}
    if url.startswith("postgresql"):
        connect_args = {
            "connect_timeout": 5,
            "options": f"-c statement_timeout={cfg.db_statement_timeout_ms}",
        }

    engine = create_engine(
        url,
        echo=False,        # Set True for SQL debugging
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,   # Reconnect stale connections automatically
        pool_timeout=10,      # Fail after 10s instead of hanging forever
        pool_recycle=3600,
        connect_args=connect_args,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`rankboard.database.models`.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that auto-commits on success and rolls back
    on exception.

    Objects stay readable after the block (``expire_on_commit=False``).
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def db_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy failures inside the block into :class:`DatabaseError`.

    The driver's message is logged but never copied into the error, so
    callers only ever see the generic text.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Database failure during %s", operation)
        raise DatabaseError() from exc


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Under the hood it calls :func:`asyncio.to_thread`.  Cancelling the
    awaiting task does not stop the thread, so an issued write always
    runs to completion.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
