"""
rankboard.services.score_store — Durable Player Storage
========================================================

The source of truth for scores.  Functions take an open
:class:`~sqlalchemy.orm.Session`; the caller owns the transaction (see
:func:`rankboard.database.engine.get_session`).

Atomicity rules:
  * First-time identities are created with a single
    ``INSERT … ON CONFLICT (game_id, platform, external_id) DO UPDATE`` so
    racing authentications resolve to one row without a read-then-write
    window.
  * Score submissions are one ``UPDATE`` writing score, duration, details
    and ``updated_at`` together.

Every ordered read uses :func:`rankboard.engine.ordering.leaderboard_order`.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from rankboard.constants import LARGE_OFFSET_THRESHOLD
from rankboard.database.models import OPEN_ID_PLATFORMS, Platform, Player, utcnow
from rankboard.engine.ordering import ahead_of, better_score, leaderboard_order, scope
from rankboard.errors import NotFoundError

logger = logging.getLogger(__name__)

# Dialects whose INSERT supports ON CONFLICT DO UPDATE.
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

_IDENTITY_COLUMNS = ["game_id", "platform", "external_id"]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def upsert_player(
    session: Session,
    game_id: int,
    platform: Platform | str,
    external_id: str,
    *,
    nickname: str,
    avatar_url: str | None = None,
    location: dict[str, Any] | None = None,
    score: int | None = None,
    now: datetime | None = None,
) -> Player:
    """Create the identity if absent, else refresh its profile fields.

    ``avatar_url``, ``location`` and ``score`` are only overwritten when
    given.  Returns the resulting row.
    """
    dialect = session.get_bind().dialect.name
    insert = _UPSERT_INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Atomic upsert is not supported on dialect {dialect!r}")

    now = now or utcnow()
    platform = Platform(platform)
    open_id = external_id if platform in OPEN_ID_PLATFORMS else None

    stmt = insert(Player).values(
        game_id=game_id,
        platform=platform.value,
        external_id=external_id,
        nickname=nickname,
        avatar_url=avatar_url,
        location=location,
        open_id=open_id,
        score=score if score is not None else 0,
        duration=0,
        created_at=now,
        updated_at=now,
    )

    changes: dict[str, Any] = {"nickname": nickname, "updated_at": now}
    if avatar_url is not None:
        changes["avatar_url"] = avatar_url
    if location is not None:
        changes["location"] = location
    if open_id is not None:
        changes["open_id"] = open_id
    if score is not None:
        changes["score"] = score

    stmt = stmt.on_conflict_do_update(
        index_elements=_IDENTITY_COLUMNS, set_=changes,
    ).returning(Player.id)

    player_id = session.execute(stmt).scalar_one()
    return session.get(Player, player_id, populate_existing=True)


def set_score(
    session: Session,
    player_id: int,
    score: int,
    duration: int,
    details: dict[str, Any] | None,
    *,
    now: datetime | None = None,
) -> Player:
    """Overwrite a player's score, duration and details in one statement.

    Raises
    ------
    NotFoundError
        If no player has *player_id*.
    """
    result = session.execute(
        update(Player)
        .where(Player.id == player_id)
        .values(score=score, duration=duration, details=details, updated_at=now or utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("Player not found")
    return session.get(Player, player_id, populate_existing=True)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_player(session: Session, player_id: int) -> Player | None:
    return session.get(Player, player_id)


def count_better(session: Session, game_id: int, platform: str | None, score: int) -> int:
    """Rows with a strictly greater score: the rank-minus-one primitive."""
    return session.scalar(
        select(func.count())
        .select_from(Player)
        .where(*scope(game_id, platform), better_score(score))
    ) or 0


def count_ahead(
    session: Session,
    game_id: int,
    platform: str | None,
    score: int,
    updated_at: datetime,
    player_id: int,
) -> int:
    """Rows sorting strictly before the given row in the canonical order."""
    return session.scalar(
        select(func.count())
        .select_from(Player)
        .where(*scope(game_id, platform), ahead_of(score, updated_at, player_id))
    ) or 0


def count_total(session: Session, game_id: int, platform: str | None = None) -> int:
    return session.scalar(
        select(func.count()).select_from(Player).where(*scope(game_id, platform))
    ) or 0


def page(
    session: Session,
    game_id: int,
    platform: str | None,
    offset: int,
    limit: int,
    *,
    large_offset_threshold: int = LARGE_OFFSET_THRESHOLD,
) -> list[Player]:
    """Ordered slice ``[offset, offset + limit)`` of the leaderboard.

    Past *large_offset_threshold* the ids are read first (index-only scan)
    and the full rows hydrated afterwards; the result is identical.
    """
    if offset > large_offset_threshold:
        return _page_by_ids(session, game_id, platform, offset, limit)

    return list(
        session.scalars(
            select(Player)
            .where(*scope(game_id, platform))
            .order_by(*leaderboard_order())
            .offset(offset)
            .limit(limit)
        ).all()
    )


def _page_by_ids(
    session: Session, game_id: int, platform: str | None, offset: int, limit: int,
) -> list[Player]:
    ids = session.scalars(
        select(Player.id)
        .where(*scope(game_id, platform))
        .order_by(*leaderboard_order())
        .offset(offset)
        .limit(limit)
    ).all()
    if not ids:
        return []

    rows = {
        p.id: p for p in session.scalars(select(Player).where(Player.id.in_(ids))).all()
    }
    # A row deleted between the two reads is simply skipped
    return [rows[i] for i in ids if i in rows]


def window_around(
    session: Session,
    game_id: int,
    rank: int,
    radius: int,
    platform: str | None = None,
    *,
    large_offset_threshold: int = LARGE_OFFSET_THRESHOLD,
) -> tuple[int, list[Player]]:
    """Contiguous slice centred on *rank*, clipped at the top and bottom.

    Returns ``(first_rank, rows)`` where ``first_rank`` is the 1-based rank
    of ``rows[0]``.
    """
    start = max(0, rank - 1 - radius)
    limit = (rank - 1 + radius) - start + 1
    rows = page(
        session, game_id, platform, start, limit,
        large_offset_threshold=large_offset_threshold,
    )
    return start + 1, rows
