"""
rankboard.engine.ordering — Canonical Leaderboard Order
=========================================================

One total order is shared by rank counting, page listing and nearby
windows::

    score DESC, updated_at ASC, id ASC

The earlier achiever of a tied score ranks higher; ``id`` only separates
rows whose timestamps are identical.  :func:`ahead_of` is the exact
"strictly before this row" predicate for that order, so
``count(ahead_of(row)) + 1`` always equals the row's position in a page.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ColumnElement, and_, or_

from rankboard.database.models import Player


def leaderboard_order() -> tuple[ColumnElement, ...]:
    """ORDER BY clauses for every leaderboard listing."""
    return (Player.score.desc(), Player.updated_at.asc(), Player.id.asc())


def scope(game_id: int, platform: str | None = None) -> list[ColumnElement[bool]]:
    """WHERE clauses restricting to one game and, optionally, one platform."""
    clauses: list[ColumnElement[bool]] = [Player.game_id == game_id]
    if platform is not None:
        clauses.append(Player.platform == str(platform))
    return clauses


def better_score(score: int) -> ColumnElement[bool]:
    """Rows with a strictly greater score (ties not separated)."""
    return Player.score > score


def ahead_of(score: int, updated_at: datetime, player_id: int) -> ColumnElement[bool]:
    """Rows that sort strictly before ``(score, updated_at, player_id)``."""
    return or_(
        Player.score > score,
        and_(Player.score == score, Player.updated_at < updated_at),
        and_(
            Player.score == score,
            Player.updated_at == updated_at,
            Player.id < player_id,
        ),
    )
