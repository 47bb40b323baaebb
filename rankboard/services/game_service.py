"""
rankboard.services.game_service — Game Registry & Stats
========================================================

Games are owned by the admin side; the ranking code only needs to know a
game exists and a little metadata to echo back.  Creation and deletion live
here so seeding, tests and operators share one validated path.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from rankboard.constants import SHORT_NAME_MAX_LENGTH
from rankboard.database.engine import db_errors, get_session
from rankboard.database.models import Game, Platform, Player
from rankboard.engine.cache import LeaderboardCache
from rankboard.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_SHORT_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def game_summary(game: Game) -> dict:
    return {"id": game.id, "name": game.name, "shortName": game.short_name}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_game(session: Session, game_id: int) -> Game | None:
    return session.get(Game, game_id)


def require_game(session: Session, game_id: int) -> Game:
    """Return the game or raise :class:`NotFoundError`."""
    game = session.get(Game, game_id)
    if game is None:
        raise NotFoundError("Game not found", details={"gameId": game_id})
    return game


def game_exists(session: Session, game_id: int) -> bool:
    return session.get(Game, game_id) is not None


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def create_game(
    session: Session,
    *,
    name: str,
    short_name: str,
    description: str | None = None,
    is_active: bool = True,
) -> Game:
    """Insert a game after validating its short name.

    Raises
    ------
    ValidationError
        Empty name or malformed short name.
    ConflictError
        Another game already uses *short_name*.
    """
    name = name.strip()
    if not name:
        raise ValidationError.for_field("name", "Game name must not be empty")
    if not short_name or len(short_name) > SHORT_NAME_MAX_LENGTH:
        raise ValidationError.for_field(
            "shortName", f"Short name must be 1-{SHORT_NAME_MAX_LENGTH} characters",
        )
    if not _SHORT_NAME_RE.match(short_name):
        raise ValidationError.for_field(
            "shortName", "Short name may only contain letters, digits, '_' and '-'",
        )

    taken = session.scalar(select(Game.id).where(Game.short_name == short_name))
    if taken is not None:
        raise ConflictError("Short name already in use", details={"shortName": short_name})

    game = Game(name=name, short_name=short_name, description=description, is_active=is_active)
    session.add(game)
    session.flush()
    logger.info("Created game %s (%s)", game.id, short_name)
    return game


def delete_game(session: Session, game_id: int) -> None:
    """Delete a game that has no players.

    Raises
    ------
    NotFoundError
        Unknown game.
    ConflictError
        The game still has players.
    """
    game = require_game(session, game_id)
    player_count = session.scalar(
        select(func.count()).select_from(Player).where(Player.game_id == game_id)
    ) or 0
    if player_count:
        raise ConflictError(
            "Cannot delete a game that has players",
            details={"playerCount": player_count},
        )
    session.delete(game)
    logger.info("Deleted game %s", game_id)


# ---------------------------------------------------------------------------
# Stats (cached under the game's key space)
# ---------------------------------------------------------------------------
def _compute_stats(session: Session, game: Game, days: int) -> dict:
    since = datetime.now(UTC) - timedelta(days=days)
    in_game = Player.game_id == game.id

    total = session.scalar(select(func.count()).select_from(Player).where(in_game)) or 0
    active = session.scalar(
        select(func.count()).select_from(Player).where(in_game, Player.updated_at >= since)
    ) or 0
    new = session.scalar(
        select(func.count()).select_from(Player).where(in_game, Player.created_at >= since)
    ) or 0
    top_score = session.scalar(select(func.max(Player.score)).where(in_game))

    counts = {
        row.platform: row.cnt
        for row in session.execute(
            select(Player.platform, func.count().label("cnt"))
            .where(in_game)
            .group_by(Player.platform)
        ).all()
    }
    distribution = [
        {
            "platform": platform.value,
            "count": counts.get(platform.value, 0),
            "percentage": round(counts.get(platform.value, 0) / total * 100, 1) if total else 0.0,
        }
        for platform in Platform
    ]

    return {
        "game": game_summary(game),
        "days": days,
        "totalPlayers": total,
        "activePlayers": active,
        "newPlayers": new,
        "topScore": top_score,
        "platforms": distribution,
    }


def get_game_stats(
    engine: Engine, cache: LeaderboardCache, game_id: int, *, days: int, ttl: int,
) -> tuple[dict, bool]:
    """Return ``(stats, cached)`` for a game over the last *days* days."""
    cached = cache.get_stats(game_id, days)
    if cached is not None:
        return cached, True

    with db_errors("game stats"), get_session(engine) as session:
        game = require_game(session, game_id)
        stats = _compute_stats(session, game, days)

    cache.set_stats(game_id, days, stats, ttl)
    return stats, False
