"""
rankboard.services.score_service — Score Ingestion
===================================================

The authenticated score submission, as an ordered pipeline::

    validate payload ─► verify token ─► resolve player ─► check game
        ─► write score ─► invalidate cache ─► rank + nearby window

Everything before the write raises without touching the store.  The write
is one ``UPDATE`` (see :func:`~rankboard.services.score_store.set_score`).
Cache invalidation after the write is best effort: a failure is logged
and the submission still succeeds.

The pipeline is split into :func:`apply_score` (through invalidation) and
:func:`build_feedback` (the reads) so the API layer can skip the reads
when the client has already gone away.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import Engine

from rankboard.config import RankboardConfig
from rankboard.database.engine import db_errors, get_session
from rankboard.engine.cache import LeaderboardCache
from rankboard.engine.ranking import rank_for_player, validate_score
from rankboard.errors import ForbiddenError, NotFoundError, ValidationError
from rankboard.services import score_store
from rankboard.services.leaderboard_service import player_dict, ranked_rows
from rankboard.services.player_tokens import PlayerClaims, verify_player_token

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Payload validation
# ---------------------------------------------------------------------------
def validate_duration(duration: int, max_duration: int) -> int:
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise ValidationError.for_field("duration", "Duration must be an integer")
    if not 0 <= duration <= max_duration:
        raise ValidationError.for_field(
            "duration", f"Duration must be between 0 and {max_duration} seconds",
        )
    return duration


def validate_details(details: dict[str, Any] | None, max_bytes: int) -> dict[str, Any] | None:
    """Details are opaque; only their type and serialised size are checked."""
    if details is None:
        return None
    if not isinstance(details, dict):
        raise ValidationError.for_field("details", "Details must be an object")
    try:
        encoded = json.dumps(details, separators=(",", ":"), ensure_ascii=False)
        size = len(encoded.encode("utf-8"))
    except (TypeError, ValueError):
        raise ValidationError.for_field("details", "Details must be JSON serialisable") from None
    if size > max_bytes:
        raise ValidationError.for_field(
            "details", f"Details must not exceed {max_bytes} bytes (got {size})",
        )
    return details


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------
def apply_score(
    engine: Engine,
    cache: LeaderboardCache,
    cfg: RankboardConfig,
    secret: str,
    *,
    token: str,
    score: int,
    duration: int,
    details: dict[str, Any] | None = None,
) -> PlayerClaims:
    """Validate, authorise and write a submission, then invalidate the cache.

    Returns the verified claims so the caller can build feedback.

    Raises
    ------
    ValidationError
        Bad score, duration or details.
    UnauthorizedError
        Token missing, invalid or expired.
    NotFoundError
        The token's player no longer exists.
    ForbiddenError
        The player belongs to a different game than the token.
    DatabaseError
        The write failed; nothing was applied.
    """
    validate_score(score, cfg.max_score)
    validate_duration(duration, cfg.max_duration_seconds)
    validate_details(details, cfg.max_details_bytes)
    claims = verify_player_token(token, secret)

    with db_errors("score update"), get_session(engine) as session:
        player = score_store.get_player(session, claims.player_id)
        if player is None:
            raise NotFoundError("Player not found")
        if player.game_id != claims.game_id:
            logger.warning(
                "Rejected score for player %s: token is for game %s, player is in game %s",
                player.id, claims.game_id, player.game_id,
            )
            raise ForbiddenError("Token is not valid for this game")

        old_score = player.score
        logger.info("Updating score for player %s in game %s", player.id, player.game_id)
        score_store.set_score(session, player.id, score, duration, details)

    cache.invalidate_game(claims.game_id)
    cache.invalidate_player(claims.game_id, claims.player_id)
    logger.info(
        "Score updated for player %s in game %s: %s -> %s",
        claims.player_id, claims.game_id, old_score, score,
    )
    return claims


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------
def build_feedback(engine: Engine, cfg: RankboardConfig, claims: PlayerClaims) -> dict:
    """Exact rank, total and ±``nearby_radius`` window for the player.

    Computed over the whole game, not the player's platform.
    """
    with db_errors("score feedback"), get_session(engine) as session:
        player = score_store.get_player(session, claims.player_id)
        if player is None:
            raise NotFoundError("Player not found")
        rank = rank_for_player(session, player)
        total = score_store.count_total(session, player.game_id)
        first_rank, nearby = score_store.window_around(
            session,
            player.game_id,
            rank,
            cfg.nearby_radius,
            large_offset_threshold=cfg.large_offset_threshold,
        )
        logger.debug("Player %s now ranked %d of %d", player.id, rank, total)
        return {
            "currentRank": rank,
            "totalPlayers": total,
            "player": player_dict(player),
            "nearbyRankings": ranked_rows(nearby, first_rank),
        }


def submit_score(
    engine: Engine,
    cache: LeaderboardCache,
    cfg: RankboardConfig,
    secret: str,
    *,
    token: str,
    score: int,
    duration: int,
    details: dict[str, Any] | None = None,
) -> dict:
    """Full submission: write, invalidate, then report rank and neighbours."""
    claims = apply_score(
        engine, cache, cfg, secret,
        token=token, score=score, duration=duration, details=details,
    )
    return build_feedback(engine, cfg, claims)


# ---------------------------------------------------------------------------
# Own rank
# ---------------------------------------------------------------------------
def get_player_rank(
    engine: Engine,
    cache: LeaderboardCache,
    cfg: RankboardConfig,
    claims: PlayerClaims,
) -> tuple[dict, bool]:
    """Return ``({rank, totalPlayers, score, platform}, cached)``."""
    hit = cache.get_player_rank(claims.game_id, claims.player_id)
    if hit is not None:
        return hit, True

    with db_errors("player rank"), get_session(engine) as session:
        player = score_store.get_player(session, claims.player_id)
        if player is None:
            raise NotFoundError("Player not found")
        if player.game_id != claims.game_id:
            raise ForbiddenError("Token is not valid for this game")
        data = {
            "rank": rank_for_player(session, player),
            "totalPlayers": score_store.count_total(session, player.game_id),
            "score": player.score,
            "platform": player.platform,
        }

    cache.set_player_rank(claims.game_id, claims.player_id, data, cfg.player_rank_cache_ttl)
    return data, False
