"""
rankboard.services.leaderboard_service — Leaderboard Query Engine
==================================================================

Serves leaderboard slices addressed either by ``offset``/``limit`` or by
an inclusive ``startRank``..``endRank`` range, optionally filtered to one
platform.  Both forms resolve to the same ``(offset, limit)`` window and
therefore the same cache key.

Row ranks are ``offset + index + 1``.  Because pages use the same total
order as :func:`~rankboard.engine.ranking.rank_for_player`, a row's page
rank equals its exact rank whenever no write lands mid-query.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from sqlalchemy import Engine

from rankboard.config import RankboardConfig
from rankboard.constants import SLOW_QUERY_MS
from rankboard.database.engine import db_errors, get_session
from rankboard.database.models import Player
from rankboard.engine.cache import LeaderboardCache
from rankboard.engine.ranking import rank_for_score, validate_platform, validate_score
from rankboard.errors import ValidationError
from rankboard.services import score_store
from rankboard.services.game_service import game_summary, require_game

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------
def _iso(value) -> str | None:
    return value.isoformat() if value else None


def player_dict(p: Player) -> dict:
    return {
        "id": p.id,
        "nickname": p.nickname,
        "playerId": p.external_id,
        "avatarUrl": p.avatar_url,
        "score": p.score,
        "duration": p.duration,
        "platform": p.platform,
        "location": p.location,
        "createdAt": _iso(p.created_at),
        "updatedAt": _iso(p.updated_at),
    }


def ranked_rows(players: list[Player], first_rank: int) -> list[dict]:
    return [
        {"rank": first_rank + i, "player": player_dict(p)}
        for i, p in enumerate(players)
    ]


# ---------------------------------------------------------------------------
# Window resolution
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LeaderboardWindow:
    """A validated leaderboard request."""

    game_id: int
    platform: str | None
    offset: int
    limit: int


def resolve_window(
    game_id: int,
    *,
    platform: str | None = None,
    limit: int | None = None,
    offset: int = 0,
    start_rank: int | None = None,
    end_rank: int | None = None,
    cfg: RankboardConfig | None = None,
) -> LeaderboardWindow:
    """Validate paging arguments and translate a rank range into offset/limit.

    A rank range applies only when both ends are given; it then overrides
    *limit* and *offset*.  Each end given is still checked on its own.

    Raises
    ------
    ValidationError
        ``limit`` outside ``[1, max_page_size]``, negative ``offset``, rank
        below 1, ``end_rank < start_rank``, or a range wider than a page.
    """
    cfg = cfg or RankboardConfig()
    platform = validate_platform(platform)

    if start_rank is not None and start_rank < 1:
        raise ValidationError.for_field("startRank", "startRank must be at least 1")
    if end_rank is not None and end_rank < 1:
        raise ValidationError.for_field("endRank", "endRank must be at least 1")

    if start_rank is not None and end_rank is not None:
        if end_rank < start_rank:
            raise ValidationError.for_field("endRank", "endRank must not be less than startRank")
        offset = start_rank - 1
        limit = end_rank - start_rank + 1
        if limit > cfg.max_page_size:
            raise ValidationError.for_field(
                "endRank", f"A rank range may span at most {cfg.max_page_size} ranks",
            )
    else:
        limit = cfg.default_page_size if limit is None else limit
        if not 1 <= limit <= cfg.max_page_size:
            raise ValidationError.for_field(
                "limit", f"limit must be between 1 and {cfg.max_page_size}",
            )
        if offset < 0:
            raise ValidationError.for_field("offset", "offset must not be negative")

    return LeaderboardWindow(game_id=game_id, platform=platform, offset=offset, limit=limit)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def read_leaderboard(engine: Engine, window: LeaderboardWindow, cfg: RankboardConfig) -> dict:
    """Build the leaderboard payload straight from the store (no cache)."""
    with db_errors("leaderboard query"), get_session(engine) as session:
        game = require_game(session, window.game_id)
        total = score_store.count_total(session, window.game_id, window.platform)

        started = time.perf_counter()
        players = score_store.page(
            session,
            window.game_id,
            window.platform,
            window.offset,
            window.limit,
            large_offset_threshold=cfg.large_offset_threshold,
        )
        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms > SLOW_QUERY_MS:
            logger.warning(
                "Slow leaderboard query: %.0fms for game %s (offset=%d, limit=%d)",
                elapsed_ms, window.game_id, window.offset, window.limit,
            )

        return {
            "game": game_summary(game),
            "rankings": ranked_rows(players, window.offset + 1),
            "pagination": {
                "total": total,
                "limit": window.limit,
                "offset": window.offset,
                "hasMore": window.offset + window.limit < total,
            },
            "filters": {"platform": window.platform},
        }


def get_leaderboard(
    engine: Engine,
    cache: LeaderboardCache,
    window: LeaderboardWindow,
    cfg: RankboardConfig,
) -> tuple[dict, bool]:
    """Return ``(payload, cached)`` for *window*.

    Only windows starting below ``cfg.cacheable_offset_limit`` are cached.
    """
    cacheable = window.offset < cfg.cacheable_offset_limit
    if cacheable:
        hit = cache.get_page(window.game_id, window.platform, window.offset, window.limit)
        if hit is not None:
            return hit, True

    generation = cache.generation(window.game_id)
    data = read_leaderboard(engine, window, cfg)

    # Skip the fill if the game was invalidated during the read.  Only this
    # process's invalidations are visible; other workers can still race it.
    if cacheable and cache.generation(window.game_id) == generation:
        cache.set_page(
            window.game_id, window.platform, window.offset, window.limit,
            data, cfg.leaderboard_cache_ttl,
        )
    return data, False


def get_rank(
    engine: Engine,
    cache: LeaderboardCache,
    game_id: int,
    score: int,
    cfg: RankboardConfig,
    platform: str | None = None,
) -> dict:
    """Approximate rank a candidate *score* would take: ``{"rank": n}``."""
    validate_score(score, cfg.max_score)
    platform = validate_platform(platform)
    cached = cache.get_score_rank(game_id, platform, score)
    if cached is not None:
        return {"rank": cached}

    with db_errors("rank query"), get_session(engine) as session:
        rank = rank_for_score(session, game_id, platform, score, max_score=cfg.max_score)

    cache.set_score_rank(game_id, platform, score, rank, cfg.score_rank_cache_ttl)
    return {"rank": rank}
