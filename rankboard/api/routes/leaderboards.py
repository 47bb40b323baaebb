"""
rankboard.api.routes.leaderboards — Public leaderboard reads
=============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from rankboard.api.deps import get_cache, get_config, get_engine
from rankboard.api.responses import ok
from rankboard.config import RankboardConfig
from rankboard.engine.cache import LeaderboardCache
from rankboard.services import leaderboard_service

router = APIRouter(tags=["leaderboards"])


# ---------------------------------------------------------------------------
# GET /leaderboards/{game_id}
# ---------------------------------------------------------------------------
@router.get("/leaderboards/{game_id}")
def get_leaderboard(
    game_id: int,
    platform: str | None = None,
    limit: int | None = None,
    offset: int = 0,
    start_rank: int | None = Query(None, alias="startRank"),
    end_rank: int | None = Query(None, alias="endRank"),
    engine: Engine = Depends(get_engine),
    cache: LeaderboardCache = Depends(get_cache),
    cfg: RankboardConfig = Depends(get_config),
):
    """Ranked slice by ``limit``/``offset`` or ``startRank``..``endRank``."""
    window = leaderboard_service.resolve_window(
        game_id,
        platform=platform,
        limit=limit,
        offset=offset,
        start_rank=start_rank,
        end_rank=end_rank,
        cfg=cfg,
    )
    data, cached = leaderboard_service.get_leaderboard(engine, cache, window, cfg)
    return ok(data, cached=cached)


# ---------------------------------------------------------------------------
# GET /leaderboards/{game_id}/rank
# ---------------------------------------------------------------------------
@router.get("/leaderboards/{game_id}/rank")
def get_rank_for_score(
    game_id: int,
    score: int,
    platform: str | None = None,
    engine: Engine = Depends(get_engine),
    cache: LeaderboardCache = Depends(get_cache),
    cfg: RankboardConfig = Depends(get_config),
):
    """Where a candidate score would place, ties not separated."""
    return ok(leaderboard_service.get_rank(engine, cache, game_id, score, cfg, platform))
