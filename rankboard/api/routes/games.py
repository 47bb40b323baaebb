"""
rankboard.api.routes.games — Game statistics
=============================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from rankboard.api.deps import get_cache, get_config, get_engine
from rankboard.api.responses import ok
from rankboard.config import RankboardConfig
from rankboard.engine.cache import LeaderboardCache
from rankboard.services.game_service import get_game_stats

router = APIRouter(tags=["games"])


@router.get("/games/{game_id}/stats")
def game_stats(
    game_id: int,
    days: int = Query(30, ge=1, le=365),
    engine: Engine = Depends(get_engine),
    cache: LeaderboardCache = Depends(get_cache),
    cfg: RankboardConfig = Depends(get_config),
):
    stats, cached = get_game_stats(
        engine, cache, game_id, days=days, ttl=cfg.game_stats_cache_ttl,
    )
    return ok(stats, cached=cached)
