"""
rankboard.api.routes.players — Player identity & score submission
==================================================================

Score submission is the only async route: the write runs in a worker
thread and is allowed to finish even if the client disconnects, but the
follow-up rank reads are skipped for a client that is already gone.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Engine

from rankboard.api.deps import (
    get_cache,
    get_config,
    get_engine,
    get_jwt_secret,
    get_player_claims,
)
from rankboard.api.responses import ok
from rankboard.config import RankboardConfig
from rankboard.constants import (
    MAX_AVATAR_URL_LENGTH,
    MAX_EXTERNAL_ID_LENGTH,
    MAX_LOCATION_PART_LENGTH,
    MAX_TOKEN_LENGTH,
)
from rankboard.database.engine import run_db
from rankboard.database.models import Platform
from rankboard.engine.cache import LeaderboardCache
from rankboard.services import player_service, score_service
from rankboard.services.player_tokens import PlayerClaims

logger = logging.getLogger(__name__)

router = APIRouter(tags=["players"])


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------
class Location(BaseModel):
    country: str | None = Field(None, max_length=MAX_LOCATION_PART_LENGTH)
    province: str | None = Field(None, max_length=MAX_LOCATION_PART_LENGTH)
    city: str | None = Field(None, max_length=MAX_LOCATION_PART_LENGTH)


class PlayerAuth(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: int = Field(alias="gameId", ge=1)
    platform: Platform
    player_id: str = Field(alias="playerId", min_length=1, max_length=MAX_EXTERNAL_ID_LENGTH)
    nickname: str = Field(min_length=1)
    avatar_url: str | None = Field(None, alias="avatarUrl", max_length=MAX_AVATAR_URL_LENGTH)
    location: Location | None = None


class ScoreSubmission(BaseModel):
    token: str = Field(min_length=1, max_length=MAX_TOKEN_LENGTH)
    score: int
    duration: int = 0
    details: dict | None = None


# ---------------------------------------------------------------------------
# POST /players/auth
# ---------------------------------------------------------------------------
@router.post("/players/auth")
def authenticate(
    body: PlayerAuth,
    engine: Engine = Depends(get_engine),
    cfg: RankboardConfig = Depends(get_config),
    secret: str = Depends(get_jwt_secret),
):
    """Upsert a verified platform identity and issue a player token."""
    location = body.location.model_dump(exclude_none=True) if body.location else None
    data = player_service.authenticate_player(
        engine,
        secret,
        cfg,
        game_id=body.game_id,
        platform=body.platform,
        external_id=body.player_id,
        nickname=body.nickname,
        avatar_url=body.avatar_url,
        location=location or None,
    )
    return ok(data)


# ---------------------------------------------------------------------------
# POST /players/score
# ---------------------------------------------------------------------------
@router.post("/players/score")
async def submit_score(
    body: ScoreSubmission,
    request: Request,
    engine: Engine = Depends(get_engine),
    cache: LeaderboardCache = Depends(get_cache),
    cfg: RankboardConfig = Depends(get_config),
    secret: str = Depends(get_jwt_secret),
):
    """Overwrite the caller's score and report their new standing."""
    claims = await run_db(
        score_service.apply_score,
        engine,
        cache,
        cfg,
        secret,
        token=body.token,
        score=body.score,
        duration=body.duration,
        details=body.details,
    )

    if await request.is_disconnected():
        logger.info("Client gone after score write for player %s; skipping rank reads", claims.player_id)
        return ok({"playerId": claims.player_id})

    return ok(await run_db(score_service.build_feedback, engine, cfg, claims))


# ---------------------------------------------------------------------------
# GET /players/rank
# ---------------------------------------------------------------------------
@router.get("/players/rank")
def own_rank(
    claims: PlayerClaims = Depends(get_player_claims),
    engine: Engine = Depends(get_engine),
    cache: LeaderboardCache = Depends(get_cache),
    cfg: RankboardConfig = Depends(get_config),
):
    data, cached = score_service.get_player_rank(engine, cache, cfg, claims)
    return ok(data, cached=cached)
