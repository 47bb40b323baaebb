"""
rankboard.api.deps — FastAPI dependency injection
==================================================
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy import Engine

from rankboard.config import RankboardConfig, load_config
from rankboard.database.engine import create_db_engine
from rankboard.engine.cache import LeaderboardCache, NullCacheBackend
from rankboard.services.player_tokens import PlayerClaims, load_jwt_secret, verify_player_token

JWT_SECRET: str = load_jwt_secret()


@lru_cache(maxsize=1)
def get_config() -> RankboardConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine(get_config())


def get_cache(request: Request) -> LeaderboardCache:
    """The cache built in the app lifespan; a null cache before startup."""
    cache = getattr(request.app.state, "cache", None)
    if cache is None:
        return LeaderboardCache(NullCacheBackend())
    return cache


def get_jwt_secret() -> str:
    return JWT_SECRET


def get_player_claims(
    authorization: Annotated[str | None, Header()] = None,
    secret: str = Depends(get_jwt_secret),
) -> PlayerClaims:
    """Verify the ``Authorization: Bearer`` player token.  Raises 401."""
    token = ""
    if authorization and authorization.startswith("Bearer "):
        token = authorization.split(" ", 1)[1].strip()
    return verify_player_token(token, secret)
