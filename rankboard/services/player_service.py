"""
rankboard.services.player_service — Player Identity Upsert
===========================================================

Turns an already-verified platform identity into a player row plus an
access token.  Verifying the identity with WeChat / Douyin / app stores is
the caller's job; this module trusts what it is handed.
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta
from typing import Any

from sqlalchemy import Engine

from rankboard.config import RankboardConfig
from rankboard.constants import MAX_NICKNAME_LENGTH
from rankboard.database.engine import db_errors, get_session
from rankboard.database.models import Platform
from rankboard.errors import ForbiddenError, ValidationError
from rankboard.services import score_store
from rankboard.services.game_service import require_game
from rankboard.services.player_tokens import PlayerClaims, issue_player_token

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[<>'\"&]")


def sanitize_text(value: str, max_length: int) -> str:
    """Strip markup-significant characters, trim, and cap the length."""
    return _UNSAFE_CHARS.sub("", value).strip()[:max_length]


def authenticate_player(
    engine: Engine,
    secret: str,
    cfg: RankboardConfig,
    *,
    game_id: int,
    platform: Platform | str,
    external_id: str,
    nickname: str,
    avatar_url: str | None = None,
    location: dict[str, Any] | None = None,
) -> dict:
    """Upsert the identity and return ``{playerId, token, player}``.

    Raises
    ------
    NotFoundError
        Unknown game.
    ForbiddenError
        The game is inactive.
    ValidationError
        Nickname empty after sanitising.
    """
    clean_nickname = sanitize_text(nickname, MAX_NICKNAME_LENGTH)
    if not clean_nickname:
        raise ValidationError.for_field("nickname", "Nickname must not be empty")

    with db_errors("player authentication"), get_session(engine) as session:
        game = require_game(session, game_id)
        if not game.is_active:
            raise ForbiddenError("Game is not active")

        player = score_store.upsert_player(
            session,
            game_id,
            platform,
            external_id,
            nickname=clean_nickname,
            avatar_url=avatar_url,
            location=location,
        )
        summary = {
            "id": player.id,
            "nickname": player.nickname,
            "avatarUrl": player.avatar_url,
            "score": player.score,
            "duration": player.duration,
            "platform": player.platform,
        }

    token = issue_player_token(
        PlayerClaims(player_id=summary["id"], game_id=game_id, platform=summary["platform"]),
        secret,
        ttl=timedelta(hours=cfg.player_token_ttl_hours),
    )
    logger.info(
        "Player %s authenticated for game %s on %s", summary["id"], game_id, summary["platform"],
    )
    return {"playerId": summary["id"], "token": token, "player": summary}
