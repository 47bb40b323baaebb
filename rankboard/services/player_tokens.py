"""
rankboard.services.player_tokens — Player Access Tokens
========================================================

HS256 JWTs issued after a player authenticates and presented on every
score submission.  Claims::

    sub       player row id (string)
    game_id   game the token was issued for
    platform  platform of the identity
    exp       expiry (default 7 days)

Verification failures of any kind map to
:class:`~rankboard.errors.UnauthorizedError`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from rankboard.constants import PLAYER_TOKEN_TTL_HOURS
from rankboard.errors import UnauthorizedError

_WEAK_SECRETS = frozenset({
    "rankboard-dev-secret-change-me",
    "fallback-secret-key",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError if the secret is missing, blank, too short
    (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


@dataclass(frozen=True, slots=True)
class PlayerClaims:
    """The verified identity a token vouches for."""

    player_id: int
    game_id: int
    platform: str


def issue_player_token(
    claims: PlayerClaims,
    secret: str,
    *,
    ttl: timedelta = timedelta(hours=PLAYER_TOKEN_TTL_HOURS),
) -> str:
    payload = {
        "sub": str(claims.player_id),
        "game_id": claims.game_id,
        "platform": claims.platform,
        "exp": datetime.now(UTC) + ttl,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def verify_player_token(token: str, secret: str) -> PlayerClaims:
    """Decode *token* and return its claims.

    Raises
    ------
    UnauthorizedError
        Missing, malformed, wrongly signed, expired, or incomplete token.
    """
    if not token:
        raise UnauthorizedError("Missing token")
    try:
        payload = jwt.decode(
            token, secret, algorithms=[JWT_ALGORITHM], options={"require": ["exp", "sub"]},
        )
    except ExpiredSignatureError:
        raise UnauthorizedError("Token expired") from None
    except InvalidTokenError:
        raise UnauthorizedError("Invalid token") from None

    try:
        return PlayerClaims(
            player_id=int(payload["sub"]),
            game_id=int(payload["game_id"]),
            platform=str(payload["platform"]),
        )
    except (KeyError, TypeError, ValueError):
        raise UnauthorizedError("Invalid token") from None
