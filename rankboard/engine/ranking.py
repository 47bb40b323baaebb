"""
rankboard.engine.ranking — Rank Calculator
===========================================

Two rank formulas, each with a fixed use:

* :func:`rank_for_score` — ``count(score > s) + 1``.  Ties are not
  separated.  Only for "what would this score place?" previews where no
  player row exists yet.
* :func:`rank_for_player` — ``count(rows ahead in the canonical order) + 1``.
  Exact, and always equal to the row's position in a page listing.  Used
  whenever a rank is attached to a real player.

Ranks are best-effort snapshots: they are not isolated from writes landing
in the same instant.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from rankboard.constants import MAX_SCORE
from rankboard.database.models import Platform, Player
from rankboard.errors import NotFoundError, ValidationError
from rankboard.services import score_store
from rankboard.services.game_service import game_exists


def validate_score(score: int, max_score: int = MAX_SCORE) -> int:
    """Return *score* if it is an integer in ``[0, max_score]``.

    Raises
    ------
    ValidationError
        Not an integer, negative, or above *max_score*.
    """
    if isinstance(score, bool) or not isinstance(score, int):
        raise ValidationError.for_field("score", "Score must be an integer")
    if score < 0:
        raise ValidationError.for_field("score", "Score must not be negative")
    if score > max_score:
        raise ValidationError.for_field("score", f"Score must not exceed {max_score}")
    return score


def validate_platform(platform: str | None) -> str | None:
    """Normalise an optional platform filter, rejecting unknown values."""
    if platform is None:
        return None
    try:
        return Platform(platform).value
    except ValueError:
        raise ValidationError.for_field(
            "platform", f"Platform must be one of {', '.join(p.value for p in Platform)}",
        ) from None


def rank_for_score(
    session: Session,
    game_id: int,
    platform: str | None,
    score: int,
    *,
    max_score: int = MAX_SCORE,
) -> int:
    """Approximate 1-based rank a candidate *score* would take.

    Raises
    ------
    ValidationError
        Score out of range or unknown platform.
    NotFoundError
        Unknown game.
    """
    validate_score(score, max_score)
    platform = validate_platform(platform)
    if not game_exists(session, game_id):
        raise NotFoundError("Game not found", details={"gameId": game_id})
    return score_store.count_better(session, game_id, platform, score) + 1


def rank_for_player(session: Session, player: Player, platform: str | None = None) -> int:
    """Exact 1-based rank of an existing *player*.

    With *platform* the rank is within that platform's leaderboard (the
    player is expected to belong to it).
    """
    return score_store.count_ahead(
        session,
        player.game_id,
        validate_platform(platform),
        player.score,
        player.updated_at,
        player.id,
    ) + 1
