"""
rankboard.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- games    — Tenants whose leaderboards are managed independently
- players  — One row per (game, platform, external player id) identity

Rank is never stored; it is derived from ``players`` on every query.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Timestamp written on every mutation (microsecond precision)."""
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Rankboard ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Platform(enum.StrEnum):
    """Client channel a player connects from."""
    WECHAT = "WECHAT"
    DOUYIN = "DOUYIN"
    IOS_APP = "IOS_APP"
    ANDROID_APP = "ANDROID_APP"


# Platforms whose external id doubles as the provider open id.
OPEN_ID_PLATFORMS: frozenset[Platform] = frozenset({Platform.WECHAT, Platform.DOUYIN})


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------
class Game(Base):
    __tablename__ = "games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # API-facing token; renaming it breaks client integrations.
    short_name: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    players: Mapped[list[Player]] = relationship(back_populates="game")

    def __repr__(self) -> str:
        return f"<Game id={self.id} short_name={self.short_name!r}>"


# ---------------------------------------------------------------------------
# Players: one row per platform identity per game
# ---------------------------------------------------------------------------
class Player(Base):
    """A leaderboard participant.

    ``score`` is overwritten wholesale on each submission.  ``updated_at`` is
    written by the application (not the server clock) so tie-breaks between
    equal scores are stable and sub-second precise.
    """
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="RESTRICT"), nullable=False
    )
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    nickname: Mapped[str] = mapped_column(String(50), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)
    open_id: Mapped[str | None] = mapped_column(String(100), default=None)
    score: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    location: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    game: Mapped[Game] = relationship(back_populates="players")

    __table_args__ = (
        UniqueConstraint(
            "game_id", "platform", "external_id", name="uq_players_game_platform_external",
        ),
        Index("ix_players_game_score", "game_id", "score", "updated_at"),
        Index(
            "ix_players_game_platform_score", "game_id", "platform", "score", "updated_at",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Player id={self.id} game={self.game_id} platform={self.platform} "
            f"score={self.score}>"
        )
