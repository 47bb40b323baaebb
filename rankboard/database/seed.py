"""
rankboard.database.seed — Demo Data Seeder
===========================================

Creates a ``demo`` game and a handful of players spread over every
platform so a fresh deployment has a leaderboard to look at.

Idempotent: the game is only created when its short name is free, and
players go through the identity upsert, so re-running refreshes the same
rows instead of duplicating them.

Run with::

    python -m rankboard.database.seed
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from sqlalchemy import Engine, select

from rankboard.database.engine import create_db_engine, get_session, init_db
from rankboard.database.models import Game, Platform
from rankboard.services.game_service import create_game
from rankboard.services.score_store import upsert_player

logger = logging.getLogger(__name__)

DEMO_GAME = {
    "name": "Demo Game",
    "short_name": "demo",
    "description": "Sample leaderboard created by the seeder",
}

# (platform, external id, nickname, score, location)
DEMO_PLAYERS: list[tuple[Platform, str, str, int, dict | None]] = [
    (Platform.WECHAT, "wx_demo_001", "Lingling", 9800, {"country": "CN", "city": "Shanghai"}),
    (Platform.WECHAT, "wx_demo_002", "Ahmed", 7650, None),
    (Platform.DOUYIN, "dy_demo_001", "Xiaoyu", 8800, {"country": "CN", "city": "Chengdu"}),
    (Platform.DOUYIN, "dy_demo_002", "Mika", 7650, None),
    (Platform.IOS_APP, "ios_demo_001", "Sofia", 9100, {"country": "ES"}),
    (Platform.IOS_APP, "ios_demo_002", "Kenji", 4200, {"country": "JP", "city": "Osaka"}),
    (Platform.ANDROID_APP, "and_demo_001", "Priya", 6300, {"country": "IN"}),
    (Platform.ANDROID_APP, "and_demo_002", "Tomás", 1500, None),
]


def seed_demo_data(engine: Engine) -> tuple[int, int]:
    """Create the demo game and upsert its players.

    Returns ``(game_id, players_written)``.
    """
    with get_session(engine) as session:
        game = session.scalar(select(Game).where(Game.short_name == DEMO_GAME["short_name"]))
        if game is None:
            game = create_game(session, **DEMO_GAME)

        for platform, external_id, nickname, score, location in DEMO_PLAYERS:
            upsert_player(
                session,
                game.id,
                platform,
                external_id,
                nickname=nickname,
                location=location,
                score=score,
            )
        game_id = game.id

    logger.info("Seeded %d demo players into game %s.", len(DEMO_PLAYERS), game_id)
    return game_id, len(DEMO_PLAYERS)


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    )
    engine = create_db_engine()
    init_db(engine)
    seed_demo_data(engine)


if __name__ == "__main__":
    main()
