"""
Rankboard — Multi-Platform Game Leaderboard Service
=====================================================
Records player scores for games played on WeChat / Douyin mini-programs,
iOS and Android, computes ranks with a deterministic tie-break, and serves
paginated leaderboard views through a side-cache that is invalidated on
every score mutation.

Package layout::

    rankboard/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Boundary limits + cache TTL defaults
    ├── errors.py          # Error taxonomy (code + HTTP status)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, session + async helpers
    │   ├── models.py      # Game + Player ORM models
    │   └── seed.py        # Demo data seeder
    ├── engine/
    │   ├── ordering.py    # Canonical leaderboard order + "ahead of" predicates
    │   ├── ranking.py     # Rank Calculator
    │   └── cache.py       # Cache backends (Redis / memory / null) + LeaderboardCache
    ├── services/
    │   ├── score_store.py         # Durable Player CRUD, counts, pages
    │   ├── game_service.py        # Game registry + stats
    │   ├── leaderboard_service.py # Leaderboard Query Engine
    │   ├── player_tokens.py       # Player JWT issue / verify
    │   ├── player_service.py      # Identity upsert on authentication
    │   └── score_service.py       # Score Ingestion Service
    └── api/
        ├── main.py        # FastAPI app + lifespan
        ├── deps.py        # Dependency injection
        ├── responses.py   # Response envelope + exception handlers
        └── routes/        # Leaderboard, player and game endpoints
"""

__version__ = "0.1.0"
