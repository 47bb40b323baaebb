"""
rankboard.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for tunable, non-secret settings: score limits,
pagination bounds, cache TTLs and store timeouts.  Secrets and connection
strings (``DATABASE_URL``, ``REDIS_URL``, ``JWT_SECRET``) stay in the
environment.

Usage::

    from rankboard.config import load_config

    cfg = load_config()          # reads $RANKBOARD_CONFIG or ./config.yaml
    print(cfg.max_score)         # 999999999
    print(cfg.leaderboard_cache_ttl)  # 300
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from rankboard import constants

DEFAULT_CONFIG_PATH = "config.yaml"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RankboardConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has a default so a deployment without a config file still
    gets the documented boundary limits.
    """

    # Boundary limits
    max_score: int = constants.MAX_SCORE
    max_duration_seconds: int = constants.MAX_DURATION_SECONDS
    max_details_bytes: int = constants.MAX_DETAILS_BYTES

    # Pagination
    default_page_size: int = constants.DEFAULT_PAGE_SIZE
    max_page_size: int = constants.MAX_PAGE_SIZE
    nearby_radius: int = constants.NEARBY_RADIUS
    large_offset_threshold: int = constants.LARGE_OFFSET_THRESHOLD

    # Cache
    cache_enabled: bool = True
    cacheable_offset_limit: int = constants.CACHEABLE_OFFSET_LIMIT
    leaderboard_cache_ttl: int = constants.LEADERBOARD_CACHE_TTL
    player_rank_cache_ttl: int = constants.PLAYER_RANK_CACHE_TTL
    score_rank_cache_ttl: int = constants.SCORE_RANK_CACHE_TTL
    game_stats_cache_ttl: int = constants.GAME_STATS_CACHE_TTL
    cache_timeout_seconds: float = constants.CACHE_TIMEOUT_SECONDS

    # Store
    db_statement_timeout_ms: int = constants.DB_STATEMENT_TIMEOUT_MS

    # Player tokens
    player_token_ttl_hours: int = constants.PLAYER_TOKEN_TTL_HOURS


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> RankboardConfig:
    """Read *path* and return a :class:`RankboardConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  When omitted,
        ``$RANKBOARD_CONFIG`` is used, falling back to ``config.yaml`` in
        the current working directory.  A missing *default* file yields the
        built-in defaults.

    Raises
    ------
    FileNotFoundError
        If an explicitly named YAML file doesn't exist.
    KeyError
        If the YAML file contains an unknown key.
    """
    explicit = path is not None or bool(os.getenv("RANKBOARD_CONFIG"))
    config_path = Path(path or os.getenv("RANKBOARD_CONFIG") or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(
                f"Configuration file not found: {config_path.resolve()}\n"
                "Hint: copy config.yaml.example → config.yaml and edit it."
            )
        return RankboardConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    known = {f.name: f for f in fields(RankboardConfig)}
    unknown = sorted(set(raw) - set(known))
    if unknown:
        raise KeyError(f"Unknown configuration keys: {', '.join(unknown)}")

    values = {}
    for key, value in raw.items():
        default = known[key].default
        # Coerce to the declared type of the default (YAML may hand us strings)
        if isinstance(default, bool):
            values[key] = bool(value)
        elif isinstance(default, int):
            values[key] = int(value)
        elif isinstance(default, float):
            values[key] = float(value)
        else:
            values[key] = value
    return RankboardConfig(**values)
