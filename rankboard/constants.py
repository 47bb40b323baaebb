"""
rankboard.constants — Shared Limits & Defaults
===============================================

Single source of truth for boundary limits and cache lifetimes.
:class:`~rankboard.config.RankboardConfig` uses these as its defaults.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Score submission limits
# ---------------------------------------------------------------------------
MAX_SCORE = 999_999_999
MAX_DURATION_SECONDS = 86_400 * 365
MAX_DETAILS_BYTES = 10_000
MAX_TOKEN_LENGTH = 1000

# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
NEARBY_RADIUS = 5  # ±5 positions around the submitting player

# Offsets above this read ids first, then hydrate rows (same results).
LARGE_OFFSET_THRESHOLD = 1000

# ---------------------------------------------------------------------------
# Cache TTLs (seconds)
# ---------------------------------------------------------------------------
LEADERBOARD_CACHE_TTL = 300
PLAYER_RANK_CACHE_TTL = 60
SCORE_RANK_CACHE_TTL = 60
GAME_STATS_CACHE_TTL = 600

# Only pages starting below this offset are cached (first 5 pages of 20).
CACHEABLE_OFFSET_LIMIT = 100

CACHE_TIMEOUT_SECONDS = 0.5
CACHE_KEY_NAMESPACE = "rankboard:"

# The in-process cache purges expired entries once per this many writes.
MEMORY_CACHE_SWEEP_INTERVAL = 500

# ---------------------------------------------------------------------------
# Store / tokens
# ---------------------------------------------------------------------------
DB_STATEMENT_TIMEOUT_MS = 5000
PLAYER_TOKEN_TTL_HOURS = 24 * 7
SLOW_QUERY_MS = 500

# ---------------------------------------------------------------------------
# Player profile limits
# ---------------------------------------------------------------------------
MAX_NICKNAME_LENGTH = 50
MAX_EXTERNAL_ID_LENGTH = 100
MAX_AVATAR_URL_LENGTH = 500
MAX_LOCATION_PART_LENGTH = 50
SHORT_NAME_MAX_LENGTH = 20
