"""
rankboard.engine.cache — Leaderboard Side-Cache
================================================

A key-value cache with TTLs in front of leaderboard pages, rank lookups and
game stats.  Invalidation is coarse: every score mutation in game G drops
*every* key under ``G:`` rather than working out which pages moved.

Backends share the :class:`CacheBackend` interface:

* :class:`RedisCacheBackend`  — shared across API workers (``REDIS_URL``).
* :class:`MemoryCacheBackend` — process-local dict with per-key expiry.
* :class:`NullCacheBackend`   — always misses.

Backends raise :class:`~rankboard.errors.CacheError`.
:class:`LeaderboardCache` catches it, logs, and behaves as a miss, so a
cache that is down only costs extra store reads.

Lifecycle: :func:`build_cache` runs once at process start (API lifespan),
``close()`` runs at shutdown.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from collections.abc import Callable
from typing import Any

import redis
from redis.exceptions import RedisError

from rankboard.config import RankboardConfig
from rankboard.constants import (
    CACHE_KEY_NAMESPACE,
    CACHE_TIMEOUT_SECONDS,
    MEMORY_CACHE_SWEEP_INTERVAL,
)
from rankboard.errors import CacheError

logger = logging.getLogger(__name__)

ALL_PLATFORMS = "all"


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------
class CacheBackend:
    """Minimal string key-value store with TTLs."""

    name = "base"

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl: int) -> None:
        raise NotImplementedError

    def delete(self, *keys: str) -> None:
        raise NotImplementedError

    def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with *prefix*; return how many."""
        raise NotImplementedError

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        """Release connections.  Safe to call more than once."""


class NullCacheBackend(CacheBackend):
    name = "null"

    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str, ttl: int) -> None:
        pass

    def delete(self, *keys: str) -> None:
        pass

    def delete_prefix(self, prefix: str) -> int:
        return 0


class MemoryCacheBackend(CacheBackend):
    """Thread-safe in-process cache.

    Expired entries are dropped on read and on prefix sweeps.  Every
    *sweep_interval* writes a full purge also drops keys that are never
    read again.
    """

    name = "memory"

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: int = MEMORY_CACHE_SWEEP_INTERVAL,
    ) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        # key → (expires_at, value)
        self._entries: dict[str, tuple[float, str]] = {}
        self._sweep_interval = max(1, sweep_interval)
        self._writes = 0

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            now = self._clock()
            self._writes += 1
            if self._writes >= self._sweep_interval:
                self._writes = 0
                self._purge_expired(now)
            self._entries[key] = (now + ttl, value)

    def _purge_expired(self, now: float) -> None:
        """Drop every expired entry.  Caller holds the lock."""
        expired = [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._entries.values() if expires_at > now)


def _escape_glob(text: str) -> str:
    """Escape Redis MATCH metacharacters."""
    return "".join(f"\\{c}" if c in "*?[]\\" else c for c in text)


class RedisCacheBackend(CacheBackend):
    """Redis-backed cache.  Keys are namespaced so the database can be shared.

    The client should be built with short socket timeouts (see
    :meth:`from_url`) so a stalled server reads as a miss quickly.
    """

    name = "redis"

    def __init__(self, client: redis.Redis, namespace: str = CACHE_KEY_NAMESPACE) -> None:
        self._client = client
        self._namespace = namespace

    @classmethod
    def from_url(
        cls, url: str, *, timeout: float = CACHE_TIMEOUT_SECONDS,
    ) -> RedisCacheBackend:
        client = redis.Redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=True,
        )
        return cls(client)

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(self._key(key))
        except RedisError as exc:
            raise CacheError(f"Redis GET failed for {key}") from exc

    def set(self, key: str, value: str, ttl: int) -> None:
        try:
            self._client.set(self._key(key), value, ex=ttl)
        except RedisError as exc:
            raise CacheError(f"Redis SET failed for {key}") from exc

    def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            self._client.delete(*(self._key(k) for k in keys))
        except RedisError as exc:
            raise CacheError(f"Redis DEL failed for {keys}") from exc

    def delete_prefix(self, prefix: str) -> int:
        pattern = f"{_escape_glob(self._key(prefix))}*"
        try:
            # SCAN instead of KEYS so a large keyspace doesn't block the server
            keys = list(self._client.scan_iter(match=pattern, count=500))
            if keys:
                self._client.delete(*keys)
        except RedisError as exc:
            raise CacheError(f"Redis prefix delete failed for {prefix}") from exc
        return len(keys)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError:
            return False

    def close(self) -> None:
        try:
            self._client.close()
        except RedisError:
            logger.warning("Error while closing Redis client", exc_info=True)


# ---------------------------------------------------------------------------
# Leaderboard-aware wrapper
# ---------------------------------------------------------------------------
class LeaderboardCache:
    """JSON cache for leaderboard data, keyed per game.

    Every key for game G starts with ``"G:"``:

    ===============  ==========================================
    pages            ``G:{platform|all}:{offset}:{limit}``
    candidate ranks  ``G:score_rank:{platform|all}:{score}``
    player ranks     ``G:player_rank:{player_id}``
    stats            ``G:stats:{days}``
    ===============  ==========================================

    Requests that resolve to the same offset/limit (e.g. a rank range and
    the equivalent page) share a key.
    """

    def __init__(self, backend: CacheBackend) -> None:
        self._backend = backend
        self._lock = threading.Lock()
        # game id → invalidation count, per process
        self._generations: dict[int, int] = {}

    @property
    def backend_name(self) -> str:
        return self._backend.name

    # -------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------
    @staticmethod
    def game_prefix(game_id: int) -> str:
        return f"{game_id}:"

    @staticmethod
    def page_key(game_id: int, platform: str | None, offset: int, limit: int) -> str:
        return f"{game_id}:{platform or ALL_PLATFORMS}:{offset}:{limit}"

    @staticmethod
    def score_rank_key(game_id: int, platform: str | None, score: int) -> str:
        return f"{game_id}:score_rank:{platform or ALL_PLATFORMS}:{score}"

    @staticmethod
    def player_rank_key(game_id: int, player_id: int) -> str:
        return f"{game_id}:player_rank:{player_id}"

    @staticmethod
    def stats_key(game_id: int, days: int) -> str:
        return f"{game_id}:stats:{days}"

    # -------------------------------------------------------------------
    # Fail-open primitives
    # -------------------------------------------------------------------
    def get_json(self, key: str) -> Any | None:
        try:
            raw = self._backend.get(key)
        except CacheError:
            logger.warning("Cache get failed for %s, treating as miss", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    def set_json(self, key: str, value: Any, ttl: int) -> bool:
        try:
            self._backend.set(key, json.dumps(value, default=str), ttl)
        except CacheError:
            logger.warning("Cache set failed for %s", key, exc_info=True)
            return False
        return True

    # -------------------------------------------------------------------
    # Typed accessors
    # -------------------------------------------------------------------
    def get_page(self, game_id: int, platform: str | None, offset: int, limit: int):
        return self.get_json(self.page_key(game_id, platform, offset, limit))

    def set_page(
        self, game_id: int, platform: str | None, offset: int, limit: int, data: dict, ttl: int,
    ) -> bool:
        return self.set_json(self.page_key(game_id, platform, offset, limit), data, ttl)

    def get_score_rank(self, game_id: int, platform: str | None, score: int) -> int | None:
        return self.get_json(self.score_rank_key(game_id, platform, score))

    def set_score_rank(
        self, game_id: int, platform: str | None, score: int, rank: int, ttl: int,
    ) -> bool:
        return self.set_json(self.score_rank_key(game_id, platform, score), rank, ttl)

    def get_player_rank(self, game_id: int, player_id: int) -> dict | None:
        return self.get_json(self.player_rank_key(game_id, player_id))

    def set_player_rank(self, game_id: int, player_id: int, data: dict, ttl: int) -> bool:
        return self.set_json(self.player_rank_key(game_id, player_id), data, ttl)

    def get_stats(self, game_id: int, days: int) -> dict | None:
        return self.get_json(self.stats_key(game_id, days))

    def set_stats(self, game_id: int, days: int, data: dict, ttl: int) -> bool:
        return self.set_json(self.stats_key(game_id, days), data, ttl)

    # -------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------
    def invalidate_game(self, game_id: int) -> bool:
        """Drop every cached entry for *game_id*.  Returns False on failure."""
        with self._lock:
            self._generations[game_id] = self._generations.get(game_id, 0) + 1
        try:
            removed = self._backend.delete_prefix(self.game_prefix(game_id))
        except CacheError:
            logger.warning("Cache invalidation failed for game %s", game_id, exc_info=True)
            return False
        logger.debug("Invalidated %d cache entries for game %s", removed, game_id)
        return True

    def generation(self, game_id: int) -> int:
        """How many times *game_id* has been invalidated by this process.

        A reader that sees the value change across its store read must not
        cache what it read.  Invalidations from other workers are not seen.
        """
        with self._lock:
            return self._generations.get(game_id, 0)

    def invalidate_player(self, game_id: int, player_id: int) -> bool:
        try:
            self._backend.delete(self.player_rank_key(game_id, player_id))
        except CacheError:
            logger.warning(
                "Cache invalidation failed for player %s in game %s",
                player_id, game_id, exc_info=True,
            )
            return False
        return True

    def ping(self) -> bool:
        return self._backend.ping()

    def close(self) -> None:
        self._backend.close()


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------
def build_cache(cfg: RankboardConfig) -> LeaderboardCache:
    """Pick a backend: Redis if ``REDIS_URL`` is set, else memory, else null."""
    if not cfg.cache_enabled:
        logger.info("Caching disabled by configuration")
        return LeaderboardCache(NullCacheBackend())

    url = os.getenv("REDIS_URL", "").strip()
    if url:
        backend = RedisCacheBackend.from_url(url, timeout=cfg.cache_timeout_seconds)
        if backend.ping():
            logger.info("Redis cache connected")
        else:
            # Keep the backend: calls fail open until Redis comes back.
            logger.warning("Redis not reachable at startup; cache will miss until it is")
        return LeaderboardCache(backend)

    logger.warning("REDIS_URL not configured, using process-local memory cache")
    return LeaderboardCache(MemoryCacheBackend())
