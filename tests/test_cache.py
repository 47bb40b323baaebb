"""
tests/test_cache.py — Leaderboard Cache Unit Tests
===================================================

Memory backend expiry and prefix sweeps, key construction, and the
fail-open behaviour of the Redis backend (mocked client, no server).
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from rankboard.config import RankboardConfig
from rankboard.engine.cache import (
    LeaderboardCache,
    MemoryCacheBackend,
    NullCacheBackend,
    RedisCacheBackend,
    build_cache,
)
from rankboard.errors import CacheError


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# MemoryCacheBackend
# ---------------------------------------------------------------------------
class TestMemoryBackend:
    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def backend(self, clock):
        return MemoryCacheBackend(clock=clock)

    def test_get_set(self, backend):
        backend.set("1:all:0:20", "x", 60)
        assert backend.get("1:all:0:20") == "x"
        assert backend.get("missing") is None

    def test_entries_expire(self, backend, clock):
        backend.set("k", "v", 60)
        clock.now += 59
        assert backend.get("k") == "v"
        clock.now += 1
        assert backend.get("k") is None
        assert len(backend) == 0

    def test_delete_prefix_only_touches_that_game(self, backend):
        backend.set("1:all:0:20", "a", 60)
        backend.set("1:player_rank:5", "b", 60)
        backend.set("11:all:0:20", "c", 60)
        backend.set("2:stats:30", "d", 60)
        assert backend.delete_prefix("1:") == 2
        assert backend.get("11:all:0:20") == "c"
        assert backend.get("2:stats:30") == "d"
        assert len(backend) == 2

    def test_delete(self, backend):
        backend.set("a", "1", 60)
        backend.delete("a", "never-set")
        assert backend.get("a") is None

    def test_unread_expired_keys_are_purged_on_write(self, clock):
        backend = MemoryCacheBackend(clock=clock, sweep_interval=100)
        for score in range(5000):
            backend.set(f"1:score_rank:all:{score}", "7", 60)
        clock.now += 61
        assert len(backend) == 0
        assert len(backend._entries) == 5000

        for score in range(100):
            backend.set(f"2:score_rank:all:{score}", "1", 60)
        assert len(backend._entries) == 100
        assert backend.get("2:score_rank:all:99") == "1"


# ---------------------------------------------------------------------------
# LeaderboardCache keys & invalidation
# ---------------------------------------------------------------------------
class TestLeaderboardCache:
    @pytest.fixture
    def cache(self):
        return LeaderboardCache(MemoryCacheBackend())

    def test_page_keys(self):
        assert LeaderboardCache.page_key(7, None, 0, 20) == "7:all:0:20"
        assert LeaderboardCache.page_key(7, "WECHAT", 40, 20) == "7:WECHAT:40:20"

    def test_every_key_shares_game_prefix(self):
        prefix = LeaderboardCache.game_prefix(7)
        for key in (
            LeaderboardCache.page_key(7, "DOUYIN", 0, 5),
            LeaderboardCache.score_rank_key(7, None, 100),
            LeaderboardCache.player_rank_key(7, 3),
            LeaderboardCache.stats_key(7, 30),
        ):
            assert key.startswith(prefix)

    def test_json_round_trip(self, cache):
        data = {"rankings": [{"rank": 1}], "pagination": {"total": 1}}
        assert cache.set_page(1, None, 0, 20, data, 60) is True
        assert cache.get_page(1, None, 0, 20) == data

    def test_invalidate_game_drops_all_game_keys(self, cache):
        cache.set_page(1, None, 0, 20, {"a": 1}, 60)
        cache.set_page(1, "IOS_APP", 0, 20, {"a": 1}, 60)
        cache.set_score_rank(1, None, 50, 3, 60)
        cache.set_player_rank(1, 9, {"rank": 2}, 60)
        cache.set_stats(1, 30, {"totalPlayers": 4}, 60)
        cache.set_page(2, None, 0, 20, {"b": 2}, 60)

        assert cache.invalidate_game(1) is True

        assert cache.get_page(1, None, 0, 20) is None
        assert cache.get_page(1, "IOS_APP", 0, 20) is None
        assert cache.get_score_rank(1, None, 50) is None
        assert cache.get_player_rank(1, 9) is None
        assert cache.get_stats(1, 30) is None
        assert cache.get_page(2, None, 0, 20) == {"b": 2}

    def test_invalidation_bumps_generation(self, cache):
        assert cache.generation(1) == 0
        cache.invalidate_game(1)
        assert cache.generation(1) == 1
        assert cache.generation(2) == 0

    def test_invalidate_player(self, cache):
        cache.set_player_rank(1, 9, {"rank": 2}, 60)
        cache.set_player_rank(1, 10, {"rank": 3}, 60)
        assert cache.invalidate_player(1, 9) is True
        assert cache.get_player_rank(1, 9) is None
        assert cache.get_player_rank(1, 10) == {"rank": 3}

    def test_undecodable_entry_is_a_miss(self):
        backend = MemoryCacheBackend()
        backend.set("1:all:0:20", "{not json", 60)
        assert LeaderboardCache(backend).get_page(1, None, 0, 20) is None

    def test_null_backend_always_misses(self):
        cache = LeaderboardCache(NullCacheBackend())
        cache.set_page(1, None, 0, 20, {"a": 1}, 60)
        assert cache.get_page(1, None, 0, 20) is None
        assert cache.invalidate_game(1) is True
        assert cache.backend_name == "null"


# ---------------------------------------------------------------------------
# RedisCacheBackend with a mocked client
# ---------------------------------------------------------------------------
class TestRedisBackend:
    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def backend(self, client):
        return RedisCacheBackend(client)

    def test_keys_are_namespaced(self, backend, client):
        client.get.return_value = '{"rank": 1}'
        assert backend.get("1:player_rank:3") == '{"rank": 1}'
        client.get.assert_called_once_with("rankboard:1:player_rank:3")

    def test_set_uses_ttl(self, backend, client):
        backend.set("1:all:0:20", "x", 300)
        client.set.assert_called_once_with("rankboard:1:all:0:20", "x", ex=300)

    def test_delete_prefix_scans_then_deletes(self, backend, client):
        client.scan_iter.return_value = iter(["rankboard:1:a", "rankboard:1:b"])
        assert backend.delete_prefix("1:") == 2
        client.scan_iter.assert_called_once_with(match="rankboard:1:*", count=500)
        client.delete.assert_called_once_with("rankboard:1:a", "rankboard:1:b")

    def test_delete_prefix_nothing_to_delete(self, backend, client):
        client.scan_iter.return_value = iter([])
        assert backend.delete_prefix("1:") == 0
        client.delete.assert_not_called()

    def test_errors_become_cache_errors(self, backend, client):
        client.get.side_effect = RedisConnectionError("down")
        with pytest.raises(CacheError):
            backend.get("k")

    def test_ping_false_when_unreachable(self, backend, client):
        client.ping.side_effect = RedisTimeoutError("slow")
        assert backend.ping() is False

    def test_from_url_sets_short_timeouts(self):
        with patch("rankboard.engine.cache.redis.Redis.from_url") as from_url:
            backend = RedisCacheBackend.from_url("redis://cache:6379/0", timeout=0.25)
        from_url.assert_called_once_with(
            "redis://cache:6379/0",
            socket_timeout=0.25,
            socket_connect_timeout=0.25,
            decode_responses=True,
        )
        assert backend.name == "redis"


class TestFailOpen:
    """A broken Redis must look like an empty cache, never an error."""

    @pytest.fixture
    def cache(self):
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("down")
        client.set.side_effect = RedisConnectionError("down")
        client.delete.side_effect = RedisConnectionError("down")
        client.scan_iter.side_effect = RedisConnectionError("down")
        return LeaderboardCache(RedisCacheBackend(client))

    def test_get_is_a_miss(self, cache, caplog):
        assert cache.get_page(1, None, 0, 20) is None
        assert "treating as miss" in caplog.text

    def test_set_reports_failure(self, cache):
        assert cache.set_page(1, None, 0, 20, {"a": 1}, 60) is False

    def test_invalidation_reports_failure(self, cache):
        assert cache.invalidate_game(1) is False
        assert cache.invalidate_player(1, 2) is False


# ---------------------------------------------------------------------------
# build_cache
# ---------------------------------------------------------------------------
class TestBuildCache:
    def test_disabled(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
        cache = build_cache(RankboardConfig(cache_enabled=False))
        assert cache.backend_name == "null"

    def test_memory_without_redis_url(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        assert build_cache(RankboardConfig()).backend_name == "memory"

    def test_redis_when_configured(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
        with patch("rankboard.engine.cache.redis.Redis.from_url") as from_url:
            from_url.return_value.ping.side_effect = RedisConnectionError("down")
            cache = build_cache(RankboardConfig())
        assert cache.backend_name == "redis"
