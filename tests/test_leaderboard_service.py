"""
tests/test_leaderboard_service.py — Leaderboard Query Engine
=============================================================
Window resolution, pagination consistency, rank-range equivalence, the
deep-offset strategy, platform filtering and page caching.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from conftest import make_player
from rankboard.database.models import Platform
from rankboard.engine.cache import LeaderboardCache
from rankboard.errors import NotFoundError, ValidationError
from rankboard.services import leaderboard_service as ls

PLATFORMS = list(Platform)


@pytest.fixture
def board(db_engine, game_id):
    """15 players over every platform with plenty of tied scores."""
    for i in range(15):
        make_player(
            db_engine, game_id, f"p{i:02d}", (i * 7) % 5 * 100,
            platform=PLATFORMS[i % len(PLATFORMS)], updated=15 - i,
        )
    return game_id


def _rows(data):
    return [(r["rank"], r["player"]["id"]) for r in data["rankings"]]


# ===========================================================================
# resolve_window
# ===========================================================================
class TestResolveWindow:
    def test_defaults(self, cfg):
        w = ls.resolve_window(1, cfg=cfg)
        assert (w.offset, w.limit, w.platform) == (0, cfg.default_page_size, None)

    def test_rank_range_translation(self, cfg):
        w = ls.resolve_window(1, start_rank=11, end_rank=20, cfg=cfg)
        assert (w.offset, w.limit) == (10, 10)

    def test_rank_range_overrides_paging(self, cfg):
        w = ls.resolve_window(1, limit=50, offset=7, start_rank=1, end_rank=3, cfg=cfg)
        assert (w.offset, w.limit) == (0, 3)

    def test_single_rank(self, cfg):
        w = ls.resolve_window(1, start_rank=5, end_rank=5, cfg=cfg)
        assert (w.offset, w.limit) == (4, 1)

    def test_half_range_is_ignored(self, cfg):
        w = ls.resolve_window(1, start_rank=5, cfg=cfg)
        assert (w.offset, w.limit) == (0, cfg.default_page_size)
        w = ls.resolve_window(1, end_rank=5, cfg=cfg)
        assert (w.offset, w.limit) == (0, cfg.default_page_size)

    @pytest.mark.parametrize(
        "kwargs,field",
        [({"start_rank": 0}, "startRank"), ({"end_rank": 0}, "endRank")],
    )
    def test_half_range_still_bounded(self, cfg, kwargs, field):
        with pytest.raises(ValidationError) as exc:
            ls.resolve_window(1, cfg=cfg, **kwargs)
        assert field in exc.value.details

    @pytest.mark.parametrize(
        "kwargs,field",
        [
            ({"start_rank": 5, "end_rank": 4}, "endRank"),
            ({"start_rank": 0, "end_rank": 4}, "startRank"),
            ({"start_rank": 1, "end_rank": 101}, "endRank"),
            ({"limit": 0}, "limit"),
            ({"limit": 101}, "limit"),
            ({"offset": -1}, "offset"),
            ({"platform": "XBOX"}, "platform"),
        ],
    )
    def test_invalid(self, cfg, kwargs, field):
        with pytest.raises(ValidationError) as exc:
            ls.resolve_window(1, cfg=cfg, **kwargs)
        assert field in exc.value.details

    def test_limit_bounds_accepted(self, cfg):
        assert ls.resolve_window(1, limit=1, cfg=cfg).limit == 1
        assert ls.resolve_window(1, limit=100, cfg=cfg).limit == 100


# ===========================================================================
# read_leaderboard
# ===========================================================================
class TestReadLeaderboard:
    def test_empty_board(self, db_engine, game_id, cfg):
        data = ls.read_leaderboard(db_engine, ls.resolve_window(game_id, cfg=cfg), cfg)
        assert data["rankings"] == []
        assert data["pagination"] == {"total": 0, "limit": 20, "offset": 0, "hasMore": False}
        assert data["filters"] == {"platform": None}
        assert data["game"]["shortName"] == "g1"

    def test_unknown_game(self, db_engine, cfg):
        with pytest.raises(NotFoundError):
            ls.read_leaderboard(db_engine, ls.resolve_window(404, cfg=cfg), cfg)

    def test_row_shape(self, db_engine, game_id, cfg):
        make_player(db_engine, game_id, "wx-7", 70, nickname="Ann")
        data = ls.read_leaderboard(db_engine, ls.resolve_window(game_id, cfg=cfg), cfg)
        row = data["rankings"][0]
        assert row["rank"] == 1
        assert set(row["player"]) == {
            "id", "nickname", "playerId", "avatarUrl", "score", "duration",
            "platform", "location", "createdAt", "updatedAt",
        }
        assert row["player"]["playerId"] == "wx-7"
        assert row["player"]["nickname"] == "Ann"

    def test_tie_scenario(self, db_engine, game_id, cfg):
        top = make_player(db_engine, game_id, "a", 300, updated=3)
        early = make_player(db_engine, game_id, "b", 200, updated=1)
        make_player(db_engine, game_id, "c", 200, updated=2)
        w = ls.resolve_window(game_id, limit=2, cfg=cfg)
        data = ls.read_leaderboard(db_engine, w, cfg)
        assert _rows(data) == [(1, top), (2, early)]
        assert data["pagination"]["hasMore"] is True

    def test_pagination_consistency(self, db_engine, board, cfg):
        full = ls.read_leaderboard(db_engine, ls.resolve_window(board, limit=100, cfg=cfg), cfg)
        assert len(full["rankings"]) == 15
        for limit in (1, 4, 7):
            for offset in range(0, 17):
                w = ls.resolve_window(board, limit=limit, offset=offset, cfg=cfg)
                page = ls.read_leaderboard(db_engine, w, cfg)
                assert page["rankings"] == full["rankings"][offset:offset + limit]
                assert page["pagination"]["hasMore"] == (offset + limit < 15)

    @pytest.mark.parametrize("start,end", [(1, 1), (1, 15), (3, 9), (14, 20)])
    def test_rank_range_equivalence(self, db_engine, board, cfg, start, end):
        by_range = ls.read_leaderboard(
            db_engine, ls.resolve_window(board, start_rank=start, end_rank=end, cfg=cfg), cfg,
        )
        by_page = ls.read_leaderboard(
            db_engine,
            ls.resolve_window(board, offset=start - 1, limit=end - start + 1, cfg=cfg),
            cfg,
        )
        assert by_range == by_page

    @pytest.mark.parametrize("platform", [None, "WECHAT", "ANDROID_APP"])
    def test_deep_offset_strategy_equivalence(self, db_engine, board, cfg, platform):
        deep_cfg = replace(cfg, large_offset_threshold=-1)
        for offset in (0, 2, 5, 13):
            w = ls.resolve_window(board, platform=platform, limit=5, offset=offset, cfg=cfg)
            assert ls.read_leaderboard(db_engine, w, deep_cfg) == ls.read_leaderboard(
                db_engine, w, cfg,
            )

    def test_platform_filter(self, db_engine, board, cfg):
        w = ls.resolve_window(board, platform="DOUYIN", limit=100, cfg=cfg)
        data = ls.read_leaderboard(db_engine, w, cfg)
        assert {r["player"]["platform"] for r in data["rankings"]} == {"DOUYIN"}
        assert data["pagination"]["total"] == len(data["rankings"]) == 4
        assert data["filters"] == {"platform": "DOUYIN"}
        assert [r["rank"] for r in data["rankings"]] == [1, 2, 3, 4]

    def test_offset_past_end(self, db_engine, board, cfg):
        data = ls.read_leaderboard(db_engine, ls.resolve_window(board, offset=50, cfg=cfg), cfg)
        assert data["rankings"] == []
        assert data["pagination"]["total"] == 15


# ===========================================================================
# Caching
# ===========================================================================
class TestGetLeaderboard:
    def test_second_read_is_cached(self, db_engine, board, cache, cfg):
        w = ls.resolve_window(board, limit=5, cfg=cfg)
        first, cached_first = ls.get_leaderboard(db_engine, cache, w, cfg)
        second, cached_second = ls.get_leaderboard(db_engine, cache, w, cfg)
        assert (cached_first, cached_second) == (False, True)
        assert second == first

    def test_rank_range_shares_page_key(self, db_engine, board, cache, cfg):
        ls.get_leaderboard(db_engine, cache, ls.resolve_window(board, offset=5, limit=5, cfg=cfg), cfg)
        w = ls.resolve_window(board, start_rank=6, end_rank=10, cfg=cfg)
        _, cached = ls.get_leaderboard(db_engine, cache, w, cfg)
        assert cached is True

    def test_deep_pages_not_cached(self, db_engine, board, cache, cfg):
        w = ls.resolve_window(board, offset=cfg.cacheable_offset_limit, limit=5, cfg=cfg)
        ls.get_leaderboard(db_engine, cache, w, cfg)
        _, cached = ls.get_leaderboard(db_engine, cache, w, cfg)
        assert cached is False
        assert cache.get_page(board, None, w.offset, w.limit) is None

    def test_platform_pages_cached_separately(self, db_engine, board, cache, cfg):
        ls.get_leaderboard(db_engine, cache, ls.resolve_window(board, cfg=cfg), cfg)
        w = ls.resolve_window(board, platform="IOS_APP", cfg=cfg)
        _, cached = ls.get_leaderboard(db_engine, cache, w, cfg)
        assert cached is False

    def test_page_read_during_invalidation_is_not_cached(
        self, db_engine, board, cache, cfg, monkeypatch,
    ):
        real_read = ls.read_leaderboard

        def read_then_invalidate(engine, window, cfg):
            data = real_read(engine, window, cfg)
            cache.invalidate_game(window.game_id)
            return data

        monkeypatch.setattr(ls, "read_leaderboard", read_then_invalidate)
        w = ls.resolve_window(board, cfg=cfg)
        _, cached = ls.get_leaderboard(db_engine, cache, w, cfg)
        assert cached is False
        assert cache.get_page(board, None, w.offset, w.limit) is None

        monkeypatch.setattr(ls, "read_leaderboard", real_read)
        ls.get_leaderboard(db_engine, cache, w, cfg)
        assert cache.get_page(board, None, w.offset, w.limit) is not None


class TestGetRank:
    def test_rank_and_cache(self, db_engine, game_id, cache, cfg):
        make_player(db_engine, game_id, "a", 300)
        make_player(db_engine, game_id, "b", 100)
        assert ls.get_rank(db_engine, cache, game_id, 200, cfg) == {"rank": 2}
        assert cache.get_score_rank(game_id, None, 200) == 2

    def test_served_from_cache(self, db_engine, game_id, cache, cfg):
        cache.set_score_rank(game_id, None, 200, 42, 60)
        assert ls.get_rank(db_engine, cache, game_id, 200, cfg) == {"rank": 42}

    @pytest.mark.parametrize("score", [-1, 1_000_000_000])
    def test_out_of_range(self, db_engine, game_id, cache, cfg, score):
        with pytest.raises(ValidationError):
            ls.get_rank(db_engine, cache, game_id, score, cfg)

    def test_unknown_game(self, db_engine, cache, cfg):
        with pytest.raises(NotFoundError):
            ls.get_rank(db_engine, cache, 999, 10, cfg)

    def test_null_cache_still_answers(self, db_engine, game_id, cfg):
        from rankboard.engine.cache import NullCacheBackend

        null = LeaderboardCache(NullCacheBackend())
        assert ls.get_rank(db_engine, null, game_id, 10, cfg) == {"rank": 1}
