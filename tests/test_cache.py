"""
tests/test_cache.py — LeaderboardCache Unit Tests
==================================================
TTL expiry, tag/prefix invalidation and hit/miss stats, driven by a
fake clock so nothing sleeps.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from forge.engine.cache import LeaderboardCache


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return LeaderboardCache(default_ttl=60, clock=clock)


class TestExpiry:
    def test_value_available_before_ttl(self, cache, clock):
        cache.set("k", [1, 2, 3], ttl=10)
        clock.advance(9.9)
        assert cache.get("k") == [1, 2, 3]

    def test_value_gone_at_ttl(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(10)
        assert cache.get("k") is None
        assert not cache.has("k")

    def test_default_ttl(self, cache, clock):
        cache.set("k", "v")
        clock.advance(59)
        assert cache.has("k")
        clock.advance(1)
        assert not cache.has("k")

    def test_cleanup_expired(self, cache, clock):
        cache.set("short", 1, ttl=5)
        cache.set("long", 2, ttl=500)
        clock.advance(6)
        assert cache.cleanup_expired() == 1
        assert cache.stats()["keys"] == ["long"]


class TestGetOrLoad:
    def test_loader_called_once_while_fresh(self, cache):
        loader = MagicMock(return_value={"rows": []})
        cache.get_or_load("board", loader)
        cache.get_or_load("board", loader)
        loader.assert_called_once()

    def test_loader_called_again_after_expiry(self, cache, clock):
        loader = MagicMock(return_value=[1])
        cache.get_or_load("board", loader, ttl=1)
        clock.advance(2)
        cache.get_or_load("board", loader, ttl=1)
        assert loader.call_count == 2

    @pytest.mark.parametrize("invalidate", [
        lambda c: c.invalidate_tags({"leaderboard"}),
        lambda c: c.invalidate_prefix("ranking:"),
        lambda c: c.delete("ranking:all-time:all"),
        lambda c: c.clear(),
    ])
    def test_load_racing_an_invalidation_is_not_stored(self, cache, invalidate):
        def loader():
            # An XP award lands while the ranking query is running.
            invalidate(cache)
            return "stale-ranking"

        value = cache.get_or_load("ranking:all-time:all", loader, tags={"leaderboard"})

        assert value == "stale-ranking"
        assert cache.get("ranking:all-time:all") is None

    def test_none_is_not_cached(self, cache):
        loader = MagicMock(return_value=None)
        cache.get_or_load("user-rank:ghost", loader)
        cache.get_or_load("user-rank:ghost", loader)
        assert loader.call_count == 2
        assert cache.stats()["size"] == 0

    def test_load_after_invalidation_is_stored(self, cache):
        cache.invalidate_tags({"leaderboard"})
        cache.get_or_load("ranking:all-time:all", lambda: "fresh", tags={"leaderboard"})
        assert cache.get("ranking:all-time:all") == "fresh"


class TestInvalidation:
    def test_invalidate_by_tag(self, cache):
        cache.set("a", 1, tags={"leaderboard", "type:weekly"})
        cache.set("b", 2, tags={"leaderboard", "type:all-time"})
        cache.set("c", 3, tags={"widget"})
        assert cache.invalidate_tags({"type:weekly"}) == 1
        assert cache.invalidate_tags({"leaderboard"}) == 1
        assert cache.has("c")

    def test_invalidate_by_prefix(self, cache):
        cache.set("ranking:weekly:all", 1)
        cache.set("ranking:weekly:Game Art", 2)
        cache.set("ranking:all-time:all", 3)
        assert cache.invalidate_prefix("ranking:weekly") == 2
        assert cache.has("ranking:all-time:all")

    def test_delete(self, cache):
        cache.set("k", 1)
        assert cache.delete("k") is True
        assert cache.delete("k") is False


class TestStats:
    def test_hit_rate(self, cache):
        cache.set("k", 1)
        cache.get("k")
        cache.get("k")
        cache.get("missing")
        stats = cache.stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["hit_rate"] == pytest.approx(0.667)
        assert stats["size"] == 1

    def test_clear_resets_counters(self, cache):
        cache.set("k", 1)
        cache.get("k")
        cache.clear()
        assert cache.stats() == {"size": 0, "hits": 0, "misses": 0, "hit_rate": 0.0, "keys": []}
