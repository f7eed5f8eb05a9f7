"""Tests for the TTL-on-read API cache."""

from __future__ import annotations

import asyncio

import pytest

from wow_tracker.cache import ApiCache
from wow_tracker.db.repositories.cache_repo import CacheRepository


@pytest.fixture
def cache(in_memory_db, clock) -> ApiCache:
    return ApiCache(CacheRepository(in_memory_db), clock=clock)


class TestApiCache:
    def test_miss_returns_none(self, cache):
        assert cache.get("wcl:zone:38") is None

    def test_put_then_get_within_ttl(self, cache, clock):
        cache.put("wcl:zone:38", {"id": 38, "name": "Nerub-ar Palace"}, ttl_seconds=60)
        clock.advance(seconds=60)
        assert cache.get("wcl:zone:38") == {"id": 38, "name": "Nerub-ar Palace"}

    def test_expired_entry_reads_as_miss_but_stays_stored(self, cache, clock, in_memory_db):
        cache.put("rio:raids:10", [{"slug": "nerubar-palace"}], ttl_seconds=60)
        clock.advance(seconds=61)
        assert cache.get("rio:raids:10") is None
        assert CacheRepository(in_memory_db).count() == 1

    def test_put_overwrites(self, cache):
        cache.put("k", {"v": 1}, ttl_seconds=60)
        cache.put("k", {"v": 2}, ttl_seconds=60)
        assert cache.get("k") == {"v": 2}

    def test_zero_ttl_is_fresh_at_write_instant(self, cache, clock):
        cache.put("k", [1, 2, 3], ttl_seconds=0)
        assert cache.get("k") == [1, 2, 3]
        clock.advance(seconds=1)
        assert cache.get("k") is None

    def test_negative_ttl_rejected(self, cache):
        with pytest.raises(ValueError):
            cache.put("k", {}, ttl_seconds=-1)

    def test_invalidate(self, cache):
        cache.put("k", {}, ttl_seconds=60)
        assert cache.invalidate("k") is True
        assert cache.invalidate("k") is False
        assert cache.get("k") is None


class TestGetOrFetch:
    def test_fetches_once_then_serves_cached(self, cache):
        calls = []

        async def fetch():
            calls.append(1)
            return {"fetched": len(calls)}

        first = asyncio.run(cache.get_or_fetch("k", fetch, ttl_seconds=60))
        second = asyncio.run(cache.get_or_fetch("k", fetch, ttl_seconds=60))
        assert first == second == {"fetched": 1}
        assert len(calls) == 1

    def test_force_refetches_and_rewrites(self, cache):
        counter = iter(range(1, 10))

        async def fetch():
            return {"n": next(counter)}

        asyncio.run(cache.get_or_fetch("k", fetch, ttl_seconds=60))
        forced = asyncio.run(cache.get_or_fetch("k", fetch, ttl_seconds=60, force=True))
        assert forced == {"n": 2}
        assert cache.get("k") == {"n": 2}

    def test_none_result_not_cached(self, cache, in_memory_db):
        async def fetch():
            return None

        assert asyncio.run(cache.get_or_fetch("missing", fetch, ttl_seconds=60)) is None
        assert CacheRepository(in_memory_db).count() == 0

    def test_fetch_error_propagates(self, cache):
        async def fetch():
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError):
            asyncio.run(cache.get_or_fetch("k", fetch, ttl_seconds=60))
