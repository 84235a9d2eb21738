"""
Tests for ResponseCache TTL, eviction and category clearing.
"""

from datetime import timedelta

import pytest

from swapclient.services.cache import ResponseCache


@pytest.fixture
def cache(clock):
    return ResponseCache(max_size=3, clock=clock)


class TestResponseCacheTTL:
    @pytest.mark.asyncio
    async def test_served_before_expiry(self, cache, clock):
        await cache.save_to_cache("k", {"v": 1}, ttl=timedelta(minutes=15))
        clock.advance(15 * 60 - 1)

        entry = await cache.get_from_cache("k")
        assert entry is not None
        assert entry.data == {"v": 1}

    @pytest.mark.asyncio
    async def test_miss_at_expiry(self, cache, clock):
        await cache.save_to_cache("k", {"v": 1}, ttl=timedelta(minutes=15))
        clock.advance(15 * 60)

        assert await cache.get_from_cache("k") is None
        assert cache.get_stats().expirations == 1

    @pytest.mark.asyncio
    async def test_default_ttl(self, clock):
        cache = ResponseCache(default_ttl=timedelta(seconds=10), clock=clock)
        entry = await cache.save_to_cache("k", "v")
        assert entry.expires_at == clock.now + 10

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, cache, clock):
        await cache.save_to_cache("short", 1, ttl=timedelta(seconds=1))
        await cache.save_to_cache("long", 2, ttl=timedelta(hours=1))
        clock.advance(5)

        assert await cache.cleanup_expired() == 1
        assert await cache.get_from_cache("long") is not None


class TestResponseCacheMaintenance:
    @pytest.mark.asyncio
    async def test_evicts_oldest_when_full(self, cache, clock):
        for key in ("a", "b", "c"):
            await cache.save_to_cache(key, key)
            clock.advance(1)

        await cache.save_to_cache("d", "d")

        assert await cache.get_from_cache("a") is None
        assert await cache.get_from_cache("d") is not None
        assert cache.get_stats().evictions == 1

    @pytest.mark.asyncio
    async def test_clear_cache_category(self, cache):
        await cache.save_to_cache("api:GET-/accounts/1/balance-{}", 1)
        await cache.save_to_cache("api:GET-/accounts/2/balance-{}", 2)
        await cache.save_to_cache("api:GET-/auth/me-{}", 3)

        removed = await cache.clear_cache_category("api:GET-/accounts")

        assert removed == 2
        assert await cache.get_from_cache("api:GET-/auth/me-{}") is not None

    @pytest.mark.asyncio
    async def test_clear_and_delete(self, cache):
        await cache.save_to_cache("a", 1)
        await cache.save_to_cache("b", 2)

        assert await cache.delete("a") is True
        assert await cache.delete("a") is False

        await cache.clear_cache()
        assert await cache.get_from_cache("b") is None

    @pytest.mark.asyncio
    async def test_stats(self, cache):
        await cache.save_to_cache("a", 1)
        await cache.get_from_cache("a")
        await cache.get_from_cache("missing")

        stats = cache.get_stats().to_dict()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == "50.00%"
