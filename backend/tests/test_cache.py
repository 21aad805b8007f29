"""Tests for the Redis search cache gateway and its circuit."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from inventory_search.config import get_settings
from inventory_search.search.cache import CacheCircuit, CacheState, SearchCache, get_search_cache
from inventory_search.search.schemas import Pagination, SearchMetadata, SearchResponse, SearchStrategy
from tests.conftest import make_mock_redis


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _response() -> SearchResponse:
    return SearchResponse(
        data=[],
        pagination=Pagination(page=1, page_size=50, total=0, total_pages=0, has_next=False, has_prev=False),
        search_metadata=SearchMetadata(
            query="test",
            search_type=SearchStrategy.hybrid,
            total_matches=0,
            execution_time_ms=1.5,
        ),
    )


KEY = "search:" + "0" * 64


# ---------------------------------------------------------------------------
# CacheCircuit
# ---------------------------------------------------------------------------


class TestCacheCircuit:
    def test_starts_enabled(self):
        circuit = CacheCircuit(30.0)
        assert circuit.state is CacheState.enabled
        assert circuit.allow() is True
        assert circuit.disabled_until is None

    def test_failure_disables_until_cooldown(self):
        clock = FakeClock()
        circuit = CacheCircuit(30.0, clock=clock)
        circuit.record_failure()
        assert circuit.state is CacheState.disabled
        assert circuit.disabled_until == 1030.0
        assert circuit.allow() is False
        clock.now = 1029.9
        assert circuit.allow() is False

    def test_single_probe_after_cooldown(self):
        clock = FakeClock()
        circuit = CacheCircuit(30.0, clock=clock)
        circuit.record_failure()
        clock.now = 1031.0
        assert circuit.allow() is True
        # Everyone else waits for the probe to resolve
        assert circuit.allow() is False
        assert circuit.allow() is False

    def test_successful_probe_reenables(self):
        clock = FakeClock()
        circuit = CacheCircuit(30.0, clock=clock)
        circuit.record_failure()
        clock.now = 1031.0
        assert circuit.allow() is True
        circuit.record_success()
        assert circuit.state is CacheState.enabled
        assert circuit.allow() is True
        assert circuit.allow() is True

    def test_failed_probe_restarts_cooldown(self):
        clock = FakeClock()
        circuit = CacheCircuit(30.0, clock=clock)
        circuit.record_failure()
        clock.now = 1031.0
        assert circuit.allow() is True
        circuit.record_failure()
        assert circuit.disabled_until == 1061.0
        assert circuit.allow() is False

    def test_released_claim_lets_next_caller_through(self):
        clock = FakeClock()
        circuit = CacheCircuit(30.0, clock=clock)
        circuit.record_failure()
        clock.now = 1031.0
        assert circuit.allow() is True
        circuit.release_probe()
        assert circuit.state is CacheState.disabled
        assert circuit.allow() is True


# ---------------------------------------------------------------------------
# SearchCache
# ---------------------------------------------------------------------------


class TestSearchCacheGet:
    @pytest.mark.asyncio
    async def test_miss_returns_none(self, search_cache):
        assert await search_cache.get(KEY) is None

    @pytest.mark.asyncio
    async def test_set_then_get_returns_same_response(self, search_cache, mock_redis):
        response = _response()
        await search_cache.set(KEY, response)
        mock_redis.setex.assert_awaited_once_with(KEY, 300, response.to_json())
        assert await search_cache.get(KEY) == response

    @pytest.mark.asyncio
    async def test_backend_error_is_a_miss_and_disables(self, mock_redis):
        mock_redis.get = AsyncMock(side_effect=RedisConnectionError("Redis connection failed"))
        cache = SearchCache(mock_redis, cooldown_seconds=30.0)

        assert await cache.get(KEY) is None
        assert cache.available is False

        # Disabled: no further round-trips
        assert await cache.get(KEY) is None
        assert mock_redis.get.await_count == 1

    @pytest.mark.asyncio
    async def test_os_error_is_a_miss(self, mock_redis):
        mock_redis.get = AsyncMock(side_effect=OSError("connection reset"))
        cache = SearchCache(mock_redis)
        assert await cache.get(KEY) is None
        assert cache.available is False

    @pytest.mark.asyncio
    async def test_unreadable_payload_is_a_miss(self):
        redis = make_mock_redis({KEY: "{not json"})
        cache = SearchCache(redis)
        assert await cache.get(KEY) is None
        assert cache.available is False

    @pytest.mark.asyncio
    async def test_recovers_after_cooldown(self, mock_redis):
        clock = FakeClock()
        cache = SearchCache(mock_redis, circuit=CacheCircuit(30.0, clock=clock))
        mock_redis.get = AsyncMock(side_effect=[RedisTimeoutError("timeout"), None])

        assert await cache.get(KEY) is None
        assert cache.available is False

        clock.now += 31
        assert await cache.get(KEY) is None
        assert cache.available is True
        assert mock_redis.get.await_count == 2

    @pytest.mark.asyncio
    async def test_cancelled_read_does_not_keep_cache_disabled(self, mock_redis):
        clock = FakeClock()
        cache = SearchCache(mock_redis, circuit=CacheCircuit(30.0, clock=clock))
        cache.circuit.record_failure()
        clock.now += 31

        async def hang(*args, **kwargs):
            await asyncio.Event().wait()

        mock_redis.get = hang
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(cache.get(KEY), 0.05)
        assert cache.available is False

        clock.now += 10_000
        assert cache.circuit.allow() is True

    @pytest.mark.asyncio
    async def test_cancelled_write_releases_claim(self, mock_redis):
        clock = FakeClock()
        cache = SearchCache(mock_redis, circuit=CacheCircuit(30.0, clock=clock))
        cache.circuit.record_failure()
        clock.now += 31

        async def hang(*args, **kwargs):
            await asyncio.Event().wait()

        mock_redis.setex = hang
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(cache.set(KEY, _response()), 0.05)
        assert cache.circuit.allow() is True


class TestSearchCacheWrites:
    @pytest.mark.asyncio
    async def test_set_failure_is_swallowed(self, mock_redis):
        mock_redis.setex = AsyncMock(side_effect=RedisConnectionError("down"))
        cache = SearchCache(mock_redis)
        await cache.set(KEY, _response())
        assert cache.available is False

    @pytest.mark.asyncio
    async def test_writes_skipped_while_disabled(self, mock_redis):
        cache = SearchCache(mock_redis)
        cache.circuit.record_failure()
        await cache.set(KEY, _response())
        await cache.set_analytics("search_analytics:x", "{}")
        mock_redis.setex.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_analytics_written_with_day_ttl(self, search_cache, mock_redis):
        await search_cache.set_analytics("search_analytics:abc", '{"query": "x"}')
        mock_redis.setex.assert_awaited_once_with("search_analytics:abc", 86400, '{"query": "x"}')


class TestSearchCacheEnumeration:
    @pytest.mark.asyncio
    async def test_scan_keys_filters_by_prefix(self):
        redis = make_mock_redis({"search_analytics:1": "a", "search_analytics:2": "b", KEY: "c"})
        cache = SearchCache(redis)
        assert sorted(await cache.scan_keys("search_analytics:")) == ["search_analytics:1", "search_analytics:2"]

    @pytest.mark.asyncio
    async def test_get_many_preserves_order_and_gaps(self):
        redis = make_mock_redis({"k1": "a", "k3": "c"})
        cache = SearchCache(redis)
        assert await cache.get_many(["k1", "k2", "k3"]) == ["a", None, "c"]

    @pytest.mark.asyncio
    async def test_get_many_failure_returns_nones(self, mock_redis):
        mock_redis.mget = AsyncMock(side_effect=RedisConnectionError("down"))
        cache = SearchCache(mock_redis)
        assert await cache.get_many(["k1", "k2"]) == [None, None]

    @pytest.mark.asyncio
    async def test_get_many_empty(self, search_cache, mock_redis):
        assert await search_cache.get_many([]) == []
        mock_redis.mget.assert_not_awaited()


class TestProbe:
    @pytest.mark.asyncio
    async def test_probe_success(self, search_cache):
        assert await search_cache.probe() is True
        assert search_cache.available is True

    @pytest.mark.asyncio
    async def test_probe_failure_disables(self, mock_redis):
        mock_redis.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        cache = SearchCache(mock_redis)
        assert await cache.probe() is False
        assert cache.available is False


class TestGetSearchCache:
    def test_client_has_command_timeout(self):
        get_search_cache.cache_clear()
        try:
            cache = get_search_cache()
            kwargs = cache._client.connection_pool.connection_kwargs
            assert kwargs["socket_timeout"] == get_settings().REDIS_SOCKET_TIMEOUT_SECONDS
            assert kwargs["socket_timeout"] is not None
            assert kwargs["socket_connect_timeout"] == get_settings().REDIS_CONNECT_TIMEOUT_SECONDS
        finally:
            get_search_cache.cache_clear()
