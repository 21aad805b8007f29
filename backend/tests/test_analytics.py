"""Tests for search analytics recording and retrieval."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from inventory_search.search.analytics import SearchAnalyticsRecorder, summarize_metrics
from inventory_search.search.cache import SearchCache
from inventory_search.search.schemas import AnalyticsEntry, PerformanceMetrics
from tests.conftest import make_mock_redis


def _entry(minutes_ago: float = 5, **overrides) -> AnalyticsEntry:
    values = {
        "query": "Siemens S7",
        "result_count": 3,
        "execution_time": 12.5,
        "timestamp": datetime.now(UTC) - timedelta(minutes=minutes_ago),
        "search_type": "hybrid",
    }
    values.update(overrides)
    return AnalyticsEntry(**values)


def _stored(entry: AnalyticsEntry) -> str:
    return entry.model_dump_json(by_alias=True, exclude_none=True)


class TestRecord:
    @pytest.mark.asyncio
    async def test_record_writes_camel_case_entry_with_day_ttl(self):
        redis = make_mock_redis()
        recorder = SearchAnalyticsRecorder(SearchCache(redis))
        entry = _entry(
            cache_hit=True,
            performance_metrics=PerformanceMetrics(cache_check_time=1.0, total_time=2.0),
        )

        key = await recorder.record(entry)

        assert key.startswith("search_analytics:")
        redis.setex.assert_awaited_once()
        stored_key, ttl, payload = redis.setex.await_args.args
        assert stored_key == key
        assert ttl == 86400
        data = json.loads(payload)
        assert data["query"] == "Siemens S7"
        assert data["resultCount"] == 3
        assert data["executionTime"] == 12.5
        assert data["cacheHit"] is True
        assert data["performanceMetrics"]["cacheCheckTime"] == 1.0
        assert "timestamp" in data

    @pytest.mark.asyncio
    async def test_each_record_gets_its_own_key(self):
        recorder = SearchAnalyticsRecorder(SearchCache(make_mock_redis()))
        assert await recorder.record(_entry()) != await recorder.record(_entry())


class TestGetSearchMetrics:
    @pytest.mark.asyncio
    async def test_returns_entries_with_parsed_timestamps(self):
        entries = {f"search_analytics:{i}": _stored(_entry(minutes_ago=i)) for i in range(25)}
        redis = make_mock_redis(entries)
        recorder = SearchAnalyticsRecorder(SearchCache(redis))

        metrics = await recorder.get_search_metrics("24h")

        assert len(metrics) == 25
        assert all(isinstance(m.timestamp, datetime) for m in metrics)
        assert all(m.timestamp.tzinfo is not None for m in metrics)
        # 25 keys fetched in batches of 10
        assert redis.mget.await_count == 3
        assert [len(call.args[0]) for call in redis.mget.await_args_list] == [10, 10, 5]

    @pytest.mark.asyncio
    async def test_time_range_filters_old_entries(self):
        redis = make_mock_redis(
            {
                "search_analytics:recent": _stored(_entry(minutes_ago=10)),
                "search_analytics:old": _stored(_entry(minutes_ago=180)),
            }
        )
        recorder = SearchAnalyticsRecorder(SearchCache(redis))
        assert len(await recorder.get_search_metrics("1h")) == 1
        assert len(await recorder.get_search_metrics("24h")) == 2

    @pytest.mark.asyncio
    async def test_unparseable_entries_are_skipped(self, caplog):
        redis = make_mock_redis(
            {
                "search_analytics:good": _stored(_entry()),
                "search_analytics:garbage": "{not json",
                "search_analytics:bad_ts": json.dumps(
                    {"query": "x", "resultCount": 1, "executionTime": 1.0, "timestamp": "not-a-date"}
                ),
            }
        )
        recorder = SearchAnalyticsRecorder(SearchCache(redis))

        with caplog.at_level("WARNING"):
            metrics = await recorder.get_search_metrics()

        assert [m.query for m in metrics] == ["Siemens S7"]
        assert "search_analytics:garbage" in caplog.text
        assert "search_analytics:bad_ts" in caplog.text

    @pytest.mark.asyncio
    async def test_cache_unavailable_returns_empty(self):
        redis = make_mock_redis({"search_analytics:1": _stored(_entry())})
        cache = SearchCache(redis)
        cache.circuit.record_failure()
        assert await SearchAnalyticsRecorder(cache).get_search_metrics() == []

    @pytest.mark.asyncio
    async def test_mget_failure_returns_empty(self):
        redis = make_mock_redis({"search_analytics:1": _stored(_entry())})
        redis.mget = AsyncMock(side_effect=RedisConnectionError("down"))
        assert await SearchAnalyticsRecorder(SearchCache(redis)).get_search_metrics() == []

    @pytest.mark.asyncio
    async def test_unknown_time_range_rejected(self):
        recorder = SearchAnalyticsRecorder(SearchCache(make_mock_redis()))
        with pytest.raises(ValueError):
            await recorder.get_search_metrics("1y")


class TestSummarizeMetrics:
    def test_empty(self):
        assert summarize_metrics([], "24h") == {
            "timeRange": "24h",
            "totalSearches": 0,
            "averageExecutionTime": 0,
            "averageResultCount": 0,
            "cacheHitRate": 0,
            "searchTypes": {},
        }

    def test_aggregates(self):
        entries = [
            _entry(execution_time=10.0, result_count=2, search_type="hybrid", cache_hit=True),
            _entry(execution_time=30.0, result_count=4, search_type="hybrid"),
            _entry(execution_time=20.0, result_count=0, search_type="similarity"),
            _entry(execution_time=40.0, result_count=6, search_type=None),
        ]
        summary = summarize_metrics(entries, "7d")
        assert summary["totalSearches"] == 4
        assert summary["averageExecutionTime"] == 25.0
        assert summary["averageResultCount"] == 3.0
        assert summary["cacheHitRate"] == 0.25
        assert summary["searchTypes"] == {"hybrid": 2, "similarity": 1, "unknown": 1}
