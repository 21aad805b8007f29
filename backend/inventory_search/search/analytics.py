"""Search analytics: fire-and-forget recording and time-windowed retrieval.

Entries live in the cache store under ``search_analytics:<id>`` with a 24h
TTL, so retrieval only ever sees the last day of searches regardless of
the requested window.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from inventory_search.search.cache import SearchCache
from inventory_search.search.cache_keys import ANALYTICS_PREFIX
from inventory_search.search.schemas import AnalyticsEntry

logger = logging.getLogger(__name__)

TIME_RANGES: dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

MGET_BATCH_SIZE = 10


def _window_start(time_range: str, now: datetime | None = None) -> datetime:
    try:
        window = TIME_RANGES[time_range]
    except KeyError:
        raise ValueError(f"Unknown time range {time_range!r}; expected one of {', '.join(TIME_RANGES)}") from None
    return (now or datetime.now(UTC)) - window


def _as_utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=UTC) if ts.tzinfo is None else ts


class SearchAnalyticsRecorder:
    """Writes and reads analytics entries through the search cache."""

    def __init__(self, cache: SearchCache) -> None:
        self._cache = cache

    async def record(self, entry: AnalyticsEntry) -> str:
        """Store one entry under a fresh key and return the key."""
        key = f"{ANALYTICS_PREFIX}{uuid.uuid4().hex}"
        await self._cache.set_analytics(key, entry.model_dump_json(by_alias=True, exclude_none=True))
        return key

    async def get_search_metrics(self, time_range: str = "24h") -> list[AnalyticsEntry]:
        """Return stored entries whose timestamp falls inside ``time_range``.

        Unreadable entries and entries with invalid timestamps are skipped
        with a warning. Returns ``[]`` while the cache is unavailable.
        """
        since = _window_start(time_range)
        keys = await self._cache.scan_keys(ANALYTICS_PREFIX)
        entries: list[AnalyticsEntry] = []

        for i in range(0, len(keys), MGET_BATCH_SIZE):
            batch = keys[i : i + MGET_BATCH_SIZE]
            values = await self._cache.get_many(batch)
            for key, raw in zip(batch, values):
                if not raw:
                    continue
                try:
                    entry = AnalyticsEntry.model_validate_json(raw)
                except (ValidationError, ValueError) as exc:
                    logger.warning("Skipping unreadable search analytics entry %s: %s", key, exc)
                    continue
                entry.timestamp = _as_utc(entry.timestamp)
                if entry.timestamp >= since:
                    entries.append(entry)

        entries.sort(key=lambda e: e.timestamp)
        return entries


def summarize_metrics(entries: list[AnalyticsEntry], time_range: str) -> dict[str, Any]:
    """Aggregate entries into the metrics summary served by the API."""
    total = len(entries)
    search_types = Counter(entry.search_type or "unknown" for entry in entries)
    return {
        "timeRange": time_range,
        "totalSearches": total,
        "averageExecutionTime": sum(e.execution_time for e in entries) / total if total else 0,
        "averageResultCount": sum(e.result_count for e in entries) / total if total else 0,
        "cacheHitRate": sum(1 for e in entries if e.cache_hit) / total if total else 0,
        "searchTypes": dict(search_types),
    }
