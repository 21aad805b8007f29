"""Equipment search orchestration.

One :class:`SearchService` is built per request around that request's
``AsyncSession``. The cache gateway (and its circuit) is shared
process-wide.

Flow of :meth:`SearchService.search`::

    validate -> classify -> cache key -> cache get
        hit:  return cached response (no database work)
        miss: build -> execute -> sort -> paginate -> return
    then, in the background: cache set, analytics record
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inventory_search.config import Settings, get_settings
from inventory_search.search.analytics import SearchAnalyticsRecorder
from inventory_search.search.cache import SearchCache
from inventory_search.search.cache_keys import derive_cache_key
from inventory_search.search.executor import QueryExecutor
from inventory_search.search.query_builder import build_queries
from inventory_search.search.results import build_response, sort_rows
from inventory_search.search.schemas import (
    AnalyticsEntry,
    PerformanceMetrics,
    SearchRequest,
    SearchResponse,
    SearchStrategy,
)
from inventory_search.search.strategy import classify_query
from inventory_search.search.tasks import spawn_background
from inventory_search.search.validation import validate_request

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class SearchService:
    """Cached, strategy-dispatched search over the equipment catalog.

    Args:
        session: Database session used for search and refresh statements.
        cache: Shared search cache gateway.
        recorder: Analytics recorder; defaults to one writing through ``cache``.
        settings: Application settings; defaults to :func:`get_settings`.
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: SearchCache,
        recorder: SearchAnalyticsRecorder | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._cache = cache
        self._recorder = recorder or SearchAnalyticsRecorder(cache)
        self._settings = settings or get_settings()

    async def search(self, request: SearchRequest) -> SearchResponse:
        """Run one search.

        A cache hit returns the stored response as-is, so ``searchMetadata.query``
        keeps the casing of the request that populated the entry.

        Raises:
            SearchValidationError: The request was rejected; nothing was
                read from the cache or the database.
            SearchExecutionError: The database failed while matching.
        """
        start = time.perf_counter()
        normalized = validate_request(request)
        strategy = classify_query(normalized.query)
        cache_key = derive_cache_key(normalized)

        cache_start = time.perf_counter()
        cached = await self._cache.get(cache_key)
        cache_check_ms = _elapsed_ms(cache_start)

        if cached is not None:
            total_ms = _elapsed_ms(start)
            logger.info("Search cache hit: %r (%.1fms)", normalized.query, total_ms)
            self._record_analytics(
                query=normalized.query,
                result_count=cached.search_metadata.total_matches,
                strategy=cached.search_metadata.search_type,
                cache_hit=True,
                metrics=PerformanceMetrics(cache_check_time=cache_check_ms, total_time=total_ms),
            )
            return cached

        queries = build_queries(strategy, normalized)
        db_start = time.perf_counter()
        rows = await QueryExecutor(self._session).execute(strategy, queries, normalized.max_results)
        db_ms = _elapsed_ms(db_start)

        processing_start = time.perf_counter()
        rows = sort_rows(rows, normalized.sort_by, normalized.sort_order)
        response = build_response(
            rows,
            query=normalized.query,
            strategy=strategy,
            page=normalized.page,
            page_size=normalized.page_size,
            execution_time_ms=_elapsed_ms(start),
        )
        processing_ms = _elapsed_ms(processing_start)
        total_ms = _elapsed_ms(start)

        spawn_background(self._cache.set(cache_key, response), name="search-cache-set")
        self._record_analytics(
            query=normalized.query,
            result_count=len(rows),
            strategy=strategy,
            cache_hit=False,
            metrics=PerformanceMetrics(
                cache_check_time=cache_check_ms,
                database_query_time=db_ms,
                processing_time=processing_ms,
                total_time=total_ms,
            ),
        )

        log = logger.warning if total_ms > self._settings.SEARCH_SLOW_QUERY_MS else logger.info
        log(
            "Search completed: query=%r type=%s results=%d total=%.1fms (cache=%.1fms db=%.1fms processing=%.1fms)",
            normalized.query,
            strategy.value,
            len(rows),
            total_ms,
            cache_check_ms,
            db_ms,
            processing_ms,
        )
        return response

    def _record_analytics(
        self,
        *,
        query: str,
        result_count: int,
        strategy: SearchStrategy,
        cache_hit: bool,
        metrics: PerformanceMetrics,
    ) -> None:
        entry = AnalyticsEntry(
            query=query,
            result_count=result_count,
            execution_time=metrics.total_time,
            timestamp=datetime.now(UTC),
            search_type=strategy.value,
            cache_hit=cache_hit,
            performance_metrics=metrics,
        )
        spawn_background(self._recorder.record(entry), name="search-analytics")

    async def get_search_suggestions(self, prefix: str, limit: int = 10) -> list[str]:
        """Autocomplete suggestions. No suggestion index exists yet, so always empty."""
        logger.debug("Search suggestions requested: %r (limit=%d)", prefix, limit)
        return []

    async def refresh_search_view(self) -> None:
        """Rebuild ``mv_equipment_search`` concurrently.

        Store errors are logged, the transaction is rolled back, and the
        original exception propagates unchanged.
        """
        start = time.perf_counter()
        timeout_ms = int(self._settings.SEARCH_REFRESH_TIMEOUT_MS)
        try:
            await self._session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
            await self._session.execute(text("SELECT refresh_equipment_search_view()"))
            await self._session.commit()
        except (SQLAlchemyError, OSError, TimeoutError) as exc:
            logger.error("Failed to refresh search materialized view: %s", exc)
            await self._session.rollback()
            raise
        logger.info("Search materialized view refreshed in %.1fms", _elapsed_ms(start))

    async def get_search_metrics(self, time_range: str = "24h") -> list[AnalyticsEntry]:
        """Analytics entries recorded within ``time_range`` (``1h``, ``24h``, ``7d``, ``30d``)."""
        return await self._recorder.get_search_metrics(time_range)
