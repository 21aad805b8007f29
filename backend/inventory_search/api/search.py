"""Equipment search API.

Provides:
- ``GET /search/equipment`` -- Search PLCs across the site/cell/equipment hierarchy.
- ``GET /search/suggestions`` -- Search suggestions (autocomplete).
- ``POST /search/refresh`` -- Rebuild the search materialized view.
- ``GET /search/metrics`` -- Aggregated search analytics.
- ``GET /search/health`` -- End-to-end search health probe.

The strategy (similarity, hybrid, or full-text) is picked from the shape of
the query; callers cannot choose it.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inventory_search.database import get_db
from inventory_search.search.analytics import summarize_metrics
from inventory_search.search.cache import get_search_cache
from inventory_search.search.errors import SearchError, SearchExecutionError, SearchValidationError
from inventory_search.search.schemas import SearchRequest, SearchResponse
from inventory_search.search.service import SearchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])


class SuggestionResponse(BaseModel):
    """Search suggestion (autocomplete) response."""

    query: str
    suggestions: list[str]
    count: int


# ---------------------------------------------------------------------------
# Service factory (extracted for easy mocking in tests)
# ---------------------------------------------------------------------------


def _build_search_service(session: AsyncSession) -> SearchService:
    """Create a SearchService bound to ``session`` and the shared cache.

    Extracted as a function to allow easy mocking in tests.
    """
    return SearchService(session=session, cache=get_search_cache())


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _split_fields(fields: list[str] | None) -> tuple[str, ...]:
    """Accept both ``fields=a&fields=b`` and ``fields=a,b``."""
    if not fields:
        return ()
    return tuple(part.strip() for value in fields for part in value.split(",") if part.strip())


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/equipment",
    response_model=SearchResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def search_equipment(
    q: str = Query(..., description="Search query"),  # noqa: B008
    page: int = Query(1, description="Page number (1-1000)"),  # noqa: B008
    page_size: int = Query(50, alias="pageSize", description="Rows per page (1-100)"),  # noqa: B008
    fields: list[str] | None = Query(None, description="Restrict matching to these fields"),  # noqa: B008
    sort_by: str | None = Query(None, alias="sortBy", description="Sort field (default: relevance)"),  # noqa: B008
    sort_order: str = Query("DESC", alias="sortOrder", description="ASC or DESC"),  # noqa: B008
    include_highlights: bool = Query(False, alias="includeHighlights"),  # noqa: B008
    max_results: int = Query(1000, alias="maxResults", description="Rows considered before pagination"),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> SearchResponse:
    """Search PLCs by description, make/model, tag, or location.

    Validation failures return 422 with the validator's message; database
    failures return 500. Cache failures never affect the response.
    """
    logger.info(
        "Search request: query=%r, page=%d, pageSize=%d, fields=%s, sortBy=%s, sortOrder=%s",
        q,
        page,
        page_size,
        fields,
        sort_by,
        sort_order,
    )
    request = SearchRequest(
        query=q,
        page=page,
        page_size=page_size,
        fields=_split_fields(fields),
        sort_by=sort_by,
        sort_order=sort_order,
        include_highlights=include_highlights,
        max_results=max_results,
    )

    service = _build_search_service(db)
    try:
        return await service.search(request)
    except SearchValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.message) from exc
    except SearchExecutionError as exc:
        raise HTTPException(status_code=500, detail="Failed to perform equipment search") from exc


@router.get("/suggestions", response_model=SuggestionResponse)
async def search_suggestions(
    q: str = Query(..., min_length=1, max_length=50, description="Partial query"),  # noqa: B008
    limit: int = Query(10, ge=1, le=20, description="Maximum suggestions"),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> SuggestionResponse:
    query = q.strip()
    suggestions = await _build_search_service(db).get_search_suggestions(query, limit)
    return SuggestionResponse(query=query, suggestions=suggestions, count=len(suggestions))


@router.post("/refresh")
async def refresh_search_view(
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict[str, str]:
    """Rebuild ``mv_equipment_search`` after bulk catalog changes."""
    logger.info("Search view refresh requested")
    try:
        await _build_search_service(db).refresh_search_view()
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Failed to refresh search view") from exc
    return {"message": "Search view refreshed successfully", "refreshedAt": _now_iso()}


@router.get("/metrics")
async def search_metrics(
    time_range: str = Query("24h", alias="timeRange", pattern="^(1h|24h|7d|30d)$"),  # noqa: B008
    include_details: bool = Query(False, alias="includeDetails"),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    """Summarize recorded searches within ``timeRange``."""
    entries = await _build_search_service(db).get_search_metrics(time_range)
    metrics = summarize_metrics(entries, time_range)
    if include_details:
        metrics["details"] = [e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in entries]
    return {"metrics": metrics, "generatedAt": _now_iso()}


@router.get("/health")
async def search_health(
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> JSONResponse:
    """Run a one-row search and report whether it succeeded."""
    start = time.perf_counter()
    try:
        result = await _build_search_service(db).search(SearchRequest(query="test", page_size=1, max_results=1))
    except SearchError as exc:
        logger.error("Search health check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "service": "search",
                "error": str(exc),
                "timestamp": _now_iso(),
            },
        )

    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "service": "search",
            "responseTime": round((time.perf_counter() - start) * 1000, 1),
            "timestamp": _now_iso(),
            "testQuery": {
                "executed": True,
                "resultCount": result.search_metadata.total_matches,
                "executionTime": result.search_metadata.execution_time_ms,
            },
        },
    )
