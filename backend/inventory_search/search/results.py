"""Sorting, pagination, and response assembly."""

from __future__ import annotations

import math

from inventory_search.search.schemas import (
    Pagination,
    SearchMetadata,
    SearchResponse,
    SearchResultRow,
    SearchStrategy,
)


def sort_rows(rows: list[SearchResultRow], sort_by: str, sort_order: str) -> list[SearchResultRow]:
    """Stable sort over the whole matched set (before pagination).

    ``relevance`` orders by score and keeps the store's order among equal
    scores. Field sorts compare case-insensitively; ties fall back to score
    descending, then ``plc_id``.
    """
    descending = sort_order == "DESC"
    if sort_by == "relevance":
        return sorted(rows, key=lambda r: r.relevance_score, reverse=descending)

    tiebroken = sorted(rows, key=lambda r: (-r.relevance_score, r.plc_id))
    return sorted(
        tiebroken,
        key=lambda r: str(getattr(r, sort_by) or "").casefold(),
        reverse=descending,
    )


def paginate(rows: list[SearchResultRow], page: int, page_size: int) -> tuple[list[SearchResultRow], Pagination]:
    total = len(rows)
    total_pages = math.ceil(total / page_size)
    start = (page - 1) * page_size
    pagination = Pagination(
        page=page,
        page_size=page_size,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )
    return rows[start : start + page_size], pagination


def build_response(
    rows: list[SearchResultRow],
    *,
    query: str,
    strategy: SearchStrategy,
    page: int,
    page_size: int,
    execution_time_ms: float,
) -> SearchResponse:
    """Paginate ``rows`` (already sorted and capped) into a response envelope."""
    page_rows, pagination = paginate(rows, page, page_size)
    return SearchResponse(
        data=page_rows,
        pagination=pagination,
        search_metadata=SearchMetadata(
            query=query,
            search_type=strategy,
            total_matches=len(rows),
            execution_time_ms=round(execution_time_ms, 3),
        ),
    )
