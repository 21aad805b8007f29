"""Request validation and normalization.

Runs before any cache or database call. User text is never interpolated
into SQL (it always travels as a bound parameter), so this module does not
escape anything: it enforces length and charset limits and rejects
statement-like fragments that have no place in an equipment search.
"""

from __future__ import annotations

import re
import unicodedata
from typing import NamedTuple

from inventory_search.search.errors import (
    EmptyQueryError,
    InvalidFieldError,
    InvalidMaxResultsError,
    InvalidPageError,
    InvalidPageSizeError,
    InvalidQueryError,
    InvalidSortError,
    QueryTooLongError,
)
from inventory_search.search.schemas import SearchRequest

MAX_QUERY_LENGTH = 100
MAX_PAGE = 1000
MAX_PAGE_SIZE = 100
MAX_RESULTS_LIMIT = 10000

SEARCHABLE_FIELDS: tuple[str, ...] = (
    "description",
    "make",
    "model",
    "tag_id",
    "site_name",
    "cell_name",
    "equipment_name",
    "equipment_type",
    "ip_address",
    "firmware_version",
)

SORTABLE_FIELDS: tuple[str, ...] = (
    "relevance",
    "tag_id",
    "make",
    "model",
    "site_name",
    "cell_name",
    "equipment_name",
    "equipment_type",
)

SORT_ORDERS = ("ASC", "DESC")

# Statement terminators, comment openers, and escape characters
_FORBIDDEN_RE = re.compile(r";|\\|--|/\*|\*/")
_WORD_RE = re.compile(r"\w")


class NormalizedRequest(NamedTuple):
    """A validated request, ready for classification and cache-key derivation.

    Attributes:
        query: Trimmed query, original casing (used for display and matching).
        cache_query: Trimmed, lower-cased query (used for the cache key only).
        page: 1-based page number.
        page_size: Rows per page.
        fields: Sorted, de-duplicated field names; empty means all fields.
        sort_by: Sort key; ``"relevance"`` when not given.
        sort_order: ``"ASC"`` or ``"DESC"``.
        include_highlights: Whether to generate highlight fragments.
        max_results: Row budget considered before pagination.
    """

    query: str
    cache_query: str
    page: int
    page_size: int
    fields: tuple[str, ...]
    sort_by: str
    sort_order: str
    include_highlights: bool
    max_results: int


def _check_query(raw: str | None) -> str:
    query = (raw or "").strip()
    if not query:
        raise EmptyQueryError()
    if len(query) > MAX_QUERY_LENGTH:
        raise QueryTooLongError(MAX_QUERY_LENGTH)
    if any(unicodedata.category(ch) == "Cc" for ch in query):
        raise InvalidQueryError("Search query contains control characters")
    if _FORBIDDEN_RE.search(query):
        raise InvalidQueryError("Search query contains forbidden characters (; \\ -- /* */)")
    if not _WORD_RE.search(query):
        raise InvalidQueryError("Search query must contain at least one letter or digit")
    return query


def _check_range(value: int, low: int, high: int, error: type, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise error(f"{label} must be an integer")
    if value < low:
        raise error(f"{label} must be at least {low}")
    if value > high:
        raise error(f"{label} cannot exceed {high}")
    return value


def validate_request(request: SearchRequest) -> NormalizedRequest:
    """Validate a search request and return its normalized form.

    Raises:
        EmptyQueryError: Query is empty or whitespace-only.
        QueryTooLongError: Query exceeds 100 characters after trimming.
        InvalidQueryError: Query contains control characters, statement
            fragments, or nothing searchable.
        InvalidPageError: ``page`` outside 1..1000.
        InvalidPageSizeError: ``page_size`` outside 1..100. Never clamped.
        InvalidMaxResultsError: ``max_results`` outside 1..10000.
        InvalidSortError: Unknown ``sort_by`` or ``sort_order``.
        InvalidFieldError: Unknown entry in ``fields``.
    """
    query = _check_query(request.query)
    page = _check_range(request.page, 1, MAX_PAGE, InvalidPageError, "Page")
    page_size = _check_range(request.page_size, 1, MAX_PAGE_SIZE, InvalidPageSizeError, "Page size")
    max_results = _check_range(request.max_results, 1, MAX_RESULTS_LIMIT, InvalidMaxResultsError, "Max results")

    sort_by = request.sort_by or "relevance"
    if sort_by not in SORTABLE_FIELDS:
        raise InvalidSortError(f"Sort field must be one of: {', '.join(SORTABLE_FIELDS)}")

    sort_order = (request.sort_order or "DESC").upper()
    if sort_order not in SORT_ORDERS:
        raise InvalidSortError("Sort order must be either ASC or DESC", field="sortOrder")

    unknown = [f for f in request.fields if f not in SEARCHABLE_FIELDS]
    if unknown:
        raise InvalidFieldError(
            f"Invalid search field: {unknown[0]}. Valid fields are: {', '.join(SEARCHABLE_FIELDS)}"
        )

    return NormalizedRequest(
        query=query,
        cache_query=query.lower(),
        page=page,
        page_size=page_size,
        fields=tuple(sorted(set(request.fields))),
        sort_by=sort_by,
        sort_order=sort_order,
        include_highlights=bool(request.include_highlights),
        max_results=max_results,
    )
