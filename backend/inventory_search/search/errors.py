"""Exceptions raised by the search service.

Validation errors are raised before any database or cache call.
Execution errors wrap data-store failures and always reach the caller.
Cache errors never leave the cache gateway.
"""

from __future__ import annotations


class SearchError(Exception):
    """Base class for all search service errors."""


class SearchValidationError(SearchError):
    """The search request was rejected before any I/O took place."""

    field: str = "q"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if field is not None:
            self.field = field


class EmptyQueryError(SearchValidationError):
    def __init__(self) -> None:
        super().__init__("Search query must be at least 1 character long")


class QueryTooLongError(SearchValidationError):
    def __init__(self, max_length: int) -> None:
        super().__init__(f"Search query cannot exceed {max_length} characters")


class InvalidQueryError(SearchValidationError):
    """Query contains characters outside the accepted charset."""


class InvalidPageError(SearchValidationError):
    field = "page"


class InvalidPageSizeError(SearchValidationError):
    field = "pageSize"


class InvalidMaxResultsError(SearchValidationError):
    field = "maxResults"


class InvalidSortError(SearchValidationError):
    field = "sortBy"


class InvalidFieldError(SearchValidationError):
    field = "fields"


class SearchExecutionError(SearchError):
    """The relational store failed while executing a search query."""


class CacheError(SearchError):
    """The cache backend failed or returned an unreadable payload."""
