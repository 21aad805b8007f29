"""Equipment catalog search: validation, strategy dispatch, caching, and analytics."""

from inventory_search.search.errors import (
    CacheError,
    SearchError,
    SearchExecutionError,
    SearchValidationError,
)
from inventory_search.search.schemas import (
    SearchRequest,
    SearchResponse,
    SearchResultRow,
    SearchStrategy,
)
from inventory_search.search.service import SearchService

__all__ = [
    "CacheError",
    "SearchError",
    "SearchExecutionError",
    "SearchRequest",
    "SearchResponse",
    "SearchResultRow",
    "SearchService",
    "SearchStrategy",
    "SearchValidationError",
]
