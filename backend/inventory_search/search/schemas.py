"""Request, result, and analytics models for the equipment search service.

The response envelope serializes with camelCase keys (``pageSize``,
``searchMetadata``) while result rows keep the catalog's snake_case
column names, matching the JSON contract consumed by the web client.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class SearchStrategy(str, Enum):
    """Matching strategy chosen from the shape of the query."""

    similarity = "similarity"
    hybrid = "hybrid"
    fulltext = "fulltext"


class SearchRequest(BaseModel):
    """A single search call. Immutable once constructed.

    Bounds are enforced by :func:`validate_request` rather than by the
    model so that violations surface as typed search errors before any
    I/O, instead of as construction-time validation errors.
    """

    model_config = ConfigDict(frozen=True)

    query: str
    page: int = 1
    page_size: int = 50
    fields: tuple[str, ...] = ()
    sort_by: str | None = None
    sort_order: str = "DESC"
    include_highlights: bool = False
    max_results: int = 1000


class SearchResultRow(BaseModel):
    """One matched PLC with its denormalized hierarchy."""

    plc_id: str
    tag_id: str = ""
    plc_description: str = ""
    make: str = ""
    model: str = ""
    ip_address: str | None = None
    firmware_version: str | None = None
    equipment_id: str = ""
    equipment_name: str = ""
    equipment_type: str = ""
    cell_id: str = ""
    cell_name: str = ""
    line_number: str = "0"
    site_id: str = ""
    site_name: str = ""
    hierarchy_path: str = ""
    relevance_score: float = 0.0
    highlighted_fields: dict[str, str] | None = None
    tags_text: str | None = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Pagination(_CamelModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class SearchMetadata(_CamelModel):
    query: str
    search_type: SearchStrategy
    total_matches: int
    execution_time_ms: float
    suggested_corrections: list[str] | None = None


class SearchResponse(_CamelModel):
    """Paginated search results plus metadata about how they were produced."""

    data: list[SearchResultRow]
    pagination: Pagination
    search_metadata: SearchMetadata

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class PerformanceMetrics(_CamelModel):
    cache_check_time: float = 0.0
    database_query_time: float = 0.0
    processing_time: float = 0.0
    total_time: float = 0.0


class AnalyticsEntry(_CamelModel):
    """Telemetry for one completed search, kept in the cache store for 24h."""

    query: str
    result_count: int
    execution_time: float
    timestamp: datetime
    search_type: str | None = None
    cache_hit: bool = False
    performance_metrics: PerformanceMetrics | None = None
