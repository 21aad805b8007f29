"""Runs built search statements and merges hybrid result sets."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inventory_search.search.errors import SearchExecutionError
from inventory_search.search.highlight import sanitize_highlight_fields
from inventory_search.search.query_builder import BuiltQuery
from inventory_search.search.schemas import SearchResultRow, SearchStrategy

logger = logging.getLogger(__name__)

_STRING_COLUMNS = (
    "plc_id",
    "tag_id",
    "plc_description",
    "make",
    "model",
    "equipment_id",
    "equipment_name",
    "equipment_type",
    "cell_id",
    "cell_name",
    "site_id",
    "site_name",
    "hierarchy_path",
)
_NULLABLE_COLUMNS = ("ip_address", "firmware_version", "tags_text")


def _row_to_result(row: Mapping[str, Any]) -> SearchResultRow:
    values: dict[str, Any] = {}
    for column in _STRING_COLUMNS:
        value = row.get(column)
        values[column] = "" if value is None else str(value)
    for column in _NULLABLE_COLUMNS:
        value = row.get(column)
        values[column] = None if value is None else str(value)

    line_number = row.get("line_number")
    values["line_number"] = "0" if line_number is None else str(line_number)

    score = row.get("relevance_score")
    values["relevance_score"] = float(score) if score is not None else 0.0
    values["highlighted_fields"] = sanitize_highlight_fields(row.get("highlighted_fields"))
    return SearchResultRow(**values)


def _merge_order(row: SearchResultRow) -> tuple:
    return (
        -row.relevance_score,
        row.site_name,
        row.cell_name,
        row.equipment_name,
        row.tag_id,
        row.plc_id,
    )


def merge_hybrid(
    fulltext_rows: list[SearchResultRow],
    similarity_rows: list[SearchResultRow],
    max_results: int,
) -> list[SearchResultRow]:
    """Merge full-text and similarity rows into one ranked list.

    Rows are keyed by ``plc_id``. The higher ``relevance_score`` wins and an
    exact tie goes to the full-text row. A winner without highlights
    inherits the full-text row's highlights. The result is ordered by score
    descending, then site, cell, equipment, tag and ``plc_id``, and cut to
    ``max_results``.
    """
    merged: dict[str, SearchResultRow] = {}
    fulltext_highlights: dict[str, dict[str, str]] = {}

    for row in fulltext_rows:
        current = merged.get(row.plc_id)
        if current is None or row.relevance_score > current.relevance_score:
            merged[row.plc_id] = row
        if row.highlighted_fields and row.plc_id not in fulltext_highlights:
            fulltext_highlights[row.plc_id] = row.highlighted_fields

    for row in similarity_rows:
        current = merged.get(row.plc_id)
        if current is None or row.relevance_score > current.relevance_score:
            merged[row.plc_id] = row

    results = []
    for plc_id, row in merged.items():
        if not row.highlighted_fields and plc_id in fulltext_highlights:
            row = row.model_copy(update={"highlighted_fields": fulltext_highlights[plc_id]})
        results.append(row)

    results.sort(key=_merge_order)
    return results[:max_results]


class QueryExecutor:
    """Executes search statements on one session.

    Statements run sequentially because an ``AsyncSession`` does not allow
    concurrent operations. Any data-store failure is re-raised as
    :class:`SearchExecutionError` carrying the original message.

    Args:
        session: An async SQLAlchemy session for database queries.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _run(self, query: BuiltQuery) -> list[SearchResultRow]:
        try:
            result = await self._session.execute(text(query.sql), query.params)
            rows = result.mappings().all()
        except (SQLAlchemyError, OSError, TimeoutError) as exc:
            logger.error("Search query failed (%s): %s", query.source.value, exc)
            raise SearchExecutionError(str(exc)) from exc
        return [_row_to_result(row) for row in rows]

    async def execute(
        self,
        strategy: SearchStrategy,
        queries: list[BuiltQuery],
        max_results: int,
    ) -> list[SearchResultRow]:
        """Run the statements for ``strategy`` and return matched rows in rank order."""
        if strategy is SearchStrategy.hybrid:
            fulltext_query, similarity_query = queries
            fulltext_rows = await self._run(fulltext_query)
            similarity_rows = await self._run(similarity_query)
            logger.debug(
                "Hybrid search: %d full-text rows, %d similarity rows",
                len(fulltext_rows),
                len(similarity_rows),
            )
            return merge_hybrid(fulltext_rows, similarity_rows, max_results)

        (query,) = queries
        rows = await self._run(query)
        return rows[:max_results]
