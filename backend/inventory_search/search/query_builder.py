"""SQL construction for the three search strategies.

Statements are assembled only from constant fragments keyed by validated
field names; the user's query text reaches PostgreSQL exclusively as a
bound parameter (``:tsquery`` or ``:query``).

Full-text: ``ts_rank`` over the weighted ``combined_search_vector`` of
``mv_equipment_search`` with a prefix-matching AND tsquery.
Similarity: ``pg_trgm`` ``similarity()`` across descriptive columns.
Hybrid: both of the above; the executor merges them.
"""

from __future__ import annotations

import re
from typing import Any, NamedTuple

from inventory_search.search.params import get_search_params
from inventory_search.search.schemas import SearchStrategy
from inventory_search.search.validation import NormalizedRequest

SEARCH_VIEW = "mv_equipment_search"
TS_CONFIG = "english"
HIGHLIGHT_START = "<mark>"
HIGHLIGHT_STOP = "</mark>"

# tsquery operators and quoting characters stripped from user tokens
_TSQUERY_SPECIAL_RE = re.compile(r"[&|!():*<>'\\]")
_WORD_RE = re.compile(r"\w")

_RESULT_COLUMNS = """
    mes.plc_id,
    mes.tag_id,
    mes.plc_description,
    mes.make,
    mes.model,
    host(mes.ip_address) AS ip_address,
    mes.firmware_version,
    mes.equipment_id,
    mes.equipment_name,
    mes.equipment_type,
    mes.cell_id,
    mes.cell_name,
    mes.line_number,
    mes.site_id,
    mes.site_name,
    mes.hierarchy_path,
    mes.tags_text"""

_TIEBREAK_ORDER = "mes.site_name, mes.cell_name, mes.equipment_name, mes.tag_id"

# Field name -> SQL text expression over the search view
FIELD_COLUMNS: dict[str, str] = {
    "description": "mes.plc_description",
    "make": "mes.make",
    "model": "mes.model",
    "tag_id": "mes.tag_id",
    "site_name": "mes.site_name",
    "cell_name": "mes.cell_name",
    "equipment_name": "mes.equipment_name",
    "equipment_type": "mes.equipment_type::text",
    "ip_address": "host(mes.ip_address)",
    "firmware_version": "mes.firmware_version",
}

DEFAULT_HIGHLIGHT_FIELDS: tuple[str, ...] = (
    "description",
    "make",
    "model",
    "tag_id",
    "site_name",
    "cell_name",
    "equipment_name",
)

_DEFAULT_SIMILARITY_EXPRESSIONS: tuple[str, ...] = (
    "mes.plc_description",
    "mes.make || ' ' || mes.model",
    "mes.tag_id",
    "mes.site_name || ' ' || mes.cell_name || ' ' || mes.equipment_name",
)


class BuiltQuery(NamedTuple):
    """A parameterized statement ready for ``AsyncSession.execute``.

    Attributes:
        source: Which matcher produced it (``fulltext`` or ``similarity``).
        sql: Statement text with ``:name`` placeholders only.
        params: Bound parameter values.
    """

    source: SearchStrategy
    sql: str
    params: dict[str, Any]


def build_tsquery(query: str) -> str:
    """Build a prefix-matching AND tsquery expression.

    ``"Siemens S7 1200"`` becomes ``"Siemens:* & S7:* & 1200:*"``.
    Characters that are tsquery syntax are removed from each token and
    tokens without a letter or digit are dropped.
    """
    tokens = [_TSQUERY_SPECIAL_RE.sub("", word) for word in query.split()]
    return " & ".join(f"{token}:*" for token in tokens if _WORD_RE.search(token))


def _tsquery_sql() -> str:
    return f"to_tsquery('{TS_CONFIG}', :tsquery)"


def _search_vector_sql(fields: tuple[str, ...]) -> str:
    if not fields:
        return "mes.combined_search_vector"
    parts = [f"to_tsvector('{TS_CONFIG}', coalesce({FIELD_COLUMNS[f]}, ''))" for f in fields]
    return "(" + " || ".join(parts) + ")"


def _highlight_sql(fields: tuple[str, ...]) -> str:
    names = fields or DEFAULT_HIGHLIGHT_FIELDS
    pairs = ",\n            ".join(
        f"'{name}', ts_headline('{TS_CONFIG}', coalesce({FIELD_COLUMNS[name]}, ''), "
        f"{_tsquery_sql()}, :headline_options)"
        for name in names
    )
    return f"jsonb_build_object(\n            {pairs}\n        )"


def headline_options(params: dict[str, Any] | None = None) -> str:
    params = params or get_search_params()
    return (
        f"StartSel={HIGHLIGHT_START}, StopSel={HIGHLIGHT_STOP}, "
        f"MaxWords={int(params['snippet_max_words'])}, MinWords={int(params['snippet_min_words'])}"
    )


def build_fulltext_query(normalized: NormalizedRequest, limit: int) -> BuiltQuery:
    """Ranked full-text statement, optionally with ts_headline highlights."""
    vector = _search_vector_sql(normalized.fields)
    tsquery = _tsquery_sql()
    highlight = _highlight_sql(normalized.fields) if normalized.include_highlights else "NULL"

    sql = f"""
        SELECT {_RESULT_COLUMNS},
            ts_rank({vector}, {tsquery}) AS relevance_score,
            {highlight} AS highlighted_fields
        FROM {SEARCH_VIEW} mes
        WHERE {vector} @@ {tsquery}
        ORDER BY relevance_score DESC, {_TIEBREAK_ORDER}
        LIMIT :limit
    """
    params: dict[str, Any] = {"tsquery": build_tsquery(normalized.query), "limit": limit}
    if normalized.include_highlights:
        params["headline_options"] = headline_options()
    return BuiltQuery(source=SearchStrategy.fulltext, sql=sql, params=params)


def build_similarity_query(normalized: NormalizedRequest, limit: int) -> BuiltQuery:
    """Trigram similarity statement. Never carries highlights."""
    if normalized.fields:
        expressions = tuple(f"coalesce({FIELD_COLUMNS[f]}, '')" for f in normalized.fields)
    else:
        expressions = _DEFAULT_SIMILARITY_EXPRESSIONS

    similarities = [f"similarity({expr}, :query)" for expr in expressions]
    score = "GREATEST(\n            " + ",\n            ".join(similarities) + "\n        )"
    where = " OR\n            ".join(f"{sim} > :threshold" for sim in similarities)

    sql = f"""
        SELECT {_RESULT_COLUMNS},
            {score} AS relevance_score,
            NULL AS highlighted_fields
        FROM {SEARCH_VIEW} mes
        WHERE
            {where}
        ORDER BY relevance_score DESC, {_TIEBREAK_ORDER}
        LIMIT :limit
    """
    params = get_search_params()
    return BuiltQuery(
        source=SearchStrategy.similarity,
        sql=sql,
        params={
            "query": normalized.query,
            "threshold": float(params["similarity_threshold"]),
            "limit": limit,
        },
    )


def build_queries(strategy: SearchStrategy, normalized: NormalizedRequest) -> list[BuiltQuery]:
    """Return the statements a strategy needs, in execution order.

    ``fulltext`` and ``similarity`` need one statement each; ``hybrid``
    needs the full-text statement followed by the similarity statement.
    """
    params = get_search_params()
    fulltext_cap = int(params["fulltext_limit"])
    similarity_cap = int(params["similarity_limit"])

    if strategy is SearchStrategy.fulltext:
        return [build_fulltext_query(normalized, limit=normalized.max_results)]
    if strategy is SearchStrategy.similarity:
        return [build_similarity_query(normalized, limit=min(normalized.max_results, similarity_cap))]
    if strategy is SearchStrategy.hybrid:
        return [
            build_fulltext_query(normalized, limit=min(normalized.max_results, fulltext_cap)),
            build_similarity_query(normalized, limit=min(normalized.max_results, similarity_cap)),
        ]
    raise ValueError(f"Unsupported search strategy: {strategy}")
