"""Query-shape classification.

Chooses how a query is matched from two numbers only: how many
whitespace-separated tokens it has and how many characters it is.
"""

from __future__ import annotations

from inventory_search.search.schemas import SearchStrategy

SHORT_QUERY_MAX_CHARS = 3
FULLTEXT_MIN_TOKENS = 3


def classify(token_count: int, char_length: int) -> SearchStrategy:
    """Map query shape to a strategy.

    Queries of three characters or fewer are always fuzzy-matched; the
    length check wins over the token count.
    """
    if char_length <= SHORT_QUERY_MAX_CHARS:
        return SearchStrategy.similarity
    if token_count >= FULLTEXT_MIN_TOKENS:
        return SearchStrategy.fulltext
    return SearchStrategy.hybrid


def classify_query(query: str) -> SearchStrategy:
    """Classify a (trimmed) query string."""
    stripped = query.strip()
    return classify(len(stripped.split()), len(stripped))
