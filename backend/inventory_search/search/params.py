"""Centralized search parameter management.

Row budgets, the trigram similarity threshold, and ts_headline snippet
sizes live here. Deployments can override any of them through the
``SEARCH_PARAMS`` setting (a JSON object in the environment).

Usage in the query builder::

    from inventory_search.search.params import get_search_params
    params = get_search_params()
    limit = min(max_results, int(params["similarity_limit"]))
"""

from __future__ import annotations

from typing import Any

from inventory_search.config import get_settings

DEFAULT_SEARCH_PARAMS: dict[str, float | int] = {
    # Row budgets before pagination
    "fulltext_limit": 1000,
    "similarity_limit": 500,  # trigram scans cost more per row
    # Trigram
    "similarity_threshold": 0.1,
    # Snippet (ts_headline)
    "snippet_max_words": 35,
    "snippet_min_words": 15,
}


def get_search_params() -> dict[str, Any]:
    """Return current search parameters, merging configured overrides with defaults.

    Unknown keys in the override are ignored.
    """
    saved: dict[str, Any] = get_settings().SEARCH_PARAMS
    merged = {**DEFAULT_SEARCH_PARAMS}
    if isinstance(saved, dict):
        for key in DEFAULT_SEARCH_PARAMS:
            if key in saved:
                merged[key] = saved[key]
    return merged
