"""Deterministic cache keys for search responses.

Two requests that differ only in omitted-versus-default optional fields,
field ordering, or query casing map to the same key.
"""

from __future__ import annotations

import hashlib
import json
import re

from inventory_search.search.validation import NormalizedRequest

CACHE_PREFIX = "search:"
ANALYTICS_PREFIX = "search_analytics:"

CACHE_KEY_RE = re.compile(r"^search:[a-f0-9]{64}$")


def canonical_key_object(normalized: NormalizedRequest) -> dict:
    """Build the canonical parameter object that gets hashed."""
    return {
        "q": normalized.cache_query,
        "page": normalized.page,
        "pageSize": normalized.page_size,
        "fields": sorted(normalized.fields),
        "sortBy": "" if normalized.sort_by == "relevance" else normalized.sort_by,
        "sortOrder": normalized.sort_order,
        "includeHighlights": normalized.include_highlights,
        "maxResults": normalized.max_results,
    }


def derive_cache_key(normalized: NormalizedRequest) -> str:
    """Return ``search:<sha256 hex>`` for a normalized request.

    The canonical object is serialized as compact JSON with sorted keys,
    so the digest is identical to one computed by any other client that
    hashes the same canonical form.
    """
    payload = json.dumps(
        canonical_key_object(normalized),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{CACHE_PREFIX}{digest}"
