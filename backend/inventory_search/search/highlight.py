"""Allow-list sanitizer for ts_headline fragments.

Highlight fragments mix the database's own ``<mark>`` markup with catalog
text that anyone with write access to the catalog controls. Only ``<mark>``
and ``<b>`` survive, and never with attributes. Executable containers are
removed with their content; every other tag is unwrapped so its text
remains but its markup does not.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from bs4 import BeautifulSoup, CData, Comment, Declaration, Doctype, ProcessingInstruction

logger = logging.getLogger(__name__)

ALLOWED_TAGS = frozenset({"mark", "b"})

# Removed together with everything inside them
DROPPED_TAGS = [
    "script",
    "style",
    "iframe",
    "object",
    "embed",
    "applet",
    "frame",
    "frameset",
    "noscript",
    "template",
    "svg",
    "math",
    "textarea",
]

_MARKUP_NODES = (Comment, CData, Declaration, Doctype, ProcessingInstruction)


def sanitize_highlight(fragment: str) -> str:
    """Return ``fragment`` with everything but bare ``<mark>``/``<b>`` tags stripped.

    >>> sanitize_highlight("<script>alert(1)</script><mark>test</mark>")
    '<mark>test</mark>'
    >>> sanitize_highlight("<img src=x onerror=alert(1)><b>test</b>")
    '<b>test</b>'
    """
    if not fragment:
        return ""

    soup = BeautifulSoup(fragment, "html.parser")

    # Nested dropped tags disappear with their ancestor, so re-query each time
    tag = soup.find(DROPPED_TAGS)
    while tag is not None:
        tag.decompose()
        tag = soup.find(DROPPED_TAGS)

    for node in soup.find_all(string=lambda s: isinstance(s, _MARKUP_NODES)):
        node.extract()

    for tag in soup.find_all(True):
        if tag.name in ALLOWED_TAGS:
            tag.attrs = {}
        else:
            tag.unwrap()

    return str(soup)


def sanitize_highlight_fields(fields: Mapping[str, Any] | str | None) -> dict[str, str] | None:
    """Sanitize every fragment in a ``highlighted_fields`` mapping.

    Accepts the JSON text form as well, since some drivers hand back
    ``jsonb`` values undecoded. Non-string fragments are dropped.
    """
    if fields is None:
        return None
    if isinstance(fields, str):
        try:
            fields = json.loads(fields)
        except ValueError:
            logger.warning("Discarding undecodable highlight payload")
            return None
    if not isinstance(fields, Mapping):
        return None

    return {key: sanitize_highlight(value) for key, value in fields.items() if isinstance(value, str)}
