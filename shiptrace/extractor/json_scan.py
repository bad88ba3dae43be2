"""
Locate JSON embedded in arbitrary text.

The scan is deliberately simple: a greedy match from the first "{" or "[" to
the last "}" or "]", then a strict json.loads of that span. It can
mis-extract when braces appear inside string literals or when unrelated
bracketed text surrounds the payload. Callers depend only on
find_embedded_json, so the scanner can be replaced without touching them.
"""

import json
import re
from typing import Any

from shiptrace.utils.logging import get_logger

logger = get_logger(__name__)

_JSON_SPAN_RE = re.compile(r"\{.*\}|\[.*\]", re.DOTALL)


def find_json_span(text: str) -> str | None:
    """Return the greedy brace/bracket span of text, if any."""
    if not text:
        return None
    match = _JSON_SPAN_RE.search(text)
    return match.group(0) if match else None


def find_embedded_json(text: str) -> Any | None:
    """Parse the first greedy JSON-looking span in text.

    Args:
        text: Response body or rendered HTML.

    Returns:
        Parsed JSON object or array, or None when nothing parses.
    """
    span = find_json_span(text)
    if span is None:
        return None

    try:
        return json.loads(span)
    except ValueError as e:
        logger.debug("Embedded JSON span did not parse", span_length=len(span), error=str(e))
        return None

