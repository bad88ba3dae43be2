"""
Network response matching.

Decides whether a response is "the" data response (plain substring rule, no
regex semantics) and turns its body into a StrategyOutcome: strict JSON
first, then JSON embedded in the body text, then the text itself as a raw
fallback that never closes the gate on its own.
"""

from typing import Any

from shiptrace.crawler.errors import FailureReason
from shiptrace.extractor.strategies import (
    DEFAULT_SNIPPET_CHARS,
    StrategyOutcome,
    extract_from_html,
    network_json_strategy,
)
from shiptrace.utils.logging import get_logger

logger = get_logger(__name__)


def matches(url: str, rule: str | None) -> bool:
    """Substring match. An absent or empty rule never fires."""
    if not rule or not url:
        return False
    return rule in url


class ResponseMatcher:
    """
    Matches network responses against a substring rule and reads their body.

    Responses are duck-typed on Playwright's Response: a ``url`` attribute
    plus awaitable ``json()`` and ``text()``.
    """

    def __init__(self, rule: str | None, snippet_chars: int = DEFAULT_SNIPPET_CHARS):
        self._rule = rule
        self._snippet_chars = snippet_chars

    @property
    def rule(self) -> str | None:
        return self._rule

    @property
    def enabled(self) -> bool:
        return bool(self._rule)

    def matches(self, url: str) -> bool:
        return matches(url, self._rule)

    async def read(self, response: Any) -> StrategyOutcome:
        """Read a matched response body into an outcome.

        Never raises: body fetch failures produce an empty outcome.
        """
        url = response.url

        try:
            payload = await response.json()
        except Exception as e:
            logger.debug(
                "Matched response is not strict JSON",
                url=url,
                reason=FailureReason.JSON_PARSE_FAILURE.value,
                error=str(e),
            )
        else:
            return network_json_strategy(payload, upstream_url=url)

        try:
            text = await response.text()
        except Exception as e:
            logger.warning("Failed to read matched response body", url=url, error=str(e))
            return StrategyOutcome(diagnostics={"reason": FailureReason.JSON_PARSE_FAILURE.value})

        return extract_from_html(text, upstream_url=url, snippet_chars=self._snippet_chars)
