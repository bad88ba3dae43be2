"""
Extraction strategies.

Each strategy is a pure function from raw input (a parsed response body,
response text, a DOM snapshot, rendered HTML) to a StrategyOutcome. None of
them touch the browser; the cascade gathers the input and decides ordering.
"""

from dataclasses import dataclass, field
from typing import Any

from shiptrace.crawler.errors import FailureReason
from shiptrace.crawler.models import (
    CandidateKind,
    Diagnostics,
    ExtractionResult,
    RawCandidate,
    Record,
    ResultSource,
)
from shiptrace.extractor.json_scan import find_embedded_json
from shiptrace.extractor.normalizer import normalize
from shiptrace.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SNIPPET_CHARS = 2000


@dataclass
class StrategyOutcome:
    """
    Result of running one strategy.

    Attributes:
        candidate: Raw candidate, None when the strategy found nothing at all.
        records: Normalized records, None unless at least one record exists.
        diagnostics: Reason/snippet/upstream details for logging and results.
    """

    candidate: RawCandidate | None = None
    records: list[Record] | None = None
    diagnostics: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        """A structured candidate with at least one record."""
        return (
            self.candidate is not None
            and self.candidate.kind.is_structured
            and bool(self.records)
        )

    @property
    def is_raw_text(self) -> bool:
        return self.candidate is not None and self.candidate.kind is CandidateKind.RAW_TEXT

    @property
    def source(self) -> ResultSource:
        return self.candidate.kind.source if self.candidate else ResultSource.NONE

    def to_result(self) -> ExtractionResult:
        """Convert to the result delivered through the gate."""
        upstream_url = self.candidate.upstream_url if self.candidate else None
        if self.succeeded:
            return ExtractionResult.success(
                self.source, self.records or [], upstream_url=upstream_url
            )
        return ExtractionResult(
            ok=False,
            source=self.source,
            records=None,
            diagnostics=Diagnostics(
                reason=self.diagnostics.get("reason"),
                snippet=self.diagnostics.get("snippet"),
                upstream_url=upstream_url,
            ),
        )


def _from_candidate(candidate: RawCandidate, **diagnostics: Any) -> StrategyOutcome:
    if candidate.is_empty:
        return StrategyOutcome(candidate=None, diagnostics=diagnostics)
    records = normalize(candidate)
    return StrategyOutcome(candidate=candidate, records=records or None, diagnostics=diagnostics)


def network_json_strategy(payload: Any, upstream_url: str | None = None) -> StrategyOutcome:
    """A matched response whose body parsed as JSON."""
    return _from_candidate(RawCandidate(CandidateKind.NETWORK_JSON, payload, upstream_url))


def extract_from_html(
    text: str,
    upstream_url: str | None = None,
    snippet_chars: int = DEFAULT_SNIPPET_CHARS,
) -> StrategyOutcome:
    """Find JSON embedded in text (a response body or the rendered page).

    Returns an EmbeddedJSON outcome when the greedy scan parses; otherwise a
    RawText outcome carrying a bounded snippet, marked upstream_non_json.
    The RawText outcome never counts as success.
    """
    payload = find_embedded_json(text)
    if payload is not None:
        outcome = _from_candidate(RawCandidate(CandidateKind.EMBEDDED_JSON, payload, upstream_url))
        if outcome.succeeded:
            return outcome

    if not text or not text.strip():
        return StrategyOutcome(diagnostics={"reason": FailureReason.JSON_PARSE_FAILURE.value})

    snippet = text[:snippet_chars]
    return StrategyOutcome(
        candidate=RawCandidate(CandidateKind.RAW_TEXT, snippet, upstream_url),
        records=None,
        diagnostics={
            "reason": FailureReason.UPSTREAM_NON_JSON.value,
            "snippet": snippet,
        },
    )


def dom_strategy(snapshot: Any, upstream_url: str | None = None) -> StrategyOutcome:
    """Turn a DOM_EXTRACT_JS snapshot into records.

    Explicit-selector rows are kept only when they carry an id (or alias such
    as mmsi) or a name; other rows are skipped without failing the strategy.
    Zero records means no candidate.
    """
    if not isinstance(snapshot, dict):
        return StrategyOutcome(diagnostics={"reason": FailureReason.DOM_EXTRACTION_FAILURE.value})

    mode = snapshot.get("mode")
    rows = snapshot.get("rows") or []

    if mode == "rows":
        candidate = RawCandidate(
            CandidateKind.DOM_ROWS,
            [row for row in rows if isinstance(row, dict)],
            upstream_url,
        )
        records = [record for record in normalize(candidate) if record.is_identified]
        skipped = len(candidate.payload) - len(records)
        if skipped:
            logger.debug("Skipped DOM rows without id or name", skipped=skipped)
        return StrategyOutcome(
            candidate=candidate if records else None,
            records=records or None,
        )

    if mode == "table":
        # Row 0 is the header
        return _from_candidate(RawCandidate(CandidateKind.DOM_TABLE, list(rows[1:]), upstream_url))

    if mode == "list":
        return _from_candidate(RawCandidate(CandidateKind.DOM_ROWS, list(rows), upstream_url))

    return StrategyOutcome()
