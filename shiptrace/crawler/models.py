"""
Data models for the extraction cascade.

ExtractionRequest is the immutable input, RawCandidate the not-yet-normalized
output of one strategy, Record the canonical row, and ExtractionResult the one
artifact handed back to the caller.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shiptrace.crawler.errors import FailureReason


class ResultSource(str, Enum):
    """Where the delivered records came from."""

    MOCK = "mock"
    NETWORK_JSON = "network_json"
    EMBEDDED_JSON = "embedded_json"
    DOM_TABLE = "dom_table"
    DOM_ROWS = "dom_rows"
    RAW_TEXT = "raw_text"
    NONE = "none"


class CandidateKind(str, Enum):
    """Kinds of raw candidate a strategy can produce."""

    NETWORK_JSON = "network_json"
    EMBEDDED_JSON = "embedded_json"
    DOM_TABLE = "dom_table"
    DOM_ROWS = "dom_rows"
    RAW_TEXT = "raw_text"

    @property
    def source(self) -> ResultSource:
        return ResultSource(self.value)

    @property
    def is_structured(self) -> bool:
        """Only structured candidates may close the gate on their own."""
        return self is not CandidateKind.RAW_TEXT


@dataclass(frozen=True)
class RawCandidate:
    """
    Raw output of one extraction strategy.

    Attributes:
        kind: Which strategy shape produced the payload.
        payload: JSON value, list of DOM rows, or raw text.
        upstream_url: URL of the response or page the payload was read from.
    """

    kind: CandidateKind
    payload: Any
    upstream_url: str | None = None

    @property
    def is_empty(self) -> bool:
        if self.payload is None:
            return True
        if isinstance(self.payload, (str, list, dict, tuple)):
            return len(self.payload) == 0
        return False


class ExtractionRequest(BaseModel):
    """
    One extraction job. Immutable once submitted.

    use_mock and timeout_ms default to None, meaning "use the configured
    value"; an explicit request value always wins over configuration.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str = Field(min_length=1)
    referer: str | None = None
    extra_headers: dict[str, str] = Field(default_factory=dict)
    response_match: str | None = None
    dom_row_selector: str | None = None
    dom_field_map: dict[str, str] | None = None
    use_mock: bool | None = None
    timeout_ms: int | None = Field(default=None, gt=0)

    @property
    def has_dom_selectors(self) -> bool:
        return bool(self.dom_row_selector or self.dom_field_map)


class Record(BaseModel):
    """Canonical vessel record. Every field is optional."""

    model_config = ConfigDict(extra="forbid")

    id: str | None = None
    name: str | None = None
    flag: str | None = None
    current_port: str | None = None
    lat: float | None = None
    lon: float | None = None
    status: str | None = None
    raw: Any = None

    @property
    def is_identified(self) -> bool:
        return self.id is not None or self.name is not None

    @property
    def is_blank(self) -> bool:
        return not self.to_dict()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, dropping unset fields."""
        return self.model_dump(exclude_none=True)


class Diagnostics(BaseModel):
    """Diagnostic details attached to every result."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    reason: str | None = None
    snippet: str | None = None
    upstream_url: str | None = None
    message: str | None = None
    navigation_error: str | None = None
    timed_out: bool = False
    suppressed: list[str] = Field(default_factory=list)
    attempted: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ExtractionResult(BaseModel):
    """
    The single artifact delivered for an ExtractionRequest.

    Attributes:
        ok: Whether records were extracted.
        source: Which strategy produced the records.
        records: Normalized records, None on failure.
        diagnostics: Reason codes and debugging context.
    """

    ok: bool
    source: ResultSource
    records: list[Record] | None = None
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)

    @property
    def reason(self) -> str | None:
        return self.diagnostics.reason

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape printed by the CLI."""
        return {
            "ok": self.ok,
            "source": self.source.value,
            "records": (
                [record.to_dict() for record in self.records]
                if self.records is not None
                else None
            ),
            "diagnostics": self.diagnostics.to_dict(),
        }

    @classmethod
    def success(
        cls,
        source: ResultSource,
        records: list[Record],
        *,
        upstream_url: str | None = None,
    ) -> "ExtractionResult":
        """Create a successful result."""
        return cls(
            ok=True,
            source=source,
            records=records,
            diagnostics=Diagnostics(upstream_url=upstream_url),
        )

    @classmethod
    def failure(
        cls,
        reason: FailureReason,
        *,
        source: ResultSource = ResultSource.NONE,
        message: str | None = None,
        snippet: str | None = None,
        upstream_url: str | None = None,
    ) -> "ExtractionResult":
        """Create a failure result."""
        return cls(
            ok=False,
            source=source,
            records=None,
            diagnostics=Diagnostics(
                reason=reason.value,
                message=message,
                snippet=snippet,
                upstream_url=upstream_url,
            ),
        )
