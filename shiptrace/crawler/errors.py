"""
Failure taxonomy for the extraction cascade.

Reasons follow the pattern:
- *_FAILURE / *_ERROR: something broke at one step (usually fail-soft)
- NO_*: a strategy or the whole cascade found nothing
- TIMEOUT / SESSION_LOST / LAUNCH_FAILURE: terminal conditions

Only LAUNCH_FAILURE, SESSION_LOST, TIMEOUT and NO_DATA_EXTRACTED ever end a
cascade run. Everything else is recorded and the next strategy is tried.
"""

from enum import Enum
from typing import Any


class FailureReason(str, Enum):
    """Reason codes carried in ExtractionResult diagnostics."""

    LAUNCH_FAILURE = "launch_failure"
    """Browser session could not start. Terminal."""

    NAVIGATION_TIMEOUT = "navigation_timeout"
    """page.goto exceeded its timeout. Cascade continues on partial state."""

    NAVIGATION_ERROR = "navigation_error"
    """page.goto raised. Cascade continues on partial state."""

    NO_MATCHING_RESPONSE = "no_matching_response"
    """No network response matched the rule. Expected, not an error."""

    JSON_PARSE_FAILURE = "json_parse_failure"
    """A body or text blob was not JSON. Triggers the next fallback."""

    DOM_EXTRACTION_FAILURE = "dom_extraction_failure"
    """In-page evaluation failed or selectors were malformed."""

    UPSTREAM_NON_JSON = "upstream_non_json"
    """Matched upstream returned text that holds no JSON."""

    NO_DATA_EXTRACTED = "no_data_extracted"
    """Every strategy was exhausted. Terminal."""

    SESSION_LOST = "session_lost"
    """The page or browser closed under us. Terminal."""

    TIMEOUT = "timeout"
    """Overall deadline expired before any strategy settled. Terminal."""

    SESSION_RELEASE_FAILURE = "session_release_failure"
    """Closing the session failed. Logged only."""


TERMINAL_REASONS = frozenset(
    {
        FailureReason.LAUNCH_FAILURE,
        FailureReason.SESSION_LOST,
        FailureReason.TIMEOUT,
        FailureReason.NO_DATA_EXTRACTED,
    }
)


class CascadeError(Exception):
    """
    Base exception for cascade failures raised by collaborators.

    The cascade converts these into ExtractionResult diagnostics; callers of
    CascadeController.run never see them.
    """

    def __init__(
        self,
        reason: FailureReason,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize cascade error.

        Args:
            reason: Reason code from FailureReason.
            message: Human-readable error message.
            details: Optional additional error details.
        """
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.details = details or {}

    @property
    def is_terminal(self) -> bool:
        """Whether this failure ends the cascade run."""
        return self.reason in TERMINAL_REASONS

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {
            "reason": self.reason.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class LaunchFailure(CascadeError):
    """Browser session could not be created."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(FailureReason.LAUNCH_FAILURE, message, details=details)


class SessionLost(CascadeError):
    """Session became unusable mid-run."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(FailureReason.SESSION_LOST, message, details=details)
