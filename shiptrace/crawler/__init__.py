"""
shiptrace crawler module.

Browser session handling, the anti-detection profile and the extraction
cascade. Import the cascade itself from shiptrace.crawler.cascade.
"""

from shiptrace.crawler.errors import (
    CascadeError,
    FailureReason,
    LaunchFailure,
    SessionLost,
)
from shiptrace.crawler.models import (
    CandidateKind,
    Diagnostics,
    ExtractionRequest,
    ExtractionResult,
    RawCandidate,
    Record,
    ResultSource,
)
from shiptrace.crawler.stealth import AntiDetectionProfile, apply_profile

__all__ = [
    # errors
    "CascadeError",
    "FailureReason",
    "LaunchFailure",
    "SessionLost",
    # models
    "CandidateKind",
    "Diagnostics",
    "ExtractionRequest",
    "ExtractionResult",
    "RawCandidate",
    "Record",
    "ResultSource",
    # stealth
    "AntiDetectionProfile",
    "apply_profile",
]
