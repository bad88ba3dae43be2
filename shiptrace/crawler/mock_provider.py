"""
Deterministic canned result for tests and demos without a live browser.
"""

from typing import Any

from shiptrace.crawler.models import ExtractionResult, ResultSource
from shiptrace.extractor.normalizer import normalize_json

MOCK_VESSELS: tuple[dict[str, Any], ...] = (
    {"mmsi": "635000001", "name": "MV DEMO ONE", "lat": 6.45, "lon": 3.39, "status": "Underway"},
    {"mmsi": "635000002", "name": "MV DEMO TWO", "lat": 6.48, "lon": 3.35, "status": "At Anchor"},
)


class MockProvider:
    """Returns the same mock ExtractionResult on every call."""

    def __init__(self, vessels: tuple[dict[str, Any], ...] = MOCK_VESSELS) -> None:
        self._result = ExtractionResult.success(
            ResultSource.MOCK,
            normalize_json([dict(vessel) for vessel in vessels]),
        )

    def result(self) -> ExtractionResult:
        """Return a fresh copy so callers cannot mutate the canned value."""
        return self._result.model_copy(deep=True)
