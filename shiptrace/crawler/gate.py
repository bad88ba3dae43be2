"""
One-shot delivery gate.

The network listener path and the post-navigation fallback path both offer
results; the gate accepts exactly the first offer and records the rest as
suppressed. It is backed by an asyncio.Future, so a second delivery is
structurally impossible rather than guarded by a flag.
"""

import asyncio

from shiptrace.crawler.models import ExtractionResult
from shiptrace.utils.logging import get_logger

logger = get_logger(__name__)


class DeliveryGate:
    """Accepts exactly one ExtractionResult."""

    def __init__(self) -> None:
        loop = asyncio.get_running_loop()
        self._future: asyncio.Future[ExtractionResult] = loop.create_future()
        self._winner: str | None = None
        self._suppressed: list[str] = []

    @property
    def settled(self) -> bool:
        return self._future.done()

    @property
    def winner(self) -> str | None:
        """Origin label of the accepted offer."""
        return self._winner

    @property
    def suppressed(self) -> list[str]:
        """Origin labels of offers that arrived after settlement."""
        return list(self._suppressed)

    @property
    def waiter(self) -> "asyncio.Future[ExtractionResult]":
        """Future completed on settlement, for racing against other work.

        Shielded so that cancelling a waiter never cancels the gate itself.
        """
        return asyncio.shield(self._future)

    def offer(self, result: ExtractionResult, *, origin: str) -> bool:
        """Offer a result.

        Args:
            result: Candidate final result.
            origin: Label for logs and diagnostics (e.g. "network_json").

        Returns:
            True if this offer settled the gate, False if it was suppressed.
        """
        if self._future.done():
            self.suppress(origin)
            return False

        self._future.set_result(result)
        self._winner = origin
        logger.debug("Gate settled", origin=origin, ok=result.ok, source=result.source.value)
        return True

    def suppress(self, origin: str) -> None:
        """Record a candidate that lost the race without being offered."""
        self._suppressed.append(origin)
        logger.info(
            "Result suppressed, gate already settled",
            origin=origin,
            winner=self._winner,
        )

    def result(self) -> ExtractionResult:
        """Return the settled result.

        Raises:
            asyncio.InvalidStateError: If the gate has not settled.
        """
        return self._future.result()
