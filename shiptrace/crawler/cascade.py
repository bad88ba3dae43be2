"""
Extraction cascade controller.

Drives one browser session per request through the strategy cascade:

1. Mock fast path (no browser)
2. Launch session; failure is terminal
3. Register the response listener, then apply headers and the
   anti-detection profile, all before navigation starts
4. Race navigation against the network path
5. After settle: DOM extraction, embedded JSON in page content, then the raw
   text held from a non-JSON matched response. Matched responses still being
   read are awaited before each of these steps
6. Nothing left: no_data_extracted, carrying the page text snippet

Every path offers its result to a DeliveryGate; only the first offer is
delivered. The session is released in ``finally`` whatever happened.
"""

import asyncio
import time
import uuid
from typing import Any

from shiptrace.crawler.browser_session import (
    BrowserSession,
    SessionFactory,
    launch_playwright_session,
)
from shiptrace.crawler.errors import CascadeError, FailureReason, SessionLost
from shiptrace.crawler.gate import DeliveryGate
from shiptrace.crawler.mock_provider import MockProvider
from shiptrace.crawler.models import ExtractionRequest, ExtractionResult
from shiptrace.crawler.response_matcher import ResponseMatcher
from shiptrace.crawler.stealth import AntiDetectionProfile, apply_profile
from shiptrace.extractor.dom_scripts import DOM_EXTRACT_JS, build_dom_arg
from shiptrace.extractor.strategies import StrategyOutcome, dom_strategy, extract_from_html
from shiptrace.utils.config import Settings, get_settings
from shiptrace.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


def build_request_headers(
    request: ExtractionRequest,
    *,
    requested_with: bool = True,
) -> dict[str, str]:
    """Headers sent with every page request. Later keys win."""
    headers: dict[str, str] = {}
    if requested_with:
        headers["x-requested-with"] = "XMLHttpRequest"
    if request.referer:
        headers["referer"] = request.referer
    headers.update(request.extra_headers)
    return headers


class _CascadeRun:
    """State of one live cascade run, discarded after delivery."""

    def __init__(
        self,
        request: ExtractionRequest,
        session: BrowserSession,
        *,
        profile: AntiDetectionProfile,
        settings: Settings,
        timeout_ms: int,
    ) -> None:
        self._request = request
        self._session = session
        self._profile = profile
        self._settings = settings
        self._timeout_ms = timeout_ms
        self._gate = DeliveryGate()
        self._matcher = ResponseMatcher(
            request.response_match,
            snippet_chars=settings.cascade.snippet_chars,
        )
        self._tasks: set[asyncio.Task[Any]] = set()
        self._response_tasks: set[asyncio.Task[Any]] = set()
        self._matched_responses = 0
        self._raw_text: StrategyOutcome | None = None
        self._page_text: StrategyOutcome | None = None
        self._navigation_error: str | None = None
        self._timed_out = False
        self._attempted: list[str] = []

    @property
    def navigation_timeout_ms(self) -> int:
        """Navigation budget: the deadline minus the fallback reserve."""
        reserve = self._settings.cascade.fallback_reserve_ms
        return max(self._timeout_ms - reserve, self._timeout_ms // 2, 1)

    async def execute(self) -> ExtractionResult:
        """Run the cascade under the overall deadline. Never raises."""
        try:
            await asyncio.wait_for(self._drive(), timeout=self._timeout_ms / 1000)
        except TimeoutError:
            self._timed_out = True
            logger.warning("Cascade deadline expired", timeout_ms=self._timeout_ms)
            self._gate.offer(
                ExtractionResult.failure(
                    FailureReason.TIMEOUT,
                    message=f"no result within {self._timeout_ms} ms",
                ),
                origin="deadline",
            )
        except CascadeError as e:
            reason = e.reason if e.is_terminal else FailureReason.NO_DATA_EXTRACTED
            logger.error("Cascade ended by failure", reason=e.reason.value, error=e.message)
            self._gate.offer(
                ExtractionResult.failure(reason, message=e.message),
                origin=reason.value,
            )
        except Exception as e:
            logger.exception("Cascade failed unexpectedly", error=str(e))
            self._gate.offer(
                ExtractionResult.failure(FailureReason.NO_DATA_EXTRACTED, message=str(e)),
                origin="error",
            )

        for task in self._response_tasks:
            if not task.done():
                self._gate.suppress("network_in_flight")
        return self._finalize(self._gate.result())

    async def cancel_pending(self) -> None:
        """Cancel navigation and in-flight response handlers."""
        pending = [task for task in (*self._tasks, *self._response_tasks) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Cascade body
    # ------------------------------------------------------------------

    async def _drive(self) -> None:
        self._install_listeners()
        await self._prepare_page()

        navigation = asyncio.create_task(self._navigate())
        self._tasks.add(navigation)
        await asyncio.wait(
            {navigation, self._gate.waiter},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if self._gate.settled:
            logger.info(
                "Network path settled before navigation finished",
                winner=self._gate.winner,
            )
            return

        self._ensure_usable("navigation")
        await self._drain_responses()

        if self._matcher.enabled and self._matched_responses == 0:
            logger.info(
                "No matching network response",
                reason=FailureReason.NO_MATCHING_RESPONSE.value,
                rule=self._matcher.rule,
            )

        for step in (self._run_dom, self._run_page_content, self._run_raw_text_fallback):
            if self._gate.settled:
                return
            await step()
            # Responses matched during a fallback step keep priority over the next one
            await self._drain_responses()

        if not self._gate.settled:
            page_text = self._page_text
            self._gate.offer(
                ExtractionResult.failure(
                    FailureReason.NO_DATA_EXTRACTED,
                    snippet=page_text.diagnostics.get("snippet") if page_text else None,
                    upstream_url=page_text.candidate.upstream_url if page_text else None,
                ),
                origin="exhausted",
            )

    def _install_listeners(self) -> None:
        self._session.on_request(self._on_request)
        if self._matcher.enabled:
            self._attempted.append("network")
            self._session.on_response(self._on_response)

    async def _prepare_page(self) -> None:
        headers = build_request_headers(
            self._request,
            requested_with=self._settings.cascade.requested_with_header,
        )
        # Steps fail independently
        for stage, step in (
            ("request headers", lambda: self._session.set_extra_headers(headers)),
            ("anti-detection profile", lambda: apply_profile(self._session, self._profile)),
        ):
            try:
                await step()
            except Exception as e:
                self._ensure_usable(stage)
                logger.warning(
                    "Page setup step failed, continuing without it",
                    stage=stage,
                    error=str(e),
                )

    async def _navigate(self) -> None:
        url = self._request.url
        started = time.monotonic()
        logger.info("Navigating", url=url, timeout_ms=self.navigation_timeout_ms)

        try:
            await self._session.goto(
                url,
                wait_until=self._settings.browser.wait_until,
                timeout_ms=self.navigation_timeout_ms,
            )
        except CascadeError as e:
            self._navigation_error = f"{e.reason.value}: {e.message}"
            if e.reason is FailureReason.NAVIGATION_TIMEOUT:
                self._timed_out = True
            logger.warning(
                "Navigation failed, continuing with partial page",
                reason=e.reason.value,
                error=e.message,
            )
        except Exception as e:
            self._navigation_error = f"{FailureReason.NAVIGATION_ERROR.value}: {e}"
            logger.warning(
                "Navigation failed, continuing with partial page",
                reason=FailureReason.NAVIGATION_ERROR.value,
                error=str(e),
            )
        else:
            logger.info(
                "Navigation settled",
                url=url,
                elapsed_ms=round((time.monotonic() - started) * 1000, 1),
            )

    async def _drain_responses(self) -> None:
        """Wait for matched responses still being read, so the network path keeps priority."""
        while not self._gate.settled:
            pending = [task for task in self._response_tasks if not task.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    # ------------------------------------------------------------------
    # Network path
    # ------------------------------------------------------------------

    def _on_request(self, request: Any) -> None:
        logger.debug("Request started", url=str(request.url))

    def _on_response(self, response: Any) -> None:
        url = response.url
        if not self._matcher.matches(url):
            return
        if self._gate.settled:
            logger.debug("Matching response after settlement ignored", url=url)
            return

        self._matched_responses += 1
        task = asyncio.create_task(self._handle_response(response))
        self._response_tasks.add(task)
        task.add_done_callback(self._response_tasks.discard)

    async def _handle_response(self, response: Any) -> None:
        url = response.url
        logger.info("Matching response received", url=url)

        outcome = await self._matcher.read(response)
        if outcome.succeeded:
            self._gate.offer(outcome.to_result(), origin=outcome.source.value)
        elif outcome.is_raw_text and self._raw_text is None:
            self._raw_text = outcome
            logger.info("Matched response is not JSON, held as raw text fallback", url=url)

    # ------------------------------------------------------------------
    # Post-navigation fallbacks
    # ------------------------------------------------------------------

    async def _run_dom(self) -> None:
        self._attempted.append("dom")
        arg = build_dom_arg(self._request.dom_row_selector, self._request.dom_field_map)

        try:
            snapshot = await self._session.evaluate(DOM_EXTRACT_JS, arg)
        except Exception as e:
            self._ensure_usable("dom extraction")
            logger.warning(
                "DOM extraction failed",
                reason=FailureReason.DOM_EXTRACTION_FAILURE.value,
                error=str(e),
            )
            return

        outcome = dom_strategy(snapshot, upstream_url=self._request.url)
        logger.info(
            "DOM extraction returned rows",
            records=len(outcome.records or []),
            explicit=self._request.has_dom_selectors,
        )
        self._offer_if_succeeded(outcome)

    async def _run_page_content(self) -> None:
        self._attempted.append("page_content")

        try:
            html = await self._session.content()
        except Exception as e:
            self._ensure_usable("page content")
            logger.warning("Reading page content failed", error=str(e))
            return

        outcome = extract_from_html(
            html,
            upstream_url=self._request.url,
            snippet_chars=self._settings.cascade.snippet_chars,
        )
        if outcome.is_raw_text:
            self._page_text = outcome
        if not outcome.succeeded:
            logger.info("No embedded JSON in page content", reason=outcome.diagnostics.get("reason"))
        self._offer_if_succeeded(outcome)

    async def _run_raw_text_fallback(self) -> None:
        if self._raw_text is None:
            return
        self._attempted.append("raw_text")
        self._gate.offer(self._raw_text.to_result(), origin="raw_text")

    def _offer_if_succeeded(self, outcome: StrategyOutcome) -> None:
        if outcome.succeeded:
            self._gate.offer(outcome.to_result(), origin=outcome.source.value)

    def _ensure_usable(self, stage: str) -> None:
        if not self._session.is_usable():
            raise SessionLost(f"Browser session unusable after {stage}")

    def _finalize(self, result: ExtractionResult) -> ExtractionResult:
        """Attach run-level diagnostics to whichever result won the gate."""
        diagnostics = result.diagnostics.model_copy(
            update={
                "navigation_error": self._navigation_error,
                "timed_out": result.diagnostics.timed_out or self._timed_out,
                "suppressed": self._gate.suppressed,
                "attempted": list(self._attempted),
            }
        )
        return result.model_copy(update={"diagnostics": diagnostics})


class CascadeController:
    """
    Runs extraction requests through the strategy cascade.

    Example usage:
        controller = CascadeController()
        result = await controller.run(
            ExtractionRequest(url="https://example.com/vessels", response_match="/api/vessels")
        )
    """

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        *,
        settings: Settings | None = None,
        profile: AntiDetectionProfile | None = None,
        mock_provider: MockProvider | None = None,
    ) -> None:
        """
        Initialize controller.

        Args:
            session_factory: Creates one BrowserSession per request.
                Defaults to a Playwright Chromium session.
            settings: Settings override (defaults to get_settings()).
            profile: Anti-detection profile (defaults to the browser settings).
            mock_provider: Source of the canned mock result.
        """
        self._settings = settings or get_settings()
        self._session_factory = session_factory or launch_playwright_session
        self._profile = profile or AntiDetectionProfile.from_settings(self._settings.browser)
        self._mock = mock_provider or MockProvider()

    def resolve_use_mock(self, request: ExtractionRequest) -> bool:
        """Request value wins; otherwise the configured default."""
        if request.use_mock is not None:
            return request.use_mock
        return self._settings.cascade.use_mock

    def resolve_timeout_ms(self, request: ExtractionRequest) -> int:
        return request.timeout_ms or self._settings.cascade.timeout_ms

    async def run(self, request: ExtractionRequest) -> ExtractionResult:
        """Extract records for one request.

        Always returns exactly one ExtractionResult; never raises for
        browser, network or parsing failures.
        """
        with LogContext(request_id=uuid.uuid4().hex[:12]):
            if self.resolve_use_mock(request):
                logger.info("Returning mock vessel data", url=request.url)
                return self._mock.result()
            return await self._run_live(request)

    async def _run_live(self, request: ExtractionRequest) -> ExtractionResult:
        timeout_ms = self.resolve_timeout_ms(request)
        started = time.monotonic()

        try:
            session = await asyncio.wait_for(
                self._session_factory(self._profile.launch_args),
                timeout=timeout_ms / 1000,
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(
                "Browser launch failed",
                reason=FailureReason.LAUNCH_FAILURE.value,
                error=message,
            )
            return ExtractionResult.failure(FailureReason.LAUNCH_FAILURE, message=message)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        run = _CascadeRun(
            request,
            session,
            profile=self._profile,
            settings=self._settings,
            timeout_ms=max(timeout_ms - elapsed_ms, 1),
        )
        try:
            result = await run.execute()
        finally:
            await run.cancel_pending()
            await self._release(session)

        logger.info(
            "Cascade finished",
            ok=result.ok,
            source=result.source.value,
            records=len(result.records or []),
            reason=result.reason,
            elapsed_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return result

    async def _release(self, session: BrowserSession) -> None:
        """Close the session; failures are logged and never escalate."""
        try:
            await session.close()
        except Exception as e:
            logger.warning(
                "Browser session release failed",
                reason=FailureReason.SESSION_RELEASE_FAILURE.value,
                error=str(e),
            )


# ============================================================================
# Factory and Global Instance
# ============================================================================

_cascade_controller: CascadeController | None = None


def get_cascade_controller() -> CascadeController:
    """Get or create the global CascadeController instance."""
    global _cascade_controller

    if _cascade_controller is None:
        _cascade_controller = CascadeController()

    return _cascade_controller


def reset_cascade_controller() -> None:
    """Reset the global controller. For testing only."""
    global _cascade_controller
    _cascade_controller = None


async def extract(request: ExtractionRequest) -> ExtractionResult:
    """Run one request through the global controller."""
    return await get_cascade_controller().run(request)
