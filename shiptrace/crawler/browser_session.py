"""
Browser session abstraction for shiptrace.

A BrowserSession is one browser process with one page, created per
extraction request and closed on every exit path. The cascade only talks to
the BrowserSession protocol; PlaywrightSession is the production
implementation over playwright.async_api, and tests supply fakes.
"""

from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from shiptrace.crawler.errors import CascadeError, FailureReason, LaunchFailure
from shiptrace.utils.config import get_settings
from shiptrace.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = get_logger(__name__)

EventHandler = Callable[[Any], None]


# ============================================================================
# Browser Session Protocol
# ============================================================================


@runtime_checkable
class BrowserSession(Protocol):
    """
    Protocol for a single-page browser session.

    Event handlers are plain callables invoked on the event loop; they must
    not block. goto raises CascadeError with NAVIGATION_TIMEOUT or
    NAVIGATION_ERROR on failure.
    """

    def on_request(self, handler: EventHandler) -> None:
        """Register a handler called with each request as it starts."""
        ...

    def on_response(self, handler: EventHandler) -> None:
        """Register a handler called with each response as it arrives."""
        ...

    async def set_extra_headers(self, headers: dict[str, str]) -> None:
        """Merge headers into those sent with every request."""
        ...

    async def set_viewport(self, width: int, height: int) -> None:
        ...

    async def set_user_agent(self, user_agent: str) -> None:
        ...

    async def add_init_script(self, script: str) -> None:
        """Run script in every new document before page scripts."""
        ...

    async def goto(self, url: str, *, wait_until: str, timeout_ms: int) -> None:
        ...

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        ...

    async def content(self) -> str:
        ...

    def is_usable(self) -> bool:
        """False once the page or browser has gone away."""
        ...

    async def close(self) -> None:
        ...


SessionFactory = Callable[[Sequence[str]], Awaitable[BrowserSession]]


# ============================================================================
# Playwright Implementation
# ============================================================================


class PlaywrightSession:
    """
    BrowserSession over Playwright's async API (Chromium).

    Owns the Playwright driver, browser, context and page; close() tears all
    of them down in reverse order.
    """

    def __init__(
        self,
        playwright: "Playwright",
        browser: "Browser",
        context: "BrowserContext",
        page: "Page",
    ) -> None:
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self._page = page
        self._headers: dict[str, str] = {}
        self._is_closed = False

    @classmethod
    async def launch(
        cls,
        launch_args: Sequence[str],
        *,
        headless: bool = True,
    ) -> "PlaywrightSession":
        """Start Chromium and open one page.

        Raises:
            LaunchFailure: If Playwright is missing or the browser fails to start.
        """
        try:
            from playwright.async_api import async_playwright
        except ImportError as e:
            raise LaunchFailure("Playwright not installed") from e

        try:
            playwright = await async_playwright().start()
        except Exception as e:
            raise LaunchFailure(f"Playwright driver failed to start: {e}") from e

        # The driver must be stopped on cancellation too (launch deadline)
        try:
            browser = await playwright.chromium.launch(headless=headless, args=list(launch_args))
            context = await browser.new_context()
            page = await context.new_page()
        except BaseException as e:
            await _stop_driver(playwright)
            if not isinstance(e, Exception):
                raise
            raise LaunchFailure(
                f"Chromium launch failed: {e}",
                details={"launch_args": list(launch_args), "headless": headless},
            ) from e

        logger.info("Browser session started", headless=headless)
        return cls(playwright, browser, context, page)

    def on_request(self, handler: EventHandler) -> None:
        self._page.on("request", handler)

    def on_response(self, handler: EventHandler) -> None:
        self._page.on("response", handler)

    async def set_extra_headers(self, headers: dict[str, str]) -> None:
        # Playwright replaces the whole header set on every call
        self._headers.update(headers)
        await self._page.set_extra_http_headers(self._headers)

    async def set_viewport(self, width: int, height: int) -> None:
        await self._page.set_viewport_size({"width": width, "height": height})

    async def set_user_agent(self, user_agent: str) -> None:
        await self.set_extra_headers({"User-Agent": user_agent})

    async def add_init_script(self, script: str) -> None:
        await self._page.add_init_script(script)

    async def goto(self, url: str, *, wait_until: str, timeout_ms: int) -> None:
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        try:
            await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise CascadeError(
                FailureReason.NAVIGATION_TIMEOUT,
                str(e),
                details={"url": url, "timeout_ms": timeout_ms},
            ) from e
        except Exception as e:
            raise CascadeError(
                FailureReason.NAVIGATION_ERROR,
                str(e),
                details={"url": url},
            ) from e

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._page.evaluate(script, arg)

    async def content(self) -> str:
        return await self._page.content()

    def is_usable(self) -> bool:
        if self._is_closed:
            return False
        return not self._page.is_closed() and self._browser.is_connected()

    async def close(self) -> None:
        """Close context, browser and driver.

        Every step is attempted; failures are collected and raised together.

        Raises:
            CascadeError: SESSION_RELEASE_FAILURE if any step failed.
        """
        if self._is_closed:
            return
        self._is_closed = True

        errors = []
        for step, closer in (
            ("context", self._context.close),
            ("browser", self._browser.close),
            ("playwright", self._playwright.stop),
        ):
            try:
                await closer()
            except Exception as e:
                errors.append(f"{step}: {e}")

        if errors:
            raise CascadeError(
                FailureReason.SESSION_RELEASE_FAILURE,
                "; ".join(errors),
            )
        logger.debug("Browser session closed")


async def _stop_driver(playwright: "Playwright") -> None:
    """Stop a driver whose browser never finished starting."""
    try:
        await playwright.stop()
    except Exception as e:
        logger.debug("Playwright stop after failed launch errored", error=str(e))


async def launch_playwright_session(launch_args: Sequence[str]) -> BrowserSession:
    """Default SessionFactory: a Playwright Chromium session per call."""
    settings = get_settings()
    return await PlaywrightSession.launch(launch_args, headless=settings.browser.headless)
