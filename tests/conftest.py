"""
Pytest fixtures and configuration for shiptrace tests.

=============================================================================
Test Classification
=============================================================================

- @pytest.mark.unit: Single class/function, no browser, no network
  - DEFAULT: Tests without marker are auto-classified as unit
- @pytest.mark.integration: Cascade wiring over a scripted FakeSession
- @pytest.mark.e2e: Real Chromium via Playwright
  - DEFAULT EXCLUDED (addopts in pyproject.toml): run with `pytest -m e2e`

=============================================================================
Mock Strategy
=============================================================================

- Browser: always a FakeSession in unit/integration tests. It implements the
  BrowserSession protocol, emits scripted responses during goto (and late
  responses during evaluate or content), and records every call so tests can assert ordering and release counts.
- Settings: get_settings() cache is cleared around every test so environment
  overrides set with monkeypatch take effect.
"""

import asyncio
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Set test environment before importing anything else
os.environ["SHIPTRACE_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ.pop("SHIPTRACE_CASCADE__USE_MOCK", None)

from shiptrace.utils.config import CascadeConfig, Settings, get_settings  # noqa: E402

_MISSING = object()


# =============================================================================
# Pytest Hooks for Test Classification
# =============================================================================


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line("markers", "unit: Unit tests with no external dependencies")
    config.addinivalue_line("markers", "integration: Cascade tests over a scripted browser")
    config.addinivalue_line("markers", "e2e: End-to-end tests with a real browser")


def pytest_collection_modifyitems(config, items):
    """Tests without an explicit classification marker are unit tests."""
    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration", "e2e") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Browser Fakes
# =============================================================================


class FakeRequest:
    """Stand-in for playwright Request (only .url is read)."""

    def __init__(self, url: str):
        self.url = url


class FakeResponse:
    """Stand-in for playwright Response.

    json() raises ValueError unless json_body is given, mirroring a body that
    is not JSON.
    """

    def __init__(
        self,
        url: str,
        *,
        json_body: Any = _MISSING,
        text: str = "",
        text_error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.url = url
        self._json_body = json_body
        self._text = text
        self._text_error = text_error
        self._delay = delay
        self.json_calls = 0

    async def json(self) -> Any:
        self.json_calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._json_body is _MISSING:
            raise ValueError("Unexpected token < in JSON at position 0")
        return self._json_body

    async def text(self) -> str:
        if self._text_error is not None:
            raise self._text_error
        return self._text


class FakeSession:
    """Scripted BrowserSession.

    goto() fires a request event, then every scripted response through the
    registered handlers, then sleeps goto_delay and raises goto_error if set.
    late_responses fire after navigation has settled, at the start of
    evaluate() or content() (late_on), before evaluate_delay elapses.
    """

    def __init__(
        self,
        *,
        responses: list[FakeResponse] | None = None,
        late_responses: list[FakeResponse] | None = None,
        late_on: str = "evaluate",
        evaluate_delay: float = 0.0,
        dom_snapshot: Any = None,
        html: str = "<html><body></body></html>",
        goto_error: Exception | None = None,
        goto_delay: float = 0.0,
        evaluate_error: Exception | None = None,
        content_error: Exception | None = None,
        setup_error: Exception | None = None,
        close_error: Exception | None = None,
        lose_session_on_goto: bool = False,
    ):
        self.responses = responses or []
        self.late_responses = late_responses or []
        self.late_on = late_on
        self.evaluate_delay = evaluate_delay
        self.dom_snapshot = dom_snapshot if dom_snapshot is not None else {"mode": "none", "rows": []}
        self.html = html
        self.goto_error = goto_error
        self.goto_delay = goto_delay
        self.evaluate_error = evaluate_error
        self.content_error = content_error
        self.setup_error = setup_error
        self.close_error = close_error
        self.lose_session_on_goto = lose_session_on_goto

        self.calls: list[str] = []
        self.headers: dict[str, str] = {}
        self.viewport: tuple[int, int] | None = None
        self.user_agent: str | None = None
        self.init_scripts: list[str] = []
        self.goto_kwargs: dict[str, Any] = {}
        self.evaluate_args: list[Any] = []
        self.close_calls = 0
        self.usable = True
        self._request_handlers: list[Callable[[Any], None]] = []
        self._response_handlers: list[Callable[[Any], None]] = []

    def on_request(self, handler: Callable[[Any], None]) -> None:
        self.calls.append("on_request")
        self._request_handlers.append(handler)

    def on_response(self, handler: Callable[[Any], None]) -> None:
        self.calls.append("on_response")
        self._response_handlers.append(handler)

    async def set_extra_headers(self, headers: dict[str, str]) -> None:
        self.calls.append("set_extra_headers")
        if self.setup_error is not None:
            raise self.setup_error
        self.headers.update(headers)

    async def set_viewport(self, width: int, height: int) -> None:
        self.calls.append("set_viewport")
        self.viewport = (width, height)

    async def set_user_agent(self, user_agent: str) -> None:
        self.calls.append("set_user_agent")
        self.user_agent = user_agent

    async def add_init_script(self, script: str) -> None:
        self.calls.append("add_init_script")
        self.init_scripts.append(script)

    async def goto(self, url: str, *, wait_until: str, timeout_ms: int) -> None:
        self.calls.append("goto")
        self.goto_kwargs = {"url": url, "wait_until": wait_until, "timeout_ms": timeout_ms}

        for handler in self._request_handlers:
            handler(FakeRequest(url))
        self._emit(self.responses)

        await asyncio.sleep(self.goto_delay)
        if self.lose_session_on_goto:
            self.usable = False
        if self.goto_error is not None:
            raise self.goto_error

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.calls.append("evaluate")
        self.evaluate_args.append(arg)
        if self.late_on == "evaluate":
            self._emit(self.late_responses)
        if self.evaluate_delay:
            await asyncio.sleep(self.evaluate_delay)
        if self.evaluate_error is not None:
            raise self.evaluate_error
        return self.dom_snapshot

    async def content(self) -> str:
        self.calls.append("content")
        if self.late_on == "content":
            self._emit(self.late_responses)
        if self.content_error is not None:
            raise self.content_error
        return self.html

    def is_usable(self) -> bool:
        return self.usable

    def _emit(self, responses: list[FakeResponse]) -> None:
        for response in responses:
            for handler in self._response_handlers:
                handler(response)

    async def close(self) -> None:
        self.calls.append("close")
        self.close_calls += 1
        self.usable = False
        if self.close_error is not None:
            raise self.close_error


class FakeSessionFactory:
    """SessionFactory returning one prepared FakeSession, or raising."""

    def __init__(self, session: FakeSession | None = None, error: Exception | None = None):
        self.session = session or FakeSession()
        self.error = error
        self.launches = 0
        self.launch_args: list[list[str]] = []

    async def __call__(self, launch_args) -> FakeSession:
        self.launch_args.append(list(launch_args))
        if self.error is not None:
            raise self.error
        self.launches += 1
        return self.session


@pytest.fixture
def make_response() -> Callable[..., FakeResponse]:
    """Factory for FakeResponse objects."""
    return FakeResponse


@pytest.fixture
def make_session() -> Callable[..., FakeSession]:
    """Factory for FakeSession objects."""
    return FakeSession


@pytest.fixture
def make_factory() -> Callable[..., FakeSessionFactory]:
    """Factory for FakeSessionFactory objects."""
    return FakeSessionFactory


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Make every test read settings (and env overrides) afresh."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_cascade_singleton():
    """Reset the global cascade controller between tests."""
    from shiptrace.crawler.cascade import reset_cascade_controller

    reset_cascade_controller()
    yield
    reset_cascade_controller()


@pytest.fixture
def test_settings() -> Settings:
    """Default settings, independent of config files and environment."""
    return Settings(cascade=CascadeConfig(timeout_ms=5000, fallback_reserve_ms=1000))
