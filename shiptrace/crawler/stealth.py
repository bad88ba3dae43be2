"""
Anti-detection profile for shiptrace browser sessions.

The profile is plain data (viewport, user agent, navigator overrides, launch
flags). It is rendered into an init script and applied to a session before
navigation so every document the page loads sees the same fingerprint.
"""

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from shiptrace.utils.config import DEFAULT_USER_AGENT, BrowserConfig
from shiptrace.utils.logging import get_logger

if TYPE_CHECKING:
    from shiptrace.crawler.browser_session import BrowserSession

logger = get_logger(__name__)


# =============================================================================
# Init Script Template
# =============================================================================

# %(overrides)s is a JSON object of navigator property -> value
_NAVIGATOR_OVERRIDE_JS = """
(() => {
    const overrides = %(overrides)s;
    for (const [prop, value] of Object.entries(overrides)) {
        try {
            Object.defineProperty(navigator, prop, {
                get: () => value,
                configurable: true
            });
        } catch (e) {}
    }
})();
"""

# navigator.webdriver must read as undefined, which JSON cannot express
_HIDE_AUTOMATION_JS = """
(() => {
    try {
        Object.defineProperty(navigator, 'webdriver', {
            get: () => undefined,
            configurable: true
        });
    } catch (e) {}

    delete window.__playwright;
    delete window.__puppeteer;
    delete window.callPhantom;
    delete window._phantom;
})();
"""


# =============================================================================
# Profile
# =============================================================================


@dataclass(frozen=True)
class AntiDetectionProfile:
    """Declarative browser fingerprint.

    Attributes:
        viewport_width: Viewport width in pixels.
        viewport_height: Viewport height in pixels.
        user_agent: User agent for both the header and navigator.userAgent.
        languages: Value of navigator.languages.
        plugin_count: Length of the fake navigator.plugins array.
        hide_automation: Whether to hide navigator.webdriver and driver globals.
        launch_args: Chromium command-line flags.
    """

    viewport_width: int = 2458
    viewport_height: int = 1302
    user_agent: str = DEFAULT_USER_AGENT
    languages: tuple[str, ...] = ("en-US", "en", "de-DE")
    plugin_count: int = 5
    hide_automation: bool = True
    launch_args: tuple[str, ...] = (
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
    )

    @classmethod
    def from_settings(cls, browser: BrowserConfig) -> "AntiDetectionProfile":
        """Build a profile from the browser section of settings."""
        return cls(
            viewport_width=browser.viewport_width,
            viewport_height=browser.viewport_height,
            user_agent=browser.user_agent,
            languages=tuple(browser.languages),
            plugin_count=browser.plugin_count,
            launch_args=tuple(browser.launch_args),
        )

    @property
    def viewport(self) -> dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}

    def navigator_overrides(self) -> dict[str, Any]:
        """Navigator properties redefined before any page script runs."""
        return {
            "userAgent": self.user_agent,
            "languages": list(self.languages),
            "plugins": list(range(1, self.plugin_count + 1)),
        }

    def init_script(self) -> str:
        """Render the init script applied to every new document."""
        script = _NAVIGATOR_OVERRIDE_JS % {"overrides": json.dumps(self.navigator_overrides())}
        if self.hide_automation:
            script += _HIDE_AUTOMATION_JS
        return script

    def to_dict(self) -> dict[str, Any]:
        return {
            "viewport": self.viewport,
            "user_agent": self.user_agent,
            "languages": list(self.languages),
            "plugin_count": self.plugin_count,
            "hide_automation": self.hide_automation,
            "launch_args": list(self.launch_args),
        }


# =============================================================================
# Application
# =============================================================================


async def apply_profile(session: "BrowserSession", profile: AntiDetectionProfile) -> None:
    """Apply the profile to a session's page.

    Must run before navigation. Errors propagate so the caller can decide
    whether the session is still usable.

    Args:
        session: Browser session to configure.
        profile: Fingerprint to apply.
    """
    await session.set_viewport(profile.viewport_width, profile.viewport_height)
    await session.set_user_agent(profile.user_agent)
    await session.add_init_script(profile.init_script())

    logger.debug(
        "Anti-detection profile applied",
        viewport=profile.viewport,
        languages=list(profile.languages),
    )
