"""
Configuration management for shiptrace.

Settings are resolved in three layers, later layers winning:

1. Model defaults below
2. ``settings.yaml`` in the config directory, then the ``settings:`` section
   of an optional ``local.yaml`` next to it
3. ``SHIPTRACE_<SECTION>__<KEY>`` environment variables

The config directory is ``SHIPTRACE_CONFIG_DIR`` (default ``config``).
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "SHIPTRACE_"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_13_6) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/71.0.3578.98 Safari/537.36"
)

WaitUntil = Literal["load", "domcontentloaded", "networkidle", "commit"]


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "shiptrace"
    version: str = "0.1.0"
    log_level: str = "INFO"
    logs_dir: str = "logs"


class BrowserConfig(BaseModel):
    """Browser launch and fingerprint configuration.

    The fingerprint fields feed the anti-detection profile; launch_args are
    passed verbatim to Chromium.
    """

    model_config = ConfigDict(extra="forbid")

    headless: bool = True
    viewport_width: int = Field(default=2458, gt=0)
    viewport_height: int = Field(default=1302, gt=0)
    user_agent: str = DEFAULT_USER_AGENT
    languages: list[str] = Field(default_factory=lambda: ["en-US", "en", "de-DE"])
    plugin_count: int = Field(default=5, ge=0)
    wait_until: WaitUntil = "networkidle"
    launch_args: list[str] = Field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
        ]
    )


class CascadeConfig(BaseModel):
    """Extraction cascade configuration."""

    model_config = ConfigDict(extra="forbid")

    timeout_ms: int = Field(default=30000, gt=0)
    # Part of timeout_ms kept back from navigation for the DOM/HTML fallbacks
    fallback_reserve_ms: int = Field(default=5000, ge=0)
    snippet_chars: int = Field(default=2000, gt=0)
    use_mock: bool = False
    requested_with_header: bool = True


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    cascade: CascadeConfig = Field(default_factory=CascadeConfig)


def get_config_dir() -> Path:
    """Directory holding settings.yaml and local.yaml."""
    return Path(os.environ.get(f"{ENV_PREFIX}CONFIG_DIR", "config"))


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into a copy of base, recursing into nested dicts."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _load_yaml_config(config_dir: Path) -> dict[str, Any]:
    """Load settings.yaml and apply the settings section of local.yaml.

    local.yaml is meant for per-machine overrides that stay out of version
    control, e.g.::

        settings:
          browser:
            headless: false
    """
    config = _read_yaml(config_dir / "settings.yaml")
    local = _read_yaml(config_dir / "local.yaml")
    if "settings" in local:
        config = _deep_merge(config, local["settings"])
    return config


def _coerce_env_value(value: str) -> bool | int | float | str:
    """Interpret an environment string as bool, int or float where it parses."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply SHIPTRACE_<SECTION>__<KEY> environment overrides.

    Example:
        SHIPTRACE_CASCADE__USE_MOCK=true
        SHIPTRACE_BROWSER__HEADLESS=false

    Variables without a double underscore (SHIPTRACE_CONFIG_DIR) are not
    settings keys and are skipped.
    """
    for name, value in os.environ.items():
        if not name.startswith(ENV_PREFIX):
            continue

        path = name[len(ENV_PREFIX) :].lower().split("__")
        if len(path) < 2:
            continue

        section = config
        for part in path[:-1]:
            if not isinstance(section.get(part), dict):
                section[part] = {}
            section = section[part]
        section[path[-1]] = _coerce_env_value(value)

    return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    The result is cached, so YAML and environment are read once per process.
    Tests call ``get_settings.cache_clear()`` after changing either.

    Returns:
        Settings instance.

    Raises:
        pydantic.ValidationError: If a value is invalid or a key is unknown.
    """
    config = _load_yaml_config(get_config_dir())
    config = _apply_env_overrides(config)
    return Settings(**config)


def get_project_root() -> Path:
    """Repository root (parent of the shiptrace package)."""
    return Path(__file__).resolve().parent.parent.parent
