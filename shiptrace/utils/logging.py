"""
Structured logging for shiptrace.

structlog renders every event (JSON by default, console for interactive CLI
use) on top of stdlib logging handlers. Per-request context such as
request_id is carried through contextvars so events from concurrent cascade
tasks stay attributable.
"""

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from shiptrace.utils.config import get_project_root, get_settings

# Event keys holding URLs; data: URLs and long query strings are shortened
_URL_KEYS = ("url", "upstream_url")
_MAX_URL_CHARS = 200


def _add_timestamp(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add ISO-8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat().replace("+00:00", "Z")
    return event_dict


def _add_log_level(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["level"] = method_name.upper()
    return event_dict


def _shorten_urls(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    for key in _URL_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str) and len(value) > _MAX_URL_CHARS:
            event_dict[key] = value[:_MAX_URL_CHARS] + "..."
    return event_dict


def _build_handlers(log_file: str | Path | None, to_file: bool) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is None and to_file:
        log_dir = get_project_root() / get_settings().general.logs_dir
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"shiptrace_{datetime.now().strftime('%Y%m%d')}.log"
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    return handlers


def _renderer(json_format: bool) -> list[Processor]:
    if json_format:
        return [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    return [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def configure_logging(
    log_level: str | None = None,
    log_file: str | Path | None = None,
    json_format: bool = True,
    to_file: bool = True,
) -> None:
    """Configure structured logging.

    Safe to call more than once; each call replaces the root handlers.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR. Uses settings if None.
        log_file: Explicit log file. When None and to_file is set, a dated
            file under general.logs_dir is used.
        json_format: JSON lines (True) or human-readable console output (False).
        to_file: Whether to write a log file at all when log_file is None.
    """
    level_name = (log_level or get_settings().general.log_level).upper()

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level_name, logging.INFO),
        handlers=_build_handlers(log_file, to_file),
        force=True,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        _add_timestamp,
        _add_log_level,
        _shorten_urls,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        *_renderer(json_format),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger; pass __name__."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to all subsequent log calls in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


class LogContext:
    """Scoped logging context.

    Values bound on entry are restored to whatever they were before on exit,
    so nested contexts (a CLI run wrapping a cascade run) behave.

    Example:
        with LogContext(request_id="3f2a9c1b77de"):
            logger.info("Navigating", url=url)
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
