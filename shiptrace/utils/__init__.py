"""
shiptrace utilities module.
"""

from shiptrace.utils.config import get_project_root, get_settings
from shiptrace.utils.logging import (
    LogContext,
    bind_context,
    configure_logging,
    get_logger,
    unbind_context,
)

__all__ = [
    "get_settings",
    "get_project_root",
    "get_logger",
    "configure_logging",
    "bind_context",
    "unbind_context",
    "LogContext",
]
