"""Observability: structured logging and log context."""

from agui_runtime.infrastructure.observability.logging import configure_logging, get_logger
from agui_runtime.infrastructure.observability.context import (
    log_context,
    bind_context,
    unbind_context,
    clear_context,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "log_context",
    "bind_context",
    "unbind_context",
    "clear_context",
]
