"""
Log context management for run-scoped structured logs.

Usage:
    from agui_runtime.infrastructure.observability.context import log_context

    with log_context(thread_id="t1", run_id="r1"):
        logger.info("event applied")  # Includes thread_id and run_id
"""
from typing import Any
from contextlib import contextmanager
import structlog


@contextmanager
def log_context(**kwargs: Any):
    """
    Context manager for adding context to logs.

    All key-value pairs passed to this context manager are included in every
    log entry made within the context. On exit the previous bindings are
    restored, so contexts nest.

    Args:
        **kwargs: Key-value pairs to add to log context
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield


def bind_context(**kwargs: Any) -> None:
    """
    Bind context variables to the current context.

    Unlike log_context, this does not automatically unbind when done.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Unbind specific context variables."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all context variables."""
    structlog.contextvars.clear_contextvars()
