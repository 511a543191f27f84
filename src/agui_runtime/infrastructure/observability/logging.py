"""
Structured logging configuration.

Use `get_logger` from this module, not print() or logging.getLogger().
"""
from typing import Optional
import structlog
from agui_runtime.config.settings import get_settings


def console_renderer_with_colors():
    """
    Create a console renderer with colors for development.

    Returns:
        Configured ConsoleRenderer instance
    """
    return structlog.dev.ConsoleRenderer(
        colors=True,
        pad_event=25,
        exception_formatter=structlog.dev.plain_traceback,
    )


def json_renderer():
    """
    Create a JSON renderer for production.

    Returns:
        Configured JSONRenderer instance
    """
    return structlog.processors.JSONRenderer()


def configure_logging() -> None:
    """
    Configure structured logging.

    This sets up the logging system with:
    - Context variable merging (for log_context usage, e.g. thread/run ids)
    - Log level and ISO timestamp
    - Exception formatting
    - JSON formatting for production or colored console for development
    """
    settings = get_settings()

    if settings.log_format == "json":
        renderer = json_renderer()
    else:
        renderer = console_renderer_with_colors()

    processors = [
        # 1. Merge context variables (allows log_context to work)
        structlog.contextvars.merge_contextvars,

        # 2. Add log level
        structlog.processors.add_log_level,

        # 3. Add timestamp
        structlog.processors.TimeStamper(fmt="iso"),

        # 4. Add stack info if requested
        structlog.processors.StackInfoRenderer(),

        # 5. Format exceptions
        structlog.processors.format_exc_info,

        # 6. Final rendering (JSON or Console)
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """
    Get a logger instance with structured logging support.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        BoundLogger instance with all configured processors

    Usage:
        >>> from agui_runtime.infrastructure.observability.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("message sealed", message_id="m1")
    """
    return structlog.get_logger(name)
