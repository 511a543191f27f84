from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from agui_runtime.api.errors import register_error_handlers
from agui_runtime.api.routes import runs
from agui_runtime.config.settings import get_settings
from agui_runtime.infrastructure.observability.logging import configure_logging, get_logger
from agui_runtime.protocols.agui.runtime import AgentRuntime

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    configure_logging()
    logger.info("runtime api started", threads=len(app.state.runtime.threads()))
    yield
    logger.info("runtime api stopped")


def create_app(runtime: Optional[AgentRuntime] = None) -> FastAPI:
    """
    Application factory.

    Args:
        runtime: Runtime whose sessions are exposed; a new one is created if omitted
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.runtime = runtime or AgentRuntime()

    register_error_handlers(app)
    app.include_router(runs.router, prefix="/api/v1")

    return app
