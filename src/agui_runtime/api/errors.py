"""
Error handling for the HTTP surface.

Maps AppError subclasses to structured JSON responses using their
status_code and error_code.

Usage:
    from fastapi import FastAPI
    from agui_runtime.api.errors import register_error_handlers

    app = FastAPI()
    register_error_handlers(app)
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from agui_runtime.domain.exceptions import AppError
from agui_runtime.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """
    Handle AppError and subclasses.

    Args:
        request: FastAPI Request object
        exc: AppError instance

    Returns:
        JSONResponse with error details
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request failed",
        path=request.url.path,
        method=request.method,
        error_code=exc.error_code.value,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


def register_error_handlers(app: FastAPI) -> None:
    """Register exception handlers with the FastAPI application."""
    app.add_exception_handler(AppError, app_error_handler)
