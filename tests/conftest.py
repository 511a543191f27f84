# tests/conftest.py
"""
Main pytest configuration and shared fixtures for all tests.

This module provides:
- Async test support (pytest-asyncio auto mode)
- Settings override for test environment
- Runtime, session and event fixtures
- FastAPI client over ASGI transport
"""

from typing import Any, AsyncGenerator, AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

from agui_runtime.api.app import create_app
from agui_runtime.config.settings import Settings, get_settings
from agui_runtime.domain.models import RunAgentInput
from agui_runtime.infrastructure.observability.logging import configure_logging
from agui_runtime.protocols.agui.runtime import AgentRuntime
from agui_runtime.protocols.agui.session import RunSession

THREAD_ID = "thread-1"
RUN_ID = "run-1"


# ============================================================================
# Settings and Configuration
# ============================================================================

@pytest.fixture(scope="session", autouse=True)
def override_settings() -> Settings:
    """
    Override global settings for all tests.

    Environment variables are read when get_settings() repopulates its
    cache, so every component sees the test configuration.
    """
    mp = pytest.MonkeyPatch()
    mp.setenv("APP_NAME", "AG-UI Runtime Test")
    mp.setenv("ENVIRONMENT", "local")
    mp.setenv("LOG_LEVEL", "40")  # ERROR level to reduce noise in tests
    mp.setenv("LOG_FORMAT", "console")
    mp.setenv("AGENT_CONFIG_BASE_URL", "https://config.test")
    get_settings.cache_clear()
    configure_logging()

    yield get_settings()

    mp.undo()
    get_settings.cache_clear()


# ============================================================================
# Runtime Fixtures
# ============================================================================

@pytest.fixture
def runtime() -> AgentRuntime:
    return AgentRuntime()


@pytest.fixture
def session(runtime: AgentRuntime) -> RunSession:
    """A PENDING session on THREAD_ID/RUN_ID."""
    return runtime.start_run(THREAD_ID, RUN_ID)


@pytest.fixture
def running_session(session: RunSession) -> RunSession:
    """A session that already accepted RUN_STARTED."""
    assert session.process(run_started())
    return session


@pytest.fixture
def run_input() -> RunAgentInput:
    return RunAgentInput(thread_id=THREAD_ID, run_id=RUN_ID)


# ============================================================================
# API Fixtures
# ============================================================================

@pytest.fixture
async def client(runtime: AgentRuntime) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to an app serving `runtime`."""
    app = create_app(runtime)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ============================================================================
# Event helpers
# ============================================================================

def run_started(thread_id: str = THREAD_ID, run_id: str = RUN_ID) -> dict[str, Any]:
    return {"type": "RUN_STARTED", "threadId": thread_id, "runId": run_id}


def run_finished(thread_id: str = THREAD_ID, run_id: str = RUN_ID) -> dict[str, Any]:
    return {"type": "RUN_FINISHED", "threadId": thread_id, "runId": run_id}


def stream_of(*events: Any):
    """Build an event transport that yields the given events."""

    async def transport(run_input: RunAgentInput) -> AsyncIterator[Any]:
        for event in events:
            yield event

    return transport
