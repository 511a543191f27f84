from typing import Annotated
from fastapi import Depends, Request

from agui_runtime.protocols.agui.runtime import AgentRuntime


def get_runtime(request: Request) -> AgentRuntime:
    """Runtime instance bound to the application."""
    return request.app.state.runtime


# Type alias for clean injection
Runtime = Annotated[AgentRuntime, Depends(get_runtime)]
