"""Domain models and exceptions."""

from agui_runtime.domain.exceptions import (
    ErrorCode,
    AppError,
    ProtocolError,
    ProtocolViolation,
    UnknownEntity,
    PatchApplicationError,
    RunError,
    RunConflict,
    RunNotFound,
    ResolutionError,
)
from agui_runtime.domain.models import (
    MessageRole,
    Message,
    ToolCall,
    RunStatus,
    Run,
    ToolDescriptor,
    AgentDefinition,
    AgentConfigPayload,
    ContextItem,
    RunAgentInput,
)

__all__ = [
    # Errors
    "ErrorCode",
    "AppError",
    "ProtocolError",
    "ProtocolViolation",
    "UnknownEntity",
    "PatchApplicationError",
    "RunError",
    "RunConflict",
    "RunNotFound",
    "ResolutionError",

    # Models
    "MessageRole",
    "Message",
    "ToolCall",
    "RunStatus",
    "Run",
    "ToolDescriptor",
    "AgentDefinition",
    "AgentConfigPayload",
    "ContextItem",
    "RunAgentInput",
]
