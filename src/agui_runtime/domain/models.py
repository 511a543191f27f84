"""
Domain models for the AG-UI runtime.

Field names are snake_case in Python and camelCase on the wire; every model
accepts either form on input and serializes with `by_alias=True`.
"""
import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model with camelCase wire aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageRole(str, Enum):
    """Who authored a message."""
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    DEVELOPER = "developer"
    SYSTEM = "system"


class ToolCall(CamelModel):
    """
    A tool invocation requested by the agent.

    `arguments` is the concatenation of every argument delta in arrival order;
    it is expected to parse as JSON once the call is sealed.
    """
    id: str = Field(..., description="Tool call identifier")
    name: str = Field(..., description="Tool name, fixed at start")
    parent_message_id: str | None = Field(None, description="Message the call belongs to")
    arguments: str = Field(default="", description="Accumulated JSON arguments")
    sealed: bool = Field(default=False, description="Whether the end signal was received")

    @model_validator(mode="before")
    @classmethod
    def _flatten_function(cls, data: Any) -> Any:
        # OpenAI-style {"id", "type": "function", "function": {"name", "arguments"}}
        if isinstance(data, dict) and isinstance(data.get("function"), dict):
            function = data["function"]
            data = {k: v for k, v in data.items() if k not in ("function", "type")}
            data.setdefault("name", function.get("name"))
            data.setdefault("arguments", function.get("arguments", ""))
        return data

    def parsed_arguments(self) -> Any:
        """Decode the accumulated arguments as JSON."""
        return json.loads(self.arguments) if self.arguments else {}


class Message(CamelModel):
    """A transcript entry assembled from message events."""
    id: str = Field(..., description="Message identifier")
    role: MessageRole = Field(..., description="Message role")
    content: str = Field(default="", description="Accumulated content")
    name: str | None = Field(None, description="Optional author name")
    tool_call_id: str | None = Field(None, description="Tool call answered by a tool message")
    tool_calls: list[ToolCall] = Field(default_factory=list, description="Completed tool calls")
    sealed: bool = Field(default=False, description="Whether the end signal was received")


class RunStatus(str, Enum):
    """Run lifecycle status. FINISHED and ERRORED are terminal."""
    PENDING = "pending"
    RUNNING = "running"
    FINISHED = "finished"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.FINISHED, RunStatus.ERRORED)


class Run(CamelModel):
    """One execution of an agent against a thread."""
    thread_id: str
    run_id: str
    status: RunStatus = RunStatus.PENDING
    error_code: str | None = None
    error_message: str | None = None
    current_step: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.thread_id, self.run_id)


class ToolDescriptor(CamelModel):
    """A tool the agent may call."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _flatten_function(cls, data: Any) -> Any:
        # {"type": "function", "function": {"name", "description", "parameters"}}
        if isinstance(data, dict) and isinstance(data.get("function"), dict):
            return dict(data["function"])
        return data


class AgentDefinition(CamelModel):
    """Normalized, immutable agent configuration."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    description: str = ""
    instructions: str = ""
    tools: tuple[ToolDescriptor, ...] = ()
    model: str
    temperature: float
    max_tokens: int
    variables: dict[str, Any] = Field(default_factory=dict)
    welcome_message: str | None = None


class AgentConfigPayload(CamelModel):
    """
    External agent configuration as fetched.

    Every field may be absent; the resolver fills in defaults.
    """
    name: str | None = None
    description: str | None = None
    system_prompt: str | None = None
    tools: list[dict[str, Any]] | None = None
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    variables: dict[str, Any] | list[dict[str, Any]] | None = None
    welcome_message: str | None = None


class ContextItem(CamelModel):
    """Piece of context forwarded to the agent."""
    description: str
    value: str


class RunAgentInput(CamelModel):
    """Payload of a remote execution call."""
    thread_id: str
    run_id: str
    state: dict[str, Any] = Field(default_factory=dict)
    messages: list[Message] = Field(default_factory=list)
    tools: list[ToolDescriptor] = Field(default_factory=list)
    context: list[ContextItem] = Field(default_factory=list)
    forwarded_props: dict[str, Any] = Field(default_factory=dict)
