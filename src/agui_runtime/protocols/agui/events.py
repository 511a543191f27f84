"""
AG-UI event types.

This module defines the closed set of events a remote agent run emits. Events
are immutable; payload fields are snake_case in Python and camelCase on the
wire.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from agui_runtime.domain.models import CamelModel, Message, MessageRole


class EventType(str, Enum):
    """AG-UI event types."""
    # Run lifecycle events
    RUN_STARTED = "RUN_STARTED"
    RUN_FINISHED = "RUN_FINISHED"
    RUN_ERROR = "RUN_ERROR"

    # Message events
    TEXT_MESSAGE_START = "TEXT_MESSAGE_START"
    TEXT_MESSAGE_CONTENT = "TEXT_MESSAGE_CONTENT"
    TEXT_MESSAGE_END = "TEXT_MESSAGE_END"
    TEXT_MESSAGE_CHUNK = "TEXT_MESSAGE_CHUNK"

    # Tool call events
    TOOL_CALL_START = "TOOL_CALL_START"
    TOOL_CALL_ARGS = "TOOL_CALL_ARGS"
    TOOL_CALL_END = "TOOL_CALL_END"
    TOOL_CALL_CHUNK = "TOOL_CALL_CHUNK"

    # State events
    STATE_SNAPSHOT = "STATE_SNAPSHOT"
    STATE_DELTA = "STATE_DELTA"
    MESSAGES_SNAPSHOT = "MESSAGES_SNAPSHOT"

    # Step events
    STEP_STARTED = "STEP_STARTED"
    STEP_FINISHED = "STEP_FINISHED"

    # Extension events
    CUSTOM = "CUSTOM"
    RAW = "RAW"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(BaseModel):
    """Base class for all AG-UI events."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    type: EventType = Field(..., description="Event type")
    timestamp: datetime = Field(default_factory=_utcnow, description="Event timestamp")
    raw_event: Any | None = Field(None, description="Untouched upstream payload")


class RunStartedEvent(BaseEvent):
    """Event emitted when an agent run starts."""
    type: Literal[EventType.RUN_STARTED] = EventType.RUN_STARTED
    thread_id: str = Field(..., description="Thread identifier")
    run_id: str = Field(..., description="Run identifier")


class RunFinishedEvent(BaseEvent):
    """Event emitted when an agent run completes successfully."""
    type: Literal[EventType.RUN_FINISHED] = EventType.RUN_FINISHED
    thread_id: str = Field(..., description="Thread identifier")
    run_id: str = Field(..., description="Run identifier")
    result: Any | None = Field(None, description="Optional run result")


class RunErrorEvent(BaseEvent):
    """Event emitted when an agent run fails."""
    type: Literal[EventType.RUN_ERROR] = EventType.RUN_ERROR
    message: str = Field(..., description="Error message")
    code: str | None = Field(None, description="Error code")
    thread_id: str | None = Field(None, description="Thread identifier")
    run_id: str | None = Field(None, description="Run identifier")


class TextMessageStartEvent(BaseEvent):
    """Event emitted when a text message starts."""
    type: Literal[EventType.TEXT_MESSAGE_START] = EventType.TEXT_MESSAGE_START
    message_id: str = Field(..., description="Message identifier")
    role: MessageRole = Field(default=MessageRole.ASSISTANT, description="Message role")
    name: str | None = Field(None, description="Optional author name")


class TextMessageContentEvent(BaseEvent):
    """Event emitted for a text message content delta."""
    type: Literal[EventType.TEXT_MESSAGE_CONTENT] = EventType.TEXT_MESSAGE_CONTENT
    message_id: str = Field(..., description="Message identifier")
    delta: str = Field(..., description="Content fragment")


class TextMessageEndEvent(BaseEvent):
    """Event emitted when a text message ends."""
    type: Literal[EventType.TEXT_MESSAGE_END] = EventType.TEXT_MESSAGE_END
    message_id: str = Field(..., description="Message identifier")


class TextMessageChunkEvent(BaseEvent):
    """Self-contained message fragment for backends without start/end events."""
    type: Literal[EventType.TEXT_MESSAGE_CHUNK] = EventType.TEXT_MESSAGE_CHUNK
    message_id: str = Field(..., description="Message identifier")
    role: MessageRole = Field(default=MessageRole.ASSISTANT, description="Message role")
    delta: str = Field(default="", description="Content fragment")


class ToolCallStartEvent(BaseEvent):
    """Event emitted when a tool call starts."""
    type: Literal[EventType.TOOL_CALL_START] = EventType.TOOL_CALL_START
    tool_call_id: str = Field(..., description="Tool call identifier")
    tool_call_name: str = Field(..., description="Name of the tool")
    parent_message_id: str | None = Field(None, description="Message the call belongs to")


class ToolCallArgsEvent(BaseEvent):
    """Event emitted for a tool call arguments delta."""
    type: Literal[EventType.TOOL_CALL_ARGS] = EventType.TOOL_CALL_ARGS
    tool_call_id: str = Field(..., description="Tool call identifier")
    delta: str = Field(..., description="Arguments fragment")


class ToolCallEndEvent(BaseEvent):
    """Event emitted when a tool call's arguments are complete."""
    type: Literal[EventType.TOOL_CALL_END] = EventType.TOOL_CALL_END
    tool_call_id: str = Field(..., description="Tool call identifier")


class ToolCallChunkEvent(BaseEvent):
    """Self-contained tool call fragment; the first chunk must carry the name."""
    type: Literal[EventType.TOOL_CALL_CHUNK] = EventType.TOOL_CALL_CHUNK
    tool_call_id: str = Field(..., description="Tool call identifier")
    tool_call_name: str | None = Field(None, description="Name of the tool")
    parent_message_id: str | None = Field(None, description="Message the call belongs to")
    delta: str = Field(default="", description="Arguments fragment")


class PatchOp(str, Enum):
    """Supported state patch operations."""
    ADD = "add"
    REPLACE = "replace"
    REMOVE = "remove"


class PatchOperation(CamelModel):
    """One operation of a state delta batch."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    op: PatchOp = Field(..., description="Operation kind")
    path: str = Field(..., description="Slash (JSON pointer) or dot path")
    value: Any = Field(None, description="Value for add/replace")


class StateSnapshotEvent(BaseEvent):
    """Event carrying the full agent state."""
    type: Literal[EventType.STATE_SNAPSHOT] = EventType.STATE_SNAPSHOT
    snapshot: dict[str, Any] = Field(..., description="Full state object")


class StateDeltaEvent(BaseEvent):
    """Event carrying an ordered batch of state patch operations."""
    type: Literal[EventType.STATE_DELTA] = EventType.STATE_DELTA
    delta: list[PatchOperation] = Field(..., description="Patch operations")


class MessagesSnapshotEvent(BaseEvent):
    """Event carrying the full transcript."""
    type: Literal[EventType.MESSAGES_SNAPSHOT] = EventType.MESSAGES_SNAPSHOT
    messages: list[Message] = Field(..., description="All messages")


class StepStartedEvent(BaseEvent):
    """Event emitted when a named step of the run starts."""
    type: Literal[EventType.STEP_STARTED] = EventType.STEP_STARTED
    step_name: str = Field(..., description="Step name")


class StepFinishedEvent(BaseEvent):
    """Event emitted when a named step of the run finishes."""
    type: Literal[EventType.STEP_FINISHED] = EventType.STEP_FINISHED
    step_name: str = Field(..., description="Step name")


class CustomEvent(BaseEvent):
    """Application-defined event routed by name."""
    type: Literal[EventType.CUSTOM] = EventType.CUSTOM
    name: str = Field(..., description="Custom channel name")
    value: Any = Field(None, description="Custom payload")


class RawEvent(BaseEvent):
    """Passthrough of an upstream event outside the fixed set."""
    type: Literal[EventType.RAW] = EventType.RAW
    event: Any = Field(..., description="Upstream event")
    source: str | None = Field(None, description="Upstream source")


# Union type for all events
Event = Annotated[
    Union[
        RunStartedEvent,
        RunFinishedEvent,
        RunErrorEvent,
        TextMessageStartEvent,
        TextMessageContentEvent,
        TextMessageEndEvent,
        TextMessageChunkEvent,
        ToolCallStartEvent,
        ToolCallArgsEvent,
        ToolCallEndEvent,
        ToolCallChunkEvent,
        StateSnapshotEvent,
        StateDeltaEvent,
        MessagesSnapshotEvent,
        StepStartedEvent,
        StepFinishedEvent,
        CustomEvent,
        RawEvent,
    ],
    Field(discriminator="type"),
]


EVENT_CLASSES: dict[EventType, type[BaseEvent]] = {
    EventType.RUN_STARTED: RunStartedEvent,
    EventType.RUN_FINISHED: RunFinishedEvent,
    EventType.RUN_ERROR: RunErrorEvent,
    EventType.TEXT_MESSAGE_START: TextMessageStartEvent,
    EventType.TEXT_MESSAGE_CONTENT: TextMessageContentEvent,
    EventType.TEXT_MESSAGE_END: TextMessageEndEvent,
    EventType.TEXT_MESSAGE_CHUNK: TextMessageChunkEvent,
    EventType.TOOL_CALL_START: ToolCallStartEvent,
    EventType.TOOL_CALL_ARGS: ToolCallArgsEvent,
    EventType.TOOL_CALL_END: ToolCallEndEvent,
    EventType.TOOL_CALL_CHUNK: ToolCallChunkEvent,
    EventType.STATE_SNAPSHOT: StateSnapshotEvent,
    EventType.STATE_DELTA: StateDeltaEvent,
    EventType.MESSAGES_SNAPSHOT: MessagesSnapshotEvent,
    EventType.STEP_STARTED: StepStartedEvent,
    EventType.STEP_FINISHED: StepFinishedEvent,
    EventType.CUSTOM: CustomEvent,
    EventType.RAW: RawEvent,
}


def create_event(event_type: EventType, **kwargs) -> BaseEvent:
    """
    Factory function to create AG-UI events.

    Args:
        event_type: Type of event to create
        **kwargs: Event-specific parameters

    Returns:
        Appropriate event instance
    """
    event_class = EVENT_CLASSES.get(EventType(event_type))
    if not event_class:
        raise ValueError(f"Unknown event type: {event_type}")

    return event_class(**kwargs)
