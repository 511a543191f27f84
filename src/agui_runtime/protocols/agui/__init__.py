"""
Agent UI (AG-UI) protocol runtime.

Consumes the ordered event sequence of a remote agent run and reconstructs
the message transcript, tool calls and agent state, with fanout to any number
of consumers.
"""
from agui_runtime.protocols.agui.events import (
    EventType,
    Event,
    BaseEvent,
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
    PatchOp,
    PatchOperation,
    create_event,
)
from agui_runtime.protocols.agui.codec import parse_event, encode_event, encode_sse, iter_sse_events
from agui_runtime.protocols.agui.dispatcher import EventDispatcher, EventLog, ListenerSet, SubscriptionHandle
from agui_runtime.protocols.agui.messages import MessageAssembler
from agui_runtime.protocols.agui.tool_calls import ToolCallAssembler
from agui_runtime.protocols.agui.state import StateSynchronizer
from agui_runtime.protocols.agui.lifecycle import RunController
from agui_runtime.protocols.agui.hooks import HookName, RunHooks
from agui_runtime.protocols.agui.session import RunSession
from agui_runtime.protocols.agui.transport import EventTransport, HttpEventTransport
from agui_runtime.protocols.agui.runtime import AgentRuntime

__all__ = [
    # Event types
    "EventType",
    "Event",
    "BaseEvent",

    # Run events
    "RunStartedEvent",
    "RunFinishedEvent",
    "RunErrorEvent",

    # Message events
    "TextMessageStartEvent",
    "TextMessageContentEvent",
    "TextMessageEndEvent",
    "TextMessageChunkEvent",

    # Tool call events
    "ToolCallStartEvent",
    "ToolCallArgsEvent",
    "ToolCallEndEvent",
    "ToolCallChunkEvent",

    # State events
    "StateSnapshotEvent",
    "StateDeltaEvent",
    "MessagesSnapshotEvent",
    "PatchOp",
    "PatchOperation",

    # Step and extension events
    "StepStartedEvent",
    "StepFinishedEvent",
    "CustomEvent",
    "RawEvent",

    # Codec
    "create_event",
    "parse_event",
    "encode_event",
    "encode_sse",
    "iter_sse_events",

    # Fanout
    "EventDispatcher",
    "EventLog",
    "ListenerSet",
    "SubscriptionHandle",

    # Projections
    "MessageAssembler",
    "ToolCallAssembler",
    "StateSynchronizer",
    "RunController",
    "HookName",
    "RunHooks",

    # Runtime
    "RunSession",
    "AgentRuntime",
    "EventTransport",
    "HttpEventTransport",
]
