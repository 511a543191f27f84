"""
Wire codec for AG-UI events.

Decodes JSON text, JSON mappings and Server-Sent Event lines into event
models, and renders events back into SSE frames.
"""
import json
from typing import Any, Iterable, Iterator, Mapping, Optional

from pydantic import TypeAdapter, ValidationError

from agui_runtime.domain.exceptions import ProtocolViolation
from agui_runtime.protocols.agui.events import BaseEvent, Event

_event_adapter: TypeAdapter = TypeAdapter(Event)

SSE_DATA_PREFIX = "data:"
SSE_DONE_SENTINEL = "[DONE]"


def parse_event(data: Mapping[str, Any] | str | bytes | BaseEvent) -> BaseEvent:
    """
    Validate wire data into the matching event model.

    Args:
        data: JSON text, a decoded JSON object, or an already-built event

    Returns:
        Event instance

    Raises:
        ProtocolViolation: If the payload is not a JSON object, the type is
            unknown, or required fields are missing
    """
    if isinstance(data, BaseEvent):
        return data

    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise ProtocolViolation("Event payload is not valid JSON", details={"payload": str(data)[:200]}) from e

    if not isinstance(data, Mapping):
        raise ProtocolViolation("Event payload is not a JSON object", details={"payload": str(data)[:200]})

    try:
        return _event_adapter.validate_python(dict(data))
    except ValidationError as e:
        raise ProtocolViolation(
            "Malformed event",
            details={
                "type": data.get("type"),
                "errors": e.errors(include_url=False, include_context=False),
            },
        ) from e


def encode_event(event: BaseEvent) -> dict[str, Any]:
    """Serialize an event to its camelCase wire mapping."""
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


def encode_sse(event: BaseEvent) -> str:
    """
    Format event as a Server-Sent Event frame.

    Args:
        event: Event object

    Returns:
        SSE formatted string
    """
    return f"data: {json.dumps(encode_event(event))}\n\n"


def sse_data(line: str) -> Optional[str]:
    """
    Extract the data payload of one SSE line.

    Returns None for lines that carry no event (comments, other fields, blank
    lines, the [DONE] sentinel).
    """
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None

    payload = line[len(SSE_DATA_PREFIX):].strip()
    if not payload or payload == SSE_DONE_SENTINEL:
        return None
    return payload


def iter_sse_events(lines: Iterable[str]) -> Iterator[BaseEvent]:
    """
    Decode an iterable of SSE text lines into events.

    Raises:
        ProtocolViolation: On the first payload that is not a valid event
    """
    for line in lines:
        payload = sse_data(line)
        if payload is not None:
            yield parse_event(payload)
