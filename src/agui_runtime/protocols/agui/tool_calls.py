"""
Tool call assembly from AG-UI tool call events.

The tool name is taken from the start event (or the first chunk) and never
changes afterwards. An arguments delta for an id that was never started is an
error; no placeholder call is invented for it.
"""
import json
from typing import Iterable, Optional

from agui_runtime.domain.exceptions import ProtocolViolation, UnknownEntity
from agui_runtime.domain.models import ToolCall
from agui_runtime.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ToolCallAssembler:
    """Builds ToolCall records from tool call events, keyed by id in insertion order."""

    def __init__(self):
        self._calls: dict[str, ToolCall] = {}
        self._chunked: set[str] = set()

    def on_start(
        self,
        tool_call_id: str,
        name: str,
        parent_message_id: Optional[str] = None,
    ) -> ToolCall:
        """
        Open a new tool call.

        Raises:
            ProtocolViolation: If the id already exists or no name is declared
        """
        if not name:
            raise ProtocolViolation(
                f"Tool call {tool_call_id} started without a name",
                details={"tool_call_id": tool_call_id},
            )
        if tool_call_id in self._calls:
            raise ProtocolViolation(
                f"Duplicate start for tool call {tool_call_id}",
                details={"tool_call_id": tool_call_id},
            )

        call = ToolCall(id=tool_call_id, name=name, parent_message_id=parent_message_id)
        self._calls[tool_call_id] = call
        logger.debug("tool call started", tool_call_id=tool_call_id, tool_name=name)
        return call.model_copy()

    def on_args_delta(self, tool_call_id: str, delta: str) -> ToolCall:
        """
        Append an arguments fragment to an open tool call.

        Raises:
            UnknownEntity: If no tool call with this id was started
            ProtocolViolation: If the tool call is already sealed
        """
        call = self._require_open(tool_call_id)
        call.arguments += delta
        return call.model_copy()

    def on_end(self, tool_call_id: str) -> ToolCall:
        """
        Seal an open tool call.

        Raises:
            UnknownEntity: If no tool call with this id was started
            ProtocolViolation: If the tool call is already sealed
        """
        call = self._require_open(tool_call_id)
        call.sealed = True
        self._chunked.discard(tool_call_id)
        self._check_arguments(call)
        logger.debug("tool call sealed", tool_call_id=tool_call_id, tool_name=call.name)
        return call.model_copy()

    def on_chunk(
        self,
        tool_call_id: str,
        name: Optional[str] = None,
        parent_message_id: Optional[str] = None,
        delta: str = "",
    ) -> ToolCall:
        """
        Start the tool call if absent, then append the fragment.

        Raises:
            UnknownEntity: If the call is unknown and the chunk declares no name
            ProtocolViolation: If the call is sealed or the chunk renames it
        """
        call = self._calls.get(tool_call_id)
        if call is None:
            if not name:
                raise UnknownEntity(
                    f"No tool call {tool_call_id} and chunk declares no name",
                    details={"tool_call_id": tool_call_id},
                )
            call = ToolCall(id=tool_call_id, name=name, parent_message_id=parent_message_id)
            self._calls[tool_call_id] = call
            self._chunked.add(tool_call_id)
        elif call.sealed:
            raise ProtocolViolation(
                f"Chunk for sealed tool call {tool_call_id}",
                details={"tool_call_id": tool_call_id},
            )
        elif name and name != call.name:
            raise ProtocolViolation(
                f"Tool call {tool_call_id} cannot be renamed",
                details={"tool_call_id": tool_call_id, "name": call.name, "new_name": name},
            )

        call.arguments += delta
        return call.model_copy()

    def seal_chunked(self) -> list[ToolCall]:
        """Seal every tool call that was opened by a chunk and is still open."""
        sealed = []
        for tool_call_id in list(self._chunked):
            call = self._calls[tool_call_id]
            if not call.sealed:
                call.sealed = True
                self._check_arguments(call)
                sealed.append(call.model_copy())
        self._chunked.clear()
        return sealed

    def load_snapshot(self, calls: Iterable[ToolCall]) -> None:
        """Replace the collection with already-complete tool calls."""
        self._calls = {c.id: c.model_copy(update={"sealed": True}) for c in calls}
        self._chunked.clear()

    def get(self, tool_call_id: str) -> Optional[ToolCall]:
        call = self._calls.get(tool_call_id)
        return call.model_copy() if call is not None else None

    def tool_calls(self) -> list[ToolCall]:
        """All tool calls, in insertion order."""
        return [c.model_copy() for c in self._calls.values()]

    def for_message(self, message_id: str) -> list[ToolCall]:
        """Sealed tool calls attached to a message."""
        return [
            c.model_copy()
            for c in self._calls.values()
            if c.sealed and c.parent_message_id == message_id
        ]

    def open_ids(self) -> list[str]:
        return [c.id for c in self._calls.values() if not c.sealed]

    def __contains__(self, tool_call_id: object) -> bool:
        return tool_call_id in self._calls

    def __len__(self) -> int:
        return len(self._calls)

    def _require_open(self, tool_call_id: str) -> ToolCall:
        call = self._calls.get(tool_call_id)
        if call is None:
            raise UnknownEntity(
                f"No open tool call {tool_call_id}",
                details={"tool_call_id": tool_call_id},
            )
        if call.sealed:
            raise ProtocolViolation(
                f"Tool call {tool_call_id} is sealed",
                details={"tool_call_id": tool_call_id},
            )
        return call

    @staticmethod
    def _check_arguments(call: ToolCall) -> None:
        if not call.arguments:
            return
        try:
            json.loads(call.arguments)
        except json.JSONDecodeError:
            logger.warning("tool call arguments are not valid JSON", tool_call_id=call.id, tool_name=call.name)
