"""
Message assembly from AG-UI message events.

Messages arrive either as a start -> content* -> end triple or as a series of
self-contained chunks. Content is the concatenation of deltas in arrival
order; a sealed message accepts no further mutation.
"""
from typing import Iterable, Optional

from agui_runtime.domain.exceptions import ProtocolViolation, UnknownEntity
from agui_runtime.domain.models import Message, MessageRole
from agui_runtime.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class MessageAssembler:
    """
    Builds Message records from message events.

    Owns the message collection for one run, keyed by id in insertion order
    so the transcript can be replayed. Read methods return copies.
    """

    def __init__(self):
        self._messages: dict[str, Message] = {}
        self._chunked: set[str] = set()

    def on_start(
        self,
        message_id: str,
        role: MessageRole = MessageRole.ASSISTANT,
        name: Optional[str] = None,
    ) -> Message:
        """
        Open a new, empty message.

        Raises:
            ProtocolViolation: If a message with this id already exists
        """
        existing = self._messages.get(message_id)
        if existing is not None:
            reason = "already sealed" if existing.sealed else "already open"
            raise ProtocolViolation(
                f"Duplicate start for message {message_id} ({reason})",
                details={"message_id": message_id},
            )

        message = Message(id=message_id, role=role, name=name)
        self._messages[message_id] = message
        logger.debug("message started", message_id=message_id, role=message.role.value)
        return message.model_copy(deep=True)

    def on_content_delta(self, message_id: str, delta: str) -> Message:
        """
        Append a content fragment to an open message.

        Raises:
            UnknownEntity: If no message with this id was started
            ProtocolViolation: If the message is already sealed
        """
        message = self._require_open(message_id)
        message.content += delta
        return message.model_copy(deep=True)

    def on_end(self, message_id: str) -> Message:
        """
        Seal an open message.

        Raises:
            UnknownEntity: If no message with this id was started
            ProtocolViolation: If the message is already sealed
        """
        message = self._require_open(message_id)
        message.sealed = True
        self._chunked.discard(message_id)
        logger.debug("message sealed", message_id=message_id, length=len(message.content))
        return message.model_copy(deep=True)

    def on_chunk(
        self,
        message_id: str,
        role: MessageRole = MessageRole.ASSISTANT,
        delta: str = "",
    ) -> Message:
        """
        Start the message if absent, then append the fragment.

        Chunked messages are not sealed here; seal_chunked() seals them when
        the run terminates.

        Raises:
            ProtocolViolation: If the message is already sealed
        """
        message = self._messages.get(message_id)
        if message is None:
            message = Message(id=message_id, role=role)
            self._messages[message_id] = message
            self._chunked.add(message_id)
            logger.debug("message synthesized from chunk", message_id=message_id, role=message.role.value)
        elif message.sealed:
            raise ProtocolViolation(
                f"Chunk for sealed message {message_id}",
                details={"message_id": message_id},
            )

        message.content += delta
        return message.model_copy(deep=True)

    def seal_chunked(self) -> list[Message]:
        """Seal every message that was opened by a chunk and is still open."""
        sealed = []
        for message_id in list(self._chunked):
            message = self._messages[message_id]
            if not message.sealed:
                message.sealed = True
                sealed.append(message.model_copy(deep=True))
        self._chunked.clear()
        return sealed

    def load_snapshot(self, messages: Iterable[Message]) -> None:
        """
        Replace the collection with already-complete messages.

        Tool calls embedded in the messages are not kept here; they belong to
        the tool call assembler.
        """
        self._messages = {
            m.id: m.model_copy(deep=True, update={"sealed": True, "tool_calls": []})
            for m in messages
        }
        self._chunked.clear()

    def get(self, message_id: str) -> Optional[Message]:
        message = self._messages.get(message_id)
        return message.model_copy(deep=True) if message is not None else None

    def messages(self) -> list[Message]:
        """All messages, in insertion order."""
        return [m.model_copy(deep=True) for m in self._messages.values()]

    def open_ids(self) -> list[str]:
        return [m.id for m in self._messages.values() if not m.sealed]

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._messages

    def __len__(self) -> int:
        return len(self._messages)

    def _require_open(self, message_id: str) -> Message:
        message = self._messages.get(message_id)
        if message is None:
            raise UnknownEntity(
                f"No open message {message_id}",
                details={"message_id": message_id},
            )
        if message.sealed:
            raise ProtocolViolation(
                f"Message {message_id} is sealed",
                details={"message_id": message_id},
            )
        return message
