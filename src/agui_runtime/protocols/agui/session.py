"""
A single AG-UI run: event intake, fanout and derived state.

RunSession gates each incoming event through the run lifecycle, publishes it
on the run's dispatcher, and projects it into the message transcript, the
tool call collection and the agent state. The projection is the first
consumer attached to the dispatcher, so derived state is current before any
other consumer sees the same event.
"""
import asyncio
from typing import Any, AsyncIterator, Callable, Iterable, Mapping, Optional

from agui_runtime.domain.exceptions import (
    PatchApplicationError,
    ProtocolError,
    ProtocolViolation,
    RunError,
)
from agui_runtime.domain.models import Message, Run, RunStatus, ToolCall
from agui_runtime.infrastructure.observability.context import log_context
from agui_runtime.infrastructure.observability.logging import get_logger
from agui_runtime.protocols.agui.codec import parse_event
from agui_runtime.protocols.agui.dispatcher import EventConsumer, EventDispatcher, SubscriptionHandle
from agui_runtime.protocols.agui.events import (
    BaseEvent,
    CustomEvent,
    EventType,
    MessagesSnapshotEvent,
    RunErrorEvent,
    StateDeltaEvent,
    StateSnapshotEvent,
    StepFinishedEvent,
    StepStartedEvent,
    TextMessageChunkEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
    TextMessageStartEvent,
    ToolCallArgsEvent,
    ToolCallChunkEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
)
from agui_runtime.protocols.agui.hooks import HookName, RunHooks
from agui_runtime.protocols.agui.lifecycle import RunController
from agui_runtime.protocols.agui.messages import MessageAssembler
from agui_runtime.protocols.agui.state import StateSynchronizer
from agui_runtime.protocols.agui.tool_calls import ToolCallAssembler

logger = get_logger(__name__)

CANCELLED_CODE = "CANCELLED"


class RunSession:
    """
    Runtime state of one (thread_id, run_id) run.

    Features:
    - Lifecycle gating: events before RUN_STARTED or after termination are rejected
    - Fanout of raw events to any number of consumers (push or polling)
    - Message, tool call and state projections
    - Named hooks (see agui_runtime.protocols.agui.hooks)
    - Cooperative cancellation
    """

    def __init__(
        self,
        thread_id: str,
        run_id: str,
        controller: RunController,
        *,
        initial_state: Optional[Mapping[str, Any]] = None,
        messages: Optional[Iterable[Message]] = None,
    ):
        self.thread_id = thread_id
        self.run_id = run_id
        self._controller = controller
        # Terminal snapshot; the controller may drop the run once it is superseded.
        self._final_run: Optional[Run] = None

        self.dispatcher = EventDispatcher(name=f"{thread_id}/{run_id}")
        self.messages = MessageAssembler()
        self.tool_calls = ToolCallAssembler()
        self.state_sync = StateSynchronizer(initial_state)
        self.hooks = RunHooks()
        self.violations: list[ProtocolError] = []
        self._done = asyncio.Event()

        if messages:
            self._load_messages(list(messages))

        self._handlers: dict[EventType, Callable[[Any], None]] = {
            EventType.RUN_STARTED: self._on_run_started,
            EventType.RUN_FINISHED: self._on_run_finished,
            EventType.RUN_ERROR: self._on_run_error,
            EventType.TEXT_MESSAGE_START: self._on_message_start,
            EventType.TEXT_MESSAGE_CONTENT: self._on_message_content,
            EventType.TEXT_MESSAGE_END: self._on_message_end,
            EventType.TEXT_MESSAGE_CHUNK: self._on_message_chunk,
            EventType.TOOL_CALL_START: self._on_tool_call_start,
            EventType.TOOL_CALL_ARGS: self._on_tool_call_args,
            EventType.TOOL_CALL_END: self._on_tool_call_end,
            EventType.TOOL_CALL_CHUNK: self._on_tool_call_chunk,
            EventType.STATE_SNAPSHOT: self._on_state_snapshot,
            EventType.STATE_DELTA: self._on_state_delta,
            EventType.MESSAGES_SNAPSHOT: self._on_messages_snapshot,
            EventType.STEP_STARTED: self._on_step_started,
            EventType.STEP_FINISHED: self._on_step_finished,
            EventType.CUSTOM: self._on_custom,
        }
        self._projection = self.dispatcher.attach(self._project)

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def run(self) -> Run:
        if self._final_run is not None:
            return self._final_run.model_copy()
        return self._controller.get(self.thread_id, self.run_id)

    @property
    def status(self) -> RunStatus:
        if self._final_run is not None:
            return self._final_run.status
        return self._controller.status(self.thread_id, self.run_id)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def error(self) -> Optional[RunError]:
        """The run's terminal error, surfaced verbatim, or None."""
        run = self.run
        if run.status != RunStatus.ERRORED:
            return None
        return RunError(
            run.error_message,
            code=run.error_code,
            details={"thread_id": self.thread_id, "run_id": self.run_id},
        )

    def transcript(self) -> list[Message]:
        """Messages in insertion order, each with its sealed tool calls attached."""
        return [
            message.model_copy(update={"tool_calls": self.tool_calls.for_message(message.id)})
            for message in self.messages.messages()
        ]

    def state(self) -> dict[str, Any]:
        return self.state_sync.read()

    def tool_call_list(self) -> list[ToolCall]:
        return self.tool_calls.tool_calls()

    async def wait(self) -> Run:
        """Wait until the run reaches a terminal state."""
        await self._done.wait()
        return self.run

    # ------------------------------------------------------------------
    # Consumers
    # ------------------------------------------------------------------

    def attach(self, consumer: Optional[EventConsumer] = None, *, replay: bool = False) -> SubscriptionHandle:
        """Attach a raw event consumer; None creates a polling subscription."""
        return self.dispatcher.attach(consumer, replay=replay)

    def detach(self, handle: SubscriptionHandle) -> bool:
        return self.dispatcher.detach(handle)

    def poll(self, handle: SubscriptionHandle) -> list[BaseEvent]:
        return self.dispatcher.poll(handle)

    async def iter_events(self, *, replay: bool = False) -> AsyncIterator[BaseEvent]:
        """Yield this run's events until it terminates and the buffer is drained."""
        handle = self.dispatcher.attach(replay=replay)
        try:
            async for event in self.dispatcher.iter_events(handle):
                yield event
        finally:
            self.dispatcher.detach(handle)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def process(self, event: BaseEvent | Mapping[str, Any] | str) -> bool:
        """
        Accept one event from the run's ordered sequence.

        Protocol errors are recorded in `violations`, logged and reported via
        the protocol_error hook; they never stop the run.

        Returns:
            True if the event was published to consumers
        """
        with log_context(thread_id=self.thread_id, run_id=self.run_id):
            try:
                event = parse_event(event)
                self._advance_lifecycle(event)
            except ProtocolError as e:
                self._record(e, event if isinstance(event, BaseEvent) else None)
                return False

            self.dispatcher.publish(event)

            if self.is_terminal:
                self._release()
            return True

    def fail(self, code: Optional[str], message: str) -> bool:
        """
        Terminate the run locally with an error.

        Returns:
            False if the run was already terminal
        """
        if self.is_terminal:
            return False
        return self.process(
            RunErrorEvent(message=message, code=code, thread_id=self.thread_id, run_id=self.run_id)
        )

    def cancel(self, reason: str = "Run cancelled") -> bool:
        """
        Cancel the run.

        Marks the run errored, delivers a synthesized RUN_ERROR and stops any
        further delivery for this run. Aborting the underlying transport is
        the caller's concern.

        Returns:
            False if the run was already terminal
        """
        cancelled = self.fail(CANCELLED_CODE, reason)
        if cancelled:
            logger.info("run cancelled", thread_id=self.thread_id, run_id=self.run_id, reason=reason)
        return cancelled

    def _advance_lifecycle(self, event: BaseEvent) -> None:
        status = self.status

        if status.is_terminal:
            logger.info("late event dropped", event_type=event.type.value, status=status.value)
            raise ProtocolViolation(
                f"{event.type.value} received after run {self.run_id} terminated",
                details={"event_type": event.type.value, "status": status.value},
            )

        if event.type == EventType.RUN_STARTED:
            self._check_run_ids(event)
            self._controller.start(self.thread_id, self.run_id)
        elif event.type == EventType.RUN_FINISHED:
            self._check_run_ids(event)
            self._final_run = self._controller.finish(self.thread_id, self.run_id)
        elif event.type == EventType.RUN_ERROR:
            if event.run_id is not None or event.thread_id is not None:
                self._check_run_ids(event)
            self._final_run = self._controller.fail(self.thread_id, self.run_id, event.code, event.message)
        elif status == RunStatus.PENDING:
            raise ProtocolViolation(
                f"{event.type.value} received before RUN_STARTED",
                details={"event_type": event.type.value},
            )
        elif event.type == EventType.STEP_STARTED:
            self._controller.enter_step(self.thread_id, self.run_id, event.step_name)
        elif event.type == EventType.STEP_FINISHED:
            self._controller.leave_step(self.thread_id, self.run_id, event.step_name)

    def _check_run_ids(self, event: BaseEvent) -> None:
        thread_id = getattr(event, "thread_id", None)
        run_id = getattr(event, "run_id", None)
        if (thread_id, run_id) != (self.thread_id, self.run_id):
            raise ProtocolViolation(
                f"{event.type.value} for a different run",
                details={
                    "event_type": event.type.value,
                    "event_thread_id": thread_id,
                    "event_run_id": run_id,
                },
            )

    def _release(self) -> None:
        self.dispatcher.close()
        self._done.set()

    def _record(self, error: ProtocolError, event: Optional[BaseEvent]) -> None:
        self.violations.append(error)
        logger.warning(
            "event rejected",
            error_code=error.error_code.value,
            reason=error.message,
            event_type=event.type.value if event is not None else None,
        )
        self.hooks.emit(HookName.PROTOCOL_ERROR, error)

    def _load_messages(self, messages: list[Message]) -> None:
        self.messages.load_snapshot(messages)
        self.tool_calls.load_snapshot(
            call.model_copy(update={"parent_message_id": call.parent_message_id or message.id})
            for message in messages
            for call in message.tool_calls
        )

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def _project(self, event: BaseEvent) -> None:
        handler = self._handlers.get(event.type)
        if handler is None:
            return
        try:
            handler(event)
        except ProtocolError as e:
            self._record(e, event)

    def _on_run_started(self, event) -> None:
        self.hooks.emit(HookName.RUN_STARTED, self.run)

    def _on_run_finished(self, event) -> None:
        self._seal_chunked()
        self.hooks.emit(HookName.RUN_FINISHED, self.run)

    def _on_run_error(self, event: RunErrorEvent) -> None:
        self._seal_chunked()
        self.hooks.emit(HookName.RUN_ERROR, event.code, event.message)

    def _on_message_start(self, event: TextMessageStartEvent) -> None:
        self.messages.on_start(event.message_id, event.role, event.name)

    def _on_message_content(self, event: TextMessageContentEvent) -> None:
        self.messages.on_content_delta(event.message_id, event.delta)
        self.hooks.emit(HookName.MESSAGE_CONTENT_APPENDED, event.message_id, event.delta)

    def _on_message_end(self, event: TextMessageEndEvent) -> None:
        message = self.messages.on_end(event.message_id)
        self.hooks.emit(HookName.MESSAGE_COMPLETED, self._with_tool_calls(message))

    def _on_message_chunk(self, event: TextMessageChunkEvent) -> None:
        self.messages.on_chunk(event.message_id, event.role, event.delta)
        if event.delta:
            self.hooks.emit(HookName.MESSAGE_CONTENT_APPENDED, event.message_id, event.delta)

    def _on_tool_call_start(self, event: ToolCallStartEvent) -> None:
        self.tool_calls.on_start(event.tool_call_id, event.tool_call_name, event.parent_message_id)

    def _on_tool_call_args(self, event: ToolCallArgsEvent) -> None:
        self.tool_calls.on_args_delta(event.tool_call_id, event.delta)

    def _on_tool_call_end(self, event: ToolCallEndEvent) -> None:
        call = self.tool_calls.on_end(event.tool_call_id)
        self.hooks.emit(HookName.TOOL_CALL_RESOLVED, call.name, call.arguments)

    def _on_tool_call_chunk(self, event: ToolCallChunkEvent) -> None:
        self.tool_calls.on_chunk(event.tool_call_id, event.tool_call_name, event.parent_message_id, event.delta)

    def _on_state_snapshot(self, event: StateSnapshotEvent) -> None:
        state = self.state_sync.apply_snapshot(event.snapshot)
        self.hooks.emit(HookName.STATE_CHANGED, state, True, None)

    def _on_state_delta(self, event: StateDeltaEvent) -> None:
        try:
            state = self.state_sync.apply_delta(event.delta)
        except PatchApplicationError as e:
            self.hooks.emit(HookName.STATE_CHANGED, self.state_sync.read(), False, e)
            raise
        self.hooks.emit(HookName.STATE_CHANGED, state, True, None)

    def _on_messages_snapshot(self, event: MessagesSnapshotEvent) -> None:
        self._load_messages(event.messages)

    def _on_step_started(self, event: StepStartedEvent) -> None:
        self.hooks.emit(HookName.STEP_STARTED, event.step_name)

    def _on_step_finished(self, event: StepFinishedEvent) -> None:
        self.hooks.emit(HookName.STEP_FINISHED, event.step_name)

    def _on_custom(self, event: CustomEvent) -> None:
        self.hooks.emit_custom(event.name, event.value)

    def _seal_chunked(self) -> None:
        # Chunked entities have no end event; the terminal run event seals them.
        for call in self.tool_calls.seal_chunked():
            self.hooks.emit(HookName.TOOL_CALL_RESOLVED, call.name, call.arguments)
        for message in self.messages.seal_chunked():
            self.hooks.emit(HookName.MESSAGE_COMPLETED, self._with_tool_calls(message))

        unsealed = self.messages.open_ids() + self.tool_calls.open_ids()
        if unsealed:
            logger.warning("run terminated with unsealed entities", entity_ids=unsealed)

    def _with_tool_calls(self, message: Message) -> Message:
        return message.model_copy(update={"tool_calls": self.tool_calls.for_message(message.id)})
