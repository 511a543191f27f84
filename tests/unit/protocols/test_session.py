"""Unit tests for RunSession event intake and projections."""

import asyncio

import pytest

from agui_runtime.domain.exceptions import (
    PatchApplicationError,
    ProtocolViolation,
    RunError,
    UnknownEntity,
)
from agui_runtime.domain.models import MessageRole, RunStatus
from agui_runtime.protocols.agui.events import EventType
from agui_runtime.protocols.agui.hooks import HookName
from tests.conftest import RUN_ID, THREAD_ID, run_finished, run_started


def text(message_id: str, delta: str) -> dict:
    return {"type": "TEXT_MESSAGE_CONTENT", "messageId": message_id, "delta": delta}


@pytest.mark.unit
class TestEndToEnd:
    """Test a complete run through the session."""

    def test_message_with_tool_call(self, session):
        events = [
            run_started(),
            {"type": "TEXT_MESSAGE_START", "messageId": "m1", "role": "assistant"},
            text("m1", "Hi"),
            {"type": "TOOL_CALL_START", "toolCallId": "t1", "toolCallName": "lookup", "parentMessageId": "m1"},
            {"type": "TOOL_CALL_ARGS", "toolCallId": "t1", "delta": '{"q":1}'},
            {"type": "TOOL_CALL_END", "toolCallId": "t1"},
            {"type": "TEXT_MESSAGE_END", "messageId": "m1"},
            run_finished(),
        ]

        assert all(session.process(event) for event in events)

        assert session.status == RunStatus.FINISHED
        transcript = session.transcript()
        assert len(transcript) == 1

        message = transcript[0]
        assert (message.id, message.role, message.content, message.sealed) == (
            "m1", MessageRole.ASSISTANT, "Hi", True,
        )
        assert len(message.tool_calls) == 1
        call = message.tool_calls[0]
        assert (call.id, call.name, call.arguments, call.sealed) == ("t1", "lookup", '{"q":1}', True)
        assert session.violations == []

    def test_consumers_see_every_event_in_order(self, session):
        seen = []
        session.attach(lambda e: seen.append(e.type))

        session.process(run_started())
        session.process({"type": "STEP_STARTED", "stepName": "plan"})
        session.process({"type": "STEP_FINISHED", "stepName": "plan"})
        session.process(run_finished())

        assert seen == [
            EventType.RUN_STARTED,
            EventType.STEP_STARTED,
            EventType.STEP_FINISHED,
            EventType.RUN_FINISHED,
        ]

    def test_consumers_observe_projected_state(self, running_session):
        observed = []
        running_session.attach(lambda e: observed.append(running_session.state()))

        running_session.process({"type": "STATE_SNAPSHOT", "snapshot": {"a": 1}})

        assert observed == [{"a": 1}]


@pytest.mark.unit
class TestLifecycleGating:
    """Test events against the run status."""

    def test_events_before_run_started_are_rejected(self, session):
        assert not session.process(text("m1", "x"))

        assert session.status == RunStatus.PENDING
        assert isinstance(session.violations[0], ProtocolViolation)

    def test_run_started_for_another_run_is_rejected(self, session):
        assert not session.process(run_started(run_id="other"))
        assert session.status == RunStatus.PENDING

    @pytest.mark.parametrize(
        "terminal",
        [run_finished(), {"type": "RUN_ERROR", "message": "boom", "code": "E"}],
    )
    def test_terminal_state_is_absorbing(self, running_session, terminal):
        running_session.process(terminal)
        status = running_session.status
        seen = []
        running_session.attach(lambda e: seen.append(e))

        for late in (run_started(), run_finished(), text("m1", "x"), {"type": "RUN_ERROR", "message": "again"}):
            assert not running_session.process(late)

        assert running_session.status == status
        assert seen == []
        assert len(running_session.dispatcher.log) == 2

    def test_run_error_surfaces_verbatim(self, running_session):
        errors = []
        running_session.hooks.attach(HookName.RUN_ERROR, lambda code, message: errors.append((code, message)))

        running_session.process({"type": "RUN_ERROR", "message": "model overloaded", "code": "OVERLOADED"})

        assert errors == [("OVERLOADED", "model overloaded")]
        error = running_session.error
        assert isinstance(error, RunError)
        assert (error.code, error.message) == ("OVERLOADED", "model overloaded")

    def test_finished_run_has_no_error(self, running_session):
        running_session.process(run_finished())
        assert running_session.error is None

    async def test_wait_returns_terminal_run(self, running_session):
        waiter = asyncio.create_task(running_session.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        running_session.process(run_finished())

        run = await asyncio.wait_for(waiter, timeout=1)
        assert run.status == RunStatus.FINISHED


@pytest.mark.unit
class TestProtocolErrorRecovery:
    """Test that protocol errors are recovered locally."""

    def test_unknown_entity_does_not_fail_the_run(self, running_session):
        errors = []
        running_session.hooks.attach(HookName.PROTOCOL_ERROR, errors.append)

        running_session.process(text("missing", "x"))
        running_session.process({"type": "TOOL_CALL_ARGS", "toolCallId": "missing", "delta": "{}"})

        assert running_session.status == RunStatus.RUNNING
        assert [type(e) for e in errors] == [UnknownEntity, UnknownEntity]
        assert running_session.transcript() == []
        assert running_session.tool_call_list() == []

    def test_delta_after_end_leaves_content_unchanged(self, running_session):
        running_session.process({"type": "TEXT_MESSAGE_START", "messageId": "m1"})
        running_session.process(text("m1", "done"))
        running_session.process({"type": "TEXT_MESSAGE_END", "messageId": "m1"})
        running_session.process(text("m1", "more"))

        assert running_session.transcript()[0].content == "done"
        assert isinstance(running_session.violations[-1], ProtocolViolation)

    def test_malformed_event_is_recorded(self, running_session):
        assert not running_session.process("{broken")
        assert not running_session.process({"type": "UNKNOWN"})

        assert len(running_session.violations) == 2
        assert running_session.status == RunStatus.RUNNING

    def test_failed_delta_keeps_state_and_reports(self, running_session):
        changes = []
        running_session.hooks.attach(
            HookName.STATE_CHANGED,
            lambda state, ok, error: changes.append((state, ok, type(error))),
        )
        running_session.process({"type": "STATE_SNAPSHOT", "snapshot": {"a": 1}})
        running_session.process({
            "type": "STATE_DELTA",
            "delta": [
                {"op": "replace", "path": "/a", "value": 2},
                {"op": "remove", "path": "/b"},
            ],
        })

        assert running_session.state() == {"a": 1}
        assert changes == [
            ({"a": 1}, True, type(None)),
            ({"a": 1}, False, PatchApplicationError),
        ]
        assert isinstance(running_session.violations[-1], PatchApplicationError)


@pytest.mark.unit
class TestChunks:
    """Test chunk-mode assembly through the session."""

    def test_run_finished_seals_chunked_entities(self, running_session):
        completed, resolved = [], []
        running_session.hooks.attach(HookName.MESSAGE_COMPLETED, completed.append)
        running_session.hooks.attach(HookName.TOOL_CALL_RESOLVED, lambda name, args: resolved.append((name, args)))

        running_session.process({"type": "TEXT_MESSAGE_CHUNK", "messageId": "m1", "delta": "Hel"})
        running_session.process({"type": "TEXT_MESSAGE_CHUNK", "messageId": "m1", "delta": "lo"})
        running_session.process({
            "type": "TOOL_CALL_CHUNK",
            "toolCallId": "c1",
            "toolCallName": "search",
            "parentMessageId": "m1",
            "delta": '{"q":',
        })
        running_session.process({"type": "TOOL_CALL_CHUNK", "toolCallId": "c1", "delta": '"x"}'})

        assert not running_session.transcript()[0].sealed

        running_session.process(run_finished())

        message = running_session.transcript()[0]
        assert message.content == "Hello"
        assert message.sealed
        assert [c.id for c in message.tool_calls] == ["c1"]
        assert resolved == [("search", '{"q":"x"}')]
        assert [m.id for m in completed] == ["m1"]
        assert completed[0].tool_calls[0].name == "search"

    @pytest.mark.parametrize("terminate", ["run_error", "cancel"])
    def test_error_termination_seals_chunked_entities(self, running_session, terminate):
        completed, resolved = [], []
        running_session.hooks.attach(HookName.MESSAGE_COMPLETED, completed.append)
        running_session.hooks.attach(HookName.TOOL_CALL_RESOLVED, lambda name, args: resolved.append(name))

        running_session.process({"type": "TEXT_MESSAGE_CHUNK", "messageId": "c1", "delta": "partial"})
        running_session.process({
            "type": "TOOL_CALL_CHUNK",
            "toolCallId": "t1",
            "toolCallName": "search",
            "parentMessageId": "c1",
            "delta": "{}",
        })

        if terminate == "cancel":
            running_session.cancel()
        else:
            running_session.process({"type": "RUN_ERROR", "message": "boom", "code": "E"})

        assert running_session.status == RunStatus.ERRORED
        message = running_session.transcript()[0]
        assert message.sealed
        assert [c.id for c in message.tool_calls] == ["t1"]
        assert running_session.messages.open_ids() == []
        assert running_session.tool_calls.open_ids() == []
        assert [m.id for m in completed] == ["c1"]
        assert resolved == ["search"]

    def test_nameless_first_tool_chunk_is_rejected(self, running_session):
        running_session.process({"type": "TOOL_CALL_CHUNK", "toolCallId": "c1", "delta": "{}"})

        assert running_session.tool_call_list() == []
        assert isinstance(running_session.violations[-1], UnknownEntity)


@pytest.mark.unit
class TestHooks:
    """Test hooks derived from the event stream."""

    def test_hook_sequence(self, session):
        calls = []
        hooks = session.hooks
        hooks.attach(HookName.RUN_STARTED, lambda run: calls.append(("run_started", run.status)))
        hooks.attach(HookName.MESSAGE_CONTENT_APPENDED, lambda mid, delta: calls.append(("content", delta)))
        hooks.attach(HookName.MESSAGE_COMPLETED, lambda m: calls.append(("completed", m.content)))
        hooks.attach(HookName.STEP_STARTED, lambda name: calls.append(("step", name)))
        hooks.attach(HookName.RUN_FINISHED, lambda run: calls.append(("run_finished", run.status)))

        session.process(run_started())
        session.process({"type": "STEP_STARTED", "stepName": "answer"})
        session.process({"type": "TEXT_MESSAGE_START", "messageId": "m1"})
        session.process(text("m1", "Hi"))
        session.process({"type": "TEXT_MESSAGE_END", "messageId": "m1"})
        session.process(run_finished())

        assert calls == [
            ("run_started", RunStatus.RUNNING),
            ("step", "answer"),
            ("content", "Hi"),
            ("completed", "Hi"),
            ("run_finished", RunStatus.FINISHED),
        ]

    def test_custom_events_route_by_name(self, running_session):
        questions = []
        running_session.hooks.attach_custom("suggested_questions", questions.append)

        running_session.process({"type": "CUSTOM", "name": "suggested_questions", "value": ["Why?"]})

        assert questions == [["Why?"]]

    def test_raw_events_reach_consumers(self, running_session):
        seen = []
        running_session.attach(seen.append)

        running_session.process({"type": "RAW", "event": {"upstream": True}, "source": "openai"})

        assert seen[0].event == {"upstream": True}


@pytest.mark.unit
class TestSnapshots:
    """Test snapshot events through the session."""

    def test_messages_snapshot_replaces_transcript(self, running_session):
        running_session.process({"type": "TEXT_MESSAGE_START", "messageId": "draft"})
        running_session.process({
            "type": "MESSAGES_SNAPSHOT",
            "messages": [
                {"id": "u1", "role": "user", "content": "Hi"},
                {
                    "id": "a1",
                    "role": "assistant",
                    "content": "",
                    "toolCalls": [
                        {"id": "c1", "type": "function", "function": {"name": "search", "arguments": "{}"}},
                    ],
                },
            ],
        })

        transcript = running_session.transcript()
        assert [m.id for m in transcript] == ["u1", "a1"]
        assert all(m.sealed for m in transcript)
        assert transcript[1].tool_calls[0].name == "search"
        assert transcript[1].tool_calls[0].parent_message_id == "a1"

    def test_initial_state_and_messages(self, runtime):
        from agui_runtime.domain.models import Message

        session = runtime.start_run(
            "t9",
            "r9",
            initial_state={"agentId": "a"},
            messages=[Message(id="w", role=MessageRole.ASSISTANT, content="Welcome")],
        )

        assert session.state() == {"agentId": "a"}
        assert session.transcript()[0].sealed


@pytest.mark.unit
class TestCancellation:
    """Test cooperative cancellation."""

    def test_cancel_running_run(self, running_session):
        seen = []
        running_session.attach(lambda e: seen.append(e))

        assert running_session.cancel("user stopped")

        assert running_session.status == RunStatus.ERRORED
        assert running_session.run.error_code == "CANCELLED"
        assert seen[-1].type == EventType.RUN_ERROR
        assert seen[-1].message == "user stopped"

        assert not running_session.process(text("m1", "late"))
        assert len(seen) == 1

    def test_cancel_pending_run(self, session):
        assert session.cancel()
        assert session.status == RunStatus.ERRORED

    def test_cancel_terminal_run_is_noop(self, running_session):
        running_session.process(run_finished())

        assert not running_session.cancel()
        assert running_session.status == RunStatus.FINISHED

    async def test_cancel_ends_event_iteration(self, running_session):
        received = []

        async def consume():
            async for event in running_session.iter_events():
                received.append(event.type)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        running_session.process({"type": "STEP_STARTED", "stepName": "s"})
        running_session.cancel()

        await asyncio.wait_for(task, timeout=1)
        assert received == [EventType.STEP_STARTED, EventType.RUN_ERROR]


@pytest.mark.unit
def test_session_identity(session):
    assert (session.thread_id, session.run_id) == (THREAD_ID, RUN_ID)
    assert session.run.status == RunStatus.PENDING
