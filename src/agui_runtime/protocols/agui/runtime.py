"""
AG-UI runtime: runs per thread, driven by an event transport.

AgentRuntime opens a RunSession for each (thread_id, run_id), feeds it the
transport's ordered event sequence, and keeps the latest session of every
thread available to readers.
"""
import asyncio
from typing import Any, Iterable, Mapping, Optional

from agui_runtime.agent.client import Credentials
from agui_runtime.agent.resolver import AgentDefinitionResolver
from agui_runtime.domain.exceptions import RunNotFound
from agui_runtime.domain.models import AgentDefinition, Message, MessageRole, RunAgentInput
from agui_runtime.infrastructure.observability.context import log_context
from agui_runtime.infrastructure.observability.logging import get_logger
from agui_runtime.protocols.agui.lifecycle import RunController
from agui_runtime.protocols.agui.session import RunSession
from agui_runtime.protocols.agui.transport import EventTransport

logger = get_logger(__name__)

TRANSPORT_ERROR_CODE = "TRANSPORT_ERROR"
STREAM_INCOMPLETE_CODE = "STREAM_INCOMPLETE"


class AgentRuntime:
    """
    Entry point for consuming AG-UI runs.

    Example:
        >>> runtime = AgentRuntime(resolver=AgentDefinitionResolver())
        >>> session = runtime.start_run("thread-1", "run-1")
        >>> session.hooks.attach("message_completed", print)
        >>> session.process({"type": "RUN_STARTED", "threadId": "thread-1", "runId": "run-1"})
    """

    def __init__(
        self,
        resolver: Optional[AgentDefinitionResolver] = None,
        controller: Optional[RunController] = None,
    ):
        self.resolver = resolver
        self.controller = controller or RunController()
        self._sessions: dict[str, RunSession] = {}

    def start_run(
        self,
        thread_id: str,
        run_id: str,
        *,
        initial_state: Optional[Mapping[str, Any]] = None,
        messages: Optional[Iterable[Message]] = None,
    ) -> RunSession:
        """
        Open a run on a thread.

        The thread's previous (terminal) session is superseded; its consumers
        were already released when it terminated.

        Raises:
            RunConflict: If the thread's current run is not terminal
        """
        self.controller.open(thread_id, run_id)
        session = RunSession(
            thread_id,
            run_id,
            self.controller,
            initial_state=initial_state,
            messages=messages,
        )
        self._sessions[thread_id] = session
        return session

    def session(self, thread_id: str) -> RunSession:
        """
        Latest session of a thread.

        Raises:
            RunNotFound: If the thread has no run
        """
        session = self._sessions.get(thread_id)
        if session is None:
            raise RunNotFound(f"No run for thread {thread_id}", details={"thread_id": thread_id})
        return session

    def threads(self) -> list[str]:
        return list(self._sessions)

    def cancel(self, thread_id: str, reason: str = "Run cancelled") -> bool:
        """Cancel the thread's current run; False if it already terminated."""
        return self.session(thread_id).cancel(reason)

    async def execute(self, run_input: RunAgentInput, transport: EventTransport) -> RunSession:
        """
        Run an agent call to completion.

        Seeds the session with the input's state and messages, then processes
        the transport's events in order until the run terminates. A transport
        failure or a stream that ends without a terminal event fails the run.

        Returns:
            The run's session (terminal on return)
        """
        session = self.start_run(
            run_input.thread_id,
            run_input.run_id,
            initial_state=run_input.state,
            messages=run_input.messages,
        )

        with log_context(thread_id=run_input.thread_id, run_id=run_input.run_id):
            stream = transport(run_input)
            try:
                async for item in stream:
                    if session.is_terminal:
                        break
                    session.process(item)
                    if session.is_terminal:
                        break
            except asyncio.CancelledError:
                session.cancel("Execution cancelled")
                raise
            except Exception as e:
                logger.error("event transport failed", exc_info=True)
                session.fail(TRANSPORT_ERROR_CODE, str(e) or e.__class__.__name__)
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

            if not session.is_terminal:
                logger.warning("event stream ended before the run terminated")
                session.fail(STREAM_INCOMPLETE_CODE, "Event stream ended before the run terminated")

        return session

    async def run_agent(
        self,
        agent_id: str,
        credentials: Credentials,
        run_input: RunAgentInput,
        transport: EventTransport,
    ) -> RunSession:
        """
        Resolve an agent definition, then execute a run against it.

        The definition supplies the tools when the input declares none, seeds
        the state with the agent id and variables (input state wins), and adds
        the welcome message to an empty transcript.

        Raises:
            ResolutionError: If the agent cannot be resolved
            RuntimeError: If the runtime has no resolver
        """
        if self.resolver is None:
            raise RuntimeError("AgentRuntime has no resolver configured")

        definition = await self.resolver.resolve(agent_id, credentials)
        return await self.execute(self._prepare_input(definition, run_input), transport)

    @staticmethod
    def _prepare_input(definition: AgentDefinition, run_input: RunAgentInput) -> RunAgentInput:
        updates: dict[str, Any] = {
            "state": {"agentId": definition.id, **definition.variables, **run_input.state},
        }
        if not run_input.tools:
            updates["tools"] = list(definition.tools)
        if not run_input.messages and definition.welcome_message:
            updates["messages"] = [
                Message(
                    id=f"welcome-{definition.id}",
                    role=MessageRole.ASSISTANT,
                    content=definition.welcome_message,
                    sealed=True,
                )
            ]
        return run_input.model_copy(update=updates)
