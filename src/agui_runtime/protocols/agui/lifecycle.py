"""
Run lifecycle tracking.

A run moves PENDING -> RUNNING -> FINISHED or PENDING/RUNNING -> ERRORED.
Terminal states are absorbing. A thread has at most one non-terminal run.
"""
from datetime import datetime, timezone
from typing import Optional

from agui_runtime.domain.exceptions import ProtocolViolation, RunConflict, RunNotFound
from agui_runtime.domain.models import Run, RunStatus
from agui_runtime.infrastructure.observability.logging import get_logger
from agui_runtime.protocols.agui.dispatcher import ListenerSet

logger = get_logger(__name__)

RunKey = tuple[str, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunController:
    """
    Owner of run status for every thread.

    Transition listeners attached to `transitions` receive
    `(run, previous_status)` after each status change.
    """

    def __init__(self):
        self._runs: dict[RunKey, Run] = {}
        self._latest: dict[str, RunKey] = {}
        self.transitions = ListenerSet("run_transitions")

    def open(self, thread_id: str, run_id: str) -> Run:
        """
        Register a new PENDING run.

        Only the latest run of each thread is kept: the terminal run it
        supersedes is dropped, so ids older than that are not checked for reuse.

        Raises:
            RunConflict: If the thread has a non-terminal run or the run id is
                the thread's latest
        """
        current = self.latest(thread_id)
        if current is not None and not current.status.is_terminal:
            raise RunConflict(
                f"Thread {thread_id} already has an active run",
                details={"thread_id": thread_id, "active_run_id": current.run_id},
            )
        if (thread_id, run_id) in self._runs:
            raise RunConflict(
                f"Run {run_id} already exists on thread {thread_id}",
                details={"thread_id": thread_id, "run_id": run_id},
            )

        if current is not None:
            del self._runs[current.key]

        run = Run(thread_id=thread_id, run_id=run_id, created_at=_utcnow())
        self._runs[run.key] = run
        self._latest[thread_id] = run.key
        logger.info("run opened", thread_id=thread_id, run_id=run_id)
        return run.model_copy()

    def start(self, thread_id: str, run_id: str) -> Run:
        return self._transition(
            (thread_id, run_id),
            {RunStatus.PENDING},
            RunStatus.RUNNING,
            started_at=_utcnow(),
        )

    def finish(self, thread_id: str, run_id: str) -> Run:
        return self._transition(
            (thread_id, run_id),
            {RunStatus.RUNNING},
            RunStatus.FINISHED,
            finished_at=_utcnow(),
            current_step=None,
        )

    def fail(self, thread_id: str, run_id: str, code: Optional[str], message: str) -> Run:
        return self._transition(
            (thread_id, run_id),
            {RunStatus.PENDING, RunStatus.RUNNING},
            RunStatus.ERRORED,
            finished_at=_utcnow(),
            current_step=None,
            error_code=code,
            error_message=message,
        )

    def enter_step(self, thread_id: str, run_id: str, step_name: str) -> Run:
        run = self._require_running((thread_id, run_id))
        run.current_step = step_name
        return run.model_copy()

    def leave_step(self, thread_id: str, run_id: str, step_name: str) -> Run:
        run = self._require_running((thread_id, run_id))
        if run.current_step != step_name:
            logger.warning(
                "step finished without matching start",
                thread_id=thread_id,
                run_id=run_id,
                step_name=step_name,
                current_step=run.current_step,
            )
        run.current_step = None
        return run.model_copy()

    def get(self, thread_id: str, run_id: str) -> Optional[Run]:
        run = self._runs.get((thread_id, run_id))
        return run.model_copy() if run is not None else None

    def latest(self, thread_id: str) -> Optional[Run]:
        """Most recently opened run of a thread."""
        key = self._latest.get(thread_id)
        return self.get(*key) if key is not None else None

    def status(self, thread_id: str, run_id: str) -> RunStatus:
        return self._require((thread_id, run_id)).status

    def is_terminal(self, thread_id: str, run_id: str) -> bool:
        return self.status(thread_id, run_id).is_terminal

    def _transition(self, key: RunKey, allowed: set[RunStatus], target: RunStatus, **updates) -> Run:
        run = self._require(key)
        if run.status not in allowed:
            raise ProtocolViolation(
                f"Run {run.run_id} cannot move from {run.status.value} to {target.value}",
                details={"thread_id": run.thread_id, "run_id": run.run_id, "status": run.status.value},
            )

        previous = run.status
        run.status = target
        for name, value in updates.items():
            setattr(run, name, value)

        logger.info(
            "run transition",
            thread_id=run.thread_id,
            run_id=run.run_id,
            previous=previous.value,
            status=target.value,
        )
        snapshot = run.model_copy()
        self.transitions.notify(snapshot, previous)
        return snapshot

    def _require(self, key: RunKey) -> Run:
        run = self._runs.get(key)
        if run is None:
            raise RunNotFound(
                f"Run {key[1]} not found on thread {key[0]}",
                details={"thread_id": key[0], "run_id": key[1]},
            )
        return run

    def _require_running(self, key: RunKey) -> Run:
        run = self._require(key)
        if run.status != RunStatus.RUNNING:
            raise ProtocolViolation(
                f"Run {run.run_id} is not running",
                details={"thread_id": run.thread_id, "run_id": run.run_id, "status": run.status.value},
            )
        return run
