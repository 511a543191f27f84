"""Read access to live AG-UI runs: status, transcript, state, event stream."""
from typing import Any

from fastapi import APIRouter
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from agui_runtime.api.dependencies import Runtime
from agui_runtime.protocols.agui.codec import encode_sse

router = APIRouter(prefix="/agui", tags=["agui"])


class CancelRequest(BaseModel):
    reason: str = "Run cancelled"


@router.get("/threads/{thread_id}/run")
async def get_run(thread_id: str, runtime: Runtime) -> dict[str, Any]:
    """Current run of a thread with its status."""
    return runtime.session(thread_id).run.model_dump(mode="json", by_alias=True)


@router.get("/threads/{thread_id}/transcript")
async def get_transcript(thread_id: str, runtime: Runtime) -> dict[str, Any]:
    """Messages of the thread's current run, sealed and in progress."""
    session = runtime.session(thread_id)
    return {
        "threadId": session.thread_id,
        "runId": session.run_id,
        "messages": [m.model_dump(mode="json", by_alias=True) for m in session.transcript()],
    }


@router.get("/threads/{thread_id}/state")
async def get_state(thread_id: str, runtime: Runtime) -> dict[str, Any]:
    """Agent state snapshot of the thread's current run."""
    session = runtime.session(thread_id)
    return {"state": session.state(), "version": session.state_sync.version}


@router.get("/threads/{thread_id}/events")
async def stream_events(thread_id: str, runtime: Runtime, replay: bool = False):
    """
    Server-Sent Event stream of the run's events.

    Without replay, only events published after the request attaches are
    sent. The stream ends when the run terminates.
    """
    session = runtime.session(thread_id)

    async def event_stream():
        async for event in session.iter_events(replay=replay):
            yield encode_sse(event)

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@router.post("/threads/{thread_id}/cancel")
async def cancel_run(thread_id: str, runtime: Runtime, body: CancelRequest | None = None) -> dict[str, Any]:
    """Cancel the thread's current run."""
    reason = body.reason if body is not None else CancelRequest().reason
    cancelled = runtime.cancel(thread_id, reason)
    return {"cancelled": cancelled, "status": runtime.session(thread_id).status.value}
