"""
HTTP event transport for remote agent runs.

Posts a RunAgentInput to the agent endpoint and yields the data payload of
each Server-Sent Event line. Payloads are handed to RunSession.process
undecoded, so a malformed event is recorded as a protocol error of the run
instead of aborting the stream.
"""
from typing import Any, AsyncIterator, Callable, Mapping, Optional

import httpx

from agui_runtime.config.settings import get_settings
from agui_runtime.domain.models import RunAgentInput
from agui_runtime.infrastructure.observability.logging import get_logger
from agui_runtime.protocols.agui.codec import sse_data
from agui_runtime.protocols.agui.events import BaseEvent

logger = get_logger(__name__)

# Any callable taking the run input and returning an async iterator of events
# (event models, mappings, or JSON text).
EventTransport = Callable[[RunAgentInput], AsyncIterator[BaseEvent | Mapping[str, Any] | str]]


class HttpEventTransport:
    """
    Streams AG-UI events from an HTTP endpoint.

    Example:
        >>> transport = HttpEventTransport("https://agents.example.com/run")
        >>> session = await runtime.execute(run_input, transport)
    """

    def __init__(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.headers = dict(headers or {})
        self.timeout = timeout if timeout is not None else get_settings().run_transport_timeout
        self._client = client

    async def __call__(self, run_input: RunAgentInput) -> AsyncIterator[str]:
        payload = run_input.model_dump(mode="json", by_alias=True)
        headers = {"Accept": "text/event-stream", **self.headers}

        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            async with client.stream("POST", self.url, json=payload, headers=headers) as response:
                response.raise_for_status()
                logger.debug("event stream opened", url=self.url, status_code=response.status_code)
                async for line in response.aiter_lines():
                    data = sse_data(line)
                    if data is not None:
                        yield data
        finally:
            if self._client is None:
                await client.aclose()
