"""Unit tests for the agent configuration HTTP client."""

import json

import httpx
import pytest
from pydantic import SecretStr

from agui_runtime.agent.client import AgentConfigClient
from agui_runtime.domain.exceptions import ResolutionError


def make_client(handler) -> AgentConfigClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AgentConfigClient(base_url="https://config.test/", path="/api/app", client=http)


@pytest.mark.unit
class TestAgentConfigClient:
    """Test configuration fetches against a mocked transport."""

    async def test_posts_agent_id_with_bearer_token(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"data": {"name": "Helper"}})

        payload = await make_client(handler).fetch("app-1", SecretStr("sk-test"))

        assert payload == {"name": "Helper"}
        request = requests[0]
        assert str(request.url) == "https://config.test/api/app"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert json.loads(request.content) == {"appId": "app-1"}

    async def test_plain_body_and_no_credentials(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"name": "Helper"})

        payload = await make_client(handler)("app-1")

        assert payload == {"name": "Helper"}
        assert "Authorization" not in requests[0].headers

    async def test_error_status_raises(self):
        client = make_client(lambda request: httpx.Response(401, json={"message": "unauthorized"}))

        with pytest.raises(ResolutionError) as exc_info:
            await client.fetch("app-1", "bad")

        assert exc_info.value.details["status_code"] == 401

    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ResolutionError):
            await make_client(handler).fetch("app-1")

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]"])
    async def test_invalid_body_raises(self, body):
        client = make_client(lambda request: httpx.Response(200, content=body))

        with pytest.raises(ResolutionError):
            await client.fetch("app-1")

    def test_url_uses_settings_by_default(self, override_settings):
        client = AgentConfigClient()

        assert client.url == f"{override_settings.agent_config_base_url}{override_settings.agent_config_path}"
        assert client.timeout == override_settings.agent_config_timeout
