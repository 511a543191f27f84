"""
HTTP client for external agent configuration.

Fetches the raw configuration payload of an agent; normalization into an
AgentDefinition is the resolver's job.
"""
from typing import Any, Optional

import httpx
from pydantic import SecretStr

from agui_runtime.config.settings import get_settings
from agui_runtime.domain.exceptions import ResolutionError
from agui_runtime.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Credentials = SecretStr | str | None


def _secret_value(credentials: Credentials) -> Optional[str]:
    if isinstance(credentials, SecretStr):
        return credentials.get_secret_value()
    return credentials


class AgentConfigClient:
    """
    Fetches agent configuration over HTTP.

    Example:
        >>> client = AgentConfigClient()
        >>> payload = await client.fetch("app-123", SecretStr("sk-..."))
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        path: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.agent_config_base_url).rstrip("/")
        self.path = path or settings.agent_config_path
        self.timeout = timeout if timeout is not None else settings.agent_config_timeout
        self._client = client

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.path}"

    async def fetch(self, agent_id: str, credentials: Credentials = None) -> dict[str, Any]:
        """
        Fetch the configuration payload of an agent.

        Args:
            agent_id: Agent identifier
            credentials: API key sent as a bearer token

        Returns:
            Configuration mapping (a {"data": {...}} envelope is unwrapped)

        Raises:
            ResolutionError: On transport failure, non-2xx status or a non-object body
        """
        headers = {"Content-Type": "application/json"}
        token = _secret_value(credentials)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.post(self.url, json={"appId": agent_id}, headers=headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise ResolutionError(
                f"Agent configuration request failed with status {e.response.status_code}",
                details={"agent_id": agent_id, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise ResolutionError(
                f"Agent configuration request failed: {e}",
                details={"agent_id": agent_id},
            ) from e
        except ValueError as e:
            raise ResolutionError(
                "Agent configuration response is not valid JSON",
                details={"agent_id": agent_id},
            ) from e
        finally:
            if self._client is None:
                await client.aclose()

        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        if not isinstance(body, dict):
            raise ResolutionError(
                "Agent configuration response is not an object",
                details={"agent_id": agent_id},
            )

        logger.debug("agent configuration fetched", agent_id=agent_id)
        return body

    async def __call__(self, agent_id: str, credentials: Credentials = None) -> dict[str, Any]:
        return await self.fetch(agent_id, credentials)
