"""
Agent definition resolution and caching.

Turns external agent configuration into immutable AgentDefinition objects and
caches them by agent id for the process lifetime. Entries leave the cache
only through invalidate() or are replaced through register().
"""
import asyncio
from typing import Any, Awaitable, Callable, Mapping, Optional

from pydantic import ValidationError

from agui_runtime.agent.client import AgentConfigClient, Credentials
from agui_runtime.config.settings import Settings, get_settings
from agui_runtime.domain.exceptions import ResolutionError
from agui_runtime.domain.models import AgentConfigPayload, AgentDefinition, ToolDescriptor
from agui_runtime.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ConfigFetcher = Callable[[str, Credentials], Awaitable[Mapping[str, Any]]]

_VARIABLE_FIELDS = ("label", "type", "required", "defaultValue", "description")


def _normalize_variables(variables: Mapping[str, Any] | list[dict[str, Any]] | None) -> dict[str, Any]:
    if not variables:
        return {}
    if isinstance(variables, Mapping):
        return dict(variables)

    # List form: [{"key": ..., "label": ..., "defaultValue": ...}, ...]
    result: dict[str, Any] = {}
    for variable in variables:
        key = variable.get("key")
        if key:
            result[key] = {f: variable[f] for f in _VARIABLE_FIELDS if variable.get(f) is not None}
    return result


def normalize_definition(
    agent_id: str,
    payload: Mapping[str, Any],
    settings: Optional[Settings] = None,
) -> AgentDefinition:
    """
    Build an AgentDefinition from a raw configuration payload.

    Missing optional fields fall back to the configured defaults (model,
    temperature, max tokens) or to empty values.

    Raises:
        ResolutionError: If the payload or one of its tools is malformed
    """
    settings = settings or get_settings()

    try:
        config = AgentConfigPayload.model_validate(payload)
        tools = tuple(ToolDescriptor.model_validate(tool) for tool in config.tools or [])
    except ValidationError as e:
        raise ResolutionError(
            "Agent configuration is malformed",
            details={"agent_id": agent_id, "errors": e.errors(include_url=False, include_context=False)},
        ) from e

    return AgentDefinition(
        id=agent_id,
        name=config.name or f"Agent-{agent_id}",
        description=config.description or "",
        instructions=config.system_prompt or "",
        tools=tools,
        model=config.model or settings.default_model,
        temperature=settings.default_temperature if config.temperature is None else config.temperature,
        max_tokens=settings.default_max_tokens if config.max_tokens is None else config.max_tokens,
        variables=_normalize_variables(config.variables),
        welcome_message=config.welcome_message,
    )


class AgentDefinitionResolver:
    """
    Cache-backed resolver for agent definitions.

    Concurrent resolve() calls for the same uncached agent share one fetch:
    each agent id has its own lock, and the cache is re-checked under it.
    register() and invalidate() bump a per-id generation; a fetch that was in
    flight across either is discarded instead of overwriting the cache.

    Example:
        >>> resolver = AgentDefinitionResolver()
        >>> definition = await resolver.resolve("app-123", SecretStr("sk-..."))
    """

    def __init__(self, fetcher: Optional[ConfigFetcher] = None, settings: Optional[Settings] = None):
        self._fetcher = fetcher or AgentConfigClient()
        self._settings = settings
        self._definitions: dict[str, AgentDefinition] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._generations: dict[str, int] = {}

    async def resolve(self, agent_id: str, credentials: Credentials = None) -> AgentDefinition:
        """
        Get an agent definition, fetching it at most once per agent id.

        Args:
            agent_id: Agent identifier
            credentials: Credentials passed to the configuration fetch

        Returns:
            The cached or freshly resolved definition

        Raises:
            ResolutionError: If the fetch or normalization fails; nothing is cached
        """
        cached = self._definitions.get(agent_id)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(agent_id, asyncio.Lock())
        async with lock:
            definition = await self._resolve_locked(agent_id, credentials)

        # Waiters still queued on this lock find the definition cached.
        if self._locks.get(agent_id) is lock:
            del self._locks[agent_id]
        return definition

    def register(self, definition: AgentDefinition) -> None:
        """Register (or replace) a definition."""
        self._bump(definition.id)
        self._definitions[definition.id] = definition
        logger.info("agent definition registered", agent_id=definition.id)

    def invalidate(self, agent_id: str) -> bool:
        """
        Drop a cached definition so the next resolve() fetches again.

        Returns:
            True if a definition was cached
        """
        self._bump(agent_id)
        removed = self._definitions.pop(agent_id, None) is not None
        if removed:
            logger.info("agent definition invalidated", agent_id=agent_id)
        return removed

    def get(self, agent_id: str) -> Optional[AgentDefinition]:
        """Cached definition, without fetching."""
        return self._definitions.get(agent_id)

    def list_ids(self) -> list[str]:
        return list(self._definitions)

    async def _resolve_locked(self, agent_id: str, credentials: Credentials) -> AgentDefinition:
        while True:
            cached = self._definitions.get(agent_id)
            if cached is not None:
                return cached

            generation = self._generations.get(agent_id, 0)
            definition = await self._load(agent_id, credentials)
            if self._generations.get(agent_id, 0) == generation:
                self._definitions[agent_id] = definition
                logger.info("agent definition resolved", agent_id=agent_id, tools=len(definition.tools))
                return definition

            # Registered or invalidated during the fetch; a registered
            # definition wins, an invalidation forces a fresh fetch.
            logger.info("stale agent definition discarded", agent_id=agent_id)

    def _bump(self, agent_id: str) -> None:
        self._generations[agent_id] = self._generations.get(agent_id, 0) + 1

    async def _load(self, agent_id: str, credentials: Credentials) -> AgentDefinition:
        try:
            payload = await self._fetcher(agent_id, credentials)
        except ResolutionError:
            logger.warning("agent configuration fetch failed", agent_id=agent_id, exc_info=True)
            raise
        except Exception as e:
            logger.error("agent configuration fetch failed", agent_id=agent_id, exc_info=True)
            raise ResolutionError(
                f"Agent configuration fetch failed: {e}",
                details={"agent_id": agent_id},
            ) from e

        if not isinstance(payload, Mapping):
            raise ResolutionError(
                "Agent configuration is not an object",
                details={"agent_id": agent_id},
            )

        return normalize_definition(agent_id, payload, self._settings)
