"""Agent definition resolution."""

from agui_runtime.agent.client import AgentConfigClient
from agui_runtime.agent.resolver import AgentDefinitionResolver, normalize_definition

__all__ = [
    "AgentConfigClient",
    "AgentDefinitionResolver",
    "normalize_definition",
]
