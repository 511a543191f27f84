"""Configuration management for the AG-UI runtime."""

from agui_runtime.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
