"""Configuration package."""

from .settings import AgentSettings, ModelSettings, ObservabilitySettings, Settings, get_settings

__all__ = [
    "AgentSettings",
    "ModelSettings",
    "ObservabilitySettings",
    "Settings",
    "get_settings",
]
