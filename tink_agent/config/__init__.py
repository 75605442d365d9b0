"""
Tink Agent Configuration Module
Centralized configuration management using pydantic-settings.
"""

from tink_agent.config.settings import (
    Settings,
    AgentSettings,
    RegistrySettings,
    GRPCSettings,
    FileSettings,
    NATSSettings,
    DockerSettings,
    ContainerdSettings,
    TransportType,
    RuntimeType,
    get_settings,
    reload_settings,
)

__all__ = [
    "Settings",
    "AgentSettings",
    "RegistrySettings",
    "GRPCSettings",
    "FileSettings",
    "NATSSettings",
    "DockerSettings",
    "ContainerdSettings",
    "TransportType",
    "RuntimeType",
    "get_settings",
    "reload_settings",
]
