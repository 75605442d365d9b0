"""
Tink Agent Settings
Pydantic-based configuration with support for env vars and .env files.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TransportType(str, Enum):
    """Supported transports."""

    GRPC = "grpc"
    FILE = "file"
    NATS = "nats"


class RuntimeType(str, Enum):
    """Supported runtime executors."""

    DOCKER = "docker"
    CONTAINERD = "containerd"


class AgentSettings(BaseSettings):
    """Agent identity and backend selection."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
    )

    id: str = Field(default="", alias="TINK_AGENT_ID")
    log_level: str = Field(default="info", alias="TINK_AGENT_LOG_LEVEL")
    transport: TransportType = Field(default=TransportType.GRPC, alias="TINK_AGENT_TRANSPORT")
    runtime: RuntimeType = Field(default=RuntimeType.DOCKER, alias="TINK_AGENT_RUNTIME")

    @field_validator("runtime", mode="before")
    @classmethod
    def parse_runtime(cls, v):
        # Unknown runtimes fall back to docker
        if isinstance(v, str):
            try:
                return RuntimeType(v.strip().lower())
            except ValueError:
                return RuntimeType.DOCKER
        return v

    @field_validator("transport", mode="before")
    @classmethod
    def parse_transport(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class RegistrySettings(BaseSettings):
    """Image registry settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
    )

    name: str = Field(default="docker.io", alias="TINK_AGENT_REGISTRY_NAME")
    user: Optional[str] = Field(default=None, alias="TINK_AGENT_REGISTRY_USER")
    password: Optional[str] = Field(default=None, alias="TINK_AGENT_REGISTRY_PASS")


class GRPCSettings(BaseSettings):
    """Polling-RPC transport settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
    )

    server: str = Field(default="", alias="TINK_AGENT_GRPC_SERVER")
    tls: bool = Field(default=False, alias="TINK_AGENT_GRPC_TLS")
    tls_insecure: bool = Field(default=False, alias="TINK_AGENT_GRPC_INSECURE_TLS")
    retry_interval: float = Field(default=5.0, alias="TINK_AGENT_GRPC_RETRY_INTERVAL")
    # Pause after each status report while the control plane catches up
    report_delay: float = Field(default=2.0, alias="TINK_AGENT_GRPC_REPORT_DELAY")


class FileSettings(BaseSettings):
    """Static-file transport settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
    )

    workflow_path: Path = Field(default=Path("workflow.yaml"), alias="TINK_AGENT_WORKFLOW_PATH")
    abandon_on_failure: bool = Field(default=False, alias="TINK_AGENT_FILE_ABANDON_ON_FAILURE")

    @field_validator("workflow_path", mode="before")
    @classmethod
    def parse_path(cls, v):
        if isinstance(v, str):
            return Path(v)
        return v


class NATSSettings(BaseSettings):
    """Pub/sub transport settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
    )

    server: str = Field(default="", alias="TINK_AGENT_NATS_SERVER")
    stream: str = Field(default="tinkerbell", alias="TINK_AGENT_NATS_STREAM")
    events_subject: str = Field(default="workflow_status", alias="TINK_AGENT_NATS_EVENTS")
    actions_subject: str = Field(default="workflow_actions", alias="TINK_AGENT_NATS_ACTIONS")


class DockerSettings(BaseSettings):
    """Docker runtime settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
    )

    socket_path: str = Field(default="/var/run/docker.sock", alias="TINK_AGENT_DOCKER_SOCKET")


class ContainerdSettings(BaseSettings):
    """containerd runtime settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
    )

    socket_path: str = Field(
        default="/run/containerd/containerd.sock",
        alias="TINK_AGENT_CONTAINERD_SOCKET",
    )
    namespace: str = Field(default="tinkerbell", alias="TINK_AGENT_CONTAINERD_NAMESPACE")
    ctr_path: str = Field(default="ctr", alias="TINK_AGENT_CTR_PATH")


class Settings(BaseSettings):
    """
    Main settings class that aggregates all config sections.

    Usage:
        from tink_agent.config import get_settings

        settings = get_settings()
        print(settings.agent.transport)
        print(settings.grpc.server)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    agent: AgentSettings = Field(default_factory=AgentSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    grpc: GRPCSettings = Field(default_factory=GRPCSettings)
    file: FileSettings = Field(default_factory=FileSettings)
    nats: NATSSettings = Field(default_factory=NATSSettings)
    docker: DockerSettings = Field(default_factory=DockerSettings)
    containerd: ContainerdSettings = Field(default_factory=ContainerdSettings)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: The agent settings
    """
    return Settings()


def reload_settings() -> Settings:
    """
    Reload settings (clears cache).

    Returns:
        Settings: Fresh settings instance
    """
    get_settings.cache_clear()
    return get_settings()
