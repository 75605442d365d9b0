"""Tests for environment-backed agent settings."""

from pathlib import Path

from tink_agent.config import RuntimeType, Settings, TransportType, get_settings, reload_settings


class TestDefaults:
    def test_defaults(self):
        settings = Settings()

        assert settings.agent.transport == TransportType.GRPC
        assert settings.agent.runtime == RuntimeType.DOCKER
        assert settings.registry.name == "docker.io"
        assert settings.grpc.retry_interval == 5.0
        assert settings.grpc.report_delay == 2.0
        assert settings.nats.stream == "tinkerbell"
        assert settings.nats.events_subject == "workflow_status"
        assert settings.nats.actions_subject == "workflow_actions"
        assert settings.docker.socket_path == "/var/run/docker.sock"
        assert settings.containerd.socket_path == "/run/containerd/containerd.sock"
        assert settings.containerd.namespace == "tinkerbell"


class TestEnvironment:
    def test_values_from_environment(self, monkeypatch):
        monkeypatch.setenv("TINK_AGENT_ID", "machine1")
        monkeypatch.setenv("TINK_AGENT_TRANSPORT", "NATS")
        monkeypatch.setenv("TINK_AGENT_RUNTIME", "containerd")
        monkeypatch.setenv("TINK_AGENT_GRPC_TLS", "true")
        monkeypatch.setenv("TINK_AGENT_WORKFLOW_PATH", "/etc/tink/workflow.yaml")

        settings = Settings()

        assert settings.agent.id == "machine1"
        assert settings.agent.transport == TransportType.NATS
        assert settings.agent.runtime == RuntimeType.CONTAINERD
        assert settings.grpc.tls is True
        assert settings.file.workflow_path == Path("/etc/tink/workflow.yaml")

    def test_unknown_runtime_falls_back_to_docker(self, monkeypatch):
        monkeypatch.setenv("TINK_AGENT_RUNTIME", "podman")

        assert Settings().agent.runtime == RuntimeType.DOCKER

    def test_settings_are_cached_until_reloaded(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("TINK_AGENT_ID", "machine2")

        assert get_settings() is first
        assert reload_settings().agent.id == "machine2"
