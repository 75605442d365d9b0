"""Shared test fixtures for the tink-agent test suite."""

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from tink_agent.config import get_settings
from tink_agent.domain.entities.action import Action, Env
from tink_agent.domain.entities.event import Event


class RecordingWriter:
    """Transport writer that keeps every event and can be told to fail."""

    def __init__(self, forward=None, fail_states: tuple = ()) -> None:
        self.events: list[Event] = []
        self.forward = forward
        self.fail_states = fail_states

    async def write(self, event: Event) -> None:
        self.events.append(event)
        if self.forward is not None:
            await self.forward.write(event)
        if event.state in self.fail_states:
            raise ConnectionError(f"unable to report {event.state.value}")

    def summary(self) -> list[tuple[str, str]]:
        return [(e.action.id, e.state.value) for e in self.events]


class ScriptedExecutor:
    """
    Runtime executor whose outcomes are scripted per action ID.

    Each outcome is consumed in turn; ``None`` means success, an exception
    instance is raised, and a float sleeps that many seconds.
    """

    def __init__(self, script: dict[str, list[Any]] | None = None) -> None:
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.calls: list[str] = []

    async def execute(self, action: Action) -> None:
        self.calls.append(action.id)
        outcomes = self.script.get(action.id) or [None]
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, (int, float)):
            await asyncio.sleep(outcome)


@pytest.fixture
def make_action() -> Callable[..., Action]:
    """Factory fixture for actions with sensible defaults."""

    def _make(action_id: str = "wf-1", **overrides: Any) -> Action:
        fields = {
            "name": f"{action_id}-name",
            "image": "alpine",
            "task_name": "provision",
            "cmd": "/bin/sh",
            "args": ("-c", "echo hello"),
            "env": (Env("A", "1"),),
        }
        fields.update(overrides)
        return Action(id=action_id, **fields)

    return _make


@pytest.fixture
def recording_writer() -> Callable[..., RecordingWriter]:
    return RecordingWriter


@pytest.fixture
def scripted_executor() -> Callable[..., ScriptedExecutor]:
    return ScriptedExecutor


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Keep cached settings from leaking between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
