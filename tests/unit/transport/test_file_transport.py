"""Tests for FileTransport - static workflow file ingestion."""

import asyncio

import pytest

from tink_agent.agents.loop import AgentLoop
from tink_agent.domain.entities.event import Event, State
from tink_agent.errors import ActionDecodeError, ActionExecutionError
from tink_agent.transport.file import FileTransport

WORKFLOW = """
- id: a1
  name: first
  image: alpine
  cmd: /bin/true
  retries: 1
- id: a2
  name: second
  image: alpine
  cmd: /bin/false
  retries: 2
- id: a3
  name: third
  image: alpine
"""


@pytest.fixture
def workflow_file(tmp_path):
    path = tmp_path / "workflow.yaml"
    path.write_text(WORKFLOW)
    return path


async def stop(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


class TestFileTransport:
    """Batch delivery from a local file."""

    async def test_actions_delivered_in_order(self, workflow_file):
        transport = FileTransport(workflow_file)
        ingest = asyncio.create_task(transport.start())

        ids = [(await asyncio.wait_for(transport.read(), timeout=1)).id for _ in range(3)]

        assert ids == ["a1", "a2", "a3"]
        await asyncio.wait_for(ingest, timeout=1)

    async def test_success_then_failure_scenario(
        self, workflow_file, recording_writer, scripted_executor
    ):
        transport = FileTransport(workflow_file)
        writer = recording_writer(forward=transport)
        executor = scripted_executor({"a2": [ActionExecutionError("run", "a2", "exit 1")]})
        loop = AgentLoop(transport, writer, executor)
        ingest = asyncio.create_task(transport.start())

        try:
            await asyncio.wait_for(loop.run_once(), timeout=1)
            await asyncio.wait_for(loop.run_once(), timeout=1)
        finally:
            await stop(ingest)

        assert writer.summary() == [
            ("a1", "running"),
            ("a1", "success"),
            ("a2", "running"),
            ("a2", "failure"),
        ]
        assert executor.calls == ["a1", "a2", "a2"]

    async def test_failure_abandons_batch_when_enabled(
        self, workflow_file, recording_writer, scripted_executor
    ):
        transport = FileTransport(workflow_file, abandon_on_failure=True)
        writer = recording_writer(forward=transport)
        executor = scripted_executor({"a1": [RuntimeError("boom")]})
        loop = AgentLoop(transport, writer, executor)
        ingest = asyncio.create_task(transport.start())

        await asyncio.wait_for(loop.run_once(), timeout=1)
        await asyncio.wait_for(ingest, timeout=1)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(transport.read(), timeout=0.05)
        assert executor.calls == ["a1"]

    async def test_failure_keeps_batch_by_default(
        self, workflow_file, recording_writer, scripted_executor
    ):
        transport = FileTransport(workflow_file)
        executor = scripted_executor({"a1": [RuntimeError("boom")]})
        loop = AgentLoop(transport, recording_writer(forward=transport), executor)
        ingest = asyncio.create_task(transport.start())

        try:
            await asyncio.wait_for(loop.run_once(), timeout=1)
            assert (await asyncio.wait_for(transport.read(), timeout=1)).id == "a2"
        finally:
            await stop(ingest)

    @pytest.mark.parametrize("state", list(State))
    async def test_write_logs_every_state(self, workflow_file, make_action, state):
        transport = FileTransport(workflow_file)

        await transport.write(Event(action=make_action("a1"), message="action", state=state))

    async def test_write_running_keeps_batch_when_abandon_enabled(self, workflow_file, make_action):
        transport = FileTransport(workflow_file, abandon_on_failure=True)
        ingest = asyncio.create_task(transport.start())

        try:
            first = await asyncio.wait_for(transport.read(), timeout=1)
            await transport.write(Event(action=first, message="running action", state=State.RUNNING))
            assert (await asyncio.wait_for(transport.read(), timeout=1)).id == "a2"
        finally:
            await stop(ingest)

    async def test_invalid_file_raises(self, tmp_path):
        path = tmp_path / "workflow.yaml"
        path.write_text("id: not-a-list\n")

        with pytest.raises(ActionDecodeError):
            await FileTransport(path).start()

    async def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            await FileTransport(tmp_path / "absent.yaml").start()
