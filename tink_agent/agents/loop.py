"""
Agent Loop
Reads one action at a time from a transport, runs it through a runtime
executor under its retry budget and deadline, and reports the outcome.
"""

import asyncio
from typing import Optional, Protocol, runtime_checkable

import structlog

from tink_agent.domain.entities.action import Action
from tink_agent.domain.entities.event import Event, State

logger = structlog.get_logger(__name__)


@runtime_checkable
class TransportReader(Protocol):
    """Supplies actions."""

    async def read(self) -> Action:
        """Block until an action is available or an error occurs."""
        ...


@runtime_checkable
class TransportWriter(Protocol):
    """Accepts events."""

    async def write(self, event: Event) -> None:
        """Block until the event is delivered or an error occurs."""
        ...


@runtime_checkable
class RuntimeExecutor(Protocol):
    """Runs one action to completion."""

    async def execute(self, action: Action) -> None:
        """Block until the workload exits; raise on any failure."""
        ...


class AgentLoop:
    """
    The action execution control loop.

    Every iteration moves through Reading -> Running -> terminal state.
    Exactly one action executes at a time; retries are strictly sequential.
    Transport errors never stop the loop; only cancellation of the task
    running ``run()`` does.
    """

    def __init__(
        self,
        reader: TransportReader,
        writer: TransportWriter,
        executor: RuntimeExecutor,
    ):
        self._reader = reader
        self._writer = writer
        self._executor = executor

    async def run(self) -> None:
        """Run iterations until cancelled."""
        logger.info("agent_loop_started")
        try:
            while True:
                await self.run_once()
        finally:
            logger.info("agent_loop_stopped")

    async def run_once(self) -> Optional[Event]:
        """
        Run a single iteration.

        Returns:
            The terminal event that was reported (or attempted), or None if
            the iteration restarted before execution
        """
        try:
            action = await self._reader.read()
        except Exception as e:
            logger.info("action_read_failed", error=str(e))
            return None

        log = logger.bind(action_id=action.id, action_name=action.name)
        log.info("action_received", image=action.image)

        running = Event(action=action, message="running action", state=State.RUNNING)
        try:
            await self._writer.write(running)
        except Exception as e:
            log.info("event_write_failed", state=running.state.value, error=str(e))
            return None
        log.info("action_status_reported", state=running.state.value)

        state = await self._execute(action)

        event = Event(action=action, message="action completed", state=state)
        try:
            await self._writer.write(event)
        except Exception as e:
            log.info("event_write_failed", state=state.value, error=str(e))
            return event
        log.info("action_status_reported", state=state.value)
        return event

    async def _execute(self, action: Action) -> State:
        """Apply the retry policy and the action deadline to the executor."""
        log = logger.bind(action_id=action.id, action_name=action.name)
        loop = asyncio.get_running_loop()

        retries = max(action.retries, 1)
        deadline = None
        if action.timeout_seconds > 0:
            deadline = loop.time() + action.timeout_seconds

        for attempt in range(1, retries + 1):
            timeout = None
            if deadline is not None:
                timeout = max(deadline - loop.time(), 0)

            attempt_task = asyncio.create_task(self._executor.execute(action))
            try:
                done, _ = await asyncio.wait({attempt_task}, timeout=timeout)
            except asyncio.CancelledError:
                await self._cancel(attempt_task)
                raise

            # Only the action deadline makes a Timeout; a runtime's own
            # timeout is an ordinary failure.
            if attempt_task not in done:
                await self._cancel(attempt_task)
                log.info(
                    "action_timed_out",
                    timeout_seconds=action.timeout_seconds,
                    attempt=attempt,
                    max_retries=retries,
                )
                return State.TIMEOUT

            try:
                attempt_task.result()
            except Exception as e:
                log.info(
                    "action_execution_failed",
                    error=str(e) or type(e).__name__,
                    attempt=attempt,
                    max_retries=retries,
                )
            else:
                log.info("action_executed", attempt=attempt)
                return State.SUCCESS

        return State.FAILURE

    @staticmethod
    async def _cancel(task: asyncio.Task) -> None:
        """Cancel an attempt and wait for the runtime to finish its cleanup."""
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
