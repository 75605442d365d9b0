"""
NATS Transport
Receives action batches on a per-agent subject and publishes events back.
"""

import asyncio
from typing import Optional

import nats
import nats.errors
import structlog

from tink_agent.domain.entities.action import Action
from tink_agent.domain.entities.event import Event, State
from tink_agent.domain.serialization import decode_actions
from tink_agent.errors import ActionDecodeError, TransportError
from tink_agent.transport.handoff import Handoff

logger = structlog.get_logger(__name__)


class NATSTransport:
    """
    Pub/sub transport over NATS.

    Subjects:
    - ``<stream>.<agent_id>.<actions_subject>``: encoded action batches
    - ``<stream>.<agent_id>.<events_subject>``: text events

    A failed or timed-out action abandons the remainder of its batch.
    """

    def __init__(
        self,
        server: str,
        agent_id: str,
        stream_name: str = "tinkerbell",
        events_subject: str = "workflow_status",
        actions_subject: str = "workflow_actions",
        poll_interval: float = 1.0,
        handoff: Optional[Handoff] = None,
    ):
        self.server = server
        self.agent_id = agent_id
        self.stream_name = stream_name
        self.events_subject = events_subject
        self.actions_subject = actions_subject
        self.poll_interval = poll_interval
        self._handoff = handoff or Handoff()
        self._conn = None

    @property
    def actions_subject_name(self) -> str:
        return f"{self.stream_name}.{self.agent_id}.{self.actions_subject}"

    @property
    def events_subject_name(self) -> str:
        return f"{self.stream_name}.{self.agent_id}.{self.events_subject}"

    async def connect(self):
        """Open the NATS connection, reconnecting forever on drops."""
        url = self.server if "://" in self.server else f"nats://{self.server}"
        return await nats.connect(
            servers=[url],
            name=self.agent_id,
            allow_reconnect=True,
            max_reconnect_attempts=-1,
        )

    async def start(self) -> None:
        """
        Subscribe to the actions subject and feed batches until cancelled.

        The subscription and the connection are released on every exit path.
        """
        conn = await self.connect()
        self._conn = conn
        try:
            sub = await conn.subscribe(self.actions_subject_name)
            try:
                logger.info("nats_transport_starting", subject=self.actions_subject_name)
                await self._consume(sub)
            finally:
                await sub.unsubscribe()
        finally:
            self._conn = None
            await conn.close()
            logger.info("nats_transport_stopped")

    async def _consume(self, sub) -> None:
        while True:
            try:
                msg = await sub.next_msg(timeout=self.poll_interval)
            except nats.errors.TimeoutError:
                continue
            except nats.errors.Error as e:
                logger.info("nats_receive_failed", error=str(e))
                await asyncio.sleep(self.poll_interval)
                continue

            try:
                actions = decode_actions(msg.data)
            except ActionDecodeError as e:
                logger.info("nats_batch_decode_failed", error=str(e))
                continue

            logger.info("nats_batch_received", count=len(actions))
            await self._deliver(actions)

    async def _deliver(self, actions: list[Action]) -> None:
        generation = self._handoff.generation
        for delivered, action in enumerate(actions):
            if not await self._handoff.put(action, generation):
                logger.info(
                    "nats_batch_abandoned",
                    delivered=delivered,
                    remaining=len(actions) - delivered,
                )
                return

    async def read(self) -> Action:
        return await self._handoff.get()

    async def write(self, event: Event) -> None:
        """
        Publish an event.

        Raises:
            TransportError: If there is no connection or the publish fails
        """
        if event.state in (State.FAILURE, State.TIMEOUT):
            self._handoff.reset()

        if self._conn is None:
            raise TransportError("nats: not connected")

        try:
            await self._conn.publish(self.events_subject_name, str(event).encode())
        except nats.errors.Error as e:
            raise TransportError(f"nats: unable to publish event: {e}") from e
