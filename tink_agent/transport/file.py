"""
File Transport
Feeds a fixed batch of actions read from a local workflow file.
"""

from pathlib import Path
from typing import Optional, Union

import structlog

from tink_agent.domain.entities.action import Action
from tink_agent.domain.entities.event import Event, State
from tink_agent.domain.serialization import decode_actions
from tink_agent.transport.handoff import Handoff

logger = structlog.get_logger(__name__)


class FileTransport:
    """
    Static-file transport.

    ``start`` reads one batch at start-up and feeds it to the loop at the
    loop's pace. ``write`` only logs events, unless ``abandon_on_failure``
    is set, in which case a failed or timed-out action drops the rest of
    the batch.
    """

    def __init__(
        self,
        path: Union[str, Path],
        abandon_on_failure: bool = False,
        handoff: Optional[Handoff] = None,
    ):
        self.path = Path(path)
        self.abandon_on_failure = abandon_on_failure
        self._handoff = handoff or Handoff()

    async def start(self) -> None:
        """
        Read the workflow file and deliver its actions in order.

        Raises:
            OSError: If the file cannot be read
            ActionDecodeError: If the file is not a valid action batch
        """
        logger.info("file_transport_starting", path=str(self.path))
        actions = decode_actions(self.path.read_text(encoding="utf-8"))
        generation = self._handoff.generation

        for delivered, action in enumerate(actions):
            if not await self._handoff.put(action, generation):
                logger.info(
                    "file_batch_abandoned",
                    delivered=delivered,
                    remaining=len(actions) - delivered,
                )
                return

        logger.info("file_batch_delivered", count=len(actions))

    async def read(self) -> Action:
        return await self._handoff.get()

    async def write(self, event: Event) -> None:
        logger.info(
            "writing_event",
            action_id=event.action.id,
            state=event.state.value,
            event_text=str(event),
        )
        if self.abandon_on_failure and event.state in (State.FAILURE, State.TIMEOUT):
            self._handoff.reset()
