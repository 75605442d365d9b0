"""
Action Handoff
Unbuffered rendezvous between a transport's ingestion task and the agent loop.
"""

import asyncio
from typing import Optional

import structlog

from tink_agent.domain.entities.action import Action

logger = structlog.get_logger(__name__)


class Handoff:
    """
    Single-slot handoff with one producer and one consumer.

    ``put`` returns only once the consumer has taken the action, so at most
    one action is ever waiting and the producer cannot run ahead of the
    loop. Batches are tied to a generation: ``reset`` starts a new one,
    drops whatever is waiting and makes every pending or later ``put`` for
    an older generation return False so its producer can stop.

    Not safe for multiple producers; each transport runs a single
    ingestion task.
    """

    def __init__(self):
        self._slot: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._generation = 0

    @property
    def generation(self) -> int:
        """Current batch generation."""
        return self._generation

    async def put(self, action: Action, generation: Optional[int] = None) -> bool:
        """
        Hand an action to the consumer and wait until it is taken.

        Args:
            action: Action to deliver
            generation: Batch generation the producer belongs to; defaults
                to the current one

        Returns:
            True if the consumer took the action, False if the batch was
            abandoned by a reset
        """
        if generation is None:
            generation = self._generation
        if generation != self._generation:
            return False

        taken = asyncio.get_running_loop().create_future()
        await self._slot.put((generation, action, taken))
        try:
            return await taken
        except asyncio.CancelledError:
            taken.cancel()
            raise

    async def get(self) -> Action:
        """Block until an action of the current generation is available."""
        while True:
            generation, action, taken = await self._slot.get()
            if taken.done() or generation != self._generation:
                if not taken.done():
                    taken.set_result(False)
                continue
            taken.set_result(True)
            return action

    def reset(self) -> int:
        """
        Abandon the current batch.

        Returns:
            The new generation
        """
        self._generation += 1
        dropped = 0
        while not self._slot.empty():
            _, _, taken = self._slot.get_nowait()
            if not taken.done():
                taken.set_result(False)
            dropped += 1
        logger.info("handoff_reset", generation=self._generation, dropped=dropped)
        return self._generation
