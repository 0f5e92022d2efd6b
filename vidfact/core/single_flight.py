"""
single_flight.py — Collapse concurrent calls for the same key into one run.

Two first-time requests for the same video would otherwise both download,
upload and analyse it. With SingleFlight the second caller awaits the first
caller's task and receives the same result (or the same exception).

The shared task is shielded: a caller that disconnects or is cancelled does
not cancel the run for everyone else. The key is released as soon as the run
settles, so a later request starts fresh (and will normally hit the cache).
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> tuple[T, bool]:
        """
        Run *fn* for *key*, or await the run already in flight.

        Returns (result, joined); joined is True when this caller did not
        start the run itself.
        """
        task = self._inflight.get(key)
        joined = task is not None
        if task is None:
            task = asyncio.ensure_future(fn())
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._release(k, t))
        else:
            logger.info("Joining in-flight analysis for %s", key)
        return await asyncio.shield(task), joined

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the exception as retrieved when every waiter went away
        if not task.cancelled():
            task.exception()
