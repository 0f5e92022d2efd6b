"""
background.py — Detached fire-and-forget tasks.

Used for writes whose outcome must never reach the caller, e.g. bumping the
request counter on a cache hit. Each task's failure is logged to the
`vidfact.background` logger and otherwise dropped.

Tasks are held in a set so the event loop cannot garbage-collect them
mid-flight; drain() lets shutdown (and tests) wait for stragglers.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger("vidfact.background")


class BackgroundTasks:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("Background task %s cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "Background task %s failed: %s", task.get_name(), exc, exc_info=exc
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait (bounded) for every in-flight task to settle."""
        if not self._tasks:
            return
        _done, still_pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in still_pending:
            logger.warning("Background task %s still running at drain, cancelling", task.get_name())
            task.cancel()


# Module-level singleton
background_tasks = BackgroundTasks()
