"""Fire-and-forget scheduling for cache writes."""

import asyncio
import logging
from typing import Awaitable, Set

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Runs coroutines without blocking the caller.

    References are kept until each task finishes so pending writes are not
    garbage collected; failures are logged, never raised.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def schedule(self, coro: Awaitable, name: str = "background") -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, name))
        return task

    def _on_done(self, task: asyncio.Task, name: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background task %s failed: %s", name, exc)

    async def drain(self) -> None:
        """Wait for every pending task (tests, shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
