"""Registry of background save tasks."""

import asyncio
import logging
from typing import Awaitable, Dict, List

logger = logging.getLogger(__name__)


class SaveTaskRegistry:
    """
    Tracks fire-and-forget saves so they can be awaited on teardown.

    One task is kept per key; scheduling a key that is still in flight returns
    the running task instead of starting a second one.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(self, key: str, coro: Awaitable[None]) -> asyncio.Task:
        running = self._tasks.get(key)
        if running is not None and not running.done():
            # Same-path saves are dropped, not queued
            coro.close()
            return running

        task = asyncio.ensure_future(coro)
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._on_done(k, t))
        return task

    def _on_done(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background save of %s failed: %s", key, exc)

    def pending(self) -> List[str]:
        return [key for key, task in self._tasks.items() if not task.done()]

    def get(self, key: str):
        return self._tasks.get(key)

    async def join_all(self) -> None:
        """Wait until every tracked task has finished. Failures are not raised."""
        while True:
            running = [task for task in self._tasks.values() if not task.done()]
            if not running:
                break
            await asyncio.gather(*running, return_exceptions=True)

    flush = join_all
