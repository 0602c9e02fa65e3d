"""Detached background tasks.

Cache population and similar best-effort writes run next to the critical
path without ever being awaited by it. Each task gets its own error
handling: a failure is logged and otherwise dropped.
"""

import asyncio
import logging
from typing import Coroutine, Any


class HelperTasks:
    """Spawns fire-and-forget coroutines and keeps strong references until they finish."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logging = logger
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task:
        """Schedule a coroutine as a detached task.

        Args:
            coro (Coroutine): The coroutine to run.
            label (str): Short description used in the failure log line.

        Returns:
            asyncio.Task: The scheduled task. Callers on the critical path must not await it.
        """
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, label))
        return task

    def _on_done(self, task: asyncio.Task, label: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logging.warning("Background task '%s' failed: %s", label, exc)

    def pending_count(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all currently scheduled tasks. Used on shutdown and in tests."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
