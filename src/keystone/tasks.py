"""
Tracked background tasks.

Work that must continue after a caller has returned (for instance after a
response was sent) is handed to a ``TaskTracker`` instead of being left to run
detached. Every task keeps a completion signal, and failures are logged.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class TrackedTask[T]:
    """Handle on a tracked background task with an explicit completion signal."""

    def __init__(self, task: asyncio.Task[T]):
        self._task = task

    @property
    def name(self) -> str:
        return self._task.get_name()

    def done(self) -> bool:
        return self._task.done()

    def cancelled(self) -> bool:
        return self._task.cancelled()

    def exception(self) -> BaseException | None:
        """The task's failure, or None. Only valid once the task is done."""
        if self._task.cancelled():
            return None
        return self._task.exception()

    async def wait(self) -> T:
        """Wait for completion and return the result, re-raising any failure."""
        return await asyncio.shield(self._task)

    def cancel(self) -> bool:
        return self._task.cancel()

    def __repr__(self) -> str:
        state = "done" if self.done() else "pending"
        return f"TrackedTask({self.name}, {state})"


class TaskTracker:
    """
    Owns background tasks for their whole life.

    Register one as a singleton so request handlers can ``spawn`` work, and
    ``drain`` it on shutdown.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    def spawn[T](self, coro: Coroutine[Any, Any, T], *, name: str | None = None) -> TrackedTask[T]:
        """Start ``coro`` as a tracked task on the running loop."""
        if self._closed:
            coro.close()
            raise RuntimeError("TaskTracker is closed")
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("Spawned tracked task %s", task.get_name())
        return TrackedTask(task)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("Tracked task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Tracked task %s failed", task.get_name(), exc_info=exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """
        Stop accepting work and wait for outstanding tasks.

        Tasks still running after ``timeout`` seconds are cancelled.
        """
        self._closed = True
        if not self._tasks:
            return
        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_running:
            logger.warning("Cancelling %d tracked tasks still running after %ss", len(still_running), timeout)
            await self._cancel(still_running)

    async def cancel_all(self) -> None:
        """Stop accepting work and cancel every outstanding task."""
        self._closed = True
        await self._cancel(set(self._tasks))

    async def _cancel(self, tasks: set[asyncio.Task[Any]]) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
