"""
Task Registry

Owns the background asyncio tasks started by the pipeline. Holds strong
references until each task finishes, logs failures that nobody awaited,
and drains outstanding work on shutdown.
"""

import asyncio
from typing import Awaitable, Optional, Set

from portfolio_ai.core.logging_config import get_logger

logger = get_logger(__name__)


class TaskRegistry:
    """Tracks fire-and-forget tasks so they are neither collected nor lost."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug(f"Background task {task.get_name()} cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {error}",
                error_type=type(error).__name__
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> int:
        """
        Wait for outstanding tasks, cancelling whatever is left at the timeout.

        Returns:
            Number of tasks that had to be cancelled
        """
        cancelled = 0
        # Tasks may spawn children while we wait, so loop until the set is empty
        while self._tasks:
            tasks = set(self._tasks)
            done, still_running = await asyncio.wait(tasks, timeout=timeout)
            if still_running:
                for task in still_running:
                    task.cancel()
                await asyncio.gather(*still_running, return_exceptions=True)
                cancelled += len(still_running)
                logger.warning(f"Cancelled {len(still_running)} background tasks on drain")
                break

        return cancelled
