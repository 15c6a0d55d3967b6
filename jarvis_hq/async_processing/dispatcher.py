"""Fire-and-forget task dispatch for background work"""

import asyncio
import logging
from typing import Any, Coroutine, Dict, Optional, Set

logger = logging.getLogger(__name__)


class TaskDispatcher:
    """
    Run coroutines in the background without the caller awaiting them

    Each task's failure is captured and logged on its own, so one broken
    job never surfaces in the code path that submitted it.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self.stats: Dict[str, int] = {
            "submitted": 0,
            "completed": 0,
            "failed": 0,
            "cancelled": 0,
        }

    def submit(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        """Schedule a coroutine; must be called from a running event loop"""
        task = asyncio.create_task(coro, name=name)
        # Strong reference until done, the loop only keeps weak ones
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        self.stats["submitted"] += 1
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)

        if task.cancelled():
            self.stats["cancelled"] += 1
            return

        exc = task.exception()
        if exc is not None:
            self.stats["failed"] += 1
            logger.error(
                "[DISPATCH] Background task %s failed: %s",
                task.get_name(), exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
        else:
            self.stats["completed"] += 1

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None):
        """Wait for outstanding tasks, e.g. on shutdown"""
        if not self._tasks:
            return

        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("[DISPATCH] %d background task(s) still running after drain", len(pending))
