"""
Pending Task Registry — tracks fire-and-forget side effects (naming, enrichment).

Behavioral Contract:
- Tasks are spawned on the running event loop and tracked until joined
- join_names() waits only for naming tasks; join() waits for everything
- A failed task is logged and counted; joining never raises on its behalf
"""

import asyncio
import logging
from typing import Coroutine, List, Set

logger = logging.getLogger(__name__)


class PendingTaskRegistry:
    """Join barrier for background tasks spawned during a run."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self._name_tasks: Set[asyncio.Task] = set()
        self.failures: List[str] = []
        self.completed = 0

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    def spawn(self, coro: Coroutine, name: str, names: bool = False) -> asyncio.Task:
        """Schedule ``coro``; requires a running event loop."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        if names:
            self._name_tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            self.failures.append(f"{task.get_name()}: cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.warning("Background task %s failed: %s", task.get_name(), error)
            self.failures.append(f"{task.get_name()}: {error}")
        else:
            self.completed += 1

    async def join_names(self) -> None:
        waiting = [t for t in self._name_tasks if not t.done()]
        if waiting:
            await asyncio.gather(*waiting, return_exceptions=True)
        self._prune()

    async def join(self) -> None:
        # Tasks may spawn more tasks while we wait
        while True:
            waiting = [t for t in self._tasks if not t.done()]
            if not waiting:
                break
            await asyncio.gather(*waiting, return_exceptions=True)
        self._prune()

    def _prune(self) -> None:
        self._tasks = {t for t in self._tasks if not t.done()}
        self._name_tasks = {t for t in self._name_tasks if not t.done()}
