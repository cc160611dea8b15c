"""
Fire-and-forget background work (remote mirrors, badge refreshes).

Tasks are only started when an event loop is running; outside a loop the
coroutine is closed and the work is skipped.
"""
import asyncio
import logging
from typing import Coroutine, Any, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Tracks spawned tasks so they can be drained on shutdown"""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, skipping background task {name or coro}")
            coro.close()
            return None

        task = loop.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} failed: {str(exc)}", exc_info=exc)

    async def drain(self) -> None:
        """Wait until every tracked task (including ones spawned while draining) is done"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
