import asyncio
import logging
from typing import Coroutine

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Runs work off the request path.

    Spawned tasks are referenced until they finish so they are not garbage
    collected mid-flight, and any exception they end with is logged.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine, name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background task {task.get_name()} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Waits until every outstanding task, including ones spawned meanwhile, ends."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
