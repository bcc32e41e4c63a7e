import asyncio
import logging
from typing import Coroutine

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Supervised fire-and-forget tasks

    Keeps a reference to every task until it finishes and logs failures,
    so nothing detached from a request can crash the process silently.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info(f"🛑 Background task {task.get_name()} cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"❌ Background task {task.get_name()} failed: {exc!r}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def join(self) -> None:
        """Waits for the currently running tasks"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancels and awaits every running task"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def __len__(self) -> int:
        return len(self._tasks)
