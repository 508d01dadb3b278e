"""Supervision of detached background tasks."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[BaseException], Awaitable[Any]]


class TaskSupervisor:
    """
    Spawns tasks that outlive the request that started them.

    Holds strong references until each task finishes and logs failures. An
    optional ``on_error`` coroutine factory is scheduled when a task raises,
    which is how a failed turn pipeline gets its single recovery action.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(
        self,
        coro: Awaitable[Any],
        *,
        name: str,
        on_error: Optional[ErrorHandler] = None,
    ) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)

        def _on_done(done: asyncio.Task) -> None:
            self._tasks.discard(done)
            if done.cancelled():
                logger.debug(f"[TASKS] {name} cancelled")
                return
            exc = done.exception()
            if exc is None:
                return
            logger.error(
                f"[TASKS] {name} failed: {type(exc).__name__}: {exc}",
                exc_info=exc,
            )
            if on_error is not None:
                self.spawn(on_error(exc), name=f"{name}:recovery")

        task.add_done_callback(_on_done)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every task, including ones spawned meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            # Let done-callbacks run so recovery tasks get registered.
            await asyncio.sleep(0)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
