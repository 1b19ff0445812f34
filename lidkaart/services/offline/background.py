"""
Fire-and-forget task tracking.

Background cache writes must never delay or fail a response. The sink
keeps a strong reference to each task until it finishes and routes any
exception to an error handler instead of leaving it unretrieved.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

import structlog

logger = structlog.get_logger()

ErrorHandler = Callable[[str, BaseException], None]


class BackgroundTaskSink:
    """Owner of detached asyncio tasks with a dedicated error sink."""

    def __init__(self, on_error: Optional[ErrorHandler] = None):
        self._tasks: Dict[asyncio.Future, str] = {}
        self._on_error = on_error
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, name: str, coro: Awaitable, kind: str = "task") -> asyncio.Future:
        """Schedule coro without awaiting it."""
        task = asyncio.ensure_future(coro)
        return self.adopt(name, task, kind)

    def adopt(self, name: str, task: asyncio.Future, kind: str = "task") -> asyncio.Future:
        """Take ownership of an already running task."""
        if isinstance(task, asyncio.Task):
            task.set_name(name)
        self._tasks[task] = kind
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Future) -> None:
        kind = self._tasks.pop(task, "task")
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return

        self.failures += 1
        logger.warning(
            "Background task failed",
            task=task.get_name() if isinstance(task, asyncio.Task) else kind,
            kind=kind,
            error=str(error),
            error_type=type(error).__name__,
        )
        if self._on_error is not None:
            self._on_error(kind, error)

    async def wait_idle(self) -> None:
        """Wait until every task spawned so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            # let done callbacks run
            await asyncio.sleep(0)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.wait_idle()
