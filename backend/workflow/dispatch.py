"""Background dispatch of workflow runs.

Webhook, event and schedule triggers answer their caller before the run
finishes. Runs become asyncio tasks on the current event loop; the
dispatcher holds a reference to each task until it completes, and a
crashed run is logged from the done-callback instead of disappearing.
"""

import asyncio
from typing import Coroutine, Optional

import structlog

logger = structlog.get_logger(__name__)


class RunDispatcher:
    """Fire-and-forget launcher for workflow runs."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, coro: Coroutine, name: Optional[str] = None, **log_fields) -> asyncio.Task:
        """Schedule ``coro`` on the running loop and return its task."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, log_fields))
        logger.debug("Run dispatched", task=name, **log_fields)
        return task

    def _on_done(self, task: asyncio.Task, log_fields: dict) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Dispatched run cancelled", task=task.get_name(), **log_fields)
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Dispatched run failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=exc,
                **log_fields,
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every in-flight run (shutdown, tests), at most ``timeout`` seconds in total."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            done, _ = await asyncio.wait(set(self._tasks), timeout=remaining)
            if not done:
                logger.warning("Timed out waiting for dispatched runs", pending=self.pending)
                return

    async def cancel_pending(self) -> int:
        """Cancel in-flight runs and wait for them to record their failure."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)
