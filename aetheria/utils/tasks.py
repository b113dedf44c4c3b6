"""
Fire-and-forget asyncio work with error logging and ownership.

Narration after a scene resolves, re-illustration after a restore and
listening after narration ends all run in the background. A failure there
is logged instead of silently lost, and everything a controller spawned can
be cancelled together when the session is reset.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


def safe_create_task(coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task:
    """Create an asyncio task whose exception is logged with traceback."""
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(_log_task_exception)
    return task


def _log_task_exception(task: asyncio.Task) -> None:
    """Done-callback that logs unhandled task exceptions."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error(
            "Background task '%s' failed: %s",
            task.get_name(),
            exc,
            exc_info=exc,
        )


class TaskGroup:
    """Set of background tasks owned by one object.

    Tasks drop out of the set when they finish; ``cancel_all`` cancels the
    ones still pending.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task:
        task = safe_create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_all(self) -> int:
        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.debug("Cancelled %d background task(s)", len(pending))
        return len(pending)

    async def drain(self) -> None:
        """Wait for all currently pending tasks (used by tests and shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def __len__(self) -> int:
        return len(self._tasks)
