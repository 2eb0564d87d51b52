"""Lifecycle manager for fire-and-forget background work."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Own best-effort background tasks (telemetry, summaries, queue drains).

    Failures are logged under ``background.<label>.failed`` and never reach
    the code that spawned the task.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop and track it until done."""
        task = asyncio.get_running_loop().create_task(coro, name=f"codechat.{label}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(lambda done: self._log_exception(done, label))
        return task

    def _log_exception(self, task: asyncio.Task[Any], label: str) -> None:
        """Log unhandled exceptions so they are not silently lost."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning(
                f"background.{label}.failed",
                extra={
                    "event": f"background.{label}.failed",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    async def drain(self) -> None:
        """Await every tracked task, including ones spawned while waiting."""
        current = asyncio.current_task()
        while True:
            pending = [task for task in self._tasks if task is not current]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
            self._tasks.difference_update(pending)

    async def cancel_all(self) -> None:
        """Cancel every tracked task and await them all."""
        current = asyncio.current_task()
        pending = [
            task for task in self._tasks if not task.done() and task is not current
        ]
        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                # Already reported by the done callback.
                continue
        self._tasks.clear()
