"""Named, independently cancellable background tasks.

Heartbeat, reconnection, auto-sync and the delayed pushes are all
asyncio tasks keyed by purpose. Scheduling a name replaces whatever task
held it, so start/stop stay idempotent.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger("sync")

TaskCallback = Callable[[], Awaitable[None]]


class TaskScheduler:
    """Owns the engine's timer tasks."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def active_names(self) -> list[str]:
        """Names with a live task."""
        return sorted(name for name, task in self._tasks.items() if not task.done())

    def is_active(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    def every(self, name: str, interval: float, callback: TaskCallback) -> asyncio.Task[None]:
        """Run ``callback`` every ``interval`` seconds until cancelled.

        A failing tick is logged and the timer keeps running.
        """

        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval)
                try:
                    await callback()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(
                        "Scheduled tick failed",
                        extra={"service": "sync", "task": name, "error": str(e)},
                        exc_info=True,
                    )

        return self._start(name, _loop())

    def after(self, name: str, delay: float, callback: TaskCallback) -> asyncio.Task[None]:
        """Run ``callback`` once after ``delay`` seconds."""

        async def _once() -> None:
            await asyncio.sleep(delay)
            await callback()

        return self._start(name, _once())

    def spawn(self, name: str, coro: Awaitable[None]) -> asyncio.Task[None]:
        """Run ``coro`` under ``name`` until it finishes or is cancelled."""
        return self._start(name, coro)

    def cancel(self, name: str) -> bool:
        """Cancel the task held by ``name``. Safe when nothing is scheduled."""
        task = self._tasks.pop(name, None)
        if task is None or task.done():
            return False
        if task is not asyncio.current_task():
            task.cancel()
        logger.debug("Task cancelled", extra={"service": "sync", "task": name})
        return True

    async def cancel_all(self) -> None:
        """Cancel every task and wait for them to unwind."""
        tasks = [t for t in self._tasks.values() if t is not asyncio.current_task()]
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            with contextlib.suppress(Exception):
                await asyncio.gather(*tasks, return_exceptions=True)

    def _start(self, name: str, coro: Awaitable[None]) -> asyncio.Task[None]:
        self.cancel(name)
        task = asyncio.ensure_future(coro)
        self._tasks[name] = task

        def _done(t: asyncio.Task[None]) -> None:
            if self._tasks.get(name) is t:
                self._tasks.pop(name, None)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error(
                    "Scheduled task failed",
                    extra={"service": "sync", "task": name, "error": str(exc)},
                    exc_info=exc,
                )

        task.add_done_callback(_done)
        logger.debug("Task scheduled", extra={"service": "sync", "task": name})
        return task
