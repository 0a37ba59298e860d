"""Periodic token list pushes."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from bifrost.services.tasks import TaskScheduler

logger = logging.getLogger("sync")

AUTO_SYNC_TASK = "auto_sync"


class AutoSyncScheduler:
    """Pushes a full snapshot on a timer while the transport is connected.

    The timer keeps running across disconnects; each tick checks the
    connection and does nothing while it is down.
    """

    def __init__(
        self,
        tasks: TaskScheduler,
        is_connected: Callable[[], bool],
        push: Callable[[], Awaitable[Any]],
        default_interval: float = 30.0,
    ) -> None:
        self._tasks = tasks
        self._is_connected = is_connected
        self._push = push
        self.default_interval = default_interval
        self.interval: float | None = None

    @property
    def running(self) -> bool:
        return self._tasks.is_active(AUTO_SYNC_TASK)

    def start(self, interval: float | None = None) -> float:
        """Start (or restart) the timer; returns the interval in use."""
        interval = interval or self.default_interval
        if interval <= 0:
            raise ValueError("Auto-sync interval must be positive")

        self._tasks.every(AUTO_SYNC_TASK, interval, self._tick)
        self.interval = interval
        logger.info(
            "Started auto-sync",
            extra={"service": "sync", "interval_seconds": interval},
        )
        return interval

    def stop(self) -> bool:
        """Cancel the timer. Safe to call when it is not running."""
        self.interval = None
        stopped = self._tasks.cancel(AUTO_SYNC_TASK)
        if stopped:
            logger.info("Stopped auto-sync", extra={"service": "sync"})
        return stopped

    async def _tick(self) -> None:
        if not self._is_connected():
            logger.debug("Auto-sync skipped while disconnected", extra={"service": "sync"})
            return
        await self._push()
