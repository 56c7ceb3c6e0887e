"""
Recurring background refreshes with explicit start/stop.

Each ``PollingTask`` fires its refresh immediately and then every
``interval`` seconds until stopped.  ``PollingScheduler`` ties named tasks
to gating conditions: ``set_gate(name, True)`` starts the task if needed,
``set_gate(name, False)`` cancels it, and ``shutdown()`` cancels all of
them.  Nothing keeps firing after shutdown.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from fieldmap.infra.logging_config import get_logger
from fieldmap.infra.metrics import DispatchMetrics

logger = get_logger(__name__)

Refresh = Callable[[], Awaitable[object]]


class PollingTask:
    """
    One cancellable recurring refresh.

    Usage:
        task = PollingTask("team_locations", store.refresh_team_members, interval=30)
        task.start()
        ...
        await task.stop()
    """

    def __init__(
        self,
        name: str,
        refresh: Refresh,
        *,
        interval: float,
        on_tick: Optional[Callable[[], None]] = None,
    ):
        if interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {interval}")
        self.name = name
        self._refresh = refresh
        self._interval = interval
        self._on_tick = on_tick
        self._task: asyncio.Task | None = None
        self._running = False
        self.tick_count = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the poll loop as an asyncio task (no-op if already running)."""
        if self.is_running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name=f"poll:{self.name}")
        self._task.add_done_callback(self._on_task_done)
        logger.info(f"Polling started: {self.name} every {self._interval}s")

    async def stop(self) -> None:
        """Cancel the loop and wait until it is gone."""
        self._running = False
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info(f"Polling stopped: {self.name}")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self._refresh()
                self.tick_count += 1
                DispatchMetrics.poll_tick(self.name)
                if self._on_tick is not None:
                    self._on_tick()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(f"Polling refresh failed ({self.name}): {exc}", exc_info=True)

            await asyncio.sleep(self._interval)

    def _on_task_done(self, task: asyncio.Task) -> None:
        """Log unexpected poller death."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error(
                f"Poller {self.name} died unexpectedly: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )


class PollingScheduler:
    """Named polling tasks switched on and off by their gating conditions."""

    def __init__(self) -> None:
        self._tasks: dict[str, PollingTask] = {}
        self._closed = False

    def register(self, task: PollingTask) -> None:
        if task.name in self._tasks:
            raise ValueError(f"Poller already registered: {task.name}")
        self._tasks[task.name] = task

    def get(self, name: str) -> PollingTask:
        return self._tasks[name]

    def is_active(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and task.is_running

    async def set_gate(self, name: str, enabled: bool) -> None:
        """Start or stop a poller so it runs exactly while its gate holds."""
        task = self._tasks[name]
        if enabled and not self._closed:
            task.start()
        else:
            await task.stop()

    async def shutdown(self) -> None:
        """Cancel every poller; later ``set_gate(..., True)`` calls are ignored."""
        self._closed = True
        for task in self._tasks.values():
            await task.stop()

    @property
    def active(self) -> list[str]:
        return [name for name, task in self._tasks.items() if task.is_running]
