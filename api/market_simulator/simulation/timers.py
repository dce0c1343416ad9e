"""Cooperative periodic timers on the asyncio event loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTimer:
    """Fires a coroutine function every ``interval`` seconds.

    With ``overlap=True`` each tick is spawned as its own task, so the next
    tick fires on schedule even if the previous callback is still running.
    Otherwise the loop awaits the callback before sleeping again. Callback
    errors are logged and never stop the timer.

    Args:
        name: Label used in logs
        interval: Period in seconds
        callback: Coroutine function to run on each tick
        run_immediately: Fire once at start, before the first sleep
        overlap: Spawn ticks as independent tasks
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[object]],
        run_immediately: bool = False,
        overlap: bool = False,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._run_immediately = run_immediately
        self._overlap = overlap
        self._task: asyncio.Task[None] | None = None
        self._ticks: set[asyncio.Task[None]] = set()
        self.fired = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(self._run_immediately), name=f"timer:{self.name}")

    async def stop(self, cancel_ticks: bool = True) -> None:
        """Cancel the timer loop and, optionally, ticks still in flight.

        Called from the timer's own callback, the loop is not cancelled; it
        exits once the callback returns.
        """
        tasks = []
        current = asyncio.current_task()
        if self._task is not None:
            if self._task is not current:
                self._task.cancel()
                tasks.append(self._task)
            self._task = None
        if cancel_ticks:
            for tick in list(self._ticks):
                if tick is current:
                    continue
                tick.cancel()
                tasks.append(tick)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def rearm(self, interval: float) -> None:
        """Restart with a new period without firing immediately."""
        if interval <= 0:
            raise ValueError("interval must be positive")
        was_running = self.running
        self.interval = interval
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        if was_running:
            self._task = asyncio.create_task(self._loop(False), name=f"timer:{self.name}")

    async def _loop(self, fire_first: bool) -> None:
        if fire_first:
            await self._tick()
        while self._task is asyncio.current_task():
            await asyncio.sleep(self.interval)
            await self._tick()

    async def _tick(self) -> None:
        self.fired += 1
        if self._overlap:
            task = asyncio.create_task(self._guarded(), name=f"tick:{self.name}")
            self._ticks.add(task)
            task.add_done_callback(self._ticks.discard)
        else:
            await self._guarded()

    async def _guarded(self) -> None:
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Timer %s callback failed", self.name)
