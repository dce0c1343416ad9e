"""Adaptive spacing between oracle calls.

All mutation goes through one ``BackoffState`` guarded by an
``asyncio.Lock``; concurrent dispatch units reserve successive call slots
instead of reading and writing shared counters independently.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

# Growth starts here when the configured floor is zero.
INITIAL_GROWTH_SECONDS = 0.1


@dataclass(frozen=True)
class BackoffSnapshot:
    delay: float
    cooldown: float
    cooldown_remaining: float
    consecutive_rate_limits: int


class BackoffState:
    """Inter-call delay and rate-limit cooldown for one dispatch stream.

    A rate limit doubles the inter-call delay (capped at ``max_delay``) and
    opens a cooldown window whose own length doubles up to ``max_cooldown``.
    A success halves the delay back toward ``min_delay`` and resets the
    cooldown length.

    Args:
        min_delay: Floor for the inter-call delay, in seconds
        max_delay: Cap for the inter-call delay, in seconds
        cooldown: Initial cooldown after a rate limit, in seconds
        max_cooldown: Cap for the cooldown, in seconds
        clock: Monotonic time source
        sleep: Coroutine used to wait
    """

    def __init__(
        self,
        min_delay: float = 1.0,
        max_delay: float = 10.0,
        cooldown: float = 5.0,
        max_cooldown: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if max_delay < min_delay:
            raise ValueError("max_delay must be >= min_delay")
        if max_cooldown < cooldown:
            raise ValueError("max_cooldown must be >= cooldown")
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.base_cooldown = cooldown
        self.max_cooldown = max_cooldown
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._delay = min_delay
        self._cooldown = cooldown
        self._cooldown_until = 0.0
        self._next_slot = 0.0
        self._consecutive = 0

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def cooldown(self) -> float:
        return self._cooldown

    @property
    def consecutive_rate_limits(self) -> int:
        return self._consecutive

    def snapshot(self) -> BackoffSnapshot:
        return BackoffSnapshot(
            delay=self._delay,
            cooldown=self._cooldown,
            cooldown_remaining=max(0.0, self._cooldown_until - self._clock()),
            consecutive_rate_limits=self._consecutive,
        )

    async def wait_turn(self) -> float:
        """Wait for the cooldown and this caller's reserved call slot.

        Returns:
            Seconds waited
        """
        async with self._lock:
            now = self._clock()
            start = max(now, self._cooldown_until, self._next_slot)
            self._next_slot = start + self._delay
            wait = start - now

        if wait > 0:
            await self._sleep(wait)
        return wait

    async def record_success(self) -> None:
        async with self._lock:
            self._consecutive = 0
            self._delay = max(self.min_delay, self._delay / 2)
            self._cooldown = self.base_cooldown

    async def record_rate_limit(self) -> float:
        """Grow the delay and open a cooldown window.

        Returns:
            The new inter-call delay
        """
        async with self._lock:
            self._consecutive += 1
            grown = self._delay * 2 if self._delay > 0 else INITIAL_GROWTH_SECONDS
            self._delay = min(self.max_delay, grown)
            self._cooldown_until = max(self._cooldown_until, self._clock() + self._cooldown)
            self._cooldown = min(self.max_cooldown, self._cooldown * 2)
            return self._delay
