"""Bounded cache of live participant instances.

One ``asyncio.Lock`` guards the entry map for lookups, inserts, eviction
sweeps and draining. Concurrent misses for the same identifier share a
single pending load. Instances evicted while leased are closed only once
their last lease is released.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

OVERFLOW_THRESHOLD = 0.9
LRU_EVICTION_FRACTION = 0.2


@dataclass
class CacheEntry(Generic[T]):
    """A resident instance and its access bookkeeping."""

    instance: T
    created_at: float
    last_access: float
    leases: int = 0
    evicted: bool = False
    closed: bool = False


@dataclass(frozen=True)
class CacheStats:
    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int


class InstanceCache(Generic[T]):
    """Maps participant identifiers to live instances within a fixed bound.

    Args:
        loader: Coroutine function building an instance for an identifier;
            raises ParticipantNotFoundError for unknown identifiers
        max_size: Maximum resident instances
        ttl_seconds: Idle time after which an entry expires
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        loader: Callable[[str], Awaitable[T]],
        max_size: int = 100,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._loader = loader
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._pending: dict[str, asyncio.Future[CacheEntry[T]]] = {}
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def max_size(self) -> int:
        return self._max_size

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            max_size=self._max_size,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )

    def last_access(self, participant_id: str) -> float | None:
        entry = self._entries.get(participant_id)
        return entry.last_access if entry else None

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    async def get(self, participant_id: str) -> T:
        """Return the live instance, creating it on a miss."""
        entry = await self._acquire(participant_id, lease=False)
        return entry.instance

    @asynccontextmanager
    async def lease(self, participant_id: str) -> AsyncIterator[T]:
        """Hold an instance for the duration of a block.

        An entry evicted while leased stays usable; it is closed when the
        last lease ends.
        """
        entry = await self._acquire(participant_id, lease=True)
        try:
            yield entry.instance
        finally:
            async with self._lock:
                entry.leases -= 1
                close_now = entry.evicted and entry.leases == 0
            if close_now:
                await self._close(participant_id, entry)

    async def _acquire(self, participant_id: str, lease: bool) -> CacheEntry[T]:
        async with self._lock:
            entry = self._entries.get(participant_id)
            if entry is not None:
                self._hits += 1
                entry.last_access = self._clock()
                if lease:
                    entry.leases += 1
                return entry

            pending = self._pending.get(participant_id)
            owner = pending is None
            if owner:
                self._misses += 1
                pending = asyncio.get_running_loop().create_future()
                pending.add_done_callback(_consume_exception)
                self._pending[participant_id] = pending

        if not owner:
            await asyncio.shield(pending)  # type: ignore[arg-type]
            # The loader inserted the entry; it may since have been evicted.
            return await self._acquire(participant_id, lease)

        return await self._load(participant_id, pending, lease)  # type: ignore[arg-type]

    async def _load(
        self, participant_id: str, pending: asyncio.Future[CacheEntry[T]], lease: bool
    ) -> CacheEntry[T]:
        try:
            instance = await self._loader(participant_id)
        except BaseException as e:
            async with self._lock:
                self._pending.pop(participant_id, None)
            if not pending.done():
                if isinstance(e, asyncio.CancelledError):
                    pending.cancel()
                else:
                    pending.set_exception(e)
            raise

        async with self._lock:
            self._pending.pop(participant_id, None)
            evicted: list[tuple[str, CacheEntry[T]]] = []
            if len(self._entries) >= self._max_size:
                evicted = self._evict_locked()
            now = self._clock()
            entry = CacheEntry(instance=instance, created_at=now, last_access=now, leases=1 if lease else 0)
            self._entries[participant_id] = entry
            if not pending.done():
                pending.set_result(entry)

        await self._close_evicted(evicted)
        return entry

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    async def evict(self) -> int:
        """Run an eviction sweep and return the number of entries removed."""
        async with self._lock:
            evicted = self._evict_locked()
        await self._close_evicted(evicted)
        return len(evicted)

    def _evict_locked(self) -> list[tuple[str, CacheEntry[T]]]:
        now = self._clock()
        removed: list[tuple[str, CacheEntry[T]]] = []

        for participant_id, entry in list(self._entries.items()):
            if now - entry.last_access > self._ttl:
                removed.append((participant_id, self._entries.pop(participant_id)))

        if len(self._entries) > OVERFLOW_THRESHOLD * self._max_size:
            count = max(1, int(LRU_EVICTION_FRACTION * self._max_size))
            oldest = sorted(self._entries.items(), key=lambda item: item[1].last_access)[:count]
            for participant_id, _ in oldest:
                removed.append((participant_id, self._entries.pop(participant_id)))

        for _, entry in removed:
            entry.evicted = True
        self._evictions += len(removed)
        if removed:
            logger.debug("Evicted %d instance(s); %d resident", len(removed), len(self._entries))
        return removed

    async def _close_evicted(self, evicted: list[tuple[str, CacheEntry[T]]]) -> None:
        for participant_id, entry in evicted:
            if entry.leases == 0:
                await self._close(participant_id, entry)

    async def drain_all(self) -> int:
        """Close every resident instance and empty the cache."""
        async with self._lock:
            entries = list(self._entries.items())
            for participant_id, entry in entries:
                entry.evicted = True
                await self._close(participant_id, entry)
            self._entries.clear()
        logger.info("Drained %d instance(s) from cache", len(entries))
        return len(entries)

    async def _close(self, participant_id: str, entry: CacheEntry[T]) -> None:
        if entry.closed:
            return
        entry.closed = True
        close = getattr(entry.instance, "close", None)
        if close is None:
            return
        try:
            await close()
        except Exception:
            logger.exception("Error closing instance for %s", participant_id)


def _consume_exception(future: asyncio.Future[Any]) -> None:
    # Mark the exception retrieved when no waiter shared the load.
    if not future.cancelled():
        future.exception()
