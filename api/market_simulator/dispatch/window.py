"""Bounded, rotating subset of the population eligible for dispatch."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class ActiveWindow:
    """Active participant window with per-member time-to-live.

    Members are kept in insertion order so a phase batch is a stable
    prefix of the window. Refilling samples uniformly from the population,
    never re-adding a current member.

    Args:
        max_size: Window capacity
        ttl_seconds: Membership lifetime since a member was last touched
        rng: Random source for refill sampling
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        max_size: int,
        ttl_seconds: float = 3600.0,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._ttl = ttl_seconds
        self._rng = rng or random.Random()
        self._clock = clock
        self._members: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._members

    @property
    def members(self) -> list[str]:
        return list(self._members)

    def refresh(self, population: list[str]) -> list[str]:
        """Drop expired or vanished members, then refill from the population.

        Returns:
            The participant ids added
        """
        now = self._clock()
        known = set(population)
        for participant_id, touched in list(self._members.items()):
            if now - touched > self._ttl or participant_id not in known:
                del self._members[participant_id]

        spare = self.max_size - len(self._members)
        if spare <= 0:
            return []

        candidates = [p for p in population if p not in self._members]
        added = self._rng.sample(candidates, min(spare, len(candidates)))
        for participant_id in added:
            self._members[participant_id] = now

        if added:
            logger.debug("Active window refilled with %d member(s); size %d", len(added), len(self._members))
        return added

    def prefix(self, count: int) -> list[str]:
        """First ``count`` members in window order."""
        return list(self._members)[: max(0, count)]

    def touch(self, participant_id: str) -> None:
        if participant_id in self._members:
            self._members[participant_id] = self._clock()

    def remove(self, participant_id: str) -> None:
        self._members.pop(participant_id, None)

    def cleanup(self, fraction: float = 0.2) -> list[str]:
        """Drop the least recently touched ``fraction`` of members.

        Returns:
            The participant ids removed
        """
        count = int(len(self._members) * fraction)
        if count <= 0:
            return []
        oldest = sorted(self._members, key=self._members.__getitem__)[:count]
        for participant_id in oldest:
            del self._members[participant_id]
        logger.info("Removed %d least recently active participant(s) from window", count)
        return oldest
