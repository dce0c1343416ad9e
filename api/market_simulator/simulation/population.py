"""Seeding the participant population."""

from __future__ import annotations

import logging
import random
import uuid
from collections import Counter
from datetime import datetime
from typing import TYPE_CHECKING

from market_simulator.agents.personalities import get_traits, pick_personality
from market_simulator.persistence.models import ParticipantRecord

if TYPE_CHECKING:
    from market_simulator.config.schemas import SimulationConfig
    from market_simulator.persistence.store import MarketStore

logger = logging.getLogger(__name__)

MIN_STARTING_SOL = 10.0
MAX_STARTING_SOL = 100.0
# Whales hold far more than novices; balances scale with position size.
POSITION_SIZE_BALANCE_SCALE = 4.0


def seed_population(
    store: MarketStore,
    config: SimulationConfig,
    rng: random.Random,
    token_price: float,
) -> int:
    """Create participants until the population reaches ``config.population_size``.

    Personalities are drawn from the configured distribution. Each
    participant starts with 10-100 SOL scaled by personality position size
    and a token holding worth up to half that.

    Returns:
        Number of participants created
    """
    missing = config.population_size - store.count_participants()
    if missing <= 0:
        return 0

    now = datetime.now()
    records = []
    counts: Counter[str] = Counter()
    for _ in range(missing):
        personality = pick_personality(config.personality_distribution, rng)
        traits = get_traits(personality)
        counts[personality.value] += 1
        sol = rng.uniform(MIN_STARTING_SOL, MAX_STARTING_SOL) * (1 + traits.position_size * POSITION_SIZE_BALANCE_SCALE)
        tokens = sol * rng.uniform(0.0, 0.5) / token_price if token_price > 0 else 0.0
        records.append(
            ParticipantRecord(
                id=str(uuid.uuid4()),
                name=f"{personality.value.title().replace('_', ' ')} Trader {counts[personality.value]}",
                personality=personality,
                sol_balance=sol,
                token_balance=tokens,
                created_at=now,
            )
        )

    created = store.insert_participants(records)
    logger.info("Seeded %d participant(s): %s", created, dict(counts))
    return created
