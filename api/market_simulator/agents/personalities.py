"""Personality traits that shape how participants analyze, talk and trade."""

from __future__ import annotations

import random
from collections.abc import Mapping
from dataclasses import dataclass

from market_simulator.persistence.models import PersonalityType


@dataclass(frozen=True)
class PersonalityTraits:
    """Behavioral weights in [0, 1].

    Attributes:
        trade_frequency: Probability of trading in a trading phase.
        risk_tolerance: Appetite for price impact and volatility.
        position_size: Base trade size, scaled by a random factor in [1, 3).
        decision_threshold: Confidence needed before acting.
        message_frequency: Probability of posting in a social phase.
        social_influence: Weight given to other participants' messages.
        analysis_depth: How thorough the market analysis is.
    """

    description: str
    trade_frequency: float
    risk_tolerance: float
    position_size: float
    decision_threshold: float
    message_frequency: float
    social_influence: float
    analysis_depth: float


PERSONALITIES: dict[PersonalityType, PersonalityTraits] = {
    PersonalityType.CONSERVATIVE: PersonalityTraits(
        "Conservative trader who prefers stable assets and minimal risk",
        0.15, 0.05, 0.05, 0.85, 0.25, 0.3, 0.95,
    ),
    PersonalityType.MODERATE: PersonalityTraits(
        "Moderate trader who takes a balanced approach to risk and reward",
        0.4, 0.4, 0.25, 0.6, 0.45, 0.5, 0.7,
    ),
    PersonalityType.AGGRESSIVE: PersonalityTraits(
        "Aggressive trader who seeks high returns and is willing to take risks",
        0.75, 0.9, 0.7, 0.25, 0.7, 0.8, 0.3,
    ),
    PersonalityType.TREND_FOLLOWER: PersonalityTraits(
        "Trend follower who follows market momentum",
        0.6, 0.35, 0.4, 0.4, 0.55, 0.45, 0.6,
    ),
    PersonalityType.CONTRARIAN: PersonalityTraits(
        "Contrarian who tends to go against market trends",
        0.45, 0.65, 0.35, 0.45, 0.5, 0.4, 0.75,
    ),
    PersonalityType.TECHNICAL: PersonalityTraits(
        "Technical analyst who trades based on chart patterns and indicators",
        0.55, 0.4, 0.3, 0.5, 0.4, 0.55, 0.95,
    ),
    PersonalityType.FUNDAMENTAL: PersonalityTraits(
        "Fundamental analyst who evaluates the intrinsic value of assets",
        0.25, 0.3, 0.2, 0.7, 0.4, 0.7, 0.95,
    ),
    PersonalityType.EMOTIONAL: PersonalityTraits(
        "Emotional trader who is easily influenced by market sentiment",
        0.65, 0.5, 0.35, 0.35, 0.8, 0.25, 0.2,
    ),
    PersonalityType.WHALE: PersonalityTraits(
        "Large trader with significant capital who can influence market moves",
        0.15, 0.8, 0.9, 0.3, 0.2, 0.95, 0.8,
    ),
    PersonalityType.NOVICE: PersonalityTraits(
        "Inexperienced trader who is still learning the basics",
        0.3, 0.15, 0.08, 0.8, 0.6, 0.15, 0.4,
    ),
}


def get_traits(personality: PersonalityType) -> PersonalityTraits:
    return PERSONALITIES[personality]


def pick_personality(
    distribution: Mapping[PersonalityType, float],
    rng: random.Random,
) -> PersonalityType:
    """Sample a personality according to its probability weight."""
    personalities = list(distribution)
    weights = [distribution[p] for p in personalities]
    return rng.choices(personalities, weights=weights, k=1)[0]
