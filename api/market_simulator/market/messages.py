"""Templated social messages and keyword sentiment."""

from __future__ import annotations

import random
import re

from market_simulator.market.models import MarketSnapshot
from market_simulator.persistence.models import PersonalityType

TOKEN_SYMBOL = "NURO"

MESSAGE_TEMPLATES: dict[str, list[str]] = {
    "MARKET_RISE": [
        "The market is looking bullish today! ${token} up {pct_change}%.",
        "Price action for ${token} is strong, up {pct_change}% in the session.",
        "Seeing good momentum for ${token}, now up {pct_change}%.",
        "Green day for ${token}! Price up {pct_change}% and looking strong.",
    ],
    "MARKET_FALL": [
        "${token} down {pct_change}% today. Watching support levels.",
        "Seeing some selling pressure on ${token}, now down {pct_change}%.",
        "${token} pulling back {pct_change}% from recent highs.",
        "Red day for ${token} markets with a {pct_change}% drop.",
    ],
    "BUY_SIGNAL": [
        "Just bought more ${token} at these levels.",
        "Adding to my ${token} position at {price}.",
        "Accumulating ${token} on this dip. Great opportunity.",
        "Buying ${token} here makes sense to me. Good risk/reward.",
    ],
    "SELL_SIGNAL": [
        "Taking some profits on ${token} after the recent run.",
        "Reducing my ${token} exposure at these levels.",
        "Exiting my ${token} position. Will look to re-enter lower.",
        "Taking money off the table with ${token}. Risk management first.",
    ],
}

TEMPLATE_SENTIMENT = {
    "MARKET_RISE": "positive",
    "BUY_SIGNAL": "positive",
    "MARKET_FALL": "negative",
    "SELL_SIGNAL": "negative",
}

# Probability that a personality leans bullish when picking a signal.
BULLISH_BIAS: dict[PersonalityType, float] = {
    PersonalityType.CONSERVATIVE: 0.3,
    PersonalityType.MODERATE: 0.5,
    PersonalityType.AGGRESSIVE: 0.75,
    PersonalityType.TREND_FOLLOWER: 0.7,
    PersonalityType.CONTRARIAN: 0.3,
    PersonalityType.TECHNICAL: 0.5,
    PersonalityType.FUNDAMENTAL: 0.5,
    PersonalityType.EMOTIONAL: 0.6,
    PersonalityType.WHALE: 0.5,
    PersonalityType.NOVICE: 0.6,
}

_POSITIVE = re.compile(r"\b(bull\w*|moon|pump\w*|buy\w*|long|up|strong|green|accumulat\w*|gain\w*)\b", re.I)
_NEGATIVE = re.compile(r"\b(bear\w*|dump\w*|sell\w*|short|down|weak|red|crash\w*|drop\w*|exit\w*)\b", re.I)


def classify_sentiment(text: str) -> str:
    """Classify text as positive, negative or neutral by keyword counts."""
    positive = len(_POSITIVE.findall(text))
    negative = len(_NEGATIVE.findall(text))
    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def choose_template_kind(
    personality: PersonalityType,
    snapshot: MarketSnapshot,
    rng: random.Random,
) -> str:
    """Pick a template family from price direction and personality bias."""
    if rng.random() < 0.5:
        return "MARKET_RISE" if snapshot.price_change_24h >= 0 else "MARKET_FALL"
    bullish = rng.random() < BULLISH_BIAS.get(personality, 0.5)
    return "BUY_SIGNAL" if bullish else "SELL_SIGNAL"


def render_message(kind: str, snapshot: MarketSnapshot, rng: random.Random) -> tuple[str, str]:
    """Render a template of the given kind.

    Returns:
        Tuple of (text, sentiment)
    """
    template = rng.choice(MESSAGE_TEMPLATES[kind])
    text = template.format(
        token=TOKEN_SYMBOL,
        pct_change=f"{abs(snapshot.price_change_24h):.2f}",
        price=f"{snapshot.price:.6f}",
    )
    return text, TEMPLATE_SENTIMENT[kind]
