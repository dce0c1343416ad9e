"""Tests for personality traits and the personality fallback trade."""

import random
from collections import Counter

import pytest

from market_simulator.agents.base import plan_fallback_trade, simulated_analysis
from market_simulator.agents.personalities import PERSONALITIES, get_traits, pick_personality
from market_simulator.market.messages import classify_sentiment, render_message
from market_simulator.market.models import MarketSnapshot
from market_simulator.persistence.models import PersonalityType


def _snapshot(price_change: float = 0.0, price: float = 0.01) -> MarketSnapshot:
    return MarketSnapshot(
        price=price,
        liquidity=20_000.0,
        volume_24h=50.0,
        price_change_24h=price_change,
        sol_reserve=10_000.0,
        token_reserve=10_000.0 / price,
    )


class AlwaysRng(random.Random):
    """Random whose ``random()`` always returns a fixed value."""

    def __init__(self, value: float) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


class SequenceRng(random.Random):
    """Random whose ``random()`` replays a fixed sequence."""

    def __init__(self, *values: float) -> None:
        super().__init__(0)
        self.values = list(values)

    def random(self) -> float:
        return self.values.pop(0)


class TestTraits:
    def test_every_personality_has_traits(self):
        assert set(PERSONALITIES) == set(PersonalityType)

    def test_traits_are_weights(self):
        for traits in PERSONALITIES.values():
            for value in (
                traits.trade_frequency,
                traits.risk_tolerance,
                traits.position_size,
                traits.decision_threshold,
                traits.message_frequency,
                traits.social_influence,
                traits.analysis_depth,
            ):
                assert 0.0 <= value <= 1.0

    def test_whale_trades_bigger_than_novice(self):
        assert get_traits(PersonalityType.WHALE).position_size > get_traits(PersonalityType.NOVICE).position_size


class TestPickPersonality:
    def test_single_weight_always_wins(self):
        rng = random.Random(1)
        picks = {pick_personality({PersonalityType.WHALE: 1.0}, rng) for _ in range(20)}
        assert picks == {PersonalityType.WHALE}

    def test_follows_distribution(self):
        rng = random.Random(7)
        distribution = {PersonalityType.NOVICE: 0.8, PersonalityType.WHALE: 0.2}

        counts = Counter(pick_personality(distribution, rng) for _ in range(2000))

        assert counts[PersonalityType.NOVICE] / 2000 == pytest.approx(0.8, abs=0.05)


class TestFallbackTrade:
    def test_no_trade_without_balance(self):
        traits = get_traits(PersonalityType.AGGRESSIVE)

        decision = plan_fallback_trade(PersonalityType.AGGRESSIVE, traits, _snapshot(), 1.0, 0.0, AlwaysRng(0.0))

        assert decision is None

    def test_no_trade_when_roll_exceeds_frequency(self):
        traits = get_traits(PersonalityType.CONSERVATIVE)

        decision = plan_fallback_trade(PersonalityType.CONSERVATIVE, traits, _snapshot(), 50.0, 0.0, AlwaysRng(0.99))

        assert decision is None

    def test_contrarian_buys_the_dip(self):
        traits = get_traits(PersonalityType.CONTRARIAN)

        decision = plan_fallback_trade(
            PersonalityType.CONTRARIAN, traits, _snapshot(price_change=-3.0), 50.0, 0.0, AlwaysRng(0.1)
        )

        assert decision.direction == "BUY"
        assert decision.amount > 0

    def test_conservative_sells_into_a_fall(self):
        traits = get_traits(PersonalityType.CONSERVATIVE)

        decision = plan_fallback_trade(
            PersonalityType.CONSERVATIVE, traits, _snapshot(price_change=-2.0), 50.0, 1000.0, SequenceRng(0.1, 0.9, 0.9)
        )

        assert decision.direction == "SELL"

    def test_sell_is_capped_by_token_balance(self):
        traits = get_traits(PersonalityType.CONSERVATIVE)

        decision = plan_fallback_trade(
            PersonalityType.CONSERVATIVE, traits, _snapshot(price_change=-2.0), 50.0, 15.0, SequenceRng(0.1, 0.9, 0.9)
        )

        assert decision.direction == "SELL"
        assert decision.amount == pytest.approx(12.0)

    def test_sell_without_tokens_is_skipped(self):
        traits = get_traits(PersonalityType.CONSERVATIVE)

        decision = plan_fallback_trade(
            PersonalityType.CONSERVATIVE, traits, _snapshot(price_change=-2.0), 50.0, 0.0, SequenceRng(0.1, 0.9, 0.9)
        )

        assert decision is None

    def test_buy_never_exceeds_eighty_percent_of_balance(self):
        traits = get_traits(PersonalityType.WHALE)
        rng = random.Random(3)

        for _ in range(200):
            decision = plan_fallback_trade(PersonalityType.WHALE, traits, _snapshot(), 2.0, 0.0, rng)
            if decision is not None and decision.direction == "BUY":
                assert decision.amount <= 1.6 + 1e-9


class TestTemplates:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Very bullish, buying more", "positive"),
            ("Time to sell, looks weak", "negative"),
            ("Just watching today", "neutral"),
        ],
    )
    def test_classify_sentiment(self, text, expected):
        assert classify_sentiment(text) == expected

    def test_rendered_message_carries_template_sentiment(self):
        text, sentiment = render_message("MARKET_FALL", _snapshot(price_change=-4.25), random.Random(2))

        assert sentiment == "negative"
        assert "$NURO" in text
        assert "4.25" in text

    def test_simulated_analysis_mentions_price(self):
        text = simulated_analysis(PersonalityType.TREND_FOLLOWER, _snapshot(price_change=1.5))

        assert "0.010000" in text
        assert "+1.50%" in text
