"""Tests for derived market statistics and the message feed."""

import json
import uuid
from datetime import datetime

import pytest

from market_simulator.amm.swap_engine import SwapEngine
from market_simulator.errors import PoolUninitializedError
from market_simulator.market.data import SENTIMENT_SAMPLE_SIZE, MarketDataService
from market_simulator.persistence.models import TransactionRecord, TransactionStatus


@pytest.fixture
def market(store):
    return MarketDataService(store)


@pytest.fixture
def engine(store, market):
    engine = SwapEngine(store)
    engine.bootstrap_pool(1000.0, 1_000_000.0)
    return engine


class TestMarketInfo:
    def test_missing_pool_raises(self, market):
        with pytest.raises(PoolUninitializedError):
            market.get_market_info()

    def test_snapshot_reflects_pool(self, market, engine):
        info = market.get_market_info()

        assert info.price == pytest.approx(0.001)
        assert info.liquidity == pytest.approx(2000.0)
        assert info.price_change_24h == 0.0


class TestUpdateMarketState:
    @pytest.mark.asyncio
    async def test_skipped_without_pool(self, market, store):
        assert await market.update_market_state() is None
        assert store.latest_market_state() is None

    @pytest.mark.asyncio
    async def test_price_change_against_previous_snapshot(self, market, engine, store, make_participant):
        await market.update_market_state()
        participant = make_participant(sol_balance=100.0)
        await engine.execute(participant.id, 10.0, True, slippage_tolerance=5.0)

        state = await market.update_market_state()

        new_price = store.get_pool().current_price
        assert state.price == pytest.approx(new_price)
        assert state.price_change_24h == pytest.approx((new_price - 0.001) / 0.001 * 100)
        assert state.volume_24h == pytest.approx(10.0)
        assert state.transaction_count_24h == 1
        assert market.get_market_info().price_change_24h == pytest.approx(state.price_change_24h)

    @pytest.mark.asyncio
    async def test_failed_swaps_do_not_count_as_volume(self, market, engine, store):
        store.append_transaction(
            TransactionRecord(
                id=str(uuid.uuid4()),
                participant_id="p1",
                input_amount=99.0,
                input_is_sol=True,
                status=TransactionStatus.FAILED,
                details=json.dumps({"volume_in_sol": 99.0}),
                created_at=datetime.now(),
            )
        )

        state = await market.update_market_state()

        assert state.volume_24h == 0.0
        assert state.transaction_count_24h == 0


class TestSentiment:
    def test_empty_feed_is_even(self, market):
        sentiment = market.get_market_sentiment()

        assert sentiment.bullish == 0.5
        assert sentiment.bearish == 0.5
        assert sentiment.message_count == 0

    def test_only_neutral_messages_is_even(self, market):
        market.post_message(None, "hello", "neutral")

        sentiment = market.get_market_sentiment()

        assert sentiment.bullish == 0.5
        assert sentiment.neutral == 1.0

    def test_mixed_feed(self, market):
        for tone in ("positive", "positive", "positive", "negative", "neutral"):
            market.post_message(None, "msg", tone)

        sentiment = market.get_market_sentiment()

        assert sentiment.bullish == pytest.approx(0.75)
        assert sentiment.bearish == pytest.approx(0.25)
        assert sentiment.neutral == pytest.approx(0.2)
        assert sentiment.message_count == 5

    def test_samples_only_recent_messages(self, market):
        for _ in range(SENTIMENT_SAMPLE_SIZE + 10):
            market.post_message(None, "msg", "negative")

        assert market.get_market_sentiment().message_count == SENTIMENT_SAMPLE_SIZE

    def test_post_message_is_readable(self, market):
        posted = market.post_message("p1", "Buying here", "positive")

        [latest] = market.recent_messages(limit=1)
        assert latest.id == posted.id
        assert latest.participant_id == "p1"
