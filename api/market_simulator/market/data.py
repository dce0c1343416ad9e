"""Derived market statistics: price change, rolling volume and sentiment."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from market_simulator.errors import PoolUninitializedError
from market_simulator.market.models import MarketSnapshot, Sentiment
from market_simulator.persistence.models import MarketStateRecord, MessageRecord

if TYPE_CHECKING:
    from market_simulator.persistence.store import MarketStore

logger = logging.getLogger(__name__)

SENTIMENT_SAMPLE_SIZE = 50


class MarketDataService:
    """Reads the pool and message feed to produce market statistics."""

    def __init__(self, store: MarketStore, pool_id: str = "default") -> None:
        self._store = store
        self._pool_id = pool_id

    async def update_market_state(self) -> MarketStateRecord | None:
        """Append a fresh market state snapshot derived from the pool.

        Returns None when the pool has not been initialized yet.
        """
        pool = self._store.get_pool(self._pool_id)
        if pool is None:
            logger.debug("Skipping market state update: pool not initialized")
            return None

        now = datetime.now()
        previous = self._store.latest_market_state()
        price = pool.current_price
        if previous is not None and previous.price > 0:
            price_change = (price - previous.price) / previous.price * 100
        else:
            price_change = 0.0

        volume, count = self._store.confirmed_volume_since(now - timedelta(hours=24))
        record = MarketStateRecord(
            id=str(uuid.uuid4()),
            price=price,
            price_change_24h=price_change,
            volume_24h=volume,
            transaction_count_24h=count,
            liquidity=pool.sol_reserve * 2,
            created_at=now,
        )
        self._store.append_market_state(record)
        return record

    def get_market_info(self) -> MarketSnapshot:
        """Current price and statistics.

        Raises:
            PoolUninitializedError: If the pool does not exist
        """
        pool = self._store.get_pool(self._pool_id)
        if pool is None:
            raise PoolUninitializedError(self._pool_id)

        state = self._store.latest_market_state()
        return MarketSnapshot(
            price=pool.current_price,
            liquidity=pool.sol_reserve * 2,
            volume_24h=state.volume_24h if state else pool.volume_24h,
            price_change_24h=state.price_change_24h if state else 0.0,
            sol_reserve=pool.sol_reserve,
            token_reserve=pool.token_reserve,
        )

    def get_market_sentiment(self) -> Sentiment:
        """Sentiment over the most recent messages; even split when there is no signal."""
        messages = self._store.recent_messages(SENTIMENT_SAMPLE_SIZE)
        bullish = sum(1 for m in messages if m.sentiment == "positive")
        bearish = sum(1 for m in messages if m.sentiment == "negative")
        polar = bullish + bearish

        if polar == 0:
            return Sentiment(
                bullish=0.5,
                bearish=0.5,
                neutral=1.0 if messages else 0.0,
                message_count=len(messages),
            )

        return Sentiment(
            bullish=bullish / polar,
            bearish=bearish / polar,
            neutral=(len(messages) - polar) / len(messages),
            message_count=len(messages),
        )

    def recent_messages(self, limit: int = 30) -> list[MessageRecord]:
        return self._store.recent_messages(limit)

    def post_message(self, participant_id: str | None, content: str, sentiment: str) -> MessageRecord:
        """Append a message to the public feed."""
        record = MessageRecord(
            id=str(uuid.uuid4()),
            participant_id=participant_id,
            content=content,
            sentiment=sentiment,
            created_at=datetime.now(),
        )
        self._store.append_message(record)
        return record
