"""Behavior shared by every participant agent implementation.

Holds the participant record, persists decisions and carries the local
personality-driven logic that both implementations fall back to.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from market_simulator.agents.personalities import PersonalityTraits, get_traits
from market_simulator.agents.protocol import AgentActionResult, AgentServices, TradeDecision
from market_simulator.errors import MarketSimulatorError, ParticipantNotFoundError, RateLimitedError
from market_simulator.market.messages import choose_template_kind, render_message
from market_simulator.persistence.models import DecisionType, MessageRecord, ParticipantRecord, PersonalityType

if TYPE_CHECKING:
    import random

    from market_simulator.market.models import MarketSnapshot, Sentiment

logger = logging.getLogger(__name__)

MIN_TRADE_BALANCE = 1.0
MIN_TRADE_VALUE = 0.1
MAX_BALANCE_FRACTION = 0.8


def plan_fallback_trade(
    personality: PersonalityType,
    traits: PersonalityTraits,
    snapshot: MarketSnapshot,
    sol_balance: float,
    token_balance: float,
    rng: random.Random,
) -> TradeDecision | None:
    """Probabilistically pick a trade from personality traits alone.

    Returns None when the participant sits this phase out. BUY amounts are
    in SOL; SELL amounts are converted to tokens at the current price and
    capped at 80% of the token balance.
    """
    if sol_balance <= MIN_TRADE_BALANCE:
        return None
    if rng.random() >= traits.trade_frequency:
        return None

    change = snapshot.price_change_24h
    is_buy = rng.random() > 0.5
    if personality is PersonalityType.CONTRARIAN and change < 0:
        is_buy = True
    elif personality is PersonalityType.AGGRESSIVE and change > 1:
        is_buy = True
    elif personality is PersonalityType.CONSERVATIVE and change < -1:
        is_buy = False
    elif personality is PersonalityType.TREND_FOLLOWER and change > 0:
        is_buy = True

    sol_amount = min((rng.random() * 2 + 1) * traits.position_size, sol_balance * MAX_BALANCE_FRACTION)

    if is_buy:
        if sol_amount <= MIN_TRADE_VALUE:
            return None
        return TradeDecision(wants_trade=True, direction="BUY", amount=sol_amount, reasoning="personality fallback")

    if snapshot.price <= 0:
        return None
    tokens = min(sol_amount / snapshot.price, token_balance * MAX_BALANCE_FRACTION)
    if tokens * snapshot.price <= MIN_TRADE_VALUE:
        return None
    return TradeDecision(wants_trade=True, direction="SELL", amount=tokens, reasoning="personality fallback")


def simulated_analysis(personality: PersonalityType, snapshot: MarketSnapshot) -> str:
    """Templated market analysis in a personality's voice."""
    change = snapshot.price_change_24h
    trend = "up" if change > 0 else "down" if change < 0 else "flat"
    price = f"{snapshot.price:.6f}"
    volume = f"{snapshot.volume_24h:.2f}"

    if personality is PersonalityType.CONSERVATIVE:
        return f"Price at {price} SOL, {trend} {abs(change):.2f}%. Staying cautious until the trend confirms."
    if personality is PersonalityType.AGGRESSIVE:
        return f"Price {trend} {abs(change):.2f}% at {price} SOL with {volume} SOL volume. Looking for a big move."
    if personality is PersonalityType.CONTRARIAN:
        return f"Market is {trend} {abs(change):.2f}%. The crowd is probably wrong at {price} SOL."
    if personality is PersonalityType.TREND_FOLLOWER:
        return f"Momentum is {trend} ({change:+.2f}%). Following the trend at {price} SOL."
    if personality is PersonalityType.TECHNICAL:
        return f"Price {price} SOL, change {change:+.2f}%, volume {volume} SOL. Watching support and resistance."
    if personality is PersonalityType.WHALE:
        return f"Liquidity at {snapshot.liquidity:.2f} SOL. Price {price} SOL moved {change:+.2f}%."
    return f"Price is {price} SOL, {trend} {abs(change):.2f}% with {volume} SOL traded."


class BaseParticipantAgent:
    """Common state and local decision logic for participant agents.

    Args:
        record: Durable participant record the instance is built from
        services: Shared collaborators (store, swap engine, market data)
    """

    def __init__(self, record: ParticipantRecord, services: AgentServices) -> None:
        self.participant_id = record.id
        self.personality = record.personality
        self.traits = get_traits(record.personality)
        self._record = record
        self._services = services
        self._closed = False

    @property
    def record(self) -> ParticipantRecord:
        return self._record

    @property
    def services(self) -> AgentServices:
        return self._services

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        self._closed = True

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _refresh_record(self) -> ParticipantRecord:
        record = self._services.store.get_participant(self.participant_id)
        if record is None:
            raise ParticipantNotFoundError(self.participant_id)
        self._record = record
        return record

    def _persist(self, decision_type: DecisionType, data: dict[str, Any], fallback: bool = False) -> AgentActionResult:
        payload = {"type": decision_type.value, "timestamp": datetime.now().isoformat(), "data": data}
        self._services.store.record_decision(self.participant_id, decision_type, payload)
        return AgentActionResult(success=True, decision_type=decision_type, data=data, fallback=fallback)

    def _post(self, text: str, sentiment: str) -> MessageRecord:
        return self._services.market.post_message(self.participant_id, text, sentiment)

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    async def _execute_decision(
        self, decision: TradeDecision, slippage: float | None = None, fallback: bool = False
    ) -> AgentActionResult:
        """Execute a trade decision and persist the outcome as the last decision.

        Swap rejections (balance, slippage) are part of the decision record,
        not errors of the action.
        """
        data: dict[str, Any] = decision.model_dump()
        if not decision.wants_trade:
            return self._persist(DecisionType.TRADE, data, fallback=fallback)

        try:
            result = await self._services.swap_engine.execute(
                self.participant_id,
                decision.amount,
                decision.direction == "BUY",
                slippage,
            )
        except RateLimitedError:
            raise
        except MarketSimulatorError as e:
            data.update(executed=False, error=str(e))
            self._persist(DecisionType.TRADE, data, fallback=fallback)
            return AgentActionResult(success=False, decision_type=DecisionType.TRADE, data=data, fallback=fallback)

        data.update(
            executed=True,
            transaction_id=result.transaction_id,
            output_amount=result.quote.output_amount,
            price_impact=result.quote.price_impact,
        )
        self._record = self._record.model_copy(
            update={"sol_balance": result.sol_balance, "token_balance": result.token_balance}
        )
        return self._persist(DecisionType.TRADE, data, fallback=fallback)

    # ------------------------------------------------------------------
    # Local fallbacks
    # ------------------------------------------------------------------

    async def local_analysis(self, snapshot: MarketSnapshot) -> AgentActionResult:
        text = simulated_analysis(self.personality, snapshot)
        return self._persist(
            DecisionType.MARKET_ANALYSIS,
            {"market_info": snapshot.model_dump(), "analysis": text, "simulated": True},
            fallback=True,
        )

    async def local_social(self, messages: list[MessageRecord], sentiment: Sentiment) -> AgentActionResult:
        rng = self._services.rng
        if rng.random() >= self.traits.message_frequency:
            return self._persist(DecisionType.SOCIAL, {"posted": False, "simulated": True}, fallback=True)

        snapshot = self._services.market.get_market_info()
        kind = choose_template_kind(self.personality, snapshot, rng)
        text, tone = render_message(kind, snapshot, rng)
        message = self._post(text, tone)
        return self._persist(
            DecisionType.SOCIAL,
            {"posted": True, "message_id": message.id, "text": text, "sentiment": tone, "simulated": True},
            fallback=True,
        )

    async def local_trade(self, snapshot: MarketSnapshot) -> AgentActionResult:
        record = self._refresh_record()
        decision = plan_fallback_trade(
            self.personality,
            self.traits,
            snapshot,
            record.sol_balance,
            record.token_balance,
            self._services.rng,
        )
        if decision is None:
            decision = TradeDecision(wants_trade=False, reasoning="personality fallback")
        return await self._execute_decision(decision, self._services.fallback_slippage, fallback=True)
