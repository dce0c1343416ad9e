"""Participant agent backed by an LLM decision oracle."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from market_simulator.agents.base import BaseParticipantAgent
from market_simulator.agents.protocol import (
    AgentActionResult,
    AgentServices,
    MarketAnalysis,
    SocialResponse,
    TradeDecision,
)
from market_simulator.market.messages import TOKEN_SYMBOL, classify_sentiment
from market_simulator.persistence.models import DecisionType, ParticipantRecord

if TYPE_CHECKING:
    from market_simulator.llm.protocol import LLMClientProtocol
    from market_simulator.market.models import MarketSnapshot, Sentiment
    from market_simulator.persistence.models import MessageRecord

logger = logging.getLogger(__name__)

MEMORY_SIZE = 5
MESSAGES_IN_PROMPT = 10


def _market_lines(snapshot: MarketSnapshot) -> str:
    return (
        f"- Price: {snapshot.price:.8f} SOL per {TOKEN_SYMBOL}\n"
        f"- 24h change: {snapshot.price_change_24h:+.2f}%\n"
        f"- 24h volume: {snapshot.volume_24h:.2f} SOL\n"
        f"- Liquidity: {snapshot.liquidity:.2f} SOL"
    )


class OracleAgent(BaseParticipantAgent):
    """Agent that asks the LLM for each decision.

    Keeps a short memory of its own analyses, which is the provider-side
    conversation state that makes instances worth caching. When the oracle
    declines to trade, the personality fallback may still trade.

    Args:
        record: Durable participant record
        services: Shared collaborators
        client: LLM client producing structured decisions
    """

    def __init__(
        self,
        record: ParticipantRecord,
        services: AgentServices,
        client: LLMClientProtocol,
    ) -> None:
        super().__init__(record, services)
        self._client = client
        self._memory: deque[str] = deque(maxlen=MEMORY_SIZE)
        self.tokens_used = 0

    @property
    def system_prompt(self) -> str:
        t = self.traits
        return (
            f"You are {self.record.name}, a {self.personality.value.lower().replace('_', ' ')} "
            f"trader in a {TOKEN_SYMBOL}/SOL market. {t.description}.\n"
            f"Risk tolerance {t.risk_tolerance:.2f}, typical position size {t.position_size:.2f}, "
            f"decision threshold {t.decision_threshold:.2f}, social influence {t.social_influence:.2f}.\n"
            "Stay in character and answer only in the requested structure."
        )

    def _memory_block(self) -> str:
        if not self._memory:
            return "No previous analyses."
        return "\n".join(f"- {entry}" for entry in self._memory)

    def _track_usage(self, tokens: int | None) -> None:
        if tokens:
            self.tokens_used += tokens

    async def close(self) -> None:
        self._memory.clear()
        await super().close()

    async def analyze_market(self, snapshot: MarketSnapshot) -> AgentActionResult:
        prompt = (
            "Analyze the current market.\n"
            f"{_market_lines(snapshot)}\n\n"
            f"Your recent analyses:\n{self._memory_block()}"
        )
        result = await self._client.generate_structured_output(prompt, MarketAnalysis, self.system_prompt)
        self._track_usage(result.total_tokens)
        analysis = result.data
        self._memory.append(analysis.summary)
        return self._persist(
            DecisionType.MARKET_ANALYSIS,
            {"market_info": snapshot.model_dump(), **analysis.model_dump()},
        )

    async def socialize(self, messages: list[MessageRecord], sentiment: Sentiment) -> AgentActionResult:
        feed = "\n".join(f"- {m.content}" for m in messages[:MESSAGES_IN_PROMPT]) or "- (no messages yet)"
        prompt = (
            f"Recent messages:\n{feed}\n\n"
            f"Sentiment: {sentiment.bullish:.0%} bullish, {sentiment.bearish:.0%} bearish "
            f"over {sentiment.message_count} messages.\n"
            f"Your recent analyses:\n{self._memory_block()}\n\n"
            "Decide whether to post a short message to the group."
        )
        result = await self._client.generate_structured_output(prompt, SocialResponse, self.system_prompt)
        self._track_usage(result.total_tokens)
        response = result.data

        data = response.model_dump()
        if response.wants_message and response.text.strip():
            tone = response.sentiment
            if tone == "neutral":
                tone = classify_sentiment(response.text)
            message = self._post(response.text.strip(), tone)
            data.update(posted=True, message_id=message.id)
        else:
            data["posted"] = False
        return self._persist(DecisionType.SOCIAL, data)

    async def decide_trade(self, snapshot: MarketSnapshot) -> AgentActionResult:
        record = self._refresh_record()
        prompt = (
            "Decide whether to trade now.\n"
            f"{_market_lines(snapshot)}\n\n"
            f"Your balances: {record.sol_balance:.4f} SOL, {record.token_balance:.2f} {TOKEN_SYMBOL}.\n"
            f"Your recent analyses:\n{self._memory_block()}\n\n"
            "For BUY give the SOL amount to spend; for SELL give the token amount to sell."
        )
        result = await self._client.generate_structured_output(prompt, TradeDecision, self.system_prompt)
        self._track_usage(result.total_tokens)
        decision = result.data

        if decision.wants_trade:
            return await self._execute_decision(decision)

        logger.debug("Oracle declined to trade for %s; trying personality fallback", self.participant_id)
        return await self.local_trade(snapshot)
