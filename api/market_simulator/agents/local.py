"""Participant agent driven purely by personality templates."""

from __future__ import annotations

from typing import TYPE_CHECKING

from market_simulator.agents.base import BaseParticipantAgent
from market_simulator.agents.protocol import AgentActionResult

if TYPE_CHECKING:
    from market_simulator.market.models import MarketSnapshot, Sentiment
    from market_simulator.persistence.models import MessageRecord


class LocalAgent(BaseParticipantAgent):
    """Deterministic-given-seed agent that never calls the oracle.

    Used when the simulation runs without an LLM and as the cheap stand-in
    the dispatcher runs when the oracle is rate limited.
    """

    @classmethod
    def standing_in_for(cls, agent: BaseParticipantAgent) -> LocalAgent:
        """Build a local agent sharing another agent's record and services."""
        return cls(agent.record, agent.services)

    async def analyze_market(self, snapshot: MarketSnapshot) -> AgentActionResult:
        return await self.local_analysis(snapshot)

    async def socialize(self, messages: list[MessageRecord], sentiment: Sentiment) -> AgentActionResult:
        return await self.local_social(messages, sentiment)

    async def decide_trade(self, snapshot: MarketSnapshot) -> AgentActionResult:
        return await self.local_trade(snapshot)
