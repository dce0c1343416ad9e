"""Participant agent interface and its structured decision types.

A live participant instance exposes three actions, one per dispatched
activity, and a ``close`` hook the instance cache calls on eviction.
Oracle output is parsed straight into the decision models below.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field, model_validator

from market_simulator.persistence.models import DecisionType, MessageRecord, PersonalityType

if TYPE_CHECKING:
    from market_simulator.amm.swap_engine import SwapEngine
    from market_simulator.market.data import MarketDataService
    from market_simulator.market.models import MarketSnapshot, Sentiment
    from market_simulator.persistence.store import MarketStore


# ============================================================================
# Structured decisions
# ============================================================================


class MarketAnalysis(BaseModel):
    """A participant's read of the market."""

    summary: str = Field(..., description="Short analysis in the participant's voice")
    outlook: Literal["bullish", "bearish", "neutral"] = Field("neutral")
    confidence: float = Field(0.5, ge=0, le=1)


class SocialResponse(BaseModel):
    """Whether and what a participant posts to the public feed."""

    wants_message: bool = Field(..., description="Post a message this phase")
    text: str = Field("", description="Message body")
    sentiment: Literal["positive", "negative", "neutral"] = Field("neutral")


class TradeDecision(BaseModel):
    """Whether and how a participant trades.

    ``amount`` is denominated in the input asset: SOL for a BUY,
    tokens for a SELL.
    """

    wants_trade: bool = Field(..., description="Trade this phase")
    direction: Literal["BUY", "SELL"] | None = Field(None)
    amount: float = Field(0.0, ge=0)
    reasoning: str = Field("")

    @model_validator(mode="after")
    def validate_trade(self) -> TradeDecision:
        """A requested trade needs a direction and a positive amount."""
        if self.wants_trade and (self.direction is None or self.amount <= 0):
            raise ValueError("a trade needs a direction and a positive amount")
        return self


@dataclass(frozen=True)
class AgentActionResult:
    """Outcome of one dispatched action.

    Attributes:
        success: Whether the action completed.
        decision_type: Which decision was persisted.
        data: Decision payload, persisted verbatim as the last decision.
        fallback: True when produced by local templated logic.
    """

    success: bool
    decision_type: DecisionType
    data: dict[str, Any] = field(default_factory=dict)
    fallback: bool = False


@dataclass
class AgentServices:
    """Collaborators shared by every live participant instance."""

    store: MarketStore
    swap_engine: SwapEngine
    market: MarketDataService
    rng: random.Random = field(default_factory=random.Random)
    fallback_slippage: float = 1.5


# ============================================================================
# Interface
# ============================================================================


@runtime_checkable
class ParticipantAgent(Protocol):
    """Live, stateful decision-making instance for one participant."""

    participant_id: str
    personality: PersonalityType

    async def analyze_market(self, snapshot: MarketSnapshot) -> AgentActionResult:
        """Form a view of the market and persist it."""
        ...

    async def socialize(self, messages: list[MessageRecord], sentiment: Sentiment) -> AgentActionResult:
        """React to recent messages, possibly posting one."""
        ...

    async def decide_trade(self, snapshot: MarketSnapshot) -> AgentActionResult:
        """Decide whether to trade and execute the trade."""
        ...

    async def close(self) -> None:
        """Release any provider-side resources."""
        ...
