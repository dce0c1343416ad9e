"""Participant agents, their personalities and the live-instance cache."""

from .cache import InstanceCache
from .factory import AgentFactory
from .local import LocalAgent
from .oracle import OracleAgent
from .personalities import PERSONALITIES, PersonalityTraits, pick_personality
from .protocol import (
    AgentActionResult,
    AgentServices,
    MarketAnalysis,
    ParticipantAgent,
    SocialResponse,
    TradeDecision,
)

__all__ = [
    "AgentActionResult",
    "AgentFactory",
    "AgentServices",
    "InstanceCache",
    "LocalAgent",
    "MarketAnalysis",
    "OracleAgent",
    "PERSONALITIES",
    "ParticipantAgent",
    "PersonalityTraits",
    "SocialResponse",
    "TradeDecision",
    "pick_personality",
]
