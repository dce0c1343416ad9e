"""Tests for local and oracle-backed participant agents."""

import json
import random
from unittest.mock import AsyncMock

import pytest

from market_simulator.agents.factory import AgentFactory
from market_simulator.agents.local import LocalAgent
from market_simulator.agents.oracle import OracleAgent
from market_simulator.agents.protocol import (
    AgentServices,
    MarketAnalysis,
    ParticipantAgent,
    SocialResponse,
    TradeDecision,
)
from market_simulator.amm.swap_engine import SwapEngine
from market_simulator.errors import ParticipantNotFoundError, RateLimitedError
from market_simulator.llm.result import LLMResult
from market_simulator.market.data import MarketDataService
from market_simulator.market.models import Sentiment
from market_simulator.persistence.models import DecisionType, PersonalityType


@pytest.fixture
def services(store):
    market = MarketDataService(store)
    engine = SwapEngine(store)
    engine.bootstrap_pool(1000.0, 1_000_000.0)
    return AgentServices(store, engine, market, random.Random(4), fallback_slippage=5.0)


@pytest.fixture
def llm_client():
    return AsyncMock()


def _respond(client, *payloads):
    client.generate_structured_output.side_effect = [LLMResult(data=p, total_tokens=25) for p in payloads]


def _last_decision(store, participant_id):
    record = store.get_participant(participant_id)
    return record.last_decision_type, json.loads(record.last_decision_data)


class TestTradeDecision:
    def test_trade_needs_direction_and_amount(self):
        with pytest.raises(ValueError):
            TradeDecision(wants_trade=True, direction=None, amount=1.0)
        with pytest.raises(ValueError):
            TradeDecision(wants_trade=True, direction="BUY", amount=0.0)

    def test_declined_trade_needs_nothing(self):
        assert not TradeDecision(wants_trade=False).wants_trade


class TestFactory:
    def test_llm_mode_requires_client(self, services):
        with pytest.raises(ValueError):
            AgentFactory(services, mode="llm")

    @pytest.mark.asyncio
    async def test_load_builds_configured_kind(self, services, make_participant, llm_client):
        participant = make_participant()

        local = await AgentFactory(services).load(participant.id)
        oracle = await AgentFactory(services, mode="llm", llm_client=llm_client).load(participant.id)

        assert isinstance(local, LocalAgent)
        assert isinstance(oracle, OracleAgent)
        assert isinstance(local, ParticipantAgent)

    @pytest.mark.asyncio
    async def test_load_unknown_participant(self, services):
        with pytest.raises(ParticipantNotFoundError):
            await AgentFactory(services).load("ghost")


class TestLocalAgent:
    @pytest.mark.asyncio
    async def test_analysis_is_persisted_as_fallback(self, services, store, make_participant):
        participant = make_participant(personality=PersonalityType.TECHNICAL)
        agent = LocalAgent(participant, services)

        result = await agent.analyze_market(services.market.get_market_info())

        assert result.success
        assert result.fallback
        decision_type, payload = _last_decision(store, participant.id)
        assert decision_type is DecisionType.MARKET_ANALYSIS
        assert payload["type"] == "MARKET_ANALYSIS"
        assert payload["data"]["simulated"] is True

    @pytest.mark.asyncio
    async def test_social_posts_only_sometimes(self, services, store, make_participant):
        participants = [make_participant(personality=PersonalityType.MODERATE) for _ in range(20)]
        sentiment = services.market.get_market_sentiment()

        results = [await LocalAgent(p, services).socialize([], sentiment) for p in participants]

        posted = [r for r in results if r.data["posted"]]
        assert 0 < len(posted) < 20
        assert store.count_messages() == len(posted)

    @pytest.mark.asyncio
    async def test_trade_outcome_is_recorded(self, services, store, make_participant):
        participants = [make_participant(sol_balance=50.0, personality=PersonalityType.AGGRESSIVE) for _ in range(10)]
        # a rising market makes aggressive traders buy
        snapshot = services.market.get_market_info().model_copy(update={"price_change_24h": 2.0})

        for participant in participants:
            await LocalAgent(participant, services).decide_trade(snapshot)

        for participant in participants:
            decision_type, _ = _last_decision(store, participant.id)
            assert decision_type is DecisionType.TRADE
        assert store.transaction_stats()["total"] > 0

    @pytest.mark.asyncio
    async def test_trade_for_deleted_participant_raises(self, services, store, make_participant):
        participant = make_participant()
        agent = LocalAgent(participant, services)
        store.conn.execute("DELETE FROM participants WHERE id = ?", [participant.id])

        with pytest.raises(ParticipantNotFoundError):
            await agent.decide_trade(services.market.get_market_info())


class TestOracleAgent:
    @pytest.mark.asyncio
    async def test_analysis_is_remembered(self, services, store, make_participant, llm_client):
        participant = make_participant()
        agent = OracleAgent(participant, services, llm_client)
        _respond(llm_client, MarketAnalysis(summary="Steady demand", outlook="bullish", confidence=0.8))

        result = await agent.analyze_market(services.market.get_market_info())

        assert result.success
        assert not result.fallback
        assert agent.tokens_used == 25
        assert "Steady demand" in agent._memory_block()
        _, payload = _last_decision(store, participant.id)
        assert payload["data"]["outlook"] == "bullish"
        prompt, response_model, system_prompt = llm_client.generate_structured_output.call_args.args
        assert response_model is MarketAnalysis
        assert "Stay in character" in system_prompt

    @pytest.mark.asyncio
    async def test_neutral_message_is_classified_by_keywords(self, services, store, make_participant, llm_client):
        participant = make_participant()
        agent = OracleAgent(participant, services, llm_client)
        _respond(llm_client, SocialResponse(wants_message=True, text="Very bullish, buying more"))

        result = await agent.socialize([], Sentiment())

        assert result.data["posted"]
        [message] = store.recent_messages()
        assert message.sentiment == "positive"
        assert message.participant_id == participant.id

    @pytest.mark.asyncio
    async def test_silent_response_posts_nothing(self, services, store, make_participant, llm_client):
        agent = OracleAgent(make_participant(), services, llm_client)
        _respond(llm_client, SocialResponse(wants_message=False))

        result = await agent.socialize([], Sentiment())

        assert not result.data["posted"]
        assert store.count_messages() == 0

    @pytest.mark.asyncio
    async def test_trade_executes_swap(self, services, store, make_participant, llm_client):
        participant = make_participant(sol_balance=20.0)
        agent = OracleAgent(participant, services, llm_client)
        _respond(llm_client, TradeDecision(wants_trade=True, direction="BUY", amount=1.0))

        result = await agent.decide_trade(services.market.get_market_info())

        assert result.success
        assert result.data["executed"]
        assert store.get_participant(participant.id).sol_balance == pytest.approx(19.0)

    @pytest.mark.asyncio
    async def test_rejected_swap_is_a_recorded_failure(self, services, store, make_participant, llm_client):
        participant = make_participant(sol_balance=0.5)
        agent = OracleAgent(participant, services, llm_client)
        _respond(llm_client, TradeDecision(wants_trade=True, direction="BUY", amount=5.0))

        result = await agent.decide_trade(services.market.get_market_info())

        assert not result.success
        assert "Insufficient" in result.data["error"]
        _, payload = _last_decision(store, participant.id)
        assert payload["data"]["executed"] is False

    @pytest.mark.asyncio
    async def test_declined_trade_falls_back_to_personality(self, services, make_participant, llm_client):
        agent = OracleAgent(make_participant(), services, llm_client)
        _respond(llm_client, TradeDecision(wants_trade=False))

        result = await agent.decide_trade(services.market.get_market_info())

        assert result.fallback
        assert result.decision_type is DecisionType.TRADE

    @pytest.mark.asyncio
    async def test_rate_limit_propagates(self, services, make_participant, llm_client):
        agent = OracleAgent(make_participant(), services, llm_client)
        llm_client.generate_structured_output.side_effect = RateLimitedError()

        with pytest.raises(RateLimitedError):
            await agent.analyze_market(services.market.get_market_info())

    @pytest.mark.asyncio
    async def test_close_forgets_memory(self, services, make_participant, llm_client):
        agent = OracleAgent(make_participant(), services, llm_client)
        _respond(llm_client, MarketAnalysis(summary="Thin book"))
        await agent.analyze_market(services.market.get_market_info())

        await agent.close()

        assert agent.closed
        assert agent._memory_block() == "No previous analyses."
