"""Tests for concurrency-limited batch dispatch."""

import asyncio
import random

import pytest

from market_simulator.agents.cache import InstanceCache
from market_simulator.agents.protocol import AgentActionResult
from market_simulator.amm.swap_engine import SwapEngine
from market_simulator.dispatch.backoff import BackoffState
from market_simulator.dispatch.dispatcher import Activity, BatchDispatcher, PhaseInputs
from market_simulator.dispatch.window import ActiveWindow
from market_simulator.errors import InsufficientBalanceError, ParticipantNotFoundError, RateLimitedError
from market_simulator.market.data import MarketDataService
from market_simulator.persistence.models import DecisionType, PersonalityType


class InFlight:
    def __init__(self) -> None:
        self.current = 0
        self.peak = 0


class ScriptedAgent:
    """Agent whose every action follows a fixed behavior."""

    def __init__(self, participant_id: str, behavior: str, in_flight: InFlight) -> None:
        self.participant_id = participant_id
        self.personality = PersonalityType.MODERATE
        self.behavior = behavior
        self.in_flight = in_flight
        self.social_inputs = None

    async def _act(self, decision_type: DecisionType) -> AgentActionResult:
        self.in_flight.current += 1
        self.in_flight.peak = max(self.in_flight.peak, self.in_flight.current)
        try:
            if self.behavior == "slow":
                await asyncio.sleep(10)
            await asyncio.sleep(0.01)
            if self.behavior == "raise":
                raise RuntimeError("oracle returned garbage")
            if self.behavior == "rate_limit":
                raise RateLimitedError("429 Too Many Requests")
            if self.behavior == "short_429":
                raise InsufficientBalanceError(self.participant_id, 429.0, 5.0, "SOL")
            return AgentActionResult(success=self.behavior != "decline", decision_type=decision_type)
        finally:
            self.in_flight.current -= 1

    async def analyze_market(self, snapshot):
        return await self._act(DecisionType.MARKET_ANALYSIS)

    async def socialize(self, messages, sentiment):
        self.social_inputs = (messages, sentiment)
        return await self._act(DecisionType.SOCIAL)

    async def decide_trade(self, snapshot):
        return await self._act(DecisionType.TRADE)

    async def close(self):
        pass


class StandIn:
    def __init__(self, agent: ScriptedAgent) -> None:
        self.agent = agent

    async def analyze_market(self, snapshot):
        return AgentActionResult(success=True, decision_type=DecisionType.MARKET_ANALYSIS, fallback=True)


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def market(store):
    SwapEngine(store).bootstrap_pool(1000.0, 1_000_000.0)
    return MarketDataService(store)


@pytest.fixture
def build(store, market):
    """Factory for a dispatcher over scripted agents."""

    def _build(behaviors: dict[str, str] | None = None, **kwargs):
        behaviors = behaviors or {}
        in_flight = InFlight()
        agents: dict[str, ScriptedAgent] = {}

        async def loader(participant_id: str) -> ScriptedAgent:
            behavior = behaviors.get(participant_id, "ok")
            if behavior == "missing":
                raise ParticipantNotFoundError(participant_id)
            agents[participant_id] = ScriptedAgent(participant_id, behavior, in_flight)
            return agents[participant_id]

        kwargs.setdefault("call_timeout", 1.0)
        kwargs.setdefault("fallback_factory", StandIn)
        dispatcher = BatchDispatcher(
            store,
            InstanceCache(loader, max_size=100),
            market,
            ActiveWindow(100, rng=random.Random(1)),
            BackoffState(min_delay=0.0, max_delay=1.0, cooldown=0.0, max_cooldown=0.0, sleep=_no_sleep),
            **kwargs,
        )
        return dispatcher, agents, in_flight

    return _build


def _ids(participants):
    return [p.id for p in participants]


class TestDispatch:
    @pytest.mark.asyncio
    async def test_all_participants_succeed(self, build, make_participant):
        ids = _ids(make_participant() for _ in range(4))
        dispatcher, agents, _ = build()

        report = await dispatcher.dispatch(Activity.ANALYSIS, 10)

        assert report.selected == 4
        assert report.succeeded == 4
        assert report.produced_activity
        assert set(agents) == set(ids)
        assert dispatcher.last_success_at is not None
        assert dispatcher.last_report is report

    @pytest.mark.asyncio
    async def test_batch_size_limits_selection(self, build, make_participant):
        for _ in range(10):
            make_participant()
        dispatcher, agents, _ = build()

        report = await dispatcher.dispatch(Activity.TRADING, 3)

        assert report.selected == 3
        assert len(agents) == 3

    @pytest.mark.asyncio
    async def test_empty_population_selects_nobody(self, build):
        dispatcher, _, _ = build()

        report = await dispatcher.dispatch(Activity.ANALYSIS, 5)

        assert report.selected == 0
        assert not report.produced_activity

    @pytest.mark.asyncio
    async def test_failures_are_counted_without_aborting_batch(self, build, make_participant):
        ids = _ids(make_participant() for _ in range(4))
        dispatcher, _, _ = build({ids[0]: "raise", ids[1]: "decline"})

        report = await dispatcher.dispatch(Activity.ANALYSIS, 10)

        assert report.succeeded == 2
        assert report.failed == 2
        assert "garbage" in report.errors[ids[0]]
        assert ids[1] in report.errors

    @pytest.mark.asyncio
    async def test_missing_participant_leaves_window(self, build, make_participant):
        ids = _ids(make_participant() for _ in range(2))
        dispatcher, _, _ = build({ids[0]: "missing"})

        report = await dispatcher.dispatch(Activity.ANALYSIS, 10)

        assert report.failed == 1
        assert report.succeeded == 1
        assert ids[0] not in dispatcher.window

    @pytest.mark.asyncio
    async def test_timeout_is_counted_separately(self, build, make_participant):
        ids = _ids(make_participant() for _ in range(2))
        dispatcher, _, _ = build({ids[0]: "slow"}, call_timeout=0.05)

        report = await dispatcher.dispatch(Activity.ANALYSIS, 10)

        assert report.timed_out == 1
        assert report.succeeded == 1
        assert "timed out" in report.errors[ids[0]]

    @pytest.mark.asyncio
    async def test_concurrency_cap_is_respected(self, build, make_participant):
        for _ in range(8):
            make_participant()
        dispatcher, _, in_flight = build(max_concurrency=2)

        report = await dispatcher.dispatch(Activity.ANALYSIS, 8)

        assert report.succeeded == 8
        assert in_flight.peak <= 2
        assert dispatcher.peak_in_flight == 2

    @pytest.mark.asyncio
    async def test_social_phase_shares_feed_and_sentiment(self, build, make_participant, market):
        ids = _ids(make_participant() for _ in range(2))
        market.post_message(None, "Welcome", "neutral")
        dispatcher, agents, _ = build()

        await dispatcher.dispatch(Activity.SOCIAL, 10)

        messages, sentiment = agents[ids[0]].social_inputs
        assert [m.content for m in messages] == ["Welcome"]
        assert sentiment.message_count == 1
        assert agents[ids[1]].social_inputs[0] is messages

    def test_rejects_zero_concurrency(self, build):
        with pytest.raises(ValueError):
            build(max_concurrency=0)

    @pytest.mark.asyncio
    async def test_social_activity_requires_shared_sentiment(self, market):
        agent = ScriptedAgent("p1", "ok", InFlight())
        inputs = PhaseInputs(snapshot=market.get_market_info())

        with pytest.raises(ValueError, match="sentiment"):
            await BatchDispatcher._invoke(agent, Activity.SOCIAL, inputs)

        assert agent.social_inputs is None


class TestRateLimits:
    """Throttled oracle calls grow the backoff and run a local stand-in."""

    @pytest.mark.asyncio
    async def test_rate_limit_runs_fallback(self, build, make_participant):
        ids = _ids(make_participant() for _ in range(3))
        dispatcher, _, _ = build({ids[0]: "rate_limit"})

        report = await dispatcher.dispatch(Activity.ANALYSIS, 10)

        assert report.rate_limited == 1
        assert report.fallbacks == 1
        assert report.succeeded == 2
        assert dispatcher.backoff.consecutive_rate_limits <= 1
        assert report.produced_activity

    @pytest.mark.asyncio
    async def test_rate_limit_grows_delay(self, build, make_participant):
        ids = _ids(make_participant() for _ in range(1))
        dispatcher, _, _ = build({ids[0]: "rate_limit"})

        await dispatcher.dispatch(Activity.ANALYSIS, 10)

        assert dispatcher.backoff.delay > 0
        assert dispatcher.backoff.consecutive_rate_limits == 1

    @pytest.mark.asyncio
    async def test_fallback_can_be_disabled(self, build, make_participant):
        ids = _ids(make_participant() for _ in range(1))
        dispatcher, _, _ = build({ids[0]: "rate_limit"}, fallback_on_rate_limit=False)

        report = await dispatcher.dispatch(Activity.ANALYSIS, 10)

        assert report.rate_limited == 1
        assert report.fallbacks == 0
        assert not report.produced_activity

    @pytest.mark.asyncio
    async def test_ordinary_failure_mentioning_429_is_not_throttling(self, build, make_participant):
        ids = _ids(make_participant() for _ in range(2))
        dispatcher, _, _ = build({ids[0]: "short_429"})

        report = await dispatcher.dispatch(Activity.TRADING, 10)

        assert report.failed == 1
        assert report.rate_limited == 0
        assert report.fallbacks == 0
        assert "429" in report.errors[ids[0]]
        assert dispatcher.backoff.consecutive_rate_limits == 0
        assert dispatcher.backoff.delay == 0.0
