"""Concurrency-limited batch dispatch of participant actions.

Per phase call the dispatcher refreshes the active window, takes a prefix
up to the batch size, computes shared inputs once (market snapshot, and
for social phases the recent messages and sentiment) and runs each
participant's action under a semaphore and a per-unit timeout. One
participant's failure never aborts the batch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from market_simulator.agents.local import LocalAgent
from market_simulator.errors import DispatchTimeoutError, ParticipantNotFoundError
from market_simulator.llm.rate_limit import is_rate_limit_error

if TYPE_CHECKING:
    from market_simulator.agents.cache import InstanceCache
    from market_simulator.agents.protocol import AgentActionResult, ParticipantAgent
    from market_simulator.dispatch.backoff import BackoffState
    from market_simulator.dispatch.window import ActiveWindow
    from market_simulator.market.data import MarketDataService
    from market_simulator.market.models import MarketSnapshot, Sentiment
    from market_simulator.persistence.models import MessageRecord
    from market_simulator.persistence.store import MarketStore

logger = logging.getLogger(__name__)

SOCIAL_MESSAGE_LIMIT = 30


class Activity(str, Enum):
    """Dispatchable participant activities."""

    ANALYSIS = "ANALYSIS"
    SOCIAL = "SOCIAL"
    TRADING = "TRADING"


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RATE_LIMITED = "rate_limited"
    TIMED_OUT = "timed_out"


@dataclass
class DispatchReport:
    """Counters for one dispatch call."""

    activity: Activity
    selected: int = 0
    succeeded: int = 0
    failed: int = 0
    rate_limited: int = 0
    timed_out: int = 0
    fallbacks: int = 0
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def produced_activity(self) -> bool:
        """True when at least one participant produced output."""
        return self.succeeded > 0 or self.fallbacks > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "activity": self.activity.value,
            "selected": self.selected,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "rate_limited": self.rate_limited,
            "timed_out": self.timed_out,
            "fallbacks": self.fallbacks,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass(frozen=True)
class PhaseInputs:
    """Inputs computed once per dispatch call and shared by every unit."""

    snapshot: MarketSnapshot
    messages: list[MessageRecord] = field(default_factory=list)
    sentiment: Sentiment | None = None


def _default_fallback(agent: ParticipantAgent) -> ParticipantAgent:
    return LocalAgent.standing_in_for(agent)  # type: ignore[arg-type]


class BatchDispatcher:
    """Runs one activity across a bounded batch of active participants.

    Args:
        store: Durable store, for the population listing
        cache: Live-instance cache
        market: Market data service for shared phase inputs
        window: Active window
        backoff: Shared adaptive backoff state
        max_concurrency: Maximum in-flight units
        call_timeout: Upper bound in seconds for one unit of work
        fallback_on_rate_limit: Run a local stand-in when throttled
        fallback_factory: Builds the stand-in for a throttled instance
        clock: Monotonic time source for last_success_at
    """

    def __init__(
        self,
        store: MarketStore,
        cache: InstanceCache[Any],
        market: MarketDataService,
        window: ActiveWindow,
        backoff: BackoffState,
        max_concurrency: int = 5,
        call_timeout: float = 60.0,
        fallback_on_rate_limit: bool = True,
        fallback_factory: Callable[[ParticipantAgent], ParticipantAgent] = _default_fallback,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._store = store
        self._cache = cache
        self._market = market
        self._window = window
        self._backoff = backoff
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._max_concurrency = max_concurrency
        self._call_timeout = call_timeout
        self._fallback_on_rate_limit = fallback_on_rate_limit
        self._fallback_factory = fallback_factory
        self._clock = clock
        self._in_flight = 0
        self._peak_in_flight = 0
        self.last_success_at: float | None = None
        self.last_report: DispatchReport | None = None

    @property
    def window(self) -> ActiveWindow:
        return self._window

    @property
    def backoff(self) -> BackoffState:
        return self._backoff

    @property
    def peak_in_flight(self) -> int:
        return self._peak_in_flight

    def refresh_window(self) -> int:
        """Refresh the active window from the active population; returns its size."""
        self._window.refresh(self._store.list_participant_ids(active_only=True))
        return len(self._window)

    async def dispatch(self, activity: Activity, batch_size: int) -> DispatchReport:
        """Run ``activity`` for up to ``batch_size`` active participants."""
        report = DispatchReport(activity=activity)
        self.refresh_window()
        selected = self._window.prefix(batch_size)
        report.selected = len(selected)

        if not selected:
            logger.info("No active participants for %s", activity.value)
            report.finished_at = datetime.now()
            self.last_report = report
            return report

        inputs = self._phase_inputs(activity)
        outcomes = await asyncio.gather(
            *(self._run_unit(activity, pid, inputs, report) for pid in selected),
        )
        for outcome in outcomes:
            if outcome is Outcome.SUCCEEDED:
                report.succeeded += 1
            elif outcome is Outcome.RATE_LIMITED:
                report.rate_limited += 1
            elif outcome is Outcome.TIMED_OUT:
                report.timed_out += 1
            else:
                report.failed += 1

        report.finished_at = datetime.now()
        self.last_report = report
        logger.info(
            "%s dispatch complete: %d selected, %d succeeded, %d failed, %d rate limited, "
            "%d timed out, %d fallbacks",
            activity.value, report.selected, report.succeeded, report.failed,
            report.rate_limited, report.timed_out, report.fallbacks,
        )
        return report

    def _phase_inputs(self, activity: Activity) -> PhaseInputs:
        snapshot = self._market.get_market_info()
        if activity is Activity.SOCIAL:
            return PhaseInputs(
                snapshot=snapshot,
                messages=self._market.recent_messages(SOCIAL_MESSAGE_LIMIT),
                sentiment=self._market.get_market_sentiment(),
            )
        return PhaseInputs(snapshot=snapshot)

    async def _run_unit(
        self, activity: Activity, participant_id: str, inputs: PhaseInputs, report: DispatchReport
    ) -> Outcome:
        async with self._semaphore:
            self._in_flight += 1
            self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
            try:
                return await self._attempt(activity, participant_id, inputs, report)
            finally:
                self._in_flight -= 1

    async def _attempt(
        self, activity: Activity, participant_id: str, inputs: PhaseInputs, report: DispatchReport
    ) -> Outcome:
        await self._backoff.wait_turn()
        try:
            async with self._cache.lease(participant_id) as agent:
                try:
                    result = await asyncio.wait_for(
                        self._invoke(agent, activity, inputs), timeout=self._call_timeout
                    )
                except asyncio.TimeoutError:
                    raise DispatchTimeoutError(participant_id, self._call_timeout) from None
                except Exception as e:
                    if not is_rate_limit_error(e):
                        raise
                    await self._handle_rate_limit(agent, activity, inputs, participant_id, report, e)
                    return Outcome.RATE_LIMITED
        except ParticipantNotFoundError as e:
            self._window.remove(participant_id)
            logger.warning("%s", e)
            report.errors[participant_id] = str(e)
            return Outcome.FAILED
        except DispatchTimeoutError as e:
            logger.warning("%s", e)
            report.errors[participant_id] = str(e)
            return Outcome.TIMED_OUT
        except Exception as e:
            logger.warning("%s failed for %s: %s", activity.value, participant_id, e)
            report.errors[participant_id] = str(e)
            return Outcome.FAILED

        self._window.touch(participant_id)
        if not result.success:
            report.errors[participant_id] = str(result.data.get("error", "action reported failure"))
            return Outcome.FAILED

        await self._backoff.record_success()
        self.last_success_at = self._clock()
        return Outcome.SUCCEEDED

    async def _handle_rate_limit(
        self,
        agent: ParticipantAgent,
        activity: Activity,
        inputs: PhaseInputs,
        participant_id: str,
        report: DispatchReport,
        error: Exception,
    ) -> None:
        delay = await self._backoff.record_rate_limit()
        logger.warning(
            "Rate limited during %s for %s; inter-call delay now %.2fs", activity.value, participant_id, delay
        )
        report.errors[participant_id] = str(error)
        if not self._fallback_on_rate_limit:
            return

        stand_in = self._fallback_factory(agent)
        try:
            fallback = await asyncio.wait_for(
                self._invoke(stand_in, activity, inputs), timeout=self._call_timeout
            )
        except Exception as e:
            logger.warning("Fallback %s failed for %s: %s", activity.value, participant_id, e)
            return
        if fallback.success:
            report.fallbacks += 1
            self._window.touch(participant_id)
            self.last_success_at = self._clock()

    @staticmethod
    async def _invoke(agent: ParticipantAgent, activity: Activity, inputs: PhaseInputs) -> AgentActionResult:
        if activity is Activity.ANALYSIS:
            return await agent.analyze_market(inputs.snapshot)
        if activity is Activity.SOCIAL:
            if inputs.sentiment is None:
                raise ValueError("SOCIAL dispatch requires shared sentiment")
            return await agent.socialize(inputs.messages, inputs.sentiment)
        return await agent.decide_trade(inputs.snapshot)
