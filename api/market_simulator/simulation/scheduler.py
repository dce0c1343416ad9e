"""Phase scheduler: run lifecycle, phase rotation, speed control and stall recovery.

Rotation is time-driven. Each phase tick is spawned as its own task, so a
tick rotates to the next phase on schedule even if the previous phase's
dispatch is still in flight. Paused ticks are no-ops; timers keep running
so resume needs no re-arming.
"""

from __future__ import annotations

import logging
import random
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from market_simulator.dispatch.dispatcher import Activity
from market_simulator.errors import PoolUninitializedError, UnrecoverableError
from market_simulator.persistence.models import (
    LogLevel,
    RunStatus,
    SimulationLogRecord,
    SimulationPhase,
    SimulationRunRecord,
)
from market_simulator.simulation.bootstrap import run_bootstrap
from market_simulator.simulation.population import seed_population
from market_simulator.simulation.reporting import write_report
from market_simulator.simulation.timers import PeriodicTimer

if TYPE_CHECKING:
    from market_simulator.agents.cache import InstanceCache
    from market_simulator.amm.swap_engine import SwapEngine
    from market_simulator.config.schemas import SimulationConfig
    from market_simulator.dispatch.dispatcher import BatchDispatcher, DispatchReport
    from market_simulator.market.data import MarketDataService
    from market_simulator.persistence.store import MarketStore

logger = logging.getLogger(__name__)

PHASE_ORDER = [
    SimulationPhase.MARKET_ANALYSIS,
    SimulationPhase.SOCIAL,
    SimulationPhase.TRADING,
    SimulationPhase.REPORTING,
]

PHASE_ACTIVITY = {
    SimulationPhase.MARKET_ANALYSIS: Activity.ANALYSIS,
    SimulationPhase.SOCIAL: Activity.SOCIAL,
    SimulationPhase.TRADING: Activity.TRADING,
}

MAX_SPEED = 10.0
WINDOW_CLEANUP_FRACTION = 0.2


def next_phase(phase: SimulationPhase) -> SimulationPhase:
    return PHASE_ORDER[(PHASE_ORDER.index(phase) + 1) % len(PHASE_ORDER)]


@dataclass(frozen=True)
class ControlResult:
    """Structured outcome returned by every control operation."""

    success: bool
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message, "data": self.data}


class PhaseScheduler:
    """Owns one simulation run at a time.

    Args:
        store: Durable store
        swap_engine: Swap engine (pool bootstrap and opening trades)
        market: Market data service (refresh timer, snapshots)
        dispatcher: Batch dispatcher for phase activities
        cache: Live-instance cache, swept on a timer and drained on stop
        config: Default configuration, replaced by the one passed to start
        rng: Random source for population seeding and bootstrap
        clock: Monotonic time source for heartbeat and phase progress
    """

    def __init__(
        self,
        store: MarketStore,
        swap_engine: SwapEngine,
        market: MarketDataService,
        dispatcher: BatchDispatcher,
        cache: InstanceCache[Any],
        config: SimulationConfig,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._swap_engine = swap_engine
        self._market = market
        self._dispatcher = dispatcher
        self._cache = cache
        self._config = config
        self._rng = rng or random.Random(config.rng_seed)
        self._clock = clock

        self._status = RunStatus.STOPPED
        self._phase = SimulationPhase.MARKET_ANALYSIS
        self._speed = config.speed
        self._run: SimulationRunRecord | None = None
        self._phase_ticks = 0
        self._phase_started_at = clock()
        self._last_activity = clock()
        self._last_heartbeat: datetime | None = None
        self._recovering = False
        self._timers: dict[str, PeriodicTimer] = {}

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def run_status(self) -> RunStatus:
        return self._status

    @property
    def phase(self) -> SimulationPhase:
        return self._phase

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def run_id(self) -> str | None:
        return self._run.id if self._run else None

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def timers(self) -> dict[str, PeriodicTimer]:
        return dict(self._timers)

    def _phase_period(self) -> float:
        return self._config.phase_duration_ms / 1000 / self._speed

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    async def start(self, config: SimulationConfig | None = None) -> ControlResult:
        """Start a new run.

        Component sizing (cache capacity, dispatcher concurrency) is fixed
        when the runtime is built; the passed config governs population,
        phases, speed, timers and bootstrap.
        """
        if self._status is RunStatus.RUNNING:
            return ControlResult(False, "Simulation is already running", {"run_id": self.run_id})
        if self._status is RunStatus.PAUSED:
            return ControlResult(False, "Simulation is paused; resume or stop it first", {"run_id": self.run_id})

        if config is not None:
            self._config = config
        cfg = self._config
        self._speed = cfg.speed
        self._dispatcher.window.max_size = cfg.max_active_agents

        try:
            pool = self._swap_engine.bootstrap_pool(cfg.pool.initial_sol_reserve, cfg.pool.initial_token_reserve)
            seed_population(self._store, cfg, self._rng, pool.current_price)

            now = datetime.now()
            self._run = SimulationRunRecord(
                id=str(uuid.uuid4()),
                status=RunStatus.RUNNING,
                current_phase=SimulationPhase.MARKET_ANALYSIS,
                population_size=cfg.population_size,
                max_agents_per_phase=cfg.max_agents_per_phase,
                phase_duration_ms=cfg.phase_duration_ms,
                speed=self._speed,
                started_at=now,
                updated_at=now,
            )
            self._store.create_run(self._run)
            self._status = RunStatus.RUNNING
            self._phase = SimulationPhase.MARKET_ANALYSIS
            self._phase_ticks = 0
            self._last_activity = self._clock()
            self._log(LogLevel.INFO, f"Simulation started with {cfg.population_size} participants at speed {self._speed}x")

            await self._market.update_market_state()
            await run_bootstrap(
                cfg.bootstrap, self._store, self._market, self._swap_engine, self._dispatcher, self._rng
            )
        except Exception as e:
            logger.exception("Failed to start simulation")
            await self._escalate(e)
            return ControlResult(False, f"Failed to start simulation: {e}")

        self._start_timers()
        return ControlResult(True, "Simulation started", {"run_id": self.run_id})

    async def stop(self) -> ControlResult:
        """Cancel timers, close the run, write the final report and drain the cache."""
        if self._run is None or self._status is RunStatus.STOPPED:
            return ControlResult(False, "Simulation is not running")

        await self._stop_timers()
        self._status = RunStatus.STOPPED
        now = datetime.now()
        self._run = self._run.model_copy(update={"status": RunStatus.STOPPED, "ended_at": now})
        try:
            self._store.update_run(self._run.id, status=RunStatus.STOPPED, ended_at=now)
            report = write_report(self._store, self._run, len(self._dispatcher.window), is_final=True)
        except Exception as e:
            logger.exception("Failed to close run %s", self._run.id)
            drained = await self._cache.drain_all()
            return ControlResult(
                False,
                f"Simulation stopped but the run could not be closed: {e}",
                {"run_id": self._run.id, "drained_instances": drained},
            )

        self._log(LogLevel.INFO, "Simulation stopped")
        drained = await self._cache.drain_all()
        return ControlResult(
            True,
            "Simulation stopped",
            {"run_id": self._run.id, "report_id": report.id, "drained_instances": drained},
        )

    async def pause(self) -> ControlResult:
        if self._status is not RunStatus.RUNNING:
            return ControlResult(False, f"Cannot pause a simulation that is {self._status.value}")
        try:
            self._set_status(RunStatus.PAUSED)
        except Exception as e:
            logger.exception("Failed to pause simulation")
            return ControlResult(False, f"Failed to pause simulation: {e}")
        self._log(LogLevel.INFO, "Simulation paused")
        return ControlResult(True, "Simulation paused", {"run_id": self.run_id})

    async def resume(self) -> ControlResult:
        if self._status is not RunStatus.PAUSED:
            return ControlResult(False, f"Cannot resume a simulation that is {self._status.value}")
        try:
            self._set_status(RunStatus.RUNNING)
        except Exception as e:
            logger.exception("Failed to resume simulation")
            return ControlResult(False, f"Failed to resume simulation: {e}")
        self._last_activity = self._clock()
        self._log(LogLevel.INFO, "Simulation resumed")
        return ControlResult(True, "Simulation resumed", {"run_id": self.run_id})

    async def set_speed(self, multiplier: float) -> ControlResult:
        """Change the speed multiplier and re-arm the speed-scaled timers."""
        if not 0 < multiplier <= MAX_SPEED:
            return ControlResult(False, f"Speed must be greater than 0 and at most {MAX_SPEED:g}")

        if self._run is not None:
            try:
                self._store.update_run(self._run.id, speed=multiplier)
            except Exception as e:
                logger.exception("Failed to persist speed change")
                return ControlResult(False, f"Failed to set speed: {e}")
            self._run = self._run.model_copy(update={"speed": multiplier})
        self._speed = multiplier

        timers = self._config.timers
        if "phase" in self._timers:
            await self._timers["phase"].rearm(self._phase_period())
            await self._timers["market"].rearm(timers.market_interval_ms / 1000 / multiplier)
            await self._timers["report"].rearm(timers.report_interval_ms / 1000 / multiplier)
            self._phase_started_at = self._clock()

        self._log(LogLevel.INFO, f"Simulation speed set to {multiplier}x")
        return ControlResult(True, f"Speed set to {multiplier}x", {"speed": multiplier, "phase": self._phase.value})

    def status(self) -> ControlResult:
        """Snapshot of the run for the control surface."""
        elapsed = self._clock() - self._phase_started_at
        progress = min(1.0, max(0.0, elapsed / self._phase_period())) if self._status is RunStatus.RUNNING else 0.0

        try:
            market: dict[str, Any] | None = self._market.get_market_info().model_dump()
        except PoolUninitializedError:
            market = None
        except Exception as e:
            logger.exception("Failed to read market state for status")
            return ControlResult(False, f"Failed to read simulation status: {e}", {"status": self._status.value})

        try:
            population = self._store.count_participants()
        except Exception as e:
            logger.exception("Failed to count participants for status")
            return ControlResult(False, f"Failed to read simulation status: {e}", {"status": self._status.value})

        last_report = self._dispatcher.last_report
        data = {
            "status": self._status.value,
            "phase": self._phase.value,
            "phase_progress": progress,
            "run_id": self.run_id,
            "started_at": self._run.started_at.isoformat() if self._run else None,
            "population": population,
            "active_agents": len(self._dispatcher.window),
            "resident_instances": self._cache.size,
            "speed": self._speed,
            "market": market,
            "last_heartbeat": self._last_heartbeat.isoformat() if self._last_heartbeat else None,
            "last_dispatch": last_report.to_dict() if last_report else None,
        }
        return ControlResult(True, self._status.value, data)

    # ------------------------------------------------------------------
    # Phase execution
    # ------------------------------------------------------------------

    async def run_current_phase(self) -> DispatchReport | None:
        """Persist and execute the current phase.

        REPORTING writes an interim report and trims the active window;
        every other phase dispatches its activity to a batch of
        ``min(max_agents_per_phase, window size)`` participants.
        """
        phase = self._phase
        self._phase_started_at = self._clock()
        if self._run is not None:
            self._store.update_run(self._run.id, current_phase=phase)
            self._run = self._run.model_copy(update={"current_phase": phase})
        self._log(LogLevel.INFO, f"Running phase {phase.value}")

        if phase is SimulationPhase.REPORTING:
            if self._run is not None:
                write_report(self._store, self._run, len(self._dispatcher.window))
            self._dispatcher.window.cleanup(WINDOW_CLEANUP_FRACTION)
            await self._cache.evict()
            self._last_activity = self._clock()
            return None

        window_size = self._dispatcher.refresh_window()
        batch = min(self._config.max_agents_per_phase, window_size)
        report = await self._dispatcher.dispatch(PHASE_ACTIVITY[phase], batch)
        if report.produced_activity:
            self._last_activity = self._clock()
        return report

    def rotate(self) -> SimulationPhase:
        self._phase = next_phase(self._phase)
        return self._phase

    async def _on_phase_tick(self) -> None:
        if self._status is not RunStatus.RUNNING:
            return
        if self._phase_ticks > 0:
            self.rotate()
        self._phase_ticks += 1
        try:
            await self.run_current_phase()
        except Exception as e:
            logger.exception("Phase %s failed", self._phase.value)
            await self._escalate(e)

    async def _on_market_tick(self) -> None:
        if self._status is not RunStatus.RUNNING:
            return
        try:
            await self._market.update_market_state()
        except Exception as e:
            logger.exception("Market refresh failed")
            await self._escalate(e)

    async def _on_report_tick(self) -> None:
        if self._status is not RunStatus.RUNNING or self._run is None:
            return
        try:
            write_report(self._store, self._run, len(self._dispatcher.window))
        except Exception as e:
            logger.exception("Interim report failed")
            await self._escalate(e)

    async def _on_sweep_tick(self) -> None:
        await self._cache.evict()

    async def _on_heartbeat(self) -> None:
        self._last_heartbeat = datetime.now()
        if self._status is not RunStatus.RUNNING or self._recovering:
            return
        await self.check_heartbeat()

    def _activity_marker(self) -> float:
        dispatched = self._dispatcher.last_success_at
        if dispatched is None:
            return self._last_activity
        return max(self._last_activity, dispatched)

    async def check_heartbeat(self) -> bool:
        """Recover a stalled run.

        When the last successful activity is older than the threshold,
        re-run the current phase once; if that still produces nothing,
        pause the run.

        Returns:
            True when the run is healthy or recovered
        """
        threshold = self._config.timers.heartbeat_threshold_ms / 1000
        before = self._activity_marker()
        if self._clock() - before <= threshold:
            return True

        self._log(LogLevel.WARNING, f"No activity for over {threshold:.0f}s; re-running phase {self._phase.value}")
        self._recovering = True
        try:
            try:
                await self.run_current_phase()
            except Exception as e:
                logger.warning("Recovery run of phase %s failed: %s", self._phase.value, e)
            if self._activity_marker() > before:
                self._log(LogLevel.INFO, "Recovered from stall")
                return True

            self._set_status(RunStatus.PAUSED)
            self._log(LogLevel.ERROR, "Simulation stalled and was paused; resume to retry")
            return False
        finally:
            self._recovering = False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start_timers(self) -> None:
        timers = self._config.timers
        self._phase_started_at = self._clock()
        self._timers = {
            "phase": PeriodicTimer("phase", self._phase_period(), self._on_phase_tick, run_immediately=True, overlap=True),
            "market": PeriodicTimer("market", timers.market_interval_ms / 1000 / self._speed, self._on_market_tick),
            "report": PeriodicTimer("report", timers.report_interval_ms / 1000 / self._speed, self._on_report_tick),
            "heartbeat": PeriodicTimer("heartbeat", timers.heartbeat_interval_ms / 1000, self._on_heartbeat),
            "sweep": PeriodicTimer("sweep", self._config.cache.sweep_interval_ms / 1000, self._on_sweep_tick),
        }
        for timer in self._timers.values():
            timer.start()

    async def _stop_timers(self) -> None:
        timers, self._timers = self._timers, {}
        for timer in timers.values():
            await timer.stop()

    def _set_status(self, status: RunStatus) -> None:
        """Persist then apply a status change; a failed write leaves it unchanged."""
        if self._run is not None:
            self._store.update_run(self._run.id, status=status)
            self._run = self._run.model_copy(update={"status": status})
        self._status = status

    async def _escalate(self, error: Exception) -> None:
        """Move the run to ERROR and halt timer loops; in-flight ticks finish."""
        wrapped = error if isinstance(error, UnrecoverableError) else UnrecoverableError(str(error))
        self._status = RunStatus.ERROR
        for timer in self._timers.values():
            await timer.stop(cancel_ticks=False)
        if self._run is None:
            return
        try:
            self._store.update_run(self._run.id, status=RunStatus.ERROR)
            self._run = self._run.model_copy(update={"status": RunStatus.ERROR})
        except Exception:
            logger.exception("Could not persist ERROR status for run %s", self._run.id)
        self._log(LogLevel.ERROR, f"Simulation failed: {wrapped}")

    def _log(self, level: LogLevel, message: str) -> None:
        logger.log(getattr(logging, level.value), message)
        try:
            self._store.append_log(
                SimulationLogRecord(
                    id=str(uuid.uuid4()),
                    run_id=self.run_id,
                    level=level,
                    message=message,
                    created_at=datetime.now(),
                )
            )
        except Exception:
            logger.exception("Could not persist simulation log entry")
