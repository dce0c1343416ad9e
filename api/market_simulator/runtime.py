"""Composition root wiring the store, pool, agents, dispatcher and scheduler."""

from __future__ import annotations

import logging
import random
from pathlib import Path

from market_simulator.agents.cache import InstanceCache
from market_simulator.agents.factory import AgentFactory
from market_simulator.agents.protocol import AgentServices, ParticipantAgent
from market_simulator.amm.balances import BalanceSource
from market_simulator.amm.swap_engine import SwapEngine
from market_simulator.config.schemas import SimulationConfig
from market_simulator.dispatch.backoff import BackoffState
from market_simulator.dispatch.dispatcher import BatchDispatcher
from market_simulator.dispatch.window import ActiveWindow
from market_simulator.llm.protocol import LLMClientProtocol
from market_simulator.market.data import MarketDataService
from market_simulator.persistence.connection import DatabaseManager
from market_simulator.persistence.models import RunStatus
from market_simulator.persistence.store import MarketStore
from market_simulator.simulation.scheduler import PhaseScheduler

logger = logging.getLogger(__name__)


def _build_llm_client(config: SimulationConfig) -> LLMClientProtocol:
    from market_simulator.llm.config import LLMConfig
    from market_simulator.llm.pydantic_client import PydanticAILLMClient

    return PydanticAILLMClient(LLMConfig.from_oracle_config(config.oracle))


class SimulationRuntime:
    """All long-lived components for one database.

    Args:
        config: Simulation configuration
        db_path: DuckDB file, or ":memory:"
        balance_source: Optional external ledger for swap eligibility
        llm_client: Oracle client; built from ``config.oracle`` in llm mode
            when omitted
        db_manager: Existing database manager to reuse instead of opening
            ``db_path``
    """

    def __init__(
        self,
        config: SimulationConfig,
        db_path: str | Path = ":memory:",
        balance_source: BalanceSource | None = None,
        llm_client: LLMClientProtocol | None = None,
        db_manager: DatabaseManager | None = None,
    ) -> None:
        self.config = config
        self.db_manager = db_manager or DatabaseManager(db_path)
        self.db_manager.setup()
        self.store = MarketStore(self.db_manager.get_connection())
        self.rng = random.Random(config.rng_seed)

        self.market = MarketDataService(self.store)
        self.swap_engine = SwapEngine(
            self.store,
            balance_source=balance_source,
            on_committed=self.market.update_market_state,
            default_slippage=config.pool.default_slippage,
        )

        services = AgentServices(
            store=self.store,
            swap_engine=self.swap_engine,
            market=self.market,
            rng=self.rng,
            fallback_slippage=config.pool.default_slippage,
        )
        if config.oracle.mode == "llm" and llm_client is None:
            llm_client = _build_llm_client(config)
        self.factory = AgentFactory(
            services,
            mode=config.oracle.mode,
            llm_client=llm_client if config.oracle.mode == "llm" else None,
        )

        self.cache: InstanceCache[ParticipantAgent] = InstanceCache(
            self.factory.load,
            max_size=config.cache.max_size,
            ttl_seconds=config.cache.ttl_ms / 1000,
        )

        dispatch = config.dispatcher
        self.dispatcher = BatchDispatcher(
            self.store,
            self.cache,
            self.market,
            ActiveWindow(config.max_active_agents, dispatch.active_ttl_ms / 1000, rng=self.rng),
            BackoffState(
                min_delay=dispatch.min_call_delay_ms / 1000,
                max_delay=dispatch.max_call_delay_ms / 1000,
                cooldown=dispatch.cooldown_ms / 1000,
                max_cooldown=dispatch.max_cooldown_ms / 1000,
            ),
            max_concurrency=dispatch.max_concurrency,
            call_timeout=dispatch.call_timeout_seconds,
            fallback_on_rate_limit=dispatch.fallback_on_rate_limit,
        )

        self.scheduler = PhaseScheduler(
            self.store,
            self.swap_engine,
            self.market,
            self.dispatcher,
            self.cache,
            config,
            rng=self.rng,
        )
        logger.info("Runtime ready (%s agents, database %s)", config.oracle.mode, self.db_manager.db_path)

    async def shutdown(self) -> None:
        """Stop any active run, flush background refreshes and close the database."""
        if self.scheduler.run_status is not RunStatus.STOPPED and self.scheduler.run_id is not None:
            await self.scheduler.stop()
        await self.swap_engine.wait_idle()
        self.db_manager.close()
