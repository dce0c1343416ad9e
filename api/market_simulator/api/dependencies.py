"""FastAPI dependencies for service injection.

Endpoints reach the simulation through the runtime held by the global
container, which the application lifespan populates.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException

if TYPE_CHECKING:
    from market_simulator.amm.swap_engine import SwapEngine
    from market_simulator.market.data import MarketDataService
    from market_simulator.persistence.store import MarketStore
    from market_simulator.runtime import SimulationRuntime
    from market_simulator.simulation.scheduler import PhaseScheduler


class ServiceContainer:
    """Container for the simulation runtime.

    Tests assign a runtime directly; the lifespan assigns one in production.
    """

    def __init__(self) -> None:
        self._runtime: SimulationRuntime | None = None

    @property
    def runtime(self) -> SimulationRuntime | None:
        return self._runtime

    @runtime.setter
    def runtime(self, value: SimulationRuntime | None) -> None:
        self._runtime = value

    def clear_all(self) -> None:
        """Forget the runtime (used for testing cleanup)."""
        self._runtime = None


# Global service container instance
container = ServiceContainer()


def get_runtime() -> SimulationRuntime:
    """Dependency that provides the configured runtime.

    Raises:
        HTTPException: 503 if no runtime has been configured
    """
    if container.runtime is None:
        raise HTTPException(status_code=503, detail="Simulation runtime is not configured")
    return container.runtime


def get_scheduler() -> PhaseScheduler:
    return get_runtime().scheduler


def get_swap_engine() -> SwapEngine:
    return get_runtime().swap_engine


def get_market() -> MarketDataService:
    return get_runtime().market


def get_store() -> MarketStore:
    return get_runtime().store
