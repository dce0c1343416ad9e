"""FastAPI routers for API endpoints."""

from .market import router as market_router
from .pool import router as pool_router
from .simulation import router as simulation_router

__all__ = ["market_router", "pool_router", "simulation_router"]
