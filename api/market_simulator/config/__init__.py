"""Configuration module for Market Simulator."""
from pydantic import ValidationError

from .loader import load_config
from .schemas import (
    DEFAULT_PERSONALITY_DISTRIBUTION,
    BootstrapConfig,
    CacheConfig,
    DispatcherConfig,
    OracleConfig,
    PoolConfig,
    SimulationConfig,
    TimerConfig,
)

__all__ = [
    "BootstrapConfig",
    "CacheConfig",
    "DEFAULT_PERSONALITY_DISTRIBUTION",
    "DispatcherConfig",
    "OracleConfig",
    "PoolConfig",
    "SimulationConfig",
    "TimerConfig",
    "ValidationError",
    "load_config",
]
