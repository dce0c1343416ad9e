"""Pydantic schemas for configuration validation."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from market_simulator.persistence.models import PersonalityType

DISTRIBUTION_TOLERANCE = 1e-4

DEFAULT_PERSONALITY_DISTRIBUTION: dict[PersonalityType, float] = {
    PersonalityType.CONSERVATIVE: 0.10,
    PersonalityType.MODERATE: 0.15,
    PersonalityType.AGGRESSIVE: 0.10,
    PersonalityType.TREND_FOLLOWER: 0.10,
    PersonalityType.CONTRARIAN: 0.10,
    PersonalityType.TECHNICAL: 0.10,
    PersonalityType.FUNDAMENTAL: 0.10,
    PersonalityType.EMOTIONAL: 0.10,
    PersonalityType.WHALE: 0.05,
    PersonalityType.NOVICE: 0.10,
}


# ============================================================================
# Component Settings
# ============================================================================

class PoolConfig(BaseModel):
    """Seed reserves and default slippage for the liquidity pool."""
    initial_sol_reserve: float = Field(10_000.0, description="Seed base-currency reserve", gt=0)
    initial_token_reserve: float = Field(1_000_000.0, description="Seed token reserve", gt=0)
    default_slippage: float = Field(1.5, description="Default price impact ceiling (percent)", gt=0)


class DispatcherConfig(BaseModel):
    """Concurrency, timeout and backoff settings for batch dispatch."""
    max_concurrency: int = Field(5, description="Maximum in-flight actions", ge=1)
    call_timeout_seconds: float = Field(60.0, description="Upper bound per dispatched action", gt=0)
    min_call_delay_ms: int = Field(1000, description="Floor for inter-call spacing", ge=0)
    max_call_delay_ms: int = Field(10_000, description="Cap for inter-call spacing", ge=0)
    cooldown_ms: int = Field(5000, description="Initial cooldown after a rate limit", ge=0)
    max_cooldown_ms: int = Field(60_000, description="Cap for the rate-limit cooldown", ge=0)
    active_ttl_ms: int = Field(3_600_000, description="Active window membership TTL", gt=0)
    fallback_on_rate_limit: bool = Field(True, description="Run local fallback when rate limited")

    @model_validator(mode="after")
    def validate_caps(self) -> DispatcherConfig:
        """Validate that caps are not below their floors."""
        if self.max_call_delay_ms < self.min_call_delay_ms:
            raise ValueError("max_call_delay_ms must be >= min_call_delay_ms")
        if self.max_cooldown_ms < self.cooldown_ms:
            raise ValueError("max_cooldown_ms must be >= cooldown_ms")
        return self


class CacheConfig(BaseModel):
    """Instance cache bounds."""
    max_size: int = Field(100, description="Maximum resident instances", ge=1)
    ttl_ms: int = Field(3_600_000, description="Idle time before an instance expires", gt=0)
    sweep_interval_ms: int = Field(300_000, description="Period of the eviction sweep", gt=0)


class TimerConfig(BaseModel):
    """Periods for the scheduler's background timers (before speed scaling)."""
    market_interval_ms: int = Field(5000, gt=0)
    report_interval_ms: int = Field(300_000, gt=0)
    heartbeat_interval_ms: int = Field(30_000, gt=0)
    heartbeat_threshold_ms: int = Field(600_000, gt=0)


class OracleConfig(BaseModel):
    """Decision oracle selection."""
    mode: Literal["llm", "local"] = Field("llm", description="Oracle-backed or local agents")
    model: str = Field("anthropic:claude-sonnet-4-5", description="provider:model string")
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(1000, gt=0)
    timeout_seconds: int = Field(60, gt=0)

    @field_validator("model")
    @classmethod
    def validate_model_format(cls, v: str) -> str:
        """Validate provider:model format."""
        if ":" not in v:
            raise ValueError(f"model must be in provider:model format, got {v!r}")
        return v


class BootstrapConfig(BaseModel):
    """Opening activity seeded on start."""
    enabled: bool = True
    participants: int = Field(5, ge=0)
    trades: int = Field(3, ge=0, description="Opening buys, one per participant")
    min_trade: float = Field(5.0, gt=0)
    max_trade: float = Field(15.0, gt=0)
    slippage: float = Field(0.5, gt=0)

    @model_validator(mode="after")
    def validate_trade_range(self) -> BootstrapConfig:
        """Validate min_trade <= max_trade."""
        if self.min_trade > self.max_trade:
            raise ValueError("min_trade must be <= max_trade")
        return self


# ============================================================================
# Top-level Configuration
# ============================================================================

class SimulationConfig(BaseModel):
    """Complete simulation configuration."""

    population_size: int = Field(100, description="Number of participants", ge=1)
    max_active_agents: int = Field(1000, description="Active window capacity", ge=1)
    max_agents_per_phase: int = Field(20, description="Batch size per phase", ge=1)
    phase_duration_ms: int = Field(300_000, description="Phase length at speed 1", gt=0)
    speed: float = Field(1.0, description="Speed multiplier", gt=0, le=10)
    personality_distribution: dict[PersonalityType, float] = Field(
        default_factory=lambda: dict(DEFAULT_PERSONALITY_DISTRIBUTION),
        description="Probability weight per personality",
    )
    rng_seed: int | None = Field(None, description="Seed for reproducible sampling")

    pool: PoolConfig = Field(default_factory=PoolConfig)  # type: ignore[arg-type]
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)  # type: ignore[arg-type]
    cache: CacheConfig = Field(default_factory=CacheConfig)  # type: ignore[arg-type]
    timers: TimerConfig = Field(default_factory=TimerConfig)  # type: ignore[arg-type]
    oracle: OracleConfig = Field(default_factory=OracleConfig)  # type: ignore[arg-type]
    bootstrap: BootstrapConfig = Field(default_factory=BootstrapConfig)  # type: ignore[arg-type]

    @field_validator("personality_distribution")
    @classmethod
    def validate_distribution(cls, v: dict[PersonalityType, float]) -> dict[PersonalityType, float]:
        """Validate weights are non-negative and sum to 1."""
        if not v:
            raise ValueError("personality_distribution must not be empty")
        for personality, weight in v.items():
            if weight < 0:
                raise ValueError(f"Negative weight for {personality.value}: {weight}")
        total = sum(v.values())
        if abs(total - 1.0) > DISTRIBUTION_TOLERANCE:
            raise ValueError(f"Personality distribution must sum to 1, got {total:.6f}")
        return v

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> SimulationConfig:
        """Create config from dictionary."""
        return cls.model_validate(config_dict)
