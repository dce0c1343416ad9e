"""
Pydantic Models for Persistence Layer

These models are the single source of truth for database schema.
All DDL generation is derived from these models.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Enums
# ============================================================================


class PersonalityType(str, Enum):
    """Closed set of participant personalities."""

    CONSERVATIVE = "CONSERVATIVE"
    MODERATE = "MODERATE"
    AGGRESSIVE = "AGGRESSIVE"
    TREND_FOLLOWER = "TREND_FOLLOWER"
    CONTRARIAN = "CONTRARIAN"
    TECHNICAL = "TECHNICAL"
    FUNDAMENTAL = "FUNDAMENTAL"
    EMOTIONAL = "EMOTIONAL"
    WHALE = "WHALE"
    NOVICE = "NOVICE"


class DecisionType(str, Enum):
    """Kind of a participant's last decision."""

    MARKET_ANALYSIS = "MARKET_ANALYSIS"
    SOCIAL = "SOCIAL"
    TRADE = "TRADE"


class TransactionStatus(str, Enum):
    """Swap attempt outcome."""

    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


class RunStatus(str, Enum):
    """Simulation run lifecycle status."""

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    ERROR = "ERROR"


class SimulationPhase(str, Enum):
    """Recurring phases, in rotation order."""

    MARKET_ANALYSIS = "MARKET_ANALYSIS"
    SOCIAL = "SOCIAL"
    TRADING = "TRADING"
    REPORTING = "REPORTING"


class LogLevel(str, Enum):
    """Severity of a simulation log entry."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ============================================================================
# Participant
# ============================================================================


class ParticipantRecord(BaseModel):
    """Simulated trader.

    The last decision is flattened into three columns: its type, its
    timestamp and a JSON payload stored verbatim.
    """

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="participants",
        primary_key=["id"],
        indexes=[
            ("idx_participants_active", ["is_active"]),
            ("idx_participants_personality", ["personality"]),
        ],
    )

    id: str = Field(..., description="Unique participant identifier")
    name: str = Field(..., description="Display name")
    personality: PersonalityType = Field(..., description="Personality category")
    sol_balance: float = Field(..., description="Base-currency balance", ge=0)
    token_balance: float = Field(..., description="Secondary-asset balance", ge=0)
    wallet_address: str | None = Field(None, description="Ledger address, if any")
    is_active: bool = Field(True, description="Eligible for dispatch")
    last_decision_type: DecisionType | None = Field(None, description="Kind of last decision")
    last_decision_at: datetime | None = Field(None, description="When the last decision was made")
    last_decision_data: str | None = Field(None, description="Last decision payload (JSON)")
    created_at: datetime = Field(..., description="Creation time")


# ============================================================================
# Pool State
# ============================================================================


class PoolStateRecord(BaseModel):
    """Shared constant-product liquidity pool."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="pool_state",
        primary_key=["id"],
    )

    id: str = Field(..., description="Pool identifier")
    sol_reserve: float = Field(..., description="Base-currency reserve", ge=0)
    token_reserve: float = Field(..., description="Token reserve", ge=0)
    constant_product: float = Field(..., description="sol_reserve * token_reserve")
    current_price: float = Field(..., description="sol_reserve / token_reserve")
    total_volume: float = Field(0.0, description="Cumulative volume in SOL")
    volume_24h: float = Field(0.0, description="Rolling 24h volume in SOL")
    high_24h: float = Field(..., description="Highest price in the last 24h")
    low_24h: float = Field(..., description="Lowest price in the last 24h")
    last_traded_at: datetime | None = Field(None, description="Last committed swap")
    updated_at: datetime = Field(..., description="Last update")


# ============================================================================
# Transaction
# ============================================================================


class TransactionRecord(BaseModel):
    """Append-only record of one swap attempt."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="transactions",
        primary_key=["id"],
        indexes=[
            ("idx_tx_participant", ["participant_id"]),
            ("idx_tx_status_time", ["status", "created_at"]),
        ],
    )

    id: str = Field(..., description="Unique transaction identifier")
    participant_id: str = Field(..., description="Participant who attempted the swap")
    input_amount: float = Field(..., description="Amount offered")
    input_is_sol: bool = Field(..., description="True for a buy (SOL in)")
    output_amount: float = Field(0.0, description="Amount received")
    price_impact: float = Field(0.0, description="Price impact in percent")
    status: TransactionStatus = Field(..., description="CONFIRMED or FAILED")
    details: str = Field(..., description="Detail payload (JSON)")
    created_at: datetime = Field(..., description="When the attempt was recorded")


# ============================================================================
# Simulation Run
# ============================================================================


class SimulationRunRecord(BaseModel):
    """Lifecycle object for one execution."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="simulation_runs",
        primary_key=["id"],
        indexes=[
            ("idx_runs_status", ["status"]),
        ],
    )

    id: str = Field(..., description="Run identifier")
    status: RunStatus = Field(..., description="Lifecycle status")
    current_phase: SimulationPhase = Field(..., description="Current phase")
    population_size: int = Field(..., ge=0)
    max_agents_per_phase: int = Field(..., ge=1)
    phase_duration_ms: int = Field(..., gt=0)
    speed: float = Field(..., gt=0)
    started_at: datetime = Field(...)
    ended_at: datetime | None = Field(None)
    updated_at: datetime = Field(...)


class SimulationLogRecord(BaseModel):
    """Append-only scheduler log line."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="simulation_logs",
        primary_key=["id"],
        indexes=[
            ("idx_logs_run", ["run_id", "created_at"]),
        ],
    )

    id: str = Field(...)
    run_id: str | None = Field(None, description="Run the entry belongs to")
    level: LogLevel = Field(...)
    message: str = Field(...)
    created_at: datetime = Field(...)


# ============================================================================
# Market / Social / Reporting
# ============================================================================


class MarketStateRecord(BaseModel):
    """Derived market statistics snapshot."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="market_state",
        primary_key=["id"],
        indexes=[
            ("idx_market_state_time", ["created_at"]),
        ],
    )

    id: str = Field(...)
    price: float = Field(...)
    price_change_24h: float = Field(..., description="Percent change against previous snapshot")
    volume_24h: float = Field(...)
    transaction_count_24h: int = Field(..., ge=0)
    liquidity: float = Field(..., description="Two times the SOL reserve")
    created_at: datetime = Field(...)


class MessageRecord(BaseModel):
    """Social message posted by a participant or the system."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="messages",
        primary_key=["id"],
        indexes=[
            ("idx_messages_time", ["created_at"]),
        ],
    )

    id: str = Field(...)
    participant_id: str | None = Field(None, description="None for system messages")
    content: str = Field(...)
    sentiment: str = Field(..., description="positive, negative or neutral")
    created_at: datetime = Field(...)


class SimulationReportRecord(BaseModel):
    """Interim or final aggregate report."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="simulation_reports",
        primary_key=["id"],
        indexes=[
            ("idx_reports_run", ["run_id", "created_at"]),
        ],
    )

    id: str = Field(...)
    run_id: str = Field(...)
    is_final: bool = Field(...)
    payload: str = Field(..., description="Report body (JSON)")
    created_at: datetime = Field(...)


ALL_MODELS: list[type[BaseModel]] = [
    ParticipantRecord,
    PoolStateRecord,
    TransactionRecord,
    SimulationRunRecord,
    SimulationLogRecord,
    MarketStateRecord,
    MessageRecord,
    SimulationReportRecord,
]
