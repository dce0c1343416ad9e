"""Persistence layer: DuckDB schema, connection and durable store."""

from .connection import DatabaseManager
from .models import (
    DecisionType,
    MarketStateRecord,
    MessageRecord,
    ParticipantRecord,
    PersonalityType,
    PoolStateRecord,
    RunStatus,
    SimulationLogRecord,
    SimulationPhase,
    SimulationReportRecord,
    SimulationRunRecord,
    TransactionRecord,
    TransactionStatus,
)
from .store import MarketStore

__all__ = [
    "DatabaseManager",
    "DecisionType",
    "MarketStateRecord",
    "MarketStore",
    "MessageRecord",
    "ParticipantRecord",
    "PersonalityType",
    "PoolStateRecord",
    "RunStatus",
    "SimulationLogRecord",
    "SimulationPhase",
    "SimulationReportRecord",
    "SimulationRunRecord",
    "TransactionRecord",
    "TransactionStatus",
]
