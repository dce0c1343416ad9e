"""Interim and final simulation reports."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from market_simulator.persistence.models import RunStatus, SimulationReportRecord

if TYPE_CHECKING:
    from market_simulator.persistence.models import SimulationRunRecord
    from market_simulator.persistence.store import MarketStore

logger = logging.getLogger(__name__)


def build_report(
    store: MarketStore,
    run: SimulationRunRecord,
    active_count: int,
    is_final: bool = False,
) -> dict[str, Any]:
    """Aggregate activity since the run started."""
    stats = store.transaction_stats(since=run.started_at)
    success_rate = stats["confirmed"] / stats["total"] if stats["total"] else 0.0
    pool = store.get_pool()

    report: dict[str, Any] = {
        "run_id": run.id,
        "status": run.status.value,
        "phase": run.current_phase.value,
        "generated_at": datetime.now().isoformat(),
        "is_final": is_final or run.status is RunStatus.STOPPED,
        "active_agents": active_count,
        "total_agents": store.count_participants(),
        "transactions": {
            "total": stats["total"],
            "completed": stats["confirmed"],
            "failed": stats["failed"],
            "success_rate": success_rate,
        },
        "messages_by_personality": store.messages_by_personality(since=run.started_at),
    }
    if pool is not None:
        report["pool"] = {
            "sol_reserve": pool.sol_reserve,
            "token_reserve": pool.token_reserve,
            "price": pool.current_price,
            "total_volume": pool.total_volume,
            "volume_24h": pool.volume_24h,
        }
    return report


def write_report(
    store: MarketStore,
    run: SimulationRunRecord,
    active_count: int,
    is_final: bool = False,
) -> SimulationReportRecord:
    """Build a report and append it to ``simulation_reports``."""
    report = build_report(store, run, active_count, is_final)
    record = SimulationReportRecord(
        id=str(uuid.uuid4()),
        run_id=run.id,
        is_final=report["is_final"],
        payload=json.dumps(report),
        created_at=datetime.now(),
    )
    store.append_report(record)
    logger.info(
        "%s report for run %s: %d transactions (%.0f%% confirmed)",
        "Final" if record.is_final else "Interim",
        run.id,
        report["transactions"]["total"],
        report["transactions"]["success_rate"] * 100,
    )
    return record
