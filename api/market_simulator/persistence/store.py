"""
Durable Store

Point lookups, updates and time-ordered scans over the DuckDB tables.
All SQL uses ``?`` parameters; JSON payloads are stored as VARCHAR.
Scans that feed reporting return Polars DataFrames.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

import duckdb
import polars as pl
from pydantic import BaseModel

from .models import (
    DecisionType,
    MarketStateRecord,
    MessageRecord,
    ParticipantRecord,
    PoolStateRecord,
    SimulationLogRecord,
    SimulationReportRecord,
    SimulationRunRecord,
    TransactionRecord,
    TransactionStatus,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_POOL_ID = "default"


def _to_row(record: BaseModel) -> dict[str, Any]:
    """Dump a record to column values DuckDB can bind."""
    row = record.model_dump()
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in row.items()}


class MarketStore:
    """DuckDB-backed store for participants, pool, transactions and runs.

    The store is synchronous: no method awaits, so a sequence of calls made
    inside ``transaction()`` cannot interleave with another coroutine.

    Args:
        conn: Open DuckDB connection with the schema initialized
    """

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self.conn = conn

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed writes as one atomic DuckDB transaction."""
        self.conn.execute("BEGIN TRANSACTION")
        try:
            yield
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        else:
            self.conn.execute("COMMIT")

    def _insert(self, table: str, record: BaseModel) -> None:
        row = _to_row(record)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        self.conn.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            list(row.values()),
        )

    def _fetch_all(self, model: type[M], query: str, params: list[Any] | None = None) -> list[M]:
        cursor = self.conn.execute(query, params or [])
        names = [d[0] for d in cursor.description]
        return [model.model_validate(dict(zip(names, row))) for row in cursor.fetchall()]

    def _fetch_one(self, model: type[M], query: str, params: list[Any] | None = None) -> M | None:
        rows = self._fetch_all(model, query, params)
        return rows[0] if rows else None

    def _scalar(self, query: str, params: list[Any] | None = None) -> Any:
        row = self.conn.execute(query, params or []).fetchone()
        return row[0] if row else None

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    def insert_participants(self, records: list[ParticipantRecord]) -> int:
        """Batch insert participants through a Polars DataFrame."""
        if not records:
            return 0

        df = pl.DataFrame([_to_row(r) for r in records], infer_schema_length=None)  # noqa: F841
        columns = ", ".join(ParticipantRecord.model_fields)
        self.conn.execute(f"INSERT INTO participants ({columns}) SELECT {columns} FROM df")
        return len(records)

    def get_participant(self, participant_id: str) -> ParticipantRecord | None:
        return self._fetch_one(
            ParticipantRecord, "SELECT * FROM participants WHERE id = ?", [participant_id]
        )

    def list_participant_ids(self, active_only: bool = True) -> list[str]:
        query = "SELECT id FROM participants"
        if active_only:
            query += " WHERE is_active"
        query += " ORDER BY created_at, id"
        return [row[0] for row in self.conn.execute(query).fetchall()]

    def count_participants(self, active_only: bool = False) -> int:
        query = "SELECT COUNT(*) FROM participants"
        if active_only:
            query += " WHERE is_active"
        return int(self._scalar(query))

    def update_balances(self, participant_id: str, sol_balance: float, token_balance: float) -> None:
        self.conn.execute(
            "UPDATE participants SET sol_balance = ?, token_balance = ? WHERE id = ?",
            [sol_balance, token_balance, participant_id],
        )

    def record_decision(
        self,
        participant_id: str,
        decision_type: DecisionType,
        data: dict[str, Any],
        at: datetime | None = None,
    ) -> None:
        """Persist a participant's last decision; the payload is stored verbatim."""
        self.conn.execute(
            """
            UPDATE participants
            SET last_decision_type = ?, last_decision_at = ?, last_decision_data = ?
            WHERE id = ?
            """,
            [decision_type.value, at or datetime.now(), json.dumps(data, default=str), participant_id],
        )

    def participants_frame(self) -> pl.DataFrame:
        return self.conn.execute(
            "SELECT id, personality, sol_balance, token_balance, is_active FROM participants"
        ).pl()

    # ------------------------------------------------------------------
    # Pool
    # ------------------------------------------------------------------

    def get_pool(self, pool_id: str = DEFAULT_POOL_ID) -> PoolStateRecord | None:
        return self._fetch_one(PoolStateRecord, "SELECT * FROM pool_state WHERE id = ?", [pool_id])

    def create_pool(self, pool: PoolStateRecord) -> None:
        self._insert("pool_state", pool)

    def save_pool(self, pool: PoolStateRecord) -> None:
        row = _to_row(pool)
        pool_id = row.pop("id")
        assignments = ", ".join(f"{col} = ?" for col in row)
        self.conn.execute(
            f"UPDATE pool_state SET {assignments} WHERE id = ?",
            [*row.values(), pool_id],
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def append_transaction(self, record: TransactionRecord) -> None:
        self._insert("transactions", record)

    def transaction_stats(self, since: datetime | None = None) -> dict[str, int]:
        """Count swap attempts by status, optionally since a timestamp."""
        query = "SELECT status, COUNT(*) FROM transactions"
        params: list[Any] = []
        if since is not None:
            query += " WHERE created_at >= ?"
            params.append(since)
        query += " GROUP BY status"

        counts = {status: count for status, count in self.conn.execute(query, params).fetchall()}
        confirmed = int(counts.get(TransactionStatus.CONFIRMED.value, 0))
        failed = int(counts.get(TransactionStatus.FAILED.value, 0))
        return {"total": confirmed + failed, "confirmed": confirmed, "failed": failed}

    def confirmed_volume_since(self, since: datetime) -> tuple[float, int]:
        """Sum SOL volume and count CONFIRMED swaps since a timestamp."""
        rows = self.conn.execute(
            "SELECT details FROM transactions WHERE status = ? AND created_at >= ?",
            [TransactionStatus.CONFIRMED.value, since],
        ).fetchall()
        volume = sum(float(json.loads(row[0]).get("volume_in_sol", 0.0)) for row in rows)
        return volume, len(rows)

    def list_transactions(self, limit: int = 100, participant_id: str | None = None) -> pl.DataFrame:
        query = "SELECT * FROM transactions"
        params: list[Any] = []
        if participant_id is not None:
            query += " WHERE participant_id = ?"
            params.append(participant_id)
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        return self.conn.execute(query, params).pl()

    # ------------------------------------------------------------------
    # Simulation runs and logs
    # ------------------------------------------------------------------

    def create_run(self, run: SimulationRunRecord) -> None:
        self._insert("simulation_runs", run)

    def get_run(self, run_id: str) -> SimulationRunRecord | None:
        return self._fetch_one(SimulationRunRecord, "SELECT * FROM simulation_runs WHERE id = ?", [run_id])

    def latest_run(self) -> SimulationRunRecord | None:
        return self._fetch_one(
            SimulationRunRecord, "SELECT * FROM simulation_runs ORDER BY started_at DESC LIMIT 1"
        )

    def update_run(self, run_id: str, **fields: Any) -> None:
        """Update selected run columns and bump updated_at."""
        fields.setdefault("updated_at", datetime.now())
        values = [v.value if isinstance(v, Enum) else v for v in fields.values()]
        assignments = ", ".join(f"{col} = ?" for col in fields)
        self.conn.execute(
            f"UPDATE simulation_runs SET {assignments} WHERE id = ?",
            [*values, run_id],
        )

    def append_log(self, record: SimulationLogRecord) -> None:
        self._insert("simulation_logs", record)

    def list_logs(self, run_id: str) -> list[SimulationLogRecord]:
        return self._fetch_all(
            SimulationLogRecord,
            "SELECT * FROM simulation_logs WHERE run_id = ? ORDER BY created_at",
            [run_id],
        )

    # ------------------------------------------------------------------
    # Market state, messages and reports
    # ------------------------------------------------------------------

    def append_market_state(self, record: MarketStateRecord) -> None:
        self._insert("market_state", record)

    def latest_market_state(self) -> MarketStateRecord | None:
        return self._fetch_one(
            MarketStateRecord, "SELECT * FROM market_state ORDER BY created_at DESC LIMIT 1"
        )

    def append_message(self, record: MessageRecord) -> None:
        self._insert("messages", record)

    def recent_messages(self, limit: int = 30) -> list[MessageRecord]:
        return self._fetch_all(
            MessageRecord, "SELECT * FROM messages ORDER BY created_at DESC LIMIT ?", [limit]
        )

    def count_messages(self) -> int:
        return int(self._scalar("SELECT COUNT(*) FROM messages"))

    def messages_by_personality(self, since: datetime | None = None) -> dict[str, int]:
        """Count participant messages grouped by author personality."""
        query = """
            SELECT p.personality, m.id
            FROM messages m
            JOIN participants p ON p.id = m.participant_id
        """
        params: list[Any] = []
        if since is not None:
            query += " WHERE m.created_at >= ?"
            params.append(since)

        df = self.conn.execute(query, params).pl()
        if df.is_empty():
            return {}
        grouped = df.group_by("personality").agg(pl.len().alias("count"))
        return {row["personality"]: int(row["count"]) for row in grouped.iter_rows(named=True)}

    def append_report(self, record: SimulationReportRecord) -> None:
        self._insert("simulation_reports", record)

    def latest_report(self, run_id: str | None = None) -> SimulationReportRecord | None:
        query = "SELECT * FROM simulation_reports"
        params: list[Any] = []
        if run_id is not None:
            query += " WHERE run_id = ?"
            params.append(run_id)
        query += " ORDER BY created_at DESC LIMIT 1"
        return self._fetch_one(SimulationReportRecord, query, params)
