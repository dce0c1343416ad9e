"""Tests for the market-sim command line."""

import json
from pathlib import Path

import duckdb
import pytest
import yaml
from typer.testing import CliRunner

from market_simulator import __version__
from market_simulator.amm.swap_engine import SwapEngine
from market_simulator.cli.main import app
from market_simulator.persistence.connection import DatabaseManager
from market_simulator.persistence.store import MarketStore


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def seeded_db(tmp_path) -> Path:
    """Database holding an initialized pool."""
    db_file = tmp_path / "pool.db"
    with DatabaseManager(db_file) as manager:
        manager.setup()
        SwapEngine(MarketStore(manager.get_connection())).bootstrap_pool(1000.0, 1_000_000.0)
    return db_file


@pytest.fixture
def local_config(tmp_path) -> Path:
    config_file = tmp_path / "sim.yaml"
    config_file.write_text(
        yaml.safe_dump(
            {
                "population_size": 5,
                "max_agents_per_phase": 3,
                "rng_seed": 42,
                "dispatcher": {
                    "min_call_delay_ms": 0,
                    "max_call_delay_ms": 100,
                    "cooldown_ms": 0,
                    "max_cooldown_ms": 0,
                },
                "bootstrap": {"participants": 2, "trades": 1},
            }
        )
    )
    return config_file


def _json(stdout: str):
    return json.loads(stdout[stdout.index("{"):])


def test_version(runner):
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


class TestDbCommands:
    def test_init_creates_tables(self, runner, tmp_path):
        db_file = tmp_path / "new.db"

        result = runner.invoke(app, ["db", "init", "--db-path", str(db_file)])

        assert result.exit_code == 0
        assert "Database initialized" in result.output
        conn = duckdb.connect(str(db_file))
        tables = {row[0] for row in conn.execute("SELECT table_name FROM information_schema.tables").fetchall()}
        conn.close()
        assert {"participants", "pool_state", "transactions", "simulation_runs"} <= tables

    def test_validate_passes_after_init(self, runner, tmp_path):
        db_file = tmp_path / "valid.db"
        runner.invoke(app, ["db", "init", "--db-path", str(db_file)])

        result = runner.invoke(app, ["db", "validate", "--db-path", str(db_file)])

        assert result.exit_code == 0
        assert "Schema validation passed" in result.output

    def test_validate_reports_drift(self, runner, tmp_path):
        db_file = tmp_path / "drift.db"
        runner.invoke(app, ["db", "init", "--db-path", str(db_file)])
        conn = duckdb.connect(str(db_file))
        conn.execute("ALTER TABLE messages ADD COLUMN mood VARCHAR")
        conn.close()

        result = runner.invoke(app, ["db", "validate", "--db-path", str(db_file)])

        assert result.exit_code == 1
        assert "messages" in result.output

    def test_info_lists_row_counts(self, runner, seeded_db):
        result = runner.invoke(app, ["db", "info", "--db-path", str(seeded_db)])

        assert result.exit_code == 0
        assert "pool_state" in result.output


class TestPoolCommands:
    def test_show(self, runner, seeded_db):
        result = runner.invoke(app, ["pool", "show", "--db-path", str(seeded_db)])

        assert result.exit_code == 0
        pool = _json(result.stdout)
        assert pool["sol_reserve"] == 1000.0
        assert pool["current_price"] == pytest.approx(0.001)

    def test_quote_buy_and_sell(self, runner, seeded_db):
        buy = runner.invoke(app, ["pool", "quote", "10", "--db-path", str(seeded_db)])
        sell = runner.invoke(app, ["pool", "quote", "10000", "--sell", "--db-path", str(seeded_db)])

        assert buy.exit_code == 0
        assert _json(buy.stdout)["output_amount"] == pytest.approx(9900.990099, rel=1e-6)
        assert _json(sell.stdout)["input_is_sol"] is False

    def test_quote_without_pool_fails(self, runner, tmp_path):
        result = runner.invoke(app, ["pool", "quote", "1", "--db-path", str(tmp_path / "empty.db")])

        assert result.exit_code == 1


class TestRunCommand:
    def test_invalid_speed_is_rejected(self, runner, tmp_path):
        result = runner.invoke(
            app, ["run", "--local", "--speed", "11", "--db-path", str(tmp_path / "run.db")]
        )

        assert result.exit_code == 1

    @pytest.mark.slow
    def test_short_local_run_prints_final_report(self, runner, tmp_path, local_config):
        db_file = tmp_path / "run.db"

        result = runner.invoke(
            app,
            [
                "run",
                "--config", str(local_config),
                "--local",
                "--duration", "0.3",
                "--status-interval", "0.1",
                "--db-path", str(db_file),
                "--quiet",
            ],
        )

        assert result.exit_code == 0, result.output
        report = _json(result.stdout)
        assert report["is_final"]
        assert report["total_agents"] == 5
        assert report["status"] == "STOPPED"
        with DatabaseManager(db_file) as manager:
            assert MarketStore(manager.get_connection()).latest_run().ended_at is not None
