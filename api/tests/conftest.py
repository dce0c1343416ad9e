"""
Pytest configuration and shared fixtures.

Provides:
- File-backed database paths that are kept on failure for inspection
- In-memory stores with the schema initialized
- Participant and pool factories
- A manually advanced clock for cache, window and backoff tests
"""

import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Generator

import pytest

from market_simulator.persistence.connection import DatabaseManager
from market_simulator.persistence.models import ParticipantRecord, PersonalityType
from market_simulator.persistence.store import MarketStore


@pytest.fixture
def db_path(request, tmp_path) -> Generator[Path, None, None]:
    """Provide database path with intelligent cleanup.

    Behavior:
    - Local dev (default): Uses api/test_databases/ for easy inspection
    - CI environment: Uses tmp_path for isolation
    - Keeps database on test failure for debugging
    - Cleans up on test success

    To inspect after test:
        $ duckdb api/test_databases/test_something.db
        D SELECT * FROM transactions;
    """
    is_ci = os.getenv("CI") == "true" or os.getenv("GITHUB_ACTIONS") == "true"

    if is_ci:
        db_file = tmp_path / "test.db"
    else:
        test_db_dir = Path(__file__).parent.parent / "test_databases"
        test_db_dir.mkdir(exist_ok=True)

        test_name = request.node.name.replace("[", "_").replace("]", "")
        db_file = test_db_dir / f"{test_name}.db"

        if db_file.exists():
            db_file.unlink()
            wal_file = Path(str(db_file) + ".wal")
            if wal_file.exists():
                wal_file.unlink()

    yield db_file

    # Cleanup after test (only on success)
    if not is_ci and request.node.rep_call.passed:
        if db_file.exists():
            db_file.unlink()
        wal_file = Path(str(db_file) + ".wal")
        if wal_file.exists():
            wal_file.unlink()


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """Make test results available to fixtures (see db_path)."""
    outcome = yield
    rep = outcome.get_result()
    setattr(item, f"rep_{rep.when}", rep)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_manager() -> Generator[DatabaseManager, None, None]:
    manager = DatabaseManager(":memory:")
    manager.setup()
    yield manager
    manager.close()


@pytest.fixture
def store(db_manager: DatabaseManager) -> MarketStore:
    return MarketStore(db_manager.get_connection())


@pytest.fixture
def make_participant(store: MarketStore):
    """Factory inserting a participant and returning its record."""

    def _make(
        sol_balance: float = 100.0,
        token_balance: float = 0.0,
        personality: PersonalityType = PersonalityType.MODERATE,
        participant_id: str | None = None,
        wallet_address: str | None = None,
    ) -> ParticipantRecord:
        record = ParticipantRecord(
            id=participant_id or str(uuid.uuid4()),
            name=f"{personality.value.title()} Trader",
            personality=personality,
            sol_balance=sol_balance,
            token_balance=token_balance,
            wallet_address=wallet_address,
            created_at=datetime.now(),
        )
        store.insert_participants([record])
        return record

    return _make
