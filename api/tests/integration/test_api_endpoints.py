"""Tests for the REST API over a local-agent runtime."""

import pytest
from fastapi.testclient import TestClient

from market_simulator.api.dependencies import container
from market_simulator.api.main import app
from market_simulator.config import SimulationConfig
from market_simulator.runtime import SimulationRuntime

LOCAL_CONFIG = {
    "population_size": 6,
    "max_agents_per_phase": 3,
    "phase_duration_ms": 3_600_000,
    "rng_seed": 11,
    "dispatcher": {"min_call_delay_ms": 0, "max_call_delay_ms": 100, "cooldown_ms": 0, "max_cooldown_ms": 0},
    "oracle": {"mode": "local"},
    "bootstrap": {"participants": 2, "trades": 1},
}


@pytest.fixture
def runtime():
    """In-memory runtime installed in the service container."""
    container.clear_all()
    runtime = SimulationRuntime(SimulationConfig.from_dict(LOCAL_CONFIG))
    container.runtime = runtime

    yield runtime

    container.clear_all()
    runtime.db_manager.close()


@pytest.fixture
def client(runtime):
    with TestClient(app) as client:
        yield client
        if runtime.scheduler.run_id is not None:
            client.post("/simulation/stop")


@pytest.fixture
def started(client):
    response = client.post("/simulation/start", json=LOCAL_CONFIG)
    assert response.status_code == 200
    return response.json()["data"]["run_id"]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_missing_runtime_is_unavailable():
    container.clear_all()

    response = TestClient(app).get("/simulation/status")

    assert response.status_code == 503


class TestSimulationControl:
    def test_status_before_start(self, client):
        response = client.get("/simulation/status")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "STOPPED"

    def test_start_then_status(self, client, started):
        data = client.get("/simulation/status").json()["data"]

        assert data["status"] == "RUNNING"
        assert data["run_id"] == started
        assert data["population"] == 6

    def test_start_twice_conflicts(self, client, started):
        response = client.post("/simulation/start")

        assert response.status_code == 409

    def test_invalid_config_is_rejected(self, client):
        response = client.post("/simulation/start", json={"speed": 50})

        assert response.status_code == 422

    def test_pause_resume_cycle(self, client, started):
        assert client.post("/simulation/pause").status_code == 200
        assert client.post("/simulation/pause").status_code == 409
        assert client.get("/simulation/status").json()["data"]["status"] == "PAUSED"
        assert client.post("/simulation/resume").status_code == 200

    def test_speed_bounds(self, client, started):
        assert client.post("/simulation/speed", json={"speed": 20}).status_code == 400
        assert client.post("/simulation/speed", json={"speed": 0}).status_code == 400

        response = client.post("/simulation/speed", json={"speed": 4})

        assert response.status_code == 200
        assert client.get("/simulation/status").json()["data"]["speed"] == 4

    def test_stop_writes_final_report(self, client, started):
        response = client.post("/simulation/stop")

        assert response.status_code == 200
        report = client.get("/reports/latest", params={"run_id": started})
        assert report.status_code == 200
        body = report.json()
        assert body["is_final"]
        assert body["report"]["total_agents"] == 6

    def test_stop_without_run_conflicts(self, client):
        assert client.post("/simulation/stop").status_code == 409


class TestPoolEndpoints:
    def test_pool_missing_before_start(self, client):
        assert client.get("/pool").status_code == 404
        assert client.post("/pool/quote", json={"input_amount": 1.0}).status_code == 404

    def test_quote_does_not_trade(self, client, started):
        before = client.get("/pool").json()

        response = client.post("/pool/quote", json={"input_amount": 10.0, "input_is_sol": True})

        assert response.status_code == 200
        assert response.json()["output_amount"] > 0
        assert client.get("/pool").json()["sol_reserve"] == before["sol_reserve"]

    def test_quote_rejects_non_positive_amount(self, client, started):
        assert client.post("/pool/quote", json={"input_amount": 0}).status_code == 422

    def test_swap_for_participant(self, client, started, runtime):
        participant = runtime.store.get_participant(runtime.store.list_participant_ids()[0])

        response = client.post(
            "/pool/swap",
            json={"participant_id": participant.id, "input_amount": 1.0, "slippage_tolerance": 5.0},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["sol_balance"] == pytest.approx(participant.sol_balance - 1.0)
        assert body["quote"]["input_is_sol"] is True

    def test_swap_rejections(self, client, started, runtime):
        participant_id = runtime.store.list_participant_ids()[0]

        too_big = client.post("/pool/swap", json={"participant_id": participant_id, "input_amount": 1e9})
        unknown = client.post("/pool/swap", json={"participant_id": "ghost", "input_amount": 1.0})

        assert too_big.status_code == 400
        assert "Insufficient" in too_big.json()["detail"]
        assert unknown.status_code == 404


class TestMarketEndpoints:
    def test_market_missing_before_start(self, client):
        assert client.get("/market").status_code == 404
        assert client.get("/reports/latest").status_code == 404

    def test_market_after_start(self, client, started):
        response = client.get("/market")

        assert response.status_code == 200
        assert response.json()["price"] > 0

    def test_bootstrap_messages_are_listed(self, client, started):
        response = client.get("/market/messages", params={"limit": 50})

        messages = response.json()["messages"]
        assert any("Welcome" in m["content"] for m in messages)

    def test_sentiment(self, client, started):
        body = client.get("/market/sentiment").json()

        assert 0.0 <= body["bullish"] <= 1.0
        assert body["message_count"] > 0
