"""Tests for the dashboard API endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from digitpulse.config import Config
from digitpulse.engine_manager import StrategyManager
from digitpulse.main import app
from digitpulse.models.strategy_config import StrategyConfig

client = TestClient(app)


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_config() -> Config:
    return Config(
        deriv_app_id="1089",
        deriv_api_token="test-token",
        deriv_ws_url="wss://example.test/websockets/v3",
        currency="USD",
        analysis_interval_seconds=3600.0,
        max_consecutive_errors=5,
        settlement_timeout_seconds=0.0,
        request_interval_seconds=0.0,
        request_timeout_seconds=1.0,
        strategies_path="strategies.json",
        log_level="WARNING",
        health_port=8080,
    )


def _make_manager() -> StrategyManager:
    broker = AsyncMock()
    broker.is_connected = False
    return StrategyManager(
        config=_make_config(),
        broker=broker,
        strategies=[
            StrategyConfig(id="s1", type="DIFFERS", name="Differs"),
            StrategyConfig(id="s2", type="EVEN_ODD", market_symbol="R_50"),
        ],
    )


def _mock_manager() -> MagicMock:
    """Duck-typed manager for the control endpoints."""
    manager = MagicMock()
    manager.start_strategy = AsyncMock(return_value=True)
    manager.stop_strategy = AsyncMock()
    manager.stop_all = AsyncMock()
    manager.get_status.return_value = {"state": "analysing"}
    return manager


def _use(manager) -> None:
    app.state.manager = manager


@pytest.fixture(autouse=True)
def _reset_manager():
    yield
    app.state.manager = None


# ── Read endpoints ───────────────────────────────────────────────────────


class TestHealth:
    def test_health(self):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestStrategyEndpoints:
    def test_list_without_manager(self):
        resp = client.get("/strategies")
        assert resp.status_code == 200
        assert resp.json()["strategies"] == {}

    def test_list_strategies(self):
        _use(_make_manager())
        data = client.get("/strategies").json()
        assert set(data["strategies"]) == {"s1", "s2"}
        assert data["connected"] is False
        assert data["strategies"]["s1"]["state"] == "idle"

    def test_single_strategy(self):
        _use(_make_manager())
        data = client.get("/strategies/s2").json()
        assert data["id"] == "s2"
        assert data["type"] == "EVEN_ODD"
        assert data["market_symbol"] == "R_50"
        assert data["current_stake"] == 1.0

    def test_unknown_strategy(self):
        _use(_make_manager())
        assert client.get("/strategies/zz").json() == {"error": "Unknown strategy: zz"}
        assert client.get("/strategies/zz/stats").json() == {"error": "Unknown strategy: zz"}

    def test_stats(self):
        _use(_make_manager())
        data = client.get("/strategies/s1/stats").json()
        assert data["sample_size"] == 0
        assert set(data["digit_frequencies"]) == {str(d) for d in range(10)}

    def test_trades_empty(self):
        _use(_make_manager())
        assert client.get("/strategies/s1/trades").json() == {"trades": [], "total": 0}

    def test_trades_limit_validated(self):
        _use(_make_manager())
        assert client.get("/strategies/s1/trades?limit=0").status_code == 422

    def test_trades_bad_result_filter(self):
        _use(_make_manager())
        data = client.get("/strategies/s1/trades?result=draw").json()
        assert data["status"] == "error"

    def test_events(self):
        _use(_make_manager())
        assert client.get("/strategies/s1/events").json() == {"events": []}


# ── Edits ────────────────────────────────────────────────────────────────


class TestPatchStrategy:
    def test_valid_edit(self):
        manager = _make_manager()
        _use(manager)
        resp = client.patch("/strategies/s1", json={"stake": 2.5, "ticks_per_trade": 3})
        data = resp.json()
        assert data["status"] == "ok"
        assert data["strategy"]["stake"] == 2.5
        assert manager.engines["s1"].strategy_config.ticks_per_trade == 3

    def test_invalid_edit(self):
        _use(_make_manager())
        data = client.patch("/strategies/s1", json={"stake": -1}).json()
        assert data["status"] == "error"
        assert "stake" in data["errors"][0]

    def test_unknown_field(self):
        _use(_make_manager())
        data = client.patch("/strategies/s1", json={"leverage": 30}).json()
        assert data["status"] == "error"


# ── Control ──────────────────────────────────────────────────────────────


class TestControlEndpoints:
    def test_start(self):
        manager = _mock_manager()
        _use(manager)
        resp = client.post("/strategies/s1/start")
        assert resp.json() == {"status": "started", "state": "analysing"}
        manager.start_strategy.assert_awaited_once_with("s1")

    def test_start_refused(self):
        manager = _mock_manager()
        manager.start_strategy.return_value = False
        manager.get_status.return_value = {"state": "idle"}
        _use(manager)
        assert client.post("/strategies/s1/start").json()["status"] == "not_started"

    def test_start_unknown(self):
        manager = _mock_manager()
        manager.start_strategy.side_effect = KeyError("zz")
        _use(manager)
        assert client.post("/strategies/zz/start").json() == {"error": "Unknown strategy: zz"}

    def test_stop(self):
        manager = _mock_manager()
        _use(manager)
        assert client.post("/strategies/s1/stop").json()["status"] == "stopped"
        manager.stop_strategy.assert_awaited_once_with("s1")

    def test_pause_and_resume(self):
        manager = _mock_manager()
        manager.pause_strategy.return_value = True
        manager.resume_strategy.return_value = False
        _use(manager)
        assert client.post("/strategies/s1/pause").json()["status"] == "paused"
        assert client.post("/strategies/s1/resume").json()["status"] == "not_paused"

    def test_pause_idle_strategy(self):
        _use(_make_manager())
        assert client.post("/strategies/s1/pause").json()["status"] == "not_running"

    def test_stop_all(self):
        manager = _mock_manager()
        _use(manager)
        assert client.post("/control/stop-all").json() == {"status": "stopped"}
        manager.stop_all.assert_awaited_once()

    def test_control_without_manager(self):
        assert client.post("/strategies/s1/start").json() == {"error": "No strategy manager"}
