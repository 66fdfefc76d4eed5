"""Tests for the FastAPI backend — analytics and paper trading endpoints."""

import json
from datetime import date

import pytest
from fastapi.testclient import TestClient

from bids_matrix.config.config_manager import ConfigManager
from bids_matrix.database.recommendation_store import recommendation_to_dict
from bids_matrix.server.app import app
from bids_matrix.server.state import BidsState

MON = date(2025, 3, 10)
TUE = date(2025, 3, 11)


@pytest.fixture
def loaded_state(tmp_path, rec_factory):
    BidsState.reset()
    ConfigManager.reset()
    data = tmp_path / "recs.json"
    data.write_text(json.dumps([
        recommendation_to_dict(rec_factory("AAA", day=MON, peak_high=10.6, trough_before_peak=9.9)),
        recommendation_to_dict(rec_factory("BBB", day=MON, peak_high=10.2, trough_before_peak=9.7)),
        recommendation_to_dict(rec_factory("AAA", day=TUE, peak_high=10.3, trough_before_peak=9.95)),
        recommendation_to_dict(rec_factory("CCC", day=TUE, price=20.0, ref_price=20.0,
                                           peak_high=20.1, trough_before_peak=19.9)),
    ]))
    state = BidsState()
    state.configure(profile="paper", data_file=data)
    yield state
    BidsState.reset()
    ConfigManager.reset()


@pytest.fixture
def client(loaded_state):
    return TestClient(app)


class TestAnalyticsRoutes:
    def test_root(self, client):
        assert client.get("/").json()["service"] == "bids_matrix"

    def test_optimization(self, client):
        body = client.get("/api/stats/optimization").json()
        assert body["trade_count"] == 4
        assert len(body["tp_range"]) == 24
        assert body["best"] == body["runs"][0]
        assert set(body["breakdowns"]) == {"sector", "rsi", "volume", "relative_volume"}

    def test_optimization_filters(self, client):
        body = client.get("/api/stats/optimization", params={"start_date": "2025-03-11"}).json()
        assert body["trade_count"] == 2

    def test_inverted_date_range(self, client):
        resp = client.get("/api/stats/optimization",
                          params={"start_date": "2025-03-12", "end_date": "2025-03-10"})
        assert resp.status_code == 422

    def test_analysis(self, client):
        body = client.get("/api/stats/analysis", params={"tp": 3, "sl": 2}).json()
        assert body["trade_count"] == 4
        assert [p["date"] for p in body["equity_curve"]] == ["2025-03-10", "2025-03-11"]

    def test_analysis_requires_pair(self, client):
        assert client.get("/api/stats/analysis").status_code == 422


class TestTradingRoutes:
    def test_config(self, client):
        body = client.get("/api/trading/config").json()
        assert body["execution"]["enabled"] is True
        assert body["execution"]["buffer_tiers"][2] == {"from_attempt": 8, "buffer_pct": 0.5}
        assert body["windows"][0] == "mvso_1020"

    def test_dry_run_defaults_to_latest_day(self, client, loaded_state):
        body = client.post("/api/trading/run", json={}).json()
        assert body["day"] == "2025-03-11"
        assert body["dry_run"] is True
        assert body["by_status"] == {"DRY_RUN": 2}

    def test_paper_run(self, client):
        body = client.post("/api/trading/run", json={
            "day": "2025-03-10",
            "dry_run": False,
            "live_prices": {"AAA": 9.95, "BBB": 10.0},
        }).json()
        assert body["by_status"] == {"FILLING": 2}
        assert body["intents"][0]["symbol"] == "AAA"

        logs = client.get("/api/trading/logs").json()
        assert len(logs) == 2
        summary = client.get("/api/trading/summary").json()
        assert summary["filling_rate"] == 100.0
        assert summary["last_session"]["by_status"] == {"FILLING": 2}

    def test_unknown_day(self, client):
        resp = client.post("/api/trading/run", json={"day": "2024-01-02"})
        assert resp.status_code == 404

    def test_empty_store(self, client, loaded_state):
        loaded_state.store = type(loaded_state.store)()
        resp = client.post("/api/trading/run", json={})
        assert resp.status_code == 409
