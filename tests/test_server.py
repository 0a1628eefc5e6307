"""Tests for report.server -- dashboard API endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from client.dexscreener import FeedUnavailable
from config import Config
from executor.runtime import BotRuntime
from monitor.history import OutcomeHistory
from report.server import create_app


@pytest.fixture
def runtime() -> BotRuntime:
    cfg = Config(_env_file=None, private_key="0x" + "ab" * 32, scan_interval_sec=0.01)
    scanner = MagicMock()
    scanner.scan.return_value = []
    return BotRuntime(cfg, scanner=scanner, history=OutcomeHistory(ledger_path=None))


@pytest.fixture
def client(runtime: BotRuntime) -> TestClient:
    return TestClient(create_app(runtime))


class TestOpportunities:
    def test_lists_scan_results(self, runtime, client):
        opp = MagicMock()
        opp.to_dict.return_value = {"tokenIn": "0xweth", "priceDeltaPercent": 4.2}
        runtime.scanner.scan.return_value = [opp]

        resp = client.get("/opportunities")

        assert resp.status_code == 200
        assert resp.json() == [{"tokenIn": "0xweth", "priceDeltaPercent": 4.2}]

    def test_feed_failure_is_502(self, runtime, client):
        runtime.scanner.scan.side_effect = FeedUnavailable("all down")
        resp = client.get("/opportunities")
        assert resp.status_code == 502
        assert "all down" in resp.json()["error"]


class TestBotLifecycle:
    def test_start_before_deploy_is_400(self, client):
        resp = client.post("/bot/start")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Engine not deployed"

    def test_deploy_start_stop(self, runtime, client):
        resp = client.post("/deploy")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["engineAddress"] == runtime.engine_address

        resp = client.post("/bot/start")
        assert resp.json() == {"success": True, "message": "Arbitrage bot started"}
        resp = client.post("/bot/start")
        assert resp.json()["message"] == "Arbitrage bot already running"

        resp = client.post("/bot/stop")
        assert resp.json()["success"] is True
        runtime.controller.join(timeout=2.0)
        assert client.get("/status").json()["running"] is False

    def test_stop_when_never_started(self, client):
        assert client.post("/bot/stop").status_code == 200

    def test_deploy_failure_is_500(self, runtime, client):
        runtime.network.deploy_engine = MagicMock(side_effect=RuntimeError("no funds"))
        resp = client.post("/deploy")
        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "no funds"}


class TestStatus:
    def test_shape(self, runtime, client):
        body = client.get("/status").json()
        assert body["walletAddress"] == runtime.wallet_address
        assert body["deployed"] is False
        assert body["running"] is False
        assert body["state"] == "idle"
        assert set(body) >= {"balance", "engineAddress", "network", "outcomes"}
