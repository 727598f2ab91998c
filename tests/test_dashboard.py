"""Tests for the Flask monitoring endpoints."""

import json

import pytest

from syslog_shipper.dashboard import create_dashboard_app
from syslog_shipper.metrics import PipelineMetrics


@pytest.fixture
def metrics():
    m = PipelineMetrics()
    m.increment("datagrams_received", 3)
    m.increment("batches_flushed")
    m.register_gauge("jobs_queued", lambda: 2)
    return m


def _client(metrics, threads=None):
    app = create_dashboard_app(metrics, (lambda: threads) if threads is not None else None)
    app.config["TESTING"] = True
    return app.test_client()


class TestStatsEndpoint:
    def test_stats_returns_metrics(self, metrics):
        resp = _client(metrics).get("/stats")
        assert resp.status_code == 200
        data = json.loads(resp.data)
        assert data["datagrams_received"] == 3
        assert data["batches_flushed"] == 1
        assert data["jobs_queued"] == 2


class TestHealthEndpoint:
    def test_health_ok(self, metrics):
        resp = _client(metrics, {"listener": True, "batcher": True, "deliverer": True}).get("/health")
        assert resp.status_code == 200
        assert json.loads(resp.data)["status"] == "ok"

    def test_health_degraded_when_thread_dead(self, metrics):
        resp = _client(metrics, {"listener": True, "batcher": False}).get("/health")
        assert resp.status_code == 503
        data = json.loads(resp.data)
        assert data["status"] == "degraded"
        assert data["threads"]["batcher"] is False

    def test_health_without_thread_info(self, metrics):
        resp = _client(metrics).get("/health")
        assert resp.status_code == 200
