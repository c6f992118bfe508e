"""Tests for the status web API."""

import pytest

from firewatch.web.app import create_app


@pytest.fixture
def client_for(config):
    def factory(monitor=None, display=None):
        app = create_app(config, monitor=monitor, display=display)
        app.testing = True
        return app.test_client()
    return factory


def test_health(client_for):
    response = client_for().get("/api/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_status_without_monitor(client_for):
    response = client_for().get("/api/status")
    assert response.status_code == 503


def test_display_without_display(client_for):
    assert client_for().get("/api/display").status_code == 503


@pytest.mark.asyncio
async def test_status_after_cycle(client_for, node):
    await node.monitor.run_cycle()
    await node.telemetry.drain()

    response = client_for(monitor=node.monitor).get("/api/status")
    data = response.get_json()

    assert response.status_code == 200
    assert data["device_id"] == "node-01"
    assert data["state"] == "safe"
    assert data["reading"]["gas"] == 200
    assert data["connectivity"]["phase"] == "cloud_ready"
    assert data["connectivity"]["cloud_ready"] is True
    assert data["telemetry"]["ok"] == 1
    assert data["telemetry"]["last_result"] == "ok"
    assert data["display"][0] == "STATUS: SAFE"
    assert data["cycles"] == 1


@pytest.mark.asyncio
async def test_status_before_first_cycle(client_for, node):
    data = client_for(monitor=node.monitor).get("/api/status").get_json()
    assert data["state"] is None
    assert data["reading"] is None
    assert data["display"] == []


@pytest.mark.asyncio
async def test_display_lines(client_for, node):
    node.sensors.simulate_flame(True)
    await node.monitor.run_cycle()

    data = client_for(display=node.actuation.display).get("/api/display").get_json()
    assert data["lines"][0] == "!! DANGER !!"
    assert data["lines"][1] == "Flame"
    assert data["rendered_at"] is not None
