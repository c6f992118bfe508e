"""Pytest configuration and fixtures for Fire Watch tests."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from firewatch.actuation import ActuationController
from firewatch.alert_engine import LocalAlertEngine
from firewatch.classifier import RemoteClassificationBridge
from firewatch.config import get_default_config
from firewatch.connectivity import ConnectivityManager
from firewatch.display import WebDisplay
from firewatch.handoff import LatestValue
from firewatch.mocks import (
    MockClassifier, MockCloudStore, MockNetworkLink,
    MockNotifier, MockOutputBoard, MockSensorArray
)
from firewatch.models import SensorReading
from firewatch.monitor import FireWatchMonitor
from firewatch.sensors import SensorAcquisition
from firewatch.telemetry import TelemetrySync


@pytest.fixture
def config():
    """Default config in mock mode with all delays shortened."""
    config = get_default_config()
    config.mock_mode = True
    config.sensors.settle_delay_seconds = 0.0
    config.connectivity.poll_attempts = 3
    config.connectivity.poll_interval_seconds = 0.0
    config.buzzer.alert_window_seconds = 0.05
    config.buzzer.on_seconds = 0.01
    config.buzzer.off_seconds = 0.01
    config.classifier.interval_seconds = 0.01
    config.monitor.cycle_interval_seconds = 0.01
    config.web.enabled = False
    config.logging.file = ""
    return config


@pytest.fixture
def sensors() -> MockSensorArray:
    """Deterministic safe readings: 25C, 40%, gas 200, no flame."""
    return MockSensorArray(temperature=25.0, humidity=40.0, gas_level=200, noise=False)


@pytest.fixture
def link() -> MockNetworkLink:
    return MockNetworkLink()


@pytest.fixture
def cloud() -> MockCloudStore:
    return MockCloudStore()


@pytest.fixture
def classifier() -> MockClassifier:
    return MockClassifier()


@pytest.fixture
def outputs() -> MockOutputBoard:
    return MockOutputBoard()


@pytest.fixture
def notifier() -> MockNotifier:
    return MockNotifier()


@pytest.fixture
def connectivity(link, cloud) -> ConnectivityManager:
    return ConnectivityManager(link, cloud_client=cloud, poll_attempts=3, poll_interval_seconds=0.0)


@pytest.fixture
def telemetry(connectivity, cloud) -> TelemetrySync:
    return TelemetrySync(connectivity, cloud, base_path="FireWatch", device_id="node-01")


@pytest.fixture
def actuation(outputs, notifier) -> ActuationController:
    return ActuationController(
        outputs,
        notifier,
        WebDisplay(),
        device_name="Test Node",
        alert_window_seconds=0.05,
        buzzer_on_seconds=0.01,
        buzzer_off_seconds=0.01,
        describe=LocalAlertEngine().describe,
    )


@pytest.fixture
def node(sensors, link, cloud, classifier, outputs, notifier, connectivity, telemetry, actuation):
    """A fully wired node built from mocks."""
    local_slot: LatestValue = LatestValue()
    remote_slot: LatestValue = LatestValue()
    engine = LocalAlertEngine(1500)
    acquisition = SensorAcquisition(sensors, settle_delay_seconds=0.0)

    bridge = RemoteClassificationBridge(
        connectivity, cloud, telemetry.history_path, classifier,
        local_slot, remote_slot, interval_seconds=0.01, window_size=5,
    )
    monitor = FireWatchMonitor(
        connectivity, acquisition, engine, telemetry, actuation,
        local_slot, remote_slot,
        cycle_interval_seconds=0.01,
        remote_max_age_seconds=60.0,
    )
    return SimpleNamespace(
        sensors=sensors, link=link, cloud=cloud, classifier=classifier,
        outputs=outputs, notifier=notifier, connectivity=connectivity,
        telemetry=telemetry, actuation=actuation, engine=engine,
        acquisition=acquisition, bridge=bridge, monitor=monitor,
        local_slot=local_slot, remote_slot=remote_slot,
    )


@pytest.fixture
def safe_reading() -> SensorReading:
    return SensorReading(temperature=25.0, humidity=40.0, gas_level=200, flame_detected=False)


@pytest.fixture
def flame_reading() -> SensorReading:
    return SensorReading(temperature=31.0, humidity=35.0, gas_level=200, flame_detected=True)


@pytest.fixture
def http_session():
    """Build a fake aiohttp session whose requests answer with (status, payload)."""
    def factory(status: int = 200, payload=None):
        resp = MagicMock()
        resp.status = status
        resp.json = AsyncMock(return_value=payload)
        resp.text = AsyncMock(return_value=str(payload))

        ctx = MagicMock()
        ctx.__aenter__ = AsyncMock(return_value=resp)
        ctx.__aexit__ = AsyncMock(return_value=False)

        session = MagicMock()
        session.closed = False
        session.post = MagicMock(return_value=ctx)
        session.get = MagicMock(return_value=ctx)
        session.request = MagicMock(return_value=ctx)
        session.close = AsyncMock()
        return session

    return factory
