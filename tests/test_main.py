"""Tests for application wiring and lifecycle."""

import asyncio
import logging
from unittest.mock import patch

import pytest

from firewatch.main import FireWatchApp, setup_logging
from firewatch.mocks import MockCloudStore, MockClassifier, MockOutputBoard
from firewatch.models import AlertLevel, LedColor


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.mark.asyncio
async def test_initialize_components_in_mock_mode(config):
    app = FireWatchApp(config=config)
    app.initialize_components()

    assert isinstance(app.cloud_client, MockCloudStore)
    assert isinstance(app.classifier, MockClassifier)
    assert app.bridge is not None
    assert app.web_app is None
    assert app.monitor.remote_max_age_seconds == config.classifier.effective_max_age_seconds

    state = await app.monitor.run_cycle()
    assert state.level == AlertLevel.SAFE

    await app.shutdown()
    outputs = app.actuation.outputs
    assert isinstance(outputs, MockOutputBoard)
    assert outputs.closed
    assert outputs.led == LedColor.OFF


@pytest.mark.asyncio
async def test_bridge_disabled(config):
    config.classifier.enabled = False
    app = FireWatchApp(config=config)
    app.initialize_components()

    assert app.bridge is None
    assert app.classifier is None
    await app.shutdown()


@pytest.mark.asyncio
async def test_web_app_created_when_enabled(config):
    config.web.enabled = True
    app = FireWatchApp(config=config)
    app.initialize_components()

    response = app.web_app.test_client().get("/api/health")
    assert response.status_code == 200
    await app.shutdown()


@pytest.mark.asyncio
async def test_start_runs_until_stopped(config):
    app = FireWatchApp(config=config)

    with patch("firewatch.main.setup_logging"), \
            patch.object(FireWatchApp, "_install_signal_handlers"):
        task = asyncio.create_task(app.start())
        await asyncio.sleep(0.1)
        app.stop()
        await asyncio.wait_for(task, timeout=2.0)

    assert app.monitor.cycles >= 1
    assert app.actuation.outputs.closed


@pytest.mark.asyncio
async def test_mock_flag_overrides_config(config):
    config.mock_mode = False
    app = FireWatchApp(config=config, mock=True)

    with patch("firewatch.main.setup_logging"), \
            patch.object(FireWatchApp, "_install_signal_handlers"), \
            patch.object(FireWatchApp, "_run_monitoring"):
        await app.start()

    assert app.config.mock_mode is True


def test_setup_logging_writes_file(config, tmp_path, restore_logging):
    config.logging.file = str(tmp_path / "logs" / "firewatch.log")
    setup_logging(config, debug=True)

    assert restore_logging.level == logging.DEBUG
    logging.getLogger("firewatch.test").info("hello")
    for handler in restore_logging.handlers:
        handler.flush()

    assert "hello" in (tmp_path / "logs" / "firewatch.log").read_text()
    assert logging.getLogger("werkzeug").level == logging.WARNING
