"""Tests for telemetry sync."""

import asyncio
from unittest.mock import patch

import pytest

from firewatch.models import PublishResult
from firewatch.telemetry import TelemetrySync


@pytest.mark.asyncio
async def test_skipped_when_not_cloud_ready(telemetry, cloud, safe_reading):
    result = await telemetry.publish(safe_reading)

    assert result == PublishResult.SKIPPED
    assert cloud.write_count == 0
    assert telemetry.stats.skipped == 1


@pytest.mark.asyncio
async def test_publish_writes_fields_and_history(telemetry, connectivity, cloud, safe_reading):
    await connectivity.ensure_connectivity()
    result = await telemetry.publish(safe_reading)

    assert result == PublishResult.OK
    assert cloud.data["FireWatch/node-01/temperature"] == 25.0
    assert cloud.data["FireWatch/node-01/humidity"] == 40.0
    assert cloud.data["FireWatch/node-01/flame"] is False
    assert cloud.data["FireWatch/node-01/gas"] == 200

    history = cloud.history[telemetry.history_path]
    assert len(history) == 1
    assert history[0][1]["gas"] == 200
    assert telemetry.stats.ok == 1
    assert telemetry.stats.last_publish_time is not None


@pytest.mark.asyncio
async def test_write_failure_is_failed_and_discarded(telemetry, connectivity, cloud, safe_reading):
    await connectivity.ensure_connectivity()
    cloud.simulate_error(True)

    result = await telemetry.publish(safe_reading)
    assert result == PublishResult.FAILED
    assert telemetry.stats.failed == 1
    assert telemetry.stats.last_result == PublishResult.FAILED

    # Not retried or buffered once the store recovers
    cloud.simulate_error(False)
    assert await telemetry.publish(safe_reading) == PublishResult.OK
    assert len(cloud.history[telemetry.history_path]) == 1


@pytest.mark.asyncio
async def test_no_client_is_skipped(connectivity, safe_reading):
    telemetry = TelemetrySync(connectivity, None)
    await connectivity.ensure_connectivity()
    assert await telemetry.publish(safe_reading) == PublishResult.SKIPPED


@pytest.mark.asyncio
async def test_background_publish_drops_while_busy(telemetry, connectivity, cloud, safe_reading):
    await connectivity.ensure_connectivity()
    gate = asyncio.Event()

    async def slow_write(*args):
        await gate.wait()

    with patch.object(cloud, "write", side_effect=slow_write):
        first = telemetry.publish_in_background(safe_reading)
        await asyncio.sleep(0)
        second = telemetry.publish_in_background(safe_reading)

        assert first is not None
        assert second is None
        assert telemetry.stats.skipped == 1

        gate.set()
        assert await first == PublishResult.OK

    assert telemetry.stats.ok == 1


@pytest.mark.asyncio
async def test_drain_waits_for_inflight(telemetry, connectivity, safe_reading):
    await connectivity.ensure_connectivity()
    telemetry.publish_in_background(safe_reading)
    await telemetry.drain()
    assert telemetry.stats.ok == 1


def test_base_path_is_normalized(connectivity, cloud):
    telemetry = TelemetrySync(connectivity, cloud, base_path="/Sites/Plant/", device_id="n7")
    assert telemetry.root == "Sites/Plant/n7"
    assert telemetry.history_path == "Sites/Plant/n7/history"
