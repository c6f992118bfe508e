"""Tests for sensor acquisition."""

import sys
from unittest.mock import AsyncMock, patch

import pytest

from firewatch.exceptions import HardwareError
from firewatch.mocks import MockSensorArray
from firewatch.models import ReadFailure, SensorReading
from firewatch.sensors import PiSensorArray, SensorAcquisition, get_sensor_array


@pytest.mark.asyncio
async def test_valid_sample(sensors):
    acquisition = SensorAcquisition(sensors, settle_delay_seconds=0.0)
    sample = await acquisition.sample()

    assert isinstance(sample, SensorReading)
    assert sample.temperature == 25.0
    assert sample.humidity == 40.0
    assert sample.gas_level == 200
    assert sample.flame_detected is False
    assert acquisition.last_reading is sample


@pytest.mark.asyncio
async def test_flame_is_active_low(sensors):
    sensors.simulate_flame(True)
    sample = await SensorAcquisition(sensors, settle_delay_seconds=0.0).sample()
    assert sample.flame_detected is True


@pytest.mark.asyncio
async def test_gas_is_clamped(sensors):
    acquisition = SensorAcquisition(sensors, gas_max_raw=4095, settle_delay_seconds=0.0)

    sensors.simulate_gas(5000)
    assert (await acquisition.sample()).gas_level == 4095

    sensors.simulate_gas(-20)
    assert (await acquisition.sample()).gas_level == 0

    # Saturation is a valid reading, not a failure
    sensors.simulate_gas(4095)
    assert (await acquisition.sample()).gas_level == 4095


@pytest.mark.asyncio
async def test_nan_climate_is_read_failure(sensors):
    sensors.simulate_read_failure(count=1)
    acquisition = SensorAcquisition(sensors, settle_delay_seconds=0.0)

    sample = await acquisition.sample()
    assert isinstance(sample, ReadFailure)
    assert "invalid climate reading" in sample.reason
    assert acquisition.last_reading is None

    # Next read recovers
    assert isinstance(await acquisition.sample(), SensorReading)
    assert acquisition.total_failures == 1


@pytest.mark.asyncio
async def test_missing_climate_is_read_failure(sensors):
    sensors.simulate_read_failure(persistent=True)
    acquisition = SensorAcquisition(sensors, settle_delay_seconds=0.0)

    for _ in range(3):
        assert isinstance(await acquisition.sample(), ReadFailure)
    assert acquisition.total_failures == 3


@pytest.mark.asyncio
async def test_read_exception_is_read_failure(sensors):
    acquisition = SensorAcquisition(sensors, settle_delay_seconds=0.0)
    with patch.object(sensors, "read_gas", side_effect=OSError("i2c bus error")):
        sample = await acquisition.sample()
    assert isinstance(sample, ReadFailure)
    assert "i2c bus error" in sample.reason


@pytest.mark.asyncio
@pytest.mark.parametrize("gas", [float("nan"), None, "garbage", float("inf")])
async def test_bad_gas_value_is_read_failure(sensors, gas):
    acquisition = SensorAcquisition(sensors, settle_delay_seconds=0.0)
    with patch.object(sensors, "read_gas", return_value=gas):
        sample = await acquisition.sample()

    assert isinstance(sample, ReadFailure)
    assert "invalid gas or flame reading" in sample.reason
    assert acquisition.last_reading is None


@pytest.mark.asyncio
async def test_bad_flame_level_is_read_failure(sensors):
    acquisition = SensorAcquisition(sensors, settle_delay_seconds=0.0)
    with patch.object(sensors, "read_flame_level", return_value=None):
        assert isinstance(await acquisition.sample(), ReadFailure)


@pytest.mark.asyncio
async def test_failure_waits_settle_delay(sensors):
    sensors.simulate_read_failure(count=1)
    acquisition = SensorAcquisition(sensors, settle_delay_seconds=2.0)

    with patch("firewatch.sensors.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        await acquisition.sample()
        mock_sleep.assert_awaited_once_with(2.0)

        mock_sleep.reset_mock()
        await acquisition.sample()
        mock_sleep.assert_not_awaited()


def test_factory_returns_mock_in_mock_mode(config):
    assert isinstance(get_sensor_array(config), MockSensorArray)


def test_pi_sensor_array_requires_libraries():
    with patch.dict(sys.modules, {"adafruit_dht": None}):
        with pytest.raises(HardwareError):
            PiSensorArray()
