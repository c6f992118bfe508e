# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Sensor acquisition for Fire Watch.

Reads the three transducers once per control cycle and turns the raw values
into a SensorReading:

- DHT11/DHT22 temperature and humidity (adafruit_dht)
- MQ-2 gas sensor through an ADS1115 ADC (adafruit_ads1x15), scaled to 12 bits
- Flame sensor digital output, active low (RPi.GPIO)

A DHT read that fails or yields NaN turns the whole sample into a ReadFailure.
The caller must skip decision and telemetry for that cycle.

Usage:
    from firewatch.sensors import SensorAcquisition, get_sensor_array

    acquisition = SensorAcquisition(get_sensor_array(config))
    sample = await acquisition.sample()
"""

import asyncio
import logging
import math
from typing import Optional, Tuple, Union

from firewatch.exceptions import HardwareError
from firewatch.models import ReadFailure, SensorReading

logger = logging.getLogger(__name__)


class PiSensorArray:
    """Sensor hardware attached to a Raspberry Pi.

    All hardware libraries are imported here rather than at module level so
    the rest of the package (and the mock mode) works on machines without
    GPIO support.

    Attributes:
        dht_pin: BCM pin of the DHT data line
        flame_pin: BCM pin of the flame sensor digital output
        gas_channel: ADS1115 channel the MQ-2 analog output is wired to
    """

    def __init__(
        self,
        dht_type: str = "DHT11",
        dht_pin: int = 4,
        flame_pin: int = 17,
        gas_channel: int = 0,
    ):
        """Initialize sensor hardware.

        Args:
            dht_type: "DHT11" or "DHT22"
            dht_pin: BCM pin of the DHT sensor
            flame_pin: BCM pin of the flame sensor
            gas_channel: ADS1115 input channel (0-3)

        Raises:
            HardwareError: If hardware libraries are missing or init fails
        """
        self.dht_pin = dht_pin
        self.flame_pin = flame_pin
        self.gas_channel = gas_channel

        try:
            import adafruit_dht
            import board
            import busio
            import RPi.GPIO as GPIO
            from adafruit_ads1x15 import ads1115
            from adafruit_ads1x15.analog_in import AnalogIn
        except ImportError as e:
            raise HardwareError(f"Sensor libraries not available: {e}") from e

        self._gpio = GPIO
        try:
            GPIO.setmode(GPIO.BCM)
            GPIO.setup(flame_pin, GPIO.IN, pull_up_down=GPIO.PUD_UP)

            dht_cls = adafruit_dht.DHT22 if dht_type.upper() == "DHT22" else adafruit_dht.DHT11
            board_pin = getattr(board, f"D{dht_pin}")
            try:
                self._dht = dht_cls(board_pin)
            except Exception:
                self._dht = dht_cls(board_pin, use_pulseio=False)

            i2c = busio.I2C(board.SCL, board.SDA)
            self._adc = ads1115.ADS1115(i2c)
            self._gas = AnalogIn(self._adc, gas_channel)
        except Exception as e:
            raise HardwareError(f"Sensor init failed: {e}") from e

        logger.info(
            f"PiSensorArray initialized ({dht_type} on D{dht_pin}, "
            f"flame on GPIO{flame_pin}, gas on ADS1115 A{gas_channel})"
        )

    def read_climate(self) -> Tuple[Optional[float], Optional[float]]:
        """Read temperature (C) and humidity (%) from the DHT sensor.

        The DHT driver raises RuntimeError on checksum / timing errors, which
        happen routinely; those are reported as (None, None).
        """
        try:
            return self._dht.temperature, self._dht.humidity
        except RuntimeError as e:
            logger.debug(f"DHT read error: {e}")
            return None, None

    def read_gas(self) -> int:
        """Read the MQ-2 level scaled to the 12-bit 0-4095 range."""
        return self._gas.value >> 4

    def read_flame_level(self) -> int:
        """Read the raw flame sensor logic level (0 = flame present)."""
        return int(self._gpio.input(self.flame_pin))

    def close(self) -> None:
        """Release the DHT driver."""
        if hasattr(self._dht, "exit"):
            self._dht.exit()


class SensorAcquisition:
    """Turns raw sensor values into validated SensorReadings.

    The array backend is anything that provides read_climate(), read_gas()
    and read_flame_level() - the Pi hardware or MockSensorArray.
    """

    def __init__(
        self,
        sensors,
        gas_max_raw: int = 4095,
        settle_delay_seconds: float = 2.0,
    ):
        """Initialize acquisition.

        Args:
            sensors: Sensor array backend (real or mock)
            gas_max_raw: Upper clamp for the gas value
            settle_delay_seconds: Wait after a failed read
        """
        self.sensors = sensors
        self.gas_max_raw = gas_max_raw
        self.settle_delay_seconds = settle_delay_seconds

        self._consecutive_failures = 0
        self._total_failures = 0
        self._last_reading: Optional[SensorReading] = None

    @property
    def last_reading(self) -> Optional[SensorReading]:
        """Most recent valid reading."""
        return self._last_reading

    @property
    def total_failures(self) -> int:
        return self._total_failures

    async def sample(self) -> Union[SensorReading, ReadFailure]:
        """Take one sample from every sensor.

        Returns:
            SensorReading when every channel returned a valid number,
            otherwise ReadFailure (after the settling delay has elapsed)
        """
        try:
            temperature, humidity, gas_raw, flame_level = await asyncio.to_thread(self._read_all)
        except Exception as e:
            return await self._fail(f"sensor read error: {e}")

        if not _is_number(temperature) or not _is_number(humidity):
            return await self._fail(
                f"invalid climate reading (temperature={temperature}, humidity={humidity})"
            )

        if not _is_number(gas_raw) or not _is_number(flame_level):
            return await self._fail(f"invalid gas or flame reading (gas={gas_raw}, flame={flame_level})")

        if self._consecutive_failures:
            logger.info(f"Sensor read recovered after {self._consecutive_failures} failed attempt(s)")
            self._consecutive_failures = 0

        reading = SensorReading(
            temperature=float(temperature),
            humidity=float(humidity),
            gas_level=self._clamp_gas(gas_raw),
            # Active low: logic 0 means flame present
            flame_detected=int(float(flame_level)) == 0,
        )
        self._last_reading = reading

        logger.debug(
            f"Reading: temp={reading.temperature:.1f}C hum={reading.humidity:.1f}% "
            f"gas={reading.gas_level} flame={reading.flame_detected}"
        )
        return reading

    def _read_all(self):
        temperature, humidity = self.sensors.read_climate()
        return temperature, humidity, self.sensors.read_gas(), self.sensors.read_flame_level()

    def _clamp_gas(self, raw) -> int:
        return max(0, min(self.gas_max_raw, int(float(raw))))

    async def _fail(self, reason: str) -> ReadFailure:
        self._consecutive_failures += 1
        self._total_failures += 1

        if self._consecutive_failures == 1:
            logger.warning(f"Sensor read failed: {reason}")
        else:
            logger.debug(f"Sensor read failed (#{self._consecutive_failures}): {reason}")

        await asyncio.sleep(self.settle_delay_seconds)
        return ReadFailure(reason=reason)


def _is_number(value) -> bool:
    if value is None:
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def get_sensor_array(config):
    """Factory function to get appropriate sensor array based on config."""
    if config.mock_mode:
        from firewatch.mocks import MockSensorArray
        logger.info("Using MockSensorArray (mock_mode=True)")
        return MockSensorArray()

    logger.info("Using PiSensorArray (real hardware)")
    return PiSensorArray(
        dht_type=config.sensors.dht_type,
        dht_pin=config.sensors.dht_pin,
        flame_pin=config.sensors.flame_pin,
        gas_channel=config.sensors.gas_adc_channel,
    )
