# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Physical outputs for Fire Watch.

- Indicator LED (red / green channels) and buzzer on GPIO pins
- Exhaust fan either on a GPIO relay module or on a TP-Link Kasa smart plug

Only the ActuationController drives these.

Usage:
    from firewatch.outputs import get_output_board

    board = get_output_board(config)
    board.set_led(LedColor.RED)
    board.set_buzzer(True)
    await board.set_fan(True)
    await board.close()
"""

import logging
import time
from typing import Optional

from kasa import Discover, KasaException

from firewatch.exceptions import HardwareError
from firewatch.models import LedColor

logger = logging.getLogger(__name__)


class GpioFanRelay:
    """Fan relay module on a GPIO pin."""

    def __init__(self, gpio, pin: int, active_low: bool = True):
        """Initialize fan relay.

        Args:
            gpio: The RPi.GPIO module (already in BCM mode)
            pin: BCM pin driving the relay input
            active_low: Relay energizes when the pin is driven low
        """
        self._gpio = gpio
        self.pin = pin
        self.active_low = active_low
        gpio.setup(pin, gpio.OUT)
        self._write(False)

    def _write(self, on: bool) -> None:
        level = (not on) if self.active_low else on
        self._gpio.output(self.pin, self._gpio.HIGH if level else self._gpio.LOW)

    async def set(self, on: bool) -> None:
        self._write(on)

    async def close(self) -> None:
        self._write(False)


class KasaFanPlug:
    """Exhaust fan plugged into a Kasa smart plug.

    Re-asserting every control cycle would mean a network round trip per
    second, so an unchanged state is only re-sent every REASSERT_SECONDS.

    Attributes:
        host: IP address of the Kasa smart plug
    """

    REASSERT_SECONDS = 10.0

    def __init__(self, host: str):
        self.host = host
        self._plug = None
        self._last_state: Optional[bool] = None
        self._last_sent: float = 0
        self._last_error: Optional[str] = None

        logger.info(f"KasaFanPlug initialized (IP: {host})")

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    async def _ensure_initialized(self) -> bool:
        """Ensure plug is discovered and updated.

        Returns:
            True if plug is ready, False on error
        """
        try:
            if self._plug is None:
                self._plug = await Discover.discover_single(self.host)
            await self._plug.update()
            return True
        except KasaException as e:
            self._last_error = f"Device error: {e}"
            logger.warning(f"Kasa device error: {e}")
            return False
        except Exception as e:
            self._last_error = f"Connection error: {e}"
            logger.warning(f"Kasa connection error: {e}")
            return False

    async def set(self, on: bool) -> None:
        now = time.monotonic()
        if on == self._last_state and now - self._last_sent < self.REASSERT_SECONDS:
            return

        if not await self._ensure_initialized():
            # Drop the handle so the next attempt rediscovers the plug
            self._plug = None
            self._last_state = None
            return

        try:
            if on:
                await self._plug.turn_on()
            else:
                await self._plug.turn_off()
        except KasaException as e:
            self._last_error = str(e)
            self._last_state = None
            logger.error(f"Error switching fan plug: {e}")
            return

        if on != self._last_state:
            logger.info(f"Fan plug switched {'on' if on else 'off'}")
        self._last_state = on
        self._last_sent = now
        self._last_error = None

    async def close(self) -> None:
        await self.set(False)
        if self._plug is not None:
            await self._plug.disconnect()
        self._plug = None


class GpioOutputBoard:
    """LED, buzzer and fan outputs of a Raspberry Pi node."""

    def __init__(
        self,
        led_red_pin: int = 22,
        led_green_pin: int = 27,
        buzzer_pin: int = 23,
        buzzer_active_high: bool = True,
        fan_backend: str = "gpio",
        fan_relay_pin: int = 24,
        fan_relay_active_low: bool = True,
        kasa_host: str = "",
    ):
        """Initialize GPIO outputs.

        Raises:
            HardwareError: If RPi.GPIO is not available
        """
        try:
            import RPi.GPIO as GPIO
        except ImportError as e:
            raise HardwareError(f"RPi.GPIO not available: {e}") from e

        self._gpio = GPIO
        self.led_red_pin = led_red_pin
        self.led_green_pin = led_green_pin
        self.buzzer_pin = buzzer_pin
        self.buzzer_active_high = buzzer_active_high

        GPIO.setmode(GPIO.BCM)
        for pin in (led_red_pin, led_green_pin, buzzer_pin):
            GPIO.setup(pin, GPIO.OUT)

        if fan_backend == "kasa":
            self.fan = KasaFanPlug(kasa_host)
        else:
            self.fan = GpioFanRelay(GPIO, fan_relay_pin, active_low=fan_relay_active_low)

        self.set_led(LedColor.OFF)
        self.set_buzzer(False)
        logger.info(f"GpioOutputBoard initialized (fan backend: {fan_backend})")

    def set_led(self, color: LedColor) -> None:
        GPIO = self._gpio
        GPIO.output(self.led_red_pin, GPIO.HIGH if color == LedColor.RED else GPIO.LOW)
        GPIO.output(self.led_green_pin, GPIO.HIGH if color == LedColor.GREEN else GPIO.LOW)

    def set_buzzer(self, on: bool) -> None:
        level = on if self.buzzer_active_high else not on
        self._gpio.output(self.buzzer_pin, self._gpio.HIGH if level else self._gpio.LOW)

    async def set_fan(self, on: bool) -> None:
        await self.fan.set(on)

    async def close(self) -> None:
        """Drive every output to off and release the pins."""
        self.set_buzzer(False)
        self.set_led(LedColor.OFF)
        try:
            await self.fan.close()
        finally:
            self._gpio.cleanup()
        logger.info("GPIO outputs released")


def get_output_board(config):
    """Factory function to get appropriate output board based on config."""
    if config.mock_mode:
        from firewatch.mocks import MockOutputBoard
        logger.info("Using MockOutputBoard (mock_mode=True)")
        return MockOutputBoard()

    outputs = config.outputs
    return GpioOutputBoard(
        led_red_pin=outputs.led_red_pin,
        led_green_pin=outputs.led_green_pin,
        buzzer_pin=outputs.buzzer_pin,
        buzzer_active_high=outputs.buzzer_active_high,
        fan_backend=outputs.fan.backend,
        fan_relay_pin=outputs.fan.relay_pin,
        fan_relay_active_low=outputs.fan.relay_active_low,
        kasa_host=outputs.fan.kasa_host,
    )
