# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Mock hardware and service implementations for running without a Pi.

This module provides simulated versions of every external collaborator:
the sensor array, the Wi-Fi link, the Firebase store, the classifier
service, the output board and the operator notifier. Each mock exposes
simulate_* controls for driving alarm and outage scenarios.

Enable mock mode by:
- Setting MOCK_HARDWARE=true environment variable, OR
- Setting mock_mode: true in config.yaml
- Passing --mock on the command line
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, List, Optional, Tuple

from firewatch.cloud import CloudSession
from firewatch.exceptions import CloudAuthError, CloudError, ClassifierError, NotificationError
from firewatch.models import AlertLevel, LedColor, SensorReading

logger = logging.getLogger(__name__)


class MockSensorArray:
    """Simulated DHT + MQ-2 + flame sensor array.

    Generates readings that wander slightly around base values. Noise can be
    disabled for deterministic tests.

    Attributes:
        temperature: Base temperature (C)
        humidity: Base relative humidity (%)
        gas_level: Base raw gas value
    """

    def __init__(
        self,
        temperature: float = 24.0,
        humidity: float = 45.0,
        gas_level: int = 300,
        noise: bool = True,
    ):
        self.temperature = temperature
        self.humidity = humidity
        self.gas_level = gas_level
        self.noise = noise

        # Simulation controls
        self._flame = False
        self._read_failures_remaining = 0
        self._read_failing = False
        self._read_count = 0

        logger.info("MockSensorArray initialized")

    @property
    def read_count(self) -> int:
        return self._read_count

    def read_climate(self) -> Tuple[Optional[float], Optional[float]]:
        self._read_count += 1
        if self._read_failing:
            return None, None
        if self._read_failures_remaining > 0:
            self._read_failures_remaining -= 1
            return float("nan"), float("nan")

        temperature = self.temperature
        humidity = self.humidity
        if self.noise:
            temperature += random.uniform(-0.3, 0.3)
            humidity += random.uniform(-1.0, 1.0)
        return round(temperature, 1), round(humidity, 1)

    def read_gas(self) -> int:
        if self.noise:
            return max(0, self.gas_level + random.randint(-15, 15))
        return self.gas_level

    def read_flame_level(self) -> int:
        # Active low, like the real sensor
        return 0 if self._flame else 1

    def close(self) -> None:
        pass

    # Simulation control methods

    def simulate_flame(self, present: bool = True) -> None:
        """Simulate a flame in front of the sensor."""
        self._flame = present
        logger.info(f"MockSensorArray: Simulating flame={present}")

    def simulate_gas(self, level: int) -> None:
        """Set the base gas reading."""
        self.gas_level = level
        logger.info(f"MockSensorArray: Simulating gas level={level}")

    def simulate_read_failure(self, count: int = 1, persistent: bool = False) -> None:
        """Make the DHT fail.

        Args:
            count: Number of following reads that yield NaN
            persistent: Fail every read until cleared with persistent=False
        """
        self._read_failures_remaining = count if not persistent else 0
        self._read_failing = persistent
        logger.info(f"MockSensorArray: Simulating read failure (count={count}, persistent={persistent})")


class MockNetworkLink:
    """Simulated Wi-Fi link.

    Associates as soon as connect() is called unless an outage is being
    simulated.
    """

    def __init__(self):
        self._associated = False
        self._outage = False
        self.connect_calls = 0
        self.status_checks = 0

        logger.info("MockNetworkLink initialized")

    async def connect(self) -> None:
        self.connect_calls += 1
        if not self._outage:
            self._associated = True

    async def is_associated(self) -> bool:
        self.status_checks += 1
        return self._associated and not self._outage

    def simulate_disconnect(self, disconnected: bool = True) -> None:
        """Simulate loss of the access point.

        While disconnected, connect() has no effect. Clearing the outage
        re-associates if a connection was ever requested, the way
        NetworkManager keeps retrying an activated profile.
        """
        self._outage = disconnected
        self._associated = not disconnected and self.connect_calls > 0
        logger.info(f"MockNetworkLink: Simulating disconnect={disconnected}")


class MockCloudStore:
    """In-memory stand-in for the Firebase Realtime Database.

    Attributes:
        data: Latest value written to each path
        history: Pushed records per path, in push order
        sign_in_count: Number of sign-in handshakes performed
    """

    def __init__(self, session_lifetime_seconds: float = 3600.0):
        self.session_lifetime_seconds = session_lifetime_seconds
        self.data: Dict[str, Any] = {}
        self.history: Dict[str, List[Tuple[str, Any]]] = {}
        self.sign_in_count = 0
        self.write_count = 0

        self._push_counter = 0
        self._simulate_error = False
        self._simulate_auth_failure = False

        logger.info("MockCloudStore initialized")

    async def sign_in(self) -> CloudSession:
        self.sign_in_count += 1
        if self._simulate_auth_failure:
            raise CloudAuthError("MockCloudStore: Simulated sign-in failure")
        return CloudSession(
            id_token=f"mock-token-{self.sign_in_count}",
            user_id="mock-device",
            expires_at=time.monotonic() + self.session_lifetime_seconds,
        )

    async def write(self, cloud_session: CloudSession, path: str, value: Any) -> None:
        self._check(cloud_session)
        self.data[path] = value
        self.write_count += 1

    async def push(self, cloud_session: CloudSession, path: str, value: Any) -> str:
        self._check(cloud_session)
        self._push_counter += 1
        key = f"-Mock{self._push_counter:012d}"
        self.history.setdefault(path, []).append((key, value))
        self.write_count += 1
        return key

    async def read_recent(self, cloud_session: CloudSession, path: str, limit: int) -> List[Dict[str, Any]]:
        self._check(cloud_session)
        records = self.history.get(path, [])
        return [value for _, value in records[-limit:]]

    async def close(self) -> None:
        pass

    def _check(self, cloud_session: Optional[CloudSession]) -> None:
        if self._simulate_error:
            raise CloudError("MockCloudStore: Simulated network error")
        if cloud_session is None:
            raise CloudAuthError("MockCloudStore: Not signed in")

    # Simulation control methods

    def simulate_error(self, error: bool = True) -> None:
        """Make every data call fail."""
        self._simulate_error = error
        logger.info(f"MockCloudStore: Simulating error={error}")

    def simulate_auth_failure(self, failing: bool = True) -> None:
        """Make sign-in fail."""
        self._simulate_auth_failure = failing
        logger.info(f"MockCloudStore: Simulating auth failure={failing}")


class MockClassifier:
    """Simulated classifier service.

    Without a forced verdict it applies a crude rule of its own (any flame,
    or mean gas above gas_threshold, is DANGER).
    """

    def __init__(self, gas_threshold: int = 1500):
        self.gas_threshold = gas_threshold
        self.calls = 0
        self.last_window: List[SensorReading] = []

        self._verdict: Optional[AlertLevel] = None
        self._simulate_error = False

    async def classify(self, readings: List[SensorReading]) -> AlertLevel:
        self.calls += 1
        self.last_window = list(readings)
        if self._simulate_error:
            raise ClassifierError("MockClassifier: Simulated service error")
        if self._verdict is not None:
            return self._verdict

        if any(r.flame_detected for r in readings):
            return AlertLevel.DANGER
        mean_gas = sum(r.gas_level for r in readings) / len(readings)
        return AlertLevel.DANGER if mean_gas > self.gas_threshold else AlertLevel.SAFE

    async def close(self) -> None:
        pass

    def simulate_verdict(self, level: Optional[AlertLevel]) -> None:
        """Force the verdict (None restores the built-in rule)."""
        self._verdict = level
        logger.info(f"MockClassifier: Forcing verdict={level.value if level else None}")

    def simulate_error(self, error: bool = True) -> None:
        self._simulate_error = error
        logger.info(f"MockClassifier: Simulating error={error}")


class MockOutputBoard:
    """Records every output change instead of driving GPIO.

    Attributes:
        led: Current LED color
        buzzer: Current buzzer state
        fan: Current fan state
        history: (output, value) for every call, in call order
    """

    def __init__(self):
        self.led = LedColor.OFF
        self.buzzer = False
        self.fan = False
        self.closed = False
        self.history: List[Tuple[str, Any]] = []

    def set_led(self, color: LedColor) -> None:
        self.led = color
        self.history.append(("led", color))

    def set_buzzer(self, on: bool) -> None:
        self.buzzer = on
        self.history.append(("buzzer", on))

    async def set_fan(self, on: bool) -> None:
        self.fan = on
        self.history.append(("fan", on))

    async def close(self) -> None:
        self.set_buzzer(False)
        self.set_led(LedColor.OFF)
        await self.set_fan(False)
        self.closed = True

    def count(self, output: str, value: Any) -> int:
        """How many times output was set to value."""
        return sum(1 for name, v in self.history if name == output and v == value)


class MockNotifier:
    """Records notifications instead of sending them.

    Attributes:
        sent: (channel, text) in dispatch order, successful sends only
    """

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self._sms_failing = False
        self._voice_failing = False

    @property
    def sms_messages(self) -> List[str]:
        return [text for channel, text in self.sent if channel == "sms"]

    @property
    def voice_messages(self) -> List[str]:
        return [text for channel, text in self.sent if channel == "voice"]

    async def send_sms(self, text: str) -> bool:
        if self._sms_failing:
            raise NotificationError("MockNotifier: Simulated SMS failure")
        self.sent.append(("sms", text))
        logger.info(f"MockNotifier: SMS '{text}'")
        return True

    async def speak(self, text: str) -> bool:
        if self._voice_failing:
            raise NotificationError("MockNotifier: Simulated voice failure")
        await asyncio.sleep(0)
        self.sent.append(("voice", text))
        logger.info(f"MockNotifier: Voice '{text}'")
        return True

    async def close(self) -> None:
        pass

    def simulate_sms_failure(self, failing: bool = True) -> None:
        self._sms_failing = failing

    def simulate_voice_failure(self, failing: bool = True) -> None:
        self._voice_failing = failing


class MockScenarioRunner:
    """Helper class to run test scenarios with mocks.

    Provides pre-built scenarios for exercising alarm and outage handling.
    """

    def __init__(
        self,
        sensors: MockSensorArray,
        link: MockNetworkLink,
        cloud: Optional[MockCloudStore] = None,
        classifier: Optional[MockClassifier] = None,
    ):
        self.sensors = sensors
        self.link = link
        self.cloud = cloud
        self.classifier = classifier

    def scenario_normal_operation(self) -> None:
        """Set up normal operation scenario.

        - Temp ~24C, humidity ~45%, gas ~300, no flame
        - Network and cloud working
        """
        self.sensors.simulate_flame(False)
        self.sensors.simulate_gas(300)
        self.sensors.simulate_read_failure(count=0)
        self.link.simulate_disconnect(False)
        if self.cloud:
            self.cloud.simulate_error(False)
            self.cloud.simulate_auth_failure(False)
        if self.classifier:
            self.classifier.simulate_error(False)
            self.classifier.simulate_verdict(None)
        logger.info("Scenario: Normal operation")

    def scenario_fire(self) -> None:
        """Flame detected, gas normal."""
        self.scenario_normal_operation()
        self.sensors.simulate_flame(True)
        logger.info("Scenario: Fire")

    def scenario_gas_leak(self, level: int = 2200) -> None:
        """Gas above the danger threshold, no flame."""
        self.scenario_normal_operation()
        self.sensors.simulate_gas(level)
        logger.info(f"Scenario: Gas leak (gas={level})")

    def scenario_network_outage(self) -> None:
        """Access point gone; local alarms must keep working."""
        self.scenario_normal_operation()
        self.link.simulate_disconnect(True)
        logger.info("Scenario: Network outage")

    def scenario_cloud_outage(self) -> None:
        """Network up but the cloud store refuses sign-in and writes."""
        self.scenario_normal_operation()
        if self.cloud:
            self.cloud.simulate_auth_failure(True)
            self.cloud.simulate_error(True)
        logger.info("Scenario: Cloud outage")

    def scenario_sensor_fault(self) -> None:
        """DHT returns garbage on every read."""
        self.scenario_normal_operation()
        self.sensors.simulate_read_failure(persistent=True)
        logger.info("Scenario: Sensor fault")
