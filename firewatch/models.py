# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Data models for Fire Watch.

Every value that crosses a component boundary is defined here. Readings,
alert states and actuation commands are frozen so a stage can hand them to the
next one without worrying about later mutation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class AlertLevel(Enum):
    """Overall safety verdict."""
    SAFE = "safe"
    DANGER = "danger"


class AlertSource(Enum):
    """Which decision path produced an AlertState."""
    LOCAL_THRESHOLD = "local_threshold"
    REMOTE_CLASSIFIER = "remote_classifier"
    RECONCILED = "reconciled"


class ConnectivityPhase(Enum):
    """Phases of the network / cloud session lifecycle."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    NETWORK_UP = "network_up"
    CLOUD_READY = "cloud_ready"


class PublishResult(Enum):
    """Outcome of a single telemetry publish."""
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


class LedColor(Enum):
    """Indicator LED colors."""
    OFF = "off"
    GREEN = "green"
    RED = "red"


class NotificationChannel(Enum):
    """Operator notification channels."""
    SMS = "sms"
    VOICE = "voice"


@dataclass(frozen=True)
class SensorReading:
    """One fully-defined acquisition sample.

    Attributes:
        temperature: Degrees Celsius
        humidity: Relative humidity percent
        gas_level: Raw gas sensor value, clamped to the ADC range
        flame_detected: True when the flame sensor reports a flame
        timestamp: When the sample was taken
    """
    temperature: float
    humidity: float
    gas_level: int
    flame_detected: bool
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "gas": self.gas_level,
            "flame": self.flame_detected,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SensorReading":
        """Build a reading from a telemetry history record."""
        timestamp = data.get("timestamp")
        return cls(
            temperature=float(data["temperature"]),
            humidity=float(data["humidity"]),
            gas_level=int(data["gas"]),
            flame_detected=bool(data["flame"]),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(),
        )


@dataclass(frozen=True)
class ReadFailure:
    """Acquisition produced no usable sample this cycle."""
    reason: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ConnectivityState:
    """Snapshot of the connectivity state machine."""
    phase: ConnectivityPhase = ConnectivityPhase.DISCONNECTED
    retry_count: int = 0

    @property
    def network_up(self) -> bool:
        return self.phase in (ConnectivityPhase.NETWORK_UP, ConnectivityPhase.CLOUD_READY)

    @property
    def cloud_ready(self) -> bool:
        return self.phase == ConnectivityPhase.CLOUD_READY


@dataclass(frozen=True)
class AlertState:
    """A SAFE/DANGER verdict and where it came from."""
    level: AlertLevel
    source: AlertSource
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_danger(self) -> bool:
        return self.level == AlertLevel.DANGER


@dataclass(frozen=True)
class Notification:
    """A one-shot operator notification."""
    channel: NotificationChannel
    text: str


@dataclass(frozen=True)
class ActuationCommand:
    """Output commands derived from one AlertState."""
    led_color: LedColor
    buzzer_active: bool
    fan_energized: bool
    display_lines: Tuple[str, ...] = ()
    notifications: Tuple[Notification, ...] = ()


@dataclass
class TelemetryStats:
    """Running publish counters."""
    ok: int = 0
    skipped: int = 0
    failed: int = 0
    last_result: Optional[PublishResult] = None
    last_publish_time: Optional[datetime] = None


@dataclass
class SystemStatus:
    """Snapshot of the whole system for the status API."""
    timestamp: datetime
    alert_state: Optional[AlertState]
    current_reading: Optional[SensorReading]
    connectivity: ConnectivityState
    telemetry: TelemetryStats
    display_lines: Tuple[str, ...] = ()
    read_failures: int = 0
    cycles: int = 0
    uptime_seconds: float = 0.0
