"""Local alert engine for Fire Watch.

The fast path: a pure threshold check on the current reading. There is no
hysteresis or debounce window, so flame or gas is signaled on the first
cycle that sees it.
"""

import logging
from datetime import datetime

from firewatch.models import AlertLevel, AlertSource, AlertState, SensorReading

logger = logging.getLogger(__name__)

DEFAULT_GAS_DANGER_THRESHOLD = 1500


class LocalAlertEngine:
    """Threshold evaluation of a single SensorReading."""

    def __init__(self, gas_danger_threshold: int = DEFAULT_GAS_DANGER_THRESHOLD):
        self.gas_danger_threshold = gas_danger_threshold

    def evaluate(self, reading: SensorReading) -> AlertState:
        """DANGER if a flame is seen or gas exceeds the threshold, else SAFE."""
        danger = reading.flame_detected or reading.gas_level > self.gas_danger_threshold
        level = AlertLevel.DANGER if danger else AlertLevel.SAFE
        return AlertState(level=level, source=AlertSource.LOCAL_THRESHOLD, timestamp=reading.timestamp)

    def describe(self, reading: SensorReading) -> str:
        """Human-readable cause of a DANGER verdict."""
        causes = []
        if reading.flame_detected:
            causes.append("Flame")
        if reading.gas_level > self.gas_danger_threshold:
            causes.append("Gas leak")
        return " and ".join(causes) or "Hazard"


def escalate(*states: AlertState) -> AlertState:
    """Combine verdicts; DANGER from any source wins.

    Returns:
        AlertState with source RECONCILED
    """
    danger = any(state.is_danger for state in states)
    timestamp = max((state.timestamp for state in states), default=datetime.now())
    return AlertState(
        level=AlertLevel.DANGER if danger else AlertLevel.SAFE,
        source=AlertSource.RECONCILED,
        timestamp=timestamp,
    )
