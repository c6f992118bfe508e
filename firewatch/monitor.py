# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Control cycle for Fire Watch.

This module implements the fixed-period monitoring loop that:
- Keeps the network and cloud session alive (bounded per cycle)
- Acquires one sample from the sensors
- Evaluates the local thresholds
- Combines the local verdict with the latest reconciled verdict
- Publishes telemetry in the background
- Drives the outputs through the actuation controller

Cycle Flow:
    ensure_connectivity -> sample -> (ReadFailure: end of cycle)
    -> evaluate -> local_slot.put -> escalate with remote_slot
    -> publish_in_background -> apply

The remote classification bridge runs as its own task and talks to the cycle
only through the two LatestValue slots. The remote slot carries the
classifier's own verdict; the cycle reconciles it with the local verdict of
the same cycle, so a cleared hazard returns to SAFE as soon as both report
SAFE.

Usage:
    from firewatch.monitor import FireWatchMonitor

    monitor = FireWatchMonitor(
        connectivity, acquisition, engine, telemetry, actuation,
        local_slot, remote_slot,
    )
    await monitor.run()
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from firewatch.alert_engine import escalate
from firewatch.handoff import LatestValue
from firewatch.models import AlertState, ReadFailure, SensorReading, SystemStatus

logger = logging.getLogger(__name__)


class FireWatchMonitor:
    """Core control loop of the Fire Watch node.

    Attributes:
        alert_state: Verdict actuated by the most recent cycle
        current_reading: Most recent valid SensorReading
        cycles: Completed cycles
    """

    def __init__(
        self,
        connectivity,
        acquisition,
        engine,
        telemetry,
        actuation,
        local_slot: LatestValue,
        remote_slot: LatestValue,
        cycle_interval_seconds: float = 1.0,
        remote_max_age_seconds: float = 90.0,
        stop_event: Optional[asyncio.Event] = None,
    ):
        """Initialize monitor.

        Args:
            connectivity: ConnectivityManager
            acquisition: SensorAcquisition
            engine: LocalAlertEngine
            telemetry: TelemetrySync
            actuation: ActuationController
            local_slot: Receives this cycle's local verdict
            remote_slot: Latest classifier verdict from the classification bridge
            cycle_interval_seconds: Period of the control cycle
            remote_max_age_seconds: Classifier verdicts older than this are ignored
            stop_event: Shared shutdown signal (created if not given)
        """
        self.connectivity = connectivity
        self.acquisition = acquisition
        self.engine = engine
        self.telemetry = telemetry
        self.actuation = actuation
        self.local_slot = local_slot
        self.remote_slot = remote_slot
        self.cycle_interval_seconds = cycle_interval_seconds
        self.remote_max_age_seconds = remote_max_age_seconds
        self.stop_event = stop_event or asyncio.Event()

        self._alert_state: Optional[AlertState] = None
        self._cycles = 0
        self._cycle_errors = 0
        self._start_time = datetime.now()

        logger.info("FireWatchMonitor initialized")

    # ==================== Properties ====================

    @property
    def alert_state(self) -> Optional[AlertState]:
        return self._alert_state

    @property
    def current_reading(self) -> Optional[SensorReading]:
        return self.acquisition.last_reading

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def uptime_seconds(self) -> float:
        return (datetime.now() - self._start_time).total_seconds()

    def get_status(self) -> SystemStatus:
        """Get comprehensive system status snapshot."""
        command = self.actuation.last_command
        return SystemStatus(
            timestamp=datetime.now(),
            alert_state=self._alert_state,
            current_reading=self.current_reading,
            connectivity=self.connectivity.state,
            telemetry=self.telemetry.stats,
            display_lines=command.display_lines if command else (),
            read_failures=self.acquisition.total_failures,
            cycles=self._cycles,
            uptime_seconds=self.uptime_seconds,
        )

    # ==================== Main Loop ====================

    async def run(self) -> None:
        """Run cycles at a fixed period until stop() is called.

        A cycle that overruns its period (e.g. a blocking buzzer pattern) is
        followed immediately by the next one; missed slots are not made up.
        """
        loop = asyncio.get_running_loop()
        logger.info(f"Monitor starting (cycle every {self.cycle_interval_seconds}s)")

        next_run = loop.time()
        while not self.stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception as e:
                self._cycle_errors += 1
                logger.error(f"Error in control cycle: {e}", exc_info=self._cycle_errors == 1)

            next_run = max(next_run + self.cycle_interval_seconds, loop.time())
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=next_run - loop.time())
            except asyncio.TimeoutError:
                pass

        logger.info(f"Monitor stopped after {self._cycles} cycle(s)")

    async def run_cycle(self) -> Optional[AlertState]:
        """Single control cycle.

        Returns:
            The actuated AlertState, or None if the sample was a ReadFailure
        """
        await self.connectivity.ensure_connectivity()

        sample = await self.acquisition.sample()
        if isinstance(sample, ReadFailure):
            return None

        local = self.engine.evaluate(sample)
        self.local_slot.put(local)

        remote = self.remote_slot.get(max_age_seconds=self.remote_max_age_seconds)
        state = escalate(local, remote) if remote is not None else escalate(local)

        if self._alert_state is None or state.level != self._alert_state.level:
            logger.info(f"Alert state: {state.level.value} (local={local.level.value})")
        self._alert_state = state

        self.telemetry.publish_in_background(sample)
        await self.actuation.apply(state, sample)

        self._cycles += 1
        return state

    def stop(self) -> None:
        """Signal shutdown."""
        logger.info("Monitor stopping")
        self.stop_event.set()
