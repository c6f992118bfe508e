# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Telemetry sync for Fire Watch.

Pushes each reading to the cloud store, best effort and at most once:

    <base_path>/<device_id>/temperature
    <base_path>/<device_id>/humidity
    <base_path>/<device_id>/flame
    <base_path>/<device_id>/gas
    <base_path>/<device_id>/history/<push id>   (full record, read by the
                                                 classification bridge)

Connectivity loss yields SKIPPED, a rejected or timed-out write yields
FAILED. Neither is retried and nothing is buffered.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from firewatch.exceptions import CloudError
from firewatch.models import PublishResult, SensorReading, TelemetryStats

logger = logging.getLogger(__name__)


def device_path(base_path: str, device_id: str) -> str:
    return f"{base_path.strip('/')}/{device_id}"


class TelemetrySync:
    """Best-effort publisher of SensorReadings."""

    def __init__(self, connectivity, cloud_client, base_path: str = "FireWatch", device_id: str = "node-01"):
        """Initialize telemetry sync.

        Args:
            connectivity: ConnectivityManager (source of readiness and session)
            cloud_client: Cloud client (real or mock), or None when disabled
            base_path: Root path namespace in the store
            device_id: This node's id, used as a path segment
        """
        self.connectivity = connectivity
        self.cloud_client = cloud_client
        self.root = device_path(base_path, device_id)
        self.stats = TelemetryStats()

        self._inflight: Optional[asyncio.Task] = None

    @property
    def history_path(self) -> str:
        return f"{self.root}/history"

    async def publish(self, reading: SensorReading) -> PublishResult:
        """Publish one reading.

        Returns:
            OK, SKIPPED (channel not usable) or FAILED (write rejected)
        """
        if self.cloud_client is None or not self.connectivity.is_cloud_ready():
            logger.debug("Telemetry skipped: cloud not ready")
            return self._record(PublishResult.SKIPPED)

        session = self.connectivity.session
        try:
            await self.cloud_client.write(session, f"{self.root}/temperature", reading.temperature)
            await self.cloud_client.write(session, f"{self.root}/humidity", reading.humidity)
            await self.cloud_client.write(session, f"{self.root}/flame", reading.flame_detected)
            await self.cloud_client.write(session, f"{self.root}/gas", reading.gas_level)
            await self.cloud_client.push(session, self.history_path, reading.to_dict())
        except CloudError as e:
            logger.warning(f"Telemetry publish failed, reading discarded: {e}")
            return self._record(PublishResult.FAILED)

        logger.debug("Telemetry published")
        return self._record(PublishResult.OK)

    def publish_in_background(self, reading: SensorReading) -> Optional[asyncio.Task]:
        """Fire-and-forget publish.

        At most one publish is in flight; a reading arriving while the previous
        one is still being written is dropped and counted as skipped.

        Returns:
            The scheduled task, or None if the reading was dropped
        """
        if self._inflight is not None and not self._inflight.done():
            logger.debug("Telemetry busy, reading dropped")
            self._record(PublishResult.SKIPPED)
            return None

        self._inflight = asyncio.create_task(self._publish_logged(reading))
        return self._inflight

    async def drain(self) -> None:
        """Wait for the in-flight publish, if any (used on shutdown)."""
        if self._inflight is not None and not self._inflight.done():
            await asyncio.wait({self._inflight})

    async def _publish_logged(self, reading: SensorReading) -> PublishResult:
        try:
            return await self.publish(reading)
        except Exception as e:
            logger.error(f"Unexpected telemetry error: {e}")
            return self._record(PublishResult.FAILED)

    def _record(self, result: PublishResult) -> PublishResult:
        if result == PublishResult.OK:
            self.stats.ok += 1
            self.stats.last_publish_time = datetime.now()
        elif result == PublishResult.SKIPPED:
            self.stats.skipped += 1
        else:
            self.stats.failed += 1
        self.stats.last_result = result
        return result
