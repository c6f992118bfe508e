# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Remote classification bridge for Fire Watch.

Runs on a slower cadence than the control cycle. Each pass it fetches the
most recent readings from the telemetry store, asks the classifier service
for a SAFE/DANGER verdict, reconciles it with the latest local verdict and
publishes the classifier verdict for the control cycle.
DANGER from either side wins. Whenever the store or the classifier is
unavailable the local verdict passes through unchanged, so the remote path
can escalate but never gate the safety response.

Usage:
    bridge = RemoteClassificationBridge(
        connectivity, cloud_client, history_path, ClassifierClient(url),
        local_slot, remote_slot,
    )
    task = asyncio.create_task(bridge.run(stop_event))
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from firewatch.alert_engine import escalate
from firewatch.exceptions import ClassifierError, CloudError
from firewatch.handoff import LatestValue
from firewatch.models import AlertLevel, AlertSource, AlertState, SensorReading

logger = logging.getLogger(__name__)


class ClassifierClient:
    """HTTP client for the classifier service.

    The service takes a window of readings and answers with a label:

        POST /classify {"readings": [{"temperature": .., "humidity": ..,
                                      "gas": .., "flame": .., "timestamp": ..}]}
        -> {"label": "safe" | "danger"}
    """

    def __init__(self, base_url: str = "http://localhost:8200", timeout_seconds: float = 10.0):
        """Initialize classifier client.

        Args:
            base_url: Classifier service URL
            timeout_seconds: Request timeout
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the client and cleanup resources."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def classify(self, readings: List[SensorReading]) -> AlertLevel:
        """Classify a window of readings.

        Raises:
            ClassifierError: If the service is unreachable or the label is unusable
        """
        payload = {"readings": [r.to_dict() for r in readings]}
        try:
            session = await self._get_session()
            async with session.post(f"{self.base_url}/classify", json=payload) as resp:
                if resp.status != 200:
                    raise ClassifierError(f"HTTP {resp.status}")
                data = await resp.json()
        except asyncio.TimeoutError as e:
            raise ClassifierError("Classifier timeout") from e
        except aiohttp.ClientError as e:
            raise ClassifierError(f"Connection error: {e}") from e

        return parse_label(data)


def parse_label(data: Any) -> AlertLevel:
    """Map a classifier response body to an AlertLevel.

    Raises:
        ClassifierError: If the body has no recognizable label
    """
    label = data.get("label") if isinstance(data, dict) else None
    try:
        return AlertLevel(str(label).strip().lower())
    except ValueError as e:
        raise ClassifierError(f"Unrecognized classifier label: {label!r}") from e


class RemoteClassificationBridge:
    """Periodic corroboration of the local verdict."""

    def __init__(
        self,
        connectivity,
        cloud_client,
        history_path: str,
        classifier,
        local_slot: LatestValue,
        remote_slot: LatestValue,
        interval_seconds: float = 30.0,
        window_size: int = 10,
    ):
        """Initialize the bridge.

        Args:
            connectivity: ConnectivityManager (readiness and session)
            cloud_client: Cloud client used to read history
            history_path: Store path of the reading history
            classifier: ClassifierClient (real or mock)
            local_slot: Latest local AlertState, written by the control cycle
            remote_slot: Where classifier verdicts are published for the control cycle
            interval_seconds: Seconds between passes
            window_size: Number of recent readings sent to the classifier
        """
        self.connectivity = connectivity
        self.cloud_client = cloud_client
        self.history_path = history_path
        self.classifier = classifier
        self.local_slot = local_slot
        self.remote_slot = remote_slot
        self.interval_seconds = interval_seconds
        self.window_size = window_size

        self._remote_available = True
        self._last_remote: Optional[AlertState] = None

    @property
    def last_remote(self) -> Optional[AlertState]:
        """Most recent verdict actually returned by the classifier."""
        return self._last_remote

    async def reconcile(self, local: AlertState) -> AlertState:
        """Combine the local verdict with a fresh classifier verdict.

        Never raises; falls back to the local verdict.

        Returns:
            AlertState with source RECONCILED
        """
        return _combine(local, await self._remote_verdict())

    async def run_once(self) -> Optional[AlertState]:
        """One pass: read the local slot, ask the classifier, publish its verdict.

        The remote slot receives the classifier's own verdict, not the
        reconciled one, so the control cycle combines it with the local
        verdict of its current cycle. An unavailable classifier clears the
        slot and the cycle runs on local thresholds alone.

        Returns:
            The reconciled AlertState of this pass, or None without a local verdict
        """
        local = self.local_slot.get()
        if local is None:
            logger.debug("No local verdict yet, skipping classification pass")
            return None

        remote = await self._remote_verdict()
        if remote is None:
            self.remote_slot.clear()
        else:
            self.remote_slot.put(remote)
        return _combine(local, remote)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run passes every interval_seconds until stop_event is set."""
        logger.info(f"Classification bridge started (every {self.interval_seconds:.0f}s)")
        while not stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Classification pass error: {e}")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Classification bridge stopped")

    async def _remote_verdict(self) -> Optional[AlertState]:
        if self.cloud_client is None or not self.connectivity.is_cloud_ready():
            return self._unavailable("cloud not ready")

        try:
            records = await self.cloud_client.read_recent(
                self.connectivity.session, self.history_path, self.window_size
            )
        except CloudError as e:
            return self._unavailable(f"history fetch failed: {e}")

        readings = _parse_readings(records)
        if not readings:
            return self._unavailable("no recent readings")

        try:
            level = await self.classifier.classify(readings)
        except ClassifierError as e:
            return self._unavailable(f"classifier error: {e}")

        if not self._remote_available:
            logger.info("Classifier available again")
            self._remote_available = True

        self._last_remote = AlertState(level=level, source=AlertSource.REMOTE_CLASSIFIER)
        logger.debug(f"Classifier verdict: {level.value} ({len(readings)} readings)")
        return self._last_remote

    def _unavailable(self, reason: str) -> None:
        if self._remote_available:
            logger.warning(f"Remote classification unavailable ({reason}), using local verdict")
            self._remote_available = False
        else:
            logger.debug(f"Remote classification still unavailable ({reason})")
        return None


def _combine(local: AlertState, remote: Optional[AlertState]) -> AlertState:
    if remote is None:
        return escalate(local)
    if remote.is_danger and not local.is_danger:
        logger.warning("Classifier reports DANGER while local thresholds are SAFE - escalating")
    return escalate(local, remote)


def _parse_readings(records: List[Dict[str, Any]]) -> List[SensorReading]:
    readings = []
    for record in records:
        try:
            readings.append(SensorReading.from_dict(record))
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Skipping malformed history record: {e}")
    return readings


def get_classifier(config):
    """Factory function to get appropriate classifier based on config."""
    if config.mock_mode:
        from firewatch.mocks import MockClassifier
        logger.info("Using MockClassifier (mock_mode=True)")
        return MockClassifier()

    logger.info(f"Using ClassifierClient ({config.classifier.url})")
    return ClassifierClient(
        base_url=config.classifier.url,
        timeout_seconds=config.classifier.timeout_seconds,
    )
