# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Connectivity resilience for Fire Watch.

Owns the network link and the cloud session, and exposes whether the
telemetry channel is usable. Nothing else in the system touches either.

State Flow:
    DISCONNECTED -> CONNECTING (start, or link loss)
    CONNECTING -> NETWORK_UP (association seen within the poll budget)
    CONNECTING -> CONNECTING (budget exhausted, retry next tick)
    NETWORK_UP -> CLOUD_READY (sign-in handshake succeeds)
    NETWORK_UP -> NETWORK_UP (handshake failed, retry next tick)
    NETWORK_UP | CLOUD_READY -> DISCONNECTED (association lost)

One call to ensure_connectivity() waits at most poll_attempts *
poll_interval_seconds, so the control cycle is never held up indefinitely.

Usage:
    manager = ConnectivityManager(link, cloud_client)
    state = await manager.ensure_connectivity()
    if manager.is_cloud_ready():
        ...
"""

import asyncio
import logging
from typing import List, Optional

from firewatch.cloud import CloudSession
from firewatch.exceptions import CloudAuthError
from firewatch.models import ConnectivityPhase, ConnectivityState

logger = logging.getLogger(__name__)


class NmcliNetworkLink:
    """Wi-Fi link managed through NetworkManager's nmcli.

    Attributes:
        interface: Network interface name (e.g. wlan0)
        ssid: Network to join; when empty the interface's saved profile is used
    """

    def __init__(
        self,
        interface: str = "wlan0",
        ssid: str = "",
        password: str = "",
        command_timeout: float = 5.0,
    ):
        self.interface = interface
        self.ssid = ssid
        self.password = password
        self.command_timeout = command_timeout

    async def _nmcli(self, *args: str) -> Optional[str]:
        """Run nmcli and return stdout, or None on any failure."""
        try:
            proc = await asyncio.create_subprocess_exec(
                "nmcli", *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"nmcli not available: {e}")
            return None

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), self.command_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"nmcli {args[0]} timed out")
            return None

        if proc.returncode != 0:
            logger.debug(f"nmcli {' '.join(args[:3])} failed: {stderr.decode(errors='replace').strip()}")
            return None
        return stdout.decode(errors="replace")

    async def connect(self) -> None:
        """Ask NetworkManager to associate, without waiting for the result."""
        if self.ssid:
            args: List[str] = ["--wait", "0", "device", "wifi", "connect", self.ssid]
            if self.password:
                args += ["password", self.password]
            args += ["ifname", self.interface]
        else:
            args = ["--wait", "0", "device", "connect", self.interface]
        await self._nmcli(*args)

    async def is_associated(self) -> bool:
        """Whether the interface is currently connected."""
        output = await self._nmcli("-t", "-f", "DEVICE,STATE", "device", "status")
        if output is None:
            return False
        for line in output.splitlines():
            device, _, state = line.partition(":")
            if device == self.interface:
                return state == "connected"
        return False


class ConnectivityManager:
    """Network and cloud session state machine.

    Attributes:
        state: Current ConnectivityState snapshot
        session: Authenticated CloudSession while CLOUD_READY, else None
    """

    # Re-request association after this many fruitless ticks in CONNECTING
    REASSOCIATE_EVERY = 5

    def __init__(
        self,
        link,
        cloud_client=None,
        poll_attempts: int = 10,
        poll_interval_seconds: float = 0.5,
    ):
        """Initialize connectivity manager.

        Args:
            link: Network link backend (real or mock)
            cloud_client: Cloud client used for the sign-in handshake, or
                None when telemetry is disabled (CLOUD_READY never reached)
            poll_attempts: Association polls per tick
            poll_interval_seconds: Delay between association polls
        """
        self.link = link
        self.cloud_client = cloud_client
        self.poll_attempts = max(1, poll_attempts)
        self.poll_interval_seconds = poll_interval_seconds

        self._phase = ConnectivityPhase.DISCONNECTED
        self._retry_count = 0
        self._session: Optional[CloudSession] = None
        self._handshake_failures = 0

        logger.info("ConnectivityManager initialized")

    # ==================== Queries ====================

    @property
    def state(self) -> ConnectivityState:
        return ConnectivityState(phase=self._phase, retry_count=self._retry_count)

    @property
    def session(self) -> Optional[CloudSession]:
        if self._phase != ConnectivityPhase.CLOUD_READY:
            return None
        return self._session

    def is_cloud_ready(self) -> bool:
        """Whether telemetry can be written right now."""
        return self._phase == ConnectivityPhase.CLOUD_READY and self._session is not None

    # ==================== Supervision ====================

    async def ensure_connectivity(self) -> ConnectivityState:
        """Advance the state machine by at most one bounded step per phase.

        Never raises for link or cloud failures.

        Returns:
            The resulting ConnectivityState
        """
        # Detect link loss while we believe the network is up
        if self._phase in (ConnectivityPhase.NETWORK_UP, ConnectivityPhase.CLOUD_READY):
            if not await self._link_associated():
                self._on_link_lost()

        if self._phase == ConnectivityPhase.DISCONNECTED:
            self._set_phase(ConnectivityPhase.CONNECTING)
            self._retry_count = 0
            await self._request_association()
        elif (self._phase == ConnectivityPhase.CONNECTING and self._retry_count
                and self._retry_count % self.REASSOCIATE_EVERY == 0):
            await self._request_association()

        if self._phase == ConnectivityPhase.CONNECTING:
            if await self._wait_for_association():
                self._retry_count = 0
                self._set_phase(ConnectivityPhase.NETWORK_UP)
            else:
                self._retry_count += 1
                if self._retry_count == 1 or self._retry_count % 10 == 0:
                    logger.warning(f"Network association pending (attempt {self._retry_count})")
                return self.state

        if self._phase == ConnectivityPhase.CLOUD_READY and self._session is not None and self._session.is_expired:
            logger.info("Cloud session expired, signing in again")
            self._session = None
            self._set_phase(ConnectivityPhase.NETWORK_UP)

        if self._phase == ConnectivityPhase.NETWORK_UP:
            await self._handshake()

        return self.state

    def mark_link_lost(self) -> None:
        """Force a reconnect (e.g. after repeated cloud timeouts)."""
        if self._phase != ConnectivityPhase.DISCONNECTED:
            self._on_link_lost()

    # ==================== Internals ====================

    def _set_phase(self, phase: ConnectivityPhase) -> None:
        if phase != self._phase:
            logger.info(f"Connectivity: {self._phase.value} -> {phase.value}")
            self._phase = phase

    def _on_link_lost(self) -> None:
        logger.warning("Network association lost")
        # Session is tied to this association; rebuild from scratch later
        self._session = None
        self._retry_count = 0
        self._set_phase(ConnectivityPhase.DISCONNECTED)

    async def _link_associated(self) -> bool:
        try:
            return bool(await self.link.is_associated())
        except Exception as e:
            logger.error(f"Link status check failed: {e}")
            return False

    async def _request_association(self) -> None:
        try:
            await self.link.connect()
        except Exception as e:
            logger.error(f"Association request failed: {e}")

    async def _wait_for_association(self) -> bool:
        for attempt in range(self.poll_attempts):
            if await self._link_associated():
                return True
            if attempt < self.poll_attempts - 1:
                await asyncio.sleep(self.poll_interval_seconds)
        return False

    async def _handshake(self) -> None:
        if self.cloud_client is None:
            return

        try:
            self._session = await self.cloud_client.sign_in()
        except CloudAuthError as e:
            self._handshake_failures += 1
            if self._handshake_failures == 1:
                logger.warning(f"Cloud handshake failed: {e}")
            else:
                logger.debug(f"Cloud handshake failed (#{self._handshake_failures}): {e}")
            return
        except Exception as e:
            self._handshake_failures += 1
            logger.error(f"Cloud handshake error: {e}")
            return

        self._handshake_failures = 0
        self._set_phase(ConnectivityPhase.CLOUD_READY)


def get_network_link(config):
    """Factory function to get appropriate network link based on config."""
    if config.mock_mode:
        from firewatch.mocks import MockNetworkLink
        logger.info("Using MockNetworkLink (mock_mode=True)")
        return MockNetworkLink()

    logger.info(f"Using NmcliNetworkLink ({config.connectivity.interface})")
    return NmcliNetworkLink(
        interface=config.connectivity.interface,
        ssid=config.connectivity.wifi_ssid,
        password=config.connectivity.wifi_password,
    )
