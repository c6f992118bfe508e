# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Operator notifications for Fire Watch.

This module handles the two alert delivery channels:
- SMS through the Twilio Messages REST API
- Spoken announcements through espeak on the node's speaker

Both channels raise NotificationError on failure; the ActuationController
decides what to do about it (log and move on to the next channel).

Usage:
    from firewatch.notifications import get_notifier

    notifier = get_notifier(config)
    await notifier.send_sms("FIRE WATCH ALERT ...")
    await notifier.speak("Warning. Flame detected.")
    await notifier.close()
"""

import asyncio
import logging
from typing import List, Optional

import aiohttp

from firewatch.exceptions import NotificationError

logger = logging.getLogger(__name__)


class TwilioSmsClient:
    """Twilio Messages API client.

    Sends one message per recipient. A recipient failing does not stop the
    remaining recipients, but the call as a whole then raises.
    """

    API_BASE_URL = "https://api.twilio.com/2010-04-01"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        to_numbers: List[str],
        timeout_seconds: float = 10.0,
    ):
        """Initialize Twilio client.

        Args:
            account_sid: Twilio account SID
            auth_token: Twilio auth token
            from_number: Sending phone number (E.164)
            to_numbers: Recipient phone numbers (E.164)
            timeout_seconds: Per-request timeout
        """
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.to_numbers = list(to_numbers)
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def messages_url(self) -> str:
        return f"{self.API_BASE_URL}/Accounts/{self.account_sid}/Messages.json"

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                auth=aiohttp.BasicAuth(self.account_sid, self.auth_token),
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            )
        return self._session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def send(self, text: str) -> int:
        """Send text to every recipient.

        Returns:
            Number of recipients the message was accepted for

        Raises:
            NotificationError: If any recipient could not be messaged
        """
        if not self.to_numbers:
            raise NotificationError("No SMS recipients configured")

        failures = []
        sent = 0
        for to_number in self.to_numbers:
            try:
                await self._send_one(to_number, text)
                sent += 1
            except NotificationError as e:
                logger.error(f"SMS to {to_number} failed: {e}")
                failures.append(to_number)

        if failures:
            raise NotificationError(f"SMS failed for {len(failures)} of {len(self.to_numbers)} recipient(s)")

        logger.info(f"SMS sent to {sent} recipient(s)")
        return sent

    async def _send_one(self, to_number: str, text: str) -> None:
        form = {"From": self.from_number, "To": to_number, "Body": text}
        try:
            session = await self._get_session()
            async with session.post(self.messages_url, data=form) as resp:
                if resp.status not in (200, 201):
                    body = await resp.text()
                    raise NotificationError(f"Twilio API error {resp.status}: {body[:200]}")
        except asyncio.TimeoutError as e:
            raise NotificationError("Twilio request timed out") from e
        except aiohttp.ClientError as e:
            raise NotificationError(f"Twilio request failed: {e}") from e


class VoiceAnnouncer:
    """Speaks alert text through espeak.

    espeak is run at a fixed amplitude; the system mixer controls the actual
    volume.
    """

    def __init__(
        self,
        command: str = "espeak",
        amplitude: int = 200,
        repeat: int = 2,
        timeout_seconds: float = 20.0,
    ):
        """Initialize announcer.

        Args:
            command: espeak executable
            amplitude: espeak -a value (0-200)
            repeat: How many times the text is spoken
            timeout_seconds: Upper bound for the whole announcement
        """
        self.command = command
        self.amplitude = amplitude
        self.repeat = max(1, repeat)
        self.timeout_seconds = timeout_seconds

    async def speak(self, text: str) -> None:
        """Speak text repeat times.

        Raises:
            NotificationError: If espeak is missing, fails or times out
        """
        try:
            await asyncio.wait_for(self._speak_all(text), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise NotificationError("Voice announcement timed out") from e
        logger.info(f"Voice announcement played: {text}")

    async def _speak_all(self, text: str) -> None:
        for _ in range(self.repeat):
            try:
                proc = await asyncio.create_subprocess_exec(
                    self.command, "-a", str(self.amplitude), text,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise NotificationError(f"Audio tool not found: {e}") from e

            try:
                _, stderr = await proc.communicate()
            except asyncio.CancelledError:
                proc.kill()
                await proc.wait()
                raise

            if proc.returncode != 0:
                raise NotificationError(
                    f"{self.command} exited with {proc.returncode}: "
                    f"{stderr.decode(errors='replace').strip()}"
                )


class OperatorNotifier:
    """SMS and voice channels behind one object.

    A channel that is disabled in config is skipped quietly (returns False).
    """

    def __init__(self, sms: Optional[TwilioSmsClient] = None, voice: Optional[VoiceAnnouncer] = None):
        self.sms = sms
        self.voice = voice

    async def send_sms(self, text: str) -> bool:
        """Send an SMS to the configured recipients.

        Returns:
            True if sent, False if the SMS channel is disabled

        Raises:
            NotificationError: On delivery failure
        """
        if self.sms is None:
            logger.debug("SMS channel disabled, message not sent")
            return False
        await self.sms.send(text)
        return True

    async def speak(self, text: str) -> bool:
        """Play a voice announcement.

        Returns:
            True if spoken, False if the voice channel is disabled

        Raises:
            NotificationError: On playback failure
        """
        if self.voice is None:
            logger.debug("Voice channel disabled, announcement skipped")
            return False
        await self.voice.speak(text)
        return True

    async def close(self) -> None:
        if self.sms:
            await self.sms.close()


def get_notifier(config):
    """Factory function to get appropriate notifier based on config."""
    if config.mock_mode:
        from firewatch.mocks import MockNotifier
        logger.info("Using MockNotifier (mock_mode=True)")
        return MockNotifier()

    settings = config.notifications
    sms = None
    if settings.sms.enabled:
        sms = TwilioSmsClient(
            account_sid=settings.sms.account_sid,
            auth_token=settings.sms.auth_token,
            from_number=settings.sms.from_number,
            to_numbers=settings.sms.to_numbers,
            timeout_seconds=settings.sms.timeout_seconds,
        )

    voice = None
    if settings.voice.enabled:
        voice = VoiceAnnouncer(
            command=settings.voice.command,
            amplitude=settings.voice.amplitude,
            repeat=settings.voice.repeat,
            timeout_seconds=settings.voice.timeout_seconds,
        )

    logger.info(f"Notifications: sms={'on' if sms else 'off'}, voice={'on' if voice else 'off'}")
    return OperatorNotifier(sms=sms, voice=voice)
