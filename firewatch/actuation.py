# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Actuation and notification controller for Fire Watch.

Maps the reconciled AlertState of each cycle onto the physical outputs and
the operator channels:

    DANGER: LED red, fan on, buzzer pattern, display updated,
            one SMS + one voice announcement on entering DANGER
    SAFE:   LED green, fan idle, buzzer silenced, display updated

Level outputs (LED, fan, buzzer-active) are re-asserted every cycle so a
missed command heals itself on the next one. Notifications are edge
triggered: staying in DANGER does not repeat them. They are sent from a
background task (SMS first, then voice) so a slow SMS gateway or voice
prompt never holds up sensing.

The buzzer pattern is a cancellable task bounded by the alert window. With
block_cycle enabled the cycle waits for it (sampling pauses during a declared
emergency), but a stop request ends the wait immediately.

Usage:
    controller = ActuationController(outputs, notifier, display)
    command = await controller.apply(state, reading)
    await controller.close()
"""

import asyncio
import logging
from typing import Callable, Optional, Sequence, Set

from firewatch.config import MessagesConfig
from firewatch.models import (
    ActuationCommand, AlertLevel, AlertState, LedColor,
    Notification, NotificationChannel, SensorReading
)

logger = logging.getLogger(__name__)


class ActuationController:
    """Sole owner of the LED, buzzer, fan, display and operator channels.

    Attributes:
        last_command: Command executed by the most recent apply()
        notifications_sent: Count of notifications delivered
    """

    def __init__(
        self,
        outputs,
        notifier,
        display,
        messages: Optional[MessagesConfig] = None,
        device_name: str = "Fire Watch",
        alert_window_seconds: float = 5.0,
        buzzer_on_seconds: float = 0.5,
        buzzer_off_seconds: float = 0.5,
        block_cycle: bool = True,
        fan_idle_on: bool = False,
        describe: Optional[Callable[[SensorReading], str]] = None,
        stop_event: Optional[asyncio.Event] = None,
    ):
        """Initialize actuation controller.

        Args:
            outputs: Output board (real or mock)
            notifier: OperatorNotifier (real or mock)
            display: Display with a render(lines) method
            messages: Alert and display text templates
            device_name: Name used in notification text
            alert_window_seconds: Length of one buzzer pattern
            buzzer_on_seconds: Buzzer on time within the pattern
            buzzer_off_seconds: Buzzer off time within the pattern
            block_cycle: Make apply() wait for the buzzer pattern
            fan_idle_on: Fan state while SAFE
            describe: Turns a reading into a cause string ("Flame", ...)
            stop_event: Set on shutdown; ends a blocking pattern wait early
        """
        self.outputs = outputs
        self.notifier = notifier
        self.display = display
        self.messages = messages or MessagesConfig()
        self.device_name = device_name
        self.alert_window_seconds = alert_window_seconds
        self.buzzer_on_seconds = buzzer_on_seconds
        self.buzzer_off_seconds = buzzer_off_seconds
        self.block_cycle = block_cycle
        self.fan_idle_on = fan_idle_on
        self.describe = describe
        self.stop_event = stop_event

        self._last_level: Optional[AlertLevel] = None
        self._pattern_task: Optional[asyncio.Task] = None
        self._notify_task: Optional[asyncio.Task] = None
        self._pending_notifications: Set[asyncio.Task] = set()
        self.last_command: Optional[ActuationCommand] = None
        self.notifications_sent = 0

    @property
    def pattern_running(self) -> bool:
        return self._pattern_task is not None and not self._pattern_task.done()

    # ==================== Command Building ====================

    def build_command(
        self,
        state: AlertState,
        entering_danger: bool,
        reading: Optional[SensorReading] = None,
    ) -> ActuationCommand:
        """Derive output commands from a verdict. Has no side effects."""
        if not state.is_danger:
            return ActuationCommand(
                led_color=LedColor.GREEN,
                buzzer_active=False,
                fan_energized=self.fan_idle_on,
                display_lines=self._display_lines(self.messages.display_safe, reading),
            )

        cause = self._cause(reading)
        notifications = ()
        if entering_danger:
            fields = self._template_fields(cause, reading)
            notifications = (
                Notification(NotificationChannel.SMS, _render(self.messages.danger_sms, fields)),
                Notification(NotificationChannel.VOICE, _render(self.messages.danger_voice, fields)),
            )

        return ActuationCommand(
            led_color=LedColor.RED,
            buzzer_active=True,
            fan_energized=True,
            display_lines=self._display_lines(self.messages.display_danger, reading, cause),
            notifications=notifications,
        )

    def _cause(self, reading: Optional[SensorReading]) -> str:
        if reading is None or self.describe is None:
            return "Hazard"
        return self.describe(reading)

    def _template_fields(self, cause: str, reading: Optional[SensorReading]) -> dict:
        fields = {"device": self.device_name, "cause": cause}
        if reading is not None:
            fields.update(
                temperature=reading.temperature,
                humidity=reading.humidity,
                gas=reading.gas_level,
                flame=reading.flame_detected,
            )
        else:
            fields.update(temperature=float("nan"), humidity=float("nan"), gas="n/a", flame="n/a")
        return fields

    @staticmethod
    def _display_lines(header: str, reading: Optional[SensorReading], cause: str = "") -> tuple:
        lines = [header]
        if cause:
            lines.append(cause)
        if reading is not None:
            lines.append(f"Temp {reading.temperature:.1f}C  Hum {reading.humidity:.0f}%")
            lines.append(f"Gas {reading.gas_level}  Flame {'YES' if reading.flame_detected else 'no'}")
        return tuple(lines)

    # ==================== Execution ====================

    async def apply(self, state: AlertState, reading: Optional[SensorReading] = None) -> ActuationCommand:
        """Execute the command for this cycle's verdict.

        Returns:
            The ActuationCommand that was executed
        """
        entering_danger = state.is_danger and self._last_level != AlertLevel.DANGER
        leaving_danger = not state.is_danger and self._last_level == AlertLevel.DANGER
        self._last_level = state.level

        command = self.build_command(state, entering_danger, reading)
        self.last_command = command

        if entering_danger:
            logger.critical(f"DANGER: {self._cause(reading)} ({state.source.value})")
        elif leaving_danger:
            logger.info("Danger cleared, returning to SAFE")

        try:
            self.outputs.set_led(command.led_color)
        except Exception as e:
            logger.error(f"LED output error: {e}")

        if command.buzzer_active:
            self._start_pattern()
        else:
            await self._stop_pattern()
            try:
                self.outputs.set_buzzer(False)
            except Exception as e:
                logger.error(f"Buzzer output error: {e}")

        try:
            await self.outputs.set_fan(command.fan_energized)
        except Exception as e:
            logger.error(f"Fan output error: {e}")

        try:
            self.display.render(command.display_lines)
        except Exception as e:
            logger.error(f"Display render error: {e}")

        if command.notifications:
            self.dispatch_in_background(command.notifications)

        if command.buzzer_active and self.block_cycle:
            await self._wait_for_pattern()

        return command

    def dispatch_in_background(self, notifications: Sequence[Notification]) -> asyncio.Task:
        """Send notifications without holding up the control cycle.

        A batch raised while an earlier one is still being sent waits for it,
        so operators receive alerts in the order they were raised.

        Returns:
            The scheduled task
        """
        previous = self._notify_task
        task = asyncio.create_task(self._dispatch(notifications, previous))
        self._notify_task = task
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)
        return task

    async def drain(self) -> None:
        """Wait for queued notifications (used on shutdown)."""
        if self._notify_task is not None and not self._notify_task.done():
            await asyncio.wait({self._notify_task})

    async def _dispatch(
        self,
        notifications: Sequence[Notification],
        previous: Optional[asyncio.Task] = None,
    ) -> None:
        """Send notifications in order; one failing does not stop the rest."""
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        for notification in notifications:
            try:
                if notification.channel == NotificationChannel.SMS:
                    delivered = await self.notifier.send_sms(notification.text)
                else:
                    delivered = await self.notifier.speak(notification.text)
            except Exception as e:
                logger.error(f"{notification.channel.value} notification failed: {e}")
                continue
            if delivered:
                self.notifications_sent += 1

    # ==================== Buzzer Pattern ====================

    def _start_pattern(self) -> None:
        if self.pattern_running:
            return
        self._pattern_task = asyncio.create_task(self._run_pattern())

    async def _run_pattern(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.alert_window_seconds
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                self.outputs.set_buzzer(True)
                await asyncio.sleep(min(self.buzzer_on_seconds, remaining))
                self.outputs.set_buzzer(False)

                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                await asyncio.sleep(min(self.buzzer_off_seconds, remaining))
        finally:
            self.outputs.set_buzzer(False)

    async def _stop_pattern(self) -> None:
        task = self._pattern_task
        self._pattern_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Buzzer pattern cancelled")

    async def _wait_for_pattern(self) -> None:
        task = self._pattern_task
        if task is None or task.done():
            return

        stop_waiter = None
        waiters = {task}
        if self.stop_event is not None:
            stop_waiter = asyncio.create_task(self.stop_event.wait())
            waiters.add(stop_waiter)
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if stop_waiter is not None:
                stop_waiter.cancel()

    # ==================== Shutdown ====================

    async def _cancel_notifications(self) -> None:
        pending = [task for task in self._pending_notifications if not task.done()]
        self._notify_task = None
        if not pending:
            return
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.warning("Pending notifications abandoned")

    async def close(self) -> None:
        """Silence the buzzer and put every output in its off state.

        Notifications still being sent are abandoned; call drain() first to
        let them finish.
        """
        await self._stop_pattern()
        await self._cancel_notifications()
        try:
            self.outputs.set_buzzer(False)
            self.outputs.set_led(LedColor.OFF)
        finally:
            await self.outputs.close()
            await self.notifier.close()
        logger.info("Outputs in safe state")


def _render(template: str, fields: dict) -> str:
    try:
        return template.format(**fields)
    except (KeyError, IndexError, ValueError) as e:
        logger.warning(f"Bad message template ({e}), sending it unformatted")
        return template
