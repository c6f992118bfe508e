#!/usr/bin/env python3
"""Fire Watch - Main Entry Point.

This is the main entry point for the Fire Watch edge node.
It initializes all components and starts the monitoring loop.

Usage:
    python -m firewatch.main [--config CONFIG] [--debug] [--mock]

Or, once installed:
    firewatch [options]

The node monitors:
- Temperature and humidity (DHT11/DHT22)
- Combustible gas (MQ-2 via ADS1115)
- Open flame (IR flame sensor)

On flame or gas it sounds the buzzer, turns the LED red, runs the exhaust
fan and notifies operators by SMS and voice. Readings are mirrored to
Firebase and periodically re-checked by a remote classifier.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from typing import Optional

from firewatch.actuation import ActuationController
from firewatch.alert_engine import LocalAlertEngine
from firewatch.classifier import RemoteClassificationBridge, get_classifier
from firewatch.cloud import get_cloud_client
from firewatch.config import Config, load_config
from firewatch.connectivity import ConnectivityManager, get_network_link
from firewatch.display import WebDisplay
from firewatch.handoff import LatestValue
from firewatch.monitor import FireWatchMonitor
from firewatch.notifications import get_notifier
from firewatch.outputs import get_output_board
from firewatch.sensors import SensorAcquisition, get_sensor_array
from firewatch.telemetry import TelemetrySync
from firewatch.web.app import create_app, run_app

logger = logging.getLogger(__name__)

# Upper bound for each in-flight telemetry write or notification batch on shutdown
SHUTDOWN_DRAIN_SECONDS = 5.0


def setup_logging(config, debug: bool = False) -> None:
    """Configure logging based on config settings.

    Args:
        config: Configuration object
        debug: Enable debug mode
    """
    # Determine log level
    level = logging.DEBUG if debug else getattr(
        logging, config.logging.level.upper(), logging.INFO
    )

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.logging.file:
        log_file = config.resolve_path(config.logging.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=config.logging.max_size_mb * 1024 * 1024,
            backupCount=config.logging.backup_count,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Reduce verbosity of some noisy libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("kasa").setLevel(logging.WARNING)

    logger.info(f"Logging configured (level: {logging.getLevelName(level)})")


class FireWatchApp:
    """Main application class for Fire Watch.

    Coordinates all components and manages the application lifecycle.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        debug: bool = False,
        mock: bool = False,
        config: Optional[Config] = None,
    ):
        """Initialize the application.

        Args:
            config_path: Path to configuration file (None searches defaults)
            debug: Enable debug logging
            mock: Force mock mode regardless of config
            config: Already loaded configuration (skips loading)
        """
        self.config_path = config_path
        self.debug = debug
        self.force_mock = mock
        self.config = config

        # Components (initialized in start())
        self.sensors = None
        self.cloud_client = None
        self.classifier = None
        self.connectivity: Optional[ConnectivityManager] = None
        self.telemetry: Optional[TelemetrySync] = None
        self.actuation: Optional[ActuationController] = None
        self.display: Optional[WebDisplay] = None
        self.bridge: Optional[RemoteClassificationBridge] = None
        self.monitor: Optional[FireWatchMonitor] = None
        self.web_app = None
        self._web_thread: Optional[threading.Thread] = None
        self._bridge_task: Optional[asyncio.Task] = None

        self.stop_event: Optional[asyncio.Event] = None

    async def start(self) -> None:
        """Start the monitoring application."""
        if self.config is None:
            self.config = load_config(self.config_path)

        # Override mock mode if requested
        if self.force_mock:
            self.config.mock_mode = True

        setup_logging(self.config, self.debug)

        logger.info("=" * 50)
        logger.info("Fire Watch Starting")
        logger.info("=" * 50)
        logger.info(f"Device: {self.config.device.device_id} ({self.config.device.name})")
        logger.info(f"Mock mode: {self.config.mock_mode}")

        self.initialize_components()
        self._install_signal_handlers()

        try:
            await self._run_monitoring()
        finally:
            await self.shutdown()

    def initialize_components(self) -> None:
        """Initialize all system components."""
        config = self.config
        logger.info("Initializing components...")

        self.stop_event = asyncio.Event()

        logger.info("  - Sensors")
        self.sensors = get_sensor_array(config)
        acquisition = SensorAcquisition(
            self.sensors,
            gas_max_raw=config.sensors.gas_max_raw,
            settle_delay_seconds=config.sensors.settle_delay_seconds,
        )

        logger.info("  - Connectivity")
        self.cloud_client = get_cloud_client(config)
        self.connectivity = ConnectivityManager(
            get_network_link(config),
            cloud_client=self.cloud_client,
            poll_attempts=config.connectivity.poll_attempts,
            poll_interval_seconds=config.connectivity.poll_interval_seconds,
        )

        logger.info("  - Telemetry")
        self.telemetry = TelemetrySync(
            self.connectivity,
            self.cloud_client,
            base_path=config.cloud.base_path,
            device_id=config.device.device_id,
        )

        engine = LocalAlertEngine(config.thresholds.gas_danger)

        logger.info("  - Outputs")
        self.display = WebDisplay()
        self.actuation = ActuationController(
            get_output_board(config),
            get_notifier(config),
            self.display,
            messages=config.notifications.messages,
            device_name=config.device.name,
            alert_window_seconds=config.buzzer.alert_window_seconds,
            buzzer_on_seconds=config.buzzer.on_seconds,
            buzzer_off_seconds=config.buzzer.off_seconds,
            block_cycle=config.buzzer.block_cycle,
            fan_idle_on=config.outputs.fan.idle_on,
            describe=engine.describe,
            stop_event=self.stop_event,
        )

        local_slot: LatestValue = LatestValue()
        remote_slot: LatestValue = LatestValue()

        if config.classifier.enabled and self.cloud_client is not None:
            logger.info("  - Classification bridge")
            self.classifier = get_classifier(config)
            self.bridge = RemoteClassificationBridge(
                self.connectivity,
                self.cloud_client,
                self.telemetry.history_path,
                self.classifier,
                local_slot,
                remote_slot,
                interval_seconds=config.classifier.interval_seconds,
                window_size=config.classifier.window_size,
            )
        else:
            logger.info("  - Classification bridge disabled (local thresholds only)")

        logger.info("  - Monitor")
        self.monitor = FireWatchMonitor(
            self.connectivity,
            acquisition,
            engine,
            self.telemetry,
            self.actuation,
            local_slot,
            remote_slot,
            cycle_interval_seconds=config.monitor.cycle_interval_seconds,
            remote_max_age_seconds=config.classifier.effective_max_age_seconds,
            stop_event=self.stop_event,
        )

        if config.web.enabled:
            logger.info("  - Web Server")
            self.web_app = create_app(config, monitor=self.monitor, display=self.display)

        logger.info("All components initialized")

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform/thread; Ctrl+C still raises KeyboardInterrupt
                logger.debug(f"Cannot install handler for {sig.name}")

    def _handle_signal(self, sig) -> None:
        logger.info(f"Received signal {sig.name}")
        self.stop()

    def _start_web_server(self) -> None:
        """Start the web server in a background thread."""
        host = self.config.web.host
        port = self.config.web.port

        self._web_thread = threading.Thread(
            target=run_app,
            args=(self.web_app, host, port),
            daemon=True,
        )
        self._web_thread.start()
        logger.info(f"Web server started on http://{host}:{port}")

    async def _run_monitoring(self) -> None:
        """Run the control cycle and the classification bridge."""
        if self.web_app is not None:
            self._start_web_server()

        if self.bridge is not None:
            self._bridge_task = asyncio.create_task(self.bridge.run(self.stop_event))

        try:
            await self.monitor.run()
        except asyncio.CancelledError:
            logger.info("Monitoring cancelled")

    async def shutdown(self) -> None:
        """Clean shutdown of all components."""
        logger.info("Shutting down...")
        if self.stop_event is not None:
            self.stop_event.set()

        if self._bridge_task is not None:
            try:
                await asyncio.wait_for(self._bridge_task, timeout=SHUTDOWN_DRAIN_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("Classification bridge did not stop in time")
            self._bridge_task = None

        if self.telemetry is not None:
            try:
                await asyncio.wait_for(self.telemetry.drain(), timeout=SHUTDOWN_DRAIN_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("Last telemetry publish abandoned")

        # Outputs go to their safe state before anything else is torn down
        if self.actuation is not None:
            try:
                await asyncio.wait_for(self.actuation.drain(), timeout=SHUTDOWN_DRAIN_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("Pending notifications did not finish in time")
            try:
                await self.actuation.close()
            except Exception as e:
                logger.error(f"Error releasing outputs: {e}")

        if self.cloud_client is not None:
            await self.cloud_client.close()

        if self.classifier is not None:
            await self.classifier.close()

        if self.sensors is not None:
            self.sensors.close()

        logger.info("Shutdown complete")

    def stop(self) -> None:
        """Request application stop."""
        if self.monitor:
            self.monitor.stop()
        elif self.stop_event is not None:
            self.stop_event.set()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Fire Watch edge monitor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run with default config (config.local.yaml, then config.yaml)
    python -m firewatch.main

    # Run in debug mode with mock hardware
    python -m firewatch.main --debug --mock

    # Use custom config file
    python -m firewatch.main --config /path/to/config.yaml
        """
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to configuration file (default: config.local.yaml or config.yaml)"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--mock", "-m",
        action="store_true",
        help="Use mock hardware (for testing)"
    )
    args = parser.parse_args()

    # Check config file exists
    if args.config and not os.path.exists(args.config):
        print(f"Error: Config file not found: {args.config}")
        sys.exit(1)

    app = FireWatchApp(
        config_path=args.config,
        debug=args.debug,
        mock=args.mock,
    )

    try:
        asyncio.run(app.start())
    except KeyboardInterrupt:
        print("\nInterrupted")
    except Exception as e:
        print(f"Error: {e}")
        if args.debug:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
