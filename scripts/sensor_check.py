#!/usr/bin/env python3
"""Read the sensor array a few times and print the samples.

Useful after wiring a node, before starting the full monitor.

Usage:
    python scripts/sensor_check.py [--config CONFIG] [--count N] [--mock]
"""
import argparse
import asyncio
import logging
import sys

from firewatch.alert_engine import LocalAlertEngine
from firewatch.config import get_default_config, load_config
from firewatch.exceptions import HardwareError
from firewatch.models import ReadFailure
from firewatch.sensors import SensorAcquisition, get_sensor_array


async def check(config, count):
    try:
        sensors = get_sensor_array(config)
    except HardwareError as e:
        print(f"Sensor init failed: {e}")
        return False

    acquisition = SensorAcquisition(
        sensors,
        gas_max_raw=config.sensors.gas_max_raw,
        settle_delay_seconds=config.sensors.settle_delay_seconds,
    )
    engine = LocalAlertEngine(config.thresholds.gas_danger)

    ok = 0
    try:
        for i in range(count):
            sample = await acquisition.sample()
            if isinstance(sample, ReadFailure):
                print(f"[{i + 1}] read failed: {sample.reason}")
                continue
            ok += 1
            verdict = engine.evaluate(sample)
            print(
                f"[{i + 1}] temp={sample.temperature:.1f}C hum={sample.humidity:.1f}% "
                f"gas={sample.gas_level} flame={'YES' if sample.flame_detected else 'no'} "
                f"-> {verdict.level.value}"
            )
            await asyncio.sleep(1)
    finally:
        sensors.close()

    print(f"{ok}/{count} good samples")
    return ok > 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Fire Watch sensor check")
    parser.add_argument("--config", "-c", default=None, help="Path to configuration file")
    parser.add_argument("--count", "-n", type=int, default=5, help="Number of samples")
    parser.add_argument("--mock", "-m", action="store_true", help="Use mock sensors")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        config = get_default_config()
    if args.mock:
        config.mock_mode = True

    sys.exit(0 if asyncio.run(check(config, args.count)) else 1)
