#!/usr/bin/env python3
"""
Tilt Tracker - Main Entry Point
Runs the full calibration + tracking flow against a simulated IMU:
  1. Start central clock
  2. Build simulated sensor provider and tracking coordinator
  3. Calibrate accelerometer and gyroscope (unless --skip-calibration)
  4. Track in the selected mode for --duration seconds
  5. Print session summary

Usage:
    python run.py                                   # complementary, 10 s
    python run.py --mode accelerometer --duration 5
    python run.py --pitch 20 --roll -10 --high-rate
"""

import sys
import time
import signal
import logging
import argparse
from dataclasses import replace

from tilt_tracker import (
    CentralClock,
    SensorKind,
    SimulatedSensorProvider,
    TrackerConfig,
    TrackingCoordinator,
    TrackingMode,
)
from tilt_tracker.sensors.imu import tilt_magnitude

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger('tilt_tracker')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Tilt Tracker - simulated IMU run')
    parser.add_argument(
        '--mode', choices=[m.value for m in TrackingMode], default=TrackingMode.COMPLEMENTARY.value,
        help='Angle source (default: complementary)'
    )
    parser.add_argument(
        '--duration', type=float, default=10.0,
        help='How long to track in seconds (default: 10, capped by max duration)'
    )
    parser.add_argument('--pitch', type=float, default=0.0, help='Simulated pitch in degrees')
    parser.add_argument('--roll', type=float, default=0.0, help='Simulated roll in degrees')
    parser.add_argument(
        '--samples', type=int, default=200,
        help='Calibration samples per sensor (default: 200)'
    )
    parser.add_argument(
        '--high-rate', action='store_true',
        help='Use the 0.02s raw-angle variant instead of the 0.05s smoothed one'
    )
    parser.add_argument('--skip-calibration', action='store_true', help='Track with zero bias')
    parser.add_argument('--seed', type=int, default=None, help='Random seed for the simulated IMU')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser.parse_args(argv)


def build_config(args) -> TrackerConfig:
    mode = TrackingMode(args.mode)
    config = TrackerConfig.for_high_rate(mode) if args.high_rate else TrackerConfig.for_session(mode)
    return replace(config, total_samples=args.samples)


def wait_for_calibration(coordinator: TrackingCoordinator, timeout: float) -> bool:
    """Block until the running calibration completes. Returns False on timeout."""
    deadline = time.monotonic() + timeout
    while coordinator.is_calibrating:
        if time.monotonic() > deadline:
            return False
        time.sleep(0.1)
    return True


def calibrate(coordinator: TrackingCoordinator, provider: SimulatedSensorProvider, config: TrackerConfig) -> bool:
    # Calibration assumes the device lies level and still
    provider.set_tilt(0.0, 0.0)
    timeout = config.total_samples * config.sensor_interval * 3 + 5

    for kind in (SensorKind.ACCELEROMETER, SensorKind.GYROSCOPE):
        coordinator.start_calibration(kind)
        if not wait_for_calibration(coordinator, timeout):
            collected, total = coordinator.calibration_progress
            logger.error(f"✗ {kind.value} calibration timed out ({collected}/{total} samples)")
            coordinator.cancel_calibration()
            return False

    print(f"  Accelerometer Bias:  {coordinator.accel_calibration.bias.format()}")
    print(f"  Accelerometer Noise: {coordinator.accel_calibration.noise.format()}")
    print(f"  Gyroscope Bias:      {coordinator.gyro_calibration.bias.format()}")
    print(f"  Gyroscope Noise:     {coordinator.gyro_calibration.noise.format()}")
    return True


def print_summary(coordinator: TrackingCoordinator, mode: TrackingMode):
    session = coordinator.snapshot()
    health = coordinator.get_health()

    print("-" * 50)
    print(f"  Samples     : {len(session)}")
    if session:
        last = session[-1]
        print(f"  Duration    : {last.time_seconds:.2f}s")
        print(f"  Last pitch  : {last.angle_x:+.2f}°")
        print(f"  Last roll   : {last.angle_y:+.2f}°")
        if mode is TrackingMode.COMPLEMENTARY:
            print(f"  Last |tilt| : {tilt_magnitude(last.angle_x, last.angle_y):.2f}°")
    print(f"  Skipped     : {health['total_failures']} tick(s)")
    print("-" * 50)


def main(argv=None):
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    print()
    print("=" * 50)
    print("  Tilt Tracker")
    print("=" * 50)
    print()

    config = build_config(args)

    # 1. Start central clock
    clock = CentralClock()
    logger.info(f"✓ Central clock started: {clock}")

    # 2. Build provider + coordinator
    provider = SimulatedSensorProvider(
        accel_bias=(0.01, -0.02, 0.015),
        accel_noise=0.005,
        gyro_bias=(0.002, -0.001, 0.0005),
        gyro_noise=0.001,
        seed=args.seed,
    )
    coordinator = TrackingCoordinator(provider, config=config, clock=clock)

    # Handle SIGTERM gracefully
    def shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping tracker...")
        coordinator.stop()
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    with coordinator:
        # 3. Calibrate
        if not args.skip_calibration:
            print("Calibrating (keep the device still)...")
            if not calibrate(coordinator, provider, config):
                print("\n✗ Calibration failed.")
                return 1
            print()

        # 4. Track
        provider.set_tilt(args.pitch, args.roll)
        duration = min(args.duration, config.max_duration)
        print(f"Tracking in {config.mode.value} mode for {duration:.1f} seconds...\n")

        coordinator.start_tracking(config.mode)
        start = time.monotonic()
        last_print = 0.0

        while coordinator.is_tracking and time.monotonic() - start < duration:
            if time.monotonic() - last_print >= 2.0:
                last = coordinator.session.last
                if last:
                    line = f"[{last.time_seconds:5.1f}s] x={last.angle_x:+7.2f}°  y={last.angle_y:+7.2f}°"
                    if config.mode is TrackingMode.COMPLEMENTARY:
                        line += f"  |tilt|={coordinator.tilt_magnitude:6.2f}°"
                    print(line)
                last_print = time.monotonic()
            time.sleep(0.1)

        coordinator.stop_tracking()

    # 5. Summary
    print()
    print_summary(coordinator, config.mode)
    print("\n✓ Tilt tracking complete.")
    return 0


if __name__ == '__main__':
    sys.exit(main())
