"""
Tracking Coordinator
Owns calibration runs and tracking runs and drives the per-tick fusion
"""

import logging
import threading
from enum import Enum
from typing import Dict, List, Optional, Tuple

from tilt_tracker.exceptions import AlreadyActive, SensorUnavailable
from tilt_tracker.sensors.imu.calibration import (
    CalibrationResult,
    estimate_accelerometer,
    estimate_gyroscope,
)
from tilt_tracker.sensors.imu.config import SensorKind, TrackerConfig, TrackingMode
from tilt_tracker.sensors.imu.processor import FusionEngine, FusionState, tilt_magnitude
from tilt_tracker.sensors.provider import SensorProvider
from tilt_tracker.vector import Vector3

from .clock import CentralClock
from .session import AngleSample, SessionBuffer
from .ticker import IntervalTicker

logger = logging.getLogger(__name__)

# Slack on the max-duration check so float tick times land inside the window
_DURATION_EPSILON = 1e-9


class CoordinatorState(str, Enum):
    IDLE = 'idle'
    CALIBRATING = 'calibrating'
    TRACKING = 'tracking'


class TrackingCoordinator:
    """
    Coordinates calibration and tilt tracking for one accelerometer/gyroscope pair

    Responsibilities:
    - Run the calibrating and tracking state machines (never both at once)
    - Collect calibration samples and hold the current calibration per sensor
    - Start/stop sensor acquisition for whatever the active run needs
    - Run one fusion step per tick and feed the session buffer
    - Enforce the maximum run duration and report sensor health

    Every public entry point takes the same re-entrant lock, so ticks,
    sensor callbacks, the timeout and stop requests are serialised.
    """

    def __init__(
            self,
            provider: SensorProvider,
            config: Optional[TrackerConfig] = None,
            clock: Optional[CentralClock] = None,
            scheduled: bool = True
    ):
        """
        Initialize tracking coordinator

        Args:
            provider: Sensor provider delivering raw samples
            config: Tracker configuration
            clock: Shared clock for tick times
            scheduled: If True, tracking runs arm their own ticker and
                       timeout; if False the caller drives on_tick()
        """
        self.provider = provider
        self.config = config if config else TrackerConfig()
        self.clock = clock if clock else CentralClock()
        self.scheduled = scheduled

        self._lock = threading.RLock()
        self._state = CoordinatorState.IDLE
        self._mode = self.config.mode

        # Calibration
        self._calibrations: Dict[SensorKind, CalibrationResult] = {
            SensorKind.ACCELEROMETER: CalibrationResult.uncalibrated(SensorKind.ACCELEROMETER),
            SensorKind.GYROSCOPE: CalibrationResult.uncalibrated(SensorKind.GYROSCOPE),
        }
        self._calibration_kind: Optional[SensorKind] = None
        self._calibration_samples: Dict[SensorKind, List[Vector3]] = {
            SensorKind.ACCELEROMETER: [],
            SensorKind.GYROSCOPE: [],
        }
        self.samples_collected = 0

        # Tracking
        self.session = SessionBuffer(
            tick_interval=self.config.tick_interval,
            admission=self.config.admission,
            min_spacing_ratio=self.config.min_spacing_ratio,
        )
        self._fusion_state: Optional[FusionState] = None
        self._engine: Optional[FusionEngine] = None
        self._run_start: Optional[float] = None
        self._tilt_magnitude = 0.0
        self._ticker: Optional[IntervalTicker] = None
        self._timeout: Optional[threading.Timer] = None

        # Health
        self.tick_count = 0
        self.consecutive_failures = 0
        self.total_failures = 0

        self.provider.set_listener(self.on_sample)

        logger.info(f"Tracking Coordinator initialized (mode={self._mode.value})")

    # -----------------------------------------------------------------------
    # Read side
    # -----------------------------------------------------------------------

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def mode(self) -> TrackingMode:
        return self._mode

    @property
    def is_tracking(self) -> bool:
        return self._state is CoordinatorState.TRACKING

    @property
    def is_calibrating(self) -> bool:
        return self._state is CoordinatorState.CALIBRATING

    @property
    def accel_calibration(self) -> CalibrationResult:
        return self._calibrations[SensorKind.ACCELEROMETER]

    @property
    def gyro_calibration(self) -> CalibrationResult:
        return self._calibrations[SensorKind.GYROSCOPE]

    @property
    def calibration_kind(self) -> Optional[SensorKind]:
        return self._calibration_kind

    @property
    def calibration_progress(self) -> Tuple[int, int]:
        """(samples collected, samples required) for the current calibration run."""
        return self.samples_collected, self.config.total_samples

    @property
    def fusion_state(self) -> Optional[FusionState]:
        """Accumulators of the active run; None when not tracking."""
        return self._fusion_state

    @property
    def tilt_magnitude(self) -> float:
        """sqrt(x^2 + y^2) of the fused angle; 0 outside complementary tracking."""
        return self._tilt_magnitude

    def snapshot(self) -> List[AngleSample]:
        return self.session.snapshot()

    # -----------------------------------------------------------------------
    # Calibration
    # -----------------------------------------------------------------------

    def start_calibration(self, kind: SensorKind):
        """
        Begin collecting stationary samples for one sensor.

        Args:
            kind: Sensor to calibrate

        Raises:
            AlreadyActive: if a calibration or tracking run is active
        """
        kind = SensorKind(kind)
        with self._lock:
            if self._state is not CoordinatorState.IDLE:
                raise AlreadyActive(self._state.value, f"{kind.value} calibration")

            self._calibration_samples[kind] = []
            self.samples_collected = 0
            self._calibration_kind = kind
            self._state = CoordinatorState.CALIBRATING

            try:
                self.provider.start(kind, self.config.sensor_interval)
            except Exception as e:
                logger.error(f"✗ Failed to start {kind.value} for calibration: {e}", exc_info=True)
                self._calibration_kind = None
                self._state = CoordinatorState.IDLE
                raise

            logger.info(f"Calibrating {kind.value}: collecting {self.config.total_samples} samples")

    def on_sample(self, kind: SensorKind, sample: Vector3):
        """
        Sensor listener: collects calibration samples.

        Completes the calibration once the configured number of samples
        has arrived. Samples outside a calibration run are ignored; tracking
        reads the provider's latest value at tick time instead.
        """
        with self._lock:
            if self._state is not CoordinatorState.CALIBRATING or kind != self._calibration_kind:
                return

            samples = self._calibration_samples[kind]
            samples.append(sample)
            self.samples_collected = len(samples)

            if self.samples_collected >= self.config.total_samples:
                self.finish_calibration()

    def finish_calibration(self) -> Optional[CalibrationResult]:
        """
        Compute and store the calibration, stop acquisition, return to idle.

        Safe to call at any time; does nothing unless calibrating.

        Returns:
            The new CalibrationResult, or None if no calibration was running

        Raises:
            InsufficientSamples: if fewer than total_samples were collected;
                                 the run still ends and the stored
                                 calibration is left unchanged
        """
        with self._lock:
            if self._state is not CoordinatorState.CALIBRATING:
                return None

            kind = self._calibration_kind
            samples = list(self._calibration_samples[kind])

            self._calibration_kind = None
            self._state = CoordinatorState.IDLE
            self._stop_provider()

            try:
                if kind is SensorKind.ACCELEROMETER:
                    result = estimate_accelerometer(
                        samples,
                        required=self.config.total_samples,
                        gravity_offset=self.config.gravity_offset,
                    )
                else:
                    result = estimate_gyroscope(samples, required=self.config.total_samples)
            except Exception as e:
                logger.warning(f"✗ {kind.value} calibration failed: {e}")
                raise

            self._calibrations[kind] = result
            logger.info(f"✓ {kind.value} calibration complete ({result.sample_count} samples)")
            logger.info(f"  Bias:  {result.bias.format()}")
            logger.info(f"  Noise: {result.noise.format()}")
            return result

    def cancel_calibration(self) -> bool:
        """
        Abandon the current calibration run, keeping the stored calibration.

        Returns:
            True if a calibration run was cancelled.
        """
        with self._lock:
            if self._state is not CoordinatorState.CALIBRATING:
                return False

            kind = self._calibration_kind
            self._calibration_kind = None
            self._state = CoordinatorState.IDLE
            self._stop_provider()
            logger.info(f"{kind.value} calibration cancelled after {self.samples_collected} samples")
            return True

    # -----------------------------------------------------------------------
    # Tracking
    # -----------------------------------------------------------------------

    def set_mode(self, mode: TrackingMode):
        """
        Select the tracking mode for the next run.

        Raises:
            AlreadyActive: while a tracking run is active
        """
        mode = TrackingMode(mode)
        with self._lock:
            if self._state is CoordinatorState.TRACKING:
                raise AlreadyActive(self._state.value, "mode change")
            self._mode = mode

    def start_tracking(self, mode: Optional[TrackingMode] = None):
        """
        Start a tracking run.

        Resets the fusion state and the session, starts the sensors the
        mode needs, and (when scheduled) arms the ticker and the
        maximum-duration timeout.

        Args:
            mode: Tracking mode; the currently selected one if omitted

        Raises:
            AlreadyActive: if a calibration or tracking run is active
        """
        with self._lock:
            if self._state is not CoordinatorState.IDLE:
                raise AlreadyActive(self._state.value, "tracking")
            if mode is not None:
                self._mode = TrackingMode(mode)

            for kind in self._mode.required_sensors:
                if not self._calibrations[kind].is_valid(self.config.total_samples):
                    logger.warning(f"{kind.value} not calibrated, tracking with zero bias")

            self.session.reset()
            self._fusion_state = FusionState()
            self._engine = FusionEngine(
                self.config,
                accel_calibration=self.accel_calibration,
                gyro_calibration=self.gyro_calibration,
            )
            self._tilt_magnitude = 0.0
            self.tick_count = 0
            self.consecutive_failures = 0
            self.total_failures = 0
            self._run_start = self.clock.now()
            self._state = CoordinatorState.TRACKING

            try:
                for kind in self._mode.required_sensors:
                    self.provider.start(kind, self.config.sensor_interval)
            except Exception as e:
                logger.error(f"✗ Failed to start sensors for {self._mode.value} tracking: {e}", exc_info=True)
                self.stop_tracking()
                raise

            if self.scheduled:
                self._timeout = threading.Timer(self.config.max_duration, self._on_timeout)
                self._timeout.daemon = True
                self._timeout.start()

                self._ticker = IntervalTicker(
                    self.config.tick_interval,
                    self.on_tick,
                    name="Tracking-Tick-Thread",
                )
                self._ticker.start()

            logger.info(
                f"✓ Tracking started: mode={self._mode.value}, "
                f"tick={self.config.tick_interval}s, max={self.config.max_duration}s"
            )

    def on_tick(self, now: Optional[float] = None) -> Optional[AngleSample]:
        """
        Run one fixed-interval tick.

        Reads the latest sample of each sensor the mode needs, computes
        the angle and offers it to the session buffer. A tick past the
        maximum duration ends the run. A tick without a sensor sample is
        skipped and counted against sensor health; the run continues.

        Args:
            now: Clock reading for this tick; read from the clock if omitted

        Returns:
            The admitted AngleSample, or None if the tick was a no-op,
            skipped, or not admitted by the session buffer
        """
        with self._lock:
            if self._state is not CoordinatorState.TRACKING:
                return None

            if now is None:
                now = self.clock.now()
            elapsed = max(0.0, now - self._run_start)

            if elapsed > self.config.max_duration + _DURATION_EPSILON:
                logger.info(f"Maximum duration {self.config.max_duration}s reached")
                self.stop_tracking()
                return None

            self.tick_count += 1
            try:
                accel, gyro = self._read_samples()
                angle_x, angle_y = self._engine.step(self._fusion_state, self._mode, elapsed, accel, gyro)
            except SensorUnavailable as e:
                self._record_failure(e)
                return None

            if self.consecutive_failures:
                logger.info(f"Sensor samples recovered after {self.consecutive_failures} skipped tick(s)")
            self.consecutive_failures = 0

            if self._mode is TrackingMode.COMPLEMENTARY:
                self._tilt_magnitude = tilt_magnitude(angle_x, angle_y)

            if not self.session.append(angle_x, angle_y, elapsed):
                return None

            logger.debug(f"t={elapsed:.3f}s x={angle_x:.2f} y={angle_y:.2f}")
            return AngleSample(elapsed, angle_x, angle_y)

    def stop_tracking(self) -> bool:
        """
        End the tracking run. Keeps the session for display.

        Safe to call at any time; a tick arriving afterwards is a no-op.

        Returns:
            True if a tracking run was stopped.
        """
        with self._lock:
            if self._state is not CoordinatorState.TRACKING:
                return False

            ticker, timeout = self._ticker, self._timeout
            self._ticker = None
            self._timeout = None

            self._state = CoordinatorState.IDLE
            self._fusion_state = None
            self._engine = None
            self._tilt_magnitude = 0.0
            self._stop_provider()

            logger.info(f"✓ Tracking stopped: {len(self.session)} samples, {self.total_failures} skipped ticks")

        # Outside the lock: the tick thread may be waiting on it
        if timeout:
            timeout.cancel()
        if ticker:
            ticker.cancel()
        return True

    def stop(self):
        """Stop whatever run is active."""
        self.stop_tracking()
        self.cancel_calibration()

    # -----------------------------------------------------------------------
    # Health / status
    # -----------------------------------------------------------------------

    def get_health(self) -> dict:
        """
        Sensor health for the current (or last) tracking run.

        Returns:
            dict: healthy flag plus tick and failure counters
        """
        return {
            'healthy': self.consecutive_failures < self.config.unhealthy_after,
            'ticks': self.tick_count,
            'consecutive_failures': self.consecutive_failures,
            'total_failures': self.total_failures,
        }

    def get_status(self) -> dict:
        """
        Get overall coordinator status

        Returns:
            dict: State, mode, calibration, session and health information
        """
        status = {
            'state': self._state.value,
            'mode': self._mode.value,
            'calibration_progress': self.calibration_progress,
            'accel_calibration': self.accel_calibration.as_dict(),
            'gyro_calibration': self.gyro_calibration.as_dict(),
            'tilt_magnitude': self._tilt_magnitude,
            'session': self.session.get_status(),
            'health': self.get_health(),
        }

        # Try to get status if provider implements get_status()
        if hasattr(self.provider, 'get_status'):
            status['provider'] = self.provider.get_status()

        return status

    # -----------------------------------------------------------------------
    # Private helpers
    # -----------------------------------------------------------------------

    def _read_samples(self) -> Tuple[Optional[Vector3], Optional[Vector3]]:
        readings: Dict[SensorKind, Optional[Vector3]] = {
            SensorKind.ACCELEROMETER: None,
            SensorKind.GYROSCOPE: None,
        }
        for kind in self._mode.required_sensors:
            try:
                readings[kind] = self.provider.latest_sample(kind)
            except SensorUnavailable:
                raise
            except Exception as e:
                logger.error(f"✗ Error reading {kind.value}: {e}", exc_info=True)
                raise SensorUnavailable(kind.value, reason=str(e)) from e

        return readings[SensorKind.ACCELEROMETER], readings[SensorKind.GYROSCOPE]

    def _record_failure(self, error: SensorUnavailable):
        self.consecutive_failures += 1
        self.total_failures += 1

        if self.consecutive_failures == 1:
            logger.warning(f"Skipped tick: {error}")
        else:
            logger.debug(f"Skipped tick: {error}")

        if self.consecutive_failures == self.config.unhealthy_after:
            logger.warning(f"⚠ Sensor unhealthy: {self.consecutive_failures} consecutive skipped ticks")

    def _on_timeout(self):
        logger.info(f"Tracking timeout after {self.config.max_duration}s")
        self.stop_tracking()

    def _stop_provider(self):
        try:
            self.provider.stop()
        except Exception as e:
            logger.error(f"✗ Error stopping sensors: {e}", exc_info=True)

    # -----------------------------------------------------------------------
    # Dunder helpers
    # -----------------------------------------------------------------------

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - cleanup"""
        self.stop()

    def __repr__(self):
        return f"<TrackingCoordinator(state={self._state.value}, mode={self._mode.value})>"
