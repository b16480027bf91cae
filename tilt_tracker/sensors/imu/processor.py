"""
IMU Orientation Processor
Tilt from gravity, gyro integration and complementary fusion of both

Per-tick pipeline:
- Accelerometer: bias-corrected gravity vector -> pitch/roll (noisy, drift-free)
- Gyroscope: bias-corrected rate integrated over dt (smooth, drifts)
- Complementary: alpha * (previous + gyro delta) + (1 - alpha) * accel angle,
  with an optional low-pass stage on the accel angle

Angles are in degrees and angular rates in rad/s.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from tilt_tracker.exceptions import DegenerateGeometry, SensorUnavailable
from tilt_tracker.vector import Vector3

from .calibration import CalibrationResult
from .config import SensorKind, TrackerConfig, TrackingMode

logger = logging.getLogger(__name__)

RAD_TO_DEG = 180.0 / math.pi


# ---------------------------------------------------------------------------
# Tilt calculator
# ---------------------------------------------------------------------------

def _tilt_components(v: Vector3) -> Tuple[float, float]:
    if not v.is_finite():
        raise DegenerateGeometry(f"Non-finite accelerometer vector {v.format()}")
    if v.x == 0.0 and v.y == 0.0 and v.z == 0.0:
        raise DegenerateGeometry("Zero-magnitude accelerometer vector")

    # hypot keeps large finite components from overflowing
    pitch = np.arctan2(v.y, np.hypot(v.x, v.z)) * RAD_TO_DEG
    roll = np.arctan2(-v.x, np.hypot(v.y, v.z)) * RAD_TO_DEG
    return float(pitch), float(roll)


def tilt(accel: Vector3, bias: Vector3) -> Tuple[float, float]:
    """
    Pitch and roll from a raw accelerometer vector.

    Assumes z is aligned with gravity at rest:
        pitch = atan2(y, sqrt(x^2 + z^2))
        roll  = atan2(-x, sqrt(y^2 + z^2))

    Args:
        accel: Raw accelerometer sample (g)
        bias: Accelerometer bias to subtract

    Returns:
        (pitch, roll) in degrees. A zero-magnitude corrected vector has
        no defined tilt and yields (0.0, 0.0).
    """
    corrected = accel - bias
    try:
        return _tilt_components(corrected)
    except DegenerateGeometry as e:
        logger.debug(f"Degenerate tilt, defaulting to level: {e}")
        return 0.0, 0.0


# ---------------------------------------------------------------------------
# Gyro integrator / complementary fuser
# ---------------------------------------------------------------------------

def _gyro_delta(rate: float, bias: float, dt: float, sign: float) -> float:
    if not math.isfinite(dt) or dt <= 0.0:
        return 0.0
    delta = sign * (rate - bias) * dt * RAD_TO_DEG
    return delta if math.isfinite(delta) else 0.0


def integrate(prev_angle: float, rate: float, bias: float, dt: float, sign: float = 1.0) -> float:
    """
    Integrate one bias-corrected angular rate step.

    Args:
        prev_angle: Accumulated angle so far (degrees)
        rate: Raw angular rate (rad/s)
        bias: Gyro bias for this axis (rad/s)
        dt: Seconds since the previous tick; <= 0 adds nothing
        sign: Rotation sign convention (+1 or -1)

    Returns:
        New accumulated angle in degrees. A non-finite step adds nothing.
    """
    return prev_angle + _gyro_delta(rate, bias, dt, sign)


def fuse(
        prev_fused: float,
        gyro_rate: float,
        bias: float,
        dt: float,
        accel_angle: float,
        alpha: float,
        sign: float = 1.0
) -> float:
    """
    One complementary filter step.

    fused = alpha * (prev_fused + gyro_delta) + (1 - alpha) * accel_angle

    alpha is tuned for a fixed dt; running the filter at a different
    tick interval moves its crossover frequency.

    Raises:
        ValueError: if alpha is outside [0, 1]
    """
    if not 0.0 <= alpha <= 1.0:
        raise ValueError(f"alpha must be within [0, 1], got {alpha}")
    gyro_delta = _gyro_delta(gyro_rate, bias, dt, sign)
    return alpha * (prev_fused + gyro_delta) + (1.0 - alpha) * accel_angle


def low_pass(raw: float, previous: float, beta: float) -> float:
    """First-order smoothing: beta * raw + (1 - beta) * previous."""
    return beta * raw + (1.0 - beta) * previous


def tilt_magnitude(angle_x: float, angle_y: float) -> float:
    return math.hypot(angle_x, angle_y)


def complementary_alpha(time_constant: float, dt: float) -> float:
    """
    Derive alpha for a tick interval from a filter time constant.

    alpha = tau / (tau + dt); a larger tau trusts the gyro for longer.

    Raises:
        ValueError: if time_constant or dt is not positive
    """
    if time_constant <= 0:
        raise ValueError(f"time_constant must be positive, got {time_constant}")
    if dt <= 0:
        raise ValueError(f"dt must be positive, got {dt}")
    return time_constant / (time_constant + dt)


# ---------------------------------------------------------------------------
# Per-run state and tick engine
# ---------------------------------------------------------------------------

@dataclass
class FusionState:
    """
    Accumulators for one tracking run.

    last_update is None until the first tick seeds it; that first tick
    integrates nothing.
    """

    gyro_x: float = 0.0
    gyro_y: float = 0.0
    fused_x: float = 0.0
    fused_y: float = 0.0
    smoothed_x: float = 0.0
    smoothed_y: float = 0.0
    last_update: Optional[float] = None

    def advance(self, now: float) -> float:
        """
        Move the integration clock to now.

        Returns:
            Seconds since the previous tick, or 0.0 on the seeding tick
            (and if the clock did not move forward).
        """
        if self.last_update is None:
            self.last_update = now
            return 0.0

        dt = now - self.last_update
        self.last_update = now
        return dt if dt > 0.0 else 0.0


class FusionEngine:
    """
    Tick-level orientation computation for one tracking run.

    Holds the configuration and the calibration snapshot taken at run
    start. All mutable accumulators live in the FusionState passed to
    step(), so the engine can be driven by any scheduler.
    """

    def __init__(
            self,
            config: TrackerConfig,
            accel_calibration: Optional[CalibrationResult] = None,
            gyro_calibration: Optional[CalibrationResult] = None
    ):
        self.config = config
        self.accel_calibration = accel_calibration or CalibrationResult.uncalibrated(SensorKind.ACCELEROMETER)
        self.gyro_calibration = gyro_calibration or CalibrationResult.uncalibrated(SensorKind.GYROSCOPE)

    def step(
            self,
            state: FusionState,
            mode: TrackingMode,
            now: float,
            accel: Optional[Vector3] = None,
            gyro: Optional[Vector3] = None
    ) -> Tuple[float, float]:
        """
        Compute the angle for one tick.

        Args:
            state: Accumulators for the current run (mutated)
            mode: Angle source
            now: Tick time in seconds since run start
            accel: Latest accelerometer sample, if any
            gyro: Latest gyroscope sample, if any

        Returns:
            (angle_x, angle_y) in degrees: pitch/roll from the accelerometer,
            the integrated gyro angle, or the fused angle.

        Raises:
            SensorUnavailable: if a sensor the mode needs has no sample,
                               or the gyro sample is not finite;
                               state is left untouched
        """
        mode = TrackingMode(mode)
        if mode in (TrackingMode.ACCELEROMETER, TrackingMode.COMPLEMENTARY) and accel is None:
            raise SensorUnavailable(SensorKind.ACCELEROMETER.value)
        if mode in (TrackingMode.GYROSCOPE, TrackingMode.COMPLEMENTARY) and gyro is None:
            raise SensorUnavailable(SensorKind.GYROSCOPE.value)
        if gyro is not None and mode is not TrackingMode.ACCELEROMETER and not gyro.is_finite():
            raise SensorUnavailable(SensorKind.GYROSCOPE.value, reason=f"non-finite sample {gyro.format()}")

        if mode is TrackingMode.ACCELEROMETER:
            state.advance(now)
            return tilt(accel, self.accel_calibration.bias)

        if mode is TrackingMode.GYROSCOPE:
            return self._integrate_gyro(state, now, gyro)

        return self._fuse(state, now, accel, gyro)

    def _integrate_gyro(self, state: FusionState, now: float, gyro: Vector3) -> Tuple[float, float]:
        dt = state.advance(now)
        bias = self.gyro_calibration.bias
        sign = self.config.gyro_sign

        state.gyro_x = integrate(state.gyro_x, gyro.x, bias.x, dt, sign)
        state.gyro_y = integrate(state.gyro_y, gyro.y, bias.y, dt, sign)
        return state.gyro_x, state.gyro_y

    def _fuse(self, state: FusionState, now: float, accel: Vector3, gyro: Vector3) -> Tuple[float, float]:
        dt = state.advance(now)
        bias = self.gyro_calibration.bias
        sign = self.config.gyro_sign
        alpha = self.config.alpha

        raw_x, raw_y = tilt(accel, self.accel_calibration.bias)

        beta = self.config.accel_smoothing
        if beta is None:
            ref_x, ref_y = raw_x, raw_y
        else:
            state.smoothed_x = low_pass(raw_x, state.smoothed_x, beta)
            state.smoothed_y = low_pass(raw_y, state.smoothed_y, beta)
            ref_x, ref_y = state.smoothed_x, state.smoothed_y

        # Gyro-only angle is kept alongside for drift inspection
        state.gyro_x = integrate(state.gyro_x, gyro.x, bias.x, dt, sign)
        state.gyro_y = integrate(state.gyro_y, gyro.y, bias.y, dt, sign)

        state.fused_x = fuse(state.fused_x, gyro.x, bias.x, dt, ref_x, alpha, sign)
        state.fused_y = fuse(state.fused_y, gyro.y, bias.y, dt, ref_y, alpha, sign)
        return state.fused_x, state.fused_y
