"""
IMU Tracking Configuration
Calibration, fusion and session parameters for accelerometer/gyroscope tilt tracking
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class SensorKind(str, Enum):
    """Sensor classes that can be calibrated."""

    ACCELEROMETER = 'accelerometer'
    GYROSCOPE = 'gyroscope'


class TrackingMode(str, Enum):
    """Angle source used while tracking."""

    ACCELEROMETER = 'accelerometer'
    GYROSCOPE = 'gyroscope'
    COMPLEMENTARY = 'complementary'

    @property
    def required_sensors(self) -> Tuple[SensorKind, ...]:
        if self is TrackingMode.ACCELEROMETER:
            return (SensorKind.ACCELEROMETER,)
        if self is TrackingMode.GYROSCOPE:
            return (SensorKind.GYROSCOPE,)
        return (SensorKind.ACCELEROMETER, SensorKind.GYROSCOPE)


class AdmissionPolicy(str, Enum):
    """How the session buffer admits new angle samples."""

    EVERY_TICK = 'every_tick'
    MIN_SPACING = 'min_spacing'


@dataclass
class TrackerConfig:
    """
    Configuration for calibration and tilt tracking.

    Defaults reproduce the 0.05 s smoothed variant: alpha tuned for a
    0.05 s tick, low-pass smoothing on the accelerometer reference and
    admission gating at 0.9 x tick interval.
    """

    # Tracking mode used when start_tracking() gets no explicit mode
    mode: TrackingMode = TrackingMode.ACCELEROMETER

    # Calibration settings
    total_samples: int = 500  # Samples per calibration run
    gravity_offset: Tuple[float, float, float] = (0.0, 0.0, 1.0)  # Resting gravity reads -1 g on z

    # Sampling settings
    sensor_interval: float = 0.05  # Requested sensor update interval (s)
    tick_interval: float = 0.05  # Fusion tick interval (s)

    # Complementary filter settings
    alpha: float = 0.99  # Gyro weight, calibrated against tick_interval
    accel_smoothing: Optional[float] = 0.2  # Low-pass beta on accel angle, None disables
    gyro_sign: float = 1.0  # +1 integrates (rate - bias), -1 integrates -(rate - bias)

    # Session settings
    max_duration: float = 60.0  # Seconds before a run is force-stopped
    admission: AdmissionPolicy = AdmissionPolicy.MIN_SPACING
    min_spacing_ratio: float = 0.9  # Fraction of tick_interval between accepted samples

    # Health settings
    unhealthy_after: int = 10  # Consecutive skipped ticks before reporting unhealthy

    def __post_init__(self):
        self.mode = TrackingMode(self.mode)
        self.admission = AdmissionPolicy(self.admission)

        if self.total_samples < 1:
            raise ValueError(f"total_samples must be >= 1, got {self.total_samples}")
        if self.sensor_interval <= 0 or self.tick_interval <= 0:
            raise ValueError("sensor_interval and tick_interval must be positive")
        if not 0.0 <= self.alpha <= 1.0:
            raise ValueError(f"alpha must be within [0, 1], got {self.alpha}")
        if self.accel_smoothing is not None and not 0.0 < self.accel_smoothing <= 1.0:
            raise ValueError(f"accel_smoothing must be within (0, 1], got {self.accel_smoothing}")
        if self.gyro_sign not in (1.0, -1.0):
            raise ValueError(f"gyro_sign must be +1 or -1, got {self.gyro_sign}")
        if self.max_duration <= 0:
            raise ValueError(f"max_duration must be positive, got {self.max_duration}")
        if len(self.gravity_offset) != 3:
            raise ValueError("gravity_offset needs 3 components")

    @classmethod
    def for_session(cls, mode: TrackingMode = TrackingMode.COMPLEMENTARY) -> 'TrackerConfig':
        """
        Create a configuration for the smoothed 0.05 s tracking variant.

        Returns:
            TrackerConfig with accelerometer smoothing and admission gating.
        """
        config = cls(
            mode=mode,
            sensor_interval=0.05,
            tick_interval=0.05,
            accel_smoothing=0.2,
            admission=AdmissionPolicy.MIN_SPACING,
        )
        return config

    @classmethod
    def for_high_rate(cls, mode: TrackingMode = TrackingMode.COMPLEMENTARY) -> 'TrackerConfig':
        """
        Create a configuration for the 0.02 s raw-angle variant.

        The accelerometer angle is blended directly (no smoothing) and
        every tick is admitted to the session.

        Returns:
            TrackerConfig with tick_interval=0.02 and no smoothing.
        """
        config = cls(
            mode=mode,
            sensor_interval=0.02,
            tick_interval=0.02,
            accel_smoothing=None,
            admission=AdmissionPolicy.EVERY_TICK,
        )
        return config
