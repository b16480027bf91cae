"""
IMU Calibration Estimator
Bias and noise estimation from stationary accelerometer/gyroscope samples
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from tilt_tracker.exceptions import InsufficientSamples
from tilt_tracker.vector import Vector3

from .config import SensorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationResult:
    """
    Bias and noise for one sensor class.

    Computed once per calibration run and replaced as a whole by the
    next run; never partially updated.
    """

    bias: Vector3
    noise: Vector3
    sample_count: int = 0
    kind: Optional[SensorKind] = None

    @classmethod
    def uncalibrated(cls, kind: Optional[SensorKind] = None) -> 'CalibrationResult':
        """Zero bias and noise, as used before any calibration has run."""
        return cls(bias=Vector3.zero(), noise=Vector3.zero(), sample_count=0, kind=kind)

    def is_valid(self, required: int) -> bool:
        """
        Check whether the result came from a complete calibration run.

        Args:
            required: Configured number of calibration samples

        Returns:
            True once sample_count has reached required.
        """
        return self.sample_count >= required > 0

    def as_dict(self) -> dict:
        return {
            'kind': self.kind.value if self.kind else None,
            'bias': self.bias.format(),
            'noise': self.noise.format(),
            'sample_count': self.sample_count,
        }


def estimate(
        samples: Sequence[Vector3],
        axis_offset: Vector3 = Vector3(),
        required: int = 1,
        kind: Optional[SensorKind] = None
) -> CalibrationResult:
    """
    Estimate bias and noise from stationary samples.

    bias is the component-wise mean of (sample + axis_offset). noise is the
    population standard deviation about that bias, sqrt(mean(dev^2)),
    without Bessel correction.

    Args:
        samples: Raw samples collected while the device was still
        axis_offset: Added to every sample before estimation (resting
                     gravity correction for the accelerometer)
        required: Minimum number of samples
        kind: Sensor class recorded on the result

    Returns:
        CalibrationResult carrying bias, noise and the sample count

    Raises:
        InsufficientSamples: if samples is empty or shorter than required
    """
    count = len(samples)
    if count == 0 or count < required:
        raise InsufficientSamples(collected=count, required=max(required, 1))

    data = np.asarray([tuple(s) for s in samples], dtype=float) + axis_offset.as_array()

    bias = data.mean(axis=0)
    noise = np.sqrt(np.mean((data - bias) ** 2, axis=0))

    result = CalibrationResult(
        bias=Vector3.from_iterable(bias),
        noise=Vector3.from_iterable(noise),
        sample_count=count,
        kind=kind,
    )
    logger.debug(f"Estimated {kind.value if kind else 'sensor'} calibration from {count} samples")
    return result


def estimate_accelerometer(
        samples: Sequence[Vector3],
        required: int = 1,
        gravity_offset: Tuple[float, float, float] = (0.0, 0.0, 1.0)
) -> CalibrationResult:
    """Accelerometer calibration: applies the resting-gravity offset first."""
    return estimate(
        samples,
        axis_offset=Vector3.from_iterable(gravity_offset),
        required=required,
        kind=SensorKind.ACCELEROMETER,
    )


def estimate_gyroscope(samples: Sequence[Vector3], required: int = 1) -> CalibrationResult:
    """Gyroscope calibration: zero offset, a still gyro should read zero."""
    return estimate(samples, required=required, kind=SensorKind.GYROSCOPE)
