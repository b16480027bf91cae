"""
IMU Tilt Module for Tilt Tracker
Accelerometer and gyroscope calibration and orientation fusion

Architecture:
- Calibration: bias and noise estimation from stationary samples
- Processor: tilt from gravity, gyro integration, complementary filter

Dual-mode operation:
- Calibration mode: fixed-size sample batch per sensor -> CalibrationResult
- Tracking mode: one angle per tick from accelerometer, gyroscope or both

Usage:
    accel_cal = estimate_accelerometer(accel_samples, required=500)
    gyro_cal = estimate_gyroscope(gyro_samples, required=500)

    engine = FusionEngine(TrackerConfig.for_session(), accel_cal, gyro_cal)
    state = FusionState()
    pitch, roll = engine.step(state, TrackingMode.COMPLEMENTARY, now, accel, gyro)
"""

from .calibration import CalibrationResult, estimate, estimate_accelerometer, estimate_gyroscope
from .config import AdmissionPolicy, SensorKind, TrackerConfig, TrackingMode
from .processor import (
    FusionEngine,
    FusionState,
    complementary_alpha,
    fuse,
    integrate,
    low_pass,
    tilt,
    tilt_magnitude,
)

__all__ = [
    # Configuration
    'TrackerConfig',
    'SensorKind',
    'TrackingMode',
    'AdmissionPolicy',

    # Calibration
    'CalibrationResult',
    'estimate',
    'estimate_accelerometer',
    'estimate_gyroscope',

    # Fusion
    'FusionEngine',
    'FusionState',
    'tilt',
    'integrate',
    'fuse',
    'low_pass',
    'tilt_magnitude',
    'complementary_alpha',
]
