"""
Tilt Tracker Sensors
Accelerometer and gyroscope access, calibration and orientation fusion

Available providers:
- LatestValueSensorProvider: platform pushes samples, tracker reads the latest
- SimulatedSensorProvider: still device with configurable tilt, bias and noise

All providers support:
- Independent accelerometer/gyroscope start with a requested interval
- Latest-value reads (no queueing)
- A listener callback for calibration sample collection
"""

from .imu import (
    AdmissionPolicy,
    CalibrationResult,
    FusionEngine,
    FusionState,
    SensorKind,
    TrackerConfig,
    TrackingMode,
)
from .provider import LatestValueSensorProvider, SensorProvider
from .simulated import SimulatedSensorProvider, gravity_vector

__all__ = [
    # Providers
    'SensorProvider',
    'LatestValueSensorProvider',
    'SimulatedSensorProvider',
    'gravity_vector',

    # IMU
    'TrackerConfig',
    'SensorKind',
    'TrackingMode',
    'AdmissionPolicy',
    'CalibrationResult',
    'FusionEngine',
    'FusionState',
]
