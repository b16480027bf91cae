"""
Tilt Tracker
Pitch/roll estimation from accelerometer and gyroscope samples

Components:
- Calibration: per-sensor bias and noise from stationary samples
- Tilt: pitch/roll from the bias-corrected gravity vector
- Gyro integration: accumulated bias-corrected rate
- Complementary filter: gyro short-term, accelerometer long-term
- Session buffer: bounded, rate-limited angle series per run
- Coordinator: calibration/tracking state machine driven by fixed ticks

Usage:
    provider = LatestValueSensorProvider()
    coordinator = TrackingCoordinator(provider, TrackerConfig.for_session())

    coordinator.start_calibration(SensorKind.ACCELEROMETER)
    # ... platform pushes samples until the calibration completes ...

    coordinator.start_tracking(TrackingMode.COMPLEMENTARY)
    # ... ticks run, session fills ...
    coordinator.stop_tracking()
    samples = coordinator.snapshot()
"""

from .coordinator import (
    AngleSample,
    CentralClock,
    CoordinatorState,
    IntervalTicker,
    SessionBuffer,
    TrackingCoordinator,
)
from .exceptions import (
    AlreadyActive,
    DegenerateGeometry,
    InsufficientSamples,
    SensorUnavailable,
    TrackingError,
)
from .sensors import (
    AdmissionPolicy,
    CalibrationResult,
    FusionEngine,
    FusionState,
    LatestValueSensorProvider,
    SensorKind,
    SensorProvider,
    SimulatedSensorProvider,
    TrackerConfig,
    TrackingMode,
)
from .vector import Vector3

__all__ = [
    # Data
    'Vector3',
    'AngleSample',
    'CalibrationResult',
    'FusionState',

    # Configuration
    'TrackerConfig',
    'SensorKind',
    'TrackingMode',
    'AdmissionPolicy',

    # Components
    'FusionEngine',
    'SessionBuffer',
    'CentralClock',
    'IntervalTicker',
    'TrackingCoordinator',
    'CoordinatorState',

    # Sensors
    'SensorProvider',
    'LatestValueSensorProvider',
    'SimulatedSensorProvider',

    # Errors
    'TrackingError',
    'InsufficientSamples',
    'AlreadyActive',
    'SensorUnavailable',
    'DegenerateGeometry',
]

__version__ = '1.0.0'
