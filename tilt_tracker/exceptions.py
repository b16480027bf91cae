"""
Tilt Tracker Errors
Failure taxonomy shared by calibration, fusion and the tracking coordinator
"""

from typing import Optional


class TrackingError(Exception):
    """Base class for all tilt tracker errors."""


class InsufficientSamples(TrackingError, ValueError):
    """
    Calibration was given fewer samples than it requires.

    Fatal to that calibration attempt only; starting a new calibration
    run recovers.
    """

    def __init__(self, collected: int, required: int):
        self.collected = collected
        self.required = required
        super().__init__(
            f"Calibration needs {required} samples, got {collected}"
        )


class AlreadyActive(TrackingError, RuntimeError):
    """A start request conflicts with the run that is already active."""

    def __init__(self, active: str, requested: str):
        self.active = active
        self.requested = requested
        super().__init__(f"Cannot start {requested}: {active} is active")


class SensorUnavailable(TrackingError):
    """No sample was available from a sensor at tick time."""

    def __init__(self, kind: str, reason: Optional[str] = None):
        self.kind = kind
        message = f"No {kind} sample available"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class DegenerateGeometry(TrackingError, ArithmeticError):
    """Accelerometer vector has zero magnitude, so tilt is undefined."""
