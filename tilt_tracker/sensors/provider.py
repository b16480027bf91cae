"""
Sensor Provider
Latest-value access to accelerometer and gyroscope samples
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from tilt_tracker.vector import Vector3

from .imu.config import SensorKind

logger = logging.getLogger(__name__)

SampleListener = Callable[[SensorKind, Vector3], None]


class SensorProvider(ABC):
    """
    Source of raw IMU samples.

    Reads are latest-value: each call returns the most recent sample for
    that sensor (or None), never a queue. Accelerometer and gyroscope
    reads are independent and not time-aligned.
    """

    def __init__(self):
        self._listener: Optional[SampleListener] = None

    def set_listener(self, listener: Optional[SampleListener]):
        """Register the callback notified on every delivered sample (None clears it)."""
        self._listener = listener

    def _notify(self, kind: SensorKind, sample: Vector3):
        listener = self._listener
        if listener is not None:
            listener(kind, sample)

    @abstractmethod
    def latest_accelerometer_sample(self) -> Optional[Vector3]:
        ...

    @abstractmethod
    def latest_gyroscope_sample(self) -> Optional[Vector3]:
        ...

    @abstractmethod
    def start_accelerometer(self, interval: float):
        ...

    @abstractmethod
    def start_gyroscope(self, interval: float):
        ...

    @abstractmethod
    def stop(self):
        """Stop all sensors."""

    def latest_sample(self, kind: SensorKind) -> Optional[Vector3]:
        if SensorKind(kind) is SensorKind.ACCELEROMETER:
            return self.latest_accelerometer_sample()
        return self.latest_gyroscope_sample()

    def start(self, kind: SensorKind, interval: float):
        if SensorKind(kind) is SensorKind.ACCELEROMETER:
            self.start_accelerometer(interval)
        else:
            self.start_gyroscope(interval)


class LatestValueSensorProvider(SensorProvider):
    """
    Thread-safe latest-value cache fed by the platform.

    The platform pushes samples at its own rate; samples for a sensor
    that has not been started are dropped. Stopping clears the cache so
    a later run never reads a sample from the previous one.
    """

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()
        self._latest: Dict[SensorKind, Optional[Vector3]] = {
            SensorKind.ACCELEROMETER: None,
            SensorKind.GYROSCOPE: None,
        }
        self._intervals: Dict[SensorKind, Optional[float]] = {
            SensorKind.ACCELEROMETER: None,
            SensorKind.GYROSCOPE: None,
        }
        self.accel_sample_count = 0
        self.gyro_sample_count = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_accelerometer(self, interval: float):
        self._start(SensorKind.ACCELEROMETER, interval)

    def start_gyroscope(self, interval: float):
        self._start(SensorKind.GYROSCOPE, interval)

    def _start(self, kind: SensorKind, interval: float):
        if interval <= 0:
            raise ValueError(f"Sensor interval must be positive, got {interval}")
        with self._lock:
            self._intervals[kind] = interval
        logger.info(f"✓ {kind.value} updates started ({interval:.3f}s interval)")

    def stop(self):
        with self._lock:
            was_running = [k.value for k, v in self._intervals.items() if v is not None]
            for kind in self._intervals:
                self._intervals[kind] = None
                self._latest[kind] = None
        if was_running:
            logger.info(f"✓ Sensor updates stopped: {', '.join(was_running)}")

    def is_running(self, kind: SensorKind) -> bool:
        with self._lock:
            return self._intervals[SensorKind(kind)] is not None

    def interval(self, kind: SensorKind) -> Optional[float]:
        with self._lock:
            return self._intervals[SensorKind(kind)]

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def push_accelerometer(self, sample: Vector3) -> bool:
        return self._push(SensorKind.ACCELEROMETER, sample)

    def push_gyroscope(self, sample: Vector3) -> bool:
        return self._push(SensorKind.GYROSCOPE, sample)

    def _push(self, kind: SensorKind, sample: Vector3) -> bool:
        """
        Store a new sample as the latest value and notify the listener.

        Returns:
            False if the sensor is not running and the sample was dropped.
        """
        with self._lock:
            if self._intervals[kind] is None:
                return False
            self._latest[kind] = sample
            if kind is SensorKind.ACCELEROMETER:
                self.accel_sample_count += 1
            else:
                self.gyro_sample_count += 1

        # Notify outside the lock; the listener may read back through this provider
        self._notify(kind, sample)
        return True

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def latest_accelerometer_sample(self) -> Optional[Vector3]:
        with self._lock:
            return self._latest[SensorKind.ACCELEROMETER]

    def latest_gyroscope_sample(self) -> Optional[Vector3]:
        with self._lock:
            return self._latest[SensorKind.GYROSCOPE]

    def get_status(self) -> dict:
        """
        Return the current provider state.

        Returns:
            Dict with running flags and delivered sample counts per sensor.
        """
        with self._lock:
            return {
                'accelerometer_running': self._intervals[SensorKind.ACCELEROMETER] is not None,
                'gyroscope_running': self._intervals[SensorKind.GYROSCOPE] is not None,
                'accel_samples_received': self.accel_sample_count,
                'gyro_samples_received': self.gyro_sample_count,
            }

    def __repr__(self):
        running = [k.value for k, v in self._intervals.items() if v is not None]
        return f"<{type(self).__name__}(running={running})>"
