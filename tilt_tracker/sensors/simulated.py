"""
Simulated IMU
Background-thread sample generator for a still (optionally tilted) device
"""

import logging
import math
import threading
from typing import Optional, Tuple

import numpy as np

from tilt_tracker.vector import Vector3

from .imu.config import SensorKind
from .provider import LatestValueSensorProvider

logger = logging.getLogger(__name__)


def gravity_vector(pitch_deg: float, roll_deg: float) -> Vector3:
    """
    Unit gravity reading (in g) for a device held at the given tilt.

    At level the accelerometer reads (0, 0, -1).
    """
    y = math.sin(math.radians(pitch_deg))
    x = -math.sin(math.radians(roll_deg))
    z = -math.sqrt(max(0.0, 1.0 - x ** 2 - y ** 2))
    return Vector3(x, y, z)


class SimulatedSensorProvider(LatestValueSensorProvider):
    """
    Simulated accelerometer + gyroscope

    Emits a gravity reading for a fixed tilt plus Gaussian noise and a
    constant bias, and a gyro reading of bias plus noise (the device does
    not rotate). Samples are pushed from a daemon thread at the fastest
    started sensor interval, the same way the hardware collectors poll.
    """

    def __init__(
            self,
            pitch_deg: float = 0.0,
            roll_deg: float = 0.0,
            accel_bias: Tuple[float, float, float] = (0.0, 0.0, 0.0),
            accel_noise: float = 0.0,
            gyro_bias: Tuple[float, float, float] = (0.0, 0.0, 0.0),
            gyro_noise: float = 0.0,
            seed: Optional[int] = None
    ):
        """
        Args:
            pitch_deg: Simulated pitch of the device
            roll_deg: Simulated roll of the device
            accel_bias: Constant accelerometer offset (g)
            accel_noise: Accelerometer noise standard deviation (g)
            gyro_bias: Constant gyroscope offset (rad/s)
            gyro_noise: Gyroscope noise standard deviation (rad/s)
            seed: Random seed for reproducible runs
        """
        super().__init__()
        self.gravity = gravity_vector(pitch_deg, roll_deg)
        self.accel_bias = np.asarray(accel_bias, dtype=float)
        self.accel_noise = accel_noise
        self.gyro_bias = np.asarray(gyro_bias, dtype=float)
        self.gyro_noise = gyro_noise
        self.rng = np.random.default_rng(seed)

        # State management
        self.generation_thread: Optional[threading.Thread] = None
        self.stop_event = threading.Event()

    def set_tilt(self, pitch_deg: float, roll_deg: float):
        """Move the simulated device to a new resting tilt."""
        self.gravity = gravity_vector(pitch_deg, roll_deg)

    def start_accelerometer(self, interval: float):
        super().start_accelerometer(interval)
        self._ensure_thread()

    def start_gyroscope(self, interval: float):
        super().start_gyroscope(interval)
        self._ensure_thread()

    def stop(self):
        # Not joined: stop() can run from inside this thread's listener callback
        self.stop_event.set()
        self.generation_thread = None
        super().stop()

    def emit_once(self):
        """Push one sample to every running sensor."""
        if self.is_running(SensorKind.ACCELEROMETER):
            noise = self.rng.normal(0.0, self.accel_noise, 3) if self.accel_noise > 0 else 0.0
            reading = self.gravity.as_array() + self.accel_bias + noise
            self.push_accelerometer(Vector3.from_iterable(reading))

        if self.is_running(SensorKind.GYROSCOPE):
            noise = self.rng.normal(0.0, self.gyro_noise, 3) if self.gyro_noise > 0 else 0.0
            reading = self.gyro_bias + noise
            self.push_gyroscope(Vector3.from_iterable(reading))

    def _ensure_thread(self):
        if self.generation_thread and self.generation_thread.is_alive() and not self.stop_event.is_set():
            return

        # Each loop owns its own stop event so a stopping loop never resumes
        self.stop_event = threading.Event()
        self.generation_thread = threading.Thread(
            target=self._generation_loop,
            args=(self.stop_event,),
            name="SimulatedIMU-Thread",
            daemon=True
        )
        self.generation_thread.start()

    def _generation_loop(self, stop_event: threading.Event):
        logger.info("Simulated IMU loop started")

        while not stop_event.is_set():
            intervals = [i for i in (self.interval(SensorKind.ACCELEROMETER),
                                     self.interval(SensorKind.GYROSCOPE)) if i]
            if not intervals:
                break
            try:
                self.emit_once()
            except Exception as e:
                logger.error(f"Error in simulated IMU loop: {e}", exc_info=True)
            stop_event.wait(min(intervals))

        logger.info("Simulated IMU loop stopped")
