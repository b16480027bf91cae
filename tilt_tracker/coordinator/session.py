"""
Session Buffer
Time-stamped angle series for one tracking run
"""

import logging
import threading
from typing import List, NamedTuple, Optional, Tuple

import numpy as np

from tilt_tracker.sensors.imu.config import AdmissionPolicy

logger = logging.getLogger(__name__)


class AngleSample(NamedTuple):
    """One tracked angle: seconds since run start, pitch (x) and roll (y) in degrees."""

    time_seconds: float
    angle_x: float
    angle_y: float


class SessionBuffer:
    """
    Append-only angle series with an admission policy.

    Three parallel sequences (time, angle x, angle y) behind a single
    lock, so reset() and snapshot() never interleave with a half-applied
    append. Timestamps are non-decreasing; the buffer does not truncate
    by duration, its owner stops feeding it.
    """

    def __init__(
            self,
            tick_interval: float = 0.05,
            admission: AdmissionPolicy = AdmissionPolicy.MIN_SPACING,
            min_spacing_ratio: float = 0.9
    ):
        """
        Args:
            tick_interval: Interval the producer ticks at (seconds)
            admission: EVERY_TICK accepts every sample; MIN_SPACING drops
                       samples closer than min_spacing_ratio * tick_interval
                       to the last accepted one
            min_spacing_ratio: Fraction of tick_interval used by MIN_SPACING
        """
        self.tick_interval = tick_interval
        self.admission = AdmissionPolicy(admission)
        self.min_spacing_ratio = min_spacing_ratio

        self._lock = threading.Lock()
        self._timestamps: List[float] = []
        self._angle_x: List[float] = []
        self._angle_y: List[float] = []

        self.accepted_count = 0
        self.rejected_count = 0

    @property
    def min_spacing(self) -> float:
        if self.admission is AdmissionPolicy.EVERY_TICK:
            return 0.0
        return self.min_spacing_ratio * self.tick_interval

    def append(self, angle_x: float, angle_y: float, time_seconds: float) -> bool:
        """
        Offer one angle sample to the session.

        Returns:
            True if the sample was admitted.
        """
        with self._lock:
            if self._timestamps:
                last = self._timestamps[-1]
                if time_seconds < last:
                    self.rejected_count += 1
                    logger.warning(f"Rejected out-of-order sample at {time_seconds:.3f}s (last {last:.3f}s)")
                    return False
                if time_seconds - last < self.min_spacing:
                    self.rejected_count += 1
                    logger.debug(f"Dropped near-duplicate sample at {time_seconds:.3f}s")
                    return False

            self._timestamps.append(time_seconds)
            self._angle_x.append(angle_x)
            self._angle_y.append(angle_y)
            self.accepted_count += 1
            return True

    def reset(self):
        with self._lock:
            self._timestamps.clear()
            self._angle_x.clear()
            self._angle_y.clear()
            self.accepted_count = 0
            self.rejected_count = 0

    def snapshot(self) -> List[AngleSample]:
        """Copy of the session in time order."""
        with self._lock:
            return [
                AngleSample(t, x, y)
                for t, x, y in zip(self._timestamps, self._angle_x, self._angle_y)
            ]

    def series(self, axis: str = 'x') -> Tuple[List[float], List[float]]:
        """
        Times and angles for one axis, as plotted by a chart.

        Args:
            axis: 'x' (pitch) or 'y' (roll)

        Returns:
            (timestamps, angles) as separate lists
        """
        axis = axis.lower()
        if axis in ('x', 'pitch'):
            source = self._angle_x
        elif axis in ('y', 'roll'):
            source = self._angle_y
        else:
            raise ValueError(f"Unknown axis '{axis}', expected 'x' or 'y'")

        with self._lock:
            return list(self._timestamps), list(source)

    def to_arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Session as (time, angle_x, angle_y) numpy arrays."""
        with self._lock:
            return (
                np.array(self._timestamps, dtype=float),
                np.array(self._angle_x, dtype=float),
                np.array(self._angle_y, dtype=float),
            )

    @property
    def last(self) -> Optional[AngleSample]:
        with self._lock:
            if not self._timestamps:
                return None
            return AngleSample(self._timestamps[-1], self._angle_x[-1], self._angle_y[-1])

    @property
    def duration(self) -> float:
        with self._lock:
            if not self._timestamps:
                return 0.0
            return self._timestamps[-1] - self._timestamps[0]

    def __len__(self):
        with self._lock:
            return len(self._timestamps)

    def get_status(self) -> dict:
        return {
            'samples': len(self),
            'duration': self.duration,
            'accepted': self.accepted_count,
            'rejected': self.rejected_count,
            'admission': self.admission.value,
        }

    def __repr__(self):
        return f"<SessionBuffer(samples={len(self)}, admission={self.admission.value})>"
