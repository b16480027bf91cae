"""
Central Clock System
Monotonic elapsed-time source for tick scheduling and dt computation
"""

import threading
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CentralClock:
    """
    Thread-safe monotonic clock shared by the tracker and its ticker

    Ensures every caller sees the same time reference with:
    - Thread-safe access (ticker thread and sensor callbacks can call simultaneously)
    - Non-decreasing readings (never goes backwards)
    - Seconds since the clock's epoch (construction or last reset)
    """

    def __init__(self, time_source: Callable[[], float] = time.monotonic):
        """
        Initialize central clock

        Args:
            time_source: Monotonic seconds source; tests inject a manual one
        """
        self._lock = threading.Lock()
        self._time_source = time_source
        self._epoch = time_source()
        self._last_reading: Optional[float] = None
        self._call_count = 0

        logger.info("Central clock initialized")

    def now(self) -> float:
        """
        Get current elapsed time

        Returns:
            float: Seconds since the clock epoch
        """
        with self._lock:
            current = self._time_source() - self._epoch

            # Never report a time earlier than one already handed out
            if self._last_reading is not None and current < self._last_reading:
                current = self._last_reading
                logger.debug("Clamped reading to maintain monotonic sequence")

            self._last_reading = current
            self._call_count += 1

            return current

    def reset(self):
        """Restart the epoch at the current time"""
        with self._lock:
            self._epoch = self._time_source()
            self._last_reading = None
            self._call_count = 0
            logger.debug("Central clock reset")

    def get_stats(self) -> dict:
        """
        Get clock statistics

        Returns:
            dict: Clock usage statistics
        """
        with self._lock:
            return {
                'total_calls': self._call_count,
                'last_reading': self._last_reading,
            }

    def __repr__(self):
        return f"<CentralClock(calls={self._call_count})>"
