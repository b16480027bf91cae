"""
Interval Ticker
Fixed-interval callback thread with mandatory cancellation
"""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class IntervalTicker:
    """
    Calls a function every `interval` seconds on a daemon thread.

    Deadlines are computed from the start time, so a slow tick does not
    shift later ticks. Ticks never overlap: a tick that overruns its slot
    makes the ticker skip the missed deadlines instead of queueing them.
    """

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "Tick-Thread"):
        if interval <= 0:
            raise ValueError(f"Tick interval must be positive, got {interval}")
        self.interval = interval
        self.callback = callback
        self.name = name

        self.tick_count = 0
        self.thread: Optional[threading.Thread] = None
        self.stop_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self.thread is not None and self.thread.is_alive() and not self.stop_event.is_set()

    def start(self):
        if self.is_running:
            logger.warning(f"{self.name} already running")
            return

        self.stop_event.clear()
        self.tick_count = 0
        self.thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self.thread.start()
        logger.debug(f"{self.name} started ({self.interval:.3f}s)")

    def cancel(self, timeout: float = 1.0):
        """
        Stop ticking. Safe to call repeatedly and from inside the callback.
        """
        self.stop_event.set()
        thread = self.thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self.thread = None

    def _run(self):
        next_deadline = time.monotonic()

        while not self.stop_event.is_set():
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Error in {self.name} callback: {e}", exc_info=True)
            self.tick_count += 1

            next_deadline += self.interval
            now = time.monotonic()
            if next_deadline < now:
                missed = int((now - next_deadline) // self.interval) + 1
                next_deadline += missed * self.interval
                logger.debug(f"{self.name} skipped {missed} overdue tick(s)")

            self.stop_event.wait(next_deadline - now)

    def __repr__(self):
        status = "running" if self.is_running else "stopped"
        return f"<IntervalTicker(interval={self.interval}, status={status})>"
