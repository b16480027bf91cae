"""
Tilt Tracker Coordinator
Runs calibration and tracking with a shared clock and fixed-interval ticks
"""

from .clock import CentralClock
from .coordinator import CoordinatorState, TrackingCoordinator
from .session import AngleSample, SessionBuffer
from .ticker import IntervalTicker

__all__ = [
    'CentralClock',
    'IntervalTicker',
    'TrackingCoordinator',
    'CoordinatorState',
    'SessionBuffer',
    'AngleSample',
]
