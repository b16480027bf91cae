"""Shared fixtures for tilt tracker tests."""

import pytest

from tilt_tracker import (
    CentralClock,
    LatestValueSensorProvider,
    TrackerConfig,
    TrackingCoordinator,
)


class ManualTime:
    """Time source advanced by hand."""

    def __init__(self, start: float = 0.0):
        self.t = start

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float):
        self.t += seconds


class FailingProvider(LatestValueSensorProvider):
    """Provider whose reads raise, as a disconnected driver would."""

    def latest_accelerometer_sample(self):
        raise IOError("I2C read failed")

    def latest_gyroscope_sample(self):
        raise IOError("I2C read failed")


@pytest.fixture
def manual_time():
    return ManualTime()


@pytest.fixture
def clock(manual_time):
    return CentralClock(time_source=manual_time)


@pytest.fixture
def provider():
    return LatestValueSensorProvider()


@pytest.fixture
def make_coordinator(provider, clock):
    """Build an unscheduled coordinator (the test drives on_tick)."""
    created = []

    def _make(config=None, sensor_provider=None):
        coordinator = TrackingCoordinator(
            sensor_provider or provider,
            config=config or TrackerConfig(),
            clock=clock,
            scheduled=False,
        )
        created.append(coordinator)
        return coordinator

    yield _make

    for coordinator in created:
        coordinator.stop()


@pytest.fixture
def failing_provider():
    return FailingProvider()
