"""
Tests for tilt_tracker/coordinator/coordinator.py.

Uses unscheduled coordinators: each test drives on_tick() with explicit
times from a manual clock, and pushes samples through a
LatestValueSensorProvider the way a platform would.

Run with: pytest tests/test_coordinator.py -v
"""

import math
import threading
import time

import pytest

from tilt_tracker import (
    AlreadyActive,
    CentralClock,
    CoordinatorState,
    InsufficientSamples,
    LatestValueSensorProvider,
    SensorKind,
    TrackerConfig,
    TrackingCoordinator,
    TrackingMode,
    Vector3,
)
from tilt_tracker.sensors.imu.processor import RAD_TO_DEG
from tilt_tracker.sensors.simulated import gravity_vector

LEVEL = Vector3(0.0, 0.0, -1.0)


@pytest.fixture
def config():
    return TrackerConfig(tick_interval=0.02, sensor_interval=0.02, total_samples=5, accel_smoothing=None)


def run_ticks(coordinator, count, interval=0.02, start=0):
    return [coordinator.on_tick(now=i * interval) for i in range(start, start + count)]


# ---------------------------------------------------------------------------
# Calibration
# ---------------------------------------------------------------------------

def test_calibration_completes_at_sample_count(make_coordinator, provider, config):
    coordinator = make_coordinator(config)

    coordinator.start_calibration(SensorKind.ACCELEROMETER)
    assert coordinator.state is CoordinatorState.CALIBRATING
    assert provider.is_running(SensorKind.ACCELEROMETER)

    for _ in range(5):
        assert provider.push_accelerometer(Vector3(0.01, -0.02, -1.0))

    assert coordinator.state is CoordinatorState.IDLE
    assert not provider.is_running(SensorKind.ACCELEROMETER)
    result = coordinator.accel_calibration
    assert result.sample_count == 5
    assert tuple(result.bias) == pytest.approx((0.01, -0.02, 0.0))
    assert tuple(result.noise) == pytest.approx((0.0, 0.0, 0.0))

    # Sensor stopped: later samples are dropped
    assert not provider.push_accelerometer(LEVEL)


def test_calibration_ignores_other_sensor(make_coordinator, provider, config):
    coordinator = make_coordinator(config)
    coordinator.start_calibration(SensorKind.GYROSCOPE)

    coordinator.on_sample(SensorKind.ACCELEROMETER, LEVEL)
    assert coordinator.calibration_progress == (0, 5)

    provider.push_gyroscope(Vector3(0.001, 0.0, 0.0))
    assert coordinator.calibration_progress == (1, 5)
    assert coordinator.calibration_kind is SensorKind.GYROSCOPE


def test_finish_early_raises_and_keeps_old_calibration(make_coordinator, provider, config):
    coordinator = make_coordinator(config)
    coordinator.start_calibration(SensorKind.ACCELEROMETER)
    for _ in range(3):
        provider.push_accelerometer(LEVEL)

    with pytest.raises(InsufficientSamples) as excinfo:
        coordinator.finish_calibration()

    assert excinfo.value.collected == 3
    assert excinfo.value.required == 5
    assert coordinator.state is CoordinatorState.IDLE
    assert coordinator.accel_calibration.sample_count == 0

    # A new run recovers
    coordinator.start_calibration(SensorKind.ACCELEROMETER)
    assert coordinator.calibration_progress == (0, 5)


def test_finish_when_idle_is_noop(make_coordinator):
    coordinator = make_coordinator()
    assert coordinator.finish_calibration() is None


def test_cancel_calibration(make_coordinator, provider, config):
    coordinator = make_coordinator(config)
    coordinator.start_calibration(SensorKind.GYROSCOPE)
    provider.push_gyroscope(Vector3(1.0, 1.0, 1.0))

    assert coordinator.cancel_calibration()
    assert coordinator.state is CoordinatorState.IDLE
    assert coordinator.gyro_calibration.sample_count == 0
    assert not coordinator.cancel_calibration()


def test_recalibration_replaces_result(make_coordinator, provider, config):
    coordinator = make_coordinator(config)

    for value in (0.01, 0.03):
        coordinator.start_calibration(SensorKind.GYROSCOPE)
        for _ in range(5):
            provider.push_gyroscope(Vector3(value, 0.0, 0.0))

    assert coordinator.gyro_calibration.bias.x == pytest.approx(0.03)


# ---------------------------------------------------------------------------
# Conflicting runs
# ---------------------------------------------------------------------------

def test_second_calibration_rejected(make_coordinator, config):
    coordinator = make_coordinator(config)
    coordinator.start_calibration(SensorKind.ACCELEROMETER)

    with pytest.raises(AlreadyActive):
        coordinator.start_calibration(SensorKind.GYROSCOPE)
    assert coordinator.calibration_kind is SensorKind.ACCELEROMETER


def test_tracking_rejected_while_calibrating(make_coordinator, config):
    coordinator = make_coordinator(config)
    coordinator.start_calibration(SensorKind.ACCELEROMETER)

    with pytest.raises(AlreadyActive) as excinfo:
        coordinator.start_tracking(TrackingMode.ACCELEROMETER)
    assert excinfo.value.active == 'calibrating'
    assert coordinator.is_calibrating


def test_calibration_and_second_tracking_rejected_while_tracking(make_coordinator, config):
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.ACCELEROMETER)

    with pytest.raises(AlreadyActive):
        coordinator.start_calibration(SensorKind.ACCELEROMETER)
    with pytest.raises(AlreadyActive):
        coordinator.start_tracking(TrackingMode.GYROSCOPE)
    with pytest.raises(AlreadyActive):
        coordinator.set_mode(TrackingMode.GYROSCOPE)

    assert coordinator.mode is TrackingMode.ACCELEROMETER


def test_set_mode_when_idle(make_coordinator, provider, config):
    coordinator = make_coordinator(config)
    coordinator.set_mode('gyroscope')
    coordinator.start_tracking()

    assert coordinator.mode is TrackingMode.GYROSCOPE
    assert provider.is_running(SensorKind.GYROSCOPE)
    assert not provider.is_running(SensorKind.ACCELEROMETER)


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------

def test_level_accelerometer_run(make_coordinator, provider, config):
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.ACCELEROMETER)
    provider.push_accelerometer(LEVEL)

    run_ticks(coordinator, 50)
    session = coordinator.snapshot()

    assert len(session) == 50
    assert session[0].time_seconds == pytest.approx(0.0)
    assert session[-1].time_seconds == pytest.approx(0.98)
    for sample in session:
        assert sample.angle_x == pytest.approx(0.0, abs=1e-9)
        assert sample.angle_y == pytest.approx(0.0, abs=1e-9)


def test_tilted_accelerometer_run(make_coordinator, provider, config):
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.ACCELEROMETER)
    provider.push_accelerometer(gravity_vector(12.0, -7.0))

    sample = coordinator.on_tick(now=0.0)

    assert sample.angle_x == pytest.approx(12.0)
    assert sample.angle_y == pytest.approx(-7.0)
    assert coordinator.tilt_magnitude == 0.0


def test_gyro_run_seeds_then_integrates(make_coordinator, provider, config):
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.GYROSCOPE)
    provider.push_gyroscope(Vector3(0.5, -0.5, 0.0))

    first, second = run_ticks(coordinator, 2)

    assert (first.angle_x, first.angle_y) == (0.0, 0.0)
    assert second.angle_x == pytest.approx(0.5 * 0.02 * RAD_TO_DEG)
    assert second.angle_y == pytest.approx(-0.5 * 0.02 * RAD_TO_DEG)


def test_gyro_run_uses_calibrated_bias(make_coordinator, provider, config):
    coordinator = make_coordinator(config)

    coordinator.start_calibration(SensorKind.GYROSCOPE)
    for _ in range(5):
        provider.push_gyroscope(Vector3(0.01, -0.01, 0.0))

    coordinator.start_tracking(TrackingMode.GYROSCOPE)
    provider.push_gyroscope(Vector3(0.01, -0.01, 0.0))
    samples = run_ticks(coordinator, 10)

    assert samples[-1].angle_x == pytest.approx(0.0, abs=1e-9)
    assert samples[-1].angle_y == pytest.approx(0.0, abs=1e-9)


def test_complementary_run_tracks_magnitude(make_coordinator, provider, config):
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.COMPLEMENTARY)
    provider.push_accelerometer(gravity_vector(30.0, 0.0))
    provider.push_gyroscope(Vector3.zero())

    sample = coordinator.on_tick(now=0.0)

    assert sample.angle_x == pytest.approx(0.01 * 30.0)
    assert coordinator.tilt_magnitude == pytest.approx(0.3)
    assert coordinator.fusion_state.fused_x == pytest.approx(0.3)

    coordinator.stop_tracking()
    assert coordinator.tilt_magnitude == 0.0
    assert coordinator.fusion_state is None


def test_non_finite_gyro_sample_is_skipped(make_coordinator, provider, config):
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.COMPLEMENTARY)
    provider.push_accelerometer(gravity_vector(15.0, 0.0))
    provider.push_gyroscope(Vector3.zero())
    assert coordinator.on_tick(now=0.0) is not None

    provider.push_gyroscope(Vector3(float('nan'), 0.0, 0.0))
    assert coordinator.on_tick(now=0.02) is None
    assert coordinator.get_health()['total_failures'] == 1
    assert coordinator.is_tracking

    provider.push_gyroscope(Vector3.zero())
    run_ticks(coordinator, 98, start=2)

    last = coordinator.snapshot()[-1]
    assert last.time_seconds == pytest.approx(1.98)
    assert math.isfinite(last.angle_x)
    assert math.isfinite(last.angle_y)
    assert math.isfinite(coordinator.tilt_magnitude)
    assert coordinator.get_health()['consecutive_failures'] == 0


def test_stop_keeps_session_until_next_start(make_coordinator, provider, config):
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.ACCELEROMETER)
    provider.push_accelerometer(LEVEL)
    run_ticks(coordinator, 5)

    assert coordinator.stop_tracking()
    assert not coordinator.stop_tracking()
    assert len(coordinator.snapshot()) == 5

    coordinator.start_tracking(TrackingMode.ACCELEROMETER)
    assert coordinator.snapshot() == []


def test_tick_after_stop_is_noop(make_coordinator, provider, config):
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.ACCELEROMETER)
    provider.push_accelerometer(LEVEL)
    run_ticks(coordinator, 3)
    coordinator.stop_tracking()

    assert coordinator.on_tick(now=0.1) is None
    assert len(coordinator.snapshot()) == 3
    assert coordinator.tick_count == 3


def test_max_duration_stops_run(make_coordinator, provider):
    config = TrackerConfig(tick_interval=0.02, sensor_interval=0.02, max_duration=1.0)
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.ACCELEROMETER)
    provider.push_accelerometer(LEVEL)

    results = run_ticks(coordinator, 52)

    assert results[50] is not None
    assert results[51] is None
    assert coordinator.state is CoordinatorState.IDLE
    session = coordinator.snapshot()
    assert len(session) == 51
    assert session[-1].time_seconds <= config.max_duration + 1e-9
    assert not provider.is_running(SensorKind.ACCELEROMETER)


def test_ticks_relative_to_run_start(make_coordinator, provider, manual_time, config):
    manual_time.advance(100.0)
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.ACCELEROMETER)
    provider.push_accelerometer(LEVEL)

    manual_time.advance(0.5)
    sample = coordinator.on_tick()

    assert sample.time_seconds == pytest.approx(0.5)


def test_min_spacing_gates_jittery_ticks(make_coordinator, provider):
    config = TrackerConfig(tick_interval=0.05, sensor_interval=0.05)
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.ACCELEROMETER)
    provider.push_accelerometer(LEVEL)

    assert coordinator.on_tick(now=0.0) is not None
    assert coordinator.on_tick(now=0.01) is None
    assert coordinator.on_tick(now=0.05) is not None
    assert len(coordinator.snapshot()) == 2
    assert coordinator.tick_count == 3


# ---------------------------------------------------------------------------
# Sensor health
# ---------------------------------------------------------------------------

def test_missing_samples_skip_ticks(make_coordinator, provider):
    config = TrackerConfig(tick_interval=0.02, sensor_interval=0.02, unhealthy_after=3)
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.ACCELEROMETER)

    assert run_ticks(coordinator, 3) == [None, None, None]
    assert coordinator.is_tracking
    assert coordinator.snapshot() == []
    health = coordinator.get_health()
    assert not health['healthy']
    assert health['consecutive_failures'] == 3

    provider.push_accelerometer(LEVEL)
    assert coordinator.on_tick(now=0.06) is not None

    health = coordinator.get_health()
    assert health['healthy']
    assert health['consecutive_failures'] == 0
    assert health['total_failures'] == 3
    assert health['ticks'] == 4


def test_complementary_needs_both_sensors(make_coordinator, provider, config):
    coordinator = make_coordinator(config)
    coordinator.start_tracking(TrackingMode.COMPLEMENTARY)
    provider.push_accelerometer(LEVEL)

    assert coordinator.on_tick(now=0.0) is None
    assert coordinator.fusion_state.last_update is None


def test_failing_provider_reads_are_skipped(make_coordinator, failing_provider, config):
    coordinator = make_coordinator(config, sensor_provider=failing_provider)
    coordinator.start_tracking(TrackingMode.ACCELEROMETER)

    assert coordinator.on_tick(now=0.0) is None
    assert coordinator.is_tracking
    assert coordinator.get_health()['total_failures'] == 1


def test_provider_start_failure_leaves_idle(make_coordinator, config):
    class BrokenStartProvider(LatestValueSensorProvider):
        def start_gyroscope(self, interval):
            raise IOError("gyro not present")

    provider = BrokenStartProvider()
    coordinator = make_coordinator(config, sensor_provider=provider)

    with pytest.raises(IOError):
        coordinator.start_tracking(TrackingMode.COMPLEMENTARY)
    assert coordinator.state is CoordinatorState.IDLE
    assert not provider.is_running(SensorKind.ACCELEROMETER)

    with pytest.raises(IOError):
        coordinator.start_calibration(SensorKind.GYROSCOPE)
    assert coordinator.state is CoordinatorState.IDLE


# ---------------------------------------------------------------------------
# Status / lifecycle
# ---------------------------------------------------------------------------

def test_status(make_coordinator, config):
    coordinator = make_coordinator(config)
    status = coordinator.get_status()

    assert status['state'] == 'idle'
    assert status['mode'] == 'accelerometer'
    assert status['calibration_progress'] == (0, 5)
    assert status['session']['samples'] == 0
    assert status['provider']['accelerometer_running'] is False


def test_context_manager_stops(provider, clock, config):
    with TrackingCoordinator(provider, config=config, clock=clock, scheduled=False) as coordinator:
        coordinator.start_tracking(TrackingMode.ACCELEROMETER)

    assert coordinator.state is CoordinatorState.IDLE
    assert not provider.is_running(SensorKind.ACCELEROMETER)


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

class SteppingTime:
    """Time source that moves forward 1 ms on every read."""

    def __init__(self):
        self.t = 0.0

    def __call__(self) -> float:
        self.t += 0.001
        return self.t


class OverlapDetectingProvider(LatestValueSensorProvider):
    """Records how many tick reads are in flight at once."""

    def __init__(self):
        super().__init__()
        self._active = 0
        self.max_active = 0
        self._count_lock = threading.Lock()

    def latest_accelerometer_sample(self):
        with self._count_lock:
            self._active += 1
            self.max_active = max(self.max_active, self._active)
        time.sleep(0.0005)
        try:
            return super().latest_accelerometer_sample()
        finally:
            with self._count_lock:
                self._active -= 1


def test_concurrent_ticks_are_serialised():
    provider = OverlapDetectingProvider()
    config = TrackerConfig(
        tick_interval=0.001,
        sensor_interval=0.001,
        admission='every_tick',
        max_duration=60.0,
    )
    coordinator = TrackingCoordinator(
        provider, config=config, clock=CentralClock(time_source=SteppingTime()), scheduled=False
    )
    coordinator.start_tracking(TrackingMode.ACCELEROMETER)
    provider.push_accelerometer(LEVEL)

    threads_count, ticks_per_thread = 4, 50
    start = threading.Event()

    def ticker():
        start.wait()
        for _ in range(ticks_per_thread):
            coordinator.on_tick()

    threads = [threading.Thread(target=ticker) for _ in range(threads_count)]
    for thread in threads:
        thread.start()
    start.set()
    for thread in threads:
        thread.join(timeout=10.0)

    try:
        assert coordinator.tick_count == threads_count * ticks_per_thread
        assert provider.max_active == 1

        times = [s.time_seconds for s in coordinator.snapshot()]
        assert len(times) == threads_count * ticks_per_thread
        assert times == sorted(times)
    finally:
        coordinator.stop()
