"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import threading
from concurrent.futures import Future

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from inference.backend import Landmark  # noqa: E402
from recording.backend import ActiveCapture, CaptureBackend  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class FakePoseEstimator:
    """Returns canned landmarks, an exception, or a future that never completes."""

    def __init__(self, landmarks=None, error=None, hang=False, raise_sync=False):
        self.landmarks = list(landmarks or [])
        self.error = error
        self.hang = hang
        self.raise_sync = raise_sync
        self.calls = 0
        self.images = []
        self.futures = []
        self.closed = False

    def estimate(self, image):
        self.calls += 1
        self.images.append(image)
        if self.raise_sync:
            raise self.error
        future = Future()
        self.futures.append(future)
        if self.hang:
            return future
        if self.error is not None:
            future.set_exception(self.error)
        else:
            future.set_result(list(self.landmarks))
        return future

    def close(self):
        self.closed = True


class FakeCapture(ActiveCapture):
    def __init__(self, on_finished):
        self.on_finished = on_finished
        self.stop_calls = 0

    def stop(self):
        self.stop_calls += 1

    def finish(self, success=True, uri="ride.mp4", error=None):
        self.on_finished(success, uri if success else None, error)


class FakeCaptureBackend(CaptureBackend):
    """Records captures; the test decides when and how they finish."""

    def __init__(self, fail_start=False):
        self.fail_start = fail_start
        self.captures = []

    def start(self, on_finished):
        if self.fail_start:
            raise RuntimeError("camera busy")
        capture = FakeCapture(on_finished)
        self.captures.append(capture)
        return capture

    @property
    def last(self):
        return self.captures[-1]


def wait_for(predicate, timeout=2.0, interval=0.01):
    """Poll until predicate() is true or timeout expires; returns the final value."""
    event = threading.Event()
    waited = 0.0
    while waited < timeout:
        if predicate():
            return True
        event.wait(interval)
        waited += interval
    return predicate()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def pose_estimator_factory():
    """Build FakePoseEstimator instances."""
    return FakePoseEstimator


@pytest.fixture
def landmarks():
    """Build n landmarks with the given likelihood."""
    def make(n, likelihood):
        return [Landmark(x=float(i), y=float(i), likelihood=likelihood) for i in range(n)]
    return make


@pytest.fixture
def capture_backend():
    return FakeCaptureBackend()


@pytest.fixture
def failing_capture_backend():
    return FakeCaptureBackend(fail_start=True)


@pytest.fixture
def waiter():
    return wait_for


@pytest.fixture
def texture():
    """Deterministic blocky texture (5x5 blocks) rich in corners, shape (120, 200)."""
    rng = np.random.default_rng(7)
    blocks = rng.integers(0, 256, size=(24, 40), dtype=np.uint8)
    return np.kron(blocks, np.ones((5, 5), dtype=np.uint8))


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
camera:
  device_id: 0
  resolution: [640, 480]
  fps: 30

detection:
  type: "motion"
  sensitivity: 70
  settings:
    min_motion_area: 5000

recording:
  duration_s: 8.0
  post_rider_delay_s: 2.0
  output_dir: "output/rides"

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "camera": {
            "device_id": 0,
            "resolution": [1280, 720],
            "fps": 30,
        },
        "detection": {
            "type": "motion",
            "sensitivity": 70,
            "settings": {},
        },
        "recording": {
            "duration_s": 8.0,
            "post_rider_delay_s": 2.0,
            "cooldown_s": 1.0,
            "output_dir": "output/rides",
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }
