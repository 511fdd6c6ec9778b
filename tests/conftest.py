"""Pytest configuration and shared fixtures for the photo session.

Provides a manually driven control lane with a virtual clock, a synchronous
executor and in-memory fakes for the camera, oracles and persistence sink, so
whole sessions can be stepped deterministically without threads or hardware.
"""
import heapq
import itertools
import logging
import sys
import tempfile
from concurrent.futures import Executor, Future
from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest

# Add the project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from photobooth.config.settings import Config
from photobooth.core.constants import FACE_CONTOUR, LEFT_EYE, NOSE_CREST, RIGHT_EYE
from photobooth.core.entities import (
    DetectionResult, FrameSample, NormalizedBox, NormalizedPoint, RasterMask, Subject,
)
from photobooth.core.exceptions import PersistenceFailed, WebcamError
from photobooth.core.scheduler import ScheduledCall


# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)


class ManualLane:
    """Control lane driven by the test: nothing runs until ``run_pending``/``advance``."""

    def __init__(self):
        self.now = 0.0
        self._queue: list = []
        self._seq = itertools.count()

    def start(self):
        pass

    def stop(self, timeout: float = 0.0):
        pass

    def is_running(self) -> bool:
        return True

    def in_lane(self) -> bool:
        return True

    def post(self, callback, *args) -> ScheduledCall:
        return self.call_later(0.0, callback, *args)

    def call_later(self, delay, callback, *args) -> ScheduledCall:
        call = ScheduledCall(self.now + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (call.due, next(self._seq), call))
        return call

    def pending(self) -> int:
        return sum(1 for _, _, call in self._queue if not call.cancelled)

    def run_pending(self) -> int:
        """Run every call due at the current virtual time, including ones they post."""
        ran = 0
        while self._queue and self._queue[0][0] <= self.now:
            _, _, call = heapq.heappop(self._queue)
            if not call.cancelled:
                call.run()
                ran += 1
        return ran

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            self.now = max(self.now, self._queue[0][0])
            self.run_pending()
        self.now = target
        self.run_pending()


class ImmediateExecutor(Executor):
    """Runs submitted jobs inline and returns completed futures."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future


class DeferredExecutor(Executor):
    """Queues submitted jobs until the test calls ``run_all``."""

    def __init__(self):
        self.jobs: list = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.jobs.append((future, fn, args, kwargs))
        return future

    def run_all(self) -> int:
        jobs, self.jobs = self.jobs, []
        for future, fn, args, kwargs in jobs:
            future.set_result(fn(*args, **kwargs))
        return len(jobs)


class FakeDetector:
    """Face oracle returning a scripted result."""

    def __init__(self, result: Optional[DetectionResult] = None):
        self.result = result
        self.calls = 0
        self.error: Optional[Exception] = None

    def detect(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class FakeSegmenter:
    """Segmentation oracle returning a scripted mask (or None)."""

    def __init__(self, mask: Optional[RasterMask] = None):
        self.mask = mask
        self.calls = 0

    def segment(self, image):
        self.calls += 1
        return self.mask


class FakeCamera:
    """Frame source and capture trigger backed by a fixed image."""

    def __init__(self, image: Optional[np.ndarray] = None):
        self.image = image
        self.streaming = False
        self.starts = 0
        self.stops = 0
        self.captures = 0
        self.frame_callback = None
        self.fail_capture = False

    def set_frame_callback(self, callback):
        self.frame_callback = callback

    def start_stream(self, frame_callback=None):
        self.streaming = True
        self.starts += 1
        return True

    def stop_stream(self):
        self.streaming = False
        self.stops += 1

    def is_streaming(self):
        return self.streaming

    def capture_frame(self):
        self.captures += 1
        if self.fail_capture:
            raise WebcamError("Camera disconnected")
        return None if self.image is None else self.image.copy()

    def push_frame(self, timestamp: float = 0.0):
        sample = FrameSample(self.image, timestamp)
        if self.frame_callback:
            self.frame_callback(sample)
        return sample


class MemorySink:
    """Persistence sink keeping saved artifacts in memory."""

    def __init__(self, fail: bool = False):
        self.saved: List[tuple] = []
        self.fail = fail

    def save(self, image, name):
        if self.fail:
            raise PersistenceFailed("Disk full")
        self.saved.append((name, image.copy()))
        return f"memory://{name}"


def make_subject(x: float, y: float, w: float, h: float, with_landmarks: bool = True,
                 score: float = 0.9) -> Subject:
    """Subject with an elliptical face contour filling its box."""
    box = NormalizedBox(x, y, w, h)
    if not with_landmarks:
        return Subject(box=box, score=score)
    angles = np.linspace(0.0, 2.0 * np.pi, 24, endpoint=False)
    contour = tuple(NormalizedPoint(float(0.5 + 0.5 * np.cos(a)), float(0.5 + 0.5 * np.sin(a)))
                    for a in angles)
    landmarks = {
        LEFT_EYE: (NormalizedPoint(0.20, 0.65), NormalizedPoint(0.30, 0.68), NormalizedPoint(0.40, 0.65)),
        RIGHT_EYE: (NormalizedPoint(0.60, 0.65), NormalizedPoint(0.70, 0.68), NormalizedPoint(0.80, 0.65)),
        NOSE_CREST: (NormalizedPoint(0.50, 0.60), NormalizedPoint(0.50, 0.50), NormalizedPoint(0.50, 0.40)),
        FACE_CONTOUR: contour,
    }
    return Subject(box=box, landmarks=landmarks, score=score)


def make_detection(*subjects: Subject) -> DetectionResult:
    return DetectionResult(subjects=tuple(subjects), timestamp=0.0)


def block_mask(size, rect, value: float = 1.0) -> RasterMask:
    """Mask of ``size`` (width, height) with ``value`` inside ``rect`` (x, y, w, h)."""
    width, height = size
    alpha = np.zeros((height, width), dtype=np.float32)
    x, y, w, h = rect
    alpha[y:y + h, x:x + w] = value
    return RasterMask(alpha)


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def lane():
    return ManualLane()


@pytest.fixture
def immediate_executor():
    return ImmediateExecutor()


@pytest.fixture
def deferred_executor():
    return DeferredExecutor()


@pytest.fixture
def session_config(temp_dir):
    """Configuration with instant re-arm and no auto reset."""
    return Config(
        geometry_policy="segmentation_raster",
        rearm_delay_s=0.0,
        completion_reset_delay_s=None,
        output_dir=str(temp_dir / "photos"),
    )


@pytest.fixture
def photo():
    """1000x1000 BGR photo with a gradient so blends are observable."""
    ramp = np.linspace(0, 200, 1000, dtype=np.float32)
    image = np.zeros((1000, 1000, 3), dtype=np.uint8)
    image[:, :, 0] = ramp[None, :].astype(np.uint8)
    image[:, :, 1] = ramp[:, None].astype(np.uint8)
    image[:, :, 2] = 90
    return image


@pytest.fixture
def sample_image():
    """Small random BGR image."""
    rng = np.random.default_rng(7)
    return rng.integers(0, 256, size=(120, 160, 3), dtype=np.uint8)


@pytest.fixture
def shot_mask():
    """Mask at photo resolution whose extent is (100, 100, 800, 800)."""
    return block_mask((1000, 1000), (100, 100, 800, 800))


@pytest.fixture
def fake_detector():
    return FakeDetector()


@pytest.fixture
def fake_segmenter(shot_mask):
    return FakeSegmenter(shot_mask)


@pytest.fixture
def fake_camera(photo):
    return FakeCamera(photo)


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest.fixture(autouse=True)
def reset_session_id():
    """Keep the logging session id from leaking between tests."""
    from photobooth.core.logging_config import clear_session_id
    yield
    clear_session_id()


# Test markers and utilities
def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "service: mark test as service test")
