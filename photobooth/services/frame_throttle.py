"""Frame analysis throttle.

Gates the expensive face oracle against the live frame stream: frames are
dropped while detection is disarmed or while one detection is already in
flight. Completed results are marshalled back onto the control lane.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, Optional

from ..core.entities import DetectionResult, FrameSample, Size
from ..core.exceptions import DetectorUnavailable

logger = logging.getLogger(__name__)

ResultCallback = Callable[[Optional[DetectionResult], Size], None]


class FrameAnalysisThrottle:
    """At-most-one-in-flight gate between the frame source and the face oracle."""

    def __init__(self, detector, on_result: ResultCallback, lane, executor: Optional[Executor] = None):
        """Initialize the throttle.

        Args:
            detector: Face oracle exposing ``detect(image)``
            on_result: Called on the control lane with ``(result, frame_size)``
            lane: Control lane used to deliver results
            executor: Analysis lane; a single worker thread is created when omitted
        """
        self.detector = detector
        self.on_result = on_result
        self.lane = lane
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="analysis")

        self._lock = threading.Lock()
        self._armed = False
        self._in_flight = False
        self._generation = 0

        self.submitted = 0
        self.analysed = 0
        self.dropped_disarmed = 0
        self.dropped_busy = 0
        self.failures = 0

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def set_armed(self, armed: bool) -> None:
        """Arm or disarm detection. Disarming invalidates any result still in flight."""
        with self._lock:
            if armed == self._armed:
                return
            self._armed = armed
            if not armed:
                self._generation += 1
        logger.debug(f"Frame analysis {'armed' if armed else 'disarmed'}")

    def submit(self, frame: FrameSample) -> bool:
        """Offer a frame for analysis.

        Args:
            frame: Frame from the capture lane

        Returns:
            True if the frame was handed to the detector, False if it was dropped
        """
        with self._lock:
            self.submitted += 1
            if not self._armed:
                self.dropped_disarmed += 1
                return False
            if self._in_flight:
                self.dropped_busy += 1
                return False
            self._in_flight = True
            generation = self._generation

        try:
            self._executor.submit(self._analyse, frame, generation)
        except RuntimeError as e:
            # executor already shut down
            logger.warning(f"Analysis lane rejected frame: {e}")
            with self._lock:
                self._in_flight = False
            return False
        return True

    def _analyse(self, frame: FrameSample, generation: int) -> None:
        try:
            result = self.detector.detect(frame.image)
        except DetectorUnavailable as e:
            logger.debug(f"Detector unavailable: {e}")
            result = None
        except Exception as e:
            logger.error(f"Face detection failed: {e}")
            self.failures += 1
            result = None

        with self._lock:
            self._in_flight = False
            self.analysed += 1
        self.lane.post(self._deliver, result, frame.size, generation)

    def _deliver(self, result: Optional[DetectionResult], size: Size, generation: int) -> None:
        with self._lock:
            stale = generation != self._generation or not self._armed
        if stale:
            logger.debug("Dropping stale detection result")
            return
        self.on_result(result, size)

    def shutdown(self) -> None:
        """Disarm and release the analysis lane if this throttle created it."""
        self.set_armed(False)
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def get_stats(self) -> dict:
        """Get throttle statistics."""
        return {
            'armed': self._armed,
            'in_flight': self._in_flight,
            'submitted': self.submitted,
            'analysed': self.analysed,
            'dropped_disarmed': self.dropped_disarmed,
            'dropped_busy': self.dropped_busy,
            'failures': self.failures,
        }
