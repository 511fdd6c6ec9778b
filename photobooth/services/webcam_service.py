"""Webcam service: live frame source and capture trigger for the session."""

import logging
import threading
import time
from typing import Callable, Optional

import cv2
import numpy as np

from ..core.entities import FrameSample
from ..core.exceptions import CaptureFailed
from ..utils.image_utils import orient_frame

logger = logging.getLogger(__name__)


class WebcamService:
    """Service for managing webcam capture and streaming."""

    def __init__(self, camera_index: int = 0, width: int = 1280, height: int = 720, fps: int = 30,
                 mirror: bool = True, rotation: int = 0):
        """Initialize webcam service.

        Args:
            camera_index: Camera device index
            width: Requested frame width
            height: Requested frame height
            fps: Target frames per second
            mirror: Flip frames horizontally (front-camera preview)
            rotation: Fixed counter-clockwise rotation in degrees (0, 90, 180, 270)
        """
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self.target_fps = fps
        self.mirror = mirror
        self.rotation = rotation

        self._capture: Optional[cv2.VideoCapture] = None
        self._is_streaming = False
        self._stream_thread: Optional[threading.Thread] = None
        self._current_frame: Optional[FrameSample] = None
        self._frame_lock = threading.Lock()
        self._frame_callback: Optional[Callable[[FrameSample], None]] = None
        self._actual_fps = 0.0
        self._frame_count = 0
        self._fps_start_time = time.time()

    def set_frame_callback(self, frame_callback: Optional[Callable[[FrameSample], None]]) -> None:
        """Set the callback invoked with every frame; kept across stream restarts."""
        self._frame_callback = frame_callback

    def start_stream(self, frame_callback: Optional[Callable[[FrameSample], None]] = None) -> bool:
        """Start webcam streaming.

        Args:
            frame_callback: Optional callback replacing the current one

        Returns:
            True if stream started successfully, False otherwise
        """
        if self._is_streaming:
            logger.warning("Stream already running")
            return True
        if frame_callback is not None:
            self._frame_callback = frame_callback

        try:
            self._capture = cv2.VideoCapture(self.camera_index)

            if not self._capture.isOpened():
                logger.error(f"Failed to open camera {self.camera_index}")
                self._cleanup()
                return False

            self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            self._capture.set(cv2.CAP_PROP_FPS, self.target_fps)

            actual_width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
            actual_height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
            logger.info(f"Camera {self.camera_index} opened: {actual_width}x{actual_height}")

            self._is_streaming = True
            self._fps_start_time = time.time()
            self._frame_count = 0

            self._stream_thread = threading.Thread(target=self._stream_loop, name="capture", daemon=True)
            self._stream_thread.start()
            return True

        except cv2.error as e:
            logger.error(f"Error starting stream: {e}")
            self._cleanup()
            return False

    def stop_stream(self) -> None:
        """Stop webcam streaming and release resources."""
        if not self._is_streaming:
            return

        self._is_streaming = False

        if (self._stream_thread and self._stream_thread.is_alive()
                and threading.current_thread() is not self._stream_thread):
            self._stream_thread.join(timeout=2.0)

        self._cleanup()
        logger.info("Stream stopped")

    def _stream_loop(self) -> None:
        """Main streaming loop running in separate thread."""
        frame_delay = 1.0 / self.target_fps

        while self._is_streaming:
            loop_start = time.time()

            try:
                ok = self.read_once()
                if not ok:
                    logger.warning("Failed to read frame from camera")
                    time.sleep(0.1)
            except cv2.error as e:
                logger.error(f"Error in stream loop: {e}")
                time.sleep(0.1)

            loop_time = time.time() - loop_start
            sleep_time = max(0, frame_delay - loop_time)
            if sleep_time > 0:
                time.sleep(sleep_time)

    def read_once(self) -> bool:
        """Read, orient and publish a single frame.

        Returns:
            True when a frame was read
        """
        capture = self._capture
        if capture is None or not capture.isOpened():
            return False
        ret, frame = capture.read()
        if not ret or frame is None:
            return False

        sample = FrameSample(orient_frame(frame, self.mirror, self.rotation), time.time())
        with self._frame_lock:
            self._current_frame = sample

        self._frame_count += 1
        elapsed = time.time() - self._fps_start_time
        if elapsed >= 1.0:
            self._actual_fps = self._frame_count / elapsed
            self._frame_count = 0
            self._fps_start_time = time.time()

        callback = self._frame_callback
        if callback:
            try:
                callback(sample)
            except Exception as e:
                logger.error(f"Error in frame callback: {e}")
        return True

    def get_current_frame(self) -> Optional[FrameSample]:
        """Get the most recent frame, or None if no frame is available."""
        with self._frame_lock:
            return self._current_frame

    def capture_frame(self) -> np.ndarray:
        """Capture the current frame as a full-resolution photo.

        Returns:
            Copy of the latest oriented frame

        Raises:
            CaptureFailed: If the stream is not running or has produced no frame yet
        """
        if not self._is_streaming:
            raise CaptureFailed("Camera stream is not running")
        sample = self.get_current_frame()
        if sample is None:
            raise CaptureFailed("No frame captured yet")
        return sample.image.copy()

    def get_fps(self) -> float:
        """Get actual FPS of the stream."""
        return self._actual_fps

    def get_resolution(self) -> tuple[int, int]:
        """Get current camera resolution as (width, height)."""
        if self._capture and self._capture.isOpened():
            width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
            height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
            return (width, height)
        return (0, 0)

    def is_streaming(self) -> bool:
        """Check if stream is active."""
        return self._is_streaming

    def _cleanup(self) -> None:
        """Clean up camera resources."""
        if self._capture:
            self._capture.release()
            self._capture = None

        with self._frame_lock:
            self._current_frame = None
