"""Unit tests for WebcamService.

Tests cover stream start/stop, frame orientation, callbacks and capture errors
with ``cv2.VideoCapture`` patched out.
"""
import numpy as np
import pytest
import cv2
from unittest.mock import Mock, patch

from photobooth.core.entities import FrameSample
from photobooth.core.exceptions import CaptureFailed
from photobooth.services.webcam_service import WebcamService


def make_capture(frame=None, opened=True):
    cap = Mock()
    cap.isOpened.return_value = opened
    cap.get.side_effect = lambda prop: {
        cv2.CAP_PROP_FRAME_WIDTH: 640,
        cv2.CAP_PROP_FRAME_HEIGHT: 480,
    }.get(prop, 0)
    cap.read.return_value = (frame is not None, frame)
    return cap


@pytest.fixture
def frame():
    image = np.zeros((480, 640, 3), dtype=np.uint8)
    image[:, :10] = 255
    return image


class TestWebcamService:
    """Test suite for WebcamService functionality."""

    def test_initialization(self):
        service = WebcamService(camera_index=2, width=320, height=240, fps=15, mirror=False, rotation=90)
        assert service.camera_index == 2
        assert service.target_fps == 15
        assert not service.is_streaming()
        assert service.get_current_frame() is None

    @patch('cv2.VideoCapture')
    def test_start_stream_failure(self, mock_video_capture):
        mock_video_capture.return_value = make_capture(opened=False)
        service = WebcamService()
        assert service.start_stream() is False
        assert not service.is_streaming()

    @patch('cv2.VideoCapture')
    def test_read_once_orients_and_publishes(self, mock_video_capture, frame):
        mock_video_capture.return_value = make_capture(frame)
        received = []
        service = WebcamService(mirror=True)
        service._capture = mock_video_capture.return_value
        service.set_frame_callback(received.append)

        assert service.read_once() is True
        assert len(received) == 1
        sample = received[0]
        assert isinstance(sample, FrameSample)
        assert sample.size == (640, 480)
        # mirrored: the bright strip moves to the right edge
        assert sample.image[0, -1].tolist() == [255, 255, 255]
        assert sample.image[0, 0].tolist() == [0, 0, 0]
        assert service.get_current_frame() is sample

    @patch('cv2.VideoCapture')
    def test_read_once_with_rotation(self, mock_video_capture, frame):
        mock_video_capture.return_value = make_capture(frame)
        service = WebcamService(mirror=False, rotation=90)
        service._capture = mock_video_capture.return_value
        service.read_once()
        assert service.get_current_frame().size == (480, 640)

    @patch('cv2.VideoCapture')
    def test_callback_errors_are_contained(self, mock_video_capture, frame):
        mock_video_capture.return_value = make_capture(frame)
        service = WebcamService()
        service._capture = mock_video_capture.return_value
        service.set_frame_callback(Mock(side_effect=RuntimeError("callback failed")))
        assert service.read_once() is True

    def test_read_once_without_camera(self):
        assert WebcamService().read_once() is False

    @patch('cv2.VideoCapture')
    def test_start_and_stop_stream(self, mock_video_capture, frame):
        cap = make_capture(frame)
        mock_video_capture.return_value = cap
        service = WebcamService(fps=100)
        callback = Mock()

        assert service.start_stream(callback) is True
        assert service.is_streaming()
        assert service.start_stream() is True
        service.stop_stream()

        assert not service.is_streaming()
        cap.release.assert_called_once()
        assert service.get_current_frame() is None

    @patch('cv2.VideoCapture')
    def test_callback_kept_across_restart(self, mock_video_capture, frame):
        mock_video_capture.return_value = make_capture(frame)
        service = WebcamService(fps=100)
        callback = Mock()
        service.start_stream(callback)
        service.stop_stream()

        service.start_stream()
        service.stop_stream()
        assert service._frame_callback is callback

    def test_capture_requires_running_stream(self):
        with pytest.raises(CaptureFailed):
            WebcamService().capture_frame()

    @patch('cv2.VideoCapture')
    def test_capture_returns_copy_of_latest_frame(self, mock_video_capture, frame):
        mock_video_capture.return_value = make_capture(frame)
        service = WebcamService(mirror=False)
        service._capture = mock_video_capture.return_value
        service._is_streaming = True
        service.read_once()

        photo = service.capture_frame()
        assert np.array_equal(photo, frame)
        photo[:] = 7
        assert service.get_current_frame().image[0, 0, 0] == 255

    def test_capture_before_first_frame(self):
        service = WebcamService()
        service._is_streaming = True
        with pytest.raises(CaptureFailed):
            service.capture_frame()
