"""Unit tests for the MediaPipe oracle backends with mediapipe mocked out."""
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from photobooth.backends.mediapipe_backend import (
    LANDMARK_GROUPS, MediaPipeFaceBackend, MediaPipeSegmentationBackend, subject_from_landmarks,
)
from photobooth.core.constants import FACE_CONTOUR, LEFT_EYE
from photobooth.core.exceptions import ModelError

MODULE = "photobooth.backends.mediapipe_backend"


def mesh_points(xmin=0.2, ymin=0.1, xmax=0.6, ymax=0.7, count=468):
    """Face-mesh style landmarks spread over a top-left normalized box."""
    rng = np.random.default_rng(3)
    pts = np.column_stack([
        rng.uniform(xmin, xmax, count),
        rng.uniform(ymin, ymax, count),
    ])
    pts[0] = (xmin, ymin)
    pts[1] = (xmax, ymax)
    return pts


class TestSubjectFromLandmarks:
    """Conversion from top-left normalized landmarks."""

    def test_box_is_flipped_to_bottom_left(self):
        subject = subject_from_landmarks(mesh_points())
        box = subject.box
        assert (box.x, box.y, box.w, box.h) == pytest.approx((0.2, 0.3, 0.4, 0.6))

    def test_groups_are_relative_to_box(self):
        pts = mesh_points()
        subject = subject_from_landmarks(pts)
        assert len(subject.landmark_group(FACE_CONTOUR)) == len(LANDMARK_GROUPS[FACE_CONTOUR])
        first = subject.landmark_group(LEFT_EYE)[0]
        index = LANDMARK_GROUPS[LEFT_EYE][0]
        assert first.x == pytest.approx((pts[index, 0] - 0.2) / 0.4)
        assert first.y == pytest.approx((0.7 - pts[index, 1]) / 0.6)
        for group in subject.landmarks.values():
            for point in group:
                assert 0.0 <= point.x <= 1.0
                assert 0.0 <= point.y <= 1.0

    def test_short_landmark_list_skips_missing_indices(self):
        subject = subject_from_landmarks(mesh_points(count=50))
        assert len(subject.landmark_group(FACE_CONTOUR)) < len(LANDMARK_GROUPS[FACE_CONTOUR])

    def test_empty_and_degenerate(self):
        assert subject_from_landmarks(np.zeros((0, 2))) is None
        flat = subject_from_landmarks(np.full((10, 2), 0.5))
        assert flat.box.is_degenerate
        assert flat.landmarks == {}


class TestMediaPipeFaceBackend:
    """Face Mesh backend."""

    def test_missing_mediapipe_raises_model_error(self):
        with patch(f"{MODULE}.HAS_MEDIAPIPE", False):
            with pytest.raises(ModelError):
                MediaPipeFaceBackend().load_model()

    def test_detect_converts_faces(self):
        fake_mp = MagicMock()
        landmarks = [SimpleNamespace(x=float(x), y=float(y)) for x, y in mesh_points()]
        mesh = fake_mp.solutions.face_mesh.FaceMesh.return_value
        mesh.process.return_value = SimpleNamespace(
            multi_face_landmarks=[SimpleNamespace(landmark=landmarks)]
        )
        with patch(f"{MODULE}.HAS_MEDIAPIPE", True), patch(f"{MODULE}.mp", fake_mp):
            backend = MediaPipeFaceBackend({'min_detection_confidence': 0.7})
            result = backend.detect(np.zeros((48, 64, 3), dtype=np.uint8))

        assert backend.is_model_loaded()
        assert backend.get_model_info()['model_type'] == 'face_mesh'
        kwargs = fake_mp.solutions.face_mesh.FaceMesh.call_args.kwargs
        assert kwargs['max_num_faces'] == 1
        assert kwargs['min_detection_confidence'] == 0.7
        assert len(result.subjects) == 1
        assert result.primary.box.w == pytest.approx(0.4)

    def test_no_faces_gives_empty_result(self):
        fake_mp = MagicMock()
        fake_mp.solutions.face_mesh.FaceMesh.return_value.process.return_value = SimpleNamespace(
            multi_face_landmarks=None
        )
        with patch(f"{MODULE}.HAS_MEDIAPIPE", True), patch(f"{MODULE}.mp", fake_mp):
            result = MediaPipeFaceBackend().detect(np.zeros((8, 8, 3), dtype=np.uint8))
        assert result.primary is None

    def test_unload_closes_mesh(self):
        fake_mp = MagicMock()
        with patch(f"{MODULE}.HAS_MEDIAPIPE", True), patch(f"{MODULE}.mp", fake_mp):
            backend = MediaPipeFaceBackend()
            backend.load_model()
            backend.unload_model()
        fake_mp.solutions.face_mesh.FaceMesh.return_value.close.assert_called_once()
        assert not backend.is_model_loaded()


class TestMediaPipeSegmentationBackend:
    """Selfie Segmentation backend."""

    def test_missing_mediapipe_raises_model_error(self):
        with patch(f"{MODULE}.HAS_MEDIAPIPE", False):
            with pytest.raises(ModelError):
                MediaPipeSegmentationBackend().load_model()

    def test_segments_downscaled_input(self):
        fake_mp = MagicMock()
        segmenter = fake_mp.solutions.selfie_segmentation.SelfieSegmentation.return_value
        segmenter.process.side_effect = lambda rgb: SimpleNamespace(
            segmentation_mask=np.full(rgb.shape[:2], 1.2, dtype=np.float32)
        )
        with patch(f"{MODULE}.HAS_MEDIAPIPE", True), patch(f"{MODULE}.mp", fake_mp):
            backend = MediaPipeSegmentationBackend({'segmentation_input_size': 256})
            mask = backend.segment(np.zeros((720, 1280, 3), dtype=np.uint8))

        assert mask.size == (256, 144)
        assert mask.alpha.max() == pytest.approx(1.0)

    def test_missing_mask_returns_none(self):
        fake_mp = MagicMock()
        fake_mp.solutions.selfie_segmentation.SelfieSegmentation.return_value.process.return_value = (
            SimpleNamespace(segmentation_mask=None)
        )
        with patch(f"{MODULE}.HAS_MEDIAPIPE", True), patch(f"{MODULE}.mp", fake_mp):
            assert MediaPipeSegmentationBackend().segment(np.zeros((32, 32, 3), dtype=np.uint8)) is None

    def test_small_input_not_upscaled(self):
        backend = MediaPipeSegmentationBackend({'segmentation_input_size': 256})
        image = np.zeros((100, 120, 3), dtype=np.uint8)
        assert backend._model_input(image) is image
