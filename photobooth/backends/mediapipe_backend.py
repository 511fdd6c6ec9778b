"""MediaPipe implementations of the face and segmentation oracles.

MediaPipe reports normalized coordinates with the origin at the top-left of
the image; results are converted here into the bottom-left convention used by
:mod:`photobooth.utils.geometry`, with landmarks expressed relative to the
subject box.
"""
import logging
import time
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np

from .base_backend import FaceDetectorBackend, SegmentationBackend
from ..core.constants import FACE_CONTOUR, LEFT_EYE, NOSE_CREST, RIGHT_EYE
from ..core.entities import DetectionResult, NormalizedBox, NormalizedPoint, RasterMask, Subject
from ..core.exceptions import ModelError

logger = logging.getLogger(__name__)

# Try to import mediapipe
HAS_MEDIAPIPE = False
try:
    import mediapipe as mp
    HAS_MEDIAPIPE = True
except ImportError:
    mp = None

# Face Mesh landmark indices, each group ordered along its outline
LANDMARK_GROUPS: Dict[str, Tuple[int, ...]] = {
    LEFT_EYE: (33, 7, 163, 144, 145, 153, 154, 155, 133, 173, 157, 158, 159, 160, 161, 246),
    RIGHT_EYE: (362, 382, 381, 380, 374, 373, 390, 249, 263, 466, 388, 387, 386, 385, 384, 398),
    NOSE_CREST: (168, 6, 197, 195, 5, 4),
    FACE_CONTOUR: (10, 338, 297, 332, 284, 251, 389, 356, 454, 323, 361, 288, 397, 365, 379, 378,
                   400, 377, 152, 148, 176, 149, 150, 136, 172, 58, 132, 93, 234, 127, 162, 21,
                   54, 103, 67, 109),
}


def subject_from_landmarks(points: np.ndarray, score: float = 1.0) -> Optional[Subject]:
    """Build a :class:`Subject` from ``(N, 2)`` top-left normalized landmarks."""
    if points.size == 0:
        return None
    pts = np.clip(points, 0.0, 1.0)
    xmin, ymin = pts.min(axis=0)
    xmax, ymax = pts.max(axis=0)
    w, h = float(xmax - xmin), float(ymax - ymin)
    box = NormalizedBox(float(xmin), float(1.0 - ymax), w, h)
    if box.is_degenerate:
        return Subject(box=box, score=score)

    landmarks = {}
    for name, indices in LANDMARK_GROUPS.items():
        valid = [i for i in indices if i < len(pts)]
        landmarks[name] = tuple(
            NormalizedPoint(float((pts[i, 0] - xmin) / w), float((ymax - pts[i, 1]) / h))
            for i in valid
        )
    return Subject(box=box, landmarks=landmarks, score=score)


class MediaPipeFaceBackend(FaceDetectorBackend):
    """Face Mesh based detector producing a box plus eye, nose and contour groups."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self._mesh = None

    def load_model(self) -> bool:
        if not HAS_MEDIAPIPE:
            raise ModelError("mediapipe not installed. Cannot use the MediaPipe face backend.")
        try:
            self._mesh = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=False,
                max_num_faces=1,
                refine_landmarks=False,
                min_detection_confidence=self.config.get("min_detection_confidence", 0.5),
                min_tracking_confidence=self.config.get("min_tracking_confidence", 0.5),
            )
        except (AttributeError, RuntimeError, ValueError) as e:
            self.is_loaded = False
            raise ModelError(f"Failed to load MediaPipe Face Mesh: {e}")
        self.is_loaded = True
        self.model_info = {'backend': 'mediapipe', 'model_type': 'face_mesh'}
        logger.info("MediaPipe Face Mesh loaded")
        return True

    def detect(self, image: np.ndarray) -> Optional[DetectionResult]:
        if not self.is_loaded:
            self.load_model()
        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        results = self._mesh.process(rgb)
        faces = getattr(results, "multi_face_landmarks", None)
        timestamp = time.time()
        if not faces:
            return DetectionResult(subjects=(), timestamp=timestamp)

        subjects = []
        for face in faces:
            points = np.array([(lm.x, lm.y) for lm in face.landmark], dtype=np.float64)
            subject = subject_from_landmarks(points)
            if subject is not None:
                subjects.append(subject)
        return DetectionResult(subjects=tuple(subjects), timestamp=timestamp)

    def unload_model(self) -> None:
        if self._mesh is not None:
            self._mesh.close()
            self._mesh = None
        super().unload_model()


class MediaPipeSegmentationBackend(SegmentationBackend):
    """Selfie Segmentation run on a downscaled copy of the photo."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self._segmenter = None
        self.input_size = int(self.config.get("segmentation_input_size", 256))

    def load_model(self) -> bool:
        if not HAS_MEDIAPIPE:
            raise ModelError("mediapipe not installed. Cannot use the MediaPipe segmentation backend.")
        try:
            self._segmenter = mp.solutions.selfie_segmentation.SelfieSegmentation(
                model_selection=self.config.get("segmentation_model_selection", 1)
            )
        except (AttributeError, RuntimeError, ValueError) as e:
            self.is_loaded = False
            raise ModelError(f"Failed to load MediaPipe Selfie Segmentation: {e}")
        self.is_loaded = True
        self.model_info = {'backend': 'mediapipe', 'model_type': 'selfie_segmentation',
                           'input_size': self.input_size}
        logger.info("MediaPipe Selfie Segmentation loaded")
        return True

    def _model_input(self, image: np.ndarray) -> np.ndarray:
        h, w = image.shape[:2]
        scale = self.input_size / float(max(h, w))
        if scale >= 1.0:
            return image
        size = (max(1, int(round(w * scale))), max(1, int(round(h * scale))))
        return cv2.resize(image, size, interpolation=cv2.INTER_AREA)

    def segment(self, image: np.ndarray) -> Optional[RasterMask]:
        if not self.is_loaded:
            self.load_model()
        rgb = cv2.cvtColor(self._model_input(image), cv2.COLOR_BGR2RGB)
        results = self._segmenter.process(rgb)
        mask = getattr(results, "segmentation_mask", None)
        if mask is None:
            logger.warning("Selfie Segmentation returned no mask")
            return None
        return RasterMask(np.clip(np.asarray(mask, dtype=np.float32), 0.0, 1.0))

    def unload_model(self) -> None:
        if self._segmenter is not None:
            self._segmenter.close()
            self._segmenter = None
        super().unload_model()
