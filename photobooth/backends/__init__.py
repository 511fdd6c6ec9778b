"""Oracle backends for face detection and segmentation."""

from .base_backend import BaseBackend, FaceDetectorBackend, SegmentationBackend
from .mediapipe_backend import MediaPipeFaceBackend, MediaPipeSegmentationBackend

__all__ = [
    "BaseBackend", "FaceDetectorBackend", "SegmentationBackend",
    "MediaPipeFaceBackend", "MediaPipeSegmentationBackend",
]
