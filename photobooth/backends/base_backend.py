"""Base backend interfaces for the detection and segmentation oracles."""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import numpy as np
from ..core.entities import DetectionResult, RasterMask


class BaseBackend(ABC):
    """Abstract base class for model backends."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.is_loaded = False
        self.model_info: Dict[str, Any] = {}

    @abstractmethod
    def load_model(self) -> bool:
        """Load the underlying model."""
        pass

    def get_model_info(self) -> Dict[str, Any]:
        """Get information about the loaded model."""
        return dict(self.model_info)

    def is_model_loaded(self) -> bool:
        """Check if a model is currently loaded."""
        return self.is_loaded

    def unload_model(self) -> None:
        """Unload the current model to free memory."""
        self.is_loaded = False
        self.model_info = {}


class FaceDetectorBackend(BaseBackend):
    """Face/landmark oracle: at most one primary subject is used per frame."""

    @abstractmethod
    def detect(self, image: np.ndarray) -> Optional[DetectionResult]:
        """Detect faces in a BGR frame. ``None`` means the oracle had nothing to report."""
        pass


class SegmentationBackend(BaseBackend):
    """Subject/background segmentation oracle."""

    @abstractmethod
    def segment(self, image: np.ndarray) -> Optional[RasterMask]:
        """Segment a BGR photo; the mask is at the oracle's native resolution."""
        pass
