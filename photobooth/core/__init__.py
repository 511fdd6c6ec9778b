"""Core domain entities and constants."""

from .entities import (
    NormalizedBox, NormalizedPoint, Subject, DetectionResult, ScreenRect,
    ScreenRegion, RegionKind, FrameSample, RasterMask, CaptureResult,
    CompositeResult, Phase, SessionState,
)
from .exceptions import (
    ApplicationError, DetectorUnavailable, CaptureFailed, SegmentationFailed,
    CompositingFailed, PersistenceFailed, ConfigError, ModelError, WebcamError,
)
from .constants import APP_NAME, VERSION, SUPPORTED_IMAGE_FORMATS

__all__ = [
    "NormalizedBox", "NormalizedPoint", "Subject", "DetectionResult", "ScreenRect",
    "ScreenRegion", "RegionKind", "FrameSample", "RasterMask", "CaptureResult",
    "CompositeResult", "Phase", "SessionState",
    "ApplicationError", "DetectorUnavailable", "CaptureFailed", "SegmentationFailed",
    "CompositingFailed", "PersistenceFailed", "ConfigError", "ModelError", "WebcamError",
    "APP_NAME", "VERSION", "SUPPORTED_IMAGE_FORMATS",
]
