"""Session services: throttle, geometry policies, compositing, state machine and I/O."""

from .frame_throttle import FrameAnalysisThrottle
from .region_builder import (
    GeometryPolicy, FixedShapePolicy, ContourPolygonPolicy, SegmentationRasterPolicy, create_policy,
)
from .compositing_service import CompositingPipeline
from .session_machine import (
    SessionStateMachine, SessionController, Transition, Effect, EffectKind,
    StartRequested, SubjectDetected, SubjectLost, CountdownTick, CaptureCompleted,
    ProcessingFinished, DetectionRearmed, ResetRequested,
)
from .webcam_service import WebcamService
from .photo_sink import DirectoryPhotoSink

__all__ = [
    "FrameAnalysisThrottle",
    "GeometryPolicy", "FixedShapePolicy", "ContourPolygonPolicy", "SegmentationRasterPolicy",
    "create_policy", "CompositingPipeline",
    "SessionStateMachine", "SessionController", "Transition", "Effect", "EffectKind",
    "StartRequested", "SubjectDetected", "SubjectLost", "CountdownTick", "CaptureCompleted",
    "ProcessingFinished", "DetectionRearmed", "ResetRequested",
    "WebcamService", "DirectoryPhotoSink",
]
