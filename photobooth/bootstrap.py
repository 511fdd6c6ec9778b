"""Wiring of the session collaborators into a runnable photo booth."""
from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Optional

from .backends import MediaPipeFaceBackend, MediaPipeSegmentationBackend
from .config import Config
from .core.scheduler import ControlLane
from .services import (
    CompositingPipeline, DirectoryPhotoSink, FrameAnalysisThrottle, SessionController,
    SessionStateMachine, WebcamService, create_policy,
)

logger = logging.getLogger(__name__)


@dataclass
class PhotoBooth:
    """Running set of collaborators for one photo booth."""
    config: Config
    lane: ControlLane
    camera: WebcamService
    controller: SessionController
    throttle: FrameAnalysisThrottle

    def start(self) -> None:
        self.lane.start()
        self.controller.start()

    def shutdown(self) -> None:
        self.controller.shutdown()
        self.camera.stop_stream()
        self.lane.stop()
        logger.info("Photo booth stopped")


def create_photobooth(config: Config, detector=None, segmenter=None, camera=None, sink=None,
                      lane: Optional[ControlLane] = None, executor: Optional[Executor] = None) -> PhotoBooth:
    """Build every collaborator from configuration.

    Args:
        config: Loaded configuration
        detector: Face oracle; MediaPipe Face Mesh when omitted
        segmenter: Segmentation oracle; MediaPipe Selfie Segmentation when omitted
        camera: Frame source and capture trigger; an OpenCV webcam when omitted
        sink: Persistence sink; a directory sink under ``config.output_dir`` when omitted
        lane: Control lane; a new thread-backed lane when omitted
        executor: Worker shared by analysis and session jobs; one thread each when omitted

    Returns:
        PhotoBooth: wired but not yet started
    """
    oracle_config = {
        'min_detection_confidence': config.min_detection_confidence,
        'min_tracking_confidence': config.min_tracking_confidence,
        'segmentation_model_selection': config.segmentation_model_selection,
        'segmentation_input_size': config.segmentation_input_size,
    }
    if detector is None:
        detector = MediaPipeFaceBackend(oracle_config)
        detector.load_model()
    if segmenter is None:
        segmenter = MediaPipeSegmentationBackend(oracle_config)
        segmenter.load_model()
    if camera is None:
        camera = WebcamService(config.camera_index, config.camera_width, config.camera_height,
                               config.camera_fps, mirror=config.mirror_preview, rotation=config.rotation)
    if sink is None:
        sink = DirectoryPhotoSink(config.output_dir, config.image_format)
    lane = lane or ControlLane()

    machine = SessionStateMachine(config.rearm_delay_s, config.completion_reset_delay_s)
    pipeline = CompositingPipeline(segmenter, sink, config.background_color, config.produce_grayscale)
    controller = SessionController(machine, create_policy(config), pipeline, camera, lane, executor=executor)
    throttle = FrameAnalysisThrottle(detector, controller.on_detection, lane, executor)
    controller.attach_throttle(throttle)
    camera.set_frame_callback(throttle.submit)

    logger.info(f"Photo booth ready with '{config.geometry_policy}' geometry policy")
    return PhotoBooth(config, lane, camera, controller, throttle)
