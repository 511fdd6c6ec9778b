"""Entry point for the two-shot photo booth with an OpenCV preview window."""

import argparse
import logging
import sys

import cv2

from photobooth.bootstrap import create_photobooth
from photobooth.config import load_config
from photobooth.core.entities import Phase
from photobooth.core.exceptions import ApplicationError
from photobooth.core.logging_config import configure_from_config
from photobooth.utils.image_utils import apply_cutout, draw_region_outline

logger = logging.getLogger(__name__)

WINDOW_NAME = "Photo Booth"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Guided two-shot photo session")
    parser.add_argument("--config", default="config.json", help="Path to the JSON configuration file")
    parser.add_argument("--policy", choices=("fixed_shape", "contour_polygon", "segmentation_raster"),
                        help="Override the geometry policy")
    parser.add_argument("--camera", type=int, help="Override the camera index")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def render(frame, booth):
    """Draw the cut-out, overlay and prompt for the current session state."""
    state = booth.controller.state
    h, w = frame.shape[:2]
    viewport = (w, h)

    cutout = booth.controller.cutout_mask(viewport)
    if cutout is not None and state.phase is not Phase.IDLE:
        frame = apply_cutout(frame, cutout, booth.config.cutout_mode)

    region = booth.controller.overlay(viewport)
    if region is not None and region.is_usable:
        color = (0, 200, 0) if state.phase is Phase.COUNTDOWN else (255, 255, 255)
        draw_region_outline(frame, region, color)

    if state.prompt:
        cv2.putText(frame, state.prompt, (20, 40), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 0, 0), 4, cv2.LINE_AA)
        cv2.putText(frame, state.prompt, (20, 40), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 255, 255), 2, cv2.LINE_AA)
    return frame


def main(argv=None) -> int:
    """Photo booth entry point."""
    args = parse_args(argv)
    config = load_config(args.config)
    if args.policy:
        config.geometry_policy = args.policy
    if args.camera is not None:
        config.camera_index = args.camera
    if args.debug:
        config.debug = True
        config.log_level = "DEBUG"
    configure_from_config(config)

    try:
        booth = create_photobooth(config)
    except ApplicationError as e:
        logger.error(f"Could not start the photo booth: {e}")
        return 1

    if not booth.camera.start_stream():
        logger.error("Camera could not be opened")
        return 1
    booth.start()

    try:
        while True:
            sample = booth.camera.get_current_frame()
            if sample is not None:
                cv2.imshow(WINDOW_NAME, render(sample.image.copy(), booth))
            key = cv2.waitKey(15) & 0xFF
            if key == ord("q"):
                break
            if key == ord("s"):
                booth.controller.start()
            elif key == ord("r"):
                booth.controller.restart()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        booth.shutdown()
        cv2.destroyAllWindows()
    return 0


if __name__ == "__main__":
    sys.exit(main())
