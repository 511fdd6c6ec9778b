"""Default configuration values."""

from typing import Any, Dict

DEFAULT_CONFIG: Dict[str, Any] = {
    # Camera settings
    "camera_index": 0,
    "camera_width": 1280,
    "camera_height": 720,
    "camera_fps": 30,
    "mirror_preview": True,  # front camera preview
    "rotation": 0,  # 0, 90, 180 or 270 degrees

    # Geometry & mask settings
    "geometry_policy": "fixed_shape",  # fixed_shape | contour_polygon | segmentation_raster
    "oval_width_ratio": 0.9,
    "oval_height_ratio": 0.6,
    "oval_offset_y": 50.0,  # px above the viewport centre
    "overlay_margin_px": 30.0,
    "mask_threshold": 0.5,
    "cutout_mode": "darken",  # darken | blur

    # Oracle settings
    "min_detection_confidence": 0.5,
    "min_tracking_confidence": 0.5,
    "segmentation_model_selection": 1,  # 0 general, 1 landscape
    "segmentation_input_size": 256,

    # Session timing
    "rearm_delay_s": 2.0,
    "completion_reset_delay_s": 2.0,  # None disables the automatic reset

    # Compositing and output
    "background_color": [255, 255, 255],  # BGR
    "produce_grayscale": True,
    "output_dir": "data/photos",
    "image_format": "png",

    # Debug and Logging Settings
    "debug": False,
    "log_level": "INFO",
    "log_dir": "logs",
    "enable_file_logging": False,
    "structured_logging": False,
}

GEOMETRY_POLICIES = ("fixed_shape", "contour_polygon", "segmentation_raster")
