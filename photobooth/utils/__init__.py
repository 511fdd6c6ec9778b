"""Utility functions package."""

from .geometry import (
    normalized_to_screen, screen_to_normalized, landmark_to_screen, landmarks_to_screen,
    ellipse_rect, expand_rect, polygon_bounds, point_in_polygon,
    mask_extent,
)
from .image_utils import (
    orient_frame, scale_factors, resize_alpha, draw_cutout, apply_cutout,
    blend_with_background, to_grayscale, pixel_matrix, draw_region_outline,
)

__all__ = [
    "normalized_to_screen", "screen_to_normalized", "landmark_to_screen", "landmarks_to_screen",
    "ellipse_rect", "expand_rect", "polygon_bounds", "point_in_polygon",
    "mask_extent", "orient_frame", "scale_factors", "resize_alpha", "draw_cutout", "apply_cutout",
    "blend_with_background", "to_grayscale", "pixel_matrix", "draw_region_outline",
]
