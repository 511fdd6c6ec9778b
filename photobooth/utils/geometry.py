"""Coordinate transforms between detector space and screen space.

Detector output lives in the unit square with the origin at the bottom-left;
screens and images put the origin at the top-left, so every conversion flips
the vertical axis.
"""
from __future__ import annotations

from typing import Optional, Sequence

import cv2
import numpy as np

from ..core.entities import NormalizedBox, NormalizedPoint, ScreenRect, Point, Size


def normalized_to_screen(box: NormalizedBox, size: Size, mirrored: bool = False) -> ScreenRect:
    """Map a normalized box onto a ``(width, height)`` pixel surface."""
    W, H = size
    x = (1.0 - box.x - box.w) if mirrored else box.x
    return ScreenRect(x * W, (1.0 - box.y - box.h) * H, box.w * W, box.h * H)


def screen_to_normalized(rect: ScreenRect, size: Size, mirrored: bool = False) -> NormalizedBox:
    """Inverse of :func:`normalized_to_screen`."""
    W, H = size
    if W <= 0 or H <= 0:
        return NormalizedBox(0.0, 0.0, 0.0, 0.0)
    w = rect.w / W
    h = rect.h / H
    x = rect.x / W
    if mirrored:
        x = 1.0 - x - w
    return NormalizedBox(x, 1.0 - rect.y / H - h, w, h)


def landmark_to_screen(point: NormalizedPoint, box: NormalizedBox, size: Size,
                       mirrored: bool = False) -> Point:
    """Map a landmark (relative to its parent box) onto the pixel surface."""
    W, H = size
    if mirrored:
        sx = (1.0 - box.x - point.x * box.w) * W
    else:
        sx = box.x * W + point.x * box.w * W
    sy = (1.0 - box.y) * H - point.y * box.h * H
    return (sx, sy)


def landmarks_to_screen(points: Sequence[NormalizedPoint], box: NormalizedBox, size: Size,
                        mirrored: bool = False) -> np.ndarray:
    """Vectorised :func:`landmark_to_screen`; returns an ``(N, 2)`` float32 array."""
    if not points:
        return np.zeros((0, 2), dtype=np.float32)
    W, H = size
    rel = np.array([(p.x, p.y) for p in points], dtype=np.float64)
    if mirrored:
        xs = (1.0 - box.x - rel[:, 0] * box.w) * W
    else:
        xs = box.x * W + rel[:, 0] * box.w * W
    ys = (1.0 - box.y) * H - rel[:, 1] * box.h * H
    return np.stack([xs, ys], axis=1).astype(np.float32)


def ellipse_rect(size: Size, width_ratio: float = 0.9, height_ratio: float = 0.6,
                 offset_y: float = 50.0) -> ScreenRect:
    """Bounding rectangle of the fixed framing oval, raised ``offset_y`` px above centre."""
    W, H = size
    width = W * width_ratio
    height = H * height_ratio
    return ScreenRect(W / 2.0 - width / 2.0, H / 2.0 - height / 2.0 - offset_y, width, height)


def expand_rect(rect: ScreenRect, margin: float) -> ScreenRect:
    return rect.inset(-margin, -margin)


def polygon_bounds(points: np.ndarray) -> ScreenRect:
    if points is None or len(points) == 0:
        return ScreenRect(0.0, 0.0, 0.0, 0.0)
    mins = points.min(axis=0)
    maxs = points.max(axis=0)
    return ScreenRect(float(mins[0]), float(mins[1]),
                      float(maxs[0] - mins[0]), float(maxs[1] - mins[1]))


def point_in_polygon(polygon: np.ndarray, point: Point) -> bool:
    """True when ``point`` lies inside or on the edge of ``polygon``."""
    if polygon is None or len(polygon) < 3:
        return False
    contour = np.asarray(polygon, dtype=np.float32).reshape(-1, 1, 2)
    return cv2.pointPolygonTest(contour, (float(point[0]), float(point[1])), False) >= 0


def mask_extent(alpha: np.ndarray, threshold: float = 0.5) -> Optional[ScreenRect]:
    """Bounding extent of the pixels whose opacity reaches ``threshold``."""
    binary = (alpha >= threshold).astype(np.uint8)
    if not binary.any():
        return None
    x, y, w, h = cv2.boundingRect(binary)
    return ScreenRect(float(x), float(y), float(w), float(h))

