"""Image processing utilities."""

import cv2
import numpy as np
from typing import Optional, Tuple

from ..core.entities import RegionKind, ScreenRegion, Size

_ROTATIONS = {
    90: cv2.ROTATE_90_COUNTERCLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_CLOCKWISE,
}


def orient_frame(image: np.ndarray, mirror: bool = False, rotation: int = 0) -> np.ndarray:
    """Apply the fixed camera orientation: optional horizontal mirror, then rotation."""
    if mirror:
        image = cv2.flip(image, 1)
    rotation = rotation % 360
    if rotation:
        if rotation not in _ROTATIONS:
            raise ValueError(f"Unsupported rotation {rotation}, expected a multiple of 90")
        image = cv2.rotate(image, _ROTATIONS[rotation])
    return image


def scale_factors(source: Size, target: Size) -> Tuple[float, float]:
    """Independent horizontal and vertical scale factors from ``source`` to ``target``."""
    sw, sh = source
    tw, th = target
    if sw <= 0 or sh <= 0:
        raise ValueError(f"Cannot scale from empty size {source}")
    return (tw / sw, th / sh)


def resize_alpha(alpha: np.ndarray, size: Size, interpolation: int = cv2.INTER_LANCZOS4) -> np.ndarray:
    """Resample an opacity map to ``size`` (width, height), clipped back into [0, 1]."""
    width, height = size
    src = np.ascontiguousarray(alpha, dtype=np.float32)
    if src.shape[1] == width and src.shape[0] == height:
        return src.copy()
    resized = cv2.resize(src, (width, height), interpolation=interpolation)
    return np.clip(resized, 0.0, 1.0)


def draw_cutout(region: ScreenRegion, size: Optional[Size] = None, threshold: float = 0.5) -> np.ndarray:
    """Even-odd cut-out: 255 over the whole surface except inside ``region``."""
    width, height = size or region.viewport
    cutout = np.full((height, width), 255, dtype=np.uint8)
    if not region.is_usable:
        return cutout

    if region.kind is RegionKind.ELLIPSE:
        b = region.bounds
        center = (int(round(b.x + b.w / 2.0)), int(round(b.y + b.h / 2.0)))
        axes = (max(1, int(round(b.w / 2.0))), max(1, int(round(b.h / 2.0))))
        cv2.ellipse(cutout, center, axes, 0, 0, 360, 0, -1)
    elif region.kind is RegionKind.POLYGON and region.polygon is not None and len(region.polygon) >= 3:
        pts = np.round(region.polygon).astype(np.int32).reshape(-1, 1, 2)
        cv2.fillPoly(cutout, [pts], 0)
    elif region.kind is RegionKind.RASTER and region.alpha is not None:
        alpha = region.alpha
        if alpha.shape[:2] != (height, width):
            alpha = resize_alpha(alpha, (width, height), cv2.INTER_LINEAR)
        cutout[alpha >= threshold] = 0
    else:
        x, y, w, h = region.bounds.as_int_tuple()
        cv2.rectangle(cutout, (x, y), (x + w, y + h), 0, -1)
    return cutout


def apply_cutout(frame: np.ndarray, cutout: np.ndarray, mode: str = "darken",
                 strength: float = 0.6, blur_kernel: int = 31) -> np.ndarray:
    """Darken or blur everything outside the region for live preview feedback."""
    if cutout.shape[:2] != frame.shape[:2]:
        cutout = cv2.resize(cutout, (frame.shape[1], frame.shape[0]), interpolation=cv2.INTER_NEAREST)
    outside = cutout > 0
    if mode == "blur":
        k = blur_kernel | 1
        treated = cv2.GaussianBlur(frame, (k, k), 0)
    elif mode == "darken":
        treated = (frame.astype(np.float32) * (1.0 - strength)).astype(np.uint8)
    else:
        raise ValueError(f"Unknown cut-out mode '{mode}'")
    out = frame.copy()
    out[outside] = treated[outside]
    return out


def blend_with_background(image: np.ndarray, alpha: np.ndarray,
                          color: Tuple[int, int, int] = (255, 255, 255)) -> np.ndarray:
    """``alpha * image + (1 - alpha) * color`` over the full image extent."""
    if alpha.shape[:2] != image.shape[:2]:
        raise ValueError(f"Mask shape {alpha.shape[:2]} does not match image shape {image.shape[:2]}")
    background = np.empty_like(image, dtype=np.float32)
    background[:] = color
    a = alpha.astype(np.float32)[..., None]
    blended = a * image.astype(np.float32) + (1.0 - a) * background
    return np.clip(np.rint(blended), 0, 255).astype(np.uint8)


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Desaturate through CIE L*a*b*, keeping the lightness channel."""
    lab = cv2.cvtColor(image, cv2.COLOR_BGR2LAB)
    return lab[:, :, 0].copy()


def pixel_matrix(gray: np.ndarray) -> np.ndarray:
    """Row-major 8-bit matrix of a single-channel image."""
    if gray.ndim != 2:
        raise ValueError(f"Expected a single-channel image, got shape {gray.shape}")
    return np.ascontiguousarray(gray, dtype=np.uint8)


def draw_region_outline(frame: np.ndarray, region: ScreenRegion, color=(255, 255, 255),
                        thickness: int = 3) -> np.ndarray:
    """Stroke the region boundary and its reference markers onto ``frame`` in place."""
    b = region.bounds
    if region.kind is RegionKind.ELLIPSE:
        center = (int(round(b.x + b.w / 2.0)), int(round(b.y + b.h / 2.0)))
        axes = (max(1, int(round(b.w / 2.0))), max(1, int(round(b.h / 2.0))))
        cv2.ellipse(frame, center, axes, 0, 0, 360, color, thickness, cv2.LINE_AA)
    elif region.kind is RegionKind.POLYGON and region.polygon is not None:
        pts = np.round(region.polygon).astype(np.int32).reshape(-1, 1, 2)
        cv2.polylines(frame, [pts], True, color, thickness, cv2.LINE_AA)
    else:
        x, y, w, h = b.as_int_tuple()
        cv2.rectangle(frame, (x, y), (x + w, y + h), color, thickness)
    for mx, my in region.markers:
        cv2.circle(frame, (int(round(mx)), int(round(my))), 3, (0, 0, 255), -1, cv2.LINE_AA)
    return frame
