"""Geometry & mask builder.

Turns the primary subject of a detection into a :class:`ScreenRegion` used for
the live overlay and for the alignment test that gates the countdown. Three
interchangeable policies are supported and selected by configuration:

* ``fixed_shape``: a static framing oval; the subject box must fit inside
  the oval's bounding rectangle on both shots.
* ``contour_polygon``: a polygon through the face-contour landmarks; on the
  second shot the subject centre must lie inside the polygon stored from the
  first shot.
* ``segmentation_raster``: the first shot's segmentation mask scaled to the
  viewport; on the second shot the subject box must fit inside the mask's
  bounding extent.

Every policy can also render an even-odd cut-out (full surface minus region)
used to darken or blur the preview outside the region.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional, Tuple

import numpy as np

from ..core.constants import FACE_CONTOUR, LEFT_EYE, NOSE_CREST, RIGHT_EYE
from ..core.entities import (
    RasterMask, RegionKind, ScreenRect, ScreenRegion, Size, Subject, Point,
)
from ..core.exceptions import ConfigError
from ..utils.geometry import (
    ellipse_rect, expand_rect, landmark_to_screen, landmarks_to_screen, mask_extent,
    normalized_to_screen, point_in_polygon, polygon_bounds,
)
from ..utils.image_utils import draw_cutout, resize_alpha

logger = logging.getLogger(__name__)


class GeometryPolicy(ABC):
    """Common interface: ``region_for`` and ``alignment_test`` plus overlay helpers."""

    name = "base"

    def __init__(self, mirrored: bool = False, overlay_margin: float = 30.0, mask_threshold: float = 0.5):
        self.mirrored = mirrored
        self.overlay_margin = overlay_margin
        self.mask_threshold = mask_threshold

    def region_for(self, subject: Optional[Subject], viewport: Size) -> Optional[ScreenRegion]:
        """Region for ``subject`` in viewport pixels, or None when nothing usable exists."""
        if subject is None or subject.box.is_degenerate:
            return None
        box = normalized_to_screen(subject.box, viewport, self.mirrored)
        if box.is_empty:
            return None
        return self._build_region(subject, box, viewport)

    @abstractmethod
    def _build_region(self, subject: Subject, box: ScreenRect, viewport: Size) -> Optional[ScreenRegion]:
        pass

    @abstractmethod
    def alignment_test(self, region: ScreenRegion, reference: Optional[ScreenRegion], shot_index: int) -> bool:
        """Whether ``region`` is well placed enough to start the countdown."""
        pass

    def reference_for(self, region: Optional[ScreenRegion], mask: RasterMask, viewport: Size) -> Optional[ScreenRegion]:
        """Geometry stored after the first shot to constrain the second."""
        return region

    def overlay_for(self, region: Optional[ScreenRegion], reference: Optional[ScreenRegion],
                    viewport: Size) -> Optional[ScreenRegion]:
        """Region drawn on the live preview."""
        return region

    def framing_for(self, region: ScreenRegion) -> ScreenRegion:
        """Oval around the subject box, grown by the overlay margin on every side."""
        box = region.subject_box or region.bounds
        grown = expand_rect(box, self.overlay_margin)
        return ScreenRegion(kind=RegionKind.ELLIPSE, bounds=grown, viewport=region.viewport, subject_box=box)

    def cutout_mask(self, region: Optional[ScreenRegion], viewport: Size) -> np.ndarray:
        """Full-surface mask minus the region (255 outside, 0 inside)."""
        if region is None:
            width, height = viewport
            return np.full((height, width), 255, dtype=np.uint8)
        return draw_cutout(region, viewport, self.mask_threshold)

    def reference_markers(self, subject: Subject, viewport: Size) -> Tuple[Point, ...]:
        """Outer eye corners and the nose crest point; short or missing groups are skipped."""
        picks = (
            (LEFT_EYE, 0),
            (RIGHT_EYE, -1),
            (NOSE_CREST, 1),
        )
        markers = []
        for group_name, index in picks:
            group = subject.landmark_group(group_name)
            if not group or (index >= 0 and len(group) <= index):
                continue
            markers.append(landmark_to_screen(group[index], subject.box, viewport, self.mirrored))
        return tuple(markers)

    def _rect_region(self, subject: Subject, box: ScreenRect, viewport: Size) -> ScreenRegion:
        return ScreenRegion(kind=RegionKind.RECT, bounds=box, viewport=viewport, subject_box=box,
                            markers=self.reference_markers(subject, viewport))


class FixedShapePolicy(GeometryPolicy):
    name = "fixed_shape"

    def __init__(self, width_ratio: float = 0.9, height_ratio: float = 0.6, offset_y: float = 50.0, **kwargs):
        super().__init__(**kwargs)
        self.width_ratio = width_ratio
        self.height_ratio = height_ratio
        self.offset_y = offset_y

    def oval(self, viewport: Size) -> ScreenRegion:
        rect = ellipse_rect(viewport, self.width_ratio, self.height_ratio, self.offset_y)
        return ScreenRegion(kind=RegionKind.ELLIPSE, bounds=rect, viewport=viewport)

    def _build_region(self, subject, box, viewport):
        return self._rect_region(subject, box, viewport)

    def alignment_test(self, region, reference, shot_index):
        target = reference if reference is not None else self.oval(region.viewport)
        return target.bounds.contains(region.subject_box or region.bounds)

    def reference_for(self, region, mask, viewport):
        return self.oval(viewport)

    def overlay_for(self, region, reference, viewport):
        return reference if reference is not None else self.oval(viewport)


class ContourPolygonPolicy(GeometryPolicy):
    name = "contour_polygon"

    def _build_region(self, subject, box, viewport):
        contour = subject.landmark_group(FACE_CONTOUR)
        if len(contour) < 3:
            logger.debug("Face contour has %d points, skipping region update", len(contour))
            return None
        polygon = landmarks_to_screen(contour, subject.box, viewport, self.mirrored)
        bounds = polygon_bounds(polygon)
        if bounds.is_empty:
            return None
        return ScreenRegion(kind=RegionKind.POLYGON, bounds=bounds, viewport=viewport, polygon=polygon,
                            subject_box=box, markers=self.reference_markers(subject, viewport))

    def alignment_test(self, region, reference, shot_index):
        if shot_index == 0 or reference is None:
            return region.is_usable
        center = (region.subject_box or region.bounds).center
        if reference.polygon is not None:
            return point_in_polygon(reference.polygon, center)
        return reference.bounds.contains_point(center)


class SegmentationRasterPolicy(GeometryPolicy):
    name = "segmentation_raster"

    def _build_region(self, subject, box, viewport):
        return self._rect_region(subject, box, viewport)

    def alignment_test(self, region, reference, shot_index):
        if shot_index == 0 or reference is None:
            return region.is_usable
        return reference.bounds.contains(region.subject_box or region.bounds)

    def reference_for(self, region, mask, viewport):
        sx, sy = viewport[0] / mask.width, viewport[1] / mask.height
        logger.debug("Scaling stored mask %dx%d to viewport by (%.3f, %.3f)", mask.width, mask.height, sx, sy)
        alpha = resize_alpha(mask.alpha, viewport)
        extent = mask_extent(alpha, self.mask_threshold)
        if extent is None:
            logger.warning("Stored mask has no pixel above %.2f; second shot cannot align", self.mask_threshold)
            extent = ScreenRect(0.0, 0.0, 0.0, 0.0)
        return ScreenRegion(kind=RegionKind.RASTER, bounds=extent, viewport=viewport, alpha=alpha)

    def overlay_for(self, region, reference, viewport):
        return reference if reference is not None else region


POLICIES = {
    FixedShapePolicy.name: FixedShapePolicy,
    ContourPolygonPolicy.name: ContourPolygonPolicy,
    SegmentationRasterPolicy.name: SegmentationRasterPolicy,
}


def create_policy(config) -> GeometryPolicy:
    """Instantiate the policy named by ``config.geometry_policy``."""
    name = config.geometry_policy
    common = dict(
        mirrored=False,
        overlay_margin=config.overlay_margin_px,
        mask_threshold=config.mask_threshold,
    )
    if name == FixedShapePolicy.name:
        return FixedShapePolicy(config.oval_width_ratio, config.oval_height_ratio, config.oval_offset_y, **common)
    if name in POLICIES:
        return POLICIES[name](**common)
    raise ConfigError(f"Unknown geometry policy '{name}'")
