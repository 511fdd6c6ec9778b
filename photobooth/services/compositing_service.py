"""Capture & compositing pipeline.

Runs once per captured photo: segment, rescale the mask to the photo, pick
the mask to apply (fresh for the first shot, stored for the second), blend
over a flat background, optionally derive a grayscale copy and its pixel
matrix, then hand the artifacts to the persistence sink.
"""
from __future__ import annotations

import logging
import time
from typing import Optional, Tuple

import cv2
import numpy as np

from ..core.entities import CompositeResult, RasterMask
from ..core.exceptions import CompositingFailed, PersistenceFailed, SegmentationFailed
from ..utils.image_utils import blend_with_background, pixel_matrix, resize_alpha, scale_factors, to_grayscale

logger = logging.getLogger(__name__)


class CompositingPipeline:
    """Turns a captured photo into a composite over a flat background."""

    def __init__(self, segmenter, sink=None, background_color: Tuple[int, int, int] = (255, 255, 255),
                 produce_grayscale: bool = True, interpolation: int = cv2.INTER_LANCZOS4):
        self.segmenter = segmenter
        self.sink = sink
        self.background_color = tuple(background_color)
        self.produce_grayscale = produce_grayscale
        self.interpolation = interpolation
        self._processed = 0
        self._failed = 0

    def process(self, photo: np.ndarray, shot_index: int,
                stored_mask: Optional[RasterMask] = None) -> CompositeResult:
        """Composite one captured photo.

        Args:
            photo: Full-resolution BGR photo
            shot_index: 0 for the first shot, 1 for the second
            stored_mask: Mask kept from the first shot (required for shot 1)

        Returns:
            CompositeResult with the composite and the mask that was applied

        Raises:
            SegmentationFailed: The oracle produced no mask where one was needed
            CompositingFailed: Resampling or blending produced no output
        """
        start = time.time()
        try:
            result = self._run(photo, shot_index, stored_mask)
        except (SegmentationFailed, CompositingFailed):
            self._failed += 1
            raise
        self._persist(result)
        self._processed += 1
        logger.info(f"Shot {shot_index} composited in {(time.time() - start) * 1000:.0f} ms")
        return result

    def _run(self, photo, shot_index, stored_mask) -> CompositeResult:
        if photo is None or photo.size == 0:
            raise CompositingFailed("Captured photo is empty")
        height, width = photo.shape[:2]

        fresh = self._segment(photo, (width, height))
        if shot_index == 0:
            if fresh is None:
                raise SegmentationFailed("Segmentation oracle returned no mask")
            mask = fresh
        else:
            if stored_mask is None:
                raise SegmentationFailed("No mask stored from the first shot")
            if fresh is None:
                logger.warning("Segmentation returned no mask for shot 1; using the stored mask")
            mask = stored_mask
            if mask.size != (width, height):
                mask = RasterMask(self._rescale(mask.alpha, (width, height)))

        try:
            composite = blend_with_background(photo, mask.alpha, self.background_color)
        except (ValueError, cv2.error) as e:
            raise CompositingFailed(f"Blending failed: {e}") from e

        gray = matrix = None
        if self.produce_grayscale:
            try:
                gray = to_grayscale(composite)
                matrix = pixel_matrix(gray)
            except (ValueError, cv2.error) as e:
                raise CompositingFailed(f"Grayscale conversion failed: {e}") from e

        return CompositeResult(
            shot_index=shot_index,
            composite=composite,
            mask_used=mask,
            fresh_mask=fresh,
            grayscale=gray,
            pixel_matrix=matrix,
        )

    def _segment(self, photo: np.ndarray, size) -> Optional[RasterMask]:
        try:
            raw = self.segmenter.segment(photo)
        except SegmentationFailed as e:
            logger.warning(f"Segmentation failed: {e}")
            return None
        if raw is None or raw.alpha.size == 0:
            return None
        return RasterMask(self._rescale(raw.alpha, size))

    def _rescale(self, alpha: np.ndarray, size) -> np.ndarray:
        sx, sy = scale_factors((alpha.shape[1], alpha.shape[0]), size)
        logger.debug(f"Rescaling mask {alpha.shape[1]}x{alpha.shape[0]} by ({sx:.3f}, {sy:.3f})")
        try:
            return resize_alpha(alpha, size, self.interpolation)
        except (ValueError, cv2.error) as e:
            raise CompositingFailed(f"Mask resampling failed: {e}") from e

    def _persist(self, result: CompositeResult) -> None:
        if self.sink is None:
            return
        name = f"shot{result.shot_index}"
        artifacts = [(result.composite, f"{name}_composite")]
        if result.grayscale is not None:
            artifacts.append((result.grayscale, f"{name}_gray"))

        paths = []
        try:
            for image, artifact in artifacts:
                path = self.sink.save(image, artifact)
                if not path:
                    raise PersistenceFailed(f"Sink reported no location for {artifact}")
                paths.append(path)
        except PersistenceFailed as e:
            logger.error(f"Failed to persist shot {result.shot_index}: {e}")
            result.persistence_error = str(e)
        except Exception as e:
            # sink errors of any type count as persistence failures
            logger.error(f"Sink error while persisting shot {result.shot_index}: {e}")
            result.persistence_error = str(e)
        result.saved_paths = tuple(paths)

    def get_stats(self) -> dict:
        """Get pipeline statistics."""
        return {
            'processed': self._processed,
            'failed': self._failed,
            'produce_grayscale': self.produce_grayscale,
            'has_sink': self.sink is not None,
        }
