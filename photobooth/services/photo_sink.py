"""Directory-backed persistence sink for session artifacts."""
from __future__ import annotations

import logging
import time
from pathlib import Path

import cv2
import numpy as np
from PIL import Image

from ..core.exceptions import PersistenceFailed

logger = logging.getLogger(__name__)


class DirectoryPhotoSink:
    """Writes composites into ``output_dir`` with timestamped file names."""

    def __init__(self, output_dir: str = "data/photos", image_format: str = "png"):
        self.output_dir = Path(output_dir)
        self.image_format = image_format.lower().lstrip(".")

    def save(self, image: np.ndarray, name: str) -> Path:
        """Save an image.

        Args:
            image: BGR color or single-channel image
            name: Base file name without extension

        Returns:
            Path of the written file

        Raises:
            PersistenceFailed: If the image cannot be encoded or written
        """
        stamp = time.strftime("%Y%m%d_%H%M%S")
        path = self.output_dir / f"{stamp}_{name}.{self.image_format}"
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            if image.ndim == 3:
                image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
            Image.fromarray(image).save(path)
        except (OSError, ValueError, KeyError) as e:
            raise PersistenceFailed(f"Could not save '{path}': {e}") from e
        logger.info(f"Saved {path}")
        return path
