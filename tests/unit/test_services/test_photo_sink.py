"""Unit tests for the directory photo sink."""
from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image

from photobooth.core.exceptions import PersistenceFailed
from photobooth.services.photo_sink import DirectoryPhotoSink


class TestDirectoryPhotoSink:
    """Test suite for DirectoryPhotoSink."""

    def test_saves_color_image_as_rgb(self, temp_dir):
        sink = DirectoryPhotoSink(str(temp_dir / "out"), "png")
        image = np.zeros((4, 6, 3), dtype=np.uint8)
        image[:, :, 0] = 255  # blue in BGR

        path = sink.save(image, "shot0_composite")
        assert path.exists()
        assert path.name.endswith("_shot0_composite.png")
        with Image.open(path) as saved:
            assert saved.size == (6, 4)
            assert saved.getpixel((0, 0)) == (0, 0, 255)

    def test_saves_grayscale_image(self, temp_dir):
        sink = DirectoryPhotoSink(str(temp_dir), ".PNG")
        path = sink.save(np.full((3, 3), 128, dtype=np.uint8), "shot0_gray")
        with Image.open(path) as saved:
            assert saved.mode == "L"
            assert saved.getpixel((1, 1)) == 128

    def test_write_failure_raises_persistence_failed(self, temp_dir):
        sink = DirectoryPhotoSink(str(temp_dir))
        with patch("PIL.Image.Image.save", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceFailed):
                sink.save(np.zeros((2, 2, 3), dtype=np.uint8), "shot1_composite")
