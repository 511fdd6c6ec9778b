"""Unit tests for the capture and compositing pipeline."""
import numpy as np
import pytest

from photobooth.core.entities import RasterMask
from photobooth.core.exceptions import CompositingFailed, SegmentationFailed
from photobooth.services.compositing_service import CompositingPipeline
from conftest import FakeSegmenter, MemorySink, block_mask


class TestFirstShot:
    """Shot 0 uses its freshly computed mask."""

    def test_composite_over_white(self, photo, shot_mask, memory_sink):
        pipeline = CompositingPipeline(FakeSegmenter(shot_mask), memory_sink)
        result = pipeline.process(photo, 0)

        assert result.shot_index == 0
        assert result.composite.shape == photo.shape
        assert np.array_equal(result.composite[500, 500], photo[500, 500])
        assert result.composite[50, 50].tolist() == [255, 255, 255]
        assert result.mask_used is result.fresh_mask

    def test_native_mask_rescaled_with_independent_axes(self, photo):
        native = block_mask((256, 128), (32, 16, 192, 96))
        result = CompositingPipeline(FakeSegmenter(native)).process(photo, 0)
        assert result.mask_used.size == (1000, 1000)
        assert result.mask_used.alpha[500, 500] == pytest.approx(1.0, abs=1e-3)
        assert result.mask_used.alpha[20, 20] == pytest.approx(0.0, abs=1e-3)

    def test_grayscale_and_pixel_matrix(self, photo, shot_mask):
        result = CompositingPipeline(FakeSegmenter(shot_mask)).process(photo, 0)
        assert result.grayscale.shape == (1000, 1000)
        assert result.pixel_matrix.dtype == np.uint8
        assert result.pixel_matrix[0, 0] == 255

    def test_grayscale_disabled(self, photo, shot_mask):
        result = CompositingPipeline(FakeSegmenter(shot_mask), produce_grayscale=False).process(photo, 0)
        assert result.grayscale is None
        assert result.pixel_matrix is None

    def test_persists_composite_and_grayscale(self, photo, shot_mask, memory_sink):
        result = CompositingPipeline(FakeSegmenter(shot_mask), memory_sink).process(photo, 0)
        assert [name for name, _ in memory_sink.saved] == ["shot0_composite", "shot0_gray"]
        assert result.saved_paths == ("memory://shot0_composite", "memory://shot0_gray")
        assert result.persistence_error is None


class TestFailures:
    """Any failure aborts the attempt without persisting artifacts."""

    def test_missing_mask_on_first_shot(self, photo, memory_sink):
        pipeline = CompositingPipeline(FakeSegmenter(None), memory_sink)
        with pytest.raises(SegmentationFailed):
            pipeline.process(photo, 0)
        assert memory_sink.saved == []
        assert pipeline.get_stats()['failed'] == 1

    def test_empty_photo(self, shot_mask, memory_sink):
        pipeline = CompositingPipeline(FakeSegmenter(shot_mask), memory_sink)
        with pytest.raises(CompositingFailed):
            pipeline.process(np.zeros((0, 0, 3), dtype=np.uint8), 0)
        assert memory_sink.saved == []

    def test_second_shot_without_stored_mask(self, photo, shot_mask):
        with pytest.raises(SegmentationFailed):
            CompositingPipeline(FakeSegmenter(shot_mask)).process(photo, 1, None)

    def test_persistence_failure_is_recorded_not_raised(self, photo, shot_mask):
        result = CompositingPipeline(FakeSegmenter(shot_mask), MemorySink(fail=True)).process(photo, 0)
        assert result.persistence_error == "Disk full"
        assert result.saved_paths == ()

    def test_raw_sink_error_is_recorded_not_raised(self, photo, shot_mask):
        class BrokenSink:
            def save(self, image, name):
                raise OSError("Read-only file system")

        result = CompositingPipeline(FakeSegmenter(shot_mask), BrokenSink()).process(photo, 0)
        assert result.persistence_error == "Read-only file system"
        assert result.saved_paths == ()
        assert result.mask_used is not None

    def test_sink_returning_nothing_is_recorded(self, photo, shot_mask, caplog):
        class SilentSink:
            def save(self, image, name):
                return None

        result = CompositingPipeline(FakeSegmenter(shot_mask), SilentSink()).process(photo, 0)
        assert "shot0_composite" in result.persistence_error
        assert result.saved_paths == ()
        assert "Failed to persist shot 0" in caplog.text


class TestMaskReuse:
    """Shot 1 always blends with the mask stored from shot 0."""

    def test_second_shot_ignores_fresh_mask(self, photo, shot_mask):
        fresh = block_mask((1000, 1000), (0, 0, 1000, 1000))
        result = CompositingPipeline(FakeSegmenter(fresh)).process(photo, 1, shot_mask)
        assert result.mask_used is shot_mask
        assert result.fresh_mask is not None
        assert result.composite[50, 50].tolist() == [255, 255, 255]

    def test_second_shot_tolerates_missing_fresh_mask(self, photo, shot_mask):
        result = CompositingPipeline(FakeSegmenter(None)).process(photo, 1, shot_mask)
        assert result.mask_used is shot_mask
        assert result.fresh_mask is None

    def test_stored_mask_rescaled_without_mutation(self, shot_mask):
        small_photo = np.full((500, 800, 3), 40, dtype=np.uint8)
        before = shot_mask.alpha.copy()
        result = CompositingPipeline(FakeSegmenter(None)).process(small_photo, 1, shot_mask)
        assert result.mask_used.size == (800, 500)
        assert np.array_equal(shot_mask.alpha, before)

    def test_bitwise_identical_mask_stored(self, photo):
        native = block_mask((256, 256), (40, 40, 100, 160), value=0.75)
        result = CompositingPipeline(FakeSegmenter(native)).process(photo, 0)
        stored = result.mask_used
        second = CompositingPipeline(FakeSegmenter(None)).process(photo, 1, stored)
        assert np.array_equal(second.mask_used.alpha, stored.alpha)
