"""
Unit tests for masked colour extraction.
Run with:  pytest tests/test_extraction.py
"""

from __future__ import annotations

import numpy as np
import pytest

from rppg_heartrate.extraction import mean_green, mean_rgb


def _make_bgr(r: int, g: int, b: int, h: int = 8, w: int = 8) -> np.ndarray:
    frame = np.zeros((h, w, 3), dtype=np.uint8)
    frame[:, :, 2] = r
    frame[:, :, 1] = g
    frame[:, :, 0] = b
    return frame


class TestExtraction:

    def test_whole_frame_mean(self):
        r, g, b = mean_rgb(_make_bgr(200, 120, 40))
        assert (r, g, b) == pytest.approx((200.0, 120.0, 40.0))

    def test_mask_restricts_pixels(self):
        frame = _make_bgr(10, 10, 10)
        frame[:4, :, 1] = 250                      # bright green top half
        mask = np.zeros((8, 8), dtype=np.uint8)
        mask[:4, :] = 255
        assert mean_green(frame, mask) == pytest.approx(250.0)
        assert mean_green(frame) == pytest.approx(130.0)

    def test_mask_shape_mismatch(self):
        with pytest.raises(ValueError):
            mean_rgb(_make_bgr(1, 2, 3), np.ones((4, 4), dtype=np.uint8))

    def test_non_colour_frame_rejected(self):
        with pytest.raises(ValueError):
            mean_rgb(np.zeros((8, 8), dtype=np.uint8))

    def test_extracted_means_feed_the_pipeline(self):
        import rppg_heartrate

        pipeline = rppg_heartrate.HeartRatePipeline(rppg_heartrate.PipelineConfig(method="xminay"))
        for i in range(5):
            pipeline.process(rppg_heartrate.mean_rgb(_make_bgr(200, 120 + i, 40)), 33 * i)
        assert pipeline.buffer_length == 5
