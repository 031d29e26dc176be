"""
Unit tests for ROI sampling, SignalBuffer and the CHROM combination.
Run with:  pytest tests/
"""

from __future__ import annotations

import numpy as np
import pytest

from rppg_monitor.face_detector import RegionOfInterest
from rppg_monitor.signal_extractor import (
    RgbSample,
    SignalBuffer,
    brightness,
    chrom_signal,
    crop,
    is_lighting_good,
    mean_rgb,
)


# ---------------------------------------------------------------------------
# Per-frame reductions
# ---------------------------------------------------------------------------

class TestRoiSampling:

    def test_mean_rgb_swaps_bgr_order(self):
        patch = np.zeros((5, 5, 3), dtype=np.uint8)
        patch[:, :] = (10, 20, 30)
        assert mean_rgb(patch) == RgbSample(30.0, 20.0, 10.0)

    def test_mean_rgb_averages(self):
        patch = np.zeros((2, 2, 3), dtype=np.uint8)
        patch[0, :, 2] = 100
        patch[1, :, 2] = 200
        assert mean_rgb(patch).r == pytest.approx(150.0)

    def test_mean_rgb_empty_raises(self):
        with pytest.raises(ValueError):
            mean_rgb(np.zeros((0, 4, 3), dtype=np.uint8))

    def test_crop_drops_alpha(self):
        frame = np.zeros((20, 30, 4), dtype=np.uint8)
        patch = crop(frame, RegionOfInterest(5, 4, 10, 6))
        assert patch.shape == (6, 10, 3)

    def test_brightness_grey(self):
        patch = np.full((4, 4, 3), 100, dtype=np.uint8)
        assert brightness(patch) == pytest.approx(100.0)

    def test_brightness_pure_red(self):
        patch = np.zeros((4, 4, 3), dtype=np.uint8)
        patch[:, :, 2] = 255
        assert brightness(patch) == pytest.approx(0.299 * 255)

    @pytest.mark.parametrize("value, expected", [
        (10.0, False),
        (50.0, False),
        (50.5, True),
        (120.0, True),
        (200.0, False),
        (240.0, False),
    ])
    def test_lighting_band(self, value, expected):
        assert is_lighting_good(value) is expected


# ---------------------------------------------------------------------------
# SignalBuffer
# ---------------------------------------------------------------------------

class TestSignalBuffer:

    def test_fill_and_full(self):
        buf = SignalBuffer(3)
        assert buf.fill_ratio == 0.0
        for i in range(3):
            buf.append(RgbSample(i, i, i))
        assert buf.is_full
        assert buf.fill_ratio == 1.0
        assert len(buf) == 3

    def test_append_when_full_raises(self):
        buf = SignalBuffer(1)
        buf.append(RgbSample(1, 1, 1))
        with pytest.raises(RuntimeError):
            buf.append(RgbSample(2, 2, 2))
        assert list(buf) == [RgbSample(1, 1, 1)]

    def test_order_preserved(self):
        buf = SignalBuffer(4)
        samples = [RgbSample(i, 2 * i, 3 * i) for i in range(4)]
        for s in samples:
            buf.append(s)
        assert list(buf) == samples
        np.testing.assert_array_equal(buf.as_array(), np.array(samples, dtype=float))

    def test_clear(self):
        buf = SignalBuffer(4)
        buf.append(RgbSample(1, 1, 1))
        buf.clear()
        assert len(buf) == 0
        assert buf.as_array().shape == (0, 3)

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            SignalBuffer(0)


# ---------------------------------------------------------------------------
# CHROM
# ---------------------------------------------------------------------------

class TestChromSignal:

    def _t(self, n=300, fps=30.0):
        return np.arange(n) / fps

    def test_length_matches_input(self):
        t = self._t()
        rgb = np.column_stack([150 + np.sin(t), 100 + np.cos(t), 80 + 0 * t])
        sig = chrom_signal(rgb)
        assert len(sig) == len(rgb)
        assert np.all(np.isfinite(sig))

    def test_accepts_rgb_samples(self):
        samples = [RgbSample(150 + i % 3, 100, 80) for i in range(30)]
        assert len(chrom_signal(samples)) == 30

    def test_constant_input_is_zero(self):
        rgb = np.tile([150.0, 100.0, 80.0], (50, 1))
        np.testing.assert_allclose(chrom_signal(rgb), 0.0, atol=1e-12)

    def test_common_intensity_change_cancelled(self):
        t = self._t()
        scale = 1.0 + 0.05 * np.sin(2 * np.pi * 0.3 * t)
        rgb = np.column_stack([150 * scale, 100 * scale, 80 * scale])
        assert np.std(chrom_signal(rgb)) < 1e-9

    def test_red_only_pulse_survives(self):
        t = self._t()
        red = 150 + 2 * np.sin(2 * np.pi * 1.2 * t)
        rgb = np.column_stack([red, np.full_like(t, 100.0), np.full_like(t, 80.0)])
        sig = chrom_signal(rgb)
        assert np.std(sig) > 1e-4
        assert abs(np.corrcoef(sig, red)[0, 1]) > 0.99

    def test_alpha_tuned_when_not_collinear(self):
        rng = np.random.default_rng(0)
        t = self._t()
        pulse = np.sin(2 * np.pi * 1.2 * t)
        rgb = np.column_stack([
            150 + 0.3 * pulse + rng.normal(0, 0.5, t.size),
            100 + 0.8 * pulse + rng.normal(0, 0.5, t.size),
            80 + 0.2 * pulse + rng.normal(0, 0.5, t.size),
        ])
        norm = rgb / rgb.mean(axis=0)
        x = 3 * norm[:, 0] - 2 * norm[:, 1]
        y = 1.5 * norm[:, 0] + norm[:, 1] - 1.5 * norm[:, 2]
        expected = x - (np.std(x) / np.std(y)) * y
        np.testing.assert_allclose(chrom_signal(rgb), expected)

    def test_deterministic(self):
        t = self._t()
        rgb = np.column_stack([150 + np.sin(t), 100 + np.cos(t), 80 + np.sin(2 * t)])
        np.testing.assert_array_equal(chrom_signal(rgb), chrom_signal(rgb.copy()))

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            chrom_signal([])

    def test_zero_channel_mean_raises(self):
        rgb = np.tile([150.0, 100.0, 0.0], (10, 1))
        with pytest.raises(ValueError):
            chrom_signal(rgb)
