"""
ROI colour sampling and CHROM pulse extraction.

Algorithm
---------
1. Average each colour channel over the forehead ROI → one ``RgbSample`` per
   frame.
2. Append samples to a fixed-capacity ``SignalBuffer`` in capture order.
3. Once the buffer is full, normalise each channel by its own mean and
   project onto the two chrominance axes::

       X = 3R - 2G
       Y = 1.5R + G - 1.5B

   then ``S = X - alpha * Y`` with ``alpha = std(X) / std(Y)``.  Intensity
   changes that scale all channels equally cancel; the blood-volume pulse,
   which changes the channels unequally, survives.

References
----------
- De Haan G., Jeanne V., "Robust pulse rate from chrominance-based rPPG."
  IEEE Trans. Biomed. Eng., 2013.
"""

from __future__ import annotations

import enum
import logging
from typing import List, NamedTuple, Sequence

import numpy as np

from rppg_monitor.config import (
    BRIGHTNESS_HIGH,
    BRIGHTNESS_LOW,
    COLLINEAR_CORRELATION,
)
from rppg_monitor.face_detector import RegionOfInterest

logger = logging.getLogger(__name__)

# ITU-R BT.601 luma weights
_LUMA_R, _LUMA_G, _LUMA_B = 0.299, 0.587, 0.114


class RgbSample(NamedTuple):
    r: float
    g: float
    b: float


class LightingPolicy(enum.Enum):
    """What to do with frames whose ROI brightness is out of band."""

    ADVISORY = "advisory"    # keep the sample, only warn the operator
    EXCLUDE = "exclude"      # drop the sample as if no face were found


# ---------------------------------------------------------------------------
# Per-frame reductions
# ---------------------------------------------------------------------------

def crop(frame: np.ndarray, roi: RegionOfInterest) -> np.ndarray:
    """Return the BGR pixels of *roi* (alpha channel, if any, dropped)."""
    return frame[roi.y:roi.y + roi.height, roi.x:roi.x + roi.width, :3]


def mean_rgb(patch: np.ndarray) -> RgbSample:
    """Average R, G and B over a BGR *patch*."""
    if patch.size == 0:
        raise ValueError("Cannot sample an empty ROI.")
    means = patch.reshape(-1, patch.shape[-1])[:, :3].mean(axis=0, dtype=np.float64)
    return RgbSample(r=float(means[2]), g=float(means[1]), b=float(means[0]))


def brightness(patch: np.ndarray) -> float:
    """Mean luma (0 – 255) of a BGR *patch*."""
    if patch.size == 0:
        raise ValueError("Cannot measure brightness of an empty ROI.")
    pixels = patch.reshape(-1, patch.shape[-1]).astype(np.float64)
    luma = _LUMA_R * pixels[:, 2] + _LUMA_G * pixels[:, 1] + _LUMA_B * pixels[:, 0]
    return float(luma.mean())


def is_lighting_good(
    value: float,
    low: float = BRIGHTNESS_LOW,
    high: float = BRIGHTNESS_HIGH,
) -> bool:
    return low < value < high


# ---------------------------------------------------------------------------
# Buffer
# ---------------------------------------------------------------------------

class SignalBuffer:
    """
    Ordered RGB samples for one measurement session.

    The buffer never drops old samples: once ``capacity`` samples are stored
    it is full and further appends are refused.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._samples: List[RgbSample] = []

    def append(self, sample: RgbSample) -> None:
        if self.is_full:
            raise RuntimeError("Signal buffer is full.  Start a new session.")
        self._samples.append(sample)

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self):
        return iter(self._samples)

    @property
    def is_full(self) -> bool:
        return len(self._samples) >= self.capacity

    @property
    def fill_ratio(self) -> float:
        """How full the buffer is (0 – 1)."""
        return len(self._samples) / self.capacity

    def as_array(self) -> np.ndarray:
        """Samples as an N × 3 float array (columns R, G, B)."""
        if not self._samples:
            return np.empty((0, 3), dtype=np.float64)
        return np.array(self._samples, dtype=np.float64)


# ---------------------------------------------------------------------------
# Chrominance combination
# ---------------------------------------------------------------------------

def chrom_signal(samples: Sequence[RgbSample] | np.ndarray) -> np.ndarray:
    """
    Combine per-frame RGB means into a single pulse signal (CHROM).

    Returns an array with one finite value per input sample.

    When the two chrominance projections are collinear (for example only one
    channel varies), ``X - alpha * Y`` is constant, so the unit-weight
    difference ``X - Y`` is used instead.  It still cancels changes common to
    all three channels.
    """
    rgb = np.asarray(samples, dtype=np.float64)
    if rgb.ndim != 2 or rgb.shape[0] == 0 or rgb.shape[1] != 3:
        raise ValueError(f"Expected a non-empty N × 3 RGB sequence, got shape {rgb.shape}")

    means = rgb.mean(axis=0)
    if np.any(means <= 0):
        raise ValueError(f"Channel means must be positive, got {means.tolist()}")
    norm = rgb / means
    r_n, g_n, b_n = norm[:, 0], norm[:, 1], norm[:, 2]

    x = 3.0 * r_n - 2.0 * g_n
    y = 1.5 * r_n + g_n - 1.5 * b_n

    std_x = float(np.std(x))
    std_y = float(np.std(y))
    alpha = 1.0
    if std_x > 0 and std_y > 0:
        corr = float(np.corrcoef(x, y)[0, 1])
        if abs(corr) < COLLINEAR_CORRELATION:
            alpha = std_x / std_y
        else:
            logger.debug("Chrominance axes collinear (r=%.4f); using unit weights.", corr)

    return x - alpha * y
