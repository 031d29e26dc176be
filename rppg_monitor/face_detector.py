"""
Skin-colour face detector.

A face in front of a webcam shows up as a large, fairly dense cluster of
reddish pixels.  This module classifies every pixel with a fixed RGB rule,
takes the bounding box of the skin pixels and accepts it as a face only if it
is big enough and dense enough.

This is a heuristic, not a trained classifier: it is cheap enough to run on
every frame but any large skin-toned object (wooden furniture, a hand) will
fool it.  Detection is independent per frame; no box is carried over.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple

import numpy as np

from rppg_monitor.config import (
    MIN_FACE_SIZE,
    MIN_SKIN_FRACTION,
    RoiFractions,
    SkinThresholds,
)

logger = logging.getLogger(__name__)


class FaceBox(NamedTuple):
    """Bounding box of the skin pixels in one frame (pixels, inclusive)."""

    x: int
    y: int
    width: int
    height: int


class RegionOfInterest(NamedTuple):
    """Forehead rectangle used for signal extraction."""

    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class DetectionResult:
    """Either a face box (``found``) or nothing, plus the raw skin count."""

    face: Optional[FaceBox] = None
    skin_pixels: int = 0

    @property
    def found(self) -> bool:
        return self.face is not None


NOT_FOUND = DetectionResult()


class FaceDetector:
    """
    Heuristic detector: where is the face in this frame?

    Parameters
    ----------
    thresholds:
        Per-channel skin rule.  A pixel is skin when R, G and B exceed their
        minimums, red dominates both other channels and ``R - G`` exceeds
        ``min_red_green_diff``.
    min_skin_fraction:
        Minimum share of the bounding box that must be skin.  Rejects boxes
        spanned by a few scattered pixels.  Default: 0.3.
    min_face_size:
        Minimum width and height of the box in pixels.  Default: 50.
    """

    def __init__(
        self,
        thresholds: SkinThresholds | None = None,
        min_skin_fraction: float = MIN_SKIN_FRACTION,
        min_face_size: int = MIN_FACE_SIZE,
    ) -> None:
        self.thresholds = thresholds or SkinThresholds()
        self.min_skin_fraction = min_skin_fraction
        self.min_face_size = min_face_size

    def skin_mask(self, frame: np.ndarray) -> np.ndarray:
        """
        Return a boolean H × W mask of skin-coloured pixels.

        Parameters
        ----------
        frame:
            BGR or BGRA image array (H × W × 3|4, uint8).
        """
        t = self.thresholds
        # int16 so that r - g cannot wrap around
        b_ch = frame[:, :, 0].astype(np.int16)
        g_ch = frame[:, :, 1].astype(np.int16)
        r_ch = frame[:, :, 2].astype(np.int16)

        return (
            (r_ch > t.min_red)
            & (g_ch > t.min_green)
            & (b_ch > t.min_blue)
            & (r_ch > g_ch)
            & (r_ch > b_ch)
            & (r_ch - g_ch > t.min_red_green_diff)
        )

    def detect(self, frame: np.ndarray) -> DetectionResult:
        """Find the skin bounding box in *frame*, or return ``NOT_FOUND``."""
        mask = self.skin_mask(frame)
        skin_pixels = int(np.count_nonzero(mask))
        if skin_pixels == 0:
            return NOT_FOUND

        ys = np.flatnonzero(mask.any(axis=1))
        xs = np.flatnonzero(mask.any(axis=0))
        x0, x1 = int(xs[0]), int(xs[-1])
        y0, y1 = int(ys[0]), int(ys[-1])
        width = x1 - x0 + 1
        height = y1 - y0 + 1

        if width < self.min_face_size or height < self.min_face_size:
            logger.debug("Skin box too small: %dx%d", width, height)
            return DetectionResult(skin_pixels=skin_pixels)

        fraction = skin_pixels / float(width * height)
        if fraction < self.min_skin_fraction:
            logger.debug("Skin box too sparse: %.2f", fraction)
            return DetectionResult(skin_pixels=skin_pixels)

        return DetectionResult(
            face=FaceBox(x0, y0, width, height),
            skin_pixels=skin_pixels,
        )


def forehead_roi(
    face: FaceBox,
    fractions: RoiFractions | None = None,
    frame_shape: Tuple[int, ...] | None = None,
) -> RegionOfInterest:
    """
    Derive the forehead rectangle from *face*.

    The default fractions select the horizontal centre third and a band
    starting 10 % below the top of the box, which stays clear of the hairline
    and the eyebrows.  When *frame_shape* is given the ROI is clamped to the
    frame.  The result is always at least 1 × 1.
    """
    f = fractions or RoiFractions()
    x = int(face.x + face.width * f.x_offset)
    y = int(face.y + face.height * f.y_offset)
    w = max(1, int(face.width * f.width))
    h = max(1, int(face.height * f.height))

    if frame_shape is not None:
        frame_h, frame_w = frame_shape[0], frame_shape[1]
        x = min(max(x, 0), frame_w - 1)
        y = min(max(y, 0), frame_h - 1)
        w = max(1, min(w, frame_w - x))
        h = max(1, min(h, frame_h - y))

    return RegionOfInterest(x, y, w, h)
