"""
Tunable constants for the measurement pipeline.

Every threshold used by the detector, extractor and estimator lives here so
that tests can build deterministic fixtures by overriding a single value.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------
DEFAULT_FPS = 30
MEASUREMENT_DURATION_SECONDS = 10
MEASURE_FRAMES = DEFAULT_FPS * MEASUREMENT_DURATION_SECONDS
PREPARE_SECONDS = 1.0
CAPTURE_RESOLUTION = (640, 480)          # "ideal" size requested from the camera

# ---------------------------------------------------------------------------
# Skin-colour rule (raw RGB, 0 – 255)
# ---------------------------------------------------------------------------
SKIN_MIN_RED = 95
SKIN_MIN_GREEN = 40
SKIN_MIN_BLUE = 20
SKIN_MIN_RED_GREEN_DIFF = 15

# Face-box acceptance
MIN_SKIN_FRACTION = 0.3
MIN_FACE_SIZE = 50

# Forehead ROI, as fractions of the face box
ROI_X_OFFSET = 0.33
ROI_Y_OFFSET = 0.10
ROI_WIDTH = 0.33
ROI_HEIGHT = 0.25

# ---------------------------------------------------------------------------
# Lighting (mean luma of the ROI)
# ---------------------------------------------------------------------------
BRIGHTNESS_LOW = 50.0
BRIGHTNESS_HIGH = 200.0

# ---------------------------------------------------------------------------
# Rate estimation
# ---------------------------------------------------------------------------
BAND_LOW_HZ = 0.7                        # 42 BPM
BAND_HIGH_HZ = 3.0                       # 180 BPM
FILTER_ORDER = 4
FFT_PAD_FACTOR = 8
MIN_BAND_FRACTION = 0.3                  # in-band share of total AC power
MIN_PEAK_RATIO = 0.15                    # below this the pulse is undetectable
HIGH_CONFIDENCE_RATIO = 0.5
MEDIUM_CONFIDENCE_RATIO = 0.3
COLLINEAR_CORRELATION = 0.999            # CHROM falls back to unit weights above this


@dataclass(frozen=True)
class SkinThresholds:
    min_red: int = SKIN_MIN_RED
    min_green: int = SKIN_MIN_GREEN
    min_blue: int = SKIN_MIN_BLUE
    min_red_green_diff: int = SKIN_MIN_RED_GREEN_DIFF


@dataclass(frozen=True)
class RoiFractions:
    """Forehead rectangle relative to the face box (x, y, width, height)."""

    x_offset: float = ROI_X_OFFSET
    y_offset: float = ROI_Y_OFFSET
    width: float = ROI_WIDTH
    height: float = ROI_HEIGHT


@dataclass(frozen=True)
class MonitorConfig:
    """
    Settings for one measurement session.

    Parameters
    ----------
    fps:
        Nominal capture rate.  Used both to size the buffer and as the
        sampling rate handed to the estimator.
    duration_seconds:
        Observation window.  ``measure_frames = round(fps * duration_seconds)``.
    prepare_seconds:
        Positioning delay before accumulation starts, converted to frames.
    exclude_poor_lighting:
        When *True* frames outside the brightness band are skipped instead of
        merely flagged.
    """

    fps: float = DEFAULT_FPS
    duration_seconds: float = MEASUREMENT_DURATION_SECONDS
    prepare_seconds: float = PREPARE_SECONDS
    skin: SkinThresholds = field(default_factory=SkinThresholds)
    min_skin_fraction: float = MIN_SKIN_FRACTION
    min_face_size: int = MIN_FACE_SIZE
    roi: RoiFractions = field(default_factory=RoiFractions)
    brightness_low: float = BRIGHTNESS_LOW
    brightness_high: float = BRIGHTNESS_HIGH
    band_low_hz: float = BAND_LOW_HZ
    band_high_hz: float = BAND_HIGH_HZ
    exclude_poor_lighting: bool = False

    def __post_init__(self) -> None:
        if self.fps <= 0:
            raise ValueError(f"fps must be positive, got {self.fps}")
        if self.duration_seconds <= 0:
            raise ValueError(
                f"duration_seconds must be positive, got {self.duration_seconds}"
            )
        if self.prepare_seconds < 0:
            raise ValueError(
                f"prepare_seconds must be >= 0, got {self.prepare_seconds}"
            )
        if not 0 < self.band_low_hz < self.band_high_hz:
            raise ValueError(
                f"invalid band {self.band_low_hz}–{self.band_high_hz} Hz"
            )
        if self.band_high_hz >= self.fps / 2.0:
            raise ValueError(
                f"band upper edge {self.band_high_hz} Hz is above Nyquist "
                f"for {self.fps} fps"
            )

    @property
    def measure_frames(self) -> int:
        return int(round(self.fps * self.duration_seconds))

    @property
    def prepare_frames(self) -> int:
        return int(round(self.fps * self.prepare_seconds))
