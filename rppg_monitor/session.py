"""
Measurement session: the state machine that drives one heart-rate reading.

States::

    idle ──start()──▶ preparing ──(prepare frames)──▶ measuring
                                                         │
                                   buffer full, valid ───┼──▶ complete
                                   buffer full, invalid ─┴──▶ error

``stop()`` returns to *idle* from anywhere; ``fail()`` (camera denied /
unavailable) jumps to *error*; ``start()``/``retry()`` always begins with a
fresh buffer.

The session owns its ``SignalBuffer``.  Each frame is processed synchronously
by ``process_frame`` before the next one is fed in, so a slow machine simply
takes longer to fill the buffer.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from rppg_monitor.config import MonitorConfig
from rppg_monitor.face_detector import (
    FaceBox,
    FaceDetector,
    RegionOfInterest,
    forehead_roi,
)
from rppg_monitor.rate_estimator import HeartRateResult, RateEstimator
from rppg_monitor.signal_extractor import (
    LightingPolicy,
    SignalBuffer,
    brightness,
    chrom_signal,
    crop,
    is_lighting_good,
    mean_rgb,
)

logger = logging.getLogger(__name__)

# Operator feedback strings
MSG_POSITION = "Position your face in the center"
MSG_PREPARING = "Detecting face... Hold still"
MSG_MEASURING = "Measuring... Keep still"
MSG_NO_FACE = "Face not detected - look at the camera"
MSG_BAD_LIGHT = "Adjust lighting - too dark or too bright"
MSG_NO_PULSE = "Could not detect pulse. Try again with better lighting."
MSG_CANCELLED = "Measurement cancelled"


class MeasurementStatus(enum.Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    MEASURING = "measuring"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (MeasurementStatus.COMPLETE, MeasurementStatus.ERROR)

    @property
    def is_running(self) -> bool:
        return self in (MeasurementStatus.PREPARING, MeasurementStatus.MEASURING)


@dataclass(frozen=True)
class FrameStatus:
    """What happened to one frame; handed back to the UI layer."""

    index: int
    status: MeasurementStatus
    feedback: str
    face: Optional[FaceBox] = None
    roi: Optional[RegionOfInterest] = None
    brightness: Optional[float] = None
    lighting_ok: Optional[bool] = None
    accumulated: bool = False
    samples: int = 0
    progress: float = 0.0

    @property
    def face_detected(self) -> bool:
        return self.face is not None


class MeasurementSession:
    """
    One heart-rate measurement from start to result.

    Parameters
    ----------
    config:
        Pipeline settings; the buffer holds ``config.measure_frames`` samples.
    detector:
        Face detector; built from *config* when omitted.
    estimator:
        Rate estimator; built from *config* when omitted.
    """

    def __init__(
        self,
        config: MonitorConfig | None = None,
        detector: FaceDetector | None = None,
        estimator: RateEstimator | None = None,
    ) -> None:
        self.config = config or MonitorConfig()
        self.detector = detector or FaceDetector(
            thresholds=self.config.skin,
            min_skin_fraction=self.config.min_skin_fraction,
            min_face_size=self.config.min_face_size,
        )
        self.estimator = estimator or RateEstimator(
            fps=self.config.fps,
            band_low_hz=self.config.band_low_hz,
            band_high_hz=self.config.band_high_hz,
            min_samples=self.config.measure_frames,
        )
        self.lighting_policy = (
            LightingPolicy.EXCLUDE if self.config.exclude_poor_lighting
            else LightingPolicy.ADVISORY
        )

        self._status = MeasurementStatus.IDLE
        self._buffer: SignalBuffer | None = None
        self._pulse: np.ndarray | None = None
        self._result: HeartRateResult | None = None
        self._prepare_left = 0
        self._frame_index = 0
        self.feedback = MSG_POSITION

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def status(self) -> MeasurementStatus:
        return self._status

    @property
    def result(self) -> HeartRateResult | None:
        return self._result

    @property
    def buffer(self) -> SignalBuffer | None:
        return self._buffer

    @property
    def pulse_signal(self) -> np.ndarray | None:
        """CHROM pulse signal of the last completed buffer."""
        return self._pulse

    @property
    def samples(self) -> int:
        return len(self._buffer) if self._buffer is not None else 0

    @property
    def progress(self) -> float:
        """Accumulation progress, 0 – 100."""
        if self._buffer is None:
            return 0.0
        return min(100.0, 100.0 * self._buffer.fill_ratio)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin a new measurement, discarding any buffer in progress."""
        if self._status.is_running:
            logger.info("Restarting measurement; discarding %d samples.", self.samples)
        self._buffer = SignalBuffer(self.config.measure_frames)
        self._pulse = None
        self._result = None
        self._frame_index = 0
        self._prepare_left = self.config.prepare_frames
        if self._prepare_left > 0:
            self._set_status(MeasurementStatus.PREPARING, MSG_PREPARING)
        else:
            self._set_status(MeasurementStatus.MEASURING, MSG_MEASURING)

    retry = start

    def stop(self) -> None:
        """Cancel / camera stopped: drop the buffer and go back to idle."""
        if self._buffer is not None:
            self._buffer.clear()
        self._buffer = None
        self._pulse = None
        self._prepare_left = 0
        message = MSG_CANCELLED if self._status.is_running else MSG_POSITION
        self._set_status(MeasurementStatus.IDLE, message)

    def fail(self, message: str) -> None:
        """Fatal device error: go straight to *error* without a buffer."""
        self._buffer = None
        self._pulse = None
        self._result = None
        self._set_status(MeasurementStatus.ERROR, message)

    # ------------------------------------------------------------------
    # Per-frame processing
    # ------------------------------------------------------------------

    def process_frame(self, frame: np.ndarray) -> FrameStatus:
        """
        Run one frame through detection and sampling.

        Frames received while idle or after the session ended are ignored.
        """
        index = self._frame_index
        self._frame_index += 1

        if not self._status.is_running:
            return self._frame_status(index)

        if self._status is MeasurementStatus.PREPARING:
            self._prepare_left -= 1
            if self._prepare_left <= 0:
                self._set_status(MeasurementStatus.MEASURING, MSG_MEASURING)
            return self._frame_status(index)

        detection = self.detector.detect(frame)
        if not detection.found:
            self.feedback = MSG_NO_FACE
            logger.debug("Frame %d: face not detected.", index)
            return self._frame_status(index)

        roi = forehead_roi(detection.face, self.config.roi, frame.shape)
        patch = crop(frame, roi)
        light = brightness(patch)
        lighting_ok = is_lighting_good(
            light, self.config.brightness_low, self.config.brightness_high
        )
        self.feedback = MSG_MEASURING if lighting_ok else MSG_BAD_LIGHT

        accumulated = False
        if lighting_ok or self.lighting_policy is LightingPolicy.ADVISORY:
            self._buffer.append(mean_rgb(patch))
            accumulated = True
            if self._buffer.is_full:
                self._finish()

        return self._frame_status(
            index,
            face=detection.face,
            roi=roi,
            brightness=light,
            lighting_ok=lighting_ok,
            accumulated=accumulated,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _finish(self) -> None:
        samples = self._buffer.as_array()
        if np.any(samples.mean(axis=0) <= 0):
            # A channel that stayed black cannot be normalised.
            logger.warning("Region of interest had an empty colour channel; no pulse.")
            self._result = HeartRateResult.invalid()
            self._set_status(MeasurementStatus.ERROR, MSG_NO_PULSE)
            return
        self._pulse = chrom_signal(samples)
        result = self.estimator.estimate(self._pulse)
        self._result = result
        if result.valid:
            self._set_status(
                MeasurementStatus.COMPLETE, f"Heart rate: {result.bpm} BPM"
            )
            logger.info(
                "Measurement complete: %d BPM (confidence %s, ratio %.2f).",
                result.bpm, result.confidence.value, result.peak_ratio,
            )
        else:
            self._set_status(MeasurementStatus.ERROR, MSG_NO_PULSE)

    def _set_status(self, status: MeasurementStatus, feedback: str) -> None:
        if status is not self._status:
            logger.info("Session %s → %s", self._status.value, status.value)
        self._status = status
        self.feedback = feedback

    def _frame_status(self, index: int, **kwargs) -> FrameStatus:
        return FrameStatus(
            index=index,
            status=self._status,
            feedback=self.feedback,
            samples=self.samples,
            progress=self.progress,
            **kwargs,
        )
