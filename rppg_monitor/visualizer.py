"""
Real-time overlay visualiser.

Draws the following elements onto each video frame:
  • The detected face box and the forehead ROI.
  • A status badge (READY / PREPARING / MEASURING / COMPLETE / ERROR).
  • Operator feedback and a progress bar while measuring.
  • BPM readout coloured by confidence, with the heart-rate zone.
  • Pulse waveform strip and in-band spectrum once a result exists.
  • Optional frame-rate counter.
"""

from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np

from rppg_monitor.rate_estimator import Confidence, HeartRateResult
from rppg_monitor.session import FrameStatus, MeasurementStatus
from rppg_monitor.zones import heart_rate_zone


# ---------------------------------------------------------------------------
# Colour palette (BGR)
# ---------------------------------------------------------------------------
_GREEN  = (0, 220,  80)
_RED    = (0,  50, 220)
_YELLOW = (0, 210, 210)
_WHITE  = (255, 255, 255)
_BLACK  = (0, 0, 0)
_CYAN   = (220, 200,  0)
_PURPLE = (150, 100, 180)
_ROSE   = (120,  60, 240)
_DARK   = (30, 30, 30)

_ZONE_COLOURS = {
    "blue": (220, 120, 40),
    "green": _GREEN,
    "yellow": _YELLOW,
    "orange": (0, 140, 255),
    "red": _RED,
}

_CONFIDENCE_COLOURS = {
    Confidence.HIGH: _GREEN,
    Confidence.MEDIUM: _YELLOW,
    Confidence.LOW: _RED,
}

_BADGES = {
    MeasurementStatus.IDLE: "READY",
    MeasurementStatus.PREPARING: "PREPARING",
    MeasurementStatus.MEASURING: "MEASURING",
    MeasurementStatus.COMPLETE: "COMPLETE",
    MeasurementStatus.ERROR: "ERROR",
}


class Visualizer:
    """
    Draws heart-rate monitoring UI onto OpenCV frames in-place.

    Parameters
    ----------
    resolution:
        (width, height) of the video frame.
    waveform_height:
        Pixel height of the waveform panel at the bottom of the frame.
    show_fps:
        Whether to overlay computed FPS in the top-right corner.
    show_fft:
        Whether to draw the spectrum panel once a result exists.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (640, 480),
        waveform_height: int = 80,
        show_fps: bool = True,
        show_fft: bool = True,
    ) -> None:
        self.w, self.h = resolution
        self.waveform_height = waveform_height
        self.show_fps = show_fps
        self.show_fft = show_fft

        # FPS tracking
        self._fps_tick = cv2.getTickCount()
        self._fps_display: float = 0.0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def draw(
        self,
        frame: np.ndarray,
        status: FrameStatus,
        result: Optional[HeartRateResult] = None,
        pulse_signal: Optional[np.ndarray] = None,
        fft_freqs: Optional[np.ndarray] = None,
        fft_power: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Annotate *frame* in-place and return it.

        Parameters
        ----------
        frame:
            BGR frame from the camera.
        status:
            Outcome of processing this frame.
        result:
            Latest heart-rate result, if any.
        pulse_signal:
            Optional 1-D filtered pulse waveform to plot.
        fft_freqs, fft_power:
            Optional in-band spectrum (frequencies in BPM, power).
        """
        self.h, self.w = frame.shape[:2]
        self._update_fps()

        # --- Face box & ROI ----------------------------------------------------
        border = _GREEN if status.face_detected else _YELLOW
        if status.status is MeasurementStatus.COMPLETE:
            border = _ROSE
        cv2.rectangle(frame, (0, 0), (self.w - 1, self.h - 1), border, 4)

        if status.face is not None:
            x, y, fw, fh = status.face
            cv2.rectangle(frame, (x, y), (x + fw, y + fh), _GREEN, 1)
        if status.roi is not None:
            x, y, rw, rh = status.roi
            roi_col = _CYAN if status.lighting_ok else _YELLOW
            cv2.rectangle(frame, (x, y), (x + rw, y + rh), roi_col, 2)

        # --- Status badge ------------------------------------------------------
        self._draw_badge(frame, status.status)

        # --- Result readout ----------------------------------------------------
        if result is not None and result.valid:
            self._draw_bpm(frame, result)

        # --- Feedback & progress -----------------------------------------------
        self._draw_feedback(frame, status.feedback)
        if status.status is MeasurementStatus.MEASURING:
            self._draw_fill_bar(frame, status.progress / 100.0)

        # --- Waveform & spectrum -----------------------------------------------
        if pulse_signal is not None and len(pulse_signal) > 1:
            self._draw_waveform(frame, pulse_signal)
        if self.show_fft and fft_freqs is not None and fft_power is not None:
            if len(fft_freqs) > 0 and len(fft_power) > 0:
                peak = float(result.bpm) if result is not None and result.valid else 0.0
                self._draw_fft_spectrum(frame, fft_freqs, fft_power, peak)

        # --- FPS counter -------------------------------------------------------
        if self.show_fps:
            cv2.putText(
                frame,
                f"FPS {self._fps_display:.1f}",
                (self.w - 100, 20),
                cv2.FONT_HERSHEY_SIMPLEX, 0.45, _WHITE, 1, cv2.LINE_AA,
            )

        return frame

    # ------------------------------------------------------------------
    # Private drawing helpers
    # ------------------------------------------------------------------

    def _draw_badge(self, frame: np.ndarray, state: MeasurementStatus) -> None:
        dot = _GREEN if state is MeasurementStatus.MEASURING else _ROSE
        cv2.circle(frame, (22, 22), 6, dot, -1, cv2.LINE_AA)
        cv2.putText(
            frame, _BADGES[state],
            (34, 27), cv2.FONT_HERSHEY_SIMPLEX, 0.5, _WHITE, 1, cv2.LINE_AA,
        )

    def _draw_bpm(self, frame: np.ndarray, result: HeartRateResult) -> None:
        col = _CONFIDENCE_COLOURS[result.confidence]
        text = f"{result.bpm} BPM"
        cv2.putText(
            frame, text,
            (16, 72), cv2.FONT_HERSHEY_SIMPLEX, 1.6, _BLACK, 5, cv2.LINE_AA,
        )
        cv2.putText(
            frame, text,
            (16, 72), cv2.FONT_HERSHEY_SIMPLEX, 1.6, col, 3, cv2.LINE_AA,
        )
        zone = heart_rate_zone(result.bpm)
        cv2.putText(
            frame, f"{zone.name} | signal {result.confidence.value}",
            (16, 96), cv2.FONT_HERSHEY_SIMPLEX, 0.5,
            _ZONE_COLOURS.get(zone.color, _WHITE), 1, cv2.LINE_AA,
        )

    def _draw_feedback(self, frame: np.ndarray, text: str) -> None:
        y1 = self.h - self.waveform_height - 24
        cv2.rectangle(frame, (16, y1 - 22), (self.w - 16, y1 + 6), _DARK, -1)
        cv2.putText(
            frame, text,
            (24, y1), cv2.FONT_HERSHEY_SIMPLEX, 0.5, _WHITE, 1, cv2.LINE_AA,
        )

    def _draw_fill_bar(self, frame: np.ndarray, fill: float) -> None:
        bar_w = int((self.w - 32) * min(max(fill, 0.0), 1.0))
        y0, y1 = self.h - self.waveform_height - 12, self.h - self.waveform_height - 4
        cv2.rectangle(frame, (16, y0), (self.w - 16, y1), _DARK, -1)
        cv2.rectangle(frame, (16, y0), (16 + bar_w, y1), _CYAN, -1)

    def _draw_waveform(self, frame: np.ndarray, signal: np.ndarray) -> None:
        """Draw the pulse waveform in a dark strip at the bottom of the frame."""
        panel_top = self.h - self.waveform_height
        cv2.rectangle(frame, (0, panel_top), (self.w, self.h), _DARK, -1)

        # Normalise signal to [0, 1]
        sig = signal[-self.w:] if len(signal) >= self.w else signal
        mn, mx = sig.min(), sig.max()
        rng = mx - mn if mx != mn else 1.0
        norm = (sig - mn) / rng

        margin = 6
        plot_h = self.waveform_height - 2 * margin
        xs = np.linspace(0, self.w - 1, len(norm)).astype(np.int32)
        ys = (panel_top + margin + (1.0 - norm) * plot_h).astype(np.int32)

        pts = np.column_stack([xs, ys])
        cv2.polylines(frame, [pts[:, None, :]], False, _GREEN, 1, cv2.LINE_AA)

        cv2.putText(
            frame, "rPPG",
            (4, panel_top + 14), cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA,
        )

    def _draw_fft_spectrum(
        self,
        frame: np.ndarray,
        freqs: np.ndarray,
        power: np.ndarray,
        peak_bpm: float,
    ) -> None:
        """Draw the in-band spectrum as a bar graph on the right side."""
        panel_w = 160
        panel_x = self.w - panel_w - 10
        panel_y = 100
        panel_h = self.h - panel_y - self.waveform_height - 40
        if panel_h <= 30:
            return

        cv2.rectangle(frame, (panel_x, panel_y), (self.w - 10, panel_y + panel_h), _DARK, -1)

        norm_power = power / power.max() if power.max() > 0 else power

        num_bars = min(len(freqs), 100)
        step = max(1, len(freqs) // num_bars)
        bar_width = max(1, (panel_w - 20) // num_bars)
        # Bins are much finer than a bar; mark any bar within half a bar of the peak
        tolerance = 2.0
        if len(freqs) > 1:
            tolerance = max(tolerance, 0.5 * step * (freqs[1] - freqs[0]))

        for i in range(num_bars):
            idx = i * step
            if idx >= len(freqs):
                break
            bar_h = int(norm_power[idx] * (panel_h - 20))
            x = panel_x + 10 + i * bar_width
            y_bottom = panel_y + panel_h - 10
            y_top = y_bottom - bar_h
            color = _YELLOW if abs(freqs[idx] - peak_bpm) < tolerance else _PURPLE
            cv2.rectangle(frame, (x, y_top), (x + bar_width - 1, y_bottom), color, -1)

        cv2.putText(
            frame, "Spectrum",
            (panel_x + 10, panel_y + 18), cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA,
        )

    def _update_fps(self) -> None:
        """Compute rolling FPS."""
        now = cv2.getTickCount()
        elapsed = (now - self._fps_tick) / cv2.getTickFrequency()
        if elapsed > 0:
            self._fps_display = 1.0 / elapsed
        self._fps_tick = now
