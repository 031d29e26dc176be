"""
Heart-rate estimation from a pulse signal.

Algorithm
---------
1. Remove the mean (DC offset) of the pulse signal.
2. Reject signals whose energy mostly lies outside the plausible band
   (default 0.7 – 3.0 Hz = 42 – 180 BPM).
3. Apply a zero-phase Butterworth bandpass over the same band.
4. Compute a zero-padded FFT; the strongest in-band peak, refined by
   parabolic interpolation, gives the pulse frequency.
5. The share of in-band power concentrated around the peak gives the
   confidence label.

The estimator never raises for a weak or noisy signal; it returns a result
with ``valid=False``.  Only contract violations (empty or non-finite input)
raise ``ValueError``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy.signal import butter, sosfiltfilt

from rppg_monitor.config import (
    BAND_HIGH_HZ,
    BAND_LOW_HZ,
    DEFAULT_FPS,
    FFT_PAD_FACTOR,
    FILTER_ORDER,
    HIGH_CONFIDENCE_RATIO,
    MEASUREMENT_DURATION_SECONDS,
    MEDIUM_CONFIDENCE_RATIO,
    MIN_BAND_FRACTION,
    MIN_PEAK_RATIO,
)

logger = logging.getLogger(__name__)

_FLAT_STD = 1e-9


class Confidence(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class HeartRateResult:
    """
    Outcome of one measurement.

    ``bpm`` is only meaningful when ``valid`` is *True*.  ``peak_ratio`` is
    the raw score behind ``confidence`` (share of in-band power near the
    peak, 0 – 1).
    """

    bpm: int
    confidence: Confidence
    valid: bool
    frequency_hz: float = 0.0
    peak_ratio: float = 0.0

    @classmethod
    def invalid(cls, peak_ratio: float = 0.0) -> "HeartRateResult":
        return cls(bpm=0, confidence=Confidence.LOW, valid=False, peak_ratio=peak_ratio)


def confidence_for(
    peak_ratio: float,
    high: float = HIGH_CONFIDENCE_RATIO,
    medium: float = MEDIUM_CONFIDENCE_RATIO,
) -> Confidence:
    if peak_ratio >= high:
        return Confidence.HIGH
    if peak_ratio >= medium:
        return Confidence.MEDIUM
    return Confidence.LOW


class RateEstimator:
    """
    Spectral heart-rate estimator for a complete measurement buffer.

    Parameters
    ----------
    fps:
        Sampling rate of the pulse signal (the camera frame rate).
    band_low_hz, band_high_hz:
        Plausible heart-rate band.  Peaks outside it are never reported.
    min_samples:
        Signals shorter than this are reported invalid.  Defaults to the
        full measurement window (``fps × 10 s``).
    filter_order:
        Order of the Butterworth bandpass (default 4).
    pad_factor:
        Zero-padding multiplier applied on top of the next power of two;
        finer FFT bins make the ±1 BPM resolution reachable from a 10 s
        window.
    min_band_fraction:
        Minimum share of the signal's AC power that must fall in the band.
    min_peak_ratio:
        Peak concentration below which the pulse counts as undetected.
    """

    def __init__(
        self,
        fps: float = DEFAULT_FPS,
        band_low_hz: float = BAND_LOW_HZ,
        band_high_hz: float = BAND_HIGH_HZ,
        min_samples: int | None = None,
        filter_order: int = FILTER_ORDER,
        pad_factor: int = FFT_PAD_FACTOR,
        min_band_fraction: float = MIN_BAND_FRACTION,
        min_peak_ratio: float = MIN_PEAK_RATIO,
    ) -> None:
        self.fps = float(fps)
        self.band_low_hz = band_low_hz
        self.band_high_hz = band_high_hz
        self.min_samples: int = (
            min_samples if min_samples is not None
            else int(round(self.fps * MEASUREMENT_DURATION_SECONDS))
        )
        self.filter_order = filter_order
        self.pad_factor = pad_factor
        self.min_band_fraction = min_band_fraction
        self.min_peak_ratio = min_peak_ratio

        # Pre-build the bandpass filter (second-order sections)
        self._sos = self._build_filter()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def estimate(self, signal: np.ndarray) -> HeartRateResult:
        """
        Return the heart rate carried by *signal*.

        Raises
        ------
        ValueError
            If *signal* is empty or contains NaN/inf.  The caller is expected
            to only hand over a complete buffer.
        """
        sig = self._validate(signal)
        n = len(sig)
        if n < self.min_samples:
            logger.info("Pulse signal too short: %d < %d samples.", n, self.min_samples)
            return HeartRateResult.invalid()

        sig = sig - np.mean(sig)
        if float(np.std(sig)) < _FLAT_STD:
            logger.info("Pulse signal is flat; no pulse detected.")
            return HeartRateResult.invalid()

        band_fraction = self._band_fraction(sig)
        if band_fraction < self.min_band_fraction:
            logger.info(
                "Only %.0f%% of signal power in the %.1f–%.1f Hz band; rejecting.",
                band_fraction * 100, self.band_low_hz, self.band_high_hz,
            )
            return HeartRateResult.invalid()

        band_freqs, band_power = self._band_spectrum(sig)
        total = float(band_power.sum())
        if total <= 0:
            return HeartRateResult.invalid()

        peak_idx = int(np.argmax(band_power))
        peak_freq = self._refine_peak(band_freqs, band_power, peak_idx)
        peak_freq = min(max(peak_freq, self.band_low_hz), self.band_high_hz)

        # Power within one raw (unpadded) FFT bin either side of the peak
        halfwidth = self.fps / n
        near_peak = np.abs(band_freqs - band_freqs[peak_idx]) <= halfwidth
        peak_ratio = float(band_power[near_peak].sum() / total)

        if peak_ratio < self.min_peak_ratio:
            logger.info("Spectral peak too weak (ratio %.2f).", peak_ratio)
            return HeartRateResult.invalid(peak_ratio=peak_ratio)

        bpm = int(round(peak_freq * 60.0))
        result = HeartRateResult(
            bpm=bpm,
            confidence=confidence_for(peak_ratio),
            valid=True,
            frequency_hz=float(peak_freq),
            peak_ratio=peak_ratio,
        )
        logger.debug("Estimated %d BPM (%.3f Hz, ratio %.2f).", bpm, peak_freq, peak_ratio)
        return result

    def spectrum(self, signal: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Return the in-band spectrum as (frequencies in BPM, power), for plotting.
        Returns empty arrays when the signal is too short to filter.
        """
        sig = np.asarray(signal, dtype=np.float64).ravel()
        if len(sig) < 2 or not np.all(np.isfinite(sig)):
            return np.array([]), np.array([])
        freqs, power = self._band_spectrum(sig - np.mean(sig))
        return freqs * 60.0, power

    def filtered(self, signal: np.ndarray) -> np.ndarray:
        """Bandpass-filtered copy of *signal* (for the waveform plot)."""
        sig = np.asarray(signal, dtype=np.float64).ravel()
        if len(sig) < 2:
            return np.array([])
        sig = sig - np.mean(sig)
        return sosfiltfilt(self._sos, sig, padlen=self._padlen(len(sig)))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(signal: np.ndarray) -> np.ndarray:
        sig = np.asarray(signal, dtype=np.float64).ravel()
        if sig.size == 0:
            raise ValueError("Cannot estimate heart rate from an empty signal.")
        if not np.all(np.isfinite(sig)):
            raise ValueError("Pulse signal contains NaN or infinite values.")
        return sig

    def _band_mask(self, freqs: np.ndarray) -> np.ndarray:
        return (freqs >= self.band_low_hz) & (freqs <= self.band_high_hz)

    def _band_fraction(self, sig: np.ndarray) -> float:
        """Share of the raw AC power that lies in the plausible band."""
        freqs = np.fft.rfftfreq(len(sig), d=1.0 / self.fps)
        power = np.abs(np.fft.rfft(sig)) ** 2
        ac_total = float(power[1:].sum())
        if ac_total <= 0:
            return 0.0
        return float(power[self._band_mask(freqs)].sum() / ac_total)

    def _band_spectrum(self, sig: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        filtered = sosfiltfilt(self._sos, sig, padlen=self._padlen(len(sig)))
        n_fft = int(2 ** np.ceil(np.log2(len(filtered)))) * self.pad_factor
        freqs = np.fft.rfftfreq(n_fft, d=1.0 / self.fps)
        power = np.abs(np.fft.rfft(filtered, n=n_fft)) ** 2
        mask = self._band_mask(freqs)
        return freqs[mask], power[mask]

    @staticmethod
    def _refine_peak(freqs: np.ndarray, power: np.ndarray, idx: int) -> float:
        """Parabolic interpolation for sub-bin frequency resolution."""
        if not 0 < idx < len(power) - 1:
            return float(freqs[idx])
        alpha, beta, gamma = power[idx - 1], power[idx], power[idx + 1]
        denom = alpha - 2.0 * beta + gamma
        if denom == 0:
            return float(freqs[idx])
        p = 0.5 * (alpha - gamma) / denom
        step = freqs[1] - freqs[0]
        return float(freqs[idx] + p * step)

    def _padlen(self, n: int) -> int:
        # scipy's default for SOS filters, capped so short inputs still work
        return max(0, min(3 * (2 * len(self._sos) + 1), n - 1))

    def _build_filter(self) -> np.ndarray:
        """Construct a Butterworth bandpass filter (SOS form)."""
        nyq = self.fps / 2.0
        low = self.band_low_hz / nyq
        high = self.band_high_hz / nyq
        # Clamp to valid range
        low = max(1e-4, min(low, 0.999))
        high = max(low + 1e-4, min(high, 0.999))
        return butter(self.filter_order, [low, high], btype="bandpass", output="sos")
