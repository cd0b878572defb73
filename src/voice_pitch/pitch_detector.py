"""YIN-style fundamental frequency estimation for a single dominant voice.

The estimator works on one frame at a time:

1. difference function ``d(tau)`` over the first half of the frame,
2. cumulative mean normalised difference (``cmndf``),
3. absolute threshold search followed by a walk to the bottom of the dip,
4. parabolic interpolation around the chosen lag.

Reference: de Cheveigné & Kawahara, "YIN, a fundamental frequency estimator
for speech and music", JASA 2002.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from voice_pitch.utils import EPS

logger = logging.getLogger(__name__)

# Linear mapping of a sensitivity slider (dB) onto YIN thresholds.
SENSITIVITY_DB_RANGE = (-120.0, -40.0)
SENSITIVITY_THRESHOLD_RANGE = (0.30, 0.05)


@dataclass(frozen=True, slots=True)
class AudioFrame:
    """Fixed-length block of samples in ``[-1, 1]`` and its sample rate."""

    samples: np.ndarray
    sample_rate: float

    def __len__(self) -> int:
        return int(self.samples.size)


@dataclass(frozen=True, slots=True)
class PitchEstimate:
    """Result of analysing one frame.

    ``frequency`` is ``None`` for unvoiced frames. ``period`` is the refined lag
    in samples and ``confidence`` is ``1 - cmndf`` at the chosen lag.
    ``raw_frequency`` holds the unsmoothed estimate when smoothing was applied.
    """

    frequency: Optional[float] = None
    period: Optional[float] = None
    confidence: float = 0.0
    raw_frequency: Optional[float] = None

    @property
    def voiced(self) -> bool:
        return self.frequency is not None


UNVOICED = PitchEstimate()


@dataclass
class PitchDetectorConfig:
    """Tunable parameters of :class:`PitchDetector`."""

    threshold: float = 0.1
    smoothing_factor: float = 0.3
    max_frequency: float = 2000.0
    min_voice_frequency: float = 50.0
    max_voice_frequency: float = 2000.0
    reset_after_unvoiced: Optional[int] = 120


def difference_function(samples: np.ndarray) -> np.ndarray:
    """Return ``d(tau) = sum_{i<W} (x[i] - x[i + tau])**2`` for ``tau < W``.

    ``W`` is ``len(samples) // 2``. The squared sum is expanded into two energy
    terms and a cross-correlation, the latter evaluated with an FFT, which gives
    the same values as the direct O(W**2) double loop.
    """

    x = np.asarray(samples, dtype=np.float64).reshape(-1)
    width = x.size // 2
    if width == 0:
        return np.zeros(0, dtype=np.float64)

    squares = np.concatenate(([0.0], np.cumsum(x * x)))
    lags = np.arange(width)
    head_energy = squares[width]
    shifted_energy = squares[lags + width] - squares[lags]

    head = x[:width]
    tail = x[: 2 * width - 1]
    n_fft = 1 << int(np.ceil(np.log2(max(2 * width, 2))))
    spectrum = np.conj(np.fft.rfft(head, n=n_fft)) * np.fft.rfft(tail, n=n_fft)
    cross = np.fft.irfft(spectrum, n=n_fft)[:width]

    diff = head_energy + shifted_energy - 2.0 * cross
    diff = np.maximum(diff, 0.0)
    diff[0] = 0.0
    return diff


def cumulative_mean_normalized_difference(diff: np.ndarray) -> np.ndarray:
    """Divide ``d(tau)`` by its running mean over ``1..tau``; ``cmndf[0] = 1``."""

    diff = np.asarray(diff, dtype=np.float64)
    cmndf = np.ones_like(diff)
    if diff.size < 2:
        return cmndf
    running = np.cumsum(diff[1:])
    taus = np.arange(1, diff.size, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        normalised = diff[1:] * taus / running
    cmndf[1:] = np.where(running > 0.0, normalised, 1.0)
    return cmndf


def absolute_threshold(
    cmndf: np.ndarray, threshold: float, min_tau: int = 0
) -> Optional[int]:
    """Return the first lag at or above ``min_tau`` that dips under ``threshold``.

    The lag is advanced to the bottom of the dip before returning. ``None``
    means no lag qualified and the frame is unvoiced.
    """

    n = cmndf.size
    start = max(int(min_tau), 0)
    if start >= n:
        return None
    below = np.flatnonzero(cmndf[start:] < threshold)
    if below.size == 0:
        return None
    tau = start + int(below[0])
    while tau + 1 < n and cmndf[tau + 1] < cmndf[tau]:
        tau += 1
    return tau


def parabolic_interpolation(cmndf: np.ndarray, tau: int) -> float:
    """Refine ``tau`` to sub-sample precision using its two neighbours."""

    if tau <= 0 or tau >= cmndf.size - 1:
        return float(tau)
    s0 = float(cmndf[tau - 1])
    s1 = float(cmndf[tau])
    s2 = float(cmndf[tau + 1])
    denominator = 2.0 * (2.0 * s1 - s2 - s0)
    if denominator == 0.0:
        return float(tau)
    return tau + (s2 - s0) / denominator


FrameLike = Union[AudioFrame, np.ndarray]


class PitchDetector:
    """Per-frame pitch estimator with exponential smoothing between frames."""

    def __init__(
        self,
        sample_rate: float = 44100.0,
        config: Optional[PitchDetectorConfig] = None,
    ) -> None:
        if config is None:
            config = PitchDetectorConfig()
        sample_rate = float(sample_rate)
        if not math.isfinite(sample_rate) or sample_rate <= 0.0:
            raise ValueError("sample_rate must be positive and finite.")

        self.sample_rate = sample_rate
        self.config = dataclasses.replace(config)
        self.threshold = float(config.threshold)
        self.max_frequency = float(config.max_frequency)
        self.min_voice_frequency = float(config.min_voice_frequency)
        self.max_voice_frequency = float(config.max_voice_frequency)
        self.reset_after_unvoiced = config.reset_after_unvoiced
        self._smoothing_factor = 0.0
        self.smoothing_factor = config.smoothing_factor

        self._last_smoothed: Optional[float] = None
        self._unvoiced_run = 0

    # ------------------------------------------------------------------
    # Tunables
    # ------------------------------------------------------------------
    @property
    def smoothing_factor(self) -> float:
        return self._smoothing_factor

    @smoothing_factor.setter
    def smoothing_factor(self, value: float) -> None:
        self._smoothing_factor = float(np.clip(value, 0.0, 1.0))

    def set_sensitivity(self, level_db: float) -> float:
        """Map a sensitivity level in dB onto the YIN threshold.

        Levels are clamped to ``-120..-40`` dB; higher levels are more sensitive
        and give lower thresholds. Returns the new threshold.
        """

        lo_db, hi_db = SENSITIVITY_DB_RANGE
        hi_thr, lo_thr = SENSITIVITY_THRESHOLD_RANGE
        level = float(np.clip(level_db, lo_db, hi_db))
        fraction = (level - lo_db) / (hi_db - lo_db)
        self.threshold = hi_thr - fraction * (hi_thr - lo_thr)
        return self.threshold

    @property
    def sensitivity_db(self) -> float:
        """Sensitivity level matching the current threshold (inverse mapping)."""
        lo_db, hi_db = SENSITIVITY_DB_RANGE
        hi_thr, lo_thr = SENSITIVITY_THRESHOLD_RANGE
        fraction = (hi_thr - self.threshold) / (hi_thr - lo_thr)
        return float(np.clip(lo_db + fraction * (hi_db - lo_db), lo_db, hi_db))

    @property
    def last_smoothed_frequency(self) -> Optional[float]:
        return self._last_smoothed

    def min_period(self, sample_rate: Optional[float] = None) -> int:
        """Smallest lag searched, from the configured maximum frequency."""
        sr = self.sample_rate if sample_rate is None else float(sample_rate)
        return int(math.floor(sr / self.max_frequency))

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------
    def _unpack(
        self, frame: FrameLike, sample_rate: Optional[float]
    ) -> tuple[np.ndarray, float]:
        if isinstance(frame, AudioFrame):
            samples = frame.samples
            sr = frame.sample_rate if sample_rate is None else sample_rate
        else:
            samples = frame
            sr = self.sample_rate if sample_rate is None else sample_rate
        sr = float(sr)
        if not math.isfinite(sr) or sr <= 0.0:
            raise ValueError("sample_rate must be positive and finite.")
        return np.asarray(samples, dtype=np.float64).reshape(-1), sr

    def analyze(
        self, frame: FrameLike, sample_rate: Optional[float] = None
    ) -> PitchEstimate:
        """Estimate the pitch of ``frame`` without touching smoothing state."""

        x, sr = self._unpack(frame, sample_rate)
        width = x.size // 2
        min_tau = self.min_period(sr)
        if width <= max(min_tau, 1):
            return UNVOICED
        if float(np.dot(x, x)) <= EPS:
            return UNVOICED

        cmndf = cumulative_mean_normalized_difference(difference_function(x))
        tau = absolute_threshold(cmndf, self.threshold, min_tau)
        if tau is None:
            return UNVOICED

        period = parabolic_interpolation(cmndf, tau)
        if period <= 0.0:
            return UNVOICED
        frequency = sr / period
        if not (self.min_voice_frequency <= frequency <= self.max_voice_frequency):
            return UNVOICED

        confidence = float(np.clip(1.0 - cmndf[tau], 0.0, 1.0))
        return PitchEstimate(frequency=frequency, period=period, confidence=confidence)

    def detect_pitch(
        self, frame: FrameLike, sample_rate: Optional[float] = None
    ) -> PitchEstimate:
        """Estimate and smooth the pitch of ``frame``.

        Voiced estimates are blended with the previous smoothed value,
        ``last * alpha + f * (1 - alpha)``. Unvoiced frames leave the smoothing
        state untouched unless the silence lasts ``reset_after_unvoiced`` frames.
        """

        estimate = self.analyze(frame, sample_rate)
        if not estimate.voiced:
            self.mark_unvoiced()
            return estimate

        self._unvoiced_run = 0
        raw = float(estimate.frequency)
        if self._last_smoothed is None:
            smoothed = raw
        else:
            alpha = self._smoothing_factor
            smoothed = self._last_smoothed * alpha + raw * (1.0 - alpha)
        self._last_smoothed = smoothed
        return dataclasses.replace(estimate, frequency=smoothed, raw_frequency=raw)

    def mark_unvoiced(self) -> None:
        """Record an unvoiced frame that was never analysed (e.g. gated as noise)."""

        self._unvoiced_run += 1
        limit = self.reset_after_unvoiced
        if limit is not None and self._unvoiced_run >= limit:
            if self._last_smoothed is not None:
                logger.debug(
                    "Clearing smoothing state after %d unvoiced frames",
                    self._unvoiced_run,
                )
            self._last_smoothed = None

    def reset(self) -> None:
        self._last_smoothed = None
        self._unvoiced_run = 0
        logger.debug("Pitch detector state reset")


__all__ = [
    "AudioFrame",
    "PitchEstimate",
    "UNVOICED",
    "PitchDetectorConfig",
    "PitchDetector",
    "difference_function",
    "cumulative_mean_normalized_difference",
    "absolute_threshold",
    "parabolic_interpolation",
]
