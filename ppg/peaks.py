"""
ppg/peaks.py — Peak / valley detection and RR-interval extraction
==================================================================
Scans an AC-centred PPG window for systolic peaks (and the diastolic
valleys between them) and converts peak spacing into RR intervals.

A sample is accepted as a peak only when all of the following hold:

1. **Local dominance** — it is the maximum of a symmetric ±`half_window`
   neighbourhood.  Wider windows reject more noise but add latency: a peak
   can only be confirmed `half_window` frames after it happened.
2. **Adaptive amplitude** — it lies above the window mean, and its
   prominence is at least `k · (max − min)` of the window.  Scaling with the
   window range lets the same detector work for weak and strong pulses.
3. **Refractory distance** — it is at least `min_peak_distance_ms` after
   the previous accepted peak.  300 ms keeps the dicrotic notch of one beat
   from being counted as a second beat, while still allowing 200 BPM.

`scipy.signal.find_peaks` handles (2, prominence) and (3, distance); the
neighbourhood test (1) is applied on top.
"""

import math
from dataclasses import dataclass, field

import numpy as np
from scipy.signal import find_peaks

from config import (
    MIN_PEAK_DISTANCE_MS,
    PEAK_HALF_WINDOW,
    PEAK_PROMINENCE_K,
    RR_MAX_MS,
    RR_MIN_MS,
    SAMPLE_RATE_HZ,
)
from utils.logger import get_logger

logger = get_logger("ppg.peaks")


@dataclass(frozen=True)
class PeakEvent:
    """One detected extremum inside the analysed window."""
    index: int            # Position in the analysed buffer
    timestamp: float      # ms
    amplitude: float      # Signal value at the extremum


@dataclass
class PeakDetection:
    """Result of one detector pass.  All lists are empty on short input."""
    peaks: list[PeakEvent] = field(default_factory=list)
    valleys: list[PeakEvent] = field(default_factory=list)
    intervals: list[float] = field(default_factory=list)   # RR, ms

    @property
    def peak_indices(self) -> list[int]:
        return [p.index for p in self.peaks]

    @property
    def valley_indices(self) -> list[int]:
        return [v.index for v in self.valleys]


class PeakDetector:
    """
    Stateless detector; every call analyses the window it is given.

    Parameters
    ----------
    sample_rate_hz       : float  Used when no timestamps are supplied.
    half_window          : int    Neighbourhood half-width (samples).
    prominence_k         : float  Prominence threshold as a fraction of range.
    min_peak_distance_ms : float  Refractory period between peaks.
    rr_min_ms, rr_max_ms : float  Physiological RR band; others are dropped.
    """

    def __init__(
        self,
        sample_rate_hz: float = SAMPLE_RATE_HZ,
        half_window: int = PEAK_HALF_WINDOW,
        prominence_k: float = PEAK_PROMINENCE_K,
        min_peak_distance_ms: float = MIN_PEAK_DISTANCE_MS,
        rr_min_ms: float = RR_MIN_MS,
        rr_max_ms: float = RR_MAX_MS,
    ):
        self._fs = sample_rate_hz
        self._half_window = half_window
        self._k = prominence_k
        self._min_distance_ms = min_peak_distance_ms
        self._rr_min = rr_min_ms
        self._rr_max = rr_max_ms

    @property
    def min_samples(self) -> int:
        return 2 * self._half_window + 1

    def detect(self, buffer, timestamps=None) -> PeakDetection:
        """
        Detect peaks, valleys and RR intervals in `buffer`.

        Parameters
        ----------
        buffer     : array-like, shape (N,)   AC-centred signal.
        timestamps : array-like | None        Per-sample times in ms.  When
                                              omitted, samples are assumed
                                              evenly spaced at the sample rate.
        """
        signal = np.asarray(buffer, dtype=np.float64)
        if signal.ndim != 1 or len(signal) < self.min_samples:
            return PeakDetection()

        if timestamps is None:
            times = np.arange(len(signal)) * (1000.0 / self._fs)
        else:
            times = np.asarray(timestamps, dtype=np.float64)
            if times.shape != signal.shape:
                raise ValueError(
                    f"timestamps length {len(times)} does not match buffer length {len(signal)}."
                )

        sample_ms = self._sample_period_ms(times)
        peak_idx = self._find_extrema(signal, sample_ms)
        valley_idx = self._find_extrema(-signal, sample_ms)

        peaks = [PeakEvent(int(i), float(times[i]), float(signal[i])) for i in peak_idx]
        valleys = [PeakEvent(int(i), float(times[i]), float(signal[i])) for i in valley_idx]
        intervals = self.intervals_from_peaks([p.timestamp for p in peaks])

        return PeakDetection(peaks=peaks, valleys=valleys, intervals=intervals)

    def intervals_from_peaks(self, peak_times) -> list[float]:
        """Successive peak spacing in ms, restricted to the physiological band."""
        if len(peak_times) < 2:
            return []
        diffs = np.diff(np.asarray(peak_times, dtype=np.float64))
        valid = diffs[(diffs >= self._rr_min) & (diffs <= self._rr_max)]
        if len(valid) < len(diffs):
            logger.debug("Dropped %d out-of-band RR interval(s).", len(diffs) - len(valid))
        return [float(x) for x in valid]

    # ── Internals ────────────────────────────────────────────────────────────

    def _sample_period_ms(self, times: np.ndarray) -> float:
        steps = np.diff(times)
        steps = steps[steps > 0]
        if len(steps) == 0:
            return 1000.0 / self._fs
        return float(np.median(steps))

    def _find_extrema(self, signal: np.ndarray, sample_ms: float) -> np.ndarray:
        span = signal.max() - signal.min()
        if span <= 0:
            return np.array([], dtype=int)

        distance = max(1, math.ceil(self._min_distance_ms / sample_ms))
        candidates, _ = find_peaks(
            signal,
            prominence=self._k * span,
            distance=distance,
        )

        mean = signal.mean()
        w = self._half_window
        n = len(signal)
        accepted = [
            i for i in candidates
            if w <= i < n - w
            and signal[i] > mean
            and signal[i] >= signal[i - w:i + w + 1].max()
        ]
        return np.asarray(accepted, dtype=int)
