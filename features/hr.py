"""
features/hr.py — Heart rate from RR intervals
==============================================
Converts the RR intervals produced by the peak detector into a heart-rate
estimate and keeps the bounded RR history shared with the arrhythmia
heuristic.

Estimation
----------
1. Keep intervals inside the BPM band (300–1500 ms → 40–200 BPM).
2. With three or more left, drop those more than 40 % away from the
   median — a single missed or double-counted beat produces exactly such
   an interval.
3. Recency-weighted mean (weights 1…n) → ``bpm = round(60000 / mean)``,
   hard-clipped to [40, 200].
4. Confidence: ``1 − 2·CV`` of the kept intervals, scaled to [0, 100].  A
   perfectly regular rhythm (CV = 0) gives 100.

Successive estimates are blended with an EMA so one spurious interval
cannot make the displayed value jump.
"""

from collections import deque
from dataclasses import dataclass

import numpy as np

from config import ProcessorConfig
from utils.logger import get_logger

logger = get_logger("features.hr")


@dataclass(frozen=True)
class BpmEstimate:
    bpm: int = 0
    confidence: float = 0.0


def compute_bpm(intervals, config: ProcessorConfig | None = None) -> BpmEstimate:
    """
    Estimate heart rate from RR intervals.

    Parameters
    ----------
    intervals : sequence of float   RR intervals in **milliseconds**.

    Returns
    -------
    BpmEstimate
        ``BpmEstimate(0, 0.0)`` when fewer than two usable intervals remain.
    """
    cfg = config or ProcessorConfig()
    rr = np.asarray(list(intervals), dtype=np.float64)
    rr = rr[np.isfinite(rr)]
    rr = rr[(rr >= cfg.bpm_interval_min_ms) & (rr <= cfg.bpm_interval_max_ms)]

    if len(rr) >= 3:
        median = np.median(rr)
        rr = rr[np.abs(rr - median) <= cfg.bpm_outlier_ratio * median]

    if len(rr) < 2:
        return BpmEstimate()

    weights = np.arange(1, len(rr) + 1, dtype=np.float64)
    mean_rr = float(np.average(rr, weights=weights))
    bpm = int(np.clip(round(60000.0 / mean_rr), cfg.bpm_min, cfg.bpm_max))

    cv = rr.std() / rr.mean()
    confidence = float(np.clip(1.0 - cfg.confidence_cv_scale * cv, 0.0, 1.0) * 100.0)

    return BpmEstimate(bpm=bpm, confidence=round(confidence, 1))


class HeartRateAggregator:
    """
    Owns the RR ring buffer and the smoothed BPM for one session.

    Peaks arrive as absolute timestamps from a sliding-window detector, so
    the same beat is reported on many consecutive frames.  Only peaks newer
    than the last registered one produce an interval.
    """

    def __init__(self, config: ProcessorConfig | None = None):
        self._cfg = config or ProcessorConfig()
        self.rr_intervals: deque[float] = deque(maxlen=self._cfg.rr_buffer_size)
        self.last_peak_time: float | None = None
        self.beat_count = 0                    # Intervals accepted this session
        self.current = BpmEstimate()
        self._smoothed: float | None = None
        self._estimates: list[int] = []
        self._dirty = False

    def register_peaks(self, peak_times) -> list[float]:
        """
        Fold detected peak timestamps (ms) into the RR buffer.

        Returns the intervals newly appended by this call.
        """
        cfg = self._cfg
        added: list[float] = []
        for t in sorted(float(x) for x in peak_times):
            if self.last_peak_time is None:
                self.last_peak_time = t
                continue
            if t <= self.last_peak_time:
                continue

            interval = t - self.last_peak_time
            if interval < cfg.rr_min_ms:
                # Dicrotic notch or noise: keep the earlier peak as reference
                logger.debug("Ignoring peak %.0f ms after the previous one.", interval)
                continue
            self.last_peak_time = t
            if interval > cfg.rr_max_ms:
                # Missed beats / signal gap: restart the chain from here
                logger.debug("Discarding %.0f ms gap between peaks.", interval)
                continue

            self.rr_intervals.append(interval)
            self.beat_count += 1
            added.append(interval)

        if added:
            self._dirty = True
        return added

    def update(self) -> BpmEstimate:
        """Recompute the smoothed BPM if new intervals arrived since last call."""
        if not self._dirty:
            return self.current
        self._dirty = False

        estimate = compute_bpm(self.rr_intervals, self._cfg)
        if estimate.bpm == 0:
            return self.current

        if self._smoothed is None:
            self._smoothed = float(estimate.bpm)
        else:
            alpha = self._cfg.bpm_smoothing
            self._smoothed += alpha * (estimate.bpm - self._smoothed)

        self._estimates.append(estimate.bpm)
        self.current = BpmEstimate(
            bpm=int(round(self._smoothed)),
            confidence=estimate.confidence,
        )
        return self.current

    def final_bpm(self) -> int:
        """Trimmed mean of all accepted estimates, 0 if there are too few."""
        if len(self._estimates) < self._cfg.final_bpm_min_estimates:
            return 0
        ordered = sorted(self._estimates)
        cut = int(round(len(ordered) * self._cfg.final_bpm_trim))
        kept = ordered[cut:len(ordered) - cut] or ordered
        return int(round(float(np.mean(kept))))

    def reset_detection(self) -> None:
        """Forget the current beat chain and smoothing (finger lifted)."""
        self.rr_intervals.clear()
        self.last_peak_time = None
        self.current = BpmEstimate()
        self._smoothed = None
        self._dirty = False

    def reset(self) -> None:
        self.reset_detection()
        self.beat_count = 0
        self._estimates.clear()
