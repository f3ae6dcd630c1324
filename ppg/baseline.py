"""
ppg/baseline.py — Adaptive DC baseline
=======================================
The fingertip intensity is a large DC level (tissue + venous blood) with a
small pulsatile AC component riding on it.  `BaselineTracker` follows the
DC level with an exponential moving average and returns the AC-centred
value that the peak detector works on.

The smoothing factor α adapts to recent variability: when the finger
pressure shifts, the coefficient of variation jumps and the baseline
catches up faster; on a steady signal it relaxes back to the slow rate.
"""

from collections import deque

import numpy as np

from config import (
    BASELINE_ALPHA,
    BASELINE_ALPHA_MAX,
    BASELINE_ALPHA_MIN,
    BASELINE_CV_REFERENCE,
    BASELINE_MAX_MULTIPLIER,
    BASELINE_VARIANCE_WINDOW,
)


class BaselineTracker:
    """Exponential baseline with variance-driven α."""

    def __init__(
        self,
        alpha: float = BASELINE_ALPHA,
        alpha_min: float = BASELINE_ALPHA_MIN,
        alpha_max: float = BASELINE_ALPHA_MAX,
        variance_window: int = BASELINE_VARIANCE_WINDOW,
        cv_reference: float = BASELINE_CV_REFERENCE,
        max_multiplier: float = BASELINE_MAX_MULTIPLIER,
    ):
        self._alpha = alpha
        self._alpha_min = alpha_min
        self._alpha_max = alpha_max
        self._cv_reference = cv_reference
        self._max_multiplier = max_multiplier
        self._recent: deque[float] = deque(maxlen=variance_window)
        self.baseline: float | None = None
        self.current_alpha: float = alpha

    def update(self, raw: float) -> float:
        """Fold `raw` into the baseline and return ``raw - baseline``."""
        raw = float(raw)
        self._recent.append(raw)

        if self.baseline is None:
            # No warm-up transient: the first sample *is* the baseline.
            self.baseline = raw
            return 0.0

        self.current_alpha = self._adaptive_alpha()
        self.baseline = self.baseline * (1.0 - self.current_alpha) + raw * self.current_alpha
        return raw - self.baseline

    def _adaptive_alpha(self) -> float:
        if len(self._recent) < 2:
            return float(np.clip(self._alpha, self._alpha_min, self._alpha_max))

        values = np.asarray(self._recent, dtype=np.float64)
        mean = abs(values.mean())
        cv = values.std() / mean if mean > 1e-9 else 0.0

        multiplier = min(self._max_multiplier, 1.0 + cv / self._cv_reference)
        return float(np.clip(self._alpha * multiplier, self._alpha_min, self._alpha_max))

    def reset(self) -> None:
        self._recent.clear()
        self.baseline = None
        self.current_alpha = self._alpha
