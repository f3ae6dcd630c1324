"""
ppg/quality.py — Signal-quality index (0–100)
==============================================
Four independently normalised sub-scores are combined with fixed weights:

    amplitude    0.35   peak-to-peak range of the smoothed intensity
    stability    0.25   coefficient of variation (std / mean)
    periodicity  0.20   autocorrelation peak in the 40–180 BPM lag band
    pulsatility  0.20   rate of rise/fall alternation of the first derivative

Each sub-score penalises *both* ends of its range: a range that is too
small means no pulse (or no finger), one that is too large means motion;
a near-zero CV is a static object, a large CV is noise.

The combined score is blended with the previous one (EMA) so the finger
gate downstream does not react to single-frame jitter.

The perfusion index (AC/DC, in %) is computed from the same window since
it only needs the range and the mean already at hand.
"""

from dataclasses import dataclass

import numpy as np
from scipy.signal import detrend

from config import ProcessorConfig


@dataclass(frozen=True)
class QualityBreakdown:
    amplitude: float = 0.0
    stability: float = 0.0
    periodicity: float = 0.0
    pulsatility: float = 0.0
    total: float = 0.0
    perfusion_index: float = 0.0


def _amplitude_score(span: float, cfg: ProcessorConfig) -> float:
    if span <= cfg.amplitude_min:
        return 0.0
    if span < cfg.amplitude_optimal:
        return 100.0 * (span - cfg.amplitude_min) / (cfg.amplitude_optimal - cfg.amplitude_min)
    if span <= cfg.amplitude_max:
        return 100.0
    # Motion artefact: linear fall-off, zero at twice the maximum
    return 100.0 * max(0.0, 1.0 - (span - cfg.amplitude_max) / cfg.amplitude_max)


def _stability_score(window: np.ndarray, cfg: ProcessorConfig) -> float:
    mean = abs(window.mean())
    if mean < 1e-9:
        return 0.0
    cv = window.std() / mean
    if cv < cfg.cv_static:
        return 100.0 * cv / cfg.cv_static if cfg.cv_static > 0 else 100.0

    # std never exceeds half the range, so a pulse the amplitude score still
    # accepts (range <= amplitude_max) must not count as noise here.
    noisy = max(cfg.cv_noisy, cfg.amplitude_max / (2.0 * mean))
    cutoff = noisy + (cfg.cv_cutoff - cfg.cv_noisy)
    if cv <= noisy:
        return 100.0
    if cv < cutoff:
        return 100.0 * (cutoff - cv) / (cutoff - noisy)
    return 0.0


def _lag_band(n: int, cfg: ProcessorConfig) -> tuple[int, int]:
    fs = cfg.sample_rate_hz
    lag_min = max(1, int(np.floor(fs * 60.0 / cfg.periodicity_max_bpm)))
    lag_max = min(n // 2, int(np.ceil(fs * 60.0 / cfg.periodicity_min_bpm)))
    return lag_min, lag_max


def _periodicity_score(window: np.ndarray, cfg: ProcessorConfig) -> float:
    x = detrend(window)
    energy = float(np.dot(x, x))
    if energy < 1e-12:
        return 0.0

    n = len(x)
    lag_min, lag_max = _lag_band(n, cfg)
    if lag_min > lag_max:
        return 0.0

    full = np.correlate(x, x, mode="full")[n - 1:]
    lags = np.arange(lag_min, lag_max + 1)
    # Unbiased normalisation so long lags are not penalised for having
    # fewer overlapping samples.
    acf = full[lags] / energy * (n / (n - lags))
    return float(np.clip(acf.max(), 0.0, 1.0) * 100.0)


def _pulsatility_score(window: np.ndarray, cfg: ProcessorConfig) -> float:
    signs = np.sign(np.diff(window))
    signs = signs[signs != 0]
    if len(signs) < 2:
        return 0.0
    changes = int(np.count_nonzero(signs[1:] != signs[:-1]))
    ratio = changes / len(window)

    # A pulse turns twice per beat: once at the peak, once at the valley.
    fs = cfg.sample_rate_hz
    low = 2.0 * cfg.periodicity_min_bpm / (60.0 * fs)
    high = 2.0 * cfg.periodicity_max_bpm / (60.0 * fs)
    noise_ratio = 0.5

    if ratio < low:
        return 100.0 * ratio / low
    if ratio <= high:
        return 100.0
    if ratio < noise_ratio:
        return 100.0 * (noise_ratio - ratio) / (noise_ratio - high)
    return 0.0


def compute_quality(buffer, config: ProcessorConfig | None = None) -> QualityBreakdown:
    """
    Score the most recent `quality_window` samples of a smoothed intensity
    buffer (DC level included).

    Returns an all-zero breakdown when fewer than `quality_min_samples`
    samples are available.
    """
    cfg = config or ProcessorConfig()
    window = np.asarray(buffer, dtype=np.float64)[-cfg.quality_window:]
    if len(window) < cfg.quality_min_samples or not np.all(np.isfinite(window)):
        return QualityBreakdown()

    span = float(window.max() - window.min())
    mean = float(window.mean())
    perfusion = 100.0 * span / mean if mean > 1e-9 else 0.0

    amplitude = _amplitude_score(span, cfg)
    stability = _stability_score(window, cfg)
    periodicity = _periodicity_score(window, cfg)
    pulsatility = _pulsatility_score(window, cfg)

    weights = np.asarray(cfg.quality_weights, dtype=np.float64)
    total = float(np.dot(weights, [amplitude, stability, periodicity, pulsatility]))

    return QualityBreakdown(
        amplitude=amplitude,
        stability=stability,
        periodicity=periodicity,
        pulsatility=pulsatility,
        total=float(np.clip(total, 0.0, 100.0)),
        perfusion_index=perfusion,
    )


class SignalQualityEstimator:
    """Stateful wrapper adding temporal smoothing to `compute_quality`."""

    def __init__(self, config: ProcessorConfig | None = None):
        self._cfg = config or ProcessorConfig()
        self._score: float | None = None
        self.last_breakdown = QualityBreakdown()

    def score(self, buffer) -> float:
        """Smoothed quality in [0, 100] for the given buffer."""
        breakdown = compute_quality(buffer, self._cfg)
        self.last_breakdown = breakdown

        if len(buffer) < self._cfg.quality_min_samples:
            self._score = None
            return 0.0

        if self._score is None:
            self._score = breakdown.total
        else:
            beta = self._cfg.quality_smoothing
            self._score = (1.0 - beta) * self._score + beta * breakdown.total
        return float(np.clip(self._score, 0.0, 100.0))

    def reset(self) -> None:
        self._score = None
        self.last_breakdown = QualityBreakdown()
