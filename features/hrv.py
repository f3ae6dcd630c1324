"""
features/hrv.py — Heart Rate Variability (HRV) time-domain features
=====================================================================
Computes the standard *time-domain* HRV metrics from the session's RR
ring buffer:

    SDNN  — Standard Deviation of NN intervals
    RMSSD — Root Mean Square of Successive Differences
    pNN50 — Percentage of successive differences > 50 ms

The RR buffer holds at most 20 beats (≈ 15–20 s), so these values track
short-term variability only.  They are reported for trend display and as
inputs to external formula modules, not for clinical assessment.
"""

import numpy as np

from config import HRV_MIN_INTERVALS
from utils.logger import get_logger

logger = get_logger("features.hrv")


def rmssd(rr_ms) -> float:
    """RMSSD in ms; 0.0 when fewer than two intervals are given."""
    rr = np.asarray(list(rr_ms), dtype=np.float64)
    if len(rr) < 2:
        return 0.0
    diffs = np.diff(rr)
    return float(np.sqrt(np.mean(diffs ** 2)))


def compute_hrv(rr_intervals, min_intervals: int = HRV_MIN_INTERVALS) -> dict:
    """
    Compute time-domain HRV features from RR intervals.

    Parameters
    ----------
    rr_intervals  : sequence of float   Successive RR intervals in **ms**.
    min_intervals : int                 Below this, every metric is None.

    Returns
    -------
    dict with keys:
        sdnn_ms   : float | None
        rmssd_ms  : float | None
        pnn50     : float | None   Percentage [0, 100].
        mean_rr_ms: float | None
        num_beats : int            Number of RR intervals used.
        valid     : bool           True if enough intervals were available.
    """
    rr_ms = np.asarray(list(rr_intervals), dtype=np.float64)
    num_beats = len(rr_ms)

    if num_beats < min_intervals:
        logger.debug(
            "Only %d RR intervals available (need %d for HRV).",
            num_beats,
            min_intervals,
        )
        return {
            "sdnn_ms": None,
            "rmssd_ms": None,
            "pnn50": None,
            "mean_rr_ms": None,
            "num_beats": num_beats,
            "valid": False,
        }

    sdnn_ms = float(np.std(rr_ms, ddof=1))   # ddof=1 for sample std
    mean_rr_ms = float(np.mean(rr_ms))

    successive_diffs = np.diff(rr_ms)
    rmssd_ms = float(np.sqrt(np.mean(successive_diffs ** 2)))

    count_above_50 = np.sum(np.abs(successive_diffs) > 50.0)
    pnn50 = float(count_above_50 / len(successive_diffs) * 100.0)

    logger.debug(
        "HRV — SDNN=%.1f ms, RMSSD=%.1f ms, pNN50=%.1f%%, mean_RR=%.1f ms (%d beats)",
        sdnn_ms, rmssd_ms, pnn50, mean_rr_ms, num_beats,
    )

    return {
        "sdnn_ms": round(sdnn_ms, 2),
        "rmssd_ms": round(rmssd_ms, 2),
        "pnn50": round(pnn50, 2),
        "mean_rr_ms": round(mean_rr_ms, 2),
        "num_beats": num_beats,
        "valid": True,
    }
