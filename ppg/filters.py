"""
ppg/filters.py — Per-frame smoothing filter
============================================
Smooths the raw fingertip intensity one sample at a time:

    raw  →  median (spike rejection)  →  moving average  →  filtered

Why median first?
-----------------
A single saturated or dropped camera frame produces a one-sample spike.
A 3-tap median removes it completely, whereas a moving average would only
smear it across the next few samples and create a fake "beat".

Why not Butterworth here?
-------------------------
The heart-rate band-pass of an offline pipeline needs the whole recording
(zero-phase `filtfilt`).  A frame callback only has the past, so we use
short causal windows whose latency (a couple of frames) stays well below
one heartbeat.
"""

from collections import deque

import numpy as np

from config import MEDIAN_WINDOW, MOVING_AVERAGE_WINDOW


class SignalFilter:
    """
    Stateful causal smoother.

    Parameters
    ----------
    moving_average_window : int   Moving-average length (3–15).
    median_window         : int   Median length (1 disables, 3–5 typical).
    """

    def __init__(
        self,
        moving_average_window: int = MOVING_AVERAGE_WINDOW,
        median_window: int = MEDIAN_WINDOW,
    ):
        if moving_average_window < 1 or median_window < 1:
            raise ValueError("Filter windows must be >= 1.")
        self._ma_window = moving_average_window
        self._median_window = median_window
        self._median_buffer: deque[float] = deque(maxlen=median_window)
        self._ma_buffer: deque[float] = deque(maxlen=moving_average_window)

    def filter(self, raw: float) -> float:
        """
        Push one raw sample and return the smoothed value.

        Until the moving-average window is full the raw value is returned
        unchanged: a partially-filled average would bias the first frames
        towards whatever arrived first.
        """
        raw = float(raw)
        self._median_buffer.append(raw)
        median = float(np.median(self._median_buffer))
        self._ma_buffer.append(median)

        if len(self._ma_buffer) < self._ma_window:
            return raw
        return float(np.mean(self._ma_buffer))

    def reset(self) -> None:
        self._median_buffer.clear()
        self._ma_buffer.clear()

    def __len__(self) -> int:
        return len(self._ma_buffer)
