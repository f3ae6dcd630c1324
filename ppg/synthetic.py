"""
ppg/synthetic.py — Synthetic fingertip PPG recordings
======================================================
Generates deterministic (seeded) red/green intensity traces that look like
a fingertip pressed on a camera with the flash on, so the pipeline can be
demonstrated and tested without a phone.

Waveform
--------
Each beat is one cycle of

    cos(φ) − 0.15 · cos(2φ)

which has a broad systolic top, a narrower diastolic trough and exactly one
maximum and one minimum per beat.  The maximum sits on the beat time
itself, so the peak-to-peak intervals the detector sees are the scheduled
intervals.  The phase is driven by explicit beat times, so runs of beats
can be made premature (`ectopic_every`, `ectopic_run`) to exercise the
arrhythmia heuristic: a single premature beat is forgiven, a run of
`arrhythmia_confirm_beats` is reported.

The red level sits around 150 (0–255 scale) and green around 100, giving
the red/green ratio ≈ 1.5 that the finger gate expects from tissue.
"""

from dataclasses import dataclass

import numpy as np

from config import RANDOM_SEED, SAMPLE_RATE_HZ


@dataclass
class SyntheticRecording:
    timestamps: np.ndarray     # ms
    red: np.ndarray
    green: np.ndarray
    beat_times: np.ndarray     # ms, ground-truth systolic peaks


def beat_schedule(
    bpm: float,
    duration_s: float,
    ectopic_every: int | None = None,
    ectopic_ratio: float = 0.55,
    ectopic_run: int = 3,
) -> np.ndarray:
    """
    Beat times (ms) covering `duration_s`.

    Every `ectopic_every` intervals end with a run of `ectopic_run`
    intervals shortened to `ectopic_ratio` of the nominal interval.
    """
    if ectopic_every and not 1 <= ectopic_run <= ectopic_every:
        raise ValueError("ectopic_run must be between 1 and ectopic_every.")

    nominal = 60000.0 / bpm
    end = duration_s * 1000.0
    times = [0.0]
    k = 1
    while times[-1] <= end + nominal:
        interval = nominal
        if ectopic_every and (k - 1) % ectopic_every >= ectopic_every - ectopic_run:
            interval *= ectopic_ratio
        times.append(times[-1] + interval)
        k += 1
    return np.asarray(times)


def synthetic_ppg(
    bpm: float = 75.0,
    duration_s: float = 30.0,
    fs: float = SAMPLE_RATE_HZ,
    amplitude: float = 3.0,
    dc: float = 150.0,
    noise: float = 0.0,
    green_ratio: float = 1.5,
    ectopic_every: int | None = None,
    ectopic_ratio: float = 0.55,
    ectopic_run: int = 3,
    seed: int = RANDOM_SEED,
) -> SyntheticRecording:
    """
    Build a synthetic recording.

    Parameters
    ----------
    bpm           : float   Nominal heart rate.
    duration_s    : float   Length of the recording (seconds).
    fs            : float   Sampling rate (frames per second).
    amplitude     : float   Pulse amplitude in intensity units.
    dc            : float   Mean red intensity.
    noise         : float   Std of additive Gaussian noise.
    green_ratio   : float   red / green ratio of the DC level.
    ectopic_every : int     Period (in beats) of premature runs (None = regular).
    ectopic_ratio : float   Premature interval as a fraction of nominal.
    ectopic_run   : int     Consecutive premature beats per run.
    """
    rng = np.random.default_rng(seed)

    n = int(round(duration_s * fs))
    timestamps = np.arange(n) * (1000.0 / fs)
    beats = beat_schedule(bpm, duration_s, ectopic_every, ectopic_ratio, ectopic_run)

    # Beat index and fractional position of every sample inside its beat
    k = np.searchsorted(beats, timestamps, side="right") - 1
    frac = (timestamps - beats[k]) / (beats[k + 1] - beats[k])
    phase = 2.0 * np.pi * frac

    pulse = np.cos(phase) - 0.15 * np.cos(2.0 * phase)
    red = dc + amplitude * pulse
    if noise > 0:
        red = red + rng.normal(0.0, noise, size=n)
    green = red / green_ratio

    return SyntheticRecording(
        timestamps=timestamps,
        red=red,
        green=green,
        beat_times=beats,
    )
