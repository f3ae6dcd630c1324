"""Shared fixtures: deterministic synthetic signals and processors."""

import numpy as np
import pytest

from config import ProcessorConfig
from ppg.pipeline import PPGProcessor
from ppg.synthetic import synthetic_ppg

FS = 30.0


@pytest.fixture
def sine_window():
    """150 samples of a unit sine with a 20-sample period (90 BPM @ 30 Hz)."""
    n = np.arange(150)
    return np.sin(2.0 * np.pi * n / 20.0)


@pytest.fixture
def config():
    return ProcessorConfig()


@pytest.fixture
def processor():
    p = PPGProcessor(ProcessorConfig())
    p.start()
    return p


@pytest.fixture
def recording_90bpm():
    return synthetic_ppg(bpm=90, duration_s=20, fs=FS)


def feed(processor, recording, start=0, stop=None):
    """Push a slice of a synthetic recording; return the per-frame results."""
    results = []
    for t, r, g in zip(
        recording.timestamps[start:stop],
        recording.red[start:stop],
        recording.green[start:stop],
    ):
        results.append(processor.process_sample(float(t), float(r), float(g)))
    return results
