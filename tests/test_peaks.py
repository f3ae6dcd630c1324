import numpy as np
import pytest

from ppg.peaks import PeakDetector


def test_sine_peak_count_and_intervals(sine_window):
    detector = PeakDetector(sample_rate_hz=30.0)
    result = detector.detect(sine_window)

    expected = len(sine_window) / 20
    assert abs(len(result.peaks) - expected) <= 1
    assert result.intervals
    for interval in result.intervals:
        assert interval == pytest.approx(20 * 1000.0 / 30.0, rel=0.05)


def test_valleys_lie_between_peaks(sine_window):
    result = PeakDetector(sample_rate_hz=30.0).detect(sine_window)
    assert result.valleys
    for v in result.valley_indices:
        assert sine_window[v] < 0
    for p in result.peak_indices:
        assert sine_window[p] > 0


def test_short_input_returns_empty():
    detector = PeakDetector(half_window=3)
    result = detector.detect([0.0, 1.0, 0.0, -1.0, 0.0])
    assert result.peaks == []
    assert result.valleys == []
    assert result.intervals == []


def test_flat_signal_has_no_peaks():
    assert PeakDetector().detect(np.zeros(120)).peaks == []


def test_peaks_respect_window_edges(sine_window):
    detector = PeakDetector(half_window=3)
    n = len(sine_window)
    for i in detector.detect(sine_window).peak_indices:
        assert 3 <= i < n - 3


def test_refractory_distance_suppresses_close_peaks():
    # 3-sample ripple on a slow wave: ripple peaks are 100 ms apart
    n = np.arange(150)
    signal = np.sin(2.0 * np.pi * n / 30.0) + 0.05 * np.sin(2.0 * np.pi * n / 3.0)
    peaks = PeakDetector(sample_rate_hz=30.0).detect(signal).peaks
    times = [p.timestamp for p in peaks]
    assert np.all(np.diff(times) >= 300.0 - 1e-6)


def test_timestamps_drive_intervals(sine_window):
    timestamps = np.arange(len(sine_window)) * 40.0      # 25 Hz clock
    result = PeakDetector(sample_rate_hz=30.0).detect(sine_window, timestamps)
    for interval in result.intervals:
        assert interval == pytest.approx(800.0)


def test_timestamp_length_mismatch_raises(sine_window):
    with pytest.raises(ValueError):
        PeakDetector().detect(sine_window, np.arange(10))


def test_intervals_outside_band_are_dropped():
    detector = PeakDetector(rr_min_ms=300.0, rr_max_ms=2000.0)
    intervals = detector.intervals_from_peaks([0.0, 100.0, 900.0, 4000.0, 4800.0])
    assert intervals == [800.0, 800.0]
