import pytest

from config import ProcessorConfig
from features.hr import HeartRateAggregator, compute_bpm
from features.hrv import compute_hrv, rmssd


# ── compute_bpm ─────────────────────────────────────────────────────────────

def test_one_second_intervals_give_60_bpm():
    estimate = compute_bpm([1000.0] * 5)
    assert estimate.bpm == 60
    assert estimate.confidence == 100.0


def test_fewer_than_two_intervals_give_zero():
    assert compute_bpm([]).bpm == 0
    assert compute_bpm([800.0]).bpm == 0
    assert compute_bpm([800.0]).confidence == 0.0


def test_out_of_band_intervals_are_ignored():
    assert compute_bpm([200.0, 1800.0]).bpm == 0
    assert compute_bpm([200.0, 750.0, 750.0, 1800.0]).bpm == 80


def test_median_outlier_rejected():
    # 400 ms is a double-counted beat: 50 % away from the 800 ms median
    assert compute_bpm([800.0, 800.0, 810.0, 790.0, 400.0]).bpm == 75


def test_recent_intervals_weigh_more():
    slowing = compute_bpm([700.0, 720.0, 740.0, 760.0, 780.0]).bpm
    speeding = compute_bpm([780.0, 760.0, 740.0, 720.0, 700.0]).bpm
    assert slowing < speeding


def test_confidence_drops_with_irregularity():
    regular = compute_bpm([800.0] * 6).confidence
    irregular = compute_bpm([700.0, 900.0, 720.0, 880.0, 750.0, 850.0]).confidence
    assert irregular < regular


def test_bpm_clamped_to_range():
    cfg = ProcessorConfig(bpm_max=150)
    assert compute_bpm([320.0, 320.0, 320.0], cfg).bpm == 150


# ── HeartRateAggregator ─────────────────────────────────────────────────────

def test_repeated_peaks_are_not_double_counted():
    agg = HeartRateAggregator()
    assert agg.register_peaks([0.0, 800.0, 1600.0]) == [800.0, 800.0]
    assert agg.register_peaks([0.0, 800.0, 1600.0]) == []
    assert agg.register_peaks([800.0, 1600.0, 2400.0]) == [800.0]
    assert list(agg.rr_intervals) == [800.0, 800.0, 800.0]


def test_notch_peak_keeps_previous_reference():
    agg = HeartRateAggregator()
    agg.register_peaks([0.0, 800.0])
    assert agg.register_peaks([1000.0]) == []
    assert agg.last_peak_time == 800.0
    assert agg.register_peaks([1600.0]) == [800.0]


def test_long_gap_restarts_chain():
    agg = HeartRateAggregator()
    agg.register_peaks([0.0, 800.0])
    assert agg.register_peaks([5000.0]) == []
    assert agg.last_peak_time == 5000.0
    assert agg.register_peaks([5800.0]) == [800.0]


def test_update_smooths_estimates():
    agg = HeartRateAggregator(ProcessorConfig(bpm_smoothing=0.5))
    agg.register_peaks([0.0, 1000.0, 2000.0])
    assert agg.update().bpm == 60
    agg.reset_detection()
    agg.register_peaks([0.0, 500.0, 1000.0])
    assert agg.update().bpm == 120

    agg = HeartRateAggregator(ProcessorConfig(bpm_smoothing=0.5))
    agg.register_peaks([0.0, 1000.0, 2000.0])
    agg.update()
    agg.register_peaks([2600.0, 3200.0, 3800.0, 4400.0])
    smoothed = agg.update().bpm
    assert 60 < smoothed < compute_bpm(agg.rr_intervals).bpm


def test_update_without_new_peaks_keeps_value():
    agg = HeartRateAggregator()
    agg.register_peaks([0.0, 800.0, 1600.0])
    first = agg.update()
    assert agg.update() == first


def test_rr_buffer_is_bounded():
    agg = HeartRateAggregator(ProcessorConfig(rr_buffer_size=5))
    agg.register_peaks([i * 800.0 for i in range(20)])
    assert len(agg.rr_intervals) == 5
    assert agg.beat_count == 19


def test_final_bpm_needs_enough_estimates():
    agg = HeartRateAggregator(ProcessorConfig(final_bpm_min_estimates=5))
    agg.register_peaks([0.0])
    for k in range(1, 5):
        agg.register_peaks([k * 800.0])
        agg.update()
    assert agg.final_bpm() == 0
    for k in range(5, 12):
        agg.register_peaks([k * 800.0])
        agg.update()
    assert agg.final_bpm() == 75


def test_reset_detection_keeps_session_estimates():
    agg = HeartRateAggregator(ProcessorConfig(final_bpm_min_estimates=2))
    for k in range(6):
        agg.register_peaks([k * 800.0])
        agg.update()
    agg.reset_detection()
    assert agg.current.bpm == 0
    assert not agg.rr_intervals
    assert agg.final_bpm() == 75
    agg.reset()
    assert agg.final_bpm() == 0


# ── HRV ─────────────────────────────────────────────────────────────────────

def test_hrv_needs_minimum_intervals():
    hrv = compute_hrv([800.0, 810.0], min_intervals=5)
    assert not hrv["valid"]
    assert hrv["rmssd_ms"] is None
    assert hrv["num_beats"] == 2


def test_hrv_metrics():
    hrv = compute_hrv([800.0, 860.0, 800.0, 860.0, 800.0])
    assert hrv["valid"]
    assert hrv["rmssd_ms"] == pytest.approx(60.0)
    assert hrv["pnn50"] == pytest.approx(100.0)
    assert hrv["mean_rr_ms"] == pytest.approx(824.0)


def test_rmssd_of_constant_rhythm_is_zero():
    assert rmssd([800.0] * 8) == 0.0
    assert rmssd([800.0]) == 0.0
