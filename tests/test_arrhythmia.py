from config import ProcessorConfig
from features.arrhythmia import (
    STATUS_CALIBRATING,
    ArrhythmiaDetector,
    ArrhythmiaPhase,
)


def _run(detector, intervals, t0=0.0):
    """Feed one beat per call, the way the processor does."""
    t = t0
    history: list[float] = []
    results = []
    for rr in intervals:
        t += rr
        history.append(rr)
        results.append(detector.update(t, history[-20:], new_beats=1))
    return results, t, history


def test_status_is_calibrating_during_learning():
    detector = ArrhythmiaDetector()
    result = detector.update(0.0, [800.0] * 10, new_beats=1)
    assert result.status == STATUS_CALIBRATING
    assert result.phase is ArrhythmiaPhase.LEARNING
    assert detector.update(4999.0, [400.0] * 10, new_beats=1).status == STATUS_CALIBRATING
    assert detector.update(5000.0, [800.0] * 10).phase is ArrhythmiaPhase.MONITORING


def test_mild_variability_never_triggers():
    deviations = [0, 80, -60, 120, -100, 40, -140, 90]
    intervals = [800.0 + deviations[i % 8] for i in range(60)]
    detector = ArrhythmiaDetector()
    results, _, _ = _run(detector, intervals)
    assert detector.counter == 0
    assert not any(r.is_arrhythmia for r in results)
    assert results[-1].status == "NO ARRHYTHMIAS|0"


def test_premature_run_counts_exactly_once():
    detector = ArrhythmiaDetector()
    results, _, _ = _run(detector, [800.0] * 10 + [400.0] * 3 + [800.0] * 10)
    assert detector.counter == 1
    assert sum(r.is_arrhythmia for r in results) == 1
    assert results[12].is_arrhythmia
    assert results[-1].status == "ARRHYTHMIA DETECTED|1"


def test_event_details():
    detector = ArrhythmiaDetector()
    results, _, _ = _run(detector, [800.0] * 10 + [400.0] * 3)
    event = results[-1].event
    assert event is not None
    assert event.count == 1
    assert event.interval_ms == 400.0
    assert event.window_end - event.window_start == 2000.0
    assert detector.events == [event]


def test_two_abnormal_beats_are_not_enough():
    detector = ArrhythmiaDetector()
    _run(detector, [800.0] * 10 + [400.0] * 2 + [800.0] * 10)
    assert detector.counter == 0
    assert detector.consecutive_abnormal_beats == 0


def test_cooldown_blocks_back_to_back_events():
    cfg = ProcessorConfig(arrhythmia_confirm_beats=1, arrhythmia_learning_ms=0.0)
    detector = ArrhythmiaDetector(cfg)
    _run(detector, [800.0] * 10 + [400.0, 800.0, 400.0])
    assert detector.counter == 1


def test_session_cap():
    cfg = ProcessorConfig(
        arrhythmia_confirm_beats=1,
        arrhythmia_cooldown_ms=0.0,
        arrhythmia_learning_ms=0.0,
        max_arrhythmias_per_session=2,
    )
    detector = ArrhythmiaDetector(cfg)
    _run(detector, [800.0] * 10 + [400.0, 800.0] * 6)
    assert detector.counter == 2
    assert len(detector.events) == 2


def test_poor_signal_decays_run_gradually():
    cfg = ProcessorConfig(arrhythmia_decay_frames=15)
    detector = ArrhythmiaDetector(cfg)
    _, t, history = _run(detector, [800.0] * 10 + [400.0] * 2)
    assert detector.consecutive_abnormal_beats == 2

    for _ in range(15):
        detector.update(t, history, signal_ok=False)
    assert detector.consecutive_abnormal_beats == 1
    for _ in range(15):
        detector.update(t, history, signal_ok=False)
    assert detector.consecutive_abnormal_beats == 0


def test_too_few_intervals_do_not_classify():
    detector = ArrhythmiaDetector(ProcessorConfig(arrhythmia_learning_ms=0.0))
    result = detector.update(1000.0, [800.0, 400.0], new_beats=1)
    assert not result.is_arrhythmia
    assert detector.consecutive_abnormal_beats == 0


def test_reset_returns_to_learning():
    detector = ArrhythmiaDetector()
    _run(detector, [800.0] * 10 + [400.0] * 3)
    detector.reset()
    assert detector.counter == 0
    assert detector.events == []
    assert detector.phase is ArrhythmiaPhase.LEARNING


def test_alternating_rhythm_within_25_percent_never_triggers():
    # 610 / 990 ms: ±23.75 % around 800 ms, successive differences of 380 ms
    detector = ArrhythmiaDetector()
    results, _, _ = _run(detector, [610.0, 990.0] * 30)
    assert detector.counter == 0
    assert not any(r.is_arrhythmia for r in results)
    assert results[-1].status == "NO ARRHYTHMIAS|0"


def test_wide_alternation_is_reported():
    detector = ArrhythmiaDetector()
    _run(detector, [800.0] * 10 + [500.0, 1100.0] * 3)
    assert detector.counter == 1
