import math
import threading

import numpy as np
import pytest

from config import ProcessorConfig
from conftest import feed
from ppg.pipeline import PPGProcessor
from ppg.schemas import NO_DATA
from ppg.synthetic import synthetic_ppg


def test_regular_rhythm_is_measured(processor, recording_90bpm):
    results = feed(processor, recording_90bpm)
    last = results[-1]

    assert last.finger_detected
    assert 85 <= last.bpm <= 95
    assert last.confidence > 80.0
    assert last.rr_intervals
    for rr in last.rr_intervals:
        assert rr == pytest.approx(60000.0 / 90.0, rel=0.1)
    assert any(r.is_peak for r in results)
    assert last.hrv.valid
    assert last.perfusion_index > 0.0
    assert last.quality_level in ("EXCELLENT", "GOOD")
    assert last.error is None


def test_finger_acquired_within_a_few_seconds(processor, recording_90bpm):
    results = feed(processor, recording_90bpm)
    first = next(i for i, r in enumerate(results) if r.finger_detected)
    assert first < 3 * 30


def test_no_finger_reports_sentinels():
    processor = PPGProcessor(estimators={"spo2": lambda history, rr: 97.0})
    processor.start()
    for i in range(120):
        result = processor.process_sample(i * 33.3, 150.0, 100.0)

    assert not result.finger_detected
    assert result.bpm == 0
    assert result.confidence == 0.0
    assert result.rr_intervals == []
    assert result.arrhythmia_status == NO_DATA
    assert result.estimates == {"spo2": NO_DATA}
    assert result.quality_level == "NO SIGNAL"
    assert processor.last_valid_result is None


def test_implausible_colour_never_detected(processor):
    recording = synthetic_ppg(bpm=90, duration_s=10, green_ratio=1.0)
    results = feed(processor, recording)
    assert not any(r.finger_detected for r in results)


def test_lifting_finger_clears_heart_rate(processor, recording_90bpm):
    feed(processor, recording_90bpm, stop=450)
    assert processor.get_status().bpm > 0

    t = recording_90bpm.timestamps[449]
    for k in range(1, 60):
        result = processor.process_sample(t + k * 33.3, 20.0, 20.0)

    assert not result.finger_detected
    assert result.bpm == 0
    status = processor.get_status()
    assert status.finger_state == "ABSENT"
    assert status.rr_intervals == []
    assert processor.last_valid_result.finger_detected


def test_estimators_receive_history_and_failures_are_isolated(recording_90bpm):
    def spo2(history, rr):
        assert isinstance(history, np.ndarray)
        return 98.0

    def broken(history, rr):
        raise ZeroDivisionError("no AC component")

    processor = PPGProcessor(estimators={"spo2": spo2, "bp": broken})
    processor.start()
    last = feed(processor, recording_90bpm)[-1]
    assert last.estimates == {"spo2": 98.0, "bp": None}
    assert last.error is None


# ── Rhythm ──────────────────────────────────────────────────────────────────

def test_regular_rhythm_has_no_arrhythmia(processor, recording_90bpm):
    last = feed(processor, recording_90bpm)[-1]
    assert last.arrhythmia_status == "NO ARRHYTHMIAS|0"
    assert last.last_arrhythmia is None


def test_premature_run_is_reported_once(processor):
    # 75 BPM; beats 22-24 arrive at 0.55 x the nominal 800 ms (t ≈ 16.8-18.1 s)
    recording = synthetic_ppg(bpm=75, duration_s=30, ectopic_every=24, ectopic_run=3)
    results = feed(processor, recording)

    flagged = [r for r in results if r.is_arrhythmia]
    assert len(flagged) == 1
    event = flagged[0].last_arrhythmia
    assert event.count == 1
    assert 17000.0 <= event.timestamp <= 19500.0
    assert event.interval_ms < 0.7 * 800.0

    last = results[-1]
    assert last.arrhythmia_status == "ARRHYTHMIA DETECTED|1"
    assert last.arrhythmia_counter == 1
    assert last.last_arrhythmia == event


def test_frames_failing_the_gate_decay_abnormal_run(recording_90bpm, monkeypatch):
    processor = PPGProcessor(ProcessorConfig(arrhythmia_decay_frames=2))
    processor.start()
    feed(processor, recording_90bpm, stop=300)

    detector = processor._arrhythmia
    seen = []
    real_update = detector.update

    def recording_update(timestamp, rr_intervals, new_beats=0, signal_ok=True):
        seen.append(signal_ok)
        return real_update(timestamp, rr_intervals, new_beats, signal_ok=signal_ok)

    monkeypatch.setattr(detector, "update", recording_update)
    detector.consecutive_abnormal_beats = 2

    # red == green: the colour check fails while the finger is still held
    for i in range(300, 305):
        t, red = float(recording_90bpm.timestamps[i]), float(recording_90bpm.red[i])
        assert processor.process_sample(t, red, red).finger_detected

    assert seen == [False] * 5
    assert detector.consecutive_abnormal_beats == 0

    feed(processor, recording_90bpm, start=305, stop=306)
    assert seen[-1] is True


# ── Lifecycle ───────────────────────────────────────────────────────────────

def test_frames_ignored_before_start():
    processor = PPGProcessor()
    result = processor.process_sample(0.0, 150.0, 100.0)
    assert result.bpm == 0
    assert not result.finger_detected
    status = processor.get_status()
    assert status.status == "idle"
    assert status.frames_processed == 0


def test_stop_computes_final_bpm(processor, recording_90bpm):
    results = feed(processor, recording_90bpm)
    processor.stop()

    assert 85 <= processor.final_bpm <= 95
    status = processor.get_status()
    assert status.status == "stopped"
    assert status.final_bpm == processor.final_bpm

    frames = status.frames_processed
    after = processor.process_sample(1e6, 150.0, 100.0)
    assert after is results[-1]
    assert processor.get_status().frames_processed == frames


def test_duplicate_start_keeps_state(processor, recording_90bpm):
    feed(processor, recording_90bpm, stop=100)
    processor.start()
    assert processor.get_status().frames_processed == 100


def test_reset_is_idempotent(processor, recording_90bpm):
    feed(processor, recording_90bpm)
    processor.reset()
    first = processor.get_status().model_dump()
    processor.reset()
    assert processor.get_status().model_dump() == first

    assert first["frames_processed"] == 0
    assert first["rr_intervals"] == []
    assert first["finger_state"] == "ABSENT"
    assert first["arrhythmia_counter"] == 0
    assert first["has_last_valid_result"]


def test_full_reset_drops_last_valid_result(processor, recording_90bpm):
    feed(processor, recording_90bpm)
    processor.reset()
    assert processor.last_valid_result is not None
    processor.full_reset()
    assert processor.last_valid_result is None
    assert not processor.get_status().has_last_valid_result


def test_sessions_replay_identically(processor, recording_90bpm):
    first = feed(processor, recording_90bpm)[-1]
    processor.reset()
    second = feed(processor, recording_90bpm)[-1]
    assert second.bpm == first.bpm
    assert second.rr_intervals == first.rr_intervals


# ── Error handling ──────────────────────────────────────────────────────────

def test_invalid_samples_are_discarded(processor, recording_90bpm):
    feed(processor, recording_90bpm, stop=100)
    frames = processor.get_status().frames_processed
    t = recording_90bpm.timestamps[99]

    processor.process_sample(t + 33.3, math.nan, 100.0)
    processor.process_sample(t + 66.6, -5.0, 100.0)
    processor.process_sample(t - 500.0, 150.0, 100.0)
    assert processor.get_status().frames_processed == frames


def test_processing_error_returns_last_valid_result(processor, recording_90bpm, monkeypatch):
    feed(processor, recording_90bpm, stop=400)
    previous = processor.last_valid_result
    assert previous is not None

    def explode(buffer):
        raise RuntimeError("sensor glitch")

    monkeypatch.setattr(processor._quality, "score", explode)
    t = float(recording_90bpm.timestamps[400])
    result = processor.process_sample(t, float(recording_90bpm.red[400]), float(recording_90bpm.green[400]))

    assert "sensor glitch" in result.error
    assert result.timestamp == t
    assert result.bpm == previous.bpm
    assert processor.get_status().error_count == 1

    monkeypatch.undo()
    result = feed(processor, recording_90bpm, start=401, stop=402)[0]
    assert result.error is None


def test_reset_from_another_thread_is_safe():
    recording = synthetic_ppg(bpm=75, duration_s=10)
    processor = PPGProcessor(ProcessorConfig())
    processor.start()
    done = threading.Event()

    def resetter():
        while not done.is_set():
            processor.reset()
            processor.get_status()

    thread = threading.Thread(target=resetter)
    thread.start()
    results = []
    try:
        for t, r, g in zip(recording.timestamps, recording.red, recording.green):
            results.append(processor.process_sample(float(t), float(r), float(g)))
    finally:
        done.set()
        thread.join()

    assert all(r.error is None for r in results)
