"""
ppg/pipeline.py — Per-frame PPG session processor
==================================================
Orchestrates the full chain for one measurement session:

    intensity  →  SignalFilter  →  BaselineTracker
               →  quality score  →  FingerPresenceGate
               →  PeakDetector   →  HeartRateAggregator
               →  ArrhythmiaDetector  →  VitalSignsResult

One camera frame is pushed through the whole chain before the next one
arrives.  While the gate reports no finger, every vital-sign field carries
its "no data" sentinel (0, "--", None) instead of a stale value.

Thread safety
-------------
The frame call and `reset()` / `full_reset()` share `_lock`, so a reset
never lands in the middle of a frame.  `get_status()` does not lock: it
returns the immutable snapshot published at the end of the last frame,
which a UI thread may read at any time.

Lifecycle
---------
    1. `start()`                    — accept frames.
    2. `process_sample(...)`        — once per frame.
    3. `stop()`                     — stop accepting frames, compute the
                                      final BPM, keep the last valid result.
    4. `reset()` / `full_reset()`   — prepare for the next measurement.
"""

import math
import threading
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Callable, Mapping

import numpy as np

from config import ProcessorConfig
from features.arrhythmia import ArrhythmiaDetector
from features.hr import HeartRateAggregator
from features.hrv import compute_hrv
from ppg.baseline import BaselineTracker
from ppg.filters import SignalFilter
from ppg.finger import FingerPresenceGate
from ppg.peaks import PeakDetector
from ppg.quality import SignalQualityEstimator
from ppg.schemas import (
    NO_DATA,
    ArrhythmiaEventData,
    HRVData,
    SessionStatus,
    VitalSignsResult,
)
from utils.logger import get_logger

logger = get_logger("ppg.pipeline")

# name → fn(filtered_history, rr_intervals_ms) → value
Estimator = Callable[[np.ndarray, list[float]], Any]


@dataclass(frozen=True)
class FilteredSample:
    raw: float
    filtered: float
    ac: float
    timestamp: float      # ms


class PPGProcessor:
    """
    Stateful processor owning every buffer and counter of one session.

    Parameters
    ----------
    config     : ProcessorConfig | None   Thresholds; defaults from config.py.
    estimators : Mapping[str, Estimator]  Optional external formula modules
                                          (SpO2, blood pressure, …) merged
                                          into `VitalSignsResult.estimates`.
    """

    def __init__(
        self,
        config: ProcessorConfig | None = None,
        estimators: Mapping[str, Estimator] | None = None,
    ):
        self.config = config or ProcessorConfig()
        self._estimators = dict(estimators or {})
        self._lock = threading.Lock()
        cfg = self.config

        self._filter = SignalFilter(cfg.moving_average_window, cfg.median_window)
        self._baseline = BaselineTracker(
            alpha=cfg.baseline_alpha,
            alpha_min=cfg.baseline_alpha_min,
            alpha_max=cfg.baseline_alpha_max,
            variance_window=cfg.baseline_variance_window,
            cv_reference=cfg.baseline_cv_reference,
            max_multiplier=cfg.baseline_max_multiplier,
        )
        self._detector = PeakDetector(
            sample_rate_hz=cfg.sample_rate_hz,
            half_window=cfg.peak_half_window,
            prominence_k=cfg.peak_prominence_k,
            min_peak_distance_ms=cfg.min_peak_distance_ms,
            rr_min_ms=cfg.rr_min_ms,
            rr_max_ms=cfg.rr_max_ms,
        )
        self._quality = SignalQualityEstimator(cfg)
        self._gate = FingerPresenceGate(cfg)
        self._heart_rate = HeartRateAggregator(cfg)
        self._arrhythmia = ArrhythmiaDetector(cfg)

        self._samples: deque[FilteredSample] = deque(maxlen=cfg.history_size)
        self._running = False
        self._stopped = False
        self._frames = 0
        self._error_count = 0
        self._present_since: float | None = None
        self._final_bpm = 0
        self._last_result: VitalSignsResult | None = None
        self._last_valid: VitalSignsResult | None = None
        self._status = SessionStatus()

        logger.info(
            "PPGProcessor created — fs=%.1f Hz, finger frames=%d/%d, estimators=%s",
            cfg.sample_rate_hz,
            cfg.required_finger_frames,
            cfg.release_finger_frames,
            list(self._estimators) or "none",
        )

    # ── Control ──────────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_valid_result(self) -> VitalSignsResult | None:
        return self._last_valid

    @property
    def final_bpm(self) -> int:
        return self._final_bpm

    def start(self) -> None:
        """Begin (or resume) accepting frames."""
        with self._lock:
            if self._running:
                logger.warning("Processor already running — ignoring duplicate start().")
                return
            self._running = True
            self._stopped = False
            self._publish_status()
        logger.info("Processing started.")

    def stop(self) -> None:
        """Halt processing; the last valid result and final BPM stay available."""
        with self._lock:
            self._running = False
            self._stopped = True
            self._final_bpm = self._heart_rate.final_bpm()
            self._publish_status()
        logger.info("Processing stopped — final BPM %d.", self._final_bpm)

    def reset(self) -> None:
        """Clear all buffers and counters; keep config and last valid result."""
        with self._lock:
            self._clear_state()
            self._publish_status()
        logger.info("Session reset.")

    def full_reset(self) -> None:
        """`reset()` plus discarding the retained last valid result."""
        with self._lock:
            self._clear_state()
            self._last_valid = None
            self._publish_status()
        logger.info("Session fully reset.")

    def get_status(self) -> SessionStatus:
        return self._status

    # ── Frame processing ────────────────────────────────────────────────────

    def process_sample(
        self,
        timestamp: float,
        intensity: float,
        green: float | None = None,
    ) -> VitalSignsResult:
        """
        Push one frame through the pipeline.

        Parameters
        ----------
        timestamp : float          Frame time in ms (monotonic).
        intensity : float          Mean red intensity of the fingertip ROI.
        green     : float | None   Mean green intensity, enables the
                                   red/green plausibility check.
        """
        with self._lock:
            if not self._running:
                return self._last_result or VitalSignsResult(timestamp=timestamp)

            try:
                result = self._process(float(timestamp), intensity, green)
            except Exception as exc:
                # The frame is lost, the session is not.
                self._error_count += 1
                logger.exception("Processing error at t=%.0f ms:", timestamp)
                previous = self._last_valid or VitalSignsResult(timestamp=timestamp)
                result = previous.model_copy(
                    update={"timestamp": float(timestamp), "error": f"{type(exc).__name__}: {exc}"}
                )

            self._last_result = result
            self._publish_status()
            return result

    def _process(self, timestamp: float, intensity: float, green: float | None) -> VitalSignsResult:
        cfg = self.config
        if intensity is None or not math.isfinite(intensity) or intensity < 0:
            logger.debug("Discarding invalid intensity %r at t=%.0f ms.", intensity, timestamp)
            return self._last_result or VitalSignsResult(timestamp=timestamp)
        if self._samples and timestamp <= self._samples[-1].timestamp:
            logger.debug("Discarding out-of-order sample at t=%.0f ms.", timestamp)
            return self._last_result or VitalSignsResult(timestamp=timestamp)

        filtered = self._filter.filter(intensity)
        ac = self._baseline.update(filtered)
        self._samples.append(FilteredSample(float(intensity), filtered, ac, timestamp))
        self._frames += 1

        history = np.fromiter((s.filtered for s in self._samples), dtype=np.float64)
        quality = self._quality.score(history)
        breakdown = self._quality.last_breakdown

        ratio = None
        if green is not None and math.isfinite(green) and green > 0:
            ratio = intensity / green

        was_present = self._gate.finger_detected
        gate = self._gate.update(quality, color_ratio=ratio, intensity=intensity)

        if gate.finger_detected and not was_present:
            self._present_since = timestamp
        elif was_present and not gate.finger_detected:
            self._present_since = None
            self._heart_rate.reset_detection()

        if not gate.finger_detected:
            arrhythmia = self._arrhythmia.update(timestamp, [], 0, signal_ok=False)
            return VitalSignsResult(
                timestamp=timestamp,
                filtered_value=filtered,
                ac_value=ac,
                quality=gate.display_quality,
                quality_level=gate.level,
                message=gate.message,
                finger_detected=False,
                arrhythmia_status=NO_DATA,
                arrhythmia_counter=arrhythmia.counter,
                estimates={name: NO_DATA for name in self._estimators},
            )

        # ── Beats ─────────────────────────────────────────────────────────
        window = [s for s in list(self._samples)[-cfg.peak_window_size:]
                  if s.timestamp >= self._present_since]
        detection = self._detector.detect(
            [s.ac for s in window],
            [s.timestamp for s in window],
        )
        new_intervals = self._heart_rate.register_peaks(p.timestamp for p in detection.peaks)
        estimate = self._heart_rate.update()
        rr = list(self._heart_rate.rr_intervals)

        # Frames the gate already counts towards release are poor signal
        signal_ok = gate.consecutive_bad_frames == 0
        arrhythmia = self._arrhythmia.update(timestamp, rr, len(new_intervals), signal_ok=signal_ok)
        last_event = self._arrhythmia.events[-1] if self._arrhythmia.events else None

        hrv = compute_hrv(rr, cfg.hrv_min_intervals)

        result = VitalSignsResult(
            timestamp=timestamp,
            filtered_value=filtered,
            ac_value=ac,
            quality=gate.display_quality,
            quality_level=gate.level,
            message=gate.message,
            finger_detected=True,
            perfusion_index=round(breakdown.perfusion_index, 3),
            bpm=estimate.bpm,
            confidence=estimate.confidence,
            is_peak=bool(new_intervals),
            rr_intervals=rr,
            hrv=HRVData(**hrv),
            arrhythmia_status=arrhythmia.status,
            arrhythmia_counter=arrhythmia.counter,
            is_arrhythmia=arrhythmia.is_arrhythmia,
            last_arrhythmia=(
                ArrhythmiaEventData(**asdict(last_event)) if last_event is not None else None
            ),
            estimates=self._run_estimators(history, rr),
        )
        self._last_valid = result
        return result

    # ── Internals ────────────────────────────────────────────────────────────

    def _run_estimators(self, history: np.ndarray, rr: list[float]) -> dict[str, Any]:
        estimates: dict[str, Any] = {}
        for name, fn in self._estimators.items():
            try:
                estimates[name] = fn(history, rr)
            except Exception as exc:
                logger.warning("Estimator '%s' failed: %s", name, exc)
                estimates[name] = None
        return estimates

    def _clear_state(self) -> None:
        self._filter.reset()
        self._baseline.reset()
        self._quality.reset()
        self._gate.reset()
        self._heart_rate.reset()
        self._arrhythmia.reset()
        self._samples.clear()
        self._frames = 0
        self._error_count = 0
        self._present_since = None
        self._final_bpm = 0
        self._last_result = None

    def _publish_status(self) -> None:
        if self._running:
            status = "running"
        elif self._stopped:
            status = "stopped"
        else:
            status = "idle"
        self._status = SessionStatus(
            status=status,
            frames_processed=self._frames,
            buffered_samples=len(self._samples),
            finger_state=self._gate.state.value,
            consecutive_good_frames=self._gate.consecutive_good_frames,
            consecutive_bad_frames=self._gate.consecutive_bad_frames,
            bpm=self._heart_rate.current.bpm,
            final_bpm=self._final_bpm,
            rr_intervals=list(self._heart_rate.rr_intervals),
            arrhythmia_counter=self._arrhythmia.counter,
            consecutive_abnormal_beats=self._arrhythmia.consecutive_abnormal_beats,
            error_count=self._error_count,
            has_last_valid_result=self._last_valid is not None,
        )
