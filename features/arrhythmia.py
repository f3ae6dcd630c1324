"""
features/arrhythmia.py — Beat-to-beat rhythm irregularity heuristic
====================================================================

⚠️  This is a WELLNESS heuristic, not a diagnostic classifier.  It flags
    runs of irregular beats; it cannot tell atrial fibrillation from
    ectopic beats or from a finger that moved.

State machine
-------------
    LEARNING   — first `arrhythmia_learning_ms` of the session.  Status is
                 always "CALIBRATING..." whatever the input.
    MONITORING — every new RR interval is classified:

        premature   current < 0.7 × mean(preceding)
        delayed     current > 1.3 × mean(preceding)
        irregular   RMSSD of the recent window above both the absolute
                    threshold and half the mean preceding interval

An abnormal beat increments a consecutive counter; a normal beat resets
it.  An *event* is registered only when the counter reaches
`arrhythmia_confirm_beats`, the cooldown since the previous event has
elapsed, and the per-session cap has not been reached.  Frames with poor
signal or too few intervals decay the counter one step every
`arrhythmia_decay_frames` instead of zeroing it, so a short dropout does
not erase a run that is about to be confirmed.

All times are sample timestamps (ms), never the wall clock, so a recorded
session replays identically.
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np

from config import ProcessorConfig
from features.hrv import rmssd
from utils.logger import get_logger

logger = get_logger("features.arrhythmia")

STATUS_CALIBRATING = "CALIBRATING..."
STATUS_NORMAL = "NO ARRHYTHMIAS"
STATUS_DETECTED = "ARRHYTHMIA DETECTED"


class ArrhythmiaPhase(str, Enum):
    LEARNING = "LEARNING"
    MONITORING = "MONITORING"


@dataclass(frozen=True)
class ArrhythmiaEvent:
    timestamp: float          # ms, sample time of the confirming beat
    count: int                # Session counter after this event
    interval_ms: float        # RR interval that confirmed the event
    rmssd: float
    rr_variation: float       # RMSSD / mean RR
    window_start: float       # Display window around the event (ms)
    window_end: float


@dataclass(frozen=True)
class ArrhythmiaResult:
    status: str
    counter: int
    phase: ArrhythmiaPhase
    is_arrhythmia: bool = False
    event: ArrhythmiaEvent | None = None


class ArrhythmiaDetector:
    """Consecutive-beat confirmation with cooldown and session cap."""

    def __init__(self, config: ProcessorConfig | None = None):
        self._cfg = config or ProcessorConfig()
        self.reset()

    def reset(self) -> None:
        self.phase = ArrhythmiaPhase.LEARNING
        self.counter = 0
        self.last_event_time: float | None = None
        self.consecutive_abnormal_beats = 0
        self.events: list[ArrhythmiaEvent] = []
        self._session_start: float | None = None
        self._decay_ticks = 0

    @property
    def status(self) -> str:
        if self.phase is ArrhythmiaPhase.LEARNING:
            return STATUS_CALIBRATING
        label = STATUS_DETECTED if self.counter > 0 else STATUS_NORMAL
        return f"{label}|{self.counter}"

    def update(
        self,
        timestamp: float,
        rr_intervals,
        new_beats: int = 0,
        signal_ok: bool = True,
    ) -> ArrhythmiaResult:
        """
        Advance the heuristic by one frame.

        Parameters
        ----------
        timestamp    : float   Sample time (ms).
        rr_intervals : seq     Current RR ring buffer, oldest first.
        new_beats    : int     How many intervals at the end are new this frame.
        signal_ok    : bool    False while the finger is absent or failing the gate.
        """
        if self._session_start is None:
            self._session_start = timestamp

        if (
            self.phase is ArrhythmiaPhase.LEARNING
            and timestamp - self._session_start >= self._cfg.arrhythmia_learning_ms
        ):
            self.phase = ArrhythmiaPhase.MONITORING
            logger.info("Learning phase complete — monitoring rhythm.")

        if self.phase is ArrhythmiaPhase.LEARNING:
            return self._result()

        history = [float(x) for x in rr_intervals]
        if not signal_ok or len(history) < self._cfg.arrhythmia_min_intervals:
            self._decay()
            return self._result()

        self._decay_ticks = 0
        event = None
        new_beats = min(new_beats, len(history))
        for k in range(new_beats, 0, -1):
            upto = len(history) - k + 1
            event = self._evaluate_beat(history[:upto], timestamp) or event

        return self._result(event)

    # ── Internals ────────────────────────────────────────────────────────────

    def _evaluate_beat(self, history: list[float], timestamp: float) -> ArrhythmiaEvent | None:
        cfg = self._cfg
        current = history[-1]
        preceding = history[-1 - cfg.arrhythmia_window:-1]
        if len(preceding) < cfg.arrhythmia_min_intervals - 1:
            return None

        mean_rr = float(np.mean(preceding))
        window_rmssd = rmssd(preceding + [current])
        ratio = current / mean_rr

        irregular = (
            window_rmssd > cfg.rmssd_threshold_ms
            and window_rmssd / mean_rr > cfg.rmssd_relative_threshold
        )
        abnormal = (
            ratio < cfg.premature_beat_ratio
            or ratio > cfg.delayed_beat_ratio
            or irregular
        )
        if not abnormal:
            self.consecutive_abnormal_beats = 0
            return None

        self.consecutive_abnormal_beats = min(
            self.consecutive_abnormal_beats + 1, cfg.arrhythmia_confirm_beats
        )
        logger.debug(
            "Abnormal beat: %.0f ms (ratio %.2f, RMSSD %.1f) — run of %d",
            current, ratio, window_rmssd, self.consecutive_abnormal_beats,
        )
        if self.consecutive_abnormal_beats < cfg.arrhythmia_confirm_beats:
            return None

        cooled_down = (
            self.last_event_time is None
            or timestamp - self.last_event_time >= cfg.arrhythmia_cooldown_ms
        )
        if not cooled_down or self.counter >= cfg.max_arrhythmias_per_session:
            return None

        return self._confirm(timestamp, current, window_rmssd, window_rmssd / mean_rr)

    def _confirm(self, timestamp: float, interval: float, rmssd_ms: float, variation: float) -> ArrhythmiaEvent:
        self.counter += 1
        self.last_event_time = timestamp
        self.consecutive_abnormal_beats = 0
        span = self._cfg.arrhythmia_event_window_ms
        event = ArrhythmiaEvent(
            timestamp=timestamp,
            count=self.counter,
            interval_ms=interval,
            rmssd=round(rmssd_ms, 2),
            rr_variation=round(variation, 4),
            window_start=timestamp - span,
            window_end=timestamp + span,
        )
        self.events.append(event)
        logger.info(
            "Arrhythmia event #%d at %.0f ms (RR=%.0f ms, RMSSD=%.1f ms)",
            self.counter, timestamp, interval, rmssd_ms,
        )
        return event

    def _decay(self) -> None:
        self._decay_ticks += 1
        if self._decay_ticks >= self._cfg.arrhythmia_decay_frames:
            self._decay_ticks = 0
            self.consecutive_abnormal_beats = max(0, self.consecutive_abnormal_beats - 1)

    def _result(self, event: ArrhythmiaEvent | None = None) -> ArrhythmiaResult:
        return ArrhythmiaResult(
            status=self.status,
            counter=self.counter,
            phase=self.phase,
            is_arrhythmia=event is not None,
            event=event,
        )
