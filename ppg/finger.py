"""
ppg/finger.py — Finger-presence gate
=====================================
A PPG trace is only meaningful while a fingertip actually covers the
camera and flash.  This gate turns the noisy per-frame evidence (quality
score, red/green ratio, raw red level) into a stable ABSENT / PRESENT state.

Hysteresis
----------
* ABSENT → PRESENT after `required_finger_frames` consecutive qualifying
  frames.
* PRESENT → ABSENT after `release_finger_frames` consecutive failing
  frames.  Release is slower than acquisition so a brief dip (the finger
  shifting slightly) does not drop the measurement.
* PRESENT → ABSENT immediately when quality collapses below the
  `signal_lost_floor` (finger lifted).
* Any frame below `quality_reset_floor` wipes the rolling quality history
  used for the displayed value, without by itself changing the state.

Colour plausibility
-------------------
Under the flash, light transmitted through tissue is strongly red.  When a
green channel value is available, red/green must reach
`min_red_green_ratio` (≈1.15–1.35 depending on profile), which rejects a
red object or a bright table surface with a fake "pulse".
"""

from collections import deque
from dataclasses import dataclass
from enum import Enum

import numpy as np

from config import ProcessorConfig
from utils.logger import get_logger

logger = get_logger("ppg.finger")


class FingerState(str, Enum):
    ABSENT = "ABSENT"
    PRESENT = "PRESENT"


@dataclass(frozen=True)
class GateStatus:
    """Per-frame gate output."""
    finger_detected: bool
    state: FingerState
    display_quality: float
    level: str
    message: str
    consecutive_good_frames: int
    consecutive_bad_frames: int


# (lower bound, level, help message), checked top to bottom
_QUALITY_LEVELS = (
    (80.0, "EXCELLENT", "Excellent signal. Hold still."),
    (60.0, "GOOD", "Good signal. Keep your finger steady."),
    (40.0, "FAIR", "Fair signal. Press gently and avoid moving."),
    (0.0, "POOR", "Weak signal. Cover the camera and flash completely."),
)
_NO_FINGER = ("NO SIGNAL", "Place your fingertip over the camera and flash.")


def quality_level(quality: float, finger_detected: bool) -> tuple[str, str]:
    """Map a quality value to a (level, help message) pair."""
    if not finger_detected:
        return _NO_FINGER
    for lower, level, message in _QUALITY_LEVELS:
        if quality >= lower:
            return level, message
    return _QUALITY_LEVELS[-1][1:]


class FingerPresenceGate:
    """Asymmetric-hysteresis ABSENT / PRESENT state machine."""

    def __init__(self, config: ProcessorConfig | None = None):
        self._cfg = config or ProcessorConfig()
        self._history: deque[float] = deque(maxlen=self._cfg.gate_history_size)
        self.state = FingerState.ABSENT
        self.consecutive_good_frames = 0
        self.consecutive_bad_frames = 0

    @property
    def finger_detected(self) -> bool:
        return self.state is FingerState.PRESENT

    def qualifies(
        self,
        quality: float,
        color_ratio: float | None = None,
        intensity: float | None = None,
    ) -> bool:
        """True when a single frame is evidence for a finger."""
        cfg = self._cfg
        if quality < cfg.finger_quality_threshold:
            return False
        if color_ratio is not None and color_ratio < cfg.min_red_green_ratio:
            return False
        if intensity is not None and not (cfg.min_red_intensity <= intensity <= cfg.max_red_intensity):
            return False
        return True

    def update(
        self,
        quality: float,
        color_ratio: float | None = None,
        intensity: float | None = None,
    ) -> GateStatus:
        """Feed one frame of evidence and return the resulting gate status."""
        cfg = self._cfg
        good = self.qualifies(quality, color_ratio, intensity)

        if quality < cfg.quality_reset_floor:
            if self._history:
                logger.debug("Quality %.1f below reset floor — clearing history.", quality)
            self._history.clear()
        else:
            self._history.append(quality)

        if self.state is FingerState.ABSENT:
            self.consecutive_bad_frames = 0 if good else self.consecutive_bad_frames + 1
            self.consecutive_good_frames = self.consecutive_good_frames + 1 if good else 0
            if self.consecutive_good_frames >= cfg.required_finger_frames:
                self._transition(FingerState.PRESENT, quality)
        elif quality < cfg.signal_lost_floor:
            self._transition(FingerState.ABSENT, quality)
        elif good:
            self.consecutive_good_frames += 1
            self.consecutive_bad_frames = 0
        else:
            self.consecutive_bad_frames += 1
            if self.consecutive_bad_frames >= cfg.release_finger_frames:
                self._transition(FingerState.ABSENT, quality)

        display = self.display_quality()
        level, message = quality_level(display, self.finger_detected)
        return GateStatus(
            finger_detected=self.finger_detected,
            state=self.state,
            display_quality=display,
            level=level,
            message=message,
            consecutive_good_frames=self.consecutive_good_frames,
            consecutive_bad_frames=self.consecutive_bad_frames,
        )

    def display_quality(self) -> float:
        """Recency-weighted mean of the rolling quality history."""
        if not self._history:
            return 0.0
        values = np.asarray(self._history, dtype=np.float64)
        weights = 1.3 ** np.arange(len(values))
        return float(np.clip(np.dot(values, weights) / weights.sum(), 0.0, 100.0))

    def reset(self) -> None:
        self._history.clear()
        self.state = FingerState.ABSENT
        self.consecutive_good_frames = 0
        self.consecutive_bad_frames = 0

    def _transition(self, new_state: FingerState, quality: float) -> None:
        logger.info("Finger %s → %s (quality=%.1f)", self.state.value, new_state.value, quality)
        self.state = new_state
        self.consecutive_good_frames = 0
        self.consecutive_bad_frames = 0
