"""
config.py — Centralised configuration & hyper-parameters
=========================================================
Every tunable constant in the project lives here so that the rest of the
codebase can import from a single source of truth.

The module-level constants are the *defaults*.  A measurement session never
reads them directly: it receives a `ProcessorConfig` built from them (or
from one of the strictness profiles) at construction time, so two sessions
can run with different thresholds side by side.
"""

from pydantic import BaseModel, Field, model_validator

# ─── Sampling ────────────────────────────────────────────────────────────────
SAMPLE_RATE_HZ: float = 30.0       # Nominal camera frame rate
HISTORY_SIZE: int = 300            # FilteredSample ring buffer (10 s @ 30 Hz)

# ─── Signal Filter ───────────────────────────────────────────────────────────
MEDIAN_WINDOW: int = 3             # Single-sample spike rejection
MOVING_AVERAGE_WINDOW: int = 5     # Smoothing window (profiles use 3–15)

# ─── Baseline Tracker ────────────────────────────────────────────────────────
# α grows with recent variability so the baseline catches up quickly after
# pressure changes, and settles when the signal is steady.
BASELINE_ALPHA: float = 0.02
BASELINE_ALPHA_MIN: float = 0.02
BASELINE_ALPHA_MAX: float = 0.08
BASELINE_VARIANCE_WINDOW: int = 10
BASELINE_CV_REFERENCE: float = 0.05     # CV at which the multiplier reaches 2×
BASELINE_MAX_MULTIPLIER: float = 3.0

# ─── Peak Detection ──────────────────────────────────────────────────────────
PEAK_HALF_WINDOW: int = 3          # ±samples a peak must dominate
PEAK_PROMINENCE_K: float = 0.3     # Prominence ≥ k · (max − min) of window
MIN_PEAK_DISTANCE_MS: float = 300.0
PEAK_WINDOW_SIZE: int = 150        # Samples analysed per frame (5 s @ 30 Hz)

# Physiological RR band.  Anything outside is discarded, never clamped.
RR_MIN_MS: float = 300.0           # 200 BPM
RR_MAX_MS: float = 2000.0          # 30 BPM
RR_BUFFER_SIZE: int = 20

# ─── Signal Quality ──────────────────────────────────────────────────────────
QUALITY_WINDOW: int = 90           # 3 s @ 30 Hz
QUALITY_MIN_SAMPLES: int = 30
QUALITY_SMOOTHING: float = 0.3     # Weight of the newest score in the EMA
QUALITY_WEIGHTS: tuple[float, float, float, float] = (0.35, 0.25, 0.20, 0.20)
#                                   amplitude, stability, periodicity, pulsatility

# Peak-to-peak range (raw intensity units, 0–255 scale)
AMPLITUDE_MIN: float = 0.3         # Below → no pulse / no finger
AMPLITUDE_OPTIMAL: float = 4.0     # Full score from here …
AMPLITUDE_MAX: float = 40.0        # … up to here; above → motion artefact

# Coefficient of variation (std / mean) of the smoothed intensity
CV_STATIC: float = 0.002           # Below → static object, not a pulse
CV_NOISY: float = 0.08             # Above → increasingly noisy
CV_CUTOFF: float = 0.25            # Score reaches 0

# Autocorrelation lag band, expressed as heart rate
PERIODICITY_MIN_BPM: float = 40.0
PERIODICITY_MAX_BPM: float = 180.0

# ─── Finger-Presence Gate ────────────────────────────────────────────────────
FINGER_QUALITY_THRESHOLD: float = 40.0
REQUIRED_FINGER_FRAMES: int = 3
RELEASE_FINGER_FRAMES: int = 8     # Dropping detection is slower than gaining it
SIGNAL_LOST_FLOOR: float = 5.0     # Immediate ABSENT
QUALITY_RESET_FLOOR: float = 15.0  # Clears the rolling quality history
MIN_RED_GREEN_RATIO: float = 1.2   # Human tissue under flash: R ≫ G
MIN_RED_INTENSITY: float = 70.0
MAX_RED_INTENSITY: float = 250.0
GATE_HISTORY_SIZE: int = 20

# ─── Heart Rate ──────────────────────────────────────────────────────────────
BPM_INTERVAL_MIN_MS: float = 300.0
BPM_INTERVAL_MAX_MS: float = 1500.0
BPM_MIN: int = 40
BPM_MAX: int = 200
BPM_SMOOTHING: float = 0.3
BPM_OUTLIER_RATIO: float = 0.4     # Reject intervals > 40 % away from the median
CONFIDENCE_CV_SCALE: float = 2.0
FINAL_BPM_MIN_ESTIMATES: int = 5
FINAL_BPM_TRIM: float = 0.1

# ─── Arrhythmia ──────────────────────────────────────────────────────────────
ARRHYTHMIA_LEARNING_MS: float = 5000.0
ARRHYTHMIA_WINDOW: int = 8
ARRHYTHMIA_MIN_INTERVALS: int = 4
PREMATURE_BEAT_RATIO: float = 0.7
DELAYED_BEAT_RATIO: float = 1.3
RMSSD_THRESHOLD_MS: float = 250.0
# RMSSD / mean RR.  Successive differences of intervals that all stay within
# ±25 % of the mean are at most half the mean, so this never fires on them.
RMSSD_RELATIVE_THRESHOLD: float = 0.5
ARRHYTHMIA_CONFIRM_BEATS: int = 3
ARRHYTHMIA_COOLDOWN_MS: float = 3500.0
MAX_ARRHYTHMIAS_PER_SESSION: int = 40
ARRHYTHMIA_DECAY_FRAMES: int = 15
ARRHYTHMIA_EVENT_WINDOW_MS: float = 1000.0

# ─── HRV ─────────────────────────────────────────────────────────────────────
# Minimum number of RR intervals needed to compute HRV metrics
HRV_MIN_INTERVALS: int = 5


class ProcessorConfig(BaseModel):
    """
    Per-session configuration, injected into `PPGProcessor`.

    Defaults mirror the module constants above.  Validation happens once at
    construction, so the hot path never re-checks bounds.
    """

    model_config = {"frozen": True}

    sample_rate_hz: float = Field(SAMPLE_RATE_HZ, gt=0, le=240)
    history_size: int = Field(HISTORY_SIZE, ge=30, le=3000)

    median_window: int = Field(MEDIAN_WINDOW, ge=1, le=5)
    moving_average_window: int = Field(MOVING_AVERAGE_WINDOW, ge=1, le=15)

    baseline_alpha: float = Field(BASELINE_ALPHA, gt=0, lt=1)
    baseline_alpha_min: float = Field(BASELINE_ALPHA_MIN, gt=0, lt=1)
    baseline_alpha_max: float = Field(BASELINE_ALPHA_MAX, gt=0, lt=1)
    baseline_variance_window: int = Field(BASELINE_VARIANCE_WINDOW, ge=2)
    baseline_cv_reference: float = Field(BASELINE_CV_REFERENCE, gt=0)
    baseline_max_multiplier: float = Field(BASELINE_MAX_MULTIPLIER, ge=1)

    peak_half_window: int = Field(PEAK_HALF_WINDOW, ge=1, le=10)
    peak_prominence_k: float = Field(PEAK_PROMINENCE_K, ge=0, le=1)
    min_peak_distance_ms: float = Field(MIN_PEAK_DISTANCE_MS, gt=0)
    peak_window_size: int = Field(PEAK_WINDOW_SIZE, ge=10)
    rr_min_ms: float = Field(RR_MIN_MS, gt=0)
    rr_max_ms: float = Field(RR_MAX_MS, gt=0)
    rr_buffer_size: int = Field(RR_BUFFER_SIZE, ge=2, le=100)

    quality_window: int = Field(QUALITY_WINDOW, ge=10)
    quality_min_samples: int = Field(QUALITY_MIN_SAMPLES, ge=5)
    quality_smoothing: float = Field(QUALITY_SMOOTHING, gt=0, le=1)
    quality_weights: tuple[float, float, float, float] = QUALITY_WEIGHTS
    amplitude_min: float = Field(AMPLITUDE_MIN, ge=0)
    amplitude_optimal: float = Field(AMPLITUDE_OPTIMAL, gt=0)
    amplitude_max: float = Field(AMPLITUDE_MAX, gt=0)
    cv_static: float = Field(CV_STATIC, ge=0)
    cv_noisy: float = Field(CV_NOISY, gt=0)
    cv_cutoff: float = Field(CV_CUTOFF, gt=0)
    periodicity_min_bpm: float = Field(PERIODICITY_MIN_BPM, gt=0)
    periodicity_max_bpm: float = Field(PERIODICITY_MAX_BPM, gt=0)

    finger_quality_threshold: float = Field(FINGER_QUALITY_THRESHOLD, ge=0, le=100)
    required_finger_frames: int = Field(REQUIRED_FINGER_FRAMES, ge=1)
    release_finger_frames: int = Field(RELEASE_FINGER_FRAMES, ge=1)
    signal_lost_floor: float = Field(SIGNAL_LOST_FLOOR, ge=0, le=100)
    quality_reset_floor: float = Field(QUALITY_RESET_FLOOR, ge=0, le=100)
    min_red_green_ratio: float = Field(MIN_RED_GREEN_RATIO, gt=0)
    min_red_intensity: float = Field(MIN_RED_INTENSITY, ge=0)
    max_red_intensity: float = Field(MAX_RED_INTENSITY, gt=0)
    gate_history_size: int = Field(GATE_HISTORY_SIZE, ge=1)

    bpm_interval_min_ms: float = Field(BPM_INTERVAL_MIN_MS, gt=0)
    bpm_interval_max_ms: float = Field(BPM_INTERVAL_MAX_MS, gt=0)
    bpm_min: int = Field(BPM_MIN, gt=0)
    bpm_max: int = Field(BPM_MAX, gt=0)
    bpm_smoothing: float = Field(BPM_SMOOTHING, gt=0, le=1)
    bpm_outlier_ratio: float = Field(BPM_OUTLIER_RATIO, gt=0)
    confidence_cv_scale: float = Field(CONFIDENCE_CV_SCALE, gt=0)
    final_bpm_min_estimates: int = Field(FINAL_BPM_MIN_ESTIMATES, ge=1)
    final_bpm_trim: float = Field(FINAL_BPM_TRIM, ge=0, lt=0.5)

    arrhythmia_learning_ms: float = Field(ARRHYTHMIA_LEARNING_MS, ge=0)
    arrhythmia_window: int = Field(ARRHYTHMIA_WINDOW, ge=2)
    arrhythmia_min_intervals: int = Field(ARRHYTHMIA_MIN_INTERVALS, ge=2)
    premature_beat_ratio: float = Field(PREMATURE_BEAT_RATIO, gt=0, lt=1)
    delayed_beat_ratio: float = Field(DELAYED_BEAT_RATIO, gt=1)
    rmssd_threshold_ms: float = Field(RMSSD_THRESHOLD_MS, gt=0)
    rmssd_relative_threshold: float = Field(RMSSD_RELATIVE_THRESHOLD, gt=0)
    arrhythmia_confirm_beats: int = Field(ARRHYTHMIA_CONFIRM_BEATS, ge=1)
    arrhythmia_cooldown_ms: float = Field(ARRHYTHMIA_COOLDOWN_MS, ge=0)
    max_arrhythmias_per_session: int = Field(MAX_ARRHYTHMIAS_PER_SESSION, ge=1)
    arrhythmia_decay_frames: int = Field(ARRHYTHMIA_DECAY_FRAMES, ge=1)
    arrhythmia_event_window_ms: float = Field(ARRHYTHMIA_EVENT_WINDOW_MS, ge=0)

    hrv_min_intervals: int = Field(HRV_MIN_INTERVALS, ge=2)

    @model_validator(mode="after")
    def _check_ranges(self) -> "ProcessorConfig":
        if self.baseline_alpha_min > self.baseline_alpha_max:
            raise ValueError("baseline_alpha_min must not exceed baseline_alpha_max")
        if self.rr_min_ms >= self.rr_max_ms:
            raise ValueError("rr_min_ms must be below rr_max_ms")
        if self.bpm_interval_min_ms >= self.bpm_interval_max_ms:
            raise ValueError("bpm_interval_min_ms must be below bpm_interval_max_ms")
        if self.bpm_min >= self.bpm_max:
            raise ValueError("bpm_min must be below bpm_max")
        if not self.amplitude_min < self.amplitude_optimal <= self.amplitude_max:
            raise ValueError("amplitude thresholds must satisfy min < optimal <= max")
        if not self.cv_noisy < self.cv_cutoff:
            raise ValueError("cv_noisy must be below cv_cutoff")
        if self.min_red_intensity >= self.max_red_intensity:
            raise ValueError("min_red_intensity must be below max_red_intensity")
        if self.release_finger_frames <= self.required_finger_frames:
            # Losing the finger must take a longer run than acquiring it.
            raise ValueError("release_finger_frames must exceed required_finger_frames")
        if abs(sum(self.quality_weights) - 1.0) > 1e-6:
            raise ValueError("quality_weights must sum to 1")
        return self

    @classmethod
    def for_profile(cls, name: str, **overrides) -> "ProcessorConfig":
        """
        Build a config from one of the named strictness profiles.

        Parameters
        ----------
        name      : str   One of 'relaxed', 'normal' or 'strict'.
        overrides : dict  Field values applied on top of the profile.
        """
        if name not in STRICTNESS_PROFILES:
            raise ValueError(
                f"Unknown profile '{name}'. Choose from {list(STRICTNESS_PROFILES)}."
            )
        return cls(**{**STRICTNESS_PROFILES[name], **overrides})


# ─── Strictness Profiles ─────────────────────────────────────────────────────
# Relaxed favours fast acquisition on weak signals; strict favours fewer
# false "finger present" frames on noisy devices.
STRICTNESS_PROFILES: dict[str, dict] = {
    "relaxed": {
        "finger_quality_threshold": 30.0,
        "required_finger_frames": 2,
        "release_finger_frames": 10,
        "min_red_green_ratio": 1.15,
        "moving_average_window": 3,
    },
    "normal": {},
    "strict": {
        "finger_quality_threshold": 55.0,
        "required_finger_frames": 5,
        "release_finger_frames": 8,
        "min_red_green_ratio": 1.35,
        "moving_average_window": 7,
        "peak_prominence_k": 0.4,
    },
}

# ─── Synthetic Recordings ────────────────────────────────────────────────────
RANDOM_SEED: int = 42

# ─── CLI ─────────────────────────────────────────────────────────────────────
CLI_TITLE = "PPG Finger-Camera Heart-Rate Demo"
VERSION = "0.1.0"
