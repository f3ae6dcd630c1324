"""
ppg/schemas.py — Pydantic result & status models
=================================================
Centralises the data-transfer objects that leave the processor, so UI code
and external formula modules get validated, serialisable values
(`model_dump()` / `model_dump_json()`) instead of loose dicts.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

NO_DATA = "--"


class HRVData(BaseModel):
    sdnn_ms: Optional[float] = None
    rmssd_ms: Optional[float] = None
    pnn50: Optional[float] = None
    mean_rr_ms: Optional[float] = None
    num_beats: int = 0
    valid: bool = False


class ArrhythmiaEventData(BaseModel):
    timestamp: float
    count: int
    interval_ms: float
    rmssd: float
    rr_variation: float
    window_start: float
    window_end: float


class VitalSignsResult(BaseModel):
    """Everything the processor knows after one sample."""
    timestamp: float
    filtered_value: float = 0.0          # Smoothed intensity (DC included)
    ac_value: float = 0.0                # Baseline-removed value, for the waveform
    quality: float = Field(0.0, ge=0, le=100)
    quality_level: str = "NO SIGNAL"
    message: str = ""
    finger_detected: bool = False
    perfusion_index: float = 0.0         # AC/DC in %
    bpm: int = 0
    confidence: float = Field(0.0, ge=0, le=100)
    is_peak: bool = False
    rr_intervals: list[float] = Field(default_factory=list)
    hrv: HRVData = Field(default_factory=HRVData)
    arrhythmia_status: str = NO_DATA
    arrhythmia_counter: int = 0
    is_arrhythmia: bool = False
    last_arrhythmia: Optional[ArrhythmiaEventData] = None
    estimates: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class SessionStatus(BaseModel):
    """Snapshot of a processor, safe to read from another thread."""
    status: str = "idle"                 # "idle" | "running" | "stopped"
    frames_processed: int = 0
    buffered_samples: int = 0
    finger_state: str = "ABSENT"
    consecutive_good_frames: int = 0
    consecutive_bad_frames: int = 0
    bpm: int = 0
    final_bpm: int = 0
    rr_intervals: list[float] = Field(default_factory=list)
    arrhythmia_counter: int = 0
    consecutive_abnormal_beats: int = 0
    error_count: int = 0
    has_last_valid_result: bool = False
