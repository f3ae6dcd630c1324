#!/usr/bin/env python3
"""
demo_cli.py — Standalone command-line demo
============================================
Replays a recorded (or synthetic) fingertip PPG trace through the
per-frame processor exactly as a camera callback would, then prints the
session summary.

Usage:
    python demo_cli.py --synthetic --bpm 72 --duration 30
    python demo_cli.py --synthetic --bpm 75 --ectopic-every 24
    python demo_cli.py --csv recording.csv --profile strict

CSV format: header row, then ``timestamp_ms,red[,green]`` per frame.

⚠️  DISCLAIMER: This is a WELLNESS ESTIMATION tool — NOT a medical device.
"""

import argparse
import sys

import numpy as np

from config import CLI_TITLE, SAMPLE_RATE_HZ, STRICTNESS_PROFILES, ProcessorConfig
from ppg.pipeline import PPGProcessor
from ppg.synthetic import synthetic_ppg
from utils.logger import get_logger

logger = get_logger("demo_cli")


def pretty_print(label: str, value, unit: str = "") -> None:
    """Colourised terminal output."""
    print(f"  \033[1;36m{label:<28}\033[0m \033[1;33m{value}\033[0m {unit}")


def load_csv(path: str) -> tuple[np.ndarray, np.ndarray, np.ndarray | None]:
    """Read ``timestamp_ms,red[,green]`` columns (header row skipped)."""
    data = np.loadtxt(path, delimiter=",", skiprows=1, ndmin=2)
    if data.shape[1] < 2:
        raise ValueError(f"{path}: expected at least 2 columns (timestamp_ms, red).")
    green = data[:, 2] if data.shape[1] >= 3 else None
    return data[:, 0], data[:, 1], green


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=CLI_TITLE)
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--csv", type=str, help="Recording: timestamp_ms,red[,green]")
    source.add_argument("--synthetic", action="store_true", help="Generate a synthetic recording")
    parser.add_argument("--bpm", type=float, default=72.0, help="Synthetic heart rate")
    parser.add_argument("--duration", type=float, default=30.0, help="Synthetic length (seconds)")
    parser.add_argument("--fps", type=float, default=SAMPLE_RATE_HZ, help="Frame rate (Hz)")
    parser.add_argument("--noise", type=float, default=0.2, help="Synthetic noise std")
    parser.add_argument("--ectopic-every", type=int, default=None,
                        help="Insert a run of premature beats every n beats")
    parser.add_argument("--ectopic-run", type=int, default=3, help="Premature beats per run")
    parser.add_argument("--ectopic-ratio", type=float, default=0.55,
                        help="Premature interval as a fraction of nominal")
    parser.add_argument("--profile", type=str, default="normal", choices=list(STRICTNESS_PROFILES))
    parser.add_argument("--trace", action="store_true", help="Print one line per detected beat")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    print("\n" + "=" * 60)
    print(f"  {CLI_TITLE.upper()}")
    print("=" * 60)
    print("  ⚠️  This is a WELLNESS ESTIMATION tool — NOT medical grade.")
    print("=" * 60 + "\n")

    if args.csv:
        try:
            timestamps, red, green = load_csv(args.csv)
        except (OSError, ValueError) as e:
            print(f"  ERROR: {e}")
            return 1
        source = args.csv
    else:
        recording = synthetic_ppg(
            bpm=args.bpm,
            duration_s=args.duration,
            fs=args.fps,
            noise=args.noise,
            ectopic_every=args.ectopic_every,
            ectopic_ratio=args.ectopic_ratio,
            ectopic_run=args.ectopic_run,
        )
        timestamps, red, green = recording.timestamps, recording.red, recording.green
        source = f"synthetic {args.bpm:.0f} BPM"

    config = ProcessorConfig.for_profile(args.profile, sample_rate_hz=args.fps)
    processor = PPGProcessor(config)
    logger.info("Replaying %d frames (%s profile)…", len(timestamps), args.profile)

    print(f"  Source       : {source}")
    print(f"  Frames       : {len(timestamps)}")
    print(f"  Profile      : {args.profile}\n")

    processor.start()
    result = None
    finger_frames = 0
    for i, (t, r) in enumerate(zip(timestamps, red)):
        g = None if green is None else float(green[i])
        result = processor.process_sample(float(t), float(r), g)
        if result.finger_detected:
            finger_frames += 1
        if args.trace and result.is_peak:
            print(f"    t={t / 1000:7.2f}s  BPM={result.bpm:3d}  "
                  f"RR={result.rr_intervals[-1]:6.0f} ms  {result.arrhythmia_status}")
    processor.stop()

    status = processor.get_status()
    last = processor.last_valid_result

    print(f"\n  Finger detected in {finger_frames} of {status.frames_processed} frames "
          f"({100 * finger_frames / max(status.frames_processed, 1):.0f}%).\n")

    if last is None:
        print("  ⚠️  No valid reading — finger was never detected.")
        return 2

    print("=" * 60)
    print("  RESULTS")
    print("=" * 60)
    print("\n  ── Heart Rate ──")
    pretty_print("Final BPM", processor.final_bpm or "--", "BPM")
    pretty_print("Last BPM", last.bpm, "BPM")
    pretty_print("Confidence", last.confidence, "/ 100")
    pretty_print("RR intervals", len(last.rr_intervals))
    pretty_print("Signal quality", f"{last.quality:.0f} ({last.quality_level})")
    pretty_print("Perfusion index", last.perfusion_index, "%")

    print("\n  ── Heart Rate Variability ──")
    if last.hrv.valid:
        pretty_print("SDNN", last.hrv.sdnn_ms, "ms")
        pretty_print("RMSSD", last.hrv.rmssd_ms, "ms")
        pretty_print("pNN50", last.hrv.pnn50, "%")
        pretty_print("Mean RR", last.hrv.mean_rr_ms, "ms")
        pretty_print("Beats in buffer", last.hrv.num_beats)
    else:
        print("    ⚠️  Insufficient beats for HRV calculation.")

    print("\n  ── Rhythm ──")
    pretty_print("Status", last.arrhythmia_status)
    pretty_print("Events", status.arrhythmia_counter)
    if status.error_count:
        pretty_print("Frames with errors", status.error_count)

    print("\n" + "=" * 60)
    print("  ⚠️  DISCLAIMER: All values above are ESTIMATES.")
    print("      Do NOT use for medical diagnosis or treatment.")
    print("=" * 60 + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
