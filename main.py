#!/usr/bin/env python3
"""
rPPG heart rate – replay entry point.

Feeds recorded (or synthetic) face-region samples through the heart-rate
pipeline and prints one line per report.

Usage
-----
    python main.py --input samples.csv [OPTIONS]
    python main.py --synthetic 72 [OPTIONS]

Input format
------------
Semicolon-separated with a header row, either

    time;value;resync
    time;r;g;b;resync

``resync`` is 0/1 and may be omitted.

Options
-------
    --time-base FLOAT        Seconds per timestamp unit (default: 0.001)
    --sampling-frequency F   Report interval in seconds (default: 1)
    --method NAME            green | xminay (default: green)
    --reject-noise           Absorb samples flagged by the noise validator
    --log-prefix PATH        Write diagnostic CSV files with this prefix
    --detailed               Also write per-frame signal / spectrum files
    --synthetic BPM          Generate a pulse at BPM instead of reading input
    --fps FLOAT              Frame rate of the synthetic signal (default: 30)
    --duration FLOAT         Length of the synthetic signal (default: 20 s)
    --verbose                Debug logging
"""

from __future__ import annotations

import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import Iterator, List, Sequence, Tuple, Union

import numpy as np

from rppg_heartrate.aggregator import BpmReport
from rppg_heartrate.diagnostics import DiagnosticLog
from rppg_heartrate.pipeline import METHODS, HeartRatePipeline, PipelineConfig

logger = logging.getLogger("rppg_heartrate")

Row = Tuple[Union[float, Tuple[float, float, float]], int, bool]


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Heart rate from face-region brightness samples (rPPG)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--input", type=Path,
                        help="Semicolon-separated sample file")
    source.add_argument("--synthetic", type=float, metavar="BPM",
                        help="Generate a synthetic pulse at this rate")
    parser.add_argument("--time-base", type=float, default=0.001,
                        help="Seconds per timestamp unit")
    parser.add_argument("--sampling-frequency", type=float, default=1.0,
                        help="Report interval in seconds")
    parser.add_argument("--method", choices=METHODS, default="green",
                        help="Signal extraction method")
    parser.add_argument("--reject-noise", action="store_true",
                        help="Absorb samples flagged by the noise validator")
    parser.add_argument("--log-prefix", type=Path, default=None,
                        help="Write diagnostic CSV files with this path prefix")
    parser.add_argument("--detailed", action="store_true",
                        help="Also write per-frame signal and spectrum files")
    parser.add_argument("--fps", type=float, default=30.0,
                        help="Frame rate of the synthetic signal")
    parser.add_argument("--duration", type=float, default=20.0,
                        help="Length of the synthetic signal in seconds")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

def read_samples(path: Path) -> Iterator[Row]:
    """Yield ``(value, timestamp, resync)`` rows from a sample file."""
    with open(path, newline="") as f:
        reader = csv.DictReader(f, delimiter=";")
        fields = reader.fieldnames or []
        if "time" not in fields:
            raise ValueError(f"{path}: missing 'time' column")
        rgb = all(c in fields for c in ("r", "g", "b"))
        if not rgb and "value" not in fields:
            raise ValueError(f"{path}: need a 'value' column or 'r', 'g', 'b' columns")

        for line_no, row in enumerate(reader, start=2):
            try:
                if rgb:
                    value = (float(row["r"]), float(row["g"]), float(row["b"]))
                else:
                    value = float(row["value"])
                resync = bool(int(row.get("resync") or 0))
                yield value, int(row["time"]), resync
            except (TypeError, ValueError) as exc:
                raise ValueError(f"{path}:{line_no}: {exc}") from exc


def synthetic_samples(
    bpm: float,
    fps: float,
    duration: float,
    time_base: float,
    rgb: bool = False,
) -> Iterator[Row]:
    """Yield a sinusoidal pulse riding on a slow brightness drift."""
    rng = np.random.default_rng(0)
    t = np.arange(int(fps * duration)) / fps
    pulse = np.sin(2 * np.pi * bpm / 60.0 * t)
    drift = 0.5 * t / max(duration, 1e-9)
    noise = 0.05 * rng.standard_normal(len(t))
    for ti, p, d, e in zip(t, pulse, drift, noise):
        timestamp = int(round(ti / time_base))
        if rgb:
            yield (100.0 + 0.3 * p + d, 100.0 + p + d + e, 100.0 + 0.1 * p + d), timestamp, False
        else:
            yield 100.0 + p + d + e, timestamp, False


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def _print_report(report: BpmReport) -> None:
    print(f"[{report.timestamp}] BPM={report.mean:.1f}  min={report.min:.1f}  max={report.max:.1f}")


def run(args: argparse.Namespace) -> int:
    try:
        config = PipelineConfig(
            time_base=args.time_base,
            sampling_frequency=args.sampling_frequency,
            method=args.method,
            reject_noise=args.reject_noise,
        )
    except ValueError as exc:
        logger.error("Invalid settings: %s", exc)
        return 1

    if args.synthetic is not None:
        rows: Iterator[Row] = synthetic_samples(
            args.synthetic, args.fps, args.duration, args.time_base,
            rgb=args.method == "xminay",
        )
    else:
        rows = read_samples(args.input)

    diagnostics = DiagnosticLog(args.log_prefix, detailed=args.detailed) if args.log_prefix else None
    pipeline = HeartRatePipeline(config, on_report=_print_report, diagnostics=diagnostics)

    reports = 0
    try:
        if diagnostics is not None:
            diagnostics.open()
        for value, timestamp, resync in rows:
            if pipeline.process(value, timestamp, resync) is not None:
                reports += 1
    except (OSError, ValueError) as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        if diagnostics is not None:
            diagnostics.close()

    if reports == 0:
        logger.warning("No report produced; the input may be shorter than the %gs window.",
                       config.window_seconds)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )
    return run(args)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
