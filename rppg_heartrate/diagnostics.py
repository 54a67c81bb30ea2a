"""
Semicolon-separated diagnostic logs.

``<prefix>_bpm.csv``            one row per report       (time;mean;min;max)
``<prefix>_bpmDetailed.csv``    one row per estimate     (time;bpm)
``<prefix>_signal_<t>.csv``     filter stages per frame  (g;g_den;g_detr;g_avg)
``<prefix>_estimation_<t>.csv`` in-band power spectrum   (i;powerSpectrum)

The per-frame files are only written when *detailed* is enabled.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import IO, Optional

import numpy as np

from rppg_heartrate.aggregator import BpmEstimate, BpmReport

logger = logging.getLogger(__name__)

DELIMITER = ";"


class DiagnosticLog:
    """
    Writes pipeline diagnostics next to *prefix*.

    Parameters
    ----------
    prefix:
        Path prefix, e.g. ``logs/session1``; parent directories are created.
    detailed:
        Also write one signal file and one spectrum file per frame.
    """

    def __init__(self, prefix: str | Path, detailed: bool = False) -> None:
        self.prefix = Path(prefix)
        self.detailed = detailed

        self._bpm_file: Optional[IO[str]] = None
        self._detail_file: Optional[IO[str]] = None
        self._bpm_writer = None
        self._detail_writer = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        self.prefix.parent.mkdir(parents=True, exist_ok=True)
        self._bpm_file = open(self._path("_bpm.csv"), "w", newline="")
        self._bpm_writer = csv.writer(self._bpm_file, delimiter=DELIMITER)
        self._bpm_writer.writerow(["time", "mean", "min", "max"])

        self._detail_file = open(self._path("_bpmDetailed.csv"), "w", newline="")
        self._detail_writer = csv.writer(self._detail_file, delimiter=DELIMITER)
        self._detail_writer.writerow(["time", "bpm"])
        logger.info("Diagnostic logs at %s*", self.prefix)

    def close(self) -> None:
        for f in (self._bpm_file, self._detail_file):
            if f is not None:
                f.close()
        self._bpm_file = self._detail_file = None
        self._bpm_writer = self._detail_writer = None

    def __enter__(self) -> "DiagnosticLog":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def report(self, report: BpmReport) -> None:
        if self._bpm_writer is None:
            raise RuntimeError("DiagnosticLog is not open.  Call open() first.")
        self._bpm_writer.writerow([report.timestamp, report.mean, report.min, report.max])

    def estimate(self, estimate: BpmEstimate) -> None:
        if self._detail_writer is None:
            raise RuntimeError("DiagnosticLog is not open.  Call open() first.")
        self._detail_writer.writerow([estimate.timestamp, estimate.value])

    def signal(
        self,
        time: int,
        raw: np.ndarray,
        denoised: np.ndarray,
        detrended: np.ndarray,
        smoothed: np.ndarray,
    ) -> None:
        """Write the filter stages of one frame (1-D signals of equal length)."""
        if not self.detailed:
            return
        with open(self._path(f"_signal_{time}.csv"), "w", newline="") as f:
            writer = csv.writer(f, delimiter=DELIMITER)
            writer.writerow(["g", "g_den", "g_detr", "g_avg"])
            for row in zip(raw, denoised, detrended, smoothed):
                writer.writerow([float(v) for v in row])

    def spectrum(self, time: int, power: np.ndarray, low: int, high: int) -> None:
        """Write the power spectrum bins ``low .. high`` (inclusive)."""
        if not self.detailed:
            return
        with open(self._path(f"_estimation_{time}.csv"), "w", newline="") as f:
            writer = csv.writer(f, delimiter=DELIMITER)
            writer.writerow(["i", "powerSpectrum"])
            for i in range(low, min(high, len(power) - 1) + 1):
                writer.writerow([i, float(power[i])])

    def _path(self, suffix: str) -> Path:
        return self.prefix.with_name(self.prefix.name + suffix)
