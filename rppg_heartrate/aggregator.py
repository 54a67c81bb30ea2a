"""
Windowed aggregation of per-frame BPM estimates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BpmEstimate:
    timestamp: int
    value: float


@dataclass(frozen=True)
class BpmReport:
    """Summary of the estimates collected over one sampling interval."""

    timestamp: int
    mean: float
    min: float
    max: float


class BpmAggregator:
    """
    Collects BPM estimates and reports mean / min / max per interval.

    Parameters
    ----------
    sampling_frequency:
        Reporting interval in seconds.
    time_base:
        Seconds per timestamp unit.
    """

    def __init__(self, sampling_frequency: float = 1.0, time_base: float = 0.001) -> None:
        if sampling_frequency <= 0:
            raise ValueError(f"sampling_frequency must be positive, got {sampling_frequency}")
        if time_base <= 0:
            raise ValueError(f"time_base must be positive, got {time_base}")
        self.sampling_frequency = sampling_frequency
        self.time_base = time_base

        self._estimates: List[BpmEstimate] = []
        self._last_report_time: Optional[int] = None

    def add(self, estimate: BpmEstimate) -> None:
        self._estimates.append(estimate)

    def poll(self, now: int) -> Optional[BpmReport]:
        """
        Emit a report if the interval since the last one has elapsed.

        Nothing is emitted (and the interval keeps running) while no
        estimates have been collected.
        """
        if self._last_report_time is None:
            self._last_report_time = now
        if (now - self._last_report_time) * self.time_base < self.sampling_frequency:
            return None
        if not self._estimates:
            return None

        values = np.sort([e.value for e in self._estimates])
        lo, hi = float(values[0]), float(values[-1])
        # Rounding in the sum must not push the mean outside [min, max].
        mean = min(max(float(np.mean(values)), lo), hi)
        report = BpmReport(timestamp=now, mean=mean, min=lo, max=hi)
        self._estimates.clear()
        self._last_report_time = now
        logger.info("meanBPM=%.1f min=%.1f max=%.1f", report.mean, report.min, report.max)
        return report

    @property
    def pending(self) -> List[BpmEstimate]:
        """Estimates collected since the last report."""
        return list(self._estimates)

    def reset(self) -> None:
        self._estimates.clear()
        self._last_report_time = None
