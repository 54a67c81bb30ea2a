"""
Rolling sample buffer.

Holds the most recent ``window_seconds`` worth of ``(value, timestamp,
resync)`` samples.  The window length is not fixed in samples: it follows
the effective sampling rate measured from the buffered timestamps, so the
buffer adapts when the camera delivers frames faster or slower than
nominal.
"""

from __future__ import annotations

import math
import sys
from collections import deque
from dataclasses import dataclass
from typing import Deque, Tuple, Union

import numpy as np

# Rate used when it cannot be measured (≤ 1 sample or zero elapsed time).
MAX_RATE = sys.float_info.max

Value = Union[float, Tuple[float, ...]]


@dataclass(frozen=True)
class Sample:
    """One extracted brightness sample."""

    value: Value
    timestamp: int
    resync: bool = False


def effective_rate(count: int, t_first: int, t_last: int, time_base: float) -> float:
    """
    Return the sampling rate (Hz) of *count* samples spanning
    ``t_first .. t_last``.

    ``(count - 1) / ((t_last - t_first) * time_base)``, or :data:`MAX_RATE`
    when it is undefined.
    """
    if count <= 1:
        return MAX_RATE
    elapsed = (t_last - t_first) * time_base
    if elapsed <= 0:
        return MAX_RATE
    return (count - 1) / elapsed


class SampleBuffer:
    """
    Time-bounded FIFO of :class:`Sample` objects.

    Parameters
    ----------
    time_base:
        Seconds per timestamp unit (e.g. ``0.001`` for millisecond
        timestamps).
    window_seconds:
        Length of the analysis window in seconds (default 10).
    """

    def __init__(self, time_base: float = 0.001, window_seconds: float = 10.0) -> None:
        if time_base <= 0:
            raise ValueError(f"time_base must be positive, got {time_base}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")
        self.time_base = time_base
        self.window_seconds = window_seconds

        self._samples: Deque[Sample] = deque()
        self._rate: float = MAX_RATE

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, sample: Sample) -> None:
        """Add *sample* and evict the oldest samples beyond the window."""
        self._samples.append(sample)
        self._rate = self._measure_rate()

        while len(self._samples) > self.capacity:
            self._samples.popleft()
            self._rate = self._measure_rate()

    @property
    def capacity(self) -> float:
        """Maximum number of samples at the current rate, ``⌈rate × window⌉``."""
        if self._rate == MAX_RATE:
            return math.inf
        return math.ceil(self._rate * self.window_seconds)

    def is_ready(self) -> bool:
        """True once the buffer spans a full window at the current rate."""
        if not self._samples or self._rate == MAX_RATE:
            return False
        # One sample period of slack absorbs timestamp jitter at the window edge.
        return len(self._samples) / self._rate >= self.window_seconds - 1.0 / self._rate

    def clear(self) -> None:
        self._samples.clear()
        self._rate = MAX_RATE

    @property
    def rate(self) -> float:
        """Effective sampling rate in Hz."""
        return self._rate

    def values(self) -> np.ndarray:
        """Buffered values, shape ``(n,)`` or ``(n, channels)``."""
        return np.array([s.value for s in self._samples], dtype=np.float64)

    def timestamps(self) -> np.ndarray:
        return np.array([s.timestamp for s in self._samples], dtype=np.int64)

    def resync_flags(self) -> np.ndarray:
        return np.array([s.resync for s in self._samples], dtype=bool)

    def __len__(self) -> int:
        return len(self._samples)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _measure_rate(self) -> float:
        if not self._samples:
            return MAX_RATE
        return effective_rate(
            len(self._samples),
            self._samples[0].timestamp,
            self._samples[-1].timestamp,
            self.time_base,
        )
