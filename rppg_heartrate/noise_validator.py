"""
Artifact detection for extracted samples.

Each channel runs a small hysteresis state machine over the first
differences of its buffered values.  A jump larger than twice the
short-term standard deviation is only confirmed as noise when the
deviation persists for a second sample; once a channel is noisy it needs
two consecutive differences within one standard deviation to recover.

The sample after a tentative jump is compared with the last sample before
the jump, so a one-frame spike that returns to the baseline is accepted
while a jump that stays away is confirmed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

import numpy as np

logger = logging.getLogger(__name__)

# Differences required (newest excluded) before a standard deviation is used.
MIN_HISTORY = 2


@dataclass
class ChannelState:
    """Persisted state of one channel."""

    pending: bool = False
    accepted: bool = True

    @property
    def tentative(self) -> bool:
        """True after a single large jump that is not yet confirmed."""
        return self.accepted and self.pending

    def step(self, d: float, sigma: float) -> bool:
        """Advance on difference *d* given deviation *sigma*; return acceptance."""
        if self.accepted:
            if abs(d) <= 2 * sigma:
                self.pending = False
                self.accepted = True
            elif not self.pending:
                self.pending = True          # tentative
                self.accepted = True
            else:
                self.pending = False         # confirmed noise
                self.accepted = False
        else:
            if abs(d) > sigma:
                self.pending = False         # still noise
                self.accepted = False
            elif not self.pending:
                self.pending = True          # might be recovering
                self.accepted = False
            else:
                self.pending = False         # recovered
                self.accepted = True
        return self.accepted


class NoiseValidator:
    """
    Per-channel noise classifier.

    Parameters
    ----------
    channels:
        Number of parallel signals (1 for a scalar signal, 3 for RGB).
    """

    def __init__(self, channels: int = 1) -> None:
        if channels <= 0:
            raise ValueError(f"channels must be positive, got {channels}")
        self.channels = channels
        self._states: List[ChannelState] = [ChannelState() for _ in range(channels)]

    def classify(self, values: np.ndarray) -> np.ndarray:
        """
        Classify the newest sample in *values* for every channel.

        Parameters
        ----------
        values:
            Buffered values including the newest sample, shape ``(n,)`` or
            ``(n, channels)``.

        Returns
        -------
        numpy.ndarray
            Boolean acceptance per channel.
        """
        values = np.asarray(values, dtype=np.float64)
        if values.ndim == 1:
            values = values[:, np.newaxis]
        if values.shape[1] != self.channels:
            raise ValueError(
                f"expected {self.channels} channel(s), got {values.shape[1]}"
            )

        result = np.ones(self.channels, dtype=bool)
        diffs = np.diff(values, axis=0)
        if len(diffs) <= MIN_HISTORY:
            return result

        for c, state in enumerate(self._states):
            if state.tentative and len(diffs) > MIN_HISTORY + 1:
                # Measure across the tentative sample, against the history before it.
                d = values[-1, c] - values[-3, c]
                sigma = np.std(diffs[:-2, c])
            else:
                d = diffs[-1, c]
                sigma = np.std(diffs[:-1, c])
            result[c] = state.step(float(d), float(sigma))

        if not result.all():
            logger.debug("Sample rejected on channel(s) %s", np.flatnonzero(~result).tolist())
        return result

    def is_accepted(self, values: np.ndarray) -> bool:
        """True when the newest sample is accepted on every channel."""
        return bool(self.classify(values).all())

    @property
    def pending(self) -> np.ndarray:
        """Current pending flags, one per channel."""
        return np.array([s.pending for s in self._states], dtype=bool)

    def reset(self) -> None:
        self._states = [ChannelState() for _ in range(self.channels)]
