"""
Frequency-domain helpers.

The dominant bin of the magnitude spectrum, searched only inside the
plausible heart-rate band, gives the instantaneous BPM estimate.  The
Butterworth-shaped masks and :func:`bandpass` are used by the chrominance
combiner to band-limit its derived signals.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)

LOW_BPM = 42.0
HIGH_BPM = 240.0
SEC_PER_MIN = 60.0


def time_to_frequency(a: np.ndarray, magnitude: bool = True) -> np.ndarray:
    """
    Forward DFT of a real signal.

    Returns the per-bin magnitude when *magnitude* is true, otherwise the
    complex spectrum.  The output has the same length as *a*.
    """
    a = np.asarray(a, dtype=np.float64)
    spectrum = np.fft.fft(a + 0j, axis=0)
    if magnitude:
        return np.abs(spectrum)
    return spectrum


def frequency_to_time(spectrum: np.ndarray) -> np.ndarray:
    """
    Inverse DFT; return the real part rescaled to ``[0, 1]``.

    A flat result maps to all zeros.
    """
    real = np.ascontiguousarray(np.fft.ifft(spectrum, axis=0).real)
    if len(real) == 0:
        return real
    if np.ptp(real) == 0:
        return np.zeros_like(real)
    out = cv2.normalize(real, None, 0.0, 1.0, cv2.NORM_MINMAX)
    return out.reshape(real.shape)


def band_limits(
    n: int,
    fps: float,
    low_bpm: float = LOW_BPM,
    high_bpm: float = HIGH_BPM,
) -> Tuple[int, int]:
    """
    Return the half-open bin range ``[low, high)`` covering the BPM band.

    Both limits are clamped to ``[0, n]``.
    """
    low = int(n * low_bpm / SEC_PER_MIN / fps)
    high = int(n * high_bpm / SEC_PER_MIN / fps)
    low = max(0, min(low, n))
    high = max(0, min(high, n))
    return low, high


def estimate_bpm(
    spectrum: np.ndarray,
    fps: float,
    low_bpm: float = LOW_BPM,
    high_bpm: float = HIGH_BPM,
) -> Optional[float]:
    """
    Return the BPM of the strongest in-band bin of *spectrum*.

    Returns *None* when the spectrum or the band is empty.
    """
    n = len(spectrum)
    if n == 0:
        return None

    low, high = band_limits(n, fps, low_bpm, high_bpm)
    if high <= low:
        logger.debug("Empty band: n=%d fps=%.2f", n, fps)
        return None

    peak = low + int(np.argmax(spectrum[low:high]))
    bpm = peak * fps / n * SEC_PER_MIN
    logger.debug("FPS=%.2f Vals=%d Peak=%d BPM=%.1f", fps, n, peak, bpm)
    return bpm


def butterworth_lowpass(n_bins: int, cutoff: float, order: int) -> np.ndarray:
    """Butterworth-shaped lowpass mask over bin indices ``0 .. n_bins-1``."""
    if cutoff <= 0:
        raise ValueError(f"cutoff must be positive, got {cutoff}")
    if order <= 0:
        raise ValueError(f"order must be positive, got {order}")
    radius = np.arange(n_bins, dtype=np.float64)
    return 1.0 / (1.0 + (radius / cutoff) ** (2 * order))


def butterworth_bandpass(n_bins: int, cutin: float, cutoff: float, order: int) -> np.ndarray:
    """Bandpass mask: ``lowpass(cutoff) - lowpass(cutin)``."""
    if cutin >= cutoff:
        raise ValueError(f"cutin ({cutin}) must be below cutoff ({cutoff})")
    return butterworth_lowpass(n_bins, cutoff, order) - butterworth_lowpass(n_bins, cutin, order)


def bandpass(a: np.ndarray, low: float, high: float, order: int = 8) -> np.ndarray:
    """
    Frequency-domain bandpass between bins *low* and *high*.

    The output is rescaled to ``[0, 1]``.  Signals shorter than 3 samples
    are returned unchanged.
    """
    a = np.asarray(a, dtype=np.float64)
    if len(a) < 3:
        return a.copy()

    spectrum = time_to_frequency(a, magnitude=False)
    mask = butterworth_bandpass(len(a), low, high, order)
    if spectrum.ndim > 1:
        mask = mask[:, np.newaxis]
    return frequency_to_time(spectrum * mask)
