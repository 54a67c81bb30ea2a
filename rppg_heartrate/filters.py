"""
Time-domain filters applied to the buffered window.

All filters accept a 1-D signal or a 2-D ``(n, channels)`` array and work
column-wise; the input array is never modified.

References
----------
- Tarvainen M.P. et al., "An advanced detrending method with application
  to HRV analysis." IEEE Trans. Biomed. Eng., 2002.
"""

from __future__ import annotations

import cv2
import numpy as np
from scipy.linalg import solve


def normalization(a: np.ndarray) -> np.ndarray:
    """Subtract the mean and divide by the standard deviation (per column)."""
    a = np.asarray(a, dtype=np.float64)
    centred = a - a.mean(axis=0)
    std = a.std(axis=0)
    # A flat signal carries no information; map it to zeros.
    return np.divide(centred, std, out=np.zeros_like(centred), where=std > 0)


def denoise(a: np.ndarray, jumps: np.ndarray) -> np.ndarray:
    """
    Remove step discontinuities at resync positions.

    For every index ``i > 0`` with ``jumps[i]`` set, the difference
    ``a[i] - a[i-1]`` is subtracted from ``a[i:]`` so the level before and
    after the resync matches.

    Parameters
    ----------
    a:
        Signal, shape ``(n,)`` or ``(n, channels)``.
    jumps:
        Boolean resync flags, shape ``(n,)``.
    """
    result = np.array(a, dtype=np.float64, copy=True)
    jumps = np.asarray(jumps, dtype=bool)
    if len(jumps) != len(result):
        raise ValueError(f"jumps length {len(jumps)} != signal length {len(result)}")

    for i in np.flatnonzero(jumps):
        if i == 0:
            continue
        result[i:] -= result[i] - result[i - 1]
    return result


def detrend(a: np.ndarray, lam: float) -> np.ndarray:
    """
    Smoothness-priors detrending (high pass equivalent).

    Computes ``a - (I + lam² DᵀD)⁻¹ a`` where ``D`` is the second-order
    difference operator.  Larger *lam* removes lower-frequency trend only.
    Signals shorter than 3 samples are returned unchanged.
    """
    a = np.asarray(a, dtype=np.float64)
    n = len(a)
    if n < 3:
        return a.copy()

    d2 = np.diff(np.eye(n), 2, axis=0)                  # (n-2) × n, rows [1 -2 1]
    system = np.eye(n) + lam * lam * (d2.T @ d2)
    trend = solve(system, a, assume_a="pos")
    return a - trend


def moving_average(a: np.ndarray, n: int, s: int) -> np.ndarray:
    """
    Apply an *s*-wide box blur *n* times (low pass equivalent).

    Uses OpenCV's reflect-101 border handling at both ends.
    """
    a = np.asarray(a, dtype=np.float64)
    if len(a) == 0:
        return a.copy()
    s = max(1, int(s))

    column = np.ascontiguousarray(a.reshape(len(a), -1))
    for _ in range(n):
        # ksize is (width, height): blur along time only, never across channels.
        column = cv2.blur(column, (1, s))
        column = column.reshape(len(a), -1)
    return column.reshape(a.shape)
