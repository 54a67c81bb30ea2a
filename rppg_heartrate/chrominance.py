"""
Chrominance-based signal combination (X-minus-alpha-Y).

Two fixed linear combinations of the normalised colour channels both carry
the pulse, but with different weights, while motion and illumination
changes affect them alike.  Subtracting the second combination scaled by
the ratio of their standard deviations cancels the common component.

References
----------
- De Haan G., Jeanne V., "Robust pulse rate from chrominance-based rPPG."
  IEEE Trans. Biomed. Eng., 2013.
"""

from __future__ import annotations

import numpy as np

from rppg_heartrate.filters import normalization
from rppg_heartrate.spectral import bandpass


def xminay(
    r: np.ndarray,
    g: np.ndarray,
    b: np.ndarray,
    low: float,
    high: float,
    order: int = 8,
) -> np.ndarray:
    """
    Combine three colour channels into one motion-robust pulse signal.

    Parameters
    ----------
    r, g, b:
        Raw channel signals of equal length.
    low, high:
        Bandpass cut-in and cut-off, in DFT bin units.
    order:
        Order of the Butterworth-shaped frequency mask.

    Returns
    -------
    numpy.ndarray
        ``X_f - alpha * Y_f`` with ``alpha = std(X_f) / std(Y_f)``.
    """
    r_n = normalization(r)
    g_n = normalization(g)
    b_n = normalization(b)

    x_s = 3.0 * r_n - 2.0 * g_n
    y_s = 1.5 * r_n + g_n - 1.5 * b_n

    x_f = bandpass(x_s, low, high, order)
    y_f = bandpass(y_s, low, high, order)

    std_y = float(np.std(y_f))
    alpha = float(np.std(x_f)) / std_y if std_y > 0 else 0.0
    return x_f - alpha * y_f
