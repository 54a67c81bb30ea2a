"""
Frame → sample extraction.

The face tracker supplies a binary mask of skin pixels for each frame (an
ellipse over the face with the eyes cut out).  The sample fed to the
pipeline is the mean colour inside that mask.
"""

from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np


def mean_rgb(frame: np.ndarray, mask: Optional[np.ndarray] = None) -> Tuple[float, float, float]:
    """
    Return the ``(r, g, b)`` mean of *frame* inside *mask*.

    Parameters
    ----------
    frame:
        BGR image array (H × W × 3, uint8).
    mask:
        Optional single-channel uint8 mask of the same height and width;
        non-zero pixels are included.
    """
    if frame.ndim != 3 or frame.shape[2] != 3:
        raise ValueError(f"expected a BGR frame (H × W × 3), got shape {frame.shape}")
    if mask is not None:
        if mask.shape[:2] != frame.shape[:2]:
            raise ValueError(
                f"mask shape {mask.shape[:2]} does not match frame {frame.shape[:2]}"
            )
        mask = (mask > 0).astype(np.uint8)

    b, g, r, _ = cv2.mean(frame, mask=mask)
    return float(r), float(g), float(b)


def mean_green(frame: np.ndarray, mask: Optional[np.ndarray] = None) -> float:
    """Mean green intensity inside *mask* (green is most sensitive to the pulse)."""
    return mean_rgb(frame, mask)[1]
