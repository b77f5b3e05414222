"""
Correlation Primitive
=====================

Normalized cross-correlation between a grayscale image and a grayscale
template.

The matcher treats this as a pluggable black box: given an image that is at
least as large as the template in both axes, return the peak similarity
score in [-1, 1] and its location. Tests inject counting or scripted
implementations through the CorrelationPrimitive protocol.
"""

import logging
from typing import Protocol, Tuple

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class CorrelationPrimitive(Protocol):
    """
    Protocol for correlation backends.

    Implementations may raise on bad input; the caller converts failures
    into a worst-possible score.
    """

    def match_score(
        self,
        image: np.ndarray,
        template: np.ndarray,
    ) -> Tuple[float, Tuple[int, int]]:
        """
        Correlate template against image.

        Args:
            image: 2-D uint8 raster
            template: 2-D uint8 raster no larger than image

        Returns:
            (peak score, (x, y) of the peak)
        """
        ...


class OpenCVCorrelation:
    """TM_CCOEFF_NORMED correlation via OpenCV."""

    method: int = cv2.TM_CCOEFF_NORMED

    def match_score(
        self,
        image: np.ndarray,
        template: np.ndarray,
    ) -> Tuple[float, Tuple[int, int]]:
        result = cv2.matchTemplate(image, template, self.method)
        _, max_val, _, max_loc = cv2.minMaxLoc(result)
        return float(max_val), (int(max_loc[0]), int(max_loc[1]))
