"""
Frame Decoding and Quality
==========================

Conversion of raw RGBA frames into matchable rasters, plus the cheap checks
that decide whether a frame is worth matching at all.

Design Rules:
    - This is the ONLY place that turns RawFrame bytes into arrays
    - Validates shape and dtype, fails fast on a malformed buffer
    - Large full-resolution frames are downscaled once before matching
    - Near-uniform frames (blank, black, single colour) are rejected
"""

import logging
from typing import Tuple

import cv2
import numpy as np

from screenwatch.capture.frame import BYTES_PER_PIXEL, RawFrame


logger = logging.getLogger(__name__)


PRE_HALVED_SCALE = 2


class FrameDecodeError(Exception):
    """Raised when a raw frame cannot be turned into a raster."""
    pass


def decode_rgba(frame: RawFrame) -> np.ndarray:
    """
    View a RawFrame's pixels as an RGBA array.

    Args:
        frame: Admitted frame

    Returns:
        RGBA image as np.ndarray (H, W, 4), dtype=uint8 (read-only view)

    Raises:
        FrameDecodeError: If the buffer does not match the declared size
    """
    try:
        rgba = np.frombuffer(frame.pixels, dtype=np.uint8).reshape(
            frame.height, frame.width, BYTES_PER_PIXEL
        )
    except ValueError as e:
        raise FrameDecodeError(
            f"Invalid pixel buffer for {frame.width}x{frame.height} frame: {e}"
        )
    return rgba


def downscale_for_matching(
    rgba: np.ndarray,
    scale_hint: int,
    max_dimension: int,
) -> Tuple[np.ndarray, float]:
    """
    Pyramid step applied before matching.

    Frames already halved by the capture layer are kept as they are; full
    resolution frames whose longest edge exceeds max_dimension are resized
    so that edge equals max_dimension.

    Returns:
        (image to match against, applied resize factor)
    """
    if scale_hint == PRE_HALVED_SCALE:
        return rgba, 1.0

    height, width = rgba.shape[:2]
    if width <= max_dimension and height <= max_dimension:
        return rgba, 1.0

    factor = max_dimension / max(width, height)
    new_size = (max(1, int(width * factor)), max(1, int(height * factor)))
    resized = cv2.resize(rgba, new_size, interpolation=cv2.INTER_AREA)
    logger.debug(
        f"Resized for matching: {width}x{height} -> {new_size[0]}x{new_size[1]} "
        f"(scale={factor:.2f})"
    )
    return resized, factor


def to_grayscale(rgba: np.ndarray) -> np.ndarray:
    """RGBA -> single channel uint8."""
    gray = cv2.cvtColor(rgba, cv2.COLOR_RGBA2GRAY)
    if gray.dtype != np.uint8:
        raise FrameDecodeError(f"Invalid grayscale dtype: {gray.dtype}")
    return gray


def luminance_stddev(gray: np.ndarray, region: float = 0.8) -> float:
    """
    Standard deviation of luminance over the central region of a frame.

    The border is skipped so status and navigation bars do not count.

    Args:
        gray: 2-D uint8 frame
        region: Fraction of width and height sampled around the center
    """
    height, width = gray.shape[:2]
    margin = (1.0 - region) / 2.0
    top, bottom = round(height * margin), round(height * (1.0 - margin))
    left, right = round(width * margin), round(width * (1.0 - margin))
    roi = gray[top:bottom, left:right]
    if roi.size == 0:
        roi = gray
    _, stddev = cv2.meanStdDev(roi)
    return float(stddev[0][0])


def is_valid_image(gray: np.ndarray, min_stddev: float = 5.0, region: float = 0.8) -> bool:
    """
    Reject near-uniform frames.

    Returns:
        False for blank, black or single-colour frames (or on error)
    """
    try:
        std_val = luminance_stddev(gray, region)
    except Exception as e:
        logger.error(f"Image quality check failed: {e}")
        return False

    if std_val < min_stddev:
        logger.debug(f"Invalid frame: stdDev={std_val:.2f} (too low)")
        return False
    return True
