"""
Processing Module
=================

Frame decoding, quality checks and the single-worker frame processor.
"""

from screenwatch.processing.quality import (
    FrameDecodeError,
    decode_rgba,
    downscale_for_matching,
    is_valid_image,
    luminance_stddev,
    to_grayscale,
)
from screenwatch.processing.processor import (
    FrameProcessor,
    ProcessOutcome,
    ProcessorMetrics,
)

__all__ = [
    "FrameDecodeError",
    "decode_rgba",
    "downscale_for_matching",
    "is_valid_image",
    "luminance_stddev",
    "to_grayscale",
    "FrameProcessor",
    "ProcessOutcome",
    "ProcessorMetrics",
]
