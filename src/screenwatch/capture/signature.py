"""
Frame Signature
===============

Constant-time fingerprint of a raw RGBA frame for duplicate detection.

Nine pixels are sampled (top, middle and bottom rows crossed with the left,
center and right columns). Each sample contributes its luminance
(r + g + b) // 3 shifted left by 7 bits per sample index. Samples overlap
by one bit, so distinct frames can share a signature; that risk is accepted
in exchange for a cost that does not depend on resolution.

The signature is only ever compared for equality with the previous one.
"""

from typing import Tuple


BITS_PER_SAMPLE = 7


def sample_offsets(width: int, height: int) -> Tuple[int, ...]:
    """Pixel indices of the nine sample points, row by row."""
    half_width = width // 2
    half_height = height // 2
    last_row = height - 1
    last_col = width - 1
    return (
        0, half_width, last_col,
        half_height * width, half_height * width + half_width, half_height * width + last_col,
        last_row * width, last_row * width + half_width, last_row * width + last_col,
    )


def frame_signature(buffer: memoryview, width: int, height: int) -> int:
    """
    Compute the 9-point signature of an RGBA buffer.

    Samples that fall outside the buffer are left out rather than raising.

    Args:
        buffer: Byte view of the RGBA pixels
        width: Frame width
        height: Frame height

    Returns:
        Signature as a non-negative int
    """
    size = len(buffer)
    signature = 0
    for index, pixel in enumerate(sample_offsets(width, height)):
        offset = pixel * 4
        if offset + 2 < size:
            gray = (buffer[offset] + buffer[offset + 1] + buffer[offset + 2]) // 3
            signature |= gray << (index * BITS_PER_SAMPLE)
    return signature
