"""
Frame Data Model
=================

Internal frame representation handed from the capture gate to the frame
processor.

Design Rules:
    - The gate copies the transport's buffer; a RawFrame never aliases
      memory the capture transport may reuse
    - Pixel layout is RGBA, 4 bytes per pixel, row-major, no padding
    - Does NOT decode or convert pixels
"""

from dataclasses import dataclass


BYTES_PER_PIXEL = 4


@dataclass(frozen=True, slots=True)
class RawFrame:
    """
    Admitted frame owned by the processing queue.

    It is immutable (frozen) to prevent accidental modification.

    Attributes:
        width: Frame width in pixels
        height: Frame height in pixels
        pixels: RGBA bytes, exactly width * height * 4 long
        timestamp: Wall-clock admission time in seconds
        scale_hint: 1 for full resolution, 2 when the capture layer already
            halved the resolution
    """

    width: int
    height: int
    pixels: bytes
    timestamp: float
    scale_hint: int = 1

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"invalid frame size {self.width}x{self.height}")
        if len(self.pixels) != self.width * self.height * BYTES_PER_PIXEL:
            raise ValueError(
                f"pixel buffer is {len(self.pixels)} bytes, expected "
                f"{self.width * self.height * BYTES_PER_PIXEL}"
            )

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixels."""
        return (
            f"RawFrame(width={self.width}, height={self.height}, "
            f"timestamp={self.timestamp:.3f}, scale_hint={self.scale_hint})"
        )
