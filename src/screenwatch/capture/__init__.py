"""
Capture Module
==============

Frame admission between the capture transport and the processing worker.

This module provides the ingestion layer for ScreenWatch:
    - RawFrame: Owned copy of an admitted RGBA frame
    - frame_signature: 9-point dedup signature
    - CaptureGate: Non-blocking admission (backpressure, rate, dedup)
    - VideoFileSource: Demo transport that replays a video file

Example:
    from screenwatch.capture import CaptureGate

    gate = CaptureGate(sink=processor, live_config=live)
    gate.on_frame(pixels, width, height)
"""

from screenwatch.capture.frame import BYTES_PER_PIXEL, RawFrame
from screenwatch.capture.signature import frame_signature, sample_offsets
from screenwatch.capture.gate import CaptureGate, CaptureGateMetrics, FrameSink
from screenwatch.capture.source import VideoFileSource


__all__ = [
    "BYTES_PER_PIXEL",
    "RawFrame",
    "frame_signature",
    "sample_offsets",
    "CaptureGate",
    "CaptureGateMetrics",
    "FrameSink",
    "VideoFileSource",
]
