"""
Capture Gate
============

Per-frame admission control sitting in the capture transport's callback.

This module provides the CaptureGate class which:
    - Drops frames while a frame is still being processed (backpressure)
    - Enforces a minimum interval between admitted frames
    - Drops frames whose 9-point signature equals the last admitted one
    - Copies admitted pixels into an owned buffer and hands them to the
      single processing worker

Design Rules:
    - on_frame() never blocks and never raises to the caller
    - Checks run strictly in order and the first failing check drops
    - Rate-limit and dedup state change only when a frame is admitted
    - The busy flag is set before submission and cleared by the worker in a
      finally block, including when processing fails
"""

import logging
import time
from typing import Callable, Optional, Protocol

from screenwatch.capture.frame import BYTES_PER_PIXEL, RawFrame
from screenwatch.capture.signature import frame_signature
from screenwatch.config import LiveConfig


logger = logging.getLogger(__name__)


class FrameSink(Protocol):
    """Single-worker consumer of admitted frames."""

    def submit(self, frame: RawFrame, on_done: Callable[[], None]) -> None:
        """
        Queue a frame for processing.

        on_done must be called exactly once after the frame has been
        handled, whatever the outcome.
        """
        ...


class CaptureGateMetrics:
    """Metrics for CaptureGate observability."""

    __slots__ = (
        "frames_received",
        "frames_admitted",
        "dropped_stopped",
        "dropped_busy",
        "dropped_rate",
        "dropped_duplicate",
        "dropped_size_mismatch",
        "dropped_error",
        "last_signature",
    )

    def __init__(self) -> None:
        self.frames_received: int = 0
        self.frames_admitted: int = 0
        self.dropped_stopped: int = 0
        self.dropped_busy: int = 0
        self.dropped_rate: int = 0
        self.dropped_duplicate: int = 0
        self.dropped_size_mismatch: int = 0
        self.dropped_error: int = 0
        self.last_signature: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_received": self.frames_received,
            "frames_admitted": self.frames_admitted,
            "dropped_stopped": self.dropped_stopped,
            "dropped_busy": self.dropped_busy,
            "dropped_rate": self.dropped_rate,
            "dropped_duplicate": self.dropped_duplicate,
            "dropped_size_mismatch": self.dropped_size_mismatch,
            "dropped_error": self.dropped_error,
            "last_signature": self.last_signature,
        }


class CaptureGate:
    """
    Admission gate between the capture transport and the frame processor.

    Attributes:
        sink: Single-worker frame consumer
        live_config: Source of detect_per_second, read on every frame
        default_interval_ms: Interval used when detect_per_second <= 0
        metrics: Operational metrics

    Example:
        gate = CaptureGate(sink=processor, live_config=live)

        # From the capture thread
        gate.on_frame(buffer, 1080, 2400, scale_hint=1)

        # On shutdown
        gate.stop()
    """

    def __init__(
        self,
        sink: FrameSink,
        live_config: LiveConfig,
        default_interval_ms: int = 500,
        stats_log_interval_sec: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize capture gate.

        Args:
            sink: Frame consumer with a single worker
            live_config: Live configuration (detection rate)
            default_interval_ms: Fallback admission interval
            stats_log_interval_sec: Interval between stats log lines
            clock: Wall-clock source in seconds
        """
        self.sink = sink
        self.live_config = live_config
        self.default_interval_ms = default_interval_ms
        self.stats_log_interval_sec = stats_log_interval_sec
        self._clock = clock

        # State
        self._running: bool = True
        self._busy: bool = False
        self._last_admit_time: Optional[float] = None
        self._last_signature: Optional[int] = None
        self._last_stats_time: float = 0.0

        # Metrics
        self.metrics = CaptureGateMetrics()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def busy(self) -> bool:
        """Whether a frame is queued or being processed."""
        return self._busy

    @property
    def interval_ms(self) -> float:
        """Current minimum time between admissions."""
        rate = self.live_config.detect_per_second
        if rate > 0:
            return 1000.0 / rate
        return float(self.default_interval_ms)

    def stop(self) -> None:
        """Stop admitting frames."""
        self._running = False
        logger.info("CaptureGate stopped")

    def on_frame(
        self,
        pixels,
        width: int,
        height: int,
        scale_hint: int = 1,
    ) -> bool:
        """
        Admission entry point called by the capture transport.

        Args:
            pixels: RGBA buffer (bytes, bytearray, memoryview or anything
                exposing the buffer protocol)
            width: Frame width
            height: Frame height
            scale_hint: 1 full resolution, 2 already halved

        Returns:
            True if the frame was admitted for processing
        """
        self.metrics.frames_received += 1

        if not self._running:
            self.metrics.dropped_stopped += 1
            return False

        # 1. Backpressure
        if self._busy:
            self.metrics.dropped_busy += 1
            if self.metrics.dropped_busy % 50 == 0:
                logger.debug("[Skip] Previous frame still processing")
            return False

        now = self._clock()
        self._maybe_log_stats(now)

        # 2. Rate limit against the last admitted frame
        interval_ms = self.interval_ms
        if self._last_admit_time is not None:
            elapsed_ms = (now - self._last_admit_time) * 1000.0
            if elapsed_ms < interval_ms:
                self.metrics.dropped_rate += 1
                if self.metrics.dropped_rate % 100 == 0:
                    logger.debug(
                        f"[Skip] Rate limit: {elapsed_ms:.0f}ms < {interval_ms:.0f}ms"
                    )
                return False

        # 3. Signature
        try:
            view = memoryview(pixels).cast("B")
            signature = frame_signature(view, width, height)
        except Exception as e:
            self.metrics.dropped_error += 1
            logger.error(f"[Skip] Signature calculation failed: {e}")
            return False

        # 4. Dedup
        if signature == self._last_signature:
            self.metrics.dropped_duplicate += 1
            if self.metrics.dropped_duplicate % 50 == 0:
                logger.debug(f"[Skip] Duplicate frame (signature: {signature})")
            return False

        # 5. Owned copy
        expected_size = width * height * BYTES_PER_PIXEL
        if len(view) < expected_size:
            self.metrics.dropped_size_mismatch += 1
            logger.error(
                f"[Skip] Buffer too small: expected={expected_size}, "
                f"actual={len(view)}, size={width}x{height}"
            )
            return False
        try:
            frame = RawFrame(
                width=width,
                height=height,
                pixels=view[:expected_size].tobytes(),
                timestamp=now,
                scale_hint=scale_hint,
            )
        except Exception as e:
            self.metrics.dropped_error += 1
            logger.error(f"[Skip] Buffer copy failed: {e}")
            return False

        # 6. Commit admission state
        self._last_signature = signature
        self._last_admit_time = now
        self.metrics.last_signature = signature
        self.metrics.frames_admitted += 1
        logger.debug(f"[Process] Frame accepted: {width}x{height}, signature={signature}")

        # 7. Hand off to the single worker
        self._busy = True
        try:
            self.sink.submit(frame, self._release)
        except Exception as e:
            self._release()
            self.metrics.dropped_error += 1
            logger.error(f"[Skip] Frame submission failed: {e}")
            return False

        return True

    def _release(self) -> None:
        self._busy = False

    def _maybe_log_stats(self, now: float) -> None:
        if now - self._last_stats_time > self.stats_log_interval_sec:
            self._last_stats_time = now
            logger.info(
                f"[Stats] received={self.metrics.frames_received}, "
                f"admitted={self.metrics.frames_admitted}, "
                f"running={self._running}, busy={self._busy}"
            )
