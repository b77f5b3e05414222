"""
Frame Processor
===============

Single-worker consumer of admitted frames.

Per frame, in order:
    1. No templates loaded -> return before any image work
    2. Pixels -> RGBA array, downscaled for matching if needed
    3. Grayscale + quality gate (blank frames are dropped)
    4. Periodic force save of the full resolution frame
    5. Match cooldown after the last match
    6. Template search, persisting the frame on a match

Design Rules:
    - Exactly one frame is processed at a time (one worker thread)
    - The capture gate's busy flag is released in a finally block
    - "now" is the frame's admission timestamp, so results do not depend
      on how long the frame waited in the queue
    - Errors are logged and counted; nothing propagates to the capture path
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from typing import Callable, Optional

from screenwatch.capture.frame import RawFrame
from screenwatch.config import LiveConfig, ProcessingConfig
from screenwatch.matching.matcher import MultiScaleMatcher
from screenwatch.matching.templates import TemplateStore
from screenwatch.processing.quality import (
    decode_rgba,
    downscale_for_matching,
    is_valid_image,
    to_grayscale,
)
from screenwatch.storage.artifacts import FORCED_TAG, ArtifactWriter


logger = logging.getLogger(__name__)


class ProcessOutcome(str, Enum):
    """What happened to one frame."""

    SKIPPED_NO_TEMPLATES = "skipped_no_templates"
    BLANK = "blank"
    COOLDOWN = "cooldown"
    NO_MATCH = "no_match"
    MATCHED = "matched"
    ERROR = "error"


class ProcessorMetrics:
    """Metrics for FrameProcessor observability."""

    __slots__ = (
        "frames_processed",
        "skipped_no_templates",
        "blank_frames",
        "cooldown_skips",
        "matches",
        "forced_saves",
        "errors",
        "last_outcome",
    )

    def __init__(self) -> None:
        self.frames_processed: int = 0
        self.skipped_no_templates: int = 0
        self.blank_frames: int = 0
        self.cooldown_skips: int = 0
        self.matches: int = 0
        self.forced_saves: int = 0
        self.errors: int = 0
        self.last_outcome: Optional[ProcessOutcome] = None

    def record(self, outcome: ProcessOutcome) -> None:
        self.frames_processed += 1
        self.last_outcome = outcome
        if outcome is ProcessOutcome.SKIPPED_NO_TEMPLATES:
            self.skipped_no_templates += 1
        elif outcome is ProcessOutcome.BLANK:
            self.blank_frames += 1
        elif outcome is ProcessOutcome.COOLDOWN:
            self.cooldown_skips += 1
        elif outcome is ProcessOutcome.MATCHED:
            self.matches += 1
        elif outcome is ProcessOutcome.ERROR:
            self.errors += 1

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_processed": self.frames_processed,
            "skipped_no_templates": self.skipped_no_templates,
            "blank_frames": self.blank_frames,
            "cooldown_skips": self.cooldown_skips,
            "matches": self.matches,
            "forced_saves": self.forced_saves,
            "errors": self.errors,
            "last_outcome": self.last_outcome.value if self.last_outcome else None,
        }


class FrameProcessor:
    """
    Quality gate, force save, cooldown and matching for admitted frames.

    Implements the capture gate's FrameSink contract.

    Attributes:
        store: Template store (checked for emptiness, watched for swaps)
        matcher: Multi-scale matcher
        writer: Artifact writer for matched and forced frames
        live_config: Source of match_cooldown_ms
        config: Static processing settings
        metrics: Operational metrics

    Example:
        processor = FrameProcessor(store, matcher, writer, live, settings.processing)
        gate = CaptureGate(sink=processor, live_config=live)
        ...
        processor.shutdown()
    """

    def __init__(
        self,
        store: TemplateStore,
        matcher: MultiScaleMatcher,
        writer: ArtifactWriter,
        live_config: LiveConfig,
        config: Optional[ProcessingConfig] = None,
    ) -> None:
        self.store = store
        self.matcher = matcher
        self.writer = writer
        self.live_config = live_config
        self.config = config or ProcessingConfig()

        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="frame-processor",
        )
        self._accepting: bool = True
        self._inflight: Optional[Future] = None
        self._lock = threading.Lock()

        # Timestamps in seconds; 0 means "never"
        self._last_force_save: float = 0.0
        self._last_match_time: float = 0.0

        self.metrics = ProcessorMetrics()
        self.store.subscribe(self._on_templates_swapped)

    @property
    def accepting(self) -> bool:
        return self._accepting

    @property
    def last_match_time(self) -> float:
        return self._last_match_time

    def submit(self, frame: RawFrame, on_done: Callable[[], None]) -> None:
        """
        Queue a frame on the single worker.

        on_done runs in a finally block after processing. When the
        processor no longer accepts work the frame is dropped and on_done
        runs immediately.
        """
        with self._lock:
            if not self._accepting:
                logger.debug("Processor shut down, dropping frame")
                on_done()
                return
            self._inflight = self._executor.submit(self._run, frame, on_done)

    def _run(self, frame: RawFrame, on_done: Callable[[], None]) -> ProcessOutcome:
        try:
            return self.process(frame)
        finally:
            on_done()

    def process(self, frame: RawFrame) -> ProcessOutcome:
        """
        Process one frame synchronously.

        Returns:
            ProcessOutcome describing what happened
        """
        try:
            outcome = self._process(frame)
        except Exception as e:
            logger.error(f"Frame processing failed ({frame!r}): {e}")
            outcome = ProcessOutcome.ERROR
        self.metrics.record(outcome)
        return outcome

    def _process(self, frame: RawFrame) -> ProcessOutcome:
        if self.store.is_empty:
            logger.debug("No templates loaded, skipping frame")
            return ProcessOutcome.SKIPPED_NO_TEMPLATES

        now = frame.timestamp

        rgba = decode_rgba(frame)
        small, _ = downscale_for_matching(
            rgba,
            frame.scale_hint,
            self.config.max_frame_dimension,
        )
        gray = to_grayscale(small)

        if not is_valid_image(gray, self.config.min_stddev, self.config.quality_region):
            logger.debug("Invalid or blank frame, skipping")
            return ProcessOutcome.BLANK

        if now - self._last_force_save > self.config.force_save_interval_sec:
            logger.info("Force saving frame (periodic)")
            if self.writer.save(rgba, FORCED_TAG) is not None:
                self.metrics.forced_saves += 1
            self._last_force_save = now

        cooldown_sec = self.live_config.match_cooldown_ms / 1000.0
        if self._last_match_time > 0 and now - self._last_match_time < cooldown_sec:
            logger.debug(
                f"In cooldown, {cooldown_sec - (now - self._last_match_time):.1f}s left"
            )
            return ProcessOutcome.COOLDOWN

        result = self.matcher.match(gray)
        if result is None:
            return ProcessOutcome.NO_MATCH

        self.writer.save(rgba, result.template_name)
        self._last_match_time = now
        return ProcessOutcome.MATCHED

    def _on_templates_swapped(self) -> None:
        template_set = self.store.snapshot()
        logger.info(
            f"Templates changed: version={template_set.version}, "
            f"count={len(template_set)}"
        )

    def shutdown(self, grace_sec: Optional[float] = None) -> bool:
        """
        Stop accepting frames and wind down the worker.

        The in-flight frame gets grace_sec to finish; queued frames that
        have not started are cancelled. A running Python thread cannot be
        interrupted, so a frame still running after the grace period is
        left to finish in the background.

        Returns:
            True if the worker finished within the grace period
        """
        grace = self.config.shutdown_grace_sec if grace_sec is None else grace_sec
        with self._lock:
            self._accepting = False
            inflight = self._inflight

        finished = True
        if inflight is not None and not inflight.done():
            try:
                inflight.result(timeout=grace)
            except FutureTimeoutError:
                finished = False
                logger.warning(f"Frame still processing after {grace:.1f}s grace period")
            except Exception as e:
                logger.error(f"In-flight frame failed during shutdown: {e}")

        self._executor.shutdown(wait=finished, cancel_futures=True)
        self.store.unsubscribe(self._on_templates_swapped)
        logger.info("FrameProcessor stopped")
        return finished
