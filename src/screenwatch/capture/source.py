"""
Video File Source
=================

Demo capture transport that replays a video file through the capture gate.

Real deployments push frames from a screen capture service; this source
stands in for it during local runs and integration checks. Frames are read
with OpenCV on a daemon thread, converted BGR -> RGBA and pushed at the
file's declared frame rate.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Optional

import cv2

from screenwatch.capture.gate import CaptureGate


logger = logging.getLogger(__name__)


class VideoFileSource:
    """
    Replays a video file into a CaptureGate.

    Attributes:
        path: Video file
        gate: Gate receiving the frames
        loop: Restart from the first frame at end of file
        frames_pushed: Frames handed to the gate so far
    """

    def __init__(
        self,
        path: str,
        gate: CaptureGate,
        loop: bool = True,
        fallback_fps: float = 30.0,
    ) -> None:
        self.path = Path(path)
        self.gate = gate
        self.loop = loop
        self.fallback_fps = fallback_fps
        self.frames_pushed: int = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the reader thread."""
        if not self.path.exists():
            raise FileNotFoundError(f"Video source not found: {self.path}")
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="video-source",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"VideoFileSource started: {self.path}")

    def stop(self, timeout: float = 2.0) -> None:
        """Signal the reader thread and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info(f"VideoFileSource stopped after {self.frames_pushed} frames")

    def _run(self) -> None:
        cap = cv2.VideoCapture(str(self.path))
        try:
            if not cap.isOpened():
                logger.error(f"Failed to open video source: {self.path}")
                return

            fps = cap.get(cv2.CAP_PROP_FPS) or self.fallback_fps
            frame_interval = 1.0 / fps
            read_since_rewind = 0

            while not self._stop_event.is_set():
                ok, bgr = cap.read()
                if not ok:
                    if self.loop and read_since_rewind > 0:
                        cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
                        read_since_rewind = 0
                        continue
                    logger.info("Video source reached end of file")
                    break

                read_since_rewind += 1
                started = time.monotonic()
                rgba = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA)
                height, width = rgba.shape[:2]
                self.gate.on_frame(rgba, width, height, scale_hint=1)
                self.frames_pushed += 1

                remaining = frame_interval - (time.monotonic() - started)
                if remaining > 0:
                    self._stop_event.wait(remaining)
        finally:
            cap.release()
