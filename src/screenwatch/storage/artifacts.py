"""
Artifacts
=========

Persistence and enumeration of local image and video artifacts.

Captured frames are written as PNG into daily subdirectories of the
screenshot folder, named capture_<tag>_<YYYYMMDD_HHMMSS>.png where <tag> is
the template name without its extension, "weak_<template>" for weak
matches, or "forced" for periodic liveness saves.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

import cv2
import numpy as np

from screenwatch.storage.paths import StoragePaths


logger = logging.getLogger(__name__)


IMAGE_EXTENSIONS = (".png", ".jpg")
VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".mkv", ".flv", ".wmv", ".webm")

FORCED_TAG = "forced"


class ArtifactWriteError(Exception):
    """Raised when a frame cannot be encoded or written."""
    pass


def is_image_file(path: Path) -> bool:
    return path.name.lower().endswith(IMAGE_EXTENSIONS)


def is_video_file(path: Path) -> bool:
    return path.name.lower().endswith(VIDEO_EXTENSIONS)


def _walk(directory: Path, predicate: Callable[[Path], bool]) -> List[Path]:
    if not directory.is_dir():
        return []
    return [p for p in directory.rglob("*") if p.is_file() and predicate(p)]


def list_images(directory: Path) -> List[Path]:
    """All image artifacts below a directory, recursively."""
    return _walk(directory, is_image_file)


def list_videos(directory: Path) -> List[Path]:
    """All video artifacts below a directory, recursively."""
    return _walk(directory, is_video_file)


class ArtifactWriter:
    """
    Writes captured frames into the screenshot tree.

    Attributes:
        paths: Storage layout
        saved_count: Frames written since start
        failed_count: Frames that could not be written
    """

    def __init__(
        self,
        paths: StoragePaths,
        clock: Callable[[], datetime] = datetime.now,
        png_compression: int = 3,
    ) -> None:
        self.paths = paths
        self._clock = clock
        self.png_compression = png_compression
        self.saved_count: int = 0
        self.failed_count: int = 0

    def save(self, rgba: np.ndarray, tag: str) -> Optional[Path]:
        """
        Persist an RGBA frame.

        Failures are logged and counted; the frame is discarded.

        Args:
            rgba: (H, W, 4) uint8 frame
            tag: Template name (extension is stripped) or "forced"

        Returns:
            Path of the written file, or None on failure
        """
        try:
            path = self._write(rgba, tag)
        except (ArtifactWriteError, OSError, cv2.error) as e:
            self.failed_count += 1
            logger.error(f"Saving frame tagged '{tag}' failed: {e}")
            return None

        self.saved_count += 1
        logger.info(f"Saved: {path.name}")
        return path

    def _write(self, rgba: np.ndarray, tag: str) -> Path:
        now = self._clock()
        day_dir = self.paths.screenshot_dir() / now.strftime("%Y%m%d")
        day_dir.mkdir(parents=True, exist_ok=True)

        stem = tag.rsplit(".", 1)[0] if "." in tag else tag
        path = day_dir / f"capture_{stem}_{now.strftime('%Y%m%d_%H%M%S')}.png"

        bgr = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGR)
        ok, encoded = cv2.imencode(
            ".png", bgr, [cv2.IMWRITE_PNG_COMPRESSION, self.png_compression]
        )
        if not ok:
            raise ArtifactWriteError(f"PNG encoding failed for {path.name}")

        path.write_bytes(encoded.tobytes())
        return path
