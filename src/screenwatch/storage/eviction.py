"""
Storage Eviction
================

Keeps image and video artifacts under the configured storage quota.

Files are deleted oldest-first (by modification time) until the total size
is back under quota. A file younger than min_retention_sec is never
deleted, even when the quota is still exceeded: since the list is sorted,
the first such file ends the pass and a persistent-overflow warning is
logged instead.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Tuple

from screenwatch.config import LiveConfig
from screenwatch.storage.artifacts import list_images, list_videos
from screenwatch.storage.paths import StoragePaths


logger = logging.getLogger(__name__)


BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True, slots=True)
class EvictionReport:
    """
    Result of one eviction pass.

    Attributes:
        deleted: Files removed, oldest first
        freed_bytes: Bytes removed
        remaining_bytes: Total artifact size after the pass
        quota_bytes: Quota in effect
        over_quota: Quota still exceeded after the pass
    """

    deleted: Tuple[Path, ...]
    freed_bytes: int
    remaining_bytes: int
    quota_bytes: int
    over_quota: bool


class StorageEvictor:
    """
    Oldest-first quota enforcement with a minimum retention age.

    Attributes:
        paths: Storage layout
        live_config: Source of max_storage_mb
        min_retention_sec: Files younger than this are never deleted
    """

    def __init__(
        self,
        paths: StoragePaths,
        live_config: LiveConfig,
        min_retention_sec: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.paths = paths
        self.live_config = live_config
        self.min_retention_sec = min_retention_sec
        self._clock = clock

    def collect(self) -> List[Tuple[Path, float, int]]:
        """(path, mtime, size) of every artifact, oldest first."""
        files = list_images(self.paths.screenshot_dir()) + list_videos(self.paths.video_dir())
        entries = []
        for path in files:
            try:
                stat = path.stat()
            except OSError:
                continue
            entries.append((path, stat.st_mtime, stat.st_size))
        entries.sort(key=lambda entry: entry[1])
        return entries

    def evict(self) -> EvictionReport:
        """Run one eviction pass."""
        quota_bytes = self.live_config.max_storage_mb * BYTES_PER_MB
        entries = self.collect()
        total = sum(size for _, _, size in entries)
        now = self._clock()

        deleted: List[Path] = []
        freed = 0

        for path, mtime, size in entries:
            if total <= quota_bytes:
                break
            age = now - mtime
            if age < self.min_retention_sec:
                logger.warning(
                    f"AutoClean: storage over quota "
                    f"({total / BYTES_PER_MB:.1f}MB > {quota_bytes / BYTES_PER_MB:.0f}MB) "
                    f"but remaining files are younger than {self.min_retention_sec:.0f}s"
                )
                break
            try:
                path.unlink()
            except OSError as e:
                logger.error(f"AutoClean: failed to delete {path}: {e}")
                continue
            total -= size
            freed += size
            deleted.append(path)
            logger.debug(f"AutoClean: deleted {path}, size={size}")

        if deleted:
            logger.info(
                f"AutoClean: deleted {len(deleted)} files, "
                f"remain size={total / BYTES_PER_MB:.1f}MB"
            )

        return EvictionReport(
            deleted=tuple(deleted),
            freed_bytes=freed,
            remaining_bytes=total,
            quota_bytes=quota_bytes,
            over_quota=total > quota_bytes,
        )
