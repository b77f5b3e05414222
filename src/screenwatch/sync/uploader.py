"""
Artifact Uploader
=================

Delivers local images, videos and session logs to the bound WebDAV server.

Stability Checks:
    - Images younger than image_stable_sec may still be written: skipped
    - Videos younger than video_stable_sec may still be recording: skipped;
      older ones are sampled twice video_size_check_sec apart and skipped if
      the size changed
    - The session log is force-rotated first, so only closed log files
      older than log_stable_sec are uploaded

A local file is deleted only after the server accepted it. Images and
videos keep their relative directory (e.g. the YYYYMMDD day folder) as the
remote sub path; logs go under the remote log directory.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from screenwatch.config import SyncConfig
from screenwatch.logfile import find_session_handler
from screenwatch.storage.artifacts import list_images, list_videos
from screenwatch.storage.paths import StoragePaths
from screenwatch.sync.webdav import WebDavClient


logger = logging.getLogger(__name__)


LOG_EXTENSION = ".log"


@dataclass
class UploadReport:
    """
    Result of one upload pass.

    Attributes:
        kind: "images", "videos" or "logs"
        scanned: Candidate files found
        uploaded: Files delivered (and deleted locally)
        skipped: Files left for a later pass (unstable or in use)
        failed: Files the server did not accept
    """

    kind: str
    scanned: int = 0
    uploaded: int = 0
    skipped: int = 0
    failed: int = 0
    delivered: List[Path] = field(default_factory=list)


def _default_rotate() -> bool:
    handler = find_session_handler()
    if handler is None:
        return False
    return handler.force_rotate()


def _default_active_log() -> Optional[Path]:
    handler = find_session_handler()
    return handler.current_path if handler else None


class ArtifactUploader:
    """
    Upload jobs for the sync scheduler.

    Attributes:
        paths: Storage layout
        config: Stability windows and remote log directory
    """

    def __init__(
        self,
        paths: StoragePaths,
        config: SyncConfig,
        client_provider: Callable[[], Optional[WebDavClient]],
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        rotate_log: Callable[[], bool] = _default_rotate,
        active_log: Callable[[], Optional[Path]] = _default_active_log,
    ) -> None:
        self.paths = paths
        self.config = config
        self._client_provider = client_provider
        self._clock = clock
        self._sleep = sleep
        self._rotate_log = rotate_log
        self._active_log = active_log

    def _client(self, kind: str) -> Optional[WebDavClient]:
        client = self._client_provider()
        if client is None:
            logger.warning(f"WebDavClient not initialized, skip upload {kind}")
        return client

    def _age(self, path: Path) -> Optional[float]:
        try:
            return self._clock() - path.stat().st_mtime
        except OSError:
            return None

    def upload_images(self) -> UploadReport:
        """Upload every stable image below the screenshot directory."""
        report = UploadReport(kind="images")
        client = self._client("images")
        if client is None:
            return report

        base = self.paths.screenshot_dir()
        files = sorted(list_images(base))
        report.scanned = len(files)
        logger.debug(f"Found {len(files)} images to upload in {base}")

        for path in files:
            age = self._age(path)
            if age is None or age < self.config.image_stable_sec:
                report.skipped += 1
                logger.debug(f"Skip {path.name}: file too new, may be writing")
                continue
            self._deliver(client, base, path, report)

        return report

    def upload_videos(self) -> UploadReport:
        """Upload every finished video below the video directory."""
        report = UploadReport(kind="videos")
        client = self._client("videos")
        if client is None:
            return report

        base = self.paths.video_dir()
        files = sorted(list_videos(base))
        report.scanned = len(files)
        logger.debug(f"Found {len(files)} videos to upload in {base}")

        for path in files:
            age = self._age(path)
            if age is None or age < self.config.video_stable_sec:
                report.skipped += 1
                logger.debug(f"Skip {path.name}: file too new, may be recording")
                continue

            try:
                size_before = path.stat().st_size
                self._sleep(self.config.video_size_check_sec)
                size_after = path.stat().st_size
            except OSError as e:
                report.skipped += 1
                logger.warning(f"Skip {path.name}: {e}")
                continue
            if size_before != size_after:
                report.skipped += 1
                logger.warning(
                    f"Skip {path.name}: file size changed "
                    f"({size_before} -> {size_after}), still recording"
                )
                continue

            logger.debug(f"Try upload video: {path} ({size_after // (1024 * 1024)}MB)")
            self._deliver(client, base, path, report)

        return report

    def upload_logs(self) -> UploadReport:
        """Rotate the session log, then upload closed log files."""
        report = UploadReport(kind="logs")
        client = self._client("logs")
        if client is None:
            return report

        try:
            self._rotate_log()
        except OSError as e:
            logger.error(f"Log rotation failed: {e}")

        log_dir = self.paths.log_dir()
        active = self._active_log()
        files = sorted(
            path for path in log_dir.iterdir()
            if path.is_file() and path.name.endswith(LOG_EXTENSION)
        )
        report.scanned = len(files)

        for path in files:
            if active is not None and path.resolve() == active.resolve():
                report.skipped += 1
                continue
            age = self._age(path)
            if age is None or age < self.config.log_stable_sec:
                report.skipped += 1
                continue

            if client.upload_file(self.config.remote_log_dir, path.name, path, overwrite=False):
                self._remove(path, report)
            else:
                report.failed += 1

        if report.uploaded:
            logger.info(f"Uploaded {report.uploaded} log files")
        return report

    def _deliver(
        self,
        client: WebDavClient,
        base: Path,
        path: Path,
        report: UploadReport,
    ) -> None:
        relative_parent = path.parent.relative_to(base).as_posix()
        sub_path = "" if relative_parent == "." else relative_parent
        if client.upload_file(sub_path, path.name, path, overwrite=True):
            self._remove(path, report)
        else:
            report.failed += 1
            logger.debug(f"Upload failed for {path.name}, will retry next run")

    @staticmethod
    def _remove(path: Path, report: UploadReport) -> None:
        report.uploaded += 1
        report.delivered.append(path)
        try:
            path.unlink()
            logger.debug(f"Uploaded and deleted: {path.name}")
        except OSError as e:
            logger.error(f"Deleting uploaded file {path.name} failed: {e}")
