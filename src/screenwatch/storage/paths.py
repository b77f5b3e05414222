"""
Storage Paths
=============

Resolution of the local storage layout.

Layout:
    <base>/<root>/Templates/*.{png,jpg}
    <base>/<root>/<screenshotDir>/<YYYYMMDD>/capture_<template>_<timestamp>.png
    <base>/<root>/<videoDir>/...
    <app_dir>/Logs/<prefix>_<timestamp>.log
    <app_dir>/monitor_config_default.json

<base> is the external storage directory when preferred and writable,
otherwise the internal base directory. Screenshot/video folder names and
the external preference come from LiveConfig, so a remote config change is
picked up on the next call. Every accessor creates its directory.
"""

import logging
import os
from pathlib import Path

from screenwatch.config import LiveConfig, StorageConfig


logger = logging.getLogger(__name__)


class StoragePaths:
    """
    Resolves local directories for templates, artifacts and logs.

    Attributes:
        storage: Static storage settings
        live_config: Live folder names and external storage preference
    """

    STAGING_DIR_NAME = ".templates_staging"
    LOG_DIR_NAME = "Logs"

    def __init__(self, storage: StorageConfig, live_config: LiveConfig) -> None:
        self.storage = storage
        self.live_config = live_config

    def base_dir(self) -> Path:
        """External storage when preferred and writable, else internal."""
        if self.live_config.prefer_external_storage and self.storage.external_dir:
            external = Path(self.storage.external_dir)
            if external.is_dir() and os.access(external, os.W_OK):
                return external
            logger.debug(f"External storage unavailable, using internal: {external}")
        return Path(self.storage.base_dir)

    def root_dir(self) -> Path:
        return self._ensure(self.base_dir() / self.storage.root_dir_name)

    def template_dir(self) -> Path:
        return self._ensure(self.root_dir() / self.storage.template_dir_name)

    def staging_dir(self) -> Path:
        return self._ensure(self.root_dir() / self.STAGING_DIR_NAME)

    def screenshot_dir(self) -> Path:
        return self._ensure(self.root_dir() / self.live_config.screenshot_dir)

    def video_dir(self) -> Path:
        return self._ensure(self.root_dir() / self.live_config.video_dir)

    def app_dir(self) -> Path:
        return self._ensure(Path(self.storage.app_dir))

    def log_dir(self) -> Path:
        return self._ensure(self.app_dir() / self.LOG_DIR_NAME)

    def config_cache_path(self) -> Path:
        return self.app_dir() / self.storage.config_cache_name

    @staticmethod
    def _ensure(path: Path) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        return path
