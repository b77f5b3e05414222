"""
Screen Monitor
==============

Composition root wiring the capture, matching, storage and sync components
together from Settings.

Startup:
    1. Load local templates
    2. Open the capture gate (and the optional demo video source)
    3. Register and start the sync jobs on the running event loop

Shutdown (order matters):
    1. Stop the capture gate and source
    2. Give the in-flight frame its grace period, cancel queued work
    3. Close the sync manager, then stop the sync jobs, waiting a grace
       period for a run in progress
    4. Release the templates
"""

import asyncio
import logging
import socket
import time
from typing import Optional

from screenwatch.capture.gate import CaptureGate
from screenwatch.capture.source import VideoFileSource
from screenwatch.config import LiveConfig, Settings
from screenwatch.matching.correlation import CorrelationPrimitive
from screenwatch.matching.matcher import MultiScaleMatcher
from screenwatch.matching.templates import TemplateStore
from screenwatch.processing.processor import FrameProcessor
from screenwatch.storage.artifacts import ArtifactWriter
from screenwatch.storage.eviction import StorageEvictor
from screenwatch.storage.paths import StoragePaths
from screenwatch.sync.manager import ClientFactory, SyncManager
from screenwatch.sync.scheduler import JobScheduler
from screenwatch.sync.uploader import ArtifactUploader


logger = logging.getLogger(__name__)


MINUTE = 60.0


class ScreenMonitor:
    """
    Owns every long-lived component of the service.

    Attributes:
        settings: Static settings
        live_config: Remotely tunable settings shared by all components
        store, matcher, writer, processor, gate: Frame pipeline
        sync, uploader, evictor, scheduler: Background maintenance

    Example:
        monitor = ScreenMonitor(load_config())
        await monitor.start()
        monitor.gate.on_frame(pixels, width, height)
        await monitor.shutdown()
    """

    def __init__(
        self,
        settings: Settings,
        live_config: Optional[LiveConfig] = None,
        correlation: Optional[CorrelationPrimitive] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.settings = settings
        if not settings.app.device_id:
            settings.app.device_id = socket.gethostname()
        self.live_config = live_config or LiveConfig.from_settings(settings)

        self.paths = StoragePaths(settings.storage, self.live_config)

        # Frame pipeline
        self.store = TemplateStore(
            template_dir=self.paths.template_dir,
            max_dimension=settings.matching.max_template_dimension,
        )
        self.matcher = MultiScaleMatcher(
            self.store,
            self.live_config,
            correlation=correlation,
            min_template_size=settings.matching.min_template_size,
        )
        self.writer = ArtifactWriter(self.paths)
        self.processor = FrameProcessor(
            self.store,
            self.matcher,
            self.writer,
            self.live_config,
            settings.processing,
        )
        self.gate = CaptureGate(
            sink=self.processor,
            live_config=self.live_config,
            default_interval_ms=settings.capture.default_interval_ms,
            stats_log_interval_sec=settings.capture.stats_log_interval_sec,
        )
        self.source: Optional[VideoFileSource] = None
        if settings.capture.source_path:
            self.source = VideoFileSource(settings.capture.source_path, self.gate)

        # Background maintenance
        self.sync = SyncManager(
            settings,
            self.live_config,
            self.paths,
            self.store,
            client_factory=client_factory,
        )
        self.uploader = ArtifactUploader(
            self.paths,
            settings.sync,
            client_provider=lambda: self.sync.client,
        )
        self.evictor = StorageEvictor(
            self.paths,
            self.live_config,
            min_retention_sec=settings.storage.min_retention_sec,
        )
        self.scheduler = JobScheduler(stop_grace_sec=settings.sync.job_stop_grace_sec)

        self._started_at: float = 0.0
        self._started: bool = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def uptime_sec(self) -> float:
        return time.time() - self._started_at if self._started_at else 0.0

    def register_jobs(self) -> None:
        sync = self.settings.sync
        self.scheduler.add_job("config_refresh", sync.config_refresh_minutes * MINUTE, self.sync.refresh_config)
        self.scheduler.add_job("upload_images", sync.image_upload_minutes * MINUTE, self.uploader.upload_images)
        self.scheduler.add_job("upload_videos", sync.video_upload_minutes * MINUTE, self.uploader.upload_videos)
        self.scheduler.add_job("upload_logs", sync.log_upload_minutes * MINUTE, self.uploader.upload_logs)
        self.scheduler.add_job("evict_storage", sync.eviction_minutes * MINUTE, self.evictor.evict)

    async def start(self) -> None:
        """Load templates, open the pipeline and start the sync jobs."""
        self._started_at = time.time()
        logger.info(
            f"Starting {self.settings.app.name} {self.settings.app.version} "
            f"(device={self.settings.app.device_id})"
        )

        await asyncio.to_thread(self.store.reload)
        if self.store.is_empty:
            logger.warning(f"No templates in {self.paths.template_dir()}, matching idle")

        if self.settings.sync.enabled:
            self.register_jobs()
            self.scheduler.start()
        else:
            logger.info("Sync disabled, no background jobs")

        if self.source is not None:
            self.source.start()

        self._started = True
        logger.info("ScreenMonitor started")

    async def shutdown(self) -> None:
        """Stop everything in dependency order."""
        logger.info("Shutting down gracefully...")

        self.gate.stop()
        if self.source is not None:
            self.source.stop()

        finished = await asyncio.to_thread(self.processor.shutdown)
        if not finished:
            logger.warning("Frame worker did not finish in time, pending frames cancelled")

        self.sync.close()
        if not await self.scheduler.stop():
            logger.warning("Sync jobs still running after grace period, left to finish")
        self.store.clear()

        self._started = False
        logger.info("Shutdown complete")

    def metrics(self) -> dict:
        return {
            "uptime_seconds": round(self.uptime_sec, 1),
            "templates": {
                "version": self.store.version,
                "count": len(self.store.snapshot()),
            },
            "gate": self.gate.metrics.to_dict(),
            "processor": self.processor.metrics.to_dict(),
            "matcher": self.matcher.metrics.to_dict(),
            "artifacts": {
                "saved": self.writer.saved_count,
                "failed": self.writer.failed_count,
            },
            "sync": self.sync.metrics.to_dict(),
            "jobs": self.scheduler.to_dict(),
        }
