"""
ScreenWatch Configuration
=========================

This module handles configuration loading for the screen monitor.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    SCREENWATCH_DETECT_PER_SECOND -> capture.detect_per_second
    SCREENWATCH_SOURCE            -> capture.source_path
    SCREENWATCH_MATCH_THRESHOLD   -> matching.match_threshold
    SCREENWATCH_BASE_DIR          -> storage.base_dir
    SCREENWATCH_APP_DIR           -> storage.app_dir
    SCREENWATCH_DEVICE_ID         -> app.device_id
    SCREENWATCH_SYNC_ENABLED      -> sync.enabled
    SCREENWATCH_PORT              -> server.port
    SCREENWATCH_LOG_LEVEL         -> logging.level
    PORT                          -> server.port (container platforms)

Two layers of configuration exist:
    - Settings: static process configuration, loaded once at startup.
    - LiveConfig: the subset that a remote config document may change at
      runtime. It is built from Settings and handed to every component
      that reads it, so a remote refresh is visible on the next frame.

Example:
    from screenwatch.config import load_config, LiveConfig

    settings = load_config()
    live = LiveConfig.from_settings(settings)
    print(live.match_threshold)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AppConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="screenwatch", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")
    device_id: str = Field(
        default="",
        description="Device identifier appended to the remote upload directory",
    )


class CaptureConfig(BaseModel):
    """Frame admission configuration."""

    detect_per_second: int = Field(
        default=2,
        description="Admitted frames per second (<= 0 falls back to default interval)",
    )
    default_interval_ms: int = Field(
        default=500,
        gt=0,
        description="Admission interval used when detect_per_second <= 0",
    )
    stats_log_interval_sec: float = Field(
        default=10.0,
        gt=0,
        description="Interval between gate statistics log lines",
    )
    source_path: Optional[str] = Field(
        default=None,
        description="Optional video file fed through the gate by the demo source",
    )


class MatchingConfig(BaseModel):
    """Template matching configuration."""

    match_threshold: float = Field(
        default=0.92,
        gt=0,
        lt=1.0,
        description="Strong match threshold for normalized correlation",
    )
    weak_match_margin: float = Field(
        default=0.04,
        ge=0,
        description="Scores within this margin below threshold are weak matches",
    )
    early_exit_margin: float = Field(
        default=0.20,
        ge=0,
        description="Coarse scores this far below threshold skip the fine search",
    )
    min_template_size: int = Field(
        default=30,
        ge=1,
        description="Minimum scaled template edge in pixels",
    )
    max_template_dimension: int = Field(
        default=3200,
        ge=1,
        description="Templates with a longer edge are downscaled at load time",
    )
    match_cooldown_ms: int = Field(
        default=5000,
        ge=0,
        description="Matching is suspended this long after a match",
    )


class ProcessingConfig(BaseModel):
    """Frame processor configuration."""

    max_frame_dimension: int = Field(
        default=2160,
        ge=1,
        description="Full resolution frames above this edge are downscaled",
    )
    min_stddev: float = Field(
        default=5.0,
        ge=0,
        description="Luminance stddev below which a frame counts as blank",
    )
    quality_region: float = Field(
        default=0.8,
        gt=0,
        le=1.0,
        description="Central fraction of the frame sampled by the quality gate",
    )
    force_save_interval_sec: float = Field(
        default=1800.0,
        gt=0,
        description="A valid frame is saved at least this often",
    )
    shutdown_grace_sec: float = Field(
        default=2.0,
        ge=0,
        description="Time the in-flight frame gets to finish on shutdown",
    )


class StorageConfig(BaseModel):
    """Local storage layout and quota configuration."""

    base_dir: str = Field(
        default="./data",
        description="Internal storage base directory",
    )
    app_dir: str = Field(
        default="./data/app",
        description="Application internal directory (logs, cached config)",
    )
    external_dir: Optional[str] = Field(
        default=None,
        description="External storage base used when preferred and writable",
    )
    root_dir_name: str = Field(default="PingerLove", description="Root folder name")
    screenshot_dir: str = Field(default="ScreenCaptures", description="Image folder")
    video_dir: str = Field(default="ScreenRecord", description="Video folder")
    template_dir_name: str = Field(default="Templates", description="Template folder")
    prefer_external_storage: bool = Field(default=False)
    max_storage_mb: int = Field(
        default=1024,
        ge=1,
        description="Quota for images and videos in MiB",
    )
    min_retention_sec: float = Field(
        default=300.0,
        ge=0,
        description="Files younger than this are never evicted",
    )
    config_cache_name: str = Field(
        default="monitor_config_default.json",
        description="Locally cached remote config document",
    )


class SyncConfig(BaseModel):
    """Scheduled synchronization configuration."""

    enabled: bool = Field(default=True, description="Run scheduled sync jobs")
    config_refresh_minutes: float = Field(default=5.0, gt=0)
    image_upload_minutes: float = Field(default=5.0, gt=0)
    video_upload_minutes: float = Field(default=60.0, gt=0)
    log_upload_minutes: float = Field(default=30.0, gt=0)
    eviction_minutes: float = Field(default=24 * 60.0, gt=0)
    image_stable_sec: float = Field(
        default=5.0,
        ge=0,
        description="Images younger than this may still be written",
    )
    video_stable_sec: float = Field(
        default=30.0,
        ge=0,
        description="Videos younger than this may still be recording",
    )
    video_size_check_sec: float = Field(
        default=2.0,
        ge=0,
        description="Gap between the two size samples of a video",
    )
    log_stable_sec: float = Field(default=5.0, ge=0)
    remote_log_dir: str = Field(default="logs", description="Upload sub path for logs")
    job_stop_grace_sec: float = Field(
        default=10.0,
        ge=0,
        description="How long shutdown waits for a sync job that is mid-run",
    )


class TransportConfig(BaseModel):
    """WebDAV transport configuration."""

    connect_timeout_sec: float = Field(default=10.0, gt=0)
    read_timeout_sec: float = Field(default=120.0, gt=0)
    max_retry: int = Field(default=3, ge=1, description="Attempts per transfer")
    retry_delay_sec: float = Field(default=2.0, ge=0)
    large_file_threshold_mb: float = Field(
        default=10.0,
        gt=0,
        description="Uploads above this size get a single attempt",
    )


class ServerConfig(BaseModel):
    """Status server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")
    file_enabled: bool = Field(default=True, description="Write session log files")
    file_prefix: str = Field(default="rustdesk", description="Session log file prefix")
    max_file_bytes: int = Field(
        default=1024 * 1024,
        ge=1024,
        description="Session log files are rotated past this size",
    )


class Settings(BaseModel):
    """
    Main settings class for ScreenWatch.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    app: AppConfig = Field(default_factory=AppConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class LiveConfig(BaseModel):
    """
    Runtime-tunable configuration shared by the pipeline components.

    Fields are replaced individually by the sync manager when a remote
    config document changes. Assignment is validated, so a bad remote
    value raises instead of silently corrupting live state.
    """

    model_config = ConfigDict(validate_assignment=True)

    detect_per_second: int = 2
    match_threshold: float = Field(default=0.92, gt=0, lt=1.0)
    weak_match_margin: float = Field(default=0.04, ge=0)
    early_exit_margin: float = Field(default=0.20, ge=0)
    match_cooldown_ms: int = Field(default=5000, ge=0)
    screenshot_dir: str = "ScreenCaptures"
    video_dir: str = "ScreenRecord"
    prefer_external_storage: bool = False
    max_storage_mb: int = Field(default=1024, ge=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LiveConfig":
        """Build the live view from static settings."""
        return cls(
            detect_per_second=settings.capture.detect_per_second,
            match_threshold=settings.matching.match_threshold,
            weak_match_margin=settings.matching.weak_match_margin,
            early_exit_margin=settings.matching.early_exit_margin,
            match_cooldown_ms=settings.matching.match_cooldown_ms,
            screenshot_dir=settings.storage.screenshot_dir,
            video_dir=settings.storage.video_dir,
            prefer_external_storage=settings.storage.prefer_external_storage,
            max_storage_mb=settings.storage.max_storage_mb,
        )


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    # Find config file
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Capture settings
    if env_rate := os.environ.get("SCREENWATCH_DETECT_PER_SECOND"):
        config_data.setdefault("capture", {})["detect_per_second"] = int(env_rate)
    if env_source := os.environ.get("SCREENWATCH_SOURCE"):
        config_data.setdefault("capture", {})["source_path"] = env_source

    # Matching settings
    if env_threshold := os.environ.get("SCREENWATCH_MATCH_THRESHOLD"):
        config_data.setdefault("matching", {})["match_threshold"] = float(env_threshold)

    # Storage settings
    if env_base := os.environ.get("SCREENWATCH_BASE_DIR"):
        config_data.setdefault("storage", {})["base_dir"] = env_base
    if env_app := os.environ.get("SCREENWATCH_APP_DIR"):
        config_data.setdefault("storage", {})["app_dir"] = env_app

    # Identity and sync
    if env_device := os.environ.get("SCREENWATCH_DEVICE_ID"):
        config_data.setdefault("app", {})["device_id"] = env_device
    if env_sync := os.environ.get("SCREENWATCH_SYNC_ENABLED"):
        config_data.setdefault("sync", {})["enabled"] = env_sync.lower() in ("1", "true", "yes")

    # Server settings (container platforms use PORT)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("SCREENWATCH_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("SCREENWATCH_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """
    Configure logging based on settings.

    Installs the console handler and, when enabled, the session log file
    handler under <app_dir>/Logs that the log upload job rotates.
    """
    from screenwatch.logfile import SessionFileHandler

    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    if settings.logging.file_enabled:
        handler = SessionFileHandler(
            log_dir=Path(settings.storage.app_dir) / "Logs",
            prefix=settings.logging.file_prefix,
            max_bytes=settings.logging.max_file_bytes,
        )
        handler.setFormatter(logging.Formatter(
            "%(asctime)s.%(msecs)03d %(levelname).1s/%(name)s [%(threadName)s]: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logging.getLogger().addHandler(handler)
