"""
ScreenWatch
===========

Screen frame monitor with multi-scale template matching and remote sync.

This package samples frames pushed by a capture transport, decides cheaply
whether a frame deserves inspection, searches it against a hot-reloadable
template set, persists matches, and synchronizes artifacts, logs, config and
templates with WebDAV servers.

Components:
    - capture: Frame admission gate (rate limit, dedup, backpressure)
    - processing: Single-worker frame processor and image quality checks
    - matching: Template store, correlation primitive, multi-scale matcher
    - storage: Local artifact layout, persistence and quota eviction
    - sync: WebDAV transport, periodic job scheduler, sync manager, uploader

Example:
    from screenwatch.config import load_config
    from screenwatch.monitor import ScreenMonitor

    monitor = ScreenMonitor(load_config())
    await monitor.start()
    monitor.gate.on_frame(pixels, width, height)
"""

__version__ = "0.1.0"
__author__ = "ScreenWatch Project"

__all__ = [
    "__version__",
]
