"""
Storage Module
==============

Local storage layout, artifact persistence and quota eviction.
"""

from screenwatch.storage.paths import StoragePaths
from screenwatch.storage.artifacts import (
    FORCED_TAG,
    IMAGE_EXTENSIONS,
    VIDEO_EXTENSIONS,
    ArtifactWriteError,
    ArtifactWriter,
    is_image_file,
    is_video_file,
    list_images,
    list_videos,
)
from screenwatch.storage.eviction import EvictionReport, StorageEvictor

__all__ = [
    "StoragePaths",
    "FORCED_TAG",
    "IMAGE_EXTENSIONS",
    "VIDEO_EXTENSIONS",
    "ArtifactWriteError",
    "ArtifactWriter",
    "is_image_file",
    "is_video_file",
    "list_images",
    "list_videos",
    "EvictionReport",
    "StorageEvictor",
]
