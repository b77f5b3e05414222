"""
Sync Module
===========

WebDAV transport, periodic jobs, config/template synchronization and
artifact uploads.
"""

from screenwatch.sync.webdav import TransportError, WebDavClient, join_remote
from screenwatch.sync.scheduler import JobScheduler, PeriodicJob
from screenwatch.sync.manager import (
    ConfigDocumentError,
    SyncManager,
    is_local_host,
    order_servers,
)
from screenwatch.sync.uploader import ArtifactUploader, UploadReport

__all__ = [
    "TransportError",
    "WebDavClient",
    "join_remote",
    "JobScheduler",
    "PeriodicJob",
    "ConfigDocumentError",
    "SyncManager",
    "is_local_host",
    "order_servers",
    "ArtifactUploader",
    "UploadReport",
]
