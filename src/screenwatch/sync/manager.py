"""
Sync Manager
============

Keeps configuration and templates in step with the remote WebDAV servers.

Config Refresh:
    1. Read the locally cached document, falling back to the bundled default
    2. No servers declared -> error, nothing else happens
    3. The bound client still answers and serves the same document as the
       local copy -> keep it, apply the local document
    4. Otherwise try every server, private/loopback hosts first:
         - skip descriptors with a missing field
         - probe, then download /<monitorDir>/config.json
         - an empty document moves on to the next server
         - the first server that serves a document is bound; a changed
           document is applied and cached, an unchanged one re-applies the
           local copy; templates are refreshed in both cases
    5. Every server failed -> warning, last known good values stay live
    6. A changed document without servers is applied but not cached

Template Refresh:
    List /<templateDir>; download each template into a staging directory,
    move it into place, delete local templates missing from the listing and
    reload the template store (which notifies its listeners).
"""

import ipaddress
import logging
import os
import threading
from importlib import resources
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from pydantic import ValidationError

from screenwatch.config import LiveConfig, Settings
from screenwatch.matching.templates import TemplateStore, list_template_files
from screenwatch.models.remote import RemoteConfigDocument, WebDavServer
from screenwatch.storage.paths import StoragePaths
from screenwatch.sync.webdav import WebDavClient


logger = logging.getLogger(__name__)


REMOTE_CONFIG_NAME = "config.json"
BUNDLED_CONFIG_NAME = "monitor_config_default.json"

ClientFactory = Callable[[WebDavServer], WebDavClient]


class ConfigDocumentError(Exception):
    """Raised when a config document cannot be read or parsed."""
    pass


def is_local_host(url: str) -> bool:
    """Whether a server URL points at a private, loopback or localhost address."""
    host = urlsplit(url).hostname or ""
    if host == "localhost":
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.is_private or address.is_loopback


def order_servers(servers: List[WebDavServer]) -> List[WebDavServer]:
    """Local servers first, declared order kept within each group."""
    local = [server for server in servers if is_local_host(server.url)]
    remote = [server for server in servers if not is_local_host(server.url)]
    return local + remote


class SyncMetrics:
    """Metrics for SyncManager observability."""

    __slots__ = (
        "config_refreshes",
        "config_failures",
        "config_changes",
        "template_refreshes",
        "template_failures",
        "bound_url",
    )

    def __init__(self) -> None:
        self.config_refreshes: int = 0
        self.config_failures: int = 0
        self.config_changes: int = 0
        self.template_refreshes: int = 0
        self.template_failures: int = 0
        self.bound_url: Optional[str] = None

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "config_refreshes": self.config_refreshes,
            "config_failures": self.config_failures,
            "config_changes": self.config_changes,
            "template_refreshes": self.template_refreshes,
            "template_failures": self.template_failures,
            "bound_url": self.bound_url,
        }


class SyncManager:
    """
    Remote config and template synchronization with server failover.

    Attributes:
        settings: Static settings (device id, transport)
        live_config: Live values updated from the config document
        paths: Local storage layout
        store: Template store reloaded after a template refresh
        metrics: Operational metrics
    """

    def __init__(
        self,
        settings: Settings,
        live_config: LiveConfig,
        paths: StoragePaths,
        store: TemplateStore,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.settings = settings
        self.live_config = live_config
        self.paths = paths
        self.store = store
        self._client_factory = client_factory or self._default_client

        self._client: Optional[WebDavClient] = None
        self._server: Optional[WebDavServer] = None
        self._lock = threading.Lock()
        self._closed: bool = False

        self.metrics = SyncMetrics()

    @property
    def client(self) -> Optional[WebDavClient]:
        """Currently bound client, if any."""
        return self._client

    @property
    def server(self) -> Optional[WebDavServer]:
        return self._server

    def close(self) -> None:
        """
        Stop touching shared state.

        Later refreshes return False, and a refresh already running no
        longer reloads the template store.
        """
        self._closed = True
        logger.info("SyncManager closed")

    def _default_client(self, server: WebDavServer) -> WebDavClient:
        return WebDavClient(
            server,
            device_id=self.settings.app.device_id,
            transport=self.settings.transport,
        )

    # =========================================================================
    # Local document
    # =========================================================================

    def read_local_text(self) -> str:
        """Cached document text, or the bundled default."""
        cache = self.paths.config_cache_path()
        try:
            if cache.exists():
                return cache.read_text(encoding="utf-8")
            bundled = resources.files("screenwatch") / "data" / BUNDLED_CONFIG_NAME
            return bundled.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigDocumentError(f"Cannot read local config: {e}")

    def load_local_document(self) -> RemoteConfigDocument:
        return self.parse_document(self.read_local_text())

    @staticmethod
    def parse_document(text: str) -> RemoteConfigDocument:
        try:
            return RemoteConfigDocument.model_validate_json(text)
        except ValidationError as e:
            raise ConfigDocumentError(f"Invalid config document: {e}")

    def save_local_text(self, text: str) -> None:
        cache = self.paths.config_cache_path()
        tmp = cache.with_suffix(cache.suffix + ".tmp")
        try:
            tmp.write_text(text, encoding="utf-8")
            os.replace(tmp, cache)
        except OSError as e:
            logger.error(f"Saving local config failed: {e}")

    # =========================================================================
    # Config refresh
    # =========================================================================

    def refresh_config(self) -> bool:
        """
        Run one config refresh with failover.

        Returns:
            True if a server is bound after the refresh
        """
        if self._closed:
            logger.debug("SyncManager closed, skip config refresh")
            return False
        with self._lock:
            self.metrics.config_refreshes += 1
            ok = self._refresh_config()
            if not ok:
                self.metrics.config_failures += 1
            return ok

    def _refresh_config(self) -> bool:
        try:
            local_doc = self.load_local_document()
        except ConfigDocumentError as e:
            logger.error(str(e))
            return False

        if not local_doc.webdav_servers:
            logger.error("webdavServers array not found or empty")
            return False

        if self._client is not None and self._server is not None:
            if self._client.test_connection():
                remote = self._fetch_document(self._client, self._server)
                if remote is not None and remote[0] == local_doc:
                    logger.debug(f"Reusing existing WebDavClient: {self._server.url}")
                    self.apply_document(local_doc)
                    return True
                logger.info("Remote config changed, re-selecting server")
            else:
                logger.warning("Existing WebDavClient connection failed, will try to reconnect")

        for server in order_servers(local_doc.webdav_servers):
            if not server.is_complete:
                logger.warning(f"WebDAV config incomplete, skip: {server.url}")
                continue

            client = self._client_factory(server)
            if not client.test_connection():
                logger.warning(f"WebDAV connection test failed: {server.url}")
                continue
            logger.debug(f"WebDAV connection test success: {server.url}")

            remote = self._fetch_document(client, server)
            if remote is None:
                logger.warning(f"No remote config found on {server.url}, trying next server")
                continue

            remote_doc, remote_text = remote
            self._bind(client, server)

            if remote_doc != local_doc:
                self.metrics.config_changes += 1
                self.apply_document(remote_doc)
                # The cache is the only source of server addresses
                if remote_doc.webdav_servers:
                    self.save_local_text(remote_text)
                    logger.info(f"Config updated from WebDAV: {server.url}")
                else:
                    logger.warning(
                        f"Remote config on {server.url} has no webdavServers, "
                        f"keeping cached copy"
                    )
            else:
                self.apply_document(local_doc)
                logger.info(f"Using local config with WebDAV: {server.url}")

            self.refresh_templates(client, server)
            return True

        logger.warning("All WebDAV servers failed to connect, keeping last known config")
        return False

    def _bind(self, client: WebDavClient, server: WebDavServer) -> None:
        self._client = client
        self._server = server
        self.metrics.bound_url = server.url

    def _fetch_document(
        self,
        client: WebDavClient,
        server: WebDavServer,
    ) -> Optional[Tuple[RemoteConfigDocument, str]]:
        """Download and parse /<monitorDir>/config.json (None if empty or invalid)."""
        data = client.download_file(f"/{server.monitor_dir}", REMOTE_CONFIG_NAME)
        text = data.decode("utf-8", errors="replace")
        if not text.strip():
            return None
        try:
            return self.parse_document(text), text
        except ConfigDocumentError as e:
            logger.error(f"Remote config on {server.url} rejected: {e}")
            return None

    def apply_document(self, doc: RemoteConfigDocument) -> Dict[str, object]:
        """
        Merge recognized fields into the live config.

        A field that fails validation is logged and skipped; the others
        still apply.

        Returns:
            Fields whose value actually changed
        """
        changed: Dict[str, object] = {}
        for name, value in doc.tuning_fields().items():
            current = getattr(self.live_config, name)
            if current == value:
                continue
            try:
                setattr(self.live_config, name, value)
            except ValidationError as e:
                logger.warning(f"Ignoring invalid config value {name}={value!r}: {e}")
                continue
            changed[name] = value
            logger.info(f"Config {name} changed: {current!r} -> {value!r}")
        return changed

    # =========================================================================
    # Template refresh
    # =========================================================================

    def refresh_templates(
        self,
        client: Optional[WebDavClient] = None,
        server: Optional[WebDavServer] = None,
    ) -> bool:
        """
        Mirror the remote template directory into the local one.

        Returns:
            True if the template store was reloaded
        """
        if self._closed:
            return False
        client = client or self._client
        server = server or self._server
        if client is None or server is None:
            logger.warning("No WebDAV server bound, skip template refresh")
            return False

        self.metrics.template_refreshes += 1
        remote_dir = f"/{server.template_dir}"
        logger.debug(f"Listing remote templates from: {remote_dir}")
        remote_names = [Path(name).name for name in client.list_directory(remote_dir)]
        if not remote_names:
            self.metrics.template_failures += 1
            logger.warning("No template files found in remote directory, keeping local templates")
            return False

        staging = self.paths.staging_dir()
        target = self.paths.template_dir()

        logger.debug(f"Found {len(remote_names)} template files, downloading...")
        for name in remote_names:
            data = client.download_file(remote_dir, name)
            if not data:
                logger.warning(f"Template download failed or empty: {name}")
                continue
            staged = staging / name
            try:
                staged.write_bytes(data)
                os.replace(staged, target / name)
            except OSError as e:
                logger.error(f"Template install failed: {name} - {e}")
                continue
            logger.debug(f"Template updated: {name} ({len(data)} bytes)")

        keep = set(remote_names)
        for path in list_template_files(target):
            if path.name in keep:
                continue
            try:
                path.unlink()
                logger.debug(f"Old template deleted: {path.name}")
            except OSError as e:
                logger.error(f"Deleting old template {path.name} failed: {e}")

        if self._closed:
            logger.info("SyncManager closed during template refresh, store left as is")
            return False
        self.store.load_from_dir(target)
        return True
