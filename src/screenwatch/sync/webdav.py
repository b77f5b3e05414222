"""
WebDAV Client
=============

Blocking WebDAV client used by the sync jobs.

This module provides the WebDavClient class which:
    - Probes a server (PROPFIND depth 0 on the base URL)
    - Uploads files below /<remoteUploadDir>/<deviceId>/<subpath>/
    - Downloads, lists, deletes and checks remote files
    - Retries transfers with a fixed delay

Retry Policy:
    - Timeouts, connection errors and non-2xx responses are retried up to
      max_retry attempts with retry_delay_sec between attempts
    - Uploads larger than large_file_threshold_mb get a single attempt;
      the next scheduled run picks the file up again
    - Any other exception ends the operation immediately

Design Rules:
    - Every request carries basic auth (no 401 round trip)
    - Every request has explicit (connect, read) timeouts
    - Never called from the capture or processing threads
"""

import logging
import time
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Callable, List, Optional, Set, TypeVar, Union
from urllib.parse import quote, unquote, urlsplit

import requests

from screenwatch.config import TransportConfig
from screenwatch.matching.templates import TEMPLATE_EXTENSIONS
from screenwatch.models.remote import WebDavServer


logger = logging.getLogger(__name__)


DAV_NS = "{DAV:}"
BYTES_PER_MB = 1024 * 1024

PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop><d:resourcetype/></d:prop></d:propfind>'
)

T = TypeVar("T")


class TransportError(Exception):
    """Raised for a failed WebDAV request (network failure or non-2xx status)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


RETRYABLE_ERRORS = (TransportError, requests.Timeout, requests.ConnectionError)


def join_remote(*parts: str) -> str:
    """Join remote path segments into "/a/b/c" (empty segments dropped)."""
    segments = [segment.strip("/") for segment in parts if segment and segment.strip("/")]
    return "/" + "/".join(segments)


class WebDavClient:
    """
    Client for one WebDAV server.

    Attributes:
        server: Server descriptor (URL, credentials, remote directories)
        device_id: Upload directory below remoteUploadDir
        transport: Timeouts and retry settings

    Example:
        client = WebDavClient(server, device_id="device-01")
        if client.test_connection():
            client.upload_file("20240101", "capture_login_20240101_120000.png", path)
    """

    def __init__(
        self,
        server: WebDavServer,
        device_id: str = "",
        transport: Optional[TransportConfig] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.server = server
        self.device_id = device_id
        self.transport = transport or TransportConfig()
        self._sleep = sleep

        self.session = session or requests.Session()
        self.session.auth = (server.username, server.password)

        self._known_collections: Set[str] = set()

    @property
    def base_url(self) -> str:
        return self.server.url.rstrip("/")

    @property
    def host(self) -> str:
        return urlsplit(self.server.url).hostname or ""

    @property
    def timeout(self) -> tuple:
        return (self.transport.connect_timeout_sec, self.transport.read_timeout_sec)

    def upload_root(self) -> str:
        """/<remoteUploadDir>/<deviceId>"""
        return join_remote(self.server.remote_upload_dir, self.device_id)

    def url_for(self, remote_path: str) -> str:
        """Absolute URL for a path relative to the server's base URL."""
        path = join_remote(remote_path)
        if path == "/":
            return self.base_url
        return self.base_url + quote(path)

    # =========================================================================
    # Operations
    # =========================================================================

    def test_connection(self) -> bool:
        """Single PROPFIND on the base URL; True if the server answers 2xx."""
        logger.debug(f"Testing connection to: {self.base_url}")
        try:
            self._request(
                "PROPFIND",
                self.base_url,
                data=PROPFIND_BODY,
                headers={"Depth": "0", "Content-Type": "application/xml"},
            )
        except (TransportError, requests.RequestException) as e:
            logger.error(f"Connection test failed: {type(e).__name__}: {e}")
            return False
        logger.debug("Connection test successful")
        return True

    def upload_file(
        self,
        remote_path: str,
        file_name: str,
        source: Union[Path, bytes],
        overwrite: bool = True,
    ) -> bool:
        """
        Upload a file below the device's upload directory.

        Args:
            remote_path: Sub path below /<remoteUploadDir>/<deviceId>
            file_name: Remote file name
            source: Local file or in-memory payload
            overwrite: When False, an existing remote file is left alone and
                the upload counts as delivered

        Returns:
            True if the file is on the server
        """
        try:
            size = len(source) if isinstance(source, bytes) else Path(source).stat().st_size
        except OSError as e:
            logger.error(f"uploadFile error: cannot stat {file_name}: {e}")
            return False

        target_dir = join_remote(self.upload_root(), remote_path)
        url = self.url_for(join_remote(target_dir, file_name))
        size_mb = size / BYTES_PER_MB

        attempts = self.transport.max_retry
        if size_mb > self.transport.large_file_threshold_mb:
            attempts = 1
            logger.debug(f"Large file detected ({size_mb:.0f}MB), will not retry on failure")

        logger.debug(f"uploadFile: {url}, size: {size_mb:.2f}MB")

        if not overwrite and self.exists(target_dir, file_name):
            logger.info(f"uploadFile skipped, already on server: {file_name}")
            return True

        def attempt() -> None:
            self._ensure_collection(target_dir)
            started = time.monotonic()
            if isinstance(source, bytes):
                self._request("PUT", url, data=source, headers=self._put_headers())
            else:
                with open(source, "rb") as stream:
                    self._request("PUT", url, data=stream, headers=self._put_headers())
            elapsed = max(time.monotonic() - started, 1e-6)
            logger.debug(
                f"uploadFile success: {file_name} ({size_mb:.2f}MB in {elapsed:.1f}s, "
                f"speed: {size_mb / elapsed:.1f}MB/s)"
            )

        try:
            self._with_retry(f"uploadFile {file_name}", attempt, attempts)
        except RETRYABLE_ERRORS as e:
            logger.error(f"uploadFile failed after {attempts} attempts: {file_name}, last error: {e}")
            return False
        except Exception as e:
            logger.error(f"uploadFile error: {file_name} - {type(e).__name__}: {e}")
            return False
        return True

    def download_file(self, remote_path: str, file_name: str) -> bytes:
        """
        Download a file relative to the base URL.

        Returns:
            File content, or b"" once every attempt failed
        """
        url = self.url_for(join_remote(remote_path, file_name))
        attempts = self.transport.max_retry

        def attempt() -> bytes:
            response = self._request("GET", url)
            return response.content

        try:
            data = self._with_retry(f"downloadFile {file_name}", attempt, attempts)
        except RETRYABLE_ERRORS:
            logger.error(f"downloadFile failed after {attempts} attempts: {file_name}")
            return b""
        except Exception as e:
            logger.error(f"downloadFile error: {file_name} - {type(e).__name__}: {e}")
            return b""

        logger.debug(f"downloadFile success: {file_name} ({len(data)} bytes)")
        return data

    def list_directory(self, remote_path: str) -> List[str]:
        """
        Template image names in a remote directory.

        Collections and non-image entries are skipped. Errors are logged
        and yield an empty list.
        """
        url = self.url_for(remote_path)
        try:
            response = self._request(
                "PROPFIND",
                url,
                data=PROPFIND_BODY,
                headers={"Depth": "1", "Content-Type": "application/xml"},
            )
            names = self._parse_listing(response.content)
        except (ET.ParseError, requests.RequestException, TransportError) as e:
            logger.error(f"listDirectory error: {remote_path} - {type(e).__name__}: {e}")
            return []

        images = [name for name in names if name.lower().endswith(TEMPLATE_EXTENSIONS)]
        logger.debug(f"listDirectory found {len(images)} template files in {remote_path}")
        return images

    def delete_file(self, remote_path: str, file_name: str) -> bool:
        url = self.url_for(join_remote(remote_path, file_name))
        try:
            self._request("DELETE", url)
        except (requests.RequestException, TransportError) as e:
            logger.error(f"deleteFile error: {file_name} - {type(e).__name__}: {e}")
            return False
        logger.debug(f"deleteFile success: {file_name}")
        return True

    def exists(self, remote_path: str, file_name: str) -> bool:
        """Whether a remote file exists (False when the check itself fails)."""
        url = self.url_for(join_remote(remote_path, file_name))
        try:
            self._request("PROPFIND", url, data=PROPFIND_BODY, headers={"Depth": "0"})
        except TransportError as e:
            if e.status_code != 404:
                logger.warning(f"exists check failed for {file_name}: {e}")
            return False
        except requests.RequestException as e:
            logger.warning(f"exists check failed for {file_name}: {e}")
            return False
        return True

    # =========================================================================
    # Internals
    # =========================================================================

    def _request(
        self,
        method: str,
        url: str,
        data=None,
        headers: Optional[dict] = None,
    ) -> requests.Response:
        response = self.session.request(
            method,
            url,
            data=data,
            headers=headers,
            timeout=self.timeout,
        )
        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def _with_retry(self, label: str, fn: Callable[[], T], attempts: int) -> T:
        """Run fn up to attempts times on retryable errors, re-raising the last."""
        last_error: Optional[Exception] = None
        for index in range(attempts):
            try:
                return fn()
            except RETRYABLE_ERRORS as e:
                last_error = e
                logger.error(f"{label} failed (attempt {index + 1}/{attempts}): {e}")
                if index + 1 < attempts:
                    self._sleep(self.transport.retry_delay_sec)
        raise last_error

    def _ensure_collection(self, remote_dir: str) -> None:
        """MKCOL every missing segment of remote_dir."""
        current = ""
        for segment in join_remote(remote_dir).strip("/").split("/"):
            if not segment:
                continue
            current = join_remote(current, segment)
            if current in self._known_collections:
                continue
            response = self.session.request(
                "MKCOL",
                self.url_for(current),
                timeout=self.timeout,
            )
            # 405: collection already exists
            if response.status_code not in (200, 201, 405):
                raise TransportError(
                    f"MKCOL {current} returned HTTP {response.status_code}",
                    status_code=response.status_code,
                )
            self._known_collections.add(current)

    @staticmethod
    def _put_headers() -> dict:
        return {"Content-Type": "application/octet-stream"}

    @staticmethod
    def _parse_listing(body: bytes) -> List[str]:
        """File names of the non-collection entries of a multistatus body."""
        root = ET.fromstring(body)
        names = []
        for response in root.iter(f"{DAV_NS}response"):
            href = response.findtext(f"{DAV_NS}href", default="")
            if response.find(f".//{DAV_NS}resourcetype/{DAV_NS}collection") is not None:
                continue
            name = unquote(href.rstrip("/").rsplit("/", 1)[-1])
            if name:
                names.append(name)
        return names
