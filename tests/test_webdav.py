"""
WebDAV Client Tests
===================

Tests for request construction, retries and listing against a fake session.
"""

import pytest
import requests

from screenwatch.config import TransportConfig
from screenwatch.models.remote import WebDavServer
from screenwatch.sync.webdav import WebDavClient, join_remote
from conftest import FakeResponse, FakeSession, multistatus


BASE = "http://192.168.1.10:5244/dav"


@pytest.fixture
def server(sample_server_dict):
    return WebDavServer.model_validate(sample_server_dict)


def make_client(server, handler=None, **transport):
    session = FakeSession(handler)
    sleeps = []
    client = WebDavClient(
        server,
        device_id="device-01",
        transport=TransportConfig(retry_delay_sec=2, **transport),
        session=session,
        sleep=sleeps.append,
    )
    return client, session, sleeps


class TestPaths:
    """Tests for remote path construction."""

    def test_join_remote(self):
        assert join_remote("uploads", "", "/device/", "a/b/") == "/uploads/device/a/b"
        assert join_remote() == "/"

    def test_upload_root_includes_device(self, server):
        client, _, _ = make_client(server)
        assert client.upload_root() == "/uploads/device-01"

    def test_url_quotes_segments(self, server):
        client, _, _ = make_client(server)
        assert client.url_for("/a dir/x.png") == BASE + "/a%20dir/x.png"

    def test_basic_auth_on_session(self, server):
        client, session, _ = make_client(server)
        assert session.auth == ("monitor", "secret")


class TestConnection:
    """Tests for test_connection."""

    def test_success(self, server):
        client, session, _ = make_client(server, lambda m, u, d, h: FakeResponse(207))
        assert client.test_connection() is True
        method, url, headers = session.requests[0]
        assert method == "PROPFIND"
        assert url == BASE
        assert headers["Depth"] == "0"

    def test_http_error(self, server):
        client, _, _ = make_client(server, lambda m, u, d, h: FakeResponse(401))
        assert client.test_connection() is False

    def test_network_error(self, server):
        def handler(method, url, data, headers):
            raise requests.ConnectionError("refused")

        client, session, _ = make_client(server, handler)
        assert client.test_connection() is False
        assert len(session.requests) == 1


class TestUpload:
    """Tests for upload_file."""

    def test_upload_creates_collections_and_puts(self, server, tmp_path):
        source = tmp_path / "capture.png"
        source.write_bytes(b"png-bytes")

        def handler(method, url, data, headers):
            return FakeResponse(201)

        client, session, _ = make_client(server, handler)

        assert client.upload_file("20240101", "capture.png", source) is True

        mkcols = [url for method, url, _ in session.requests if method == "MKCOL"]
        assert mkcols == [
            BASE + "/uploads",
            BASE + "/uploads/device-01",
            BASE + "/uploads/device-01/20240101",
        ]
        put_url = BASE + "/uploads/device-01/20240101/capture.png"
        assert session.bodies[put_url] == b"png-bytes"

    def test_existing_collections_accepted(self, server):
        def handler(method, url, data, headers):
            return FakeResponse(405 if method == "MKCOL" else 201)

        client, _, _ = make_client(server, handler)
        assert client.upload_file("", "a.png", b"data") is True

    def test_collections_created_once(self, server):
        client, session, _ = make_client(server, lambda m, u, d, h: FakeResponse(201))
        client.upload_file("day", "a.png", b"a")
        client.upload_file("day", "b.png", b"b")
        assert session.methods().count("MKCOL") == 3

    def test_retries_with_fixed_delay(self, server):
        puts = []

        def handler(method, url, data, headers):
            if method == "PUT":
                puts.append(url)
                return FakeResponse(500) if len(puts) < 3 else FakeResponse(201)
            return FakeResponse(201)

        client, _, sleeps = make_client(server, handler)

        assert client.upload_file("", "a.png", b"data") is True
        assert len(puts) == 3
        assert sleeps == [2, 2]

    def test_gives_up_after_max_retry(self, server):
        def handler(method, url, data, headers):
            if method == "PUT":
                raise requests.Timeout("read timed out")
            return FakeResponse(201)

        client, session, sleeps = make_client(server, handler)

        assert client.upload_file("", "a.png", b"data") is False
        assert session.methods().count("PUT") == 3
        assert len(sleeps) == 2

    def test_large_file_single_attempt(self, server):
        def handler(method, url, data, headers):
            return FakeResponse(503) if method == "PUT" else FakeResponse(201)

        client, session, sleeps = make_client(server, handler, large_file_threshold_mb=0.001)
        payload = b"x" * 4096

        assert client.upload_file("", "big.mp4", payload) is False
        assert session.methods().count("PUT") == 1
        assert sleeps == []

    def test_unexpected_error_not_retried(self, server):
        def handler(method, url, data, headers):
            if method == "PUT":
                raise ValueError("bad body")
            return FakeResponse(201)

        client, session, sleeps = make_client(server, handler)

        assert client.upload_file("", "a.png", b"data") is False
        assert session.methods().count("PUT") == 1
        assert sleeps == []

    def test_missing_local_file(self, server, tmp_path):
        client, session, _ = make_client(server)
        assert client.upload_file("", "gone.png", tmp_path / "gone.png") is False
        assert session.requests == []

    def test_no_overwrite_skips_existing(self, server):
        def handler(method, url, data, headers):
            return FakeResponse(207 if method == "PROPFIND" else 201)

        client, session, _ = make_client(server)
        session.handler = handler

        assert client.upload_file("logs", "app.log", b"log", overwrite=False) is True
        assert "PUT" not in session.methods()

    def test_no_overwrite_uploads_missing(self, server):
        def handler(method, url, data, headers):
            return FakeResponse(404 if method == "PROPFIND" else 201)

        client, session, _ = make_client(server, handler)

        assert client.upload_file("logs", "app.log", b"log", overwrite=False) is True
        assert "PUT" in session.methods()


class TestDownloadListDelete:
    """Tests for download_file, list_directory, delete_file and exists."""

    def test_download_relative_to_base(self, server):
        client, session, _ = make_client(server, lambda m, u, d, h: FakeResponse(200, b"{}"))

        assert client.download_file("/monitor", "config.json") == b"{}"
        assert session.requests[0][1] == BASE + "/monitor/config.json"

    def test_download_exhausted_returns_empty(self, server):
        client, session, sleeps = make_client(server, lambda m, u, d, h: FakeResponse(404))

        assert client.download_file("/monitor", "config.json") == b""
        assert len(session.requests) == 3
        assert sleeps == [2, 2]

    def test_list_directory_returns_image_names(self, server):
        body = multistatus(
            ("/dav/monitor/templates/", True),
            ("/dav/monitor/templates/login.png", False),
            ("/dav/monitor/templates/pay%20now.jpg", False),
            ("/dav/monitor/templates/readme.txt", False),
            ("/dav/monitor/templates/old/", True),
        )
        client, session, _ = make_client(server, lambda m, u, d, h: FakeResponse(207, body))

        names = client.list_directory("/monitor/templates")

        assert names == ["login.png", "pay now.jpg"]
        method, url, headers = session.requests[0]
        assert method == "PROPFIND"
        assert headers["Depth"] == "1"

    def test_list_directory_error_is_empty(self, server):
        client, _, _ = make_client(server, lambda m, u, d, h: FakeResponse(500))
        assert client.list_directory("/monitor/templates") == []

    def test_list_directory_bad_xml_is_empty(self, server):
        client, _, _ = make_client(server, lambda m, u, d, h: FakeResponse(207, b"<oops"))
        assert client.list_directory("/monitor/templates") == []

    def test_delete(self, server):
        client, session, _ = make_client(server, lambda m, u, d, h: FakeResponse(204))
        assert client.delete_file("/monitor", "old.png") is True
        assert session.requests[0][:2] == ("DELETE", BASE + "/monitor/old.png")

    def test_delete_failure(self, server):
        client, _, _ = make_client(server, lambda m, u, d, h: FakeResponse(403))
        assert client.delete_file("/monitor", "old.png") is False

    def test_exists(self, server):
        client, _, _ = make_client(server, lambda m, u, d, h: FakeResponse(207))
        assert client.exists("/monitor", "config.json") is True

        client, _, _ = make_client(server, lambda m, u, d, h: FakeResponse(404))
        assert client.exists("/monitor", "config.json") is False
