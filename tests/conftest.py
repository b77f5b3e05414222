"""
Test Configuration
==================

Pytest fixtures and test doubles for ScreenWatch.
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import cv2
import numpy as np
import pytest

from screenwatch.config import LiveConfig, Settings
from screenwatch.storage.paths import StoragePaths


# =============================================================================
# Image helpers
# =============================================================================

def textured_gray(width: int, height: int, seed: int = 0) -> np.ndarray:
    """Random uint8 texture (high stddev)."""
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width), dtype=np.uint8)


def textured_rgba(width: int, height: int, seed: int = 0) -> np.ndarray:
    gray = textured_gray(width, height, seed)
    rgba = np.dstack([gray, gray, gray, np.full_like(gray, 255)])
    return np.ascontiguousarray(rgba)


def solid_rgba(width: int, height: int, value: int = 0) -> np.ndarray:
    rgba = np.full((height, width, 4), value, dtype=np.uint8)
    rgba[..., 3] = 255
    return rgba


def write_png(path: Path, image: np.ndarray) -> Path:
    ok, encoded = cv2.imencode(".png", image)
    assert ok
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encoded.tobytes())
    return path


# =============================================================================
# Correlation double
# =============================================================================

class FakeCorrelation:
    """
    Correlation primitive scoring by scaled template width.

    score_fn receives the scaled template width and returns the score.
    Every call is recorded as (image shape, template shape).
    """

    def __init__(self, score_fn: Callable[[int], float]) -> None:
        self.score_fn = score_fn
        self.calls: List[Tuple[tuple, tuple]] = []

    def match_score(self, image: np.ndarray, template: np.ndarray):
        self.calls.append((image.shape, template.shape))
        return self.score_fn(template.shape[1]), (0, 0)

    @property
    def scaled_widths(self) -> List[int]:
        return [template_shape[1] for _, template_shape in self.calls]


# =============================================================================
# HTTP doubles
# =============================================================================

class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"") -> None:
        self.status_code = status_code
        self.content = content


class FakeSession:
    """
    requests.Session stand-in.

    handler(method, url, data, headers) returns a FakeResponse or raises.
    Every request is recorded as (method, url, headers).
    """

    def __init__(self, handler: Optional[Callable] = None) -> None:
        self.handler = handler or (lambda method, url, data, headers: FakeResponse(200))
        self.auth = None
        self.requests: List[Tuple[str, str, Optional[dict]]] = []
        self.bodies: Dict[str, bytes] = {}

    def request(self, method, url, data=None, headers=None, timeout=None):
        self.requests.append((method, url, headers))
        if hasattr(data, "read"):
            data = data.read()
        if method == "PUT":
            self.bodies[url] = data
        return self.handler(method, url, data, headers)

    def methods(self) -> List[str]:
        return [method for method, _, _ in self.requests]


def multistatus(*entries: Tuple[str, bool]) -> bytes:
    """PROPFIND depth 1 body; entries are (href, is_collection)."""
    responses = []
    for href, is_collection in entries:
        resource_type = "<d:collection/>" if is_collection else ""
        responses.append(
            f"<d:response><d:href>{href}</d:href><d:propstat><d:prop>"
            f"<d:resourcetype>{resource_type}</d:resourcetype>"
            f"</d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>"
        )
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<d:multistatus xmlns:d="DAV:">' + "".join(responses) + "</d:multistatus>"
    ).encode("utf-8")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings rooted in a temporary directory, sync and file logging off."""
    return Settings.model_validate({
        "app": {"device_id": "device-01"},
        "storage": {
            "base_dir": str(tmp_path / "data"),
            "app_dir": str(tmp_path / "app"),
        },
        "sync": {"enabled": False},
        "transport": {"retry_delay_sec": 0},
        "logging": {"file_enabled": False},
    })


@pytest.fixture
def live_config(settings) -> LiveConfig:
    return LiveConfig.from_settings(settings)


@pytest.fixture
def paths(settings, live_config) -> StoragePaths:
    return StoragePaths(settings.storage, live_config)


@pytest.fixture
def sample_server_dict() -> dict:
    return {
        "url": "http://192.168.1.10:5244/dav",
        "username": "monitor",
        "password": "secret",
        "monitorDir": "monitor",
        "remoteUploadDir": "uploads",
        "templateDir": "monitor/templates",
    }
