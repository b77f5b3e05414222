"""
Remote Config Document
======================

Pydantic models for the JSON configuration document served by the WebDAV
servers and cached locally.

Document Contract:
    {
        "webdavServers": [
            {
                "url": "http://192.168.1.10:5244/dav",
                "username": "monitor",
                "password": "secret",
                "monitorDir": "monitor",
                "remoteUploadDir": "uploads",
                "templateDir": "monitor/templates"
            }
        ],
        "detectPerSecond": 2,
        "matchCooldownMs": 5000,
        "matchThreshold": 0.92,
        "preferExternalStorage": false,
        "screenshotDir": "ScreenCaptures",
        "videoDir": "ScreenRecord"
    }

Unknown keys are ignored. Every tuning key is optional: a document that
omits one leaves the live value untouched. A tuning key of the wrong type
is dropped with a warning; only a malformed webdavServers list rejects the
whole document.

Example:
    from screenwatch.models.remote import RemoteConfigDocument

    doc = RemoteConfigDocument.model_validate_json(text)
    for server in doc.webdav_servers:
        print(server.url)
"""

import logging
from typing import Any, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)


logger = logging.getLogger(__name__)


TUNING_FIELDS = (
    "detect_per_second",
    "match_cooldown_ms",
    "match_threshold",
    "weak_match_margin",
    "max_storage_mb",
    "prefer_external_storage",
    "screenshot_dir",
    "video_dir",
)


class WebDavServer(BaseModel):
    """
    One WebDAV endpoint descriptor.

    Attributes:
        url: Base URL of the WebDAV share
        username: Basic auth user
        password: Basic auth password
        monitor_dir: Remote directory holding config.json
        remote_upload_dir: Remote directory receiving artifacts
        template_dir: Remote directory holding template images
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str = ""
    username: str = ""
    password: str = ""
    monitor_dir: str = Field(default="", alias="monitorDir")
    remote_upload_dir: str = Field(default="", alias="remoteUploadDir")
    template_dir: str = Field(default="", alias="templateDir")

    @property
    def is_complete(self) -> bool:
        """Whether every field needed to bind this server is present."""
        return all(
            value.strip()
            for value in (
                self.url,
                self.username,
                self.password,
                self.monitor_dir,
                self.remote_upload_dir,
                self.template_dir,
            )
        )


class RemoteConfigDocument(BaseModel):
    """Schema of the remote/local monitor configuration document."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    webdav_servers: List[WebDavServer] = Field(
        default_factory=list,
        alias="webdavServers",
    )
    detect_per_second: Optional[int] = Field(default=None, alias="detectPerSecond")
    match_cooldown_ms: Optional[int] = Field(default=None, alias="matchCooldownMs")
    match_threshold: Optional[float] = Field(default=None, alias="matchThreshold")
    weak_match_margin: Optional[float] = Field(default=None, alias="weakMatchMargin")
    max_storage_mb: Optional[int] = Field(default=None, alias="maxStorageSizeMB")
    prefer_external_storage: Optional[bool] = Field(
        default=None,
        alias="preferExternalStorage",
    )
    screenshot_dir: Optional[str] = Field(default=None, alias="screenshotDir")
    video_dir: Optional[str] = Field(default=None, alias="videoDir")

    @field_validator(*TUNING_FIELDS, mode="wrap")
    @classmethod
    def _drop_invalid(
        cls,
        value: Any,
        handler: ValidatorFunctionWrapHandler,
        info: ValidationInfo,
    ) -> Any:
        try:
            return handler(value)
        except ValidationError as e:
            logger.warning(
                f"Ignoring invalid config value {info.field_name}={value!r}: "
                f"{e.errors()[0]['msg']}"
            )
            return None

    def tuning_fields(self) -> dict:
        """Recognized live-config fields present in this document."""
        return {
            name: getattr(self, name)
            for name in TUNING_FIELDS
            if getattr(self, name) is not None
        }
