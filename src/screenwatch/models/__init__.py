"""
Data Models
===========

Typed data passed between ScreenWatch components.

Models:
    Matching:
        - Template: Immutable grayscale template
        - TemplateSet: Active set swapped atomically on reload
        - ScaleProbe: Score of one template at one scale
        - MatchResult: Winning template for a frame

    Remote:
        - WebDavServer: One WebDAV endpoint descriptor
        - RemoteConfigDocument: Remote/local config JSON document
"""

from screenwatch.models.match import (
    WEAK_PREFIX,
    MatchResult,
    ScaleProbe,
    Template,
    TemplateSet,
)
from screenwatch.models.remote import RemoteConfigDocument, WebDavServer

__all__ = [
    # Matching
    "WEAK_PREFIX",
    "Template",
    "TemplateSet",
    "ScaleProbe",
    "MatchResult",
    # Remote
    "WebDavServer",
    "RemoteConfigDocument",
]
