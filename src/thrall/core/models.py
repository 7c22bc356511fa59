"""
Thrall Models - Data classes for navigation, network and screencast results.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class NavigationState(Enum):
    IDLE = "idle"
    NAVIGATING = "navigating"
    LOADED = "loaded"
    TIMED_OUT = "timed_out"
    FAILED = "failed"

    @property
    def is_settled(self) -> bool:
        return self in (NavigationState.LOADED, NavigationState.TIMED_OUT, NavigationState.FAILED)


@dataclass
class NetworkResponse:
    """A response observed through ``Network.responseReceived``."""

    url: str
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    status_text: str = ""
    mime_type: str = ""
    request_id: Optional[str] = None

    @classmethod
    def from_event(cls, params: Dict[str, Any]) -> NetworkResponse:
        response = params.get("response", {})
        return cls(
            url=response.get("url", ""),
            status=int(response.get("status", 0)),
            headers=dict(response.get("headers", {})),
            status_text=response.get("statusText", ""),
            mime_type=response.get("mimeType", ""),
            request_id=params.get("requestId"),
        )


@dataclass
class NetworkRequest:
    """A request observed through ``Network.requestWillBeSent``."""

    url: str
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    post_data: Optional[str] = None
    request_id: Optional[str] = None

    @classmethod
    def from_event(cls, params: Dict[str, Any]) -> NetworkRequest:
        request = params.get("request", {})
        return cls(
            url=request.get("url", ""),
            method=request.get("method", "GET"),
            headers=dict(request.get("headers", {})),
            post_data=request.get("postData"),
            request_id=params.get("requestId"),
        )


@dataclass
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self):
        return (self.x + self.width / 2, self.y + self.height / 2)


@dataclass
class FrameMetadata:
    """Viewport metadata the browser attaches to every screencast frame."""

    offset_top: float = 0.0
    page_scale_factor: float = 1.0
    device_width: float = 0.0
    device_height: float = 0.0
    scroll_offset_x: float = 0.0
    scroll_offset_y: float = 0.0
    timestamp: Optional[float] = None

    @classmethod
    def from_cdp(cls, metadata: Dict[str, Any]) -> FrameMetadata:
        return cls(
            offset_top=metadata.get("offsetTop", 0.0),
            page_scale_factor=metadata.get("pageScaleFactor", 1.0),
            device_width=metadata.get("deviceWidth", 0.0),
            device_height=metadata.get("deviceHeight", 0.0),
            scroll_offset_x=metadata.get("scrollOffsetX", 0.0),
            scroll_offset_y=metadata.get("scrollOffsetY", 0.0),
            timestamp=metadata.get("timestamp"),
        )


@dataclass
class ScreencastFrame:
    """One decoded screencast frame.

    ``timestamp`` is wall-clock seconds at the moment the frame was buffered.
    """

    data: bytes
    timestamp: float
    metadata: FrameMetadata = field(default_factory=FrameMetadata)
