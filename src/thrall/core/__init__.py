"""
Core Module - Errors, configuration and data models.
"""
from thrall.core.config import BrowserConfig, DEFAULT_POLLING_INTERVAL, DEFAULT_TIMEOUT
from thrall.core.errors import (
    BrowserAgentError,
    CDPConnectionError,
    CDPNavigationError,
    CDPParseError,
    CDPProtocolError,
    CDPTargetError,
    CDPTimeoutError,
    ScreencastEncodeError,
    ScreencastStateError,
)
from thrall.core.models import (
    BoundingBox,
    FrameMetadata,
    NavigationState,
    NetworkRequest,
    NetworkResponse,
    ScreencastFrame,
)

__all__ = [
    "BrowserConfig",
    "DEFAULT_POLLING_INTERVAL",
    "DEFAULT_TIMEOUT",
    "BrowserAgentError",
    "CDPConnectionError",
    "CDPNavigationError",
    "CDPParseError",
    "CDPProtocolError",
    "CDPTargetError",
    "CDPTimeoutError",
    "ScreencastEncodeError",
    "ScreencastStateError",
    "BoundingBox",
    "FrameMetadata",
    "NavigationState",
    "NetworkRequest",
    "NetworkResponse",
    "ScreencastFrame",
]
