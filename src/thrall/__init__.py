"""
Thrall - Asyncio Chromium automation over the Chrome DevTools Protocol.

This package drives an already running Chromium through its remote-debugging
WebSocket: one CDPSession per tab, wait primitives for navigation, elements
and network traffic, and a flow-controlled screencast recorder.

Usage:
    from thrall import Browser, BrowserConfig

    async with Browser(BrowserConfig(port=9222)) as browser:
        page = await browser.new_page()
        await page.goto("https://example.com")
        heading = await page.wait_for_selector("h1", visible=True)

Low-level session use:
    from thrall import CDPSession, wait_for_event

    async with CDPSession(ws_url) as session:
        await session.send("Page.enable")
        await wait_for_event(
            session,
            "Page.loadEventFired",
            trigger=lambda: session.send("Page.navigate", {"url": url}),
        )
"""
from thrall.browser import Browser
from thrall.cdp.client import CDPSession, get_page_ws_url, new_page_ws_url, setup_logging
from thrall.cdp.waiters import poll_until, resolve_timeout, wait_for_event
from thrall.core.config import BrowserConfig, DEFAULT_TIMEOUT
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
from thrall.element import ElementHandle
from thrall.keyboard import Keyboard
from thrall.mouse import Mouse
from thrall.page import Page
from thrall.screencast import Screencast, ScreencastOptions

__version__ = "0.1.0"

__all__ = [
    # Main API
    "Browser",
    "BrowserConfig",
    "Page",
    "ElementHandle",
    "Keyboard",
    "Mouse",
    "Screencast",
    "ScreencastOptions",
    # Transport and waiters
    "CDPSession",
    "get_page_ws_url",
    "new_page_ws_url",
    "setup_logging",
    "wait_for_event",
    "poll_until",
    "resolve_timeout",
    "DEFAULT_TIMEOUT",
    # Models
    "BoundingBox",
    "FrameMetadata",
    "NavigationState",
    "NetworkRequest",
    "NetworkResponse",
    "ScreencastFrame",
    # Errors
    "BrowserAgentError",
    "CDPConnectionError",
    "CDPNavigationError",
    "CDPParseError",
    "CDPProtocolError",
    "CDPTargetError",
    "CDPTimeoutError",
    "ScreencastEncodeError",
    "ScreencastStateError",
    # Version
    "__version__",
]
