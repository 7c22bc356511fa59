"""
CDP Module - Chrome DevTools Protocol session, waiters and network helpers.
"""
from thrall.cdp.client import CDPSession, get_page_ws_url, new_page_ws_url, setup_logging
from thrall.cdp.network import NetworkIdleTracker, compile_url_matcher
from thrall.cdp.waiters import poll_until, resolve_timeout, wait_for_event

__all__ = [
    "CDPSession",
    "get_page_ws_url",
    "new_page_ws_url",
    "setup_logging",
    "NetworkIdleTracker",
    "compile_url_matcher",
    "poll_until",
    "resolve_timeout",
    "wait_for_event",
]
