"""
CDP Network - URL matching for network waiters and in-flight request tracking.
"""
import asyncio
import logging
import re
from typing import Any, Callable, Dict, Pattern, Set, Union

from thrall.cdp.client import CDPSession

logger = logging.getLogger("thrall")

UrlMatcher = Union[str, Pattern[str], Callable[[str], bool]]

REQUEST_EVENT = "Network.requestWillBeSent"
RESPONSE_EVENT = "Network.responseReceived"
FINISHED_EVENTS = ("Network.loadingFinished", "Network.loadingFailed")


def compile_url_matcher(url_or_predicate: UrlMatcher) -> Callable[[str], bool]:
    """Turn a substring, a compiled pattern, or a predicate into a URL predicate."""
    if isinstance(url_or_predicate, str):
        needle = url_or_predicate
        return lambda url: needle in url
    if isinstance(url_or_predicate, re.Pattern):
        pattern = url_or_predicate
        return lambda url: pattern.search(url) is not None
    if callable(url_or_predicate):
        return url_or_predicate
    raise TypeError(
        f"Expected a string, compiled pattern or callable, got {type(url_or_predicate).__name__}"
    )


def describe_matcher(url_or_predicate: UrlMatcher) -> str:
    if isinstance(url_or_predicate, str):
        return repr(url_or_predicate)
    if isinstance(url_or_predicate, re.Pattern):
        return f"/{url_or_predicate.pattern}/"
    return getattr(url_or_predicate, "__name__", "predicate")


class NetworkIdleTracker:
    """
    Counts in-flight requests on a session.

    Must be started before the navigation it observes so that requests issued
    by that navigation are counted.
    """

    def __init__(self, session: CDPSession):
        self.session = session
        self.inflight: Set[str] = set()
        self.last_activity = 0.0
        self._active = False

    def _now(self) -> float:
        return asyncio.get_running_loop().time()

    def start(self) -> None:
        if self._active:
            return
        self.inflight.clear()
        self.last_activity = self._now()
        self.session.on(REQUEST_EVENT, self._on_request)
        for event in FINISHED_EVENTS:
            self.session.on(event, self._on_finished)
        self._active = True

    def stop(self) -> None:
        if not self._active:
            return
        self.session.off(REQUEST_EVENT, self._on_request)
        for event in FINISHED_EVENTS:
            self.session.off(event, self._on_finished)
        self._active = False

    def _on_request(self, params: Dict[str, Any]) -> None:
        request_id = params.get("requestId")
        if request_id:
            self.inflight.add(str(request_id))
        self.last_activity = self._now()

    def _on_finished(self, params: Dict[str, Any]) -> None:
        request_id = params.get("requestId")
        if request_id:
            self.inflight.discard(str(request_id))
        self.last_activity = self._now()

    def is_idle(self, idle_threshold: float) -> bool:
        if self.inflight:
            return False
        return self._now() - self.last_activity >= idle_threshold
