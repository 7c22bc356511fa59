"""
Page - A browser tab driven over its own CDP session.

Navigation, element and network waits all arm their listener or poll before
issuing the command that could satisfy them, and settle exactly once.
"""
from __future__ import annotations

import asyncio
import base64
import json
import logging
import math
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from thrall.cdp.client import CDPSession, Connector
from thrall.cdp.network import (
    REQUEST_EVENT,
    RESPONSE_EVENT,
    NetworkIdleTracker,
    UrlMatcher,
    compile_url_matcher,
    describe_matcher,
)
from thrall.cdp.waiters import Trigger, poll_until, resolve_timeout, wait_for_event
from thrall.core.config import LOAD_EVENTS, BrowserConfig
from thrall.core.errors import (
    BrowserAgentError,
    CDPNavigationError,
    CDPProtocolError,
    CDPTimeoutError,
)
from thrall.core.models import NavigationState, NetworkRequest, NetworkResponse
from thrall.element import ElementHandle
from thrall.keyboard import Keyboard
from thrall.mouse import Mouse
from thrall.screencast import Screencast, ScreencastOptions

logger = logging.getLogger("thrall")

DEFAULT_DOMAINS = ("Page", "Runtime", "DOM", "Network")

FIND_BY_TEXT_JS = """
(() => {
    const text = %(text)s;
    const exact = %(exact)s;
    const all = %(all)s;
    const found = [];
    if (!document.body) return all ? found : null;
    const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT, null);
    while (walker.nextNode()) {
        const node = walker.currentNode;
        const content = node.textContent || '';
        const matches = exact ? content.trim() === text : content.includes(text);
        if (matches && node.parentElement) {
            if (!all) return node.parentElement;
            found.push(node.parentElement);
        }
    }
    return all ? found : null;
})()
"""

FIND_BY_ROLE_JS = """
(() => {
    const role = %(role)s;
    const name = %(name)s;
    const implicit = {
        button: 'button, input[type="button"], input[type="submit"]',
        link: 'a[href]',
        textbox: 'input[type="text"], input:not([type]), textarea',
        checkbox: 'input[type="checkbox"]',
        radio: 'input[type="radio"]',
        heading: 'h1, h2, h3, h4, h5, h6',
    };
    const nameMatches = (el) => name === null
        || (el.getAttribute('aria-label') || '').includes(name)
        || (el.textContent || '').includes(name);
    const candidates = Array.from(document.querySelectorAll(`[role="${CSS.escape(role)}"]`));
    if (implicit[role]) candidates.push(...document.querySelectorAll(implicit[role]));
    return candidates.find(nameMatches) || null;
})()
"""


class Page:
    """
    A single browser tab.

    Usage:
        page = await Page.create(ws_url)
        await page.goto("https://example.com")
        heading = await page.wait_for_selector("h1", visible=True)
        await page.close()
    """

    def __init__(self, session: CDPSession, config: Optional[BrowserConfig] = None):
        self.session = session
        self.config = config or BrowserConfig()
        self.keyboard = Keyboard(session)
        self.mouse = Mouse(session)
        self.navigation_state = NavigationState.IDLE

    @classmethod
    async def create(
        cls,
        ws_url: str,
        config: Optional[BrowserConfig] = None,
        connector: Optional[Connector] = None,
    ) -> Page:
        """Open a session to ``ws_url`` and enable the domains pages rely on."""
        config = config or BrowserConfig()
        session = CDPSession(ws_url, debug=config.debug, connector=connector)
        page = cls(session, config)

        try:
            await asyncio.gather(*(session.send(f"{domain}.enable") for domain in DEFAULT_DOMAINS))
        except BrowserAgentError:
            await session.close()
            raise

        logger.info("Page session ready", extra={"ws_url": ws_url})
        return page

    async def close(self) -> None:
        await self.session.close()

    def screencast(self, options: Optional[ScreencastOptions] = None) -> Screencast:
        return Screencast(self.session, options)

    # =========================================================================
    # Navigation
    # =========================================================================

    def _load_event(self, wait_until: Optional[str]) -> Tuple[str, str]:
        wait_until = wait_until or self.config.wait_until
        if wait_until not in LOAD_EVENTS:
            raise ValueError(
                f"Invalid wait_until: {wait_until}. Use one of {', '.join(sorted(LOAD_EVENTS))}."
            )
        return wait_until, LOAD_EVENTS[wait_until]

    async def _navigate(
        self,
        description: str,
        command: Optional[Tuple[str, Dict[str, Any]]],
        *,
        timeout: Optional[float],
        wait_until: Optional[str],
        url: Optional[str] = None,
    ) -> None:
        wait_until, event = self._load_event(wait_until)
        resolved = resolve_timeout(timeout, self.config.default_timeout)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + resolved

        tracker = NetworkIdleTracker(self.session) if wait_until == "networkidle" else None

        async def trigger() -> None:
            if command is None:
                return
            method, params = command
            response = await self.session.send(method, params)
            error_text = response.get("errorText")
            if error_text:
                raise CDPNavigationError(
                    f"Navigation to {url} failed: {error_text}",
                    url=url,
                    error_text=error_text,
                    method=method,
                )

        logger.info(f"Starting {description}", extra={"wait_until": wait_until, "timeout": resolved})
        self.navigation_state = NavigationState.NAVIGATING
        if tracker is not None:
            tracker.start()

        try:
            await wait_for_event(
                self.session,
                event,
                timeout=timeout,
                trigger=trigger,
                description=description,
                default_timeout=self.config.default_timeout,
            )
            if tracker is not None:
                threshold = self.config.network_idle_threshold
                remaining = deadline - loop.time()

                async def network_idle() -> bool:
                    return tracker.is_idle(threshold)

                await poll_until(
                    network_idle,
                    timeout=remaining if remaining > 0 else -1.0,
                    interval=min(self.config.polling_interval, threshold),
                    description=f"network idle after {description}",
                )
        except CDPTimeoutError:
            self.navigation_state = NavigationState.TIMED_OUT
            raise
        except BrowserAgentError:
            self.navigation_state = NavigationState.FAILED
            raise
        finally:
            if tracker is not None:
                tracker.stop()

        self.navigation_state = NavigationState.LOADED
        logger.info(f"Finished {description}")

    async def goto(
        self,
        url: str,
        *,
        timeout: Optional[float] = None,
        wait_until: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> None:
        """
        Navigate to a URL and wait for the load signal.

        Args:
            url: The URL to navigate to.
            timeout: Seconds to wait; None or 0 uses the configured default.
            wait_until: "load", "domcontentloaded" or "networkidle".
            referrer: Optional referrer URL.

        Raises:
            CDPTimeoutError: The load signal did not arrive in time.
            CDPNavigationError: The browser refused to start the navigation.
        """
        params: Dict[str, Any] = {"url": url}
        if referrer:
            params["referrer"] = referrer
        await self._navigate(
            f"navigation to {url}",
            ("Page.navigate", params),
            timeout=timeout,
            wait_until=wait_until,
            url=url,
        )

    async def reload(
        self,
        *,
        ignore_cache: bool = False,
        timeout: Optional[float] = None,
        wait_until: Optional[str] = None,
    ) -> None:
        await self._navigate(
            "reload",
            ("Page.reload", {"ignoreCache": ignore_cache}),
            timeout=timeout,
            wait_until=wait_until,
        )

    async def wait_for_navigation(
        self,
        *,
        timeout: Optional[float] = None,
        wait_until: Optional[str] = None,
    ) -> None:
        """Wait for a navigation started by something else, such as a click."""
        await self._navigate("navigation", None, timeout=timeout, wait_until=wait_until)

    async def _navigate_history(
        self,
        delta: int,
        *,
        timeout: Optional[float],
        wait_until: Optional[str],
    ) -> bool:
        history = await self.session.send("Page.getNavigationHistory")
        current_index = history.get("currentIndex", 0)
        entries = history.get("entries", [])
        index = current_index + delta

        if index < 0 or index >= len(entries):
            logger.debug(
                f"No history to go {'back' if delta < 0 else 'forward'} to",
                extra={"current_index": current_index, "entries": len(entries)}
            )
            return False

        entry = entries[index]
        await self._navigate(
            f"history entry {entry.get('url', entry['id'])}",
            ("Page.navigateToHistoryEntry", {"entryId": entry["id"]}),
            timeout=timeout,
            wait_until=wait_until,
            url=entry.get("url"),
        )
        return True

    async def go_back(self, *, timeout: Optional[float] = None, wait_until: Optional[str] = None) -> bool:
        """
        Navigate back in browser history.

        Returns:
            True if a navigation happened, False if already at the first entry.
        """
        return await self._navigate_history(-1, timeout=timeout, wait_until=wait_until)

    async def go_forward(self, *, timeout: Optional[float] = None, wait_until: Optional[str] = None) -> bool:
        """
        Navigate forward in browser history.

        Returns:
            True if a navigation happened, False if already at the last entry.
        """
        return await self._navigate_history(1, timeout=timeout, wait_until=wait_until)

    # =========================================================================
    # Evaluation
    # =========================================================================

    async def evaluate(self, expression: str, *args: Any) -> Any:
        """
        Evaluate JavaScript in the page and return its value.

        With ``args`` the expression must be a function; it is called with the
        JSON-encoded arguments.
        """
        if args:
            expression = f"({expression})({', '.join(json.dumps(arg) for arg in args)})"

        result = await self.session.send(
            "Runtime.evaluate",
            {"expression": expression, "returnByValue": True, "awaitPromise": True},
        )

        details = result.get("exceptionDetails")
        if details:
            description = details.get("exception", {}).get("description") or details.get("text", "Evaluation failed")
            raise BrowserAgentError(description, method="Runtime.evaluate")

        return result.get("result", {}).get("value")

    async def content(self) -> str:
        return await self.evaluate("document.documentElement.outerHTML")

    async def title(self) -> str:
        return await self.evaluate("document.title")

    async def url(self) -> str:
        return await self.evaluate("window.location.href")

    # =========================================================================
    # Element lookup
    # =========================================================================

    async def _document_node_id(self) -> int:
        result = await self.session.send("DOM.getDocument", {"depth": 0})
        return result["root"]["nodeId"]

    async def _element_from_object(self, object_id: str) -> Optional[ElementHandle]:
        await self._document_node_id()
        result = await self.session.send("DOM.requestNode", {"objectId": object_id})
        node_id = result.get("nodeId", 0)
        return ElementHandle(self.session, node_id) if node_id else None

    async def query_selector(self, selector: str) -> Optional[ElementHandle]:
        root = await self._document_node_id()
        result = await self.session.send("DOM.querySelector", {"nodeId": root, "selector": selector})
        node_id = result.get("nodeId", 0)
        return ElementHandle(self.session, node_id) if node_id else None

    async def query_selector_all(self, selector: str) -> List[ElementHandle]:
        root = await self._document_node_id()
        result = await self.session.send("DOM.querySelectorAll", {"nodeId": root, "selector": selector})
        return [ElementHandle(self.session, node_id) for node_id in result.get("nodeIds", [])]

    async def _evaluate_handle(self, expression: str) -> Optional[str]:
        result = await self.session.send(
            "Runtime.evaluate",
            {"expression": expression, "returnByValue": False},
        )
        if result.get("exceptionDetails"):
            return None
        return result.get("result", {}).get("objectId")

    async def get_by_text(self, text: str, *, exact: bool = False) -> Optional[ElementHandle]:
        object_id = await self._evaluate_handle(FIND_BY_TEXT_JS % {
            "text": json.dumps(text), "exact": json.dumps(exact), "all": "false",
        })
        if object_id is None:
            return None
        return await self._element_from_object(object_id)

    async def get_all_by_text(self, text: str, *, exact: bool = False) -> List[ElementHandle]:
        object_id = await self._evaluate_handle(FIND_BY_TEXT_JS % {
            "text": json.dumps(text), "exact": json.dumps(exact), "all": "true",
        })
        if object_id is None:
            return []

        properties = await self.session.send(
            "Runtime.getProperties",
            {"objectId": object_id, "ownProperties": True},
        )
        elements: List[ElementHandle] = []
        for prop in properties.get("result", []):
            child_id = prop.get("value", {}).get("objectId")
            if child_id and prop.get("name", "").isdigit():
                element = await self._element_from_object(child_id)
                if element is not None:
                    elements.append(element)
        return elements

    async def get_by_role(self, role: str, *, name: Optional[str] = None) -> Optional[ElementHandle]:
        object_id = await self._evaluate_handle(FIND_BY_ROLE_JS % {
            "role": json.dumps(role), "name": json.dumps(name),
        })
        if object_id is None:
            return None
        return await self._element_from_object(object_id)

    # =========================================================================
    # Waiting for elements and conditions
    # =========================================================================

    async def _wait_for_element(
        self,
        resolve: Callable[[], Awaitable[Optional[ElementHandle]]],
        description: str,
        *,
        visible: bool,
        hidden: bool,
        timeout: Optional[float],
    ) -> Optional[ElementHandle]:
        if visible and hidden:
            raise ValueError("visible and hidden cannot both be set")

        async def probe() -> Tuple[bool, Optional[ElementHandle]]:
            try:
                element = await resolve()
                if element is None:
                    return hidden, None
                if not visible and not hidden:
                    return True, element
                is_visible = await element.is_visible()
            except CDPProtocolError as e:
                # The node went away or was replaced between two queries.
                logger.debug(f"Lookup of {description} failed this poll: {e.message}")
                return hidden, None
            return (not is_visible if hidden else is_visible), element

        _, element = await poll_until(
            probe,
            timeout=timeout,
            interval=self.config.polling_interval,
            description=description,
            accept=lambda outcome: outcome[0],
            default_timeout=self.config.default_timeout,
        )
        return element

    async def wait_for_selector(
        self,
        selector: str,
        *,
        visible: bool = False,
        hidden: bool = False,
        timeout: Optional[float] = None,
    ) -> Optional[ElementHandle]:
        """
        Wait until a CSS selector resolves.

        Args:
            selector: CSS selector.
            visible: Also require the element to be computed-visible.
            hidden: Wait for the element to be missing or invisible instead.
            timeout: Seconds to wait; None or 0 uses the configured default.

        Returns:
            The element, or None when ``hidden`` is satisfied by absence.
        """
        return await self._wait_for_element(
            lambda: self.query_selector(selector),
            f"selector {selector!r}",
            visible=visible,
            hidden=hidden,
            timeout=timeout,
        )

    async def wait_for_text(
        self,
        text: str,
        *,
        exact: bool = False,
        visible: bool = False,
        hidden: bool = False,
        timeout: Optional[float] = None,
    ) -> Optional[ElementHandle]:
        return await self._wait_for_element(
            lambda: self.get_by_text(text, exact=exact),
            f"text {text!r}",
            visible=visible,
            hidden=hidden,
            timeout=timeout,
        )

    async def wait_for_role(
        self,
        role: str,
        *,
        name: Optional[str] = None,
        visible: bool = False,
        hidden: bool = False,
        timeout: Optional[float] = None,
    ) -> Optional[ElementHandle]:
        description = f"role {role!r}" + (f" named {name!r}" if name else "")
        return await self._wait_for_element(
            lambda: self.get_by_role(role, name=name),
            description,
            visible=visible,
            hidden=hidden,
            timeout=timeout,
        )

    async def wait_for_function(
        self,
        expression: str,
        *,
        timeout: Optional[float] = None,
        polling: Optional[float] = None,
    ) -> Any:
        """Poll a JavaScript expression until it returns a truthy value, and return it."""
        return await poll_until(
            lambda: self.evaluate(expression),
            timeout=timeout,
            interval=polling or self.config.polling_interval,
            description=f"function {expression!r}",
            default_timeout=self.config.default_timeout,
        )

    # =========================================================================
    # Waiting for network traffic
    # =========================================================================

    async def wait_for_response(
        self,
        url_or_predicate: UrlMatcher,
        *,
        timeout: Optional[float] = None,
        trigger: Optional[Trigger] = None,
    ) -> NetworkResponse:
        """
        Wait for the first response whose URL matches.

        Args:
            url_or_predicate: Substring, compiled regex, or predicate over the URL.
            timeout: Seconds to wait; None or 0 uses the configured default.
            trigger: Optional coroutine function run after the listener is armed.
        """
        matches = compile_url_matcher(url_or_predicate)
        params = await wait_for_event(
            self.session,
            RESPONSE_EVENT,
            lambda event: matches(event.get("response", {}).get("url", "")),
            timeout=timeout,
            trigger=trigger,
            description=f"response matching {describe_matcher(url_or_predicate)}",
            default_timeout=self.config.default_timeout,
        )
        return NetworkResponse.from_event(params)

    async def wait_for_request(
        self,
        url_or_predicate: UrlMatcher,
        *,
        timeout: Optional[float] = None,
        trigger: Optional[Trigger] = None,
    ) -> NetworkRequest:
        matches = compile_url_matcher(url_or_predicate)
        params = await wait_for_event(
            self.session,
            REQUEST_EVENT,
            lambda event: matches(event.get("request", {}).get("url", "")),
            timeout=timeout,
            trigger=trigger,
            description=f"request matching {describe_matcher(url_or_predicate)}",
            default_timeout=self.config.default_timeout,
        )
        return NetworkRequest.from_event(params)

    # =========================================================================
    # Actions by selector
    # =========================================================================

    async def click(self, selector: str, *, timeout: Optional[float] = None) -> None:
        element = await self.wait_for_selector(selector, visible=True, timeout=timeout)
        await element.click()

    async def type(self, selector: str, text: str, *, delay: float = 0.0, timeout: Optional[float] = None) -> None:
        element = await self.wait_for_selector(selector, visible=True, timeout=timeout)
        await element.type(text, delay=delay)

    async def fill(self, selector: str, value: str, *, timeout: Optional[float] = None) -> None:
        element = await self.wait_for_selector(selector, visible=True, timeout=timeout)
        await element.fill(value)

    # =========================================================================
    # Capture and emulation
    # =========================================================================

    async def screenshot(
        self,
        *,
        path: Union[str, Path, None] = None,
        full_page: bool = False,
        format: str = "png",
        quality: Optional[int] = None,
    ) -> bytes:
        """
        Capture a screenshot of the page.

        Args:
            path: Optional file to write the image to.
            full_page: Resize the viewport to the content size for the capture.
            format: "png", "jpeg" or "webp".
            quality: JPEG quality (0-100). Ignored for other formats.

        Returns:
            The decoded image bytes.
        """
        if format not in ("png", "jpeg", "webp"):
            raise ValueError(f"Invalid screenshot format: {format}")

        params: Dict[str, Any] = {"format": format}
        if format == "jpeg" and quality is not None:
            params["quality"] = quality

        if full_page:
            metrics = await self.session.send("Page.getLayoutMetrics")
            size = metrics.get("cssContentSize") or metrics.get("contentSize", {})
            await self.session.send(
                "Emulation.setDeviceMetricsOverride",
                {
                    "width": math.ceil(size.get("width", 0)),
                    "height": math.ceil(size.get("height", 0)),
                    "deviceScaleFactor": 1,
                    "mobile": False,
                },
            )

        try:
            result = await self.session.send("Page.captureScreenshot", params)
        finally:
            if full_page:
                await self.session.send("Emulation.clearDeviceMetricsOverride")

        data = base64.b64decode(result["data"])
        if path is not None:
            Path(path).write_bytes(data)
        return data

    async def pdf(self, *, path: Union[str, Path, None] = None) -> bytes:
        result = await self.session.send("Page.printToPDF", {"printBackground": True})
        data = base64.b64decode(result["data"])
        if path is not None:
            Path(path).write_bytes(data)
        return data

    async def set_viewport(self, width: int, height: int) -> None:
        await self.session.send(
            "Emulation.setDeviceMetricsOverride",
            {"width": width, "height": height, "deviceScaleFactor": 1, "mobile": False},
        )

    async def set_cookies(self, *cookies: Dict[str, Any]) -> None:
        await self.session.send("Network.setCookies", {"cookies": list(cookies)})

    async def cookies(self, urls: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        result = await self.session.send("Network.getCookies", {"urls": urls} if urls else {})
        return result.get("cookies", [])

    async def delete_cookie(self, name: str, url: Optional[str] = None) -> None:
        params: Dict[str, Any] = {"name": name}
        if url:
            params["url"] = url
        await self.session.send("Network.deleteCookies", params)

    async def set_geolocation(self, latitude: float, longitude: float, accuracy: float = 1) -> None:
        await self.session.send("Browser.grantPermissions", {"permissions": ["geolocation"]})
        await self.session.send(
            "Emulation.setGeolocationOverride",
            {"latitude": latitude, "longitude": longitude, "accuracy": accuracy},
        )
