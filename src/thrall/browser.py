"""
Browser - Connection to an already running Chromium's debugging endpoint.

Launching and killing the browser process belongs to the caller; this class
only talks to the HTTP endpoint to open tabs and owns the pages it opened.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from thrall.cdp.client import Connector, new_page_ws_url
from thrall.core.config import BrowserConfig
from thrall.core.errors import BrowserAgentError, CDPConnectionError
from thrall.page import Page

logger = logging.getLogger("thrall")


class Browser:
    """
    Pages opened against a Chromium remote-debugging endpoint.

    Usage:
        async with Browser(BrowserConfig(port=9222)) as browser:
            page = await browser.new_page()
            await page.goto("https://example.com")
    """

    def __init__(self, config: Optional[BrowserConfig] = None, connector: Optional[Connector] = None):
        self.config = config or BrowserConfig()
        self._connector = connector
        self._pages: List[Page] = []
        self.version: Dict[str, Any] = {}

    async def __aenter__(self) -> Browser:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def start(self, *, timeout: float = 10.0, interval: float = 0.05) -> Dict[str, Any]:
        """
        Wait until the endpoint answers ``/json/version``.

        Args:
            timeout: Seconds to keep retrying while the browser boots.
            interval: Seconds between attempts.

        Returns:
            The version payload reported by the browser.
        """
        url = f"{self.config.debugger_url}/json/version"
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        last_error: Optional[Exception] = None

        async with httpx.AsyncClient() as client:
            while True:
                try:
                    response = await client.get(url)
                    if response.status_code == 200:
                        self.version = response.json()
                        logger.info(
                            f"Connected to {self.version.get('Browser', 'browser')} at {self.config.debugger_url}"
                        )
                        return self.version
                except (httpx.RequestError, ValueError) as e:
                    last_error = e

                if loop.time() >= deadline:
                    raise CDPConnectionError(
                        f"Timed out waiting for CDP at {self.config.debugger_url}",
                        method="Browser.start",
                    ) from last_error
                await asyncio.sleep(interval)

    async def new_page(self, url: str = "about:blank") -> Page:
        ws_url = await new_page_ws_url(self.config.host, self.config.port, url)
        page = await Page.create(ws_url, self.config, connector=self._connector)
        self._pages.append(page)
        return page

    @property
    def pages(self) -> List[Page]:
        return list(self._pages)

    async def close(self) -> None:
        """Close every page this browser opened."""
        pages, self._pages = self._pages, []
        for page in pages:
            try:
                await page.close()
            except BrowserAgentError as e:
                logger.warning(f"Error closing page: {e}")
        logger.info("Browser connection closed")
