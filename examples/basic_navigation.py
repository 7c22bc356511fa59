#!/usr/bin/env python3
"""
Basic Navigation Example

Demonstrates navigating, waiting for elements and network traffic, and
capturing a screenshot.

Prerequisites:
- Chromium must be running with debugging enabled:
  chromium --remote-debugging-port=9222
"""
import asyncio

from thrall import Browser, BrowserConfig, CDPTimeoutError, setup_logging


async def main():
    setup_logging()
    config = BrowserConfig(default_timeout=15.0)

    async with Browser(config) as browser:
        page = await browser.new_page()

        # Navigate and wait for the load event
        print("Navigating to example.com...")
        await page.goto("https://example.com")
        print(f"Title: {await page.title()}")

        # Wait for an element to be visible
        heading = await page.wait_for_selector("h1", visible=True)
        print(f"Heading: {await heading.text_content()}")

        # Wait for quiet network instead of the load event
        print("\nNavigating to Wikipedia (networkidle)...")
        await page.goto("https://en.wikipedia.org", wait_until="networkidle")
        print(f"Now at: {await page.url()}")

        # Arm a response wait before triggering the request
        response = await page.wait_for_response(
            "/w/api.php",
            trigger=lambda: page.evaluate("fetch('/w/api.php?action=query&format=json')"),
        )
        print(f"API responded with {response.status} ({response.mime_type})")

        # A wait that is allowed to fail
        try:
            await page.wait_for_selector("#does-not-exist", timeout=1.0)
        except CDPTimeoutError as e:
            print(f"Expected timeout: {e.message}")

        # Go back
        if await page.go_back():
            print(f"Back at: {await page.url()}")

        data = await page.screenshot(path="example.png")
        print(f"Screenshot saved: {len(data)} bytes")


if __name__ == "__main__":
    asyncio.run(main())
