#!/usr/bin/env python3
"""
Form Filling Example

Demonstrates filling a form, using keyboard shortcuts, and recording the
session as a screencast.

Prerequisites:
- Chromium must be running with debugging enabled:
  chromium --remote-debugging-port=9222
- ffmpeg on PATH to encode the recording
"""
import asyncio

from thrall import Browser, ScreencastEncodeError, ScreencastOptions


async def main():
    async with Browser() as browser:
        page = await browser.new_page()
        screencast = page.screencast(ScreencastOptions(max_width=960, max_height=540))

        print("Navigating to form page...")
        await page.goto("https://httpbin.org/forms/post")
        await screencast.start()

        await page.fill("input[name=custname]", "John Doe")
        await page.type("input[name=custemail]", "john@example.com", delay=0.05)

        # Select all in the comments box and replace it
        comments = await page.wait_for_selector("textarea[name=comments]", visible=True)
        await comments.focus()
        await page.keyboard.down("Control")
        await page.keyboard.press("a")
        await page.keyboard.up("Control")
        await page.keyboard.type("Leave at the door")

        # Submit and wait for the POST to come back
        response = await page.wait_for_response(
            "/post",
            trigger=lambda: page.click("form button"),
        )
        print(f"Submitted: HTTP {response.status}")

        frames = await screencast.stop()
        print(f"Recorded {len(frames)} frames")

        try:
            await screencast.save_video("form.mp4")
            await screencast.save_gif("form.gif")
        except ScreencastEncodeError as e:
            print(f"Could not encode recording: {e}")
            paths = await screencast.save_frames("form-frames")
            print(f"Saved {len(paths)} frames instead")


if __name__ == "__main__":
    asyncio.run(main())
