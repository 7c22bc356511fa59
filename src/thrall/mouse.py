"""
Mouse - Synthesized pointer events with a remembered position.
"""
import asyncio
from typing import Optional

from thrall.cdp.client import CDPSession

MOUSE_BUTTONS = ("left", "right", "middle")


class Mouse:
    """Mouse bound to one session."""

    def __init__(self, session: CDPSession):
        self.session = session
        self.x = 0.0
        self.y = 0.0
        self.button = "left"

    async def move(self, x: float, y: float, *, steps: int = 1) -> None:
        """Move to (x, y), interpolating ``steps`` intermediate events."""
        steps = max(1, int(steps))
        from_x, from_y = self.x, self.y

        for i in range(1, steps + 1):
            await self.session.send(
                "Input.dispatchMouseEvent",
                {
                    "type": "mouseMoved",
                    "x": from_x + (x - from_x) * (i / steps),
                    "y": from_y + (y - from_y) * (i / steps),
                },
            )

        self.x = x
        self.y = y

    async def down(self, *, button: str = "left", click_count: int = 1) -> None:
        if button not in MOUSE_BUTTONS:
            raise ValueError(f"Invalid mouse button: {button}. Use 'left', 'right', or 'middle'.")
        self.button = button
        await self.session.send(
            "Input.dispatchMouseEvent",
            {
                "type": "mousePressed",
                "x": self.x,
                "y": self.y,
                "button": button,
                "clickCount": click_count,
            },
        )

    async def up(self, *, button: Optional[str] = None, click_count: int = 1) -> None:
        await self.session.send(
            "Input.dispatchMouseEvent",
            {
                "type": "mouseReleased",
                "x": self.x,
                "y": self.y,
                "button": button or self.button,
                "clickCount": click_count,
            },
        )

    async def click(
        self,
        x: float,
        y: float,
        *,
        button: str = "left",
        click_count: int = 1,
        delay: float = 0.0,
    ) -> None:
        await self.move(x, y)
        await self.down(button=button, click_count=click_count)
        if delay > 0:
            await asyncio.sleep(delay)
        await self.up(button=button, click_count=click_count)

    async def dblclick(self, x: float, y: float, *, button: str = "left", delay: float = 0.0) -> None:
        await self.click(x, y, button=button, click_count=2, delay=delay)

    async def wheel(self, *, delta_x: float = 0.0, delta_y: float = 0.0) -> None:
        await self.session.send(
            "Input.dispatchMouseEvent",
            {
                "type": "mouseWheel",
                "x": self.x,
                "y": self.y,
                "deltaX": delta_x,
                "deltaY": delta_y,
            },
        )
