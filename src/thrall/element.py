"""
Element Handle - A DOM node addressed by its CDP node id.
"""
import asyncio
import base64
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from thrall.cdp.client import CDPSession
from thrall.core.errors import BrowserAgentError, CDPProtocolError
from thrall.core.models import BoundingBox

logger = logging.getLogger("thrall")

IS_VISIBLE_JS = """
function() {
    const style = window.getComputedStyle(this);
    return style.display !== 'none'
        && style.visibility !== 'hidden'
        && style.opacity !== '0'
        && this.offsetWidth > 0
        && this.offsetHeight > 0;
}
"""

FILL_JS = """
function(value) {
    this.value = value;
    this.dispatchEvent(new Event('input', { bubbles: true }));
    this.dispatchEvent(new Event('change', { bubbles: true }));
}
"""


class ElementHandle:
    """A node in the page's DOM; node ids are only valid until the document changes."""

    def __init__(self, session: CDPSession, node_id: int):
        self.session = session
        self.node_id = node_id

    def __repr__(self) -> str:
        return f"ElementHandle(node_id={self.node_id})"

    async def _object_id(self) -> str:
        result = await self.session.send("DOM.resolveNode", {"nodeId": self.node_id})
        return result["object"]["objectId"]

    async def _call(self, function_declaration: str, *args: Any, return_by_value: bool = True) -> Any:
        params: Dict[str, Any] = {
            "objectId": await self._object_id(),
            "functionDeclaration": function_declaration,
            "returnByValue": return_by_value,
        }
        if args:
            params["arguments"] = [{"value": arg} for arg in args]
        result = await self.session.send("Runtime.callFunctionOn", params)
        return result.get("result", {}).get("value")

    async def click(self) -> None:
        await self._call("function() { this.click(); }")

    async def focus(self) -> None:
        await self.session.send("DOM.focus", {"nodeId": self.node_id})

    async def type(self, text: str, *, delay: float = 0.0) -> None:
        await self.focus()
        for char in text:
            await self.session.send("Input.dispatchKeyEvent", {"type": "keyDown", "text": char})
            await self.session.send("Input.dispatchKeyEvent", {"type": "keyUp", "text": char})
            if delay > 0:
                await asyncio.sleep(delay)

    async def fill(self, value: str) -> None:
        """Replace the element's value and fire input/change events."""
        await self.focus()
        await self._call("function() { this.value = ''; }")
        await self._call(FILL_JS, value)

    async def hover(self) -> None:
        box = await self.bounding_box()
        if box is None:
            raise BrowserAgentError("Element has no box model", method="hover", node_id=self.node_id)
        x, y = box.center
        await self.session.send("Input.dispatchMouseEvent", {"type": "mouseMoved", "x": x, "y": y})

    async def text_content(self) -> Optional[str]:
        return await self._call("function() { return this.textContent; }")

    async def inner_text(self) -> str:
        return await self._call("function() { return this.innerText; }")

    async def inner_html(self) -> str:
        return await self._call("function() { return this.innerHTML; }")

    async def get_attribute(self, name: str) -> Optional[str]:
        return await self._call("function(name) { return this.getAttribute(name); }", name)

    async def is_visible(self) -> bool:
        """Computed visibility: displayed, not hidden, not transparent, non-empty box."""
        return bool(await self._call(IS_VISIBLE_JS))

    async def bounding_box(self) -> Optional[BoundingBox]:
        try:
            result = await self.session.send("DOM.getBoxModel", {"nodeId": self.node_id})
        except CDPProtocolError as e:
            logger.debug(f"No box model for node {self.node_id}: {e.message}")
            return None

        x1, y1, x2, _, _, y3, _, _ = result["model"]["content"]
        return BoundingBox(x=x1, y=y1, width=x2 - x1, height=y3 - y1)

    async def screenshot(self, *, path: Union[str, Path, None] = None) -> bytes:
        box = await self.bounding_box()
        if box is None:
            raise BrowserAgentError("Element is not visible", method="screenshot", node_id=self.node_id)

        result = await self.session.send(
            "Page.captureScreenshot",
            {
                "format": "png",
                "clip": {"x": box.x, "y": box.y, "width": box.width, "height": box.height, "scale": 1},
            },
        )
        data = base64.b64decode(result["data"])
        if path is not None:
            Path(path).write_bytes(data)
        return data
