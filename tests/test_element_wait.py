"""
Tests for element lookup, the element wait policy and ElementHandle actions.

Run with: pytest tests/test_element_wait.py -v
"""
import asyncio

import pytest

from thrall import BrowserAgentError, CDPTimeoutError, ElementHandle
from tests.fakes import FakeError


class FakeDom:
    """Serves DOM queries for one element whose presence and visibility tests can flip."""

    def __init__(self, fake_ws, node_id=0, visible=False):
        self.fake_ws = fake_ws
        self.node_id = node_id
        self.visible = visible
        self.stale_polls = 0

        fake_ws.respond("DOM.getDocument", {"root": {"nodeId": 1}})
        fake_ws.respond("DOM.querySelector", lambda params: {"nodeId": self.node_id})
        fake_ws.respond("DOM.querySelectorAll", {"nodeIds": [5, 6, 7]})
        fake_ws.respond("DOM.resolveNode", self._resolve_node)
        fake_ws.respond("Runtime.callFunctionOn", lambda params: {
            "result": {"type": "boolean", "value": self.visible},
        })

    def _resolve_node(self, params):
        if self.stale_polls > 0:
            self.stale_polls -= 1
            return FakeError("No node with given id found")
        return {"object": {"objectId": f"node-{params['nodeId']}"}}

    def later(self, delay, **changes):
        loop = asyncio.get_running_loop()
        for name, value in changes.items():
            loop.call_later(delay, setattr, self, name, value)


# =============================================================================
# Query Tests
# =============================================================================

class TestQuerySelector:
    """Single-shot lookups."""

    @pytest.mark.asyncio
    async def test_query_selector_found(self, page, fake_ws):
        FakeDom(fake_ws, node_id=42)
        element = await page.query_selector("#login")
        assert element.node_id == 42
        params = fake_ws.messages("DOM.querySelector")[0]["params"]
        assert params == {"nodeId": 1, "selector": "#login"}

    @pytest.mark.asyncio
    async def test_query_selector_missing(self, page, fake_ws):
        FakeDom(fake_ws, node_id=0)
        assert await page.query_selector("#login") is None

    @pytest.mark.asyncio
    async def test_query_selector_all(self, page, fake_ws):
        FakeDom(fake_ws)
        elements = await page.query_selector_all("li")
        assert [e.node_id for e in elements] == [5, 6, 7]


# =============================================================================
# Wait Policy Tests
# =============================================================================

class TestWaitForSelector:
    """Attached, visible and hidden modes."""

    @pytest.mark.asyncio
    async def test_attached_mode_returns_as_soon_as_present(self, page, fake_ws):
        dom = FakeDom(fake_ws, node_id=0, visible=False)
        dom.later(0.03, node_id=9)

        element = await page.wait_for_selector("#late", timeout=1.0)

        assert element.node_id == 9
        assert fake_ws.messages("Runtime.callFunctionOn") == []

    @pytest.mark.asyncio
    async def test_visible_mode_waits_for_visibility(self, page, fake_ws):
        dom = FakeDom(fake_ws, node_id=9, visible=False)
        dom.later(0.05, visible=True)

        element = await page.wait_for_selector("#banner", visible=True, timeout=1.0)

        assert element.node_id == 9
        assert len(fake_ws.messages("Runtime.callFunctionOn")) >= 2

    @pytest.mark.asyncio
    async def test_visible_mode_times_out_when_element_stays_hidden(self, page, fake_ws):
        FakeDom(fake_ws, node_id=9, visible=False)
        with pytest.raises(CDPTimeoutError):
            await page.wait_for_selector("#banner", visible=True, timeout=0.05)

    @pytest.mark.asyncio
    async def test_hidden_mode_resolves_immediately_when_absent(self, page, fake_ws):
        FakeDom(fake_ws, node_id=0)
        loop = asyncio.get_running_loop()
        started = loop.time()

        assert await page.wait_for_selector("#spinner", hidden=True, timeout=1.0) is None
        assert loop.time() - started < 0.5
        assert len(fake_ws.messages("DOM.querySelector")) == 1

    @pytest.mark.asyncio
    async def test_hidden_mode_waits_for_element_to_become_invisible(self, page, fake_ws):
        dom = FakeDom(fake_ws, node_id=3, visible=True)
        dom.later(0.03, visible=False)

        element = await page.wait_for_selector("#spinner", hidden=True, timeout=1.0)
        assert element.node_id == 3

    @pytest.mark.asyncio
    async def test_hidden_mode_resolves_when_element_is_removed(self, page, fake_ws):
        dom = FakeDom(fake_ws, node_id=3, visible=True)
        dom.later(0.03, node_id=0)

        assert await page.wait_for_selector("#spinner", hidden=True, timeout=1.0) is None

    @pytest.mark.asyncio
    async def test_visible_and_hidden_together_is_rejected(self, page):
        with pytest.raises(ValueError):
            await page.wait_for_selector("#x", visible=True, hidden=True)

    @pytest.mark.asyncio
    async def test_timeout_message_names_the_selector(self, page, fake_ws):
        FakeDom(fake_ws, node_id=0)
        with pytest.raises(CDPTimeoutError) as exc_info:
            await page.wait_for_selector("#missing", timeout=0.05)
        assert exc_info.value.what == "selector '#missing'"
        assert "#missing" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_node_vanishing_between_polls_is_tolerated(self, page, fake_ws):
        dom = FakeDom(fake_ws, node_id=9, visible=True)
        dom.stale_polls = 2

        element = await page.wait_for_selector("#flaky", visible=True, timeout=1.0)

        assert element.node_id == 9
        assert len(fake_ws.messages("DOM.resolveNode")) == 3

    @pytest.mark.asyncio
    async def test_click_waits_for_visible_element(self, page, fake_ws):
        dom = FakeDom(fake_ws, node_id=0, visible=True)
        dom.later(0.02, node_id=4)

        await page.click("button.submit", timeout=1.0)

        calls = fake_ws.messages("Runtime.callFunctionOn")
        assert "this.click()" in calls[-1]["params"]["functionDeclaration"]


class TestWaitForTextAndRole:
    """Text and role locators resolve through a JavaScript handle."""

    @pytest.mark.asyncio
    async def test_wait_for_text(self, page, fake_ws):
        state = {"found": False}
        fake_ws.respond("Runtime.evaluate", lambda params: (
            {"result": {"type": "object", "objectId": "text-1"}}
            if state["found"] else {"result": {"type": "object", "subtype": "null", "value": None}}
        ))
        fake_ws.respond("DOM.getDocument", {"root": {"nodeId": 1}})
        fake_ws.respond("DOM.requestNode", {"nodeId": 17})
        asyncio.get_running_loop().call_later(0.03, state.update, {"found": True})

        element = await page.wait_for_text("Welcome back", timeout=1.0)

        assert element.node_id == 17
        expression = fake_ws.messages("Runtime.evaluate")[0]["params"]["expression"]
        assert '"Welcome back"' in expression
        assert fake_ws.messages("DOM.requestNode")[0]["params"] == {"objectId": "text-1"}

    @pytest.mark.asyncio
    async def test_wait_for_text_timeout_names_the_text(self, page, fake_ws):
        fake_ws.respond("Runtime.evaluate", {"result": {"type": "object", "subtype": "null", "value": None}})
        with pytest.raises(CDPTimeoutError, match="text 'Goodbye'"):
            await page.wait_for_text("Goodbye", timeout=0.05)

    @pytest.mark.asyncio
    async def test_wait_for_role(self, page, fake_ws):
        fake_ws.respond("Runtime.evaluate", {"result": {"type": "object", "objectId": "role-1"}})
        fake_ws.respond("DOM.getDocument", {"root": {"nodeId": 1}})
        fake_ws.respond("DOM.requestNode", {"nodeId": 8})

        element = await page.wait_for_role("button", name="Sign in", timeout=1.0)

        assert element.node_id == 8
        expression = fake_ws.messages("Runtime.evaluate")[0]["params"]["expression"]
        assert '"button"' in expression and '"Sign in"' in expression

    @pytest.mark.asyncio
    async def test_get_all_by_text_collects_array_items(self, page, fake_ws):
        fake_ws.respond("Runtime.evaluate", {"result": {"type": "object", "subtype": "array", "objectId": "arr"}})
        fake_ws.respond("Runtime.getProperties", {"result": [
            {"name": "0", "value": {"objectId": "a"}},
            {"name": "1", "value": {"objectId": "b"}},
            {"name": "length", "value": {"value": 2}},
        ]})
        fake_ws.respond("DOM.getDocument", {"root": {"nodeId": 1}})
        node_ids = iter([21, 22])
        fake_ws.respond("DOM.requestNode", lambda params: {"nodeId": next(node_ids)})

        elements = await page.get_all_by_text("item")
        assert [e.node_id for e in elements] == [21, 22]


class TestWaitForFunction:
    """Polling a JavaScript expression."""

    @pytest.mark.asyncio
    async def test_returns_first_truthy_value(self, page, fake_ws):
        values = iter([False, None, 0, 42])
        fake_ws.respond("Runtime.evaluate", lambda params: {"result": {"value": next(values)}})

        assert await page.wait_for_function("window.ready", polling=0.001, timeout=1.0) == 42

    @pytest.mark.asyncio
    async def test_times_out(self, page, fake_ws):
        fake_ws.respond("Runtime.evaluate", {"result": {"type": "boolean", "value": False}})
        with pytest.raises(CDPTimeoutError, match="window.ready"):
            await page.wait_for_function("window.ready", timeout=0.05)

    @pytest.mark.asyncio
    async def test_script_error_propagates(self, page, fake_ws):
        fake_ws.respond("Runtime.evaluate", {
            "result": {"type": "object"},
            "exceptionDetails": {"text": "Uncaught SyntaxError"},
        })
        with pytest.raises(BrowserAgentError, match="SyntaxError"):
            await page.wait_for_function("window.(", timeout=1.0)


# =============================================================================
# ElementHandle Tests
# =============================================================================

class TestElementHandle:
    """Actions on a resolved node."""

    @pytest.mark.asyncio
    async def test_bounding_box_from_content_quad(self, session, fake_ws):
        fake_ws.respond("DOM.getBoxModel", {"model": {"content": [10, 20, 110, 20, 110, 70, 10, 70]}})
        box = await ElementHandle(session, 5).bounding_box()
        assert (box.x, box.y, box.width, box.height) == (10, 20, 100, 50)
        assert box.center == (60, 45)

    @pytest.mark.asyncio
    async def test_bounding_box_none_without_layout(self, session, fake_ws):
        fake_ws.fail("DOM.getBoxModel", "Could not compute box model.")
        assert await ElementHandle(session, 5).bounding_box() is None

    @pytest.mark.asyncio
    async def test_hover_moves_to_center(self, session, fake_ws):
        fake_ws.respond("DOM.getBoxModel", {"model": {"content": [0, 0, 40, 0, 40, 20, 0, 20]}})
        await ElementHandle(session, 5).hover()
        params = fake_ws.messages("Input.dispatchMouseEvent")[0]["params"]
        assert params == {"type": "mouseMoved", "x": 20, "y": 10}

    @pytest.mark.asyncio
    async def test_hover_without_layout_raises(self, session, fake_ws):
        fake_ws.fail("DOM.getBoxModel", "Could not compute box model.")
        with pytest.raises(BrowserAgentError, match="no box model"):
            await ElementHandle(session, 5).hover()

    @pytest.mark.asyncio
    async def test_get_attribute_passes_argument(self, session, fake_ws):
        fake_ws.respond("DOM.resolveNode", {"object": {"objectId": "node-5"}})
        fake_ws.respond("Runtime.callFunctionOn", {"result": {"type": "string", "value": "/home"}})

        assert await ElementHandle(session, 5).get_attribute("href") == "/home"
        params = fake_ws.messages("Runtime.callFunctionOn")[0]["params"]
        assert params["objectId"] == "node-5"
        assert params["arguments"] == [{"value": "href"}]

    @pytest.mark.asyncio
    async def test_fill_focuses_then_sets_value(self, session, fake_ws):
        fake_ws.respond("DOM.resolveNode", {"object": {"objectId": "node-5"}})

        await ElementHandle(session, 5).fill("hello")

        methods = [m for m in fake_ws.sent_methods() if m != "DOM.resolveNode"]
        assert methods == ["DOM.focus", "Runtime.callFunctionOn", "Runtime.callFunctionOn"]
        assert fake_ws.messages("Runtime.callFunctionOn")[1]["params"]["arguments"] == [{"value": "hello"}]

    @pytest.mark.asyncio
    async def test_type_sends_key_events_per_character(self, session, fake_ws):
        await ElementHandle(session, 5).type("ab")
        events = [(m["params"]["type"], m["params"]["text"]) for m in fake_ws.messages("Input.dispatchKeyEvent")]
        assert events == [("keyDown", "a"), ("keyUp", "a"), ("keyDown", "b"), ("keyUp", "b")]
