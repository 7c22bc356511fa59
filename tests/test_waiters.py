"""
Tests for the event-race and polling wait primitives.

Run with: pytest tests/test_waiters.py -v
"""
import asyncio
import gc

import pytest

from thrall import (
    CDPConnectionError,
    CDPProtocolError,
    CDPTimeoutError,
    poll_until,
    resolve_timeout,
    wait_for_event,
)
from tests.fakes import wait_until


# =============================================================================
# Timeout Normalization Tests
# =============================================================================

class TestResolveTimeout:
    """None and 0 select the default; negatives clamp to zero."""

    def test_none_uses_default(self):
        assert resolve_timeout(None) == 30.0
        assert resolve_timeout(None, 5.0) == 5.0

    def test_zero_uses_default(self):
        assert resolve_timeout(0, 5.0) == 5.0

    def test_positive_is_kept(self):
        assert resolve_timeout(0.25, 5.0) == 0.25

    def test_negative_clamps_to_zero(self):
        assert resolve_timeout(-1, 5.0) == 0.0


# =============================================================================
# Event Race Tests
# =============================================================================

class TestWaitForEvent:
    """wait_for_event settles once and leaves no listener behind."""

    @pytest.mark.asyncio
    async def test_resolves_with_event_params(self, session, fake_ws):
        fake_ws.emit_later(0.02, "Page.loadEventFired", {"timestamp": 12.5})
        params = await wait_for_event(session, "Page.loadEventFired", timeout=1.0)
        assert params == {"timestamp": 12.5}
        assert session.listener_count("Page.loadEventFired") == 0

    @pytest.mark.asyncio
    async def test_predicate_filters_events(self, session, fake_ws):
        for n in range(5):
            fake_ws.emit("Runtime.consoleAPICalled", {"n": n})

        params = await wait_for_event(
            session,
            "Runtime.consoleAPICalled",
            lambda p: p["n"] == 3,
            timeout=1.0,
        )
        assert params == {"n": 3}

    @pytest.mark.asyncio
    async def test_timeout_raises_and_cleans_up(self, session):
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(CDPTimeoutError) as exc_info:
            await wait_for_event(session, "Page.loadEventFired", timeout=0.05, description="page load")

        elapsed = loop.time() - started
        assert 0.03 <= elapsed < 1.0
        assert exc_info.value.timeout == 0.05
        assert exc_info.value.what == "page load"
        assert "page load" in exc_info.value.message
        assert session.listener_count("Page.loadEventFired") == 0
        assert session._waiters == set()

    @pytest.mark.asyncio
    async def test_repeated_timeouts_leave_no_listeners(self, session):
        baseline = session.listener_count("Page.loadEventFired")
        for _ in range(5):
            with pytest.raises(CDPTimeoutError):
                await wait_for_event(session, "Page.loadEventFired", timeout=0.01)
        assert session.listener_count("Page.loadEventFired") == baseline

    @pytest.mark.asyncio
    async def test_event_emitted_before_trigger_reply_is_seen(self, session, fake_ws):
        """The listener is armed before the trigger sends its command."""
        fake_ws.respond("Page.navigate", lambda params: (
            fake_ws.emit("Page.loadEventFired", {"timestamp": 1.0}) or {"frameId": "F1"}
        ))

        params = await wait_for_event(
            session,
            "Page.loadEventFired",
            timeout=1.0,
            trigger=lambda: session.send("Page.navigate", {"url": "about:blank"}),
        )
        assert params == {"timestamp": 1.0}

    @pytest.mark.asyncio
    async def test_trigger_error_propagates_and_cleans_up(self, session, fake_ws):
        fake_ws.fail("Page.navigate", "Cannot navigate to invalid URL")

        with pytest.raises(CDPProtocolError) as exc_info:
            await wait_for_event(
                session,
                "Page.loadEventFired",
                timeout=1.0,
                trigger=lambda: session.send("Page.navigate", {"url": "::"}),
            )
        assert exc_info.value.message == "Cannot navigate to invalid URL"
        assert session.listener_count("Page.loadEventFired") == 0

    @pytest.mark.asyncio
    async def test_stalled_trigger_is_bounded_by_the_timeout(self, session, fake_ws):
        fake_ws.hold("Page.navigate")
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(CDPTimeoutError):
            await wait_for_event(
                session,
                "Page.loadEventFired",
                timeout=0.1,
                trigger=lambda: session.send("Page.navigate", {"url": "about:blank"}),
            )

        assert loop.time() - started < 1.0
        assert session.pending_count == 0
        assert session.listener_count("Page.loadEventFired") == 0

    @pytest.mark.asyncio
    async def test_close_during_trigger_leaves_no_unretrieved_error(self, session, fake_ws):
        fake_ws.hold("Page.navigate")
        loop = asyncio.get_running_loop()
        contexts = []
        previous = loop.get_exception_handler()
        loop.set_exception_handler(lambda loop, context: contexts.append(context))
        try:
            loop.call_later(0.02, lambda: asyncio.ensure_future(session.close()))
            with pytest.raises(CDPConnectionError):
                await wait_for_event(
                    session,
                    "Page.loadEventFired",
                    timeout=5.0,
                    trigger=lambda: session.send("Page.navigate", {"url": "about:blank"}),
                )
            gc.collect()
        finally:
            loop.set_exception_handler(previous)

        assert not [c for c in contexts if "never retrieved" in c.get("message", "")]

    @pytest.mark.asyncio
    async def test_close_during_wait_raises_connection_error(self, session):
        loop = asyncio.get_running_loop()
        loop.call_later(0.02, lambda: asyncio.ensure_future(session.close()))

        with pytest.raises(CDPConnectionError):
            await wait_for_event(session, "Page.loadEventFired", timeout=5.0)

    @pytest.mark.asyncio
    async def test_waiting_on_closed_session_fails_fast(self, session):
        await session.close()
        with pytest.raises(CDPConnectionError):
            await wait_for_event(session, "Page.loadEventFired", timeout=5.0)

    @pytest.mark.asyncio
    async def test_raising_predicate_propagates(self, session, fake_ws):
        def predicate(params):
            raise KeyError("frame")

        fake_ws.emit_later(0.01, "Page.frameNavigated", {})
        with pytest.raises(KeyError):
            await wait_for_event(session, "Page.frameNavigated", predicate, timeout=1.0)
        assert session.listener_count("Page.frameNavigated") == 0

    @pytest.mark.asyncio
    async def test_negative_timeout_fails_without_waiting(self, session):
        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(CDPTimeoutError):
            await wait_for_event(session, "Page.loadEventFired", timeout=-1)
        assert loop.time() - started < 0.5

    @pytest.mark.asyncio
    async def test_concurrent_waits_each_get_the_event(self, session, fake_ws):
        waits = [
            asyncio.ensure_future(wait_for_event(session, "Page.loadEventFired", timeout=1.0))
            for _ in range(3)
        ]
        await wait_until(lambda: session.listener_count("Page.loadEventFired") == 3)
        fake_ws.emit("Page.loadEventFired", {"timestamp": 2.0})

        results = await asyncio.gather(*waits)
        assert results == [{"timestamp": 2.0}] * 3
        assert session.listener_count("Page.loadEventFired") == 0


# =============================================================================
# Polling Tests
# =============================================================================

class TestPollUntil:
    """poll_until probes at least once and respects the deadline."""

    @pytest.mark.asyncio
    async def test_returns_first_accepted_result(self):
        values = iter([None, 0, "", "ready"])

        async def probe():
            return next(values)

        assert await poll_until(probe, timeout=1.0, interval=0.001) == "ready"

    @pytest.mark.asyncio
    async def test_custom_accept(self):
        counter = {"n": 0}

        async def probe():
            counter["n"] += 1
            return counter["n"]

        result = await poll_until(probe, timeout=1.0, interval=0.001, accept=lambda n: n >= 3)
        assert result == 3

    @pytest.mark.asyncio
    async def test_probes_once_even_with_zero_length_deadline(self):
        calls = []

        async def probe():
            calls.append(1)
            return True

        assert await poll_until(probe, timeout=-1) is True
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_timeout_names_what_was_awaited(self):
        async def probe():
            return False

        with pytest.raises(CDPTimeoutError) as exc_info:
            await poll_until(probe, timeout=0.05, interval=0.01, description="selector '#login'")

        error = exc_info.value
        assert error.what == "selector '#login'"
        assert "selector '#login'" in str(error)
        assert error.context["attempts"] >= 2

    @pytest.mark.asyncio
    async def test_sleep_is_clamped_to_deadline(self):
        async def probe():
            return False

        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(CDPTimeoutError):
            await poll_until(probe, timeout=0.05, interval=10.0)
        assert loop.time() - started < 1.0

    @pytest.mark.asyncio
    async def test_probe_errors_propagate(self):
        async def probe():
            raise RuntimeError("probe failed")

        with pytest.raises(RuntimeError, match="probe failed"):
            await poll_until(probe, timeout=1.0)
