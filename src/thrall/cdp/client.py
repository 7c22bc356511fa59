"""
CDP Client - Chrome DevTools Protocol WebSocket session for a single target.
"""
import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set
from urllib.parse import quote

import httpx
import websockets
from websockets.asyncio.client import connect

from thrall.core.errors import (
    CDPConnectionError,
    CDPParseError,
    CDPProtocolError,
    CDPTargetError,
)

logger = logging.getLogger("thrall")

EventCallback = Callable[[Dict[str, Any]], Any]
Connector = Callable[[str], Awaitable[Any]]


def setup_logging(level: int = logging.INFO, debug: bool = False):
    """Configure logging for thrall."""
    if debug:
        level = logging.DEBUG

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level)


async def get_page_ws_url(host="localhost", port=9222):
    """Get the WebSocket URL for the first page target."""
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"http://{host}:{port}/json")
            targets = response.json()
            for target in targets:
                if target.get("type") == "page" and target.get("webSocketDebuggerUrl"):
                    ws_url = target["webSocketDebuggerUrl"]
                    logger.debug(f"Found page target, ws_url={ws_url}")
                    return ws_url
            raise CDPTargetError(
                f"No page target found at {host}:{port}",
                method="get_page_ws_url"
            )
    except httpx.RequestError as e:
        raise CDPConnectionError(
            f"Failed to connect to Chrome at {host}:{port}",
            method="get_page_ws_url"
        ) from e


async def new_page_ws_url(host="localhost", port=9222, url: str = "about:blank") -> str:
    """Open a new tab through the HTTP endpoint and return its WebSocket URL."""
    endpoint = f"http://{host}:{port}/json/new?{quote(url, safe=':/?&=#%')}"
    try:
        async with httpx.AsyncClient() as client:
            response = await client.put(endpoint)
    except httpx.RequestError as e:
        raise CDPConnectionError(
            f"Failed to connect to Chrome at {host}:{port}",
            method="new_page_ws_url"
        ) from e

    try:
        target = response.json()
    except ValueError as e:
        raise CDPTargetError(
            f"Failed to create new page. Response: {response.text}",
            method="new_page_ws_url"
        ) from e

    ws_url = target.get("webSocketDebuggerUrl") if isinstance(target, dict) else None
    if not ws_url:
        raise CDPTargetError(
            "Failed to get WebSocket debugger URL for new page",
            method="new_page_ws_url"
        )
    logger.debug(f"Created page target, ws_url={ws_url}", extra={"target_id": target.get("id")})
    return ws_url


async def _default_connector(ws_url: str):
    # Screenshots and screencast frames routinely exceed the 1 MiB default.
    return await connect(ws_url, max_size=None)


def _parse_message(raw) -> Dict[str, Any]:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CDPParseError("Inbound frame is not valid UTF-8", raw=repr(raw[:200])) from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CDPParseError(f"Inbound frame is not valid JSON: {e}", raw=raw[:200]) from e
    if not isinstance(data, dict):
        raise CDPParseError("Inbound frame is not a JSON object", raw=raw[:200])
    if "method" in data and not isinstance(data["method"], str):
        raise CDPParseError("Inbound frame has a non-string method", raw=raw[:200])
    if not isinstance(data.get("params") or {}, dict):
        raise CDPParseError("Inbound frame has non-object params", raw=raw[:200])
    return data


@dataclass
class PendingCall:
    """A command awaiting its response; the future is settled exactly once."""
    method: str
    future: asyncio.Future


class CDPSession:
    """
    Chrome DevTools Protocol session over one target's WebSocket.

    Multiplexes concurrent commands over the socket, correlating responses by
    message id, and fans unsolicited events out to registered listeners.

    Usage:
        async with CDPSession(ws_url) as session:
            await session.send("Page.enable")
            session.on("Page.loadEventFired", handler)
    """

    def __init__(self, ws_url: str, debug: bool = False, connector: Optional[Connector] = None):
        self.ws_url = ws_url
        self.debug = debug
        self.message_id = 0
        self.pending_message: Dict[int, PendingCall] = {}
        # Dicts used as insertion-ordered sets of callbacks.
        self.event_listeners: Dict[str, Dict[EventCallback, None]] = {}
        self.ws = None
        self._connector = connector or _default_connector
        self._open_task: Optional[asyncio.Future] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._send_lock = asyncio.Lock()
        self._waiters: Set[asyncio.Future] = set()
        self._callback_tasks: Set[asyncio.Task] = set()
        self._closed = False

    async def __aenter__(self) -> "CDPSession":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self.pending_message)

    def _now(self) -> float:
        return asyncio.get_running_loop().time()

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def open(self) -> asyncio.Future:
        """Start the WebSocket handshake once; later calls return the same task."""
        if self._open_task is None:
            self._open_task = asyncio.ensure_future(self._open())
        return self._open_task

    async def connect(self) -> "CDPSession":
        """Open the WebSocket and start the listen loop."""
        await self._wait_until_open()
        return self

    async def _open(self) -> None:
        logger.info(f"Connecting to target via WebSocket: {self.ws_url}")

        try:
            ws = await self._connector(self.ws_url)
        except Exception as e:
            logger.error(f"Failed to establish WebSocket connection: {e}")
            raise CDPConnectionError(
                f"Failed to connect to target WebSocket: {e}",
                method="connect"
            ) from e

        if self._closed:
            self._abort(ws)
            raise CDPConnectionError("Connection closed", method="connect")

        self.ws = ws
        self._listen_task = asyncio.ensure_future(self.listen())
        logger.info("WebSocket connection established")

    async def _wait_until_open(self, method: Optional[str] = None) -> None:
        if self._closed:
            raise CDPConnectionError("Connection closed", method=method)
        # Shielded so one cancelled caller does not abort the shared handshake.
        await asyncio.shield(self.open())

    async def close(self) -> None:
        """
        Close the session immediately.

        Every outstanding command and every attached wait fails with
        CDPConnectionError, all listeners are dropped, and the socket is
        aborted without a closing handshake.
        """
        if self._closed:
            return

        logger.info("Closing CDP session", extra={"pending": len(self.pending_message)})
        self._shutdown("Connection closed")

        if self.ws is not None:
            self._abort(self.ws)

        listen_task = self._listen_task
        if listen_task is not None and listen_task is not asyncio.current_task():
            listen_task.cancel()

    def _abort(self, ws) -> None:
        transport = getattr(ws, "transport", None)
        if transport is not None:
            transport.abort()

    def _shutdown(self, reason: str) -> None:
        self._closed = True

        pending = list(self.pending_message.values())
        self.pending_message.clear()
        for call in pending:
            if not call.future.done():
                call.future.set_exception(CDPConnectionError(reason, method=call.method))

        waiters = list(self._waiters)
        self._waiters.clear()
        for future in waiters:
            if not future.done():
                future.set_exception(CDPConnectionError(reason))

        self.event_listeners.clear()

    # =========================================================================
    # Commands
    # =========================================================================

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a CDP command and wait for response."""
        await self._wait_until_open(method)

        future = asyncio.get_running_loop().create_future()
        start_time = self._now()

        async with self._send_lock:
            if self._closed:
                raise CDPConnectionError("Connection closed", method=method)

            msg_id = self.message_id + 1
            # Serialized before the slot exists so a bad payload leaves no orphan.
            payload = json.dumps({"id": msg_id, "method": method, "params": params or {}})
            self.message_id = msg_id
            self.pending_message[msg_id] = PendingCall(method, future)

            if self.debug:
                logger.debug(
                    f"CDP command: {method}",
                    extra={"method": method, "params": params, "message_id": msg_id}
                )

            try:
                await self.ws.send(payload)
            except (websockets.exceptions.ConnectionClosed, OSError) as e:
                self.pending_message.pop(msg_id, None)
                logger.error(
                    f"CDP command error: {method} - {e}",
                    extra={"method": method, "message_id": msg_id, "error_type": type(e).__name__}
                )
                raise CDPConnectionError(
                    f"CDP command {method} failed: {e}",
                    method=method,
                ) from e
            except BaseException:
                self.pending_message.pop(msg_id, None)
                raise

        try:
            result = await future
        finally:
            # A cancelled caller detaches its slot; a late reply is then discarded.
            self.pending_message.pop(msg_id, None)

        if self.debug:
            duration = self._now() - start_time
            logger.debug(
                f"CDP response: {method} (duration={duration:.3f}s)",
                extra={"method": method, "message_id": msg_id, "duration_ms": duration * 1000}
            )

        return result

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, event: str, callback: EventCallback) -> None:
        """Register a callback for an event; registering the same callback twice is a no-op."""
        self.event_listeners.setdefault(event, {})[callback] = None

    def off(self, event: str, callback: EventCallback) -> None:
        """Remove a callback; unknown callbacks are ignored."""
        listeners = self.event_listeners.get(event)
        if listeners is None:
            return
        listeners.pop(callback, None)
        if not listeners:
            del self.event_listeners[event]

    def listener_count(self, event: str) -> int:
        return len(self.event_listeners.get(event, ()))

    def attach_waiter(self, future: asyncio.Future) -> None:
        """Tie a wait future to this session so that close() fails it."""
        if self._closed:
            raise CDPConnectionError("Connection closed")
        self._waiters.add(future)

    def detach_waiter(self, future: asyncio.Future) -> None:
        self._waiters.discard(future)

    # =========================================================================
    # Inbound dispatch
    # =========================================================================

    async def listen(self):
        """Listen for CDP responses and events."""
        try:
            while True:
                raw = await self.ws.recv()
                try:
                    data = _parse_message(raw)
                except CDPParseError as e:
                    logger.warning(f"Dropping malformed CDP frame: {e.message}", extra={"raw": e.raw})
                    continue

                try:
                    if "id" in data:
                        self._resolve_pending(data)
                    elif "method" in data:
                        self._handle_event(data)
                except Exception as e:
                    logger.error(f"Failed to dispatch CDP frame: {e}", exc_info=True)
        except websockets.exceptions.ConnectionClosed:
            if not self._closed:
                logger.error("WebSocket connection closed", exc_info=True)
                self._shutdown("WebSocket connection closed")

    def _resolve_pending(self, data: Dict[str, Any]) -> None:
        msg_id = data["id"]
        pending = self.pending_message.pop(msg_id, None) if isinstance(msg_id, int) else None
        if pending is None:
            logger.debug(f"Discarding response for unknown message id {msg_id!r}")
            return

        future = pending.future
        if future.done():
            return

        if "error" in data:
            error_data = data["error"] if isinstance(data["error"], dict) else {"message": str(data["error"])}
            error_code = error_data.get("code")
            error_message = error_data.get("message", "Unknown CDP error")

            logger.debug(
                f"CDP protocol error: {error_message}",
                extra={"error_code": error_code, "method": pending.method, "message_id": msg_id}
            )

            future.set_exception(CDPProtocolError(
                error_message,
                code=error_code,
                cdp_error=error_data,
                method=pending.method,
            ))
        else:
            future.set_result(data.get("result", {}))

    def _handle_event(self, data: Dict[str, Any]) -> None:
        method = data["method"]
        params = data.get("params") or {}

        if self.debug:
            logger.debug(f"CDP event: {method}", extra={"method": method})

        listeners = self.event_listeners.get(method)
        if not listeners:
            return

        # Snapshot so callbacks may unsubscribe while the fan-out is running.
        for callback in list(listeners):
            try:
                result = callback(params)
            except Exception as e:
                logger.error(f"Listener for {method} failed: {e}", exc_info=True)
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._callback_tasks.add(task)
                task.add_done_callback(self._callback_done)

    def _callback_done(self, task: asyncio.Task) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Async event listener failed: {error}", exc_info=error)
