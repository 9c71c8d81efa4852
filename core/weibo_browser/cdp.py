"""
cdp.py -- Asynchronous Chrome DevTools Protocol client
======================================================

One CDPConnection wraps one WebSocket to the browser endpoint. CDP is a
JSON-RPC-like protocol:

    -> {"id": N, "method": "Domain.method", "params": {...}, "sessionId": "..."}
    <- {"id": N, "result": {...}}                  on success
    <- {"id": N, "error": {"message": "..."}}      on failure
    <- {"method": "Domain.event", "params": {...}} push notification

Replies can arrive in any order. A background reader task routes every
reply to the call waiting under the same id, so several calls may be in
flight at once on the same connection. With flattened sessions, commands
for an attached page carry its sessionId instead of being wrapped in
Target.sendMessageToTarget.

Each in-flight call is settled exactly once, by whichever comes first:
its reply, its timeout, or the connection closing.
"""

import asyncio
import json
import logging
from collections import defaultdict

import websockets
from websockets.exceptions import ConnectionClosed as WebSocketClosed
from websockets.exceptions import WebSocketException

from .config import CALL_TIMEOUT, CONNECT_TIMEOUT
from .errors import (
    ConnectionClosed,
    ConnectionFailed,
    ConnectionTimeout,
    ProtocolCallTimeout,
    ProtocolDecodeError,
    ProtocolError,
)

logger = logging.getLogger(__name__)

# Page-level replies (DOM snapshots, large evaluate results) can be big
MAX_MESSAGE_SIZE = 50_000_000


class PendingCall:
    """A call waiting for its reply."""

    __slots__ = ("method", "future", "timer")

    def __init__(self, method, future, timer=None):
        self.method = method
        self.future = future
        self.timer = timer

    def cancel_timer(self):
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class CDPConnection:
    """
    Usage:
        cdp = await CDPConnection.connect(ws_url)
        targets = await cdp.send("Target.getTargets")
        await cdp.send("Page.enable", session_id=session_id)
        await cdp.close()
    """

    def __init__(self, ws):
        self._ws = ws
        self._next_id = 0
        self._pending = {}
        self._listeners = defaultdict(list)
        self._closed = False
        self._reader = asyncio.ensure_future(self._read_loop())

    @classmethod
    async def connect(cls, url, timeout=CONNECT_TIMEOUT):
        """
        Open the WebSocket and start reading.

        Raises:
            ConnectionTimeout: handshake not done within ``timeout`` seconds.
            ConnectionFailed: refused, bad URI or rejected handshake.
        """
        try:
            ws = await asyncio.wait_for(
                websockets.connect(
                    url,
                    max_size=MAX_MESSAGE_SIZE,
                    open_timeout=None,
                    ping_interval=None,
                ),
                timeout,
            )
        except asyncio.TimeoutError as e:
            raise ConnectionTimeout() from e
        except (OSError, WebSocketException) as e:
            raise ConnectionFailed(f"CDP connection failed: {e}") from e
        logger.debug(f"CDP connected to {url}")
        return cls(ws)

    @property
    def closed(self):
        return self._closed

    @property
    def pending_count(self):
        return len(self._pending)

    # =========================================================================
    # CALLS
    # =========================================================================

    async def send(self, method, params=None, *, session_id=None, timeout=CALL_TIMEOUT):
        """
        Send a command and wait for its reply.

        Args:
            method:     CDP method name (e.g. "Runtime.evaluate")
            params:     Optional dict of parameters
            session_id: Route the command to an attached target
            timeout:    Seconds to wait for the reply; 0 or None waits forever

        Returns:
            dict: The "result" object of the reply (empty dict if absent).

        Raises:
            ProtocolError: the browser replied with an error.
            ProtocolCallTimeout: no reply within ``timeout``.
            ConnectionClosed: the connection closed before the reply.
        """
        if self._closed:
            raise ConnectionClosed()

        self._next_id += 1
        call_id = self._next_id
        message = {"id": call_id, "method": method}
        if params:
            message["params"] = params
        if session_id:
            message["sessionId"] = session_id

        loop = asyncio.get_running_loop()
        call = PendingCall(method, loop.create_future())
        if timeout and timeout > 0:
            call.timer = loop.call_later(timeout, self._expire, call_id)
        self._pending[call_id] = call

        try:
            await self._ws.send(json.dumps(message))
            return await call.future
        except WebSocketClosed as e:
            raise ConnectionClosed() from e
        finally:
            self._discard(call_id, call)

    def on(self, method, callback):
        """Call ``callback(params, session_id)`` for every ``method`` event."""
        self._listeners[method].append(callback)

    async def close(self):
        """Close the socket. Calls still waiting fail with ConnectionClosed."""
        self._closed = True
        self._fail_pending()
        try:
            await self._ws.close()
        except (WebSocketException, OSError) as e:
            logger.debug(f"CDP close: {e}")
        await asyncio.gather(self._reader, return_exceptions=True)

    # =========================================================================
    # SETTLEMENT
    # =========================================================================

    def _expire(self, call_id):
        call = self._pending.pop(call_id, None)
        if call is None:
            return
        call.timer = None
        if not call.future.done():
            call.future.set_exception(ProtocolCallTimeout(call.method))

    def _discard(self, call_id, call):
        """Drop a call whose awaiting side is finished (or gone)."""
        if self._pending.get(call_id) is call:
            del self._pending[call_id]
        call.cancel_timer()
        if not call.future.done():
            call.future.cancel()
        elif not call.future.cancelled():
            # Settled while the write was failing; nobody will await it now
            call.future.exception()

    def _fail_pending(self):
        pending, self._pending = self._pending, {}
        for call in pending.values():
            call.cancel_timer()
            if not call.future.done():
                call.future.set_exception(ConnectionClosed())

    # =========================================================================
    # READER
    # =========================================================================

    async def _read_loop(self):
        try:
            async for raw in self._ws:
                self._dispatch(raw)
        except WebSocketClosed as e:
            logger.debug(f"CDP socket closed: {e}")
        finally:
            self._closed = True
            self._fail_pending()

    def _dispatch(self, raw):
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Dropped undecodable CDP frame")
            return
        if not isinstance(message, dict):
            return

        call_id = message.get("id")
        if call_id is not None:
            if not isinstance(call_id, int):
                return
            call = self._pending.pop(call_id, None)
            if call is None:
                # Late reply after a timeout, or a duplicate
                return
            call.cancel_timer()
            if call.future.done():
                return
            error = message.get("error")
            if error:
                if isinstance(error, dict):
                    call.future.set_exception(ProtocolError(
                        error.get("message") or "CDP error", error.get("code"), call.method
                    ))
                else:
                    call.future.set_exception(ProtocolError(str(error), None, call.method))
            else:
                result = message.get("result")
                call.future.set_result(result if isinstance(result, dict) else {})
            return

        method = message.get("method")
        if method:
            self._emit(method, message.get("params") or {}, message.get("sessionId"))

    def _emit(self, method, params, session_id):
        for callback in list(self._listeners.get(method, ())):
            try:
                callback(params, session_id)
            except Exception as e:
                logger.warning(f"CDP listener for {method} failed: {e}")


def expect_field(result, key, kind, method):
    """
    Pull ``key`` out of a reply and check its type.

    Raises:
        ProtocolDecodeError: the key is missing or has the wrong type.
    """
    value = result.get(key) if isinstance(result, dict) else None
    if isinstance(value, bool) and kind is int:
        value = None
    if not isinstance(value, kind):
        raise ProtocolDecodeError(f"{method}: unexpected reply, {key!r} is {value!r}")
    return value
