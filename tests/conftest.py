"""
Pytest fixtures for weibo_browser tests
"""
import contextlib
import json
import os
import sys

import pytest
import websockets

# Add core to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'core'))


@contextlib.asynccontextmanager
async def serve_cdp(handler):
    """Run a local WebSocket server with ``handler(ws)`` and yield its ws:// URL"""
    async with websockets.serve(handler, '127.0.0.1', 0) as server:
        port = server.sockets[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}/devtools/browser/test"


async def read_call(ws):
    """Receive and decode one command sent by the client"""
    return json.loads(await ws.recv())


class FakeConnection:
    """
    Scripted stand-in for CDPConnection.

    ``responses`` maps a method to a reply dict, an exception instance,
    or a function of (params, session_id) returning either.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []
        self.listeners = {}
        self.closed = False

    async def send(self, method, params=None, *, session_id=None, timeout=None):
        self.calls.append((method, params, session_id))
        reply = self.responses.get(method, {})
        if callable(reply) and not isinstance(reply, type):
            reply = reply(params, session_id)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def on(self, method, callback):
        self.listeners.setdefault(method, []).append(callback)

    async def close(self):
        self.closed = True

    def methods(self):
        return [call[0] for call in self.calls]

    def params_of(self, method):
        return [params for name, params, _ in self.calls if name == method]


async def no_sleep(seconds):
    """Sleep replacement that returns immediately"""
    return None


@pytest.fixture
def fake_cdp():
    """A FakeConnection with no scripted replies"""
    return FakeConnection()


@pytest.fixture
def sample_posts():
    """Sample post texts"""
    return {
        'simple': 'Hello Weibo!',
        'chinese': '今天天气不错',
        'multiline': 'Line 1\nLine 2',
    }
