"""
Wait for Chrome's HTTP debug endpoint to hand out a WebSocket URL.

A freshly spawned Chrome accepts connections on its debugging port a moment
after the process starts; /json/version is polled until it reports a
webSocketDebuggerUrl.
"""

import asyncio
import logging

import aiohttp

from .config import DEBUG_PORT_TIMEOUT, ENDPOINT_POLL_INTERVAL
from .errors import DebugPortTimeout

logger = logging.getLogger(__name__)


def version_url(port, host="127.0.0.1"):
    return f"http://{host}:{port}/json/version"


async def wait_for_debugger_url(port, timeout=DEBUG_PORT_TIMEOUT, interval=ENDPOINT_POLL_INTERVAL):
    """
    Poll /json/version every ``interval`` seconds until it reports a
    non-empty webSocketDebuggerUrl.

    Returns:
        str: The browser-level WebSocket debugger URL.

    Raises:
        DebugPortTimeout: The budget ran out; carries the last error seen.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    url = version_url(port)
    last_error = None

    async with aiohttp.ClientSession() as http:
        while loop.time() < deadline:
            try:
                async with http.get(url, timeout=aiohttp.ClientTimeout(total=2)) as resp:
                    if resp.status != 200:
                        last_error = f"Request failed: {resp.status} {resp.reason}"
                    else:
                        version = await resp.json(content_type=None)
                        ws_url = version.get("webSocketDebuggerUrl") if isinstance(version, dict) else None
                        if ws_url:
                            logger.debug(f"Debugger URL: {ws_url}")
                            return ws_url
                        last_error = "Missing webSocketDebuggerUrl"
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                last_error = str(e) or e.__class__.__name__
            await asyncio.sleep(interval)

    raise DebugPortTimeout(port, last_error)
