"""
launcher.py -- Chrome process lifecycle
=======================================

Finds a browser binary, picks a free debugging port and spawns a visible
Chrome with an isolated, persistent profile. The BrowserProcess object is
the only owner of the OS process; teardown goes through stop().

The profile directory is never deleted: it keeps the Weibo login cookies
between runs.
"""

import asyncio
import logging
import os
import socket
import subprocess
import sys
import threading
from pathlib import Path
from typing import List, Optional

from .config import CHROME_PATH_ENV_VARS, KILL_GRACE, PROFILE_DIR_NAME
from .errors import BrowserLaunchFailed, ExecutableNotFound, PortAllocationFailed

logger = logging.getLogger(__name__)


# =============================================================================
# PORT ALLOCATION
# =============================================================================

_reserved_ports = set()
_reserved_lock = threading.Lock()


def allocate_port(host="127.0.0.1", attempts=20):
    """
    Return a free local TCP port and reserve it for this process.

    The OS picks the port (bind to 0). The socket is closed right away so
    Chrome can bind it, so the port is also kept in a process-wide reserved
    set until release_port(): two live allocations never share a port.

    Raises:
        PortAllocationFailed: bind failed or every attempt hit a reserved port.
    """
    for _ in range(attempts):
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.bind((host, 0))
                port = sock.getsockname()[1]
        except OSError as e:
            raise PortAllocationFailed(f"Unable to allocate a free TCP port: {e}") from e

        with _reserved_lock:
            if port not in _reserved_ports:
                _reserved_ports.add(port)
                return port

    raise PortAllocationFailed("Unable to allocate a free TCP port.")


def release_port(port):
    with _reserved_lock:
        _reserved_ports.discard(port)


# =============================================================================
# EXECUTABLE LOOKUP
# =============================================================================

MAC_CANDIDATES = [
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Google Chrome Canary.app/Contents/MacOS/Google Chrome Canary",
    "/Applications/Google Chrome Beta.app/Contents/MacOS/Google Chrome Beta",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge",
]

WINDOWS_CANDIDATES = [
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files\\Microsoft\\Edge\\Application\\msedge.exe",
    "C:\\Program Files (x86)\\Microsoft\\Edge\\Application\\msedge.exe",
]

LINUX_CANDIDATES = [
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/snap/bin/chromium",
    "/usr/bin/microsoft-edge",
]


def chrome_candidates(platform=None) -> List[str]:
    platform = platform or sys.platform
    if platform == "darwin":
        return list(MAC_CANDIDATES)
    if platform.startswith("win"):
        return list(WINDOWS_CANDIDATES)
    return list(LINUX_CANDIDATES)


def find_chrome_executable(override=None, platform=None) -> Optional[str]:
    """
    Resolve the browser binary to launch.

    Resolution order:
      1. ``override`` -- used as given, the caller asked for it explicitly
      2. WEIBO_BROWSER_CHROME_PATH, then X_BROWSER_CHROME_PATH (if the path exists)
      3. The fixed install locations for the platform

    Returns:
        str: Path to the executable, or None if nothing was found.
    """
    if override:
        return override

    for var in CHROME_PATH_ENV_VARS:
        value = (os.environ.get(var) or "").strip()
        if value and os.path.exists(value):
            return value

    for candidate in chrome_candidates(platform):
        if os.path.exists(candidate):
            return candidate
    return None


def default_profile_dir(platform=None) -> Path:
    """OS data directory for the persistent Chrome profile."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        base = os.environ.get("LOCALAPPDATA") or os.path.join(Path.home(), "AppData", "Local")
    elif platform == "darwin":
        base = os.path.join(Path.home(), "Library", "Application Support")
    else:
        base = os.environ.get("XDG_DATA_HOME") or os.path.join(Path.home(), ".local", "share")
    return Path(base) / PROFILE_DIR_NAME


def chrome_args(executable, port, profile_dir, url) -> List[str]:
    return [
        str(executable),
        f"--remote-debugging-port={port}",
        f"--user-data-dir={profile_dir}",
        "--no-first-run",
        "--no-default-browser-check",
        "--disable-blink-features=AutomationControlled",
        "--start-maximized",
        url,
    ]


# =============================================================================
# PROCESS SUPERVISOR
# =============================================================================

class BrowserProcess:
    """
    A running Chrome owned by this invocation.

    Usage:
        browser = BrowserProcess.launch(url, chrome_path=None, profile_dir=None)
        ...
        await browser.stop()
    """

    def __init__(self, popen, port, profile_dir, executable):
        self.popen = popen
        self.port = port
        self.profile_dir = Path(profile_dir)
        self.executable = executable
        self._kill_timer = None

    @classmethod
    def launch(cls, url, chrome_path=None, profile_dir=None, port=None):
        """
        Spawn Chrome with a debugging port and the given profile.

        The profile directory is created if missing. Spawning does not wait
        for the debugging endpoint; see endpoint.wait_for_debugger_url().

        Raises:
            ExecutableNotFound: no binary found (and none given).
            PortAllocationFailed: no free port.
            BrowserLaunchFailed: the binary could not be started.
        """
        executable = find_chrome_executable(chrome_path)
        if not executable:
            raise ExecutableNotFound()

        profile_path = Path(profile_dir) if profile_dir else default_profile_dir()
        profile_path.mkdir(parents=True, exist_ok=True)

        if port is None:
            port = allocate_port()

        logger.info(f"Launching Chrome (profile: {profile_path})")
        logger.debug(f"Chrome binary {executable}, debug port {port}")
        try:
            popen = subprocess.Popen(
                chrome_args(executable, port, profile_path, url),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            release_port(port)
            raise BrowserLaunchFailed(f"Failed to start {executable}: {e}") from e

        return cls(popen, port, profile_path, executable)

    @property
    def pid(self):
        return self.popen.pid

    @property
    def running(self):
        return self.popen.poll() is None

    def terminate(self):
        """Send SIGTERM (TerminateProcess on Windows). Never raises."""
        try:
            self.popen.terminate()
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"terminate failed: {e}")

    def kill(self):
        """Send SIGKILL if the process is still there. Never raises."""
        if not self.running:
            return
        try:
            self.popen.kill()
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"kill failed: {e}")

    async def stop(self, grace=KILL_GRACE):
        """
        Two-phase shutdown.

        A forced kill is scheduled ``grace`` seconds out, then SIGTERM goes
        out immediately. Once the process has exited the kill timer is
        cancelled and the port reservation released.
        """
        loop = asyncio.get_running_loop()
        if self.running:
            self._kill_timer = loop.call_later(grace, self.kill)
            self.terminate()
            await self.wait(grace + 1.0)
            if self.running:
                # Timer already fired; give SIGKILL a moment to land
                self.kill()
                await self.wait(1.0)
        if self._kill_timer is not None:
            self._kill_timer.cancel()
            self._kill_timer = None
        release_port(self.port)
        logger.debug(f"Chrome exited with {self.popen.returncode}")

    async def wait(self, timeout):
        """Wait up to ``timeout`` seconds for exit. Returns the exit code or None."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self.popen.poll() is None and loop.time() < deadline:
            await asyncio.sleep(0.05)
        return self.popen.poll()