"""
Tests for port allocation, executable lookup and the Chrome process supervisor
(core/weibo_browser/launcher.py)
"""
import asyncio
import signal
import stat
import sys
from pathlib import Path

import pytest

from weibo_browser import launcher
from weibo_browser.errors import BrowserLaunchFailed, ExecutableNotFound
from weibo_browser.launcher import (
    BrowserProcess,
    allocate_port,
    chrome_args,
    default_profile_dir,
    find_chrome_executable,
    release_port,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="Uses /bin/sh scripts and POSIX signals")


def write_script(path, body):
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def no_chrome_env(monkeypatch):
    for var in launcher.CHROME_PATH_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class TestPortAllocation:
    """Reserved ports are never handed out twice"""

    def test_ports_unique(self):
        ports = [allocate_port() for _ in range(20)]
        try:
            assert len(set(ports)) == len(ports), "Live allocations must not share a port"
            assert all(port in launcher._reserved_ports for port in ports)
        finally:
            for port in ports:
                release_port(port)
        assert not any(port in launcher._reserved_ports for port in ports)

    def test_skips_reserved_port(self, monkeypatch):
        """A port the OS offers again is skipped while reserved"""
        first = allocate_port()
        offered = iter([first, first, first + 1 if first < 65535 else first - 1])

        class FakeSocket:
            def __init__(self, *args):
                self.port = next(offered)

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

            def bind(self, address):
                pass

            def getsockname(self):
                return ('127.0.0.1', self.port)

        monkeypatch.setattr(launcher.socket, "socket", FakeSocket)
        try:
            second = allocate_port()
            assert second != first
        finally:
            release_port(first)
            release_port(second)


class TestExecutableLookup:
    """Override, then env vars, then platform candidates"""

    def test_override_used_as_given(self, no_chrome_env):
        assert find_chrome_executable("/opt/custom/chrome") == "/opt/custom/chrome"

    def test_env_var_first(self, monkeypatch, tmp_path, no_chrome_env):
        chrome = tmp_path / "chrome"
        chrome.write_text("")
        monkeypatch.setenv("WEIBO_BROWSER_CHROME_PATH", str(chrome))
        assert find_chrome_executable(platform="linux") == str(chrome)

    def test_env_var_must_exist(self, monkeypatch, tmp_path, no_chrome_env):
        fallback = tmp_path / "x-chrome"
        fallback.write_text("")
        monkeypatch.setenv("WEIBO_BROWSER_CHROME_PATH", str(tmp_path / "missing"))
        monkeypatch.setenv("X_BROWSER_CHROME_PATH", str(fallback))
        assert find_chrome_executable(platform="linux") == str(fallback)

    def test_platform_candidates(self, monkeypatch, tmp_path, no_chrome_env):
        installed = tmp_path / "chromium"
        installed.write_text("")
        monkeypatch.setattr(launcher, "LINUX_CANDIDATES", [str(tmp_path / "google-chrome"), str(installed)])
        assert find_chrome_executable(platform="linux") == str(installed)

    def test_nothing_found(self, monkeypatch, tmp_path, no_chrome_env):
        monkeypatch.setattr(launcher, "LINUX_CANDIDATES", [str(tmp_path / "none")])
        assert find_chrome_executable(platform="linux") is None

    def test_candidates_per_platform(self):
        assert launcher.chrome_candidates("darwin")[0].startswith("/Applications/")
        assert launcher.chrome_candidates("win32")[0].endswith("chrome.exe")
        assert "/usr/bin/google-chrome" in launcher.chrome_candidates("linux")


class TestProfileDir:
    """Per-user data directory for the Chrome profile"""

    def test_windows(self, monkeypatch):
        monkeypatch.setenv("LOCALAPPDATA", "C:\\Users\\me\\AppData\\Local")
        path = default_profile_dir("win32")
        assert path.name == "weibo-browser-profile"
        assert str(path).startswith("C:\\Users\\me\\AppData\\Local")

    def test_macos(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert default_profile_dir("darwin") == tmp_path / "Library" / "Application Support" / "weibo-browser-profile"

    def test_linux_xdg(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
        assert default_profile_dir("linux") == tmp_path / "weibo-browser-profile"

    def test_linux_default(self, monkeypatch, tmp_path):
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        assert default_profile_dir("linux") == tmp_path / ".local" / "share" / "weibo-browser-profile"


def test_chrome_args():
    args = chrome_args("/usr/bin/chromium", 9333, Path("/tmp/profile"), "https://weibo.com/")
    assert args[0] == "/usr/bin/chromium"
    assert "--remote-debugging-port=9333" in args
    assert "--user-data-dir=/tmp/profile" in args
    assert "--no-first-run" in args
    assert "--disable-blink-features=AutomationControlled" in args
    assert args[-1] == "https://weibo.com/", "URL goes last"


class TestBrowserProcess:
    """Spawning and two-phase shutdown"""

    def test_no_executable(self, monkeypatch, tmp_path):
        monkeypatch.setattr(launcher, "find_chrome_executable", lambda *args, **kwargs: None)
        with pytest.raises(ExecutableNotFound) as exc:
            BrowserProcess.launch("https://weibo.com/", profile_dir=tmp_path / "profile")
        assert "WEIBO_BROWSER_CHROME_PATH" in str(exc.value)

    @posix_only
    def test_launch_failure_releases_port(self, tmp_path):
        not_executable = tmp_path / "chrome"
        not_executable.write_text("")
        port = allocate_port()
        with pytest.raises(BrowserLaunchFailed):
            BrowserProcess.launch("https://weibo.com/", chrome_path=str(not_executable),
                                  profile_dir=tmp_path / "profile", port=port)
        assert port not in launcher._reserved_ports, "Port should be released"

    @posix_only
    @pytest.mark.asyncio
    async def test_launch_and_stop(self, tmp_path):
        chrome = write_script(tmp_path / "chrome", "exec sleep 30\n")
        profile = tmp_path / "nested" / "profile"

        browser = BrowserProcess.launch("https://weibo.com/", chrome_path=chrome, profile_dir=profile)
        try:
            assert profile.is_dir(), "Profile dir should be created"
            assert browser.running
            assert browser.port in launcher._reserved_ports
        finally:
            await browser.stop(grace=1.0)

        assert not browser.running
        assert browser.port not in launcher._reserved_ports
        assert profile.is_dir(), "Profile dir is never deleted"

    @posix_only
    @pytest.mark.asyncio
    async def test_kill_after_grace(self, tmp_path):
        """A browser ignoring SIGTERM is killed once the grace window ends"""
        ready = tmp_path / "ready"
        chrome = write_script(
            tmp_path / "chrome",
            f"trap '' TERM\ntouch '{ready}'\nwhile true; do sleep 0.1; done\n",
        )
        browser = BrowserProcess.launch("https://weibo.com/", chrome_path=chrome, profile_dir=tmp_path / "p")
        for _ in range(100):
            if ready.exists():
                break
            await asyncio.sleep(0.05)
        assert ready.exists(), "Script should have installed its trap"

        await browser.stop(grace=0.3)

        assert not browser.running
        assert browser.popen.returncode == -signal.SIGKILL
        assert browser._kill_timer is None
