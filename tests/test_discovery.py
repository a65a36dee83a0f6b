"""
Tests for local browser discovery and launching.
"""

import json
import os
import stat
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from browser_launcher.discovery import (
    DEFAULT_ARGS,
    LocalBrowserLauncher,
    build_command,
    detect_installed_browsers,
    detect_playwright_browsers,
    firefox_proxy_prefs,
    load_registry,
    read_browser_version,
    save_registry,
)
from browser_launcher.errors import LaunchError
from browser_launcher.types import BrowserDescriptor, BrowserInstance, LaunchOptions


CHROME = BrowserDescriptor(name="chrome", version="120.0.6099.71", command="/usr/bin/google-chrome")
CHROME_OLD = BrowserDescriptor(name="chrome", version="119.0.1", command="/opt/chrome119/chrome")
FIREFOX = BrowserDescriptor(name="firefox", version="121.0", command="/usr/bin/firefox", type="firefox")


def make_script(path, body):
    """Create an executable shell script."""
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class TestBuildCommand:
    """Tests for command line construction."""

    @pytest.mark.asyncio
    async def test_chromium_defaults(self):
        command, profile, temp_profile = await build_command(CHROME, "https://example.com", LaunchOptions())

        assert command[0] == CHROME.command
        assert command[1:-1] == DEFAULT_ARGS["chromium"]
        assert command[-1] == "https://example.com"
        assert profile is None
        assert not temp_profile

    @pytest.mark.asyncio
    async def test_chromium_full_options(self, tmp_path):
        options = LaunchOptions(
            profile=str(tmp_path / "profile"),
            proxy="127.0.0.1:8000",
            no_proxy=["localhost", "*.internal"],
            headless=True,
            args=["--incognito"],
        )

        command, profile, temp_profile = await build_command(CHROME, "https://example.com", options)

        assert f"--user-data-dir={tmp_path / 'profile'}" in command
        assert "--proxy-server=127.0.0.1:8000" in command
        assert "--proxy-bypass-list=localhost;*.internal" in command
        assert "--headless=new" in command
        assert command[-2:] == ["--incognito", "https://example.com"]
        assert profile == str(tmp_path / "profile")
        assert not temp_profile

    @pytest.mark.asyncio
    async def test_skip_defaults(self):
        options = LaunchOptions(skip_defaults=True)

        command, _, _ = await build_command(CHROME, "https://example.com", options)

        assert command == [CHROME.command, "https://example.com"]

    @pytest.mark.asyncio
    async def test_firefox_headless_with_profile(self, tmp_path):
        options = LaunchOptions(profile=str(tmp_path), headless=True)

        command, profile, temp_profile = await build_command(FIREFOX, "https://example.com", options)

        assert "-no-remote" in command
        assert command[command.index("-profile") + 1] == str(tmp_path)
        assert "-headless" in command
        assert not (tmp_path / "user.js").exists()
        assert not temp_profile

    @pytest.mark.asyncio
    async def test_firefox_proxy_writes_prefs(self, tmp_path):
        profile_dir = tmp_path / "ff"
        options = LaunchOptions(profile=str(profile_dir), proxy="proxy.local:3128", prefs={"browser.shell.checkDefaultBrowser": False})

        _, _, temp_profile = await build_command(FIREFOX, "https://example.com", options)

        user_js = (profile_dir / "user.js").read_text(encoding="utf-8")
        assert 'user_pref("network.proxy.http", "proxy.local");' in user_js
        assert 'user_pref("network.proxy.http_port", 3128);' in user_js
        assert 'user_pref("browser.shell.checkDefaultBrowser", false);' in user_js
        # Caller-supplied profiles are never marked for removal
        assert not temp_profile

    @pytest.mark.asyncio
    async def test_firefox_prefs_without_profile_use_temp_dir(self, tmp_path):
        temp_dir = tmp_path / "temp_profile"
        options = LaunchOptions(prefs={"devtools.theme": "dark"})

        with patch("browser_launcher.discovery.tempfile.mkdtemp", return_value=str(temp_dir)):
            command, profile, temp_profile = await build_command(FIREFOX, "https://example.com", options)

        assert profile == str(temp_dir)
        assert temp_profile
        assert (temp_dir / "user.js").exists()
        assert command[command.index("-profile") + 1] == str(temp_dir)

    @pytest.mark.asyncio
    async def test_temp_profile_removed_when_prefs_write_fails(self, tmp_path):
        temp_dir = tmp_path / "temp_profile"
        temp_dir.mkdir()
        options = LaunchOptions(proxy="127.0.0.1:8000")

        with patch("browser_launcher.discovery.tempfile.mkdtemp", return_value=str(temp_dir)), \
                patch("browser_launcher.discovery.write_firefox_prefs", AsyncMock(side_effect=OSError("disk full"))):
            with pytest.raises(OSError):
                await build_command(FIREFOX, "https://example.com", options)

        assert not temp_dir.exists()

    def test_firefox_proxy_prefs(self):
        prefs = firefox_proxy_prefs("10.0.0.1:8080", ["localhost"])

        assert prefs["network.proxy.type"] == 1
        assert prefs["network.proxy.ssl"] == "10.0.0.1"
        assert prefs["network.proxy.ssl_port"] == 8080
        assert prefs["network.proxy.no_proxies_on"] == "localhost"


class TestSelectBrowser:
    """Tests for choosing which browser to launch."""

    @pytest.fixture
    def launcher(self, tmp_path):
        return LocalBrowserLauncher(tmp_path / "browsers.json", [CHROME, CHROME_OLD, FIREFOX])

    def test_defaults_to_first_browser(self, launcher):
        assert launcher.select_browser(LaunchOptions()) == CHROME

    def test_by_name(self, launcher):
        assert launcher.select_browser(LaunchOptions(browser="firefox")) == FIREFOX

    def test_by_version_prefix(self, launcher):
        selected = launcher.select_browser(LaunchOptions(browser="chrome", version="119"))
        assert selected == CHROME_OLD

    def test_unknown_name(self, launcher):
        with pytest.raises(LaunchError) as exc_info:
            launcher.select_browser(LaunchOptions(browser="netscape"))

        assert exc_info.value.browser == "netscape"
        assert "netscape" in str(exc_info.value)

    def test_unknown_version(self, launcher):
        with pytest.raises(LaunchError):
            launcher.select_browser(LaunchOptions(browser="firefox", version="3"))

    def test_no_browsers_installed(self, tmp_path):
        launcher = LocalBrowserLauncher(tmp_path / "browsers.json", [])

        with pytest.raises(LaunchError):
            launcher.select_browser(LaunchOptions())

    def test_browsers_returns_copy(self, launcher):
        launcher.browsers.clear()
        assert len(launcher.browsers) == 3


class TestRegistry:
    """Tests for reading and writing browsers.json."""

    @pytest.mark.asyncio
    async def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "browsers.json"

        await save_registry(path, [CHROME, FIREFOX])

        assert json.loads(path.read_text())["browsers"][1]["name"] == "firefox"
        assert await load_registry(path) == [CHROME, FIREFOX]

    @pytest.mark.asyncio
    async def test_load_missing(self, tmp_path):
        assert await load_registry(tmp_path / "browsers.json") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("contents", ["{broken", "[]", '{"browsers": [{"name": "x"}]}'])
    async def test_load_unusable(self, tmp_path, contents):
        path = tmp_path / "browsers.json"
        path.write_text(contents)

        assert await load_registry(path) is None


class TestCreate:
    """Tests for LocalBrowserLauncher.create."""

    @pytest.mark.asyncio
    async def test_uses_cached_registry(self, tmp_path):
        path = tmp_path / "browsers.json"
        await save_registry(path, [FIREFOX])

        with patch("browser_launcher.discovery.detect_installed_browsers", new=AsyncMock()) as detect:
            launcher = await LocalBrowserLauncher.create(path, include_playwright=False)

        detect.assert_not_called()
        assert launcher.browsers == [FIREFOX]

    @pytest.mark.asyncio
    async def test_detects_and_writes_registry(self, tmp_path):
        path = tmp_path / "browsers.json"

        with patch("browser_launcher.discovery.detect_installed_browsers", new=AsyncMock(return_value=[CHROME])):
            launcher = await LocalBrowserLauncher.create(path, include_playwright=False)

        assert launcher.browsers == [CHROME]
        assert await load_registry(path) == [CHROME]

    @pytest.mark.asyncio
    async def test_rebuilds_corrupt_registry(self, tmp_path):
        path = tmp_path / "browsers.json"
        path.write_text("{not json")

        with patch("browser_launcher.discovery.detect_installed_browsers", new=AsyncMock(return_value=[FIREFOX])):
            launcher = await LocalBrowserLauncher.create(path, include_playwright=False)

        assert launcher.browsers == [FIREFOX]
        assert json.loads(path.read_text())["browsers"][0]["name"] == "firefox"

    @pytest.mark.asyncio
    async def test_includes_playwright_browsers(self, tmp_path):
        path = tmp_path / "browsers.json"
        pw = BrowserDescriptor(name="playwright-chromium", command="/pw/chrome")

        with patch("browser_launcher.discovery.detect_installed_browsers", new=AsyncMock(return_value=[CHROME])), \
             patch("browser_launcher.discovery.detect_playwright_browsers", new=AsyncMock(return_value=[pw])):
            launcher = await LocalBrowserLauncher.create(path)

        assert [b.name for b in launcher.browsers] == ["chrome", "playwright-chromium"]

    @pytest.mark.asyncio
    async def test_unwritable_registry_raises_launch_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with patch("browser_launcher.discovery.detect_installed_browsers", new=AsyncMock(return_value=[])):
            with pytest.raises(LaunchError):
                await LocalBrowserLauncher.create(blocker / "browsers.json", include_playwright=False)


class TestDetection:
    """Tests for finding installed browsers."""

    @pytest.mark.asyncio
    async def test_detects_from_path(self, tmp_path):
        chrome = make_script(tmp_path / "google-chrome", "echo 'Google Chrome 120.0.6099.71'")
        candidates = [
            {"name": "chrome", "type": "chromium", "executables": ["google-chrome"]},
            {"name": "firefox", "type": "firefox", "executables": ["firefox"]},
        ]

        def which(name):
            return str(chrome) if name == "google-chrome" else None

        with patch("browser_launcher.discovery.shutil.which", side_effect=which):
            browsers = await detect_installed_browsers(candidates)

        assert browsers == [
            BrowserDescriptor(name="chrome", type="chromium", command=str(chrome), version="120.0.6099.71")
        ]

    @pytest.mark.asyncio
    async def test_absolute_executable_paths(self, tmp_path):
        firefox = make_script(tmp_path / "firefox", "echo 'Mozilla Firefox 121.0'")
        candidates = [
            {"name": "firefox", "type": "firefox", "executables": [str(tmp_path / "missing"), str(firefox)]},
        ]

        browsers = await detect_installed_browsers(candidates)

        assert len(browsers) == 1
        assert browsers[0].command == str(firefox)
        assert browsers[0].type == "firefox"

    @pytest.mark.asyncio
    async def test_duplicate_binaries_reported_once(self, tmp_path):
        real = make_script(tmp_path / "chromium", "echo 'Chromium 120.0'")
        alias = tmp_path / "chromium-browser"
        os.symlink(real, alias)
        candidates = [
            {"name": "chromium", "type": "chromium", "executables": [str(real)]},
            {"name": "chromium-alias", "type": "chromium", "executables": [str(alias)]},
        ]

        browsers = await detect_installed_browsers(candidates)

        assert [b.name for b in browsers] == ["chromium"]

    @pytest.mark.asyncio
    async def test_read_version(self, tmp_path):
        script = make_script(tmp_path / "browser", "echo 'Vivaldi 6.5.3206.48 stable'")

        assert await read_browser_version(str(script)) == "6.5.3206.48"

    @pytest.mark.asyncio
    async def test_read_version_missing_executable(self, tmp_path):
        assert await read_browser_version(str(tmp_path / "nope")) == ""

    @pytest.mark.asyncio
    async def test_playwright_unavailable(self):
        with patch("browser_launcher.discovery.async_playwright", side_effect=RuntimeError("no driver")):
            assert await detect_playwright_browsers() == []


class TestLaunch:
    """Tests for launching browser processes."""

    @pytest.mark.asyncio
    async def test_launches_process(self, tmp_path):
        log = tmp_path / "args.txt"
        script = make_script(tmp_path / "browser", f'echo "$@" > "{log}"')
        browser = BrowserDescriptor(name="fake", command=str(script))
        launcher = LocalBrowserLauncher(tmp_path / "browsers.json", [browser])

        instance = await launcher.launch("https://example.com", {"skip_defaults": True, "args": ["--flag"]})
        exit_code = await instance.wait()

        assert exit_code == 0
        assert instance.pid > 0
        assert instance.browser == browser
        assert instance.command == [str(script), "--flag", "https://example.com"]
        assert log.read_text().strip() == "--flag https://example.com"

    @pytest.mark.asyncio
    async def test_stop_terminates_process(self, tmp_path):
        script = make_script(tmp_path / "browser", "exec sleep 30")
        launcher = LocalBrowserLauncher(tmp_path / "browsers.json", [BrowserDescriptor(name="slow", command=str(script))])

        instance = await launcher.launch("https://example.com", LaunchOptions(skip_defaults=True))
        assert instance.is_running

        await instance.stop(timeout=5)

        assert not instance.is_running
        # Second stop is a no-op
        await instance.stop()

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path):
        browser = BrowserDescriptor(name="ghost", command=str(tmp_path / "ghost"))
        launcher = LocalBrowserLauncher(tmp_path / "browsers.json", [browser])

        with pytest.raises(LaunchError) as exc_info:
            await launcher.launch("https://example.com")

        assert exc_info.value.browser == "ghost"

    @pytest.mark.asyncio
    async def test_invalid_options(self, tmp_path):
        launcher = LocalBrowserLauncher(tmp_path / "browsers.json", [CHROME])

        with pytest.raises(LaunchError):
            await launcher.launch("https://example.com", {"proxy": "no-port"})

    @pytest.mark.asyncio
    async def test_unknown_browser(self, tmp_path):
        launcher = LocalBrowserLauncher(tmp_path / "browsers.json", [CHROME])

        with pytest.raises(LaunchError):
            await launcher.launch("https://example.com", {"browser": "lynx"})

    @pytest.mark.asyncio
    async def test_temp_profile_removed_after_stop(self, tmp_path):
        script = make_script(tmp_path / "firefox", "exec sleep 30")
        browser = BrowserDescriptor(name="firefox", command=str(script), type="firefox")
        launcher = LocalBrowserLauncher(tmp_path / "browsers.json", [browser])

        instance = await launcher.launch("https://example.com", {"proxy": "127.0.0.1:8000"})

        assert instance.temp_profile
        assert os.path.isdir(instance.profile)
        profile = instance.profile

        await instance.stop(timeout=5)

        assert not os.path.exists(profile)

    @pytest.mark.asyncio
    async def test_user_profile_kept_after_wait(self, tmp_path):
        script = make_script(tmp_path / "firefox", "exit 0")
        profile_dir = tmp_path / "profile"
        browser = BrowserDescriptor(name="firefox", command=str(script), type="firefox")
        launcher = LocalBrowserLauncher(tmp_path / "browsers.json", [browser])

        instance = await launcher.launch(
            "https://example.com",
            {"profile": str(profile_dir), "proxy": "127.0.0.1:8000"},
        )
        await instance.wait()

        assert not instance.temp_profile
        assert (profile_dir / "user.js").exists()

    @pytest.mark.asyncio
    async def test_temp_profile_removed_when_spawn_fails(self, tmp_path):
        temp_dir = tmp_path / "temp_profile"
        browser = BrowserDescriptor(name="firefox", command=str(tmp_path / "ghost"), type="firefox")
        launcher = LocalBrowserLauncher(tmp_path / "browsers.json", [browser])

        with patch("browser_launcher.discovery.tempfile.mkdtemp", return_value=str(temp_dir)):
            with pytest.raises(LaunchError):
                await launcher.launch("https://example.com", {"proxy": "127.0.0.1:8000"})

        assert not temp_dir.exists()

    def test_instance_to_dict(self):
        process = MagicMock(pid=1234, returncode=None)
        instance = BrowserInstance(process=process, browser=CHROME, command=["chrome", "url"])

        assert instance.to_dict()["pid"] == 1234
        assert instance.to_dict()["browser"] == "chrome"
