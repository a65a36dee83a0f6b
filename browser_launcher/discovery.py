"""
Browser discovery and launching.

Finds locally installed browsers, caches them in browsers.json and launches
them as child processes. Creating a launcher reads and may rewrite the
registry file, so it must not run concurrently for the same path; the
LaunchCoordinator takes care of that.
"""

import asyncio
import json
import logging
import re
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import aiofiles
import aiofiles.os
from playwright.async_api import async_playwright
from pydantic import ValidationError

from .errors import LaunchError
from .types import BrowserDescriptor, BrowserInstance, LaunchOptions


# Get logger for this module
logger = logging.getLogger(__name__)


VERSION_TIMEOUT_S = 5.0

_version_pattern = re.compile(r"(\d+(?:\.\d+)+)")


# Browsers we look for, in preference order. Executables are tried in order
# and may be bare names (resolved on PATH) or absolute paths.
KNOWN_BROWSERS: list[dict[str, Any]] = [
    {
        "name": "chrome",
        "type": "chromium",
        "executables": [
            "google-chrome",
            "google-chrome-stable",
            "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        ],
    },
    {
        "name": "chrome-beta",
        "type": "chromium",
        "executables": ["google-chrome-beta"],
    },
    {
        "name": "chromium",
        "type": "chromium",
        "executables": [
            "chromium",
            "chromium-browser",
            "/Applications/Chromium.app/Contents/MacOS/Chromium",
        ],
    },
    {
        "name": "brave",
        "type": "chromium",
        "executables": [
            "brave-browser",
            "brave",
            "/Applications/Brave Browser.app/Contents/MacOS/Brave Browser",
        ],
    },
    {
        "name": "msedge",
        "type": "chromium",
        "executables": [
            "microsoft-edge",
            "microsoft-edge-stable",
            "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge",
        ],
    },
    {
        "name": "vivaldi",
        "type": "chromium",
        "executables": ["vivaldi", "vivaldi-stable"],
    },
    {
        "name": "opera",
        "type": "chromium",
        "executables": ["opera"],
    },
    {
        "name": "firefox",
        "type": "firefox",
        "executables": [
            "firefox",
            "/Applications/Firefox.app/Contents/MacOS/firefox",
        ],
    },
    {
        "name": "firefox-developer",
        "type": "firefox",
        "executables": ["firefox-developer-edition", "firefox-dev"],
    },
    {
        "name": "firefox-nightly",
        "type": "firefox",
        "executables": ["firefox-nightly"],
    },
]


# Flags added unless skip_defaults is set
DEFAULT_ARGS = {
    "chromium": [
        "--no-default-browser-check",
        "--no-first-run",
        "--disable-popup-blocking",
    ],
    "firefox": [
        "-no-remote",
    ],
}


class BrowserLauncher(ABC):
    """A discovery/launch facility bound to one browsers.json file."""

    @property
    @abstractmethod
    def browsers(self) -> list[BrowserDescriptor]:
        """Browsers available for launching."""
        ...

    @abstractmethod
    async def launch(
        self,
        url: str,
        options: Union[LaunchOptions, dict[str, Any], None] = None,
    ) -> BrowserInstance:
        """Launch a browser at a URL.

        Raises:
            LaunchError: If no matching browser exists or it fails to start
        """
        ...


def _resolve_executable(candidate: str) -> Optional[str]:
    if Path(candidate).is_absolute():
        return candidate if Path(candidate).exists() else None
    return shutil.which(candidate)


async def read_browser_version(command: str) -> str:
    """Ask a browser for its version.

    Returns:
        Dotted version string, or "" if it cannot be determined
    """
    try:
        process = await asyncio.create_subprocess_exec(
            command,
            "--version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        logger.debug(f"Could not run {command} --version: {e}")
        return ""

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), VERSION_TIMEOUT_S)
    except asyncio.TimeoutError:
        logger.debug(f"{command} --version timed out")
        process.kill()
        await process.wait()
        return ""

    match = _version_pattern.search(stdout.decode("utf-8", errors="replace"))
    return match.group(1) if match else ""


async def detect_installed_browsers(
    candidates: Sequence[dict[str, Any]] = KNOWN_BROWSERS,
) -> list[BrowserDescriptor]:
    """Find known browsers on PATH or at their usual install locations."""
    found: list[tuple[dict[str, Any], str]] = []
    seen: set[str] = set()
    for candidate in candidates:
        for executable in candidate["executables"]:
            command = _resolve_executable(executable)
            if command is None:
                continue
            # Distro symlinks often point several names at one binary
            real = str(Path(command).resolve())
            if real in seen:
                break
            seen.add(real)
            found.append((candidate, command))
            break

    versions = await asyncio.gather(
        *(read_browser_version(command) for _, command in found)
    )
    return [
        BrowserDescriptor(
            name=candidate["name"],
            type=candidate["type"],
            command=command,
            version=version,
        )
        for (candidate, command), version in zip(found, versions)
    ]


async def detect_playwright_browsers() -> list[BrowserDescriptor]:
    """Find browsers installed with `playwright install`.

    Starting the Playwright driver can fail on machines without it set up;
    that only means there are no Playwright browsers to report.
    """
    browsers = []
    try:
        async with async_playwright() as p:
            for name, browser_type, family in (
                ("playwright-chromium", p.chromium, "chromium"),
                ("playwright-firefox", p.firefox, "firefox"),
            ):
                command = browser_type.executable_path
                if command and Path(command).exists():
                    browsers.append(
                        BrowserDescriptor(name=name, type=family, command=command)
                    )
    except Exception as e:
        logger.debug(f"Playwright browser discovery unavailable: {e}")
        return []

    versions = await asyncio.gather(*(read_browser_version(b.command) for b in browsers))
    for browser, version in zip(browsers, versions):
        browser.version = version
    return browsers


async def load_registry(config_path: Path) -> Optional[list[BrowserDescriptor]]:
    """Load browsers from the registry file.

    Returns:
        The cached browsers, or None if the file is missing or unusable
    """
    try:
        async with aiofiles.open(config_path, "r", encoding="utf-8") as f:
            data = json.loads(await f.read())
        return [BrowserDescriptor.model_validate(b) for b in data["browsers"]]
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValidationError) as e:
        logger.warning(f"Ignoring unusable browser registry {config_path}: {e}")
        return None


async def save_registry(config_path: Path, browsers: Sequence[BrowserDescriptor]) -> None:
    """Write browsers to the registry file."""
    await aiofiles.os.makedirs(config_path.parent, exist_ok=True)
    data = {"browsers": [b.model_dump() for b in browsers]}
    async with aiofiles.open(config_path, "w", encoding="utf-8") as f:
        await f.write(json.dumps(data, indent=2))


async def write_firefox_prefs(profile: Path, prefs: dict[str, Any]) -> Path:
    """Write preferences to user.js in a Firefox profile."""
    await aiofiles.os.makedirs(profile, exist_ok=True)
    path = profile / "user.js"
    lines = [f"user_pref({json.dumps(key)}, {json.dumps(value)});" for key, value in prefs.items()]
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write("\n".join(lines) + "\n")
    return path


def firefox_proxy_prefs(proxy: str, no_proxy: Sequence[str] = ()) -> dict[str, Any]:
    """Preferences routing HTTP and HTTPS through a proxy."""
    host, _, port = proxy.rpartition(":")
    return {
        "network.proxy.type": 1,
        "network.proxy.http": host,
        "network.proxy.http_port": int(port),
        "network.proxy.ssl": host,
        "network.proxy.ssl_port": int(port),
        "network.proxy.no_proxies_on": ", ".join(no_proxy),
        "network.proxy.allow_hijacking_localhost": True,
    }


async def build_command(
    browser: BrowserDescriptor,
    url: str,
    options: LaunchOptions,
) -> tuple[list[str], Optional[str], bool]:
    """Build the command line for launching a browser.

    Firefox needs a profile to carry proxy settings and prefs, so one is
    created in a temp directory when none was given. The caller owns that
    directory and must remove it once the browser exits.

    Returns:
        (command line, profile directory or None, whether the profile is temporary)
    """
    command = [browser.command]
    profile = options.profile or browser.profile
    temp_profile = False

    if not options.skip_defaults:
        command.extend(DEFAULT_ARGS[browser.type])

    if browser.type == "chromium":
        if profile:
            command.append(f"--user-data-dir={profile}")
        if options.proxy:
            command.append(f"--proxy-server={options.proxy}")
            if options.no_proxy:
                command.append(f"--proxy-bypass-list={';'.join(options.no_proxy)}")
        if options.headless:
            command.append("--headless=new")
    else:
        prefs = dict(options.prefs)
        if options.proxy:
            prefs.update(firefox_proxy_prefs(options.proxy, options.no_proxy))
        if prefs and not profile:
            profile = tempfile.mkdtemp(prefix="browser_launcher_")
            temp_profile = True
        if prefs:
            try:
                await write_firefox_prefs(Path(profile), prefs)
            except OSError:
                if temp_profile:
                    shutil.rmtree(profile, ignore_errors=True)
                raise
        if profile:
            command.extend(["-profile", profile])
        if options.headless:
            command.append("-headless")

    command.extend(options.args)
    command.append(url)
    return command, profile, temp_profile


class LocalBrowserLauncher(BrowserLauncher):
    """Launches browsers installed on this machine.

    Usage:
        launcher = await LocalBrowserLauncher.create(config_path)
        print(launcher.browsers)
        instance = await launcher.launch("https://example.com", {"browser": "firefox"})
    """

    def __init__(self, config_path: Path, browsers: Sequence[BrowserDescriptor]):
        self.config_path = config_path
        self._browsers = list(browsers)

    @property
    def browsers(self) -> list[BrowserDescriptor]:
        return list(self._browsers)

    @classmethod
    async def create(
        cls,
        config_path: Union[str, Path],
        include_playwright: bool = True,
        candidates: Sequence[dict[str, Any]] = KNOWN_BROWSERS,
    ) -> "LocalBrowserLauncher":
        """Load the cached registry, or detect browsers and write it.

        Args:
            config_path: Path of browsers.json
            include_playwright: Also report Playwright-managed browsers
            candidates: Browser table to detect from

        Raises:
            LaunchError: If the registry cannot be written
        """
        config_path = Path(config_path)
        browsers = await load_registry(config_path)
        if browsers is not None:
            logger.debug(f"Loaded {len(browsers)} browsers from {config_path}")
            return cls(config_path, browsers)

        logger.info(f"Detecting installed browsers for {config_path}")
        browsers = await detect_installed_browsers(candidates)
        if include_playwright:
            browsers.extend(await detect_playwright_browsers())

        try:
            await save_registry(config_path, browsers)
        except OSError as e:
            raise LaunchError(f"Could not write browser registry {config_path}: {e}") from e

        logger.info(f"Found {len(browsers)} browsers: {', '.join(b.name for b in browsers) or 'none'}")
        return cls(config_path, browsers)

    def select_browser(self, options: LaunchOptions) -> BrowserDescriptor:
        """Pick the browser matching the requested name and version.

        Raises:
            LaunchError: If no browser matches
        """
        if not self._browsers:
            raise LaunchError("No browsers are installed", browser=options.browser)

        matches = self._browsers
        if options.browser:
            matches = [b for b in matches if b.name == options.browser]
            if not matches:
                available = ", ".join(b.name for b in self._browsers)
                raise LaunchError(
                    f"Unable to find a browser named {options.browser!r} (available: {available})",
                    browser=options.browser,
                )

        if options.version:
            matches = [b for b in matches if b.version.startswith(options.version)]
            if not matches:
                raise LaunchError(
                    f"No {options.browser or 'browser'} with version {options.version} is installed",
                    browser=options.browser,
                )

        return matches[0]

    async def launch(
        self,
        url: str,
        options: Union[LaunchOptions, dict[str, Any], None] = None,
    ) -> BrowserInstance:
        if options is None:
            options = LaunchOptions()
        elif not isinstance(options, LaunchOptions):
            try:
                options = LaunchOptions.model_validate(options)
            except ValidationError as e:
                raise LaunchError(f"Invalid launch options: {e}") from e

        browser = self.select_browser(options)
        try:
            command, profile, temp_profile = await build_command(browser, url, options)
        except OSError as e:
            raise LaunchError(f"Could not prepare profile for {browser.name}: {e}", browser=browser.name) from e

        logger.info(f"Launching {browser.name} {browser.version} at {url}")
        logger.debug(f"Command: {command}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                start_new_session=options.detached,
            )
        except OSError as e:
            if temp_profile:
                shutil.rmtree(profile, ignore_errors=True)
            if isinstance(e, FileNotFoundError):
                raise LaunchError(
                    f"Executable for {browser.name} not found: {browser.command}",
                    browser=browser.name,
                ) from e
            raise LaunchError(f"Failed to start {browser.name}: {e}", browser=browser.name) from e

        return BrowserInstance(
            process=process,
            browser=browser,
            command=command,
            profile=profile,
            temp_profile=temp_profile,
        )


async def create_launcher(
    config_path: Union[str, Path],
    include_playwright: bool = True,
) -> BrowserLauncher:
    """Default launcher factory."""
    return await LocalBrowserLauncher.create(config_path, include_playwright=include_playwright)
