"""
Type definitions for Browser Launcher.

Provides pydantic models for discovered browsers and launch options, and the
handle returned for a launched browser process.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


logger = logging.getLogger(__name__)


BrowserType = Literal["chromium", "firefox"]


class BrowserDescriptor(BaseModel):
    """A browser found on this machine.

    Attributes:
        name: Short browser name (e.g., "chrome", "firefox")
        version: Version string reported by the browser
        command: Executable path used to launch it
        type: Browser family, decides which command line flags apply
        profile: Default profile directory, if any
    """
    model_config = ConfigDict(extra="ignore")

    name: str
    version: str = ""
    command: str
    type: BrowserType = "chromium"
    profile: Optional[str] = None


class LaunchOptions(BaseModel):
    """Options for launching a browser.

    Only `browser` and `version` pick which browser runs; everything else
    shapes its command line.
    """
    model_config = ConfigDict(extra="ignore")

    browser: Optional[str] = Field(
        default=None,
        description="Browser name to launch (first detected browser if unset)",
    )
    version: Optional[str] = Field(
        default=None,
        description="Required version prefix",
    )
    profile: Optional[str] = Field(
        default=None,
        description="Profile directory to launch with",
    )
    proxy: Optional[str] = Field(
        default=None,
        description="HTTP(S) proxy as host:port",
    )
    no_proxy: list[str] = Field(
        default_factory=list,
        description="Hosts that bypass the proxy",
    )
    headless: bool = False
    detached: bool = False
    skip_defaults: bool = Field(
        default=False,
        description="Skip the default command line flags for the browser",
    )
    args: list[str] = Field(
        default_factory=list,
        description="Extra command line arguments",
    )
    prefs: dict[str, Any] = Field(
        default_factory=dict,
        description="Firefox preferences written to user.js",
    )

    @field_validator("profile")
    @classmethod
    def validate_profile(cls, v: Optional[str]) -> Optional[str]:
        """Expand ~ in profile paths."""
        if v is None:
            return v
        if not v.strip():
            raise ValueError("Profile path cannot be empty")
        return str(Path(v).expanduser())

    @field_validator("proxy")
    @classmethod
    def validate_proxy(cls, v: Optional[str]) -> Optional[str]:
        """Require host:port proxies with a numeric port."""
        if v is None:
            return v
        host, sep, port = v.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"Proxy must be host:port, got {v!r}")
        return v


@dataclass
class BrowserInstance:
    """A launched browser process.

    Ownership passes to whoever receives it from launch().

    Attributes:
        process: The underlying asyncio subprocess
        browser: Descriptor of the browser that was started
        command: Full command line used
        profile: Profile directory passed to the browser, if any
        temp_profile: The profile was created for this launch and is removed
            once the browser exits
    """
    process: asyncio.subprocess.Process
    browser: BrowserDescriptor
    command: list[str] = field(default_factory=list)
    profile: Optional[str] = None
    temp_profile: bool = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def is_running(self) -> bool:
        return self.process.returncode is None

    def cleanup_profile_dir(self) -> None:
        """Remove the temp profile directory once the browser has exited.

        No-op for profiles the caller supplied.
        """
        if self.temp_profile and self.profile and not self.is_running:
            shutil.rmtree(self.profile, ignore_errors=True)
            self.temp_profile = False

    async def wait(self) -> int:
        """Wait for the browser to exit and return its exit code."""
        returncode = await self.process.wait()
        self.cleanup_profile_dir()
        return returncode

    async def stop(self, timeout: float = 5.0) -> int:
        """Terminate the browser, killing it if it does not exit in time.

        Safe to call multiple times.
        """
        if not self.is_running:
            self.cleanup_profile_dir()
            return self.process.returncode

        try:
            self.process.terminate()
        except ProcessLookupError:
            pass

        try:
            return await asyncio.wait_for(self.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Browser {self.browser.name} (pid {self.pid}) ignored terminate, killing")
            try:
                self.process.kill()
            except ProcessLookupError:
                pass
            return await self.wait()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "pid": self.pid,
            "browser": self.browser.name,
            "version": self.browser.version,
            "command": self.command,
            "profile": self.profile,
        }
