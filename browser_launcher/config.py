"""
Configuration management for Browser Launcher.

Provides configuration dataclass and environment variable loading.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


# Name of the browser registry file inside a config directory
BROWSER_CONFIG_FILENAME = "browsers.json"

# Registry files older than this are rebuilt on startup
DEFAULT_STALE_AFTER_HOURS = 24.0


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes")


def get_base_dir() -> Path:
    """Get the base directory for browser launcher data."""
    override = os.getenv("BROWSER_LAUNCHER_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".browser_launcher"


def browser_config_path(config_dir: Union[str, Path]) -> Path:
    """Get the path of the browser registry file for a config directory."""
    return Path(config_dir).expanduser().absolute() / BROWSER_CONFIG_FILENAME


@dataclass
class LauncherConfig:
    """Configuration for browser discovery and launching."""

    # Directory holding browsers.json
    config_dir: Path = field(default_factory=get_base_dir)

    # Freshness threshold for the registry file
    stale_after_hours: float = field(
        default_factory=lambda: float(
            os.getenv("BROWSER_LAUNCHER_STALE_HOURS", DEFAULT_STALE_AFTER_HOURS)
        )
    )

    # Also report browsers installed by `playwright install`
    include_playwright: bool = field(
        default_factory=lambda: _env_flag("BROWSER_LAUNCHER_PLAYWRIGHT", True)
    )

    # Debug mode - enables verbose logging (off by default)
    debug: bool = field(
        default_factory=lambda: _env_flag("BROWSER_LAUNCHER_DEBUG")
    )

    def __post_init__(self):
        self.config_dir = Path(self.config_dir).expanduser()
        if self.stale_after_hours <= 0:
            raise ValueError("stale_after_hours must be positive")

    @property
    def browser_config_path(self) -> Path:
        """Path to the browser registry file."""
        return browser_config_path(self.config_dir)

    @property
    def stale_after(self) -> timedelta:
        """Freshness threshold as a timedelta."""
        return timedelta(hours=self.stale_after_hours)

    def ensure_directories(self) -> None:
        """Ensure the config directory exists."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_cli_args(
        cls,
        config_dir: Optional[str] = None,
        stale_hours: Optional[float] = None,
        no_playwright: bool = False,
        debug: bool = False,
    ) -> "LauncherConfig":
        """Create configuration from CLI arguments."""
        config = cls()
        if config_dir:
            config.config_dir = Path(config_dir).expanduser()
        if stale_hours is not None:
            if stale_hours <= 0:
                raise ValueError("stale_after_hours must be positive")
            config.stale_after_hours = stale_hours
        if no_playwright:
            config.include_playwright = False
        if debug:
            config.debug = True
        return config


# Default configuration values for documentation
DEFAULTS = {
    "config_dir": "~/.browser_launcher",
    "stale_after_hours": DEFAULT_STALE_AFTER_HOURS,
    "include_playwright": True,
    "debug": False,
}
