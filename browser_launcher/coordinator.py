"""
Serialized access to the browser discovery/launch facility.

Creating a launcher is not safe to run in parallel: concurrent runs against
the same browsers.json can corrupt it. Every access to a launcher goes through
one lock, and each launcher is created once and reused for the rest of the
process.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from .config import LauncherConfig, browser_config_path
from .discovery import BrowserLauncher, create_launcher
from .errors import LaunchError
from .types import BrowserDescriptor, BrowserInstance, LaunchOptions


logger = logging.getLogger(__name__)


LauncherFactory = Callable[[Path], Awaitable[BrowserLauncher]]


class LaunchCoordinator:
    """Owns the launcher handles and the lock that guards them.

    Create one at startup and hand it to whatever needs to list or launch
    browsers.

    Usage:
        coordinator = LaunchCoordinator()
        browsers = await coordinator.list_available_browsers(config_dir)
        instance = await coordinator.launch_browser(url, {"browser": "chrome"}, config_dir)
    """

    def __init__(self, launcher_factory: Optional[LauncherFactory] = None):
        """Initialize the coordinator.

        Args:
            launcher_factory: Async callable building a launcher for a
                browsers.json path (defaults to local browser discovery)
        """
        self._launcher_factory = launcher_factory or create_launcher
        self._lock = asyncio.Lock()
        self._launchers: dict[Path, asyncio.Future] = {}

    @classmethod
    def from_config(cls, config: LauncherConfig) -> "LaunchCoordinator":
        """Create a coordinator using the default factory configured from config."""
        async def factory(config_path: Path) -> BrowserLauncher:
            return await create_launcher(config_path, include_playwright=config.include_playwright)
        return cls(factory)

    async def _create_launcher(self, config_path: Path) -> BrowserLauncher:
        logger.debug(f"Creating browser launcher for {config_path}")
        try:
            return await self._launcher_factory(config_path)
        except LaunchError:
            raise
        except Exception as e:
            raise LaunchError(f"Failed to start browser launcher: {e}") from e

    async def _get_launcher(self, config_path: Path) -> BrowserLauncher:
        # Caller must hold self._lock
        pending = self._launchers.get(config_path)
        if pending is None:
            pending = asyncio.ensure_future(self._create_launcher(config_path))
            pending.add_done_callback(lambda f: self._forget_failed(config_path, f))
            self._launchers[config_path] = pending

        # Shielded: a cancelled caller must not abort a shared construction
        return await asyncio.shield(pending)

    def _forget_failed(self, config_path: Path, pending: asyncio.Future) -> None:
        # Failed constructions are not cached; the next caller retries
        if not pending.cancelled() and pending.exception() is None:
            return
        if self._launchers.get(config_path) is pending:
            del self._launchers[config_path]

    async def launcher_for(self, config_dir: Union[str, Path]) -> BrowserLauncher:
        """Get the shared launcher for a config directory, creating it if needed.

        Raises:
            LaunchError: If the launcher cannot be created
        """
        config_path = browser_config_path(config_dir)
        async with self._lock:
            return await self._get_launcher(config_path)

    def has_launcher(self, config_dir: Union[str, Path]) -> bool:
        """Check whether a launcher has been created for a config directory."""
        pending = self._launchers.get(browser_config_path(config_dir))
        return (
            pending is not None
            and pending.done()
            and not pending.cancelled()
            and pending.exception() is None
        )

    async def list_available_browsers(
        self,
        config_dir: Union[str, Path],
    ) -> list[BrowserDescriptor]:
        """List the browsers the launcher knows about.

        Raises:
            LaunchError: If the launcher cannot be created
        """
        config_path = browser_config_path(config_dir)
        async with self._lock:
            launcher = await self._get_launcher(config_path)
            return launcher.browsers

    async def launch_browser(
        self,
        url: str,
        options: Union[LaunchOptions, dict[str, Any], None],
        config_dir: Union[str, Path],
    ) -> BrowserInstance:
        """Launch a browser at a URL.

        The lock is only held while obtaining the launcher; the launch itself
        does not block other callers.

        Raises:
            LaunchError: If the launcher cannot be created or the launch fails
        """
        launcher = await self.launcher_for(config_dir)
        try:
            return await launcher.launch(url, options)
        except LaunchError:
            raise
        except Exception as e:
            raise LaunchError(f"Failed to launch browser: {e}") from e
