"""
Startup check for the browser registry file.

Sometimes browsers.json ends up corrupted (not valid JSON), and the discovery
facility does not recover from that by itself. The registry also drifts as
browsers are installed and upgraded. This module deletes the file when it is
broken or old so the facility rebuilds it on next use.
"""

import asyncio
import json
import logging
import time
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional, Union

import aiofiles
import aiofiles.os

from .config import DEFAULT_STALE_AFTER_HOURS, browser_config_path
from .error_tracking import ErrorReporter, LoggingErrorReporter
from .errors import ConfigCondition, policy_for


logger = logging.getLogger(__name__)


DEFAULT_MAX_AGE = timedelta(hours=DEFAULT_STALE_AFTER_HOURS)


async def _read_json(path: Path) -> Any:
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        contents = await f.read()
    return json.loads(contents)


async def _is_stale(path: Path, max_age: timedelta) -> bool:
    stats = await aiofiles.os.stat(path)
    return time.time() - stats.st_mtime >= max_age.total_seconds()


def _log(condition: ConfigCondition, message: str) -> None:
    logger.log(policy_for(condition).log_level, message)


async def delete_browser_config(
    path: Path,
    reporter: ErrorReporter,
) -> Optional[ConfigCondition]:
    """Delete the registry file, absorbing every failure.

    A file that is already gone counts as deleted: the corrupt and stale paths
    can both decide to delete the same file.

    Returns:
        None when the file was deleted, otherwise the deletion condition
    """
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        _log(ConfigCondition.DELETION_RACE, f"Browser config {path} was already removed")
        return ConfigCondition.DELETION_RACE
    except OSError as e:
        condition = ConfigCondition.DELETION_FAILURE
        _log(condition, f"Failed to clear browser config {path}: {e}")
        if policy_for(condition).report:
            try:
                reporter.report(e)
            except Exception:
                logger.debug("Error reporter failed", exc_info=True)
        return condition

    logger.debug(f"Deleted browser config {path}")
    return None


async def check_browser_config(
    config_dir: Union[str, Path],
    *,
    max_age: timedelta = DEFAULT_MAX_AGE,
    reporter: Optional[ErrorReporter] = None,
) -> ConfigCondition:
    """Validate browsers.json, deleting it if it is corrupt or stale.

    Reading/parsing and the age check run concurrently. This never raises:
    every failure is logged, and unexpected deletion failures are reported.

    Args:
        config_dir: Directory containing browsers.json
        max_age: Files at least this old are deleted even if they parse
        reporter: Error reporter (defaults to logging)

    Returns:
        The condition observed for the file (informational only)
    """
    reporter = reporter or LoggingErrorReporter()
    path = browser_config_path(config_dir)

    read_result, stale_result = await asyncio.gather(
        _read_json(path),
        _is_stale(path, max_age),
        return_exceptions=True,
    )

    # Age wins over parse result: old files are rebuilt either way
    if stale_result is True:
        condition = ConfigCondition.STALE
        _log(condition, f"Browser config {path} is older than {max_age}, clearing it")
        if policy_for(condition).delete:
            await delete_browser_config(path, reporter)
        if isinstance(read_result, BaseException) and not isinstance(read_result, FileNotFoundError):
            logger.debug(f"Stale browser config was also unreadable: {read_result!r}")
        return condition

    error = next(
        (r for r in (read_result, stale_result) if isinstance(r, BaseException)),
        None,
    )
    if error is None:
        _log(ConfigCondition.VALID, f"Browser config {path} is valid")
        return ConfigCondition.VALID

    if isinstance(error, FileNotFoundError):
        _log(ConfigCondition.MISSING, f"No browser config at {path}")
        return ConfigCondition.MISSING

    if not isinstance(error, Exception):
        # Cancellation and friends are not ours to absorb
        raise error

    condition = ConfigCondition.CORRUPT
    _log(condition, f"Failed to read browser config on startup: {error!r}")
    if policy_for(condition).delete:
        await delete_browser_config(path, reporter)
    return condition
