"""
Error taxonomy for Browser Launcher.

Registry file problems are an environmental nuisance and are absorbed by the
config guard. Launch failures are actionable and always reach the caller.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class BrowserLauncherError(Exception):
    """Base class for browser launcher errors."""


class LaunchError(BrowserLauncherError):
    """The discovery/launch facility failed to start up or to launch a browser."""

    def __init__(self, message: str, browser: Optional[str] = None):
        super().__init__(message)
        self.browser = browser


class ConfigCondition(str, Enum):
    """Conditions the config guard can observe while checking browsers.json."""
    VALID = "valid"
    MISSING = "missing"
    CORRUPT = "corrupt"
    STALE = "stale"
    DELETION_RACE = "deletion_race"
    DELETION_FAILURE = "deletion_failure"


@dataclass(frozen=True)
class ConditionPolicy:
    """How the config guard reacts to a condition.

    Attributes:
        delete: Remove the registry file so the facility rebuilds it
        report: Send the underlying error to the error reporter
        log_level: Level used when logging the condition
    """
    delete: bool
    report: bool
    log_level: int


CONFIG_POLICY: dict[ConfigCondition, ConditionPolicy] = {
    ConfigCondition.VALID: ConditionPolicy(delete=False, report=False, log_level=logging.DEBUG),
    ConfigCondition.MISSING: ConditionPolicy(delete=False, report=False, log_level=logging.DEBUG),
    ConfigCondition.CORRUPT: ConditionPolicy(delete=True, report=False, log_level=logging.WARNING),
    ConfigCondition.STALE: ConditionPolicy(delete=True, report=False, log_level=logging.INFO),
    ConfigCondition.DELETION_RACE: ConditionPolicy(delete=False, report=False, log_level=logging.DEBUG),
    ConfigCondition.DELETION_FAILURE: ConditionPolicy(delete=False, report=True, log_level=logging.ERROR),
}


def policy_for(condition: ConfigCondition) -> ConditionPolicy:
    """Look up the policy for a condition."""
    return CONFIG_POLICY[condition]
