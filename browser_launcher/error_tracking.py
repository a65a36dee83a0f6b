"""
Error tracking for Browser Launcher.

Failures that are absorbed internally are still handed to a reporter so they
show up somewhere other than a log line nobody reads.
"""

import logging
from abc import ABC, abstractmethod


logger = logging.getLogger(__name__)


class ErrorReporter(ABC):
    """Fire-and-forget sink for internally absorbed errors."""

    @abstractmethod
    def report(self, error: BaseException) -> None:
        """Report an error. Must never raise."""
        ...


class LoggingErrorReporter(ErrorReporter):
    """Reports errors through the logging system with their traceback."""

    def __init__(self, name: str = "browser_launcher.errors"):
        self._logger = logging.getLogger(name)
        self.reported_count = 0

    def report(self, error: BaseException) -> None:
        self.reported_count += 1
        try:
            self._logger.error(
                f"Reported error: {error!r}",
                exc_info=(type(error), error, error.__traceback__),
            )
        except Exception:
            logger.debug("Failed to report error", exc_info=True)
