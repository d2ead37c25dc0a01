"""Progress and status reporting abstraction.

The fitting services report per-peak progress through a ``Reporter`` so that
batch runs, tests and interactive sessions can route messages differently
without the numeric core depending on any output library.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable


@runtime_checkable
class Reporter(Protocol):
    """Protocol for progress and status reporting."""

    def action(self, message: str) -> None:
        """Report an action being performed (e.g. 'Fitting line 2614.5 keV')."""
        ...

    def info(self, message: str) -> None:
        """Report an informational message."""
        ...

    def warning(self, message: str) -> None:
        """Report a non-fatal issue (degraded result, retry)."""
        ...

    def error(self, message: str) -> None:
        """Report an error that affects one result but not the whole batch."""
        ...

    def success(self, message: str) -> None:
        """Report successful completion."""
        ...


class NullReporter:
    """Silent reporter that discards all messages."""

    def action(self, message: str) -> None:
        pass

    def info(self, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass

    def success(self, message: str) -> None:
        pass


class LoggingReporter:
    """Reporter that writes to Python logging.

    Example:
        >>> reporter = LoggingReporter("specfit.peaks")
        >>> reporter.action("Fitting line 583.191 keV")  # INFO level
        >>> reporter.warning("Covariance not positive definite")  # WARNING level
    """

    def __init__(self, logger_name: str = "specfit") -> None:
        self._logger = logging.getLogger(logger_name)

    def action(self, message: str) -> None:
        """Log action at INFO level with prefix."""
        self._logger.info("[ACTION] %s", message)

    def info(self, message: str) -> None:
        self._logger.info(message)

    def warning(self, message: str) -> None:
        self._logger.warning(message)

    def error(self, message: str) -> None:
        self._logger.error(message)

    def success(self, message: str) -> None:
        """Log success at INFO level with prefix."""
        self._logger.info("[SUCCESS] %s", message)


__all__ = ["LoggingReporter", "NullReporter", "Reporter"]
