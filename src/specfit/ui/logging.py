"""Logging configuration for specfit.

The library logs through ``logging.getLogger(__name__)`` loggers below
``specfit``. ``setup_logging`` routes them to a log file and, when verbose,
to the rich console.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from rich.logging import RichHandler

from specfit.ui.console import VERSION, Verbosity, console, get_verbosity

_logger: logging.Logger | None = None


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def setup_logging(
    log_file: Path | None = None,
    verbose: bool | None = None,
    level: int = logging.INFO,
) -> logging.Logger | None:
    """Attach handlers to the ``specfit`` logger.

    Args:
        log_file: Destination file; a ``.json`` suffix selects JSON lines
        verbose: Also log to the console through rich (on at
            ``Verbosity.VERBOSE`` if None)
        level: Minimum level of the handlers

    Returns
    -------
        The configured logger, or None when neither output was requested
    """
    global _logger

    if verbose is None:
        verbose = get_verbosity() >= Verbosity.VERBOSE
    if log_file is None and not verbose:
        _logger = None
        return None

    _logger = logging.getLogger("specfit")
    _logger.setLevel(level)
    for handler in _logger.handlers[:]:
        handler.close()
        _logger.removeHandler(handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="w")
        file_handler.setLevel(level)
        if log_file.suffix == ".json":
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
        _logger.addHandler(file_handler)

    if verbose:
        console_handler = RichHandler(
            console=console,
            show_time=False,
            show_path=False,
            markup=False,
        )
        console_handler.setLevel(level)
        _logger.addHandler(console_handler)

    _logger.info("specfit v%s - session started", VERSION)
    _logger.info("Python: %s | Platform: %s", sys.version.split()[0], sys.platform)
    return _logger


def close_logging() -> None:
    """Detach and close the handlers installed by ``setup_logging``."""
    global _logger

    if _logger is None:
        return

    _logger.info("specfit session completed")
    for handler in _logger.handlers[:]:
        handler.close()
        _logger.removeHandler(handler)
    _logger = None


__all__ = ["JSONFormatter", "close_logging", "setup_logging"]
