"""Terminal output for specfit: rich console, logging setup and reporter.

Submodules:
- console: Theme, console instance and verbosity
- logging: File and console logging
- reporter: Reporter printing to the console
"""

from specfit.ui.console import SPECFIT_THEME, VERSION, Verbosity, console, get_verbosity, icon, set_verbosity
from specfit.ui.logging import JSONFormatter, close_logging, setup_logging
from specfit.ui.reporter import ConsoleReporter

__all__ = [
    "SPECFIT_THEME",
    "VERSION",
    "ConsoleReporter",
    "JSONFormatter",
    "Verbosity",
    "close_logging",
    "console",
    "get_verbosity",
    "icon",
    "set_verbosity",
    "setup_logging",
]
