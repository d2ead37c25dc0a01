"""Console-based reporter implementation using rich."""

from __future__ import annotations

from rich.markup import escape

from specfit.core.shared.reporter import Reporter
from specfit.ui.console import Verbosity, console, get_verbosity, icon


class ConsoleReporter:
    """Reporter printing styled status lines to the specfit console.

    Args:
        verbosity: Fixed verbosity level; follows ``set_verbosity`` if None.
            At ``Verbosity.QUIET`` only errors are printed.

    Example:
        >>> reporter = ConsoleReporter()
        >>> reporter.action("Fitting line 2614.511 keV")
        >>> reporter.success("Line 2614.511: converged_with_cov")
    """

    def __init__(self, verbosity: int | None = None) -> None:
        self.verbosity = verbosity

    def _show(self) -> bool:
        level = get_verbosity() if self.verbosity is None else self.verbosity
        return level > Verbosity.QUIET

    def action(self, message: str) -> None:
        if self._show():
            console.print(f"[action]{icon('play')} {escape(message)}[/action]", highlight=False)

    def info(self, message: str) -> None:
        if self._show():
            console.print(f"[info]{icon('info')}[/info] {escape(message)}", highlight=False)

    def warning(self, message: str) -> None:
        if self._show():
            console.print(f"[warning]{icon('warn')} {escape(message)}[/warning]", highlight=False)

    def error(self, message: str) -> None:
        console.print(f"[error]{icon('error')} {escape(message)}[/error]", highlight=False)

    def success(self, message: str) -> None:
        if self._show():
            console.print(f"[success]{icon('check')}[/success] {escape(message)}", highlight=False)


# Verify protocol compliance at import time
if not isinstance(ConsoleReporter(), Reporter):
    raise TypeError("ConsoleReporter must satisfy Reporter protocol")
