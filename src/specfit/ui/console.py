"""Console configuration and theme for specfit output.

This module provides the console instance and theme used by the rich
logging handler and the console reporter.
"""

import os
import sys
from importlib import metadata

from rich.console import Console
from rich.theme import Theme

try:
    _PKG_VERSION = metadata.version("specfit")
except metadata.PackageNotFoundError:
    _PKG_VERSION = "dev"

# Palette chosen for contrast in light and dark terminals
SPECFIT_THEME = Theme(
    {
        # --- Semantic Status ---
        "success": "bold green",
        "warning": "bold yellow",
        "error": "bold red",
        "info": "cyan",
        "action": "bold cyan",
        "neutral": "dim white",
        # --- Data & Values ---
        "key": "cyan",
        "value": "green",
        "number": "green",
        "unit": "dim",
        # --- Modifiers ---
        "dim": "dim",
        "emphasis": "bold",
    }
)

console = Console(theme=SPECFIT_THEME, stderr=True)

VERSION = _PKG_VERSION


class Verbosity:
    """Verbosity levels for console output."""

    QUIET = 0  # Errors only
    NORMAL = 1
    VERBOSE = 2


_verbosity = Verbosity.NORMAL


def set_verbosity(level: int) -> None:
    """Set the global verbosity level.

    Args:
        level: Verbosity level (0=QUIET, 1=NORMAL, 2=VERBOSE)
    """
    global _verbosity
    _verbosity = level


def get_verbosity() -> int:
    return _verbosity


_EMOJI_DISABLED = os.getenv("SPECFIT_NO_EMOJI", "").lower() in {"1", "true", "yes"}


def _supports_emoji() -> bool:
    if _EMOJI_DISABLED:
        return False
    enc = getattr(console, "encoding", None) or sys.getdefaultencoding()
    return enc is None or "utf" in enc.lower()


def icon(name: str) -> str:
    """Status icon, with an ASCII fallback for terminals without Unicode.

    Names: check, warn, error, info, play
    """
    use_emoji = _supports_emoji()
    mapping = {
        "check": "✓" if use_emoji else "+",
        "warn": "⚠" if use_emoji else "!",
        "error": "✗" if use_emoji else "x",
        "info": "▸" if use_emoji else ">",
        "play": "▶" if use_emoji else ">",
    }
    return mapping.get(name, mapping["info"])


__all__ = [
    "SPECFIT_THEME",
    "VERSION",
    "Verbosity",
    "console",
    "get_verbosity",
    "icon",
    "set_verbosity",
]
