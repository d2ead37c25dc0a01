"""Exception taxonomy for specfit.

Only ``InputError`` (and its subclasses) is meant to escape a fitting call.
The other exceptions are raised inside the numeric layers and handled by the
fitting services, which degrade the affected result instead of failing.
"""

from __future__ import annotations


class SpecFitError(Exception):
    """Base class for all specfit-specific exceptions."""


class InputError(SpecFitError, ValueError):
    """Invalid caller input (lengths, orders, unknown fields or calibration types)."""


class UnitError(InputError):
    """Incompatible or unknown physical units."""


class CovarianceError(SpecFitError):
    """Hessian could not be inverted into a usable covariance matrix."""


class RootFindingError(SpecFitError):
    """Half-maximum roots of a peak shape could not be located."""


class ResourceBudgetExceeded(SpecFitError, StopIteration):
    """Optimizer exceeded its wall-clock or memory budget.

    Derives from ``StopIteration`` so that SciPy's callback machinery halts the
    local search and reports it as not converged.
    """


__all__ = [
    "CovarianceError",
    "InputError",
    "ResourceBudgetExceeded",
    "RootFindingError",
    "SpecFitError",
    "UnitError",
]
