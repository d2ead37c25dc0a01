"""Shared foundational utilities for specfit."""

from specfit.core.shared import reporter, typing
from specfit.core.shared.exceptions import (
    CovarianceError,
    InputError,
    ResourceBudgetExceeded,
    RootFindingError,
    SpecFitError,
    UnitError,
)
from specfit.core.shared.reporter import LoggingReporter, NullReporter, Reporter

__all__ = [
    "CovarianceError",
    "InputError",
    "LoggingReporter",
    "NullReporter",
    "Reporter",
    "ResourceBudgetExceeded",
    "RootFindingError",
    "SpecFitError",
    "UnitError",
    "reporter",
    "typing",
]
