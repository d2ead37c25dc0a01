"""Result models of specfit.

Estimates carry an explicit "undefined" uncertainty (``None``); results are
immutable once returned; reports expose the fitted functions for plotting.
"""

from specfit.core.results.estimates import ParameterEstimate, build_estimates
from specfit.core.results.fit_results import (
    FitState,
    PeakCut,
    PeakFitEntry,
    PeakFitReport,
    PeakFitResult,
    ResolutionCurve,
    ResolutionReport,
    SubpeakFitReport,
    SubpeakFitResult,
    WindowCut,
    WindowCutReport,
)
from specfit.core.results.statistics import (
    GoodnessOfFit,
    chi2_pvalue,
    evaluate_goodness_of_fit,
    get_residuals,
    p_value_poissonll,
)

__all__ = [
    "FitState",
    "GoodnessOfFit",
    "ParameterEstimate",
    "PeakCut",
    "PeakFitEntry",
    "PeakFitReport",
    "PeakFitResult",
    "ResolutionCurve",
    "ResolutionReport",
    "SubpeakFitReport",
    "SubpeakFitResult",
    "WindowCut",
    "WindowCutReport",
    "build_estimates",
    "chi2_pvalue",
    "evaluate_goodness_of_fit",
    "get_residuals",
    "p_value_poissonll",
]
