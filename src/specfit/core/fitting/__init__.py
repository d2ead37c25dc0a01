"""Numeric fitting engine.

Priors and their unconstrained transform, the Poisson likelihood, the
budgeted optimizer, Hessian covariance, FWHM estimation and chi-squared
fits.
"""

from specfit.core.fitting.chi2 import Chi2FitResult, PullTerm, chi2fit
from specfit.core.fitting.covariance import (
    CovarianceEstimate,
    compute_hessian,
    estimate_covariance,
    is_positive_definite,
    nearest_spd,
)
from specfit.core.fitting.fwhm import (
    compute_fwhm,
    draw_parameter_samples,
    estimate_fwhm,
    peak_fwhm,
)
from specfit.core.fitting.likelihood import HistogramLikelihood, hist_loglike, log_pdf_poisson
from specfit.core.fitting.limits import (
    ResourceLimits,
    TimeAndMemoryControl,
    get_default_limits,
    set_memlimit,
    set_timelimit,
)
from specfit.core.fitting.optimizer import OptimizationResult, minimize_nll
from specfit.core.fitting.parameters import (
    ParameterVector,
    array_to_params,
    free_indices,
    params_to_array,
)
from specfit.core.fitting.priors import (
    ConstValue,
    Distribution,
    LogUniform,
    Normal,
    Prior,
    TruncatedWeibull,
    Uniform,
    Weibull,
    build_pseudo_prior,
    weibull_from_mx,
)

__all__ = [
    "Chi2FitResult",
    "ConstValue",
    "CovarianceEstimate",
    "Distribution",
    "HistogramLikelihood",
    "LogUniform",
    "Normal",
    "OptimizationResult",
    "ParameterVector",
    "Prior",
    "PullTerm",
    "ResourceLimits",
    "TimeAndMemoryControl",
    "TruncatedWeibull",
    "Uniform",
    "Weibull",
    "array_to_params",
    "build_pseudo_prior",
    "chi2fit",
    "compute_fwhm",
    "compute_hessian",
    "draw_parameter_samples",
    "estimate_covariance",
    "estimate_fwhm",
    "free_indices",
    "get_default_limits",
    "hist_loglike",
    "is_positive_definite",
    "log_pdf_poisson",
    "minimize_nll",
    "nearest_spd",
    "params_to_array",
    "peak_fwhm",
    "set_memlimit",
    "set_timelimit",
    "weibull_from_mx",
]
