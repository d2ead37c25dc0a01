"""Core constants for specfit optimization and uncertainty estimation.

These constants define defaults for the peak fits and the resolution curve.
Most of them can be overridden through the configuration models in
``specfit.core.domain.config``.
"""

import math

# =============================================================================
# Maximum-likelihood optimization
# =============================================================================

PEAK_FIT_MAX_ITERATIONS = 3000
"""Maximum number of L-BFGS-B iterations for a single peak fit."""

SUBPEAK_FIT_MAX_ITERATIONS = 5000
"""Maximum number of iterations for the simultaneous survived/cut fit."""

SUBPEAK_FIT_TIME_LIMIT = 60.0
"""Wall-clock budget (seconds) of the simultaneous survived/cut fit."""

DEFAULT_TIME_LIMIT = 10.0
"""Default wall-clock budget (seconds) of one optimization."""

DEFAULT_MEMORY_LIMIT = 10.0
"""Default resident-memory growth budget (GB) of one optimization."""

STALLED_GRADIENT_TOLERANCE = 1e-2
"""Largest gradient component at which a line-search stall still counts as converged."""

# =============================================================================
# Priors
# =============================================================================

DEFAULT_POSITION_WINDOW = 10.0
"""Half-width of the uniform prior on the peak position (energy units)."""

WEIBULL_MX_PROBABILITY = 0.6827
"""CDF value reached at ``x`` by ``weibull_from_mx(m, x)`` (one sigma)."""

# =============================================================================
# FWHM estimation
# =============================================================================

FWHM_GRID_POINTS = 2001
"""Number of grid points used to locate the peak maximum."""

FWHM_BRACKET_POINTS = 257
"""Number of scan points used to bracket each half-maximum root."""

FWHM_BRACKET_EXTENSION = 5.0
"""Extension of the root scan beyond the local window, in window widths."""

FWHM_ROOT_MAXITER = 100
"""Maximum number of Brent iterations per half-maximum root."""

MC_SAMPLES_COVARIANCE = 10000
"""Monte Carlo samples for FWHM uncertainty with a full covariance matrix."""

MC_SAMPLES_INDEPENDENT = 1000
"""Monte Carlo samples for FWHM uncertainty with independent standard errors."""

GAUSSIAN_FWHM_FACTOR = 2.0 * math.sqrt(2.0 * math.log(2.0))
"""FWHM / sigma for a Gaussian."""

# =============================================================================
# Resolution curve
# =============================================================================

QBB_ENERGY_KEV = 2039.061
"""76Ge double-beta-decay Q-value (keV)."""

QBB_ENERGY_ERR_KEV = 0.007
"""Uncertainty of the 76Ge Q-value (keV)."""

FWHM_SLOPE_START = 2.96e-3 * 0.11
"""Start value of the linear FWHM² coefficient (keV); also sets default pull widths."""

SPD_EIGENVALUE_TOLERANCE = 1e-10
"""Relative eigenvalue tolerance when checking projected covariance matrices."""
