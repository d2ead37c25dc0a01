"""Full width at half maximum of a fitted peak and its uncertainty.

The FWHM is the distance between the two half-maximum crossings of the
peak signal (step and background excluded). Its uncertainty is the spread
of the FWHM over parameter vectors drawn from the fit covariance.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np
from scipy.optimize import brentq

from specfit.core.constants import (
    FWHM_BRACKET_EXTENSION,
    FWHM_BRACKET_POINTS,
    FWHM_GRID_POINTS,
    FWHM_ROOT_MAXITER,
    MC_SAMPLES_COVARIANCE,
    MC_SAMPLES_INDEPENDENT,
)
from specfit.core.fitting.parameters import array_to_params, params_to_array
from specfit.core.shared.exceptions import CovarianceError, RootFindingError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from specfit.core.lineshapes import Shape
    from specfit.core.shared.typing import FloatArray, ParamMapping

logger = logging.getLogger(__name__)


def fwhm_window(params: ParamMapping) -> tuple[float, float]:
    """Local window holding the peak maximum.

    Mostly Gaussian peaks use ``mu ± sigma``; tail-dominated peaks use
    ``mu·(1 ± skew_width)``.
    """
    mu, sigma = float(params["mu"]), float(params["sigma"])
    if float(params["skew_fraction"]) <= 0.5:
        return mu - sigma, mu + sigma
    skew_width = float(params["skew_width"])
    return mu * (1.0 - skew_width), mu * (1.0 + skew_width)


def _bracket(g: Callable[[Any], Any], start: float, stop: float, *, rising: bool) -> tuple[float, float]:
    """Sign change of ``g`` on ``[start, stop]`` closest to the peak side.

    ``rising`` selects the left flank (``g`` goes from negative to positive
    towards ``stop``); otherwise the right flank is scanned from ``start``.
    """
    x = np.linspace(start, stop, FWHM_BRACKET_POINTS)
    y = g(x)
    if not np.all(np.isfinite(y)):
        msg = "Peak shape is not finite on the root search interval"
        raise RootFindingError(msg)
    if rising:
        crossings = np.nonzero((y[:-1] < 0) & (y[1:] >= 0))[0]
        if crossings.size == 0:
            msg = "No half-maximum crossing below the peak"
            raise RootFindingError(msg)
        i = int(crossings[-1])
    else:
        crossings = np.nonzero((y[:-1] >= 0) & (y[1:] < 0))[0]
        if crossings.size == 0:
            msg = "No half-maximum crossing above the peak"
            raise RootFindingError(msg)
        i = int(crossings[0])
    return float(x[i]), float(x[i + 1])


def _find_root(g: Callable[[float], float], a: float, b: float) -> float:
    try:
        root, info = brentq(
            lambda x: float(g(x)), a, b, maxiter=FWHM_ROOT_MAXITER, full_output=True, disp=False
        )
    except (ValueError, RuntimeError) as exc:
        raise RootFindingError(str(exc)) from exc
    if not info.converged:
        msg = f"Root search did not converge: {info.flag}"
        raise RootFindingError(msg)
    return float(root)


def compute_fwhm(shape: Shape, params: ParamMapping) -> float:
    """FWHM of the peak signal of ``shape`` at ``params``.

    Raises
    ------
        RootFindingError: If the half-maximum crossings cannot be bracketed
            or refined
    """
    low, high = fwhm_window(params)
    width = high - low
    if not (np.isfinite(width) and width > 0):
        msg = f"Invalid FWHM search window [{low}, {high}]"
        raise RootFindingError(msg)

    def signal(x: Any) -> Any:
        return np.asarray(shape.signal(x, params), dtype=float)

    grid = np.linspace(low, high, FWHM_GRID_POINTS)
    values = signal(grid)
    if not np.all(np.isfinite(values)):
        msg = "Peak signal is not finite in the search window"
        raise RootFindingError(msg)
    i_max = int(np.argmax(values))
    half_max = 0.5 * float(values[i_max])
    if not half_max > 0:
        msg = "Peak signal has no positive maximum"
        raise RootFindingError(msg)
    x_peak = float(grid[i_max])

    def g(x: Any) -> Any:
        return signal(x) - half_max

    extension = FWHM_BRACKET_EXTENSION * width
    root_low = _find_root(g, *_bracket(g, low - extension, x_peak, rising=True))
    root_high = _find_root(g, *_bracket(g, x_peak, high + extension, rising=False))
    return root_high - root_low


def estimate_fwhm(shape: Shape, params: ParamMapping) -> float | None:
    """FWHM, or None when it is undefined for ``params``."""
    try:
        return compute_fwhm(shape, params)
    except RootFindingError as exc:
        logger.debug("FWHM undefined: %s", exc)
        return None


def draw_parameter_samples(
    values: FloatArray,
    uncertainty: FloatArray,
    n_samples: int,
    rng: np.random.Generator,
) -> FloatArray:
    """Draw ``n_samples`` parameter vectors around ``values``.

    A 2-D ``uncertainty`` is a covariance matrix (multivariate normal); a
    1-D one holds independent standard errors.

    Raises
    ------
        CovarianceError: If the sampler rejects the covariance matrix
    """
    values = np.asarray(values, dtype=float)
    uncertainty = np.asarray(uncertainty, dtype=float)
    if uncertainty.ndim == 2:
        try:
            return rng.multivariate_normal(values, uncertainty, size=n_samples, check_valid="raise")
        except (ValueError, np.linalg.LinAlgError) as exc:
            raise CovarianceError(str(exc)) from exc
    return rng.normal(values, np.abs(uncertainty), size=(n_samples, values.size))


def monte_carlo_fwhm_error(
    shape: Shape,
    params: ParamMapping,
    keys: Sequence[str],
    uncertainty: FloatArray,
    n_samples: int,
    rng: np.random.Generator,
) -> float | None:
    """Standard deviation of the FWHM over parameter samples.

    Samples with an undefined FWHM are dropped; None if fewer than two remain.
    """
    samples = draw_parameter_samples(params_to_array(params, keys), uncertainty, n_samples, rng)
    fwhms = np.array(
        [
            value if (value := estimate_fwhm(shape, array_to_params(sample, keys))) is not None else np.nan
            for sample in samples
        ]
    )
    finite = fwhms[np.isfinite(fwhms)]
    if finite.size < 2:
        logger.warning("FWHM uncertainty undefined: %d of %d samples usable", finite.size, n_samples)
        return None
    if finite.size < n_samples:
        logger.debug("Dropped %d Monte Carlo samples with undefined FWHM", n_samples - finite.size)
    return float(np.std(finite, ddof=1))


def peak_fwhm(
    shape: Shape,
    params: Mapping[str, float],
    keys: Sequence[str],
    covariance: FloatArray | None = None,
    std_errors: FloatArray | None = None,
    *,
    mc_samples_cov: int = MC_SAMPLES_COVARIANCE,
    mc_samples_err: int = MC_SAMPLES_INDEPENDENT,
    rng: np.random.Generator | None = None,
) -> tuple[float | None, float | None]:
    """FWHM of the fitted peak with Monte Carlo uncertainty.

    The covariance matrix is used when given and accepted by the sampler;
    otherwise independent ``std_errors`` are used. Without either, only the
    central value is computed.

    Returns
    -------
        ``(fwhm, fwhm_err)``; either may be None when undefined
    """
    fwhm = estimate_fwhm(shape, params)
    if covariance is None and std_errors is None:
        return fwhm, None

    rng = np.random.default_rng() if rng is None else rng
    if covariance is not None:
        try:
            return fwhm, monte_carlo_fwhm_error(shape, params, keys, covariance, mc_samples_cov, rng)
        except CovarianceError as exc:
            if std_errors is None:
                logger.warning("Covariance rejected for FWHM sampling: %s", exc)
                return fwhm, None
            logger.debug("Covariance rejected for FWHM sampling, using independent errors: %s", exc)
    return fwhm, monte_carlo_fwhm_error(shape, params, keys, std_errors, mc_samples_err, rng)


__all__ = [
    "compute_fwhm",
    "draw_parameter_samples",
    "estimate_fwhm",
    "fwhm_window",
    "monte_carlo_fwhm_error",
    "peak_fwhm",
]
