"""Single-peak maximum-likelihood fit.

A fit goes through the states ``PRIOR_BUILT -> FIT_ATTEMPTED`` and ends in
one of the ``FitState`` terminal states. With ``iterative_fit`` a fit whose
covariance is not positive definite is repeated once without the
low-energy tail; the attempt with a usable covariance is reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import jax
import numpy as np

from specfit.core.domain.config import PeakFitConfig, coerce_config
from specfit.core.fitting.covariance import CovarianceEstimate, estimate_covariance
from specfit.core.fitting.fwhm import estimate_fwhm, peak_fwhm
from specfit.core.fitting.likelihood import HistogramLikelihood
from specfit.core.fitting.optimizer import OptimizationResult, minimize_nll
from specfit.core.fitting.parameters import array_to_params, free_indices, params_to_array
from specfit.core.fitting.priors import Prior, build_pseudo_prior
from specfit.core.lineshapes import create_shape, peak_centroid
from specfit.core.results.estimates import ParameterEstimate, build_estimates
from specfit.core.results.fit_results import FitState, PeakFitReport, PeakFitResult
from specfit.core.results.statistics import GoodnessOfFit, evaluate_goodness_of_fit
from specfit.core.shared.exceptions import CovarianceError

if TYPE_CHECKING:
    from specfit.core.domain.histogram import Histogram
    from specfit.core.domain.peakstats import PeakStats
    from specfit.core.lineshapes import Shape
    from specfit.core.shared.typing import FloatArray

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FitAttempt:
    """One pass through prior, optimizer, covariance and goodness of fit."""

    prior: Prior
    optimization: OptimizationResult
    low_e_tail: bool
    covariance: CovarianceEstimate | None = None
    covariance_error: str | None = None
    gof: GoodnessOfFit | None = None

    @property
    def converged(self) -> bool:
        return self.optimization.converged

    @property
    def needs_retry(self) -> bool:
        """Converged, but without a positive-definite raw covariance."""
        if not self.converged:
            return False
        return self.covariance is None or not self.covariance.raw_positive_definite

    @property
    def pvalue(self) -> float | None:
        return None if self.gof is None else self.gof.pvalue


def run_fit_attempt(
    h: Histogram,
    stats: PeakStats,
    shape: Shape,
    config: PeakFitConfig,
    *,
    low_e_tail: bool,
) -> FitAttempt:
    """Build the prior, maximize the likelihood and, if requested, estimate uncertainties."""
    prior = build_pseudo_prior(
        stats,
        config.fit_func,
        low_e_tail=low_e_tail,
        fixed_position=config.fixed_position,
        position_window=config.position_window,
        overrides=config.pseudo_prior,
    )
    likelihood = HistogramLikelihood(shape, h, prior.keys)
    optimization = minimize_nll(
        likelihood,
        prior,
        limits=config.limits,
        max_iterations=config.max_iterations,
    )
    attempt = FitAttempt(prior=prior, optimization=optimization, low_e_tail=low_e_tail)
    if not (config.uncertainty and optimization.converged):
        return attempt

    point = params_to_array(optimization.params, prior.keys)
    try:
        attempt.covariance = estimate_covariance(
            likelihood.nll_array, point, free_indices(prior.keys, prior.fixed_keys)
        )
    except CovarianceError as exc:
        logger.warning("Covariance estimation failed: %s", exc)
        attempt.covariance_error = str(exc)

    attempt.gof = evaluate_goodness_of_fit(
        shape, h, optimization.params, n_free=prior.n_free, converged=True
    )
    return attempt


def _select_after_retry(first: FitAttempt, retry: FitAttempt) -> FitAttempt:
    """Prefer an attempt with a covariance, then a converged one."""
    for attempt in (retry, first):
        if attempt.converged and attempt.covariance is not None:
            return attempt
    return retry if retry.converged else first


def _fmt_pvalue(value: float | None) -> str:
    return "undefined" if value is None else f"{value:.5f}"


def propagate_centroid(
    params: dict[str, float], keys: tuple[str, ...], covariance: FloatArray | None
) -> ParameterEstimate:
    """Centroid with its linearly propagated standard error."""
    value = float(peak_centroid(params))
    if covariance is None:
        return ParameterEstimate("centroid", value, None)
    point = params_to_array(params, keys)
    grad = np.asarray(
        jax.grad(lambda v: peak_centroid(array_to_params(v, keys)))(point), dtype=float
    )
    variance = float(grad @ covariance @ grad)
    return ParameterEstimate("centroid", value, float(np.sqrt(max(variance, 0.0))))


def build_peak_result(
    attempt: FitAttempt,
    h: Histogram,
    shape: Shape,
    config: PeakFitConfig,
    *,
    retried: bool = False,
    rng: np.random.Generator | None = None,
) -> tuple[PeakFitResult, PeakFitReport]:
    """Assemble result and report of the selected attempt."""
    keys = attempt.prior.keys
    params = attempt.optimization.params
    cov = attempt.covariance if config.uncertainty else None

    if not attempt.converged:
        state = FitState.NOT_CONVERGED
        cov = None
    elif cov is not None:
        state = FitState.CONVERGED_WITH_COV
    else:
        state = FitState.CONVERGED_NO_COV

    if state is FitState.CONVERGED_WITH_COV:
        estimates = build_estimates(keys, params, cov.std_errors)
        fwhm, fwhm_err = peak_fwhm(
            shape,
            params,
            keys,
            covariance=cov.covariance,
            std_errors=cov.std_errors,
            mc_samples_cov=config.mc_samples_cov,
            mc_samples_err=config.mc_samples_err,
            rng=rng if rng is not None else np.random.default_rng(config.seed),
        )
        gof = attempt.gof
        centroid = propagate_centroid(params, keys, cov.covariance)
    else:
        estimates = build_estimates(keys, params)
        fwhm, fwhm_err = estimate_fwhm(shape, params), None
        gof = None
        centroid = propagate_centroid(params, keys, None)

    fwhm_estimate = None if fwhm is None else ParameterEstimate("fwhm", fwhm, fwhm_err)

    logger.debug("Best fit values (%s)", state.value)
    for estimate in estimates.values():
        logger.debug("%s", estimate)
    if gof is not None:
        logger.debug("p: %.5g, chi2 = %.5g with %d dof", gof.pvalue, gof.chi2, gof.dof)
    logger.debug("FWHM: %s", fwhm_estimate)

    result = PeakFitResult(
        parameters=estimates,
        fwhm=fwhm_estimate,
        centroid=centroid,
        state=state,
        keys=keys,
        covariance=None if cov is None else _readonly(cov.covariance),
        gof=gof,
        low_e_tail=attempt.low_e_tail,
        retried=retried,
        covariance_repaired=bool(cov is not None and cov.repaired),
        fit_func=shape.name,
    )
    report = PeakFitReport(v=dict(params), histogram=h, shape=shape, gof=gof)
    return result, report


def _readonly(array: FloatArray) -> FloatArray:
    array = np.array(array, dtype=float, copy=True)
    array.setflags(write=False)
    return array


def fit_single_peak(
    h: Histogram,
    stats: PeakStats,
    config: PeakFitConfig | None = None,
    **overrides: Any,
) -> tuple[PeakFitResult, PeakFitReport]:
    """Fit the peak shape to ``h`` starting from the estimates in ``stats``.

    Args:
        h: Histogram of the peak region
        stats: Rough peak and background estimates seeding the prior
        config: Fit options (defaults if None)
        **overrides: Individual ``PeakFitConfig`` fields

    Returns
    -------
        ``(result, report)``; non-convergence and failed uncertainty
        estimation are reported through ``result.state``, not raised

    Raises
    ------
        InputError: If the configuration or the prior overrides are invalid
    """
    config = coerce_config(PeakFitConfig, config, **overrides)
    background_center = (
        stats.peak_pos if config.background_center is None else config.background_center
    )
    shape = create_shape(config.fit_func, background_center=background_center)

    attempt = run_fit_attempt(h, stats, shape, config, low_e_tail=config.low_e_tail)
    retried = False

    if config.uncertainty and config.iterative_fit and attempt.low_e_tail and attempt.needs_retry:
        logger.warning(
            "Covariance matrix not positive definite for peak at %.6g - repeat fit without "
            "low energy tail",
            stats.peak_pos,
        )
        retry = run_fit_attempt(h, stats, shape, config, low_e_tail=False)
        logger.info(
            "New covariance matrix is positive definite: %s",
            retry.converged and not retry.needs_retry,
        )
        logger.info(
            "p-val with low-energy tail p=%s, without low-energy tail: p=%s",
            _fmt_pvalue(attempt.pvalue),
            _fmt_pvalue(retry.pvalue),
        )
        if retry.needs_retry:
            logger.warning("Retry without low energy tail did not give a positive definite covariance")
        attempt = _select_after_retry(attempt, retry)
        retried = True

    return build_peak_result(attempt, h, shape, config, retried=retried)


__all__ = [
    "FitAttempt",
    "build_peak_result",
    "fit_single_peak",
    "peak_centroid",
    "propagate_centroid",
    "run_fit_attempt",
]
