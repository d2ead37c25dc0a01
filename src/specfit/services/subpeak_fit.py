"""Simultaneous fit of the survived and cut histograms of one peak.

Both histograms share the peak position, the total counts, step amplitude
and background of the combined fit. The survival fractions ``sf`` (signal),
``bsf`` (background) and ``sasf`` (step amplitude) split those totals
between the two histograms; widths and tails may be refitted per histogram.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import jax
import jax.numpy as jnp
import numpy as np

from specfit.core.domain.config import SubpeakFitConfig, coerce_config
from specfit.core.fitting.covariance import CovarianceEstimate, estimate_covariance
from specfit.core.fitting.fwhm import estimate_fwhm, peak_fwhm
from specfit.core.fitting.likelihood import HistogramLikelihood
from specfit.core.fitting.optimizer import minimize_nll
from specfit.core.fitting.parameters import array_to_params, free_indices, params_to_array
from specfit.core.fitting.priors import (
    ConstValue,
    Distribution,
    Prior,
    TruncatedWeibull,
    Uniform,
    weibull_from_mx,
)
from specfit.core.lineshapes import GAMMA_PARAMS, create_shape
from specfit.core.results.estimates import ParameterEstimate, build_estimates
from specfit.core.results.fit_results import (
    FitState,
    PeakFitReport,
    SubpeakFitReport,
    SubpeakFitResult,
)
from specfit.core.results.statistics import GoodnessOfFit, evaluate_goodness_of_fit
from specfit.core.shared.exceptions import CovarianceError, InputError

if TYPE_CHECKING:
    from specfit.core.domain.histogram import Histogram
    from specfit.core.lineshapes import Shape
    from specfit.core.results.fit_results import PeakFitResult
    from specfit.core.shared.typing import FloatArray, ParamMapping

logger = logging.getLogger(__name__)

SUBPEAK_PARAMS = (
    "mu",
    "sigma_survived",
    "sigma_cut",
    "n",
    "sf",
    "bsf",
    "sasf",
    "step_amplitude",
    "skew_fraction_survived",
    "skew_fraction_cut",
    "skew_width_survived",
    "skew_width_cut",
    "background",
)

SURVIVED = "survived"
CUT = "cut"


def split_params(v: ParamMapping, part: str) -> dict[str, Any]:
    """Single-peak parameters of the ``survived`` or ``cut`` histogram."""
    if part == SURVIVED:
        n_frac, step_frac, bkg_frac = v["sf"], v["sasf"], v["bsf"]
    elif part == CUT:
        n_frac, step_frac, bkg_frac = 1.0 - v["sf"], 1.0 - v["sasf"], 1.0 - v["bsf"]
    else:
        msg = f"Unknown sub-peak {part!r}; expected {SURVIVED!r} or {CUT!r}"
        raise InputError(msg)
    return {
        "mu": v["mu"],
        "sigma": v[f"sigma_{part}"],
        "n": v["n"] * n_frac,
        "step_amplitude": v["step_amplitude"] * step_frac,
        "skew_fraction": v[f"skew_fraction_{part}"],
        "skew_width": v[f"skew_width_{part}"],
        "background": v["background"] * bkg_frac,
    }


def build_subpeak_prior(combined: PeakFitResult, config: SubpeakFitConfig) -> Prior:
    """Prior of the joint parameters around the combined-fit values."""
    v = combined.values()
    missing = [key for key in GAMMA_PARAMS if key not in v]
    if missing:
        msg = f"Combined fit result lacks parameters {missing}"
        raise InputError(msg)

    sigma = abs(v["sigma"])
    if config.fix_sigma:
        sigma_dist: Distribution = ConstValue(sigma)
    else:
        sigma_dist = weibull_from_mx(sigma, 2.0 * sigma)

    if not config.low_e_tail:
        skew_fraction: Distribution = ConstValue(0.0)
        skew_width: Distribution = ConstValue(1.0)
    else:
        if config.fix_skew_fraction:
            skew_fraction = ConstValue(v["skew_fraction"])
        else:
            skew_fraction = TruncatedWeibull(weibull_from_mx(0.01, 0.05), 0.0, 0.1)
        if config.fix_skew_width:
            skew_width = ConstValue(v["skew_width"])
        else:
            skew_width = weibull_from_mx(0.001, 0.01)

    fraction = Uniform(0.0, 1.0)
    prior = Prior(
        {
            "mu": ConstValue(v["mu"]),
            "sigma_survived": sigma_dist,
            "sigma_cut": sigma_dist,
            "n": ConstValue(v["n"]),
            "sf": fraction,
            "bsf": fraction,
            "sasf": fraction,
            "step_amplitude": ConstValue(v["step_amplitude"]),
            "skew_fraction_survived": skew_fraction,
            "skew_fraction_cut": skew_fraction,
            "skew_width_survived": skew_width,
            "skew_width_cut": skew_width,
            "background": ConstValue(v["background"]),
        }
    )
    return prior.with_overrides(config.pseudo_prior)


class SubpeakLikelihood:
    """Sum of the survived and cut Poisson log-likelihoods."""

    def __init__(self, shape: Shape, h_survived: Histogram, h_cut: Histogram) -> None:
        self.shape = shape
        self.keys = SUBPEAK_PARAMS
        self._survived = HistogramLikelihood(shape, h_survived)
        self._cut = HistogramLikelihood(shape, h_cut)

    @property
    def cache_key(self) -> Any:
        return self._survived.cache_key

    @property
    def data(self) -> tuple[Any, Any]:
        return (self._survived.data, self._cut.data)

    @staticmethod
    def evaluate(cache_key: Any, data: tuple[Any, Any], v: ParamMapping) -> Any:
        survived, cut = data
        return HistogramLikelihood.evaluate(
            cache_key, survived, split_params(v, SURVIVED)
        ) + HistogramLikelihood.evaluate(cache_key, cut, split_params(v, CUT))

    def loglike(self, v: ParamMapping) -> Any:
        return self.evaluate(self.cache_key, self.data, v)

    def nll_array(self, values: Any) -> Any:
        return -self.loglike(array_to_params(values, self.keys))

    __call__ = loglike


def _part_free_count(prior: Prior, part: str) -> int:
    other = CUT if part == SURVIVED else SURVIVED
    return sum(1 for key in prior.free_keys if not key.endswith(f"_{other}"))


def _part_covariance(v: ParamMapping, keys: tuple[str, ...], covariance: FloatArray, part: str) -> FloatArray:
    """Covariance of one histogram's single-peak parameters by linear propagation."""

    def part_vector(values: Any) -> Any:
        split = split_params(array_to_params(values, keys), part)
        return jnp.stack([jnp.asarray(split[key], dtype=float) for key in GAMMA_PARAMS])

    jac = np.asarray(jax.jacfwd(part_vector)(params_to_array(v, keys)), dtype=float)
    cov = jac @ covariance @ jac.T
    return 0.5 * (cov + cov.T)


def _part_fwhm(
    shape: Shape,
    v: ParamMapping,
    keys: tuple[str, ...],
    cov: CovarianceEstimate | None,
    part: str,
    config: SubpeakFitConfig,
    rng: np.random.Generator,
) -> ParameterEstimate | None:
    params = {key: float(value) for key, value in split_params(v, part).items()}
    if cov is None:
        fwhm, fwhm_err = estimate_fwhm(shape, params), None
    else:
        part_cov = _part_covariance(v, keys, cov.covariance, part)
        fwhm, fwhm_err = peak_fwhm(
            shape,
            params,
            GAMMA_PARAMS,
            covariance=part_cov,
            std_errors=np.sqrt(np.clip(np.diag(part_cov), 0.0, None)),
            mc_samples_cov=config.mc_samples_cov,
            mc_samples_err=config.mc_samples_err,
            rng=rng,
        )
    return None if fwhm is None else ParameterEstimate(f"fwhm_{part}", fwhm, fwhm_err)


def fit_subpeaks(
    h_survived: Histogram,
    h_cut: Histogram,
    combined_result: PeakFitResult,
    config: SubpeakFitConfig | None = None,
    **overrides: Any,
) -> tuple[SubpeakFitResult, SubpeakFitReport]:
    """Fit the survived and cut histograms of one peak simultaneously.

    Args:
        h_survived: Histogram of events passing the cut
        h_cut: Histogram of events removed by the cut
        combined_result: Fit of the summed histogram, in the same energy
            scale as the two histograms
        config: Fit options (defaults if None)
        **overrides: Individual ``SubpeakFitConfig`` fields

    Returns
    -------
        ``(result, report)``; goodness of fit and FWHM are evaluated per
        histogram after the joint fit

    Raises
    ------
        InputError: If the configuration is invalid or ``combined_result``
            lacks a peak-shape parameter
    """
    config = coerce_config(SubpeakFitConfig, config, **overrides)
    prior = build_subpeak_prior(combined_result, config)
    mu = combined_result.values()["mu"]
    background_center = mu if config.background_center is None else config.background_center
    shape = create_shape(config.fit_func, background_center=background_center)
    likelihood = SubpeakLikelihood(shape, h_survived, h_cut)

    optimization = minimize_nll(
        likelihood, prior, limits=config.limits, max_iterations=config.max_iterations
    )
    v = optimization.params
    keys = prior.keys

    cov: CovarianceEstimate | None = None
    if optimization.converged and config.uncertainty:
        try:
            cov = estimate_covariance(
                likelihood.nll_array, params_to_array(v, keys), free_indices(keys, prior.fixed_keys)
            )
        except CovarianceError as exc:
            logger.warning("Covariance estimation of the sub-peak fit failed: %s", exc)
        else:
            if not cov.raw_positive_definite:
                logger.warning("Sub-peak covariance matrix not positive definite, projected to SPD")

    if not optimization.converged:
        state = FitState.NOT_CONVERGED
    elif cov is not None:
        state = FitState.CONVERGED_WITH_COV
    else:
        state = FitState.CONVERGED_NO_COV

    gof: dict[str, GoodnessOfFit | None] = {SURVIVED: None, CUT: None}
    if state is FitState.CONVERGED_WITH_COV:
        for part, h in ((SURVIVED, h_survived), (CUT, h_cut)):
            gof[part] = evaluate_goodness_of_fit(
                shape, h, split_params(v, part), n_free=_part_free_count(prior, part)
            )
            logger.debug("p-value %s: %.5g", part, gof[part].pvalue)

    rng = np.random.default_rng(config.seed)
    estimates = build_estimates(keys, v, None if cov is None else cov.std_errors)
    for estimate in estimates.values():
        logger.debug("%s", estimate)

    result = SubpeakFitResult(
        parameters=estimates,
        state=state,
        keys=keys,
        covariance=None if cov is None else np.array(cov.covariance, copy=True),
        gof_survived=gof[SURVIVED],
        gof_cut=gof[CUT],
        fwhm_survived=_part_fwhm(shape, v, keys, cov, SURVIVED, config, rng),
        fwhm_cut=_part_fwhm(shape, v, keys, cov, CUT, config, rng),
        covariance_repaired=bool(cov is not None and cov.repaired),
    )
    report = SubpeakFitReport(
        survived=PeakFitReport(
            v=split_params(v, SURVIVED), histogram=h_survived, shape=shape, gof=gof[SURVIVED]
        ),
        cut=PeakFitReport(v=split_params(v, CUT), histogram=h_cut, shape=shape, gof=gof[CUT]),
        sf=estimates["sf"],
        bsf=estimates["bsf"],
    )
    return result, report


__all__ = [
    "SUBPEAK_PARAMS",
    "SubpeakLikelihood",
    "build_subpeak_prior",
    "fit_subpeaks",
    "split_params",
]
