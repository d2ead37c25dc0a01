"""Energy windows around a single peak.

``cut_single_peak`` finds the coarse window in which a histogrammed peak
stays above a fraction of its maximum. ``get_centered_gaussian_window_cut``
refines it with an unbinned fit of a truncated Gaussian to one flank of the
peak and returns a ``center +- n_sigma * sigma`` window.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

import numpy as np

from specfit.core.domain.histogram import Histogram
from specfit.core.fitting.covariance import estimate_covariance
from specfit.core.fitting.optimizer import minimize_nll
from specfit.core.fitting.parameters import array_to_params, free_indices, params_to_array
from specfit.core.fitting.priors import ConstValue, Distribution, Prior, Uniform, weibull_from_mx
from specfit.core.lineshapes.functions import get_namespace
from specfit.core.results.estimates import ParameterEstimate
from specfit.core.results.fit_results import PeakCut, WindowCut, WindowCutReport
from specfit.core.shared.exceptions import CovarianceError, InputError
from specfit.core.units import Quantity, common_unit, ustrip

if TYPE_CHECKING:
    from specfit.core.fitting.limits import ResourceLimits
    from specfit.core.shared.typing import FloatArray, ParamMapping

logger = logging.getLogger(__name__)

WINDOW_KEYS = ("mu", "sigma")
REPORT_HALF_WIDTH = 5.0
N_FIT_POINTS = 1001

_LOG_SQRT_2PI = 0.5 * math.log(2.0 * math.pi)


def _strip(x: Any, min_x: Any, max_x: Any) -> tuple[FloatArray, float, float, str]:
    unit = common_unit((min_x, max_x))
    low, high = float(ustrip(min_x, unit)), float(ustrip(max_x, unit))
    if isinstance(x, np.ndarray):
        values = np.asarray(x, dtype=float)
    elif isinstance(x, Quantity):
        values = np.atleast_1d(ustrip(x, unit))
    else:
        values = np.atleast_1d(ustrip(list(x), unit))
    return values.ravel(), low, high, unit


def _select(values: FloatArray, low: float, high: float) -> FloatArray:
    if not high > low:
        msg = f"Window upper edge {high} must exceed the lower edge {low}"
        raise InputError(msg)
    events = values[(values > low) & (values < high)]
    if events.size < 2:
        msg = f"Need at least two events in ({low}, {high}), got {events.size}"
        raise InputError(msg)
    return events


def cut_single_peak(
    x: Any,
    min_x: Any,
    max_x: Any,
    *,
    n_bins: int = -1,
    relative_cut: float = 0.5,
) -> PeakCut:
    """Window around the histogram maximum above ``relative_cut`` of its height.

    Args:
        x: Event values (plain numbers or quantities)
        min_x: Lower edge of the search window
        max_x: Upper edge of the search window
        n_bins: Number of bins; negative selects the Freedman-Diaconis rule
        relative_cut: Fraction of the maximum defining the window edges

    Returns
    -------
        PeakCut with the lower bin edges of the first bin above the
        threshold, the first bin at or below it after the maximum, and
        the maximum bin

    Raises
    ------
        InputError: If the window is empty or the peak never drops below
            the threshold on its high side
    """
    if not 0.0 < relative_cut < 1.0:
        msg = f"relative_cut must lie in (0, 1), got {relative_cut}"
        raise InputError(msg)
    if n_bins == 0:
        msg = "n_bins must be positive, or negative for automatic binning"
        raise InputError(msg)

    values, low, high, unit = _strip(x, min_x, max_x)
    events = _select(values, low, high)
    edges = np.histogram_bin_edges(events, bins="fd" if n_bins < 0 else n_bins)
    counts, edges = np.histogram(events, bins=edges)

    i_max = int(np.argmax(counts))
    threshold = relative_cut * counts[i_max]
    i_low = int(np.argmax(counts[: i_max + 1] >= threshold))
    above = counts[i_max:] <= threshold
    if not above.any():
        msg = f"Peak at {edges[i_max]:g} does not fall below {relative_cut:g} of its maximum before {high:g}"
        raise InputError(msg)
    i_high = i_max + int(np.argmax(above))

    cut = PeakCut(low=float(edges[i_low]), high=float(edges[i_high]), maximum=float(edges[i_max]), unit=unit)
    logger.debug("Cut window: [%.5g, %.5g], maximum %.5g %s", cut.low, cut.high, cut.maximum, unit)
    return cut


class TruncatedGaussianLikelihood:
    """Unbinned log-likelihood of a Gaussian truncated to ``[lower, upper]``."""

    def __init__(self, events: FloatArray, lower: float, upper: float) -> None:
        self.events = np.asarray(events, dtype=float)
        self.lower = lower
        self.upper = upper
        self.keys = WINDOW_KEYS

    def loglike(self, v: ParamMapping) -> Any:
        mu, sigma = v["mu"], v["sigma"]
        xp, special = get_namespace(mu, sigma)
        z = (self.events - mu) / sigma
        norm = special.ndtr((self.upper - mu) / sigma) - special.ndtr((self.lower - mu) / sigma)
        return -0.5 * xp.sum(z * z) - self.events.size * (xp.log(sigma) + _LOG_SQRT_2PI + xp.log(norm))

    def nll_array(self, values: Any) -> Any:
        return -self.loglike(array_to_params(values, self.keys))

    __call__ = loglike


def _report_histogram(values: FloatArray, mu: float, sigma: float) -> Histogram:
    core = values[np.abs(values - mu) < 0.5 * sigma]
    width = 0.0
    if core.size >= 2:
        core_edges = np.histogram_bin_edges(core, bins="fd")
        width = float(core_edges[1] - core_edges[0]) if core_edges.size > 1 else 0.0
    if not width > 0.0:
        width = 0.1 * sigma
    edges = np.arange(mu - REPORT_HALF_WIDTH * sigma, mu + REPORT_HALF_WIDTH * sigma + 0.5 * width, width)
    return Histogram.from_data(values, bins=edges)


def get_centered_gaussian_window_cut(
    x: Any,
    min_x: Any,
    max_x: Any,
    n_sigma: float,
    *,
    center: Any = 0.0,
    n_bins_cut: int = 500,
    relative_cut: float = 0.2,
    left: bool = False,
    fixed_center: bool = True,
    limits: ResourceLimits | None = None,
) -> tuple[WindowCut, WindowCutReport]:
    """Symmetric window of ``n_sigma`` Gaussian widths around a peak.

    A truncated Gaussian is fitted to the events on one side of the peak:
    between the center and the upper edge of the coarse cut, or between
    the lower edge and the center if ``left``. The side away from the
    fit may carry tails or a neighbouring peak without biasing ``sigma``.

    Args:
        x: Event values (plain numbers or quantities)
        min_x: Lower edge of the search window
        max_x: Upper edge of the search window
        n_sigma: Half width of the returned window in units of ``sigma``
        center: Peak center, used as fitted value if ``fixed_center``
        n_bins_cut: Bins of the coarse cut (negative for automatic binning)
        relative_cut: Threshold of the coarse cut relative to the maximum
        left: Fit the low-energy flank instead of the high-energy one
        fixed_center: Keep ``center`` fixed; otherwise the fit range
            starts at the maximum of the coarse cut and ``mu`` is free
        limits: Time/memory budget (process-wide default if None)

    Returns
    -------
        ``(cut, report)``; the report carries the data histogram around
        the fitted center for plotting

    Raises
    ------
        InputError: If ``n_sigma`` is not positive or a window is empty
    """
    if not n_sigma > 0:
        msg = f"n_sigma must be positive, got {n_sigma}"
        raise InputError(msg)

    cuts = cut_single_peak(x, min_x, max_x, n_bins=n_bins_cut, relative_cut=relative_cut)
    values, _, _, unit = _strip(x, min_x, max_x)
    center_value = float(ustrip(center, unit))

    if fixed_center:
        reference = center_value
        mu_dist: Distribution = ConstValue(center_value)
    else:
        reference = cuts.maximum
        mu_dist = Uniform(cuts.low, cuts.high)
    lower, upper = (cuts.low, reference) if left else (reference, cuts.high)
    events = _select(values, lower, upper)

    sigma_guess = float(np.sqrt(np.mean((events - reference) ** 2)))
    prior = Prior({"mu": mu_dist, "sigma": weibull_from_mx(sigma_guess, 3.0 * sigma_guess)})
    likelihood = TruncatedGaussianLikelihood(events, lower, upper)

    start = {"mu": reference, "sigma": sigma_guess}
    optimization = minimize_nll(likelihood, prior, limits=limits, start=start)
    v = optimization.params
    if not optimization.converged:
        logger.warning("Window fit did not converge: %s", optimization.message)

    std_errors: dict[str, float | None] = dict.fromkeys(WINDOW_KEYS)
    if optimization.converged:
        try:
            cov = estimate_covariance(
                likelihood.nll_array,
                params_to_array(v, WINDOW_KEYS),
                free_indices(WINDOW_KEYS, prior.fixed_keys),
            )
        except CovarianceError as exc:
            logger.warning("Covariance estimation of the window fit failed: %s", exc)
        else:
            for i, key in enumerate(WINDOW_KEYS):
                if key not in prior.fixed_keys:
                    std_errors[key] = float(cov.std_errors[i])

    mu, sigma = float(v["mu"]), abs(float(v["sigma"]))
    cut = WindowCut(
        low_cut=mu - n_sigma * sigma,
        high_cut=mu + n_sigma * sigma,
        center=ParameterEstimate("mu", mu, std_errors["mu"], unit),
        sigma=ParameterEstimate("sigma", sigma, std_errors["sigma"], unit),
        low_cut_fit=cuts.low if left else mu,
        high_cut_fit=mu if left else cuts.high,
        max_cut_fit=cuts.maximum,
        n_sigma=float(n_sigma),
        unit=unit,
        converged=optimization.converged,
    )
    logger.info(
        "Window cut %.5g +- %g x %.5g: [%.5g, %.5g] %s",
        mu, n_sigma, sigma, cut.low_cut, cut.high_cut, unit,
    )

    histogram = _report_histogram(values, mu, sigma)
    report = WindowCutReport(
        cut=cut,
        histogram=histogram,
        density=histogram.counts / max(histogram.total, 1.0) / histogram.bin_widths,
        x_fit=np.linspace(cut.low_cut_fit, cut.high_cut_fit, N_FIT_POINTS),
    )
    return cut, report


__all__ = [
    "TruncatedGaussianLikelihood",
    "cut_single_peak",
    "get_centered_gaussian_window_cut",
]
