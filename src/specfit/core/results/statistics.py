"""Goodness of fit of Poisson peak fits and chi-squared p-values.

The Poisson goodness of fit is a likelihood-ratio test of the fitted model
against the saturated model, in which every bin's expectation equals its
observed count.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from scipy.special import xlogy
from scipy.stats import chi2 as chi2_dist

if TYPE_CHECKING:
    from specfit.core.domain.histogram import Histogram
    from specfit.core.lineshapes import Shape
    from specfit.core.shared.typing import FloatArray, ParamMapping


def _readonly(array: np.ndarray) -> np.ndarray:
    array = np.array(array, dtype=float, copy=True)
    array.setflags(write=False)
    return array


def chi2_pvalue(chi2: float, dof: int) -> float:
    """Chi-squared survival probability, clipped to ``[0, 1]``.

    With zero degrees of freedom the test degenerates: a perfect fit has
    p = 1, anything else p = 0.
    """
    if dof <= 0:
        return 1.0 if chi2 <= 0 else 0.0
    if not np.isfinite(chi2):
        return 0.0
    return float(np.clip(chi2_dist.sf(max(chi2, 0.0), dof), 0.0, 1.0))


def expected_bin_counts(shape: Shape, h: Histogram, params: ParamMapping) -> FloatArray:
    return np.asarray(shape(h.bin_centers, params), dtype=float) * h.bin_widths


def p_value_poissonll(
    shape: Shape, h: Histogram, params: ParamMapping, n_free: int | None = None
) -> tuple[float, float, int]:
    """Likelihood-ratio p-value of a Poisson fit.

    ``chi2 = 2 Σ [λ - k + k log(k/λ)]`` over bins with positive expectation;
    ``dof`` is the number of such bins minus the number of free parameters
    (all of the shape's parameters if ``n_free`` is None).

    Returns
    -------
        ``(pvalue, chi2, dof)``
    """
    expected = expected_bin_counts(shape, h, params)
    counts = np.asarray(h.counts, dtype=float)
    mask = np.isfinite(expected) & (expected > 0)

    lam = expected[mask]
    k = counts[mask]
    chi2 = float(2.0 * np.sum(lam - k + xlogy(k, k / lam)))
    chi2 = max(chi2, 0.0)

    n_free = len(shape.param_names) if n_free is None else n_free
    dof = max(int(np.count_nonzero(mask)) - int(n_free), 0)
    return chi2_pvalue(chi2, dof), chi2, dof


def get_residuals(
    shape: Shape, h: Histogram, params: ParamMapping
) -> tuple[FloatArray, FloatArray, FloatArray, FloatArray]:
    """Raw and normalized residuals of a fit.

    Normalized residuals divide by the Poisson standard deviation
    ``sqrt(expected)``; bins without positive expectation get zero.

    Returns
    -------
        ``(residuals, residuals_norm, expected, bin_centers)``, read-only
    """
    expected = expected_bin_counts(shape, h, params)
    residuals = np.asarray(h.counts, dtype=float) - expected
    positive = np.isfinite(expected) & (expected > 0)
    residuals_norm = np.zeros_like(residuals)
    residuals_norm[positive] = residuals[positive] / np.sqrt(expected[positive])
    return (
        _readonly(residuals),
        _readonly(residuals_norm),
        _readonly(expected),
        _readonly(h.bin_centers),
    )


@dataclass(frozen=True, slots=True)
class GoodnessOfFit:
    """Poisson likelihood-ratio test and residuals of one histogram fit.

    Attributes
    ----------
        pvalue: Survival probability of ``chi2`` with ``dof`` degrees of freedom
        chi2: Likelihood-ratio statistic (>= 0)
        dof: Degrees of freedom (>= 0)
        residuals: ``observed - expected`` per bin
        residuals_norm: Residuals over ``sqrt(expected)`` (0 where expected is 0)
        bin_centers: Bin centers of the histogram
        converged: Whether the optimizer converged
    """

    pvalue: float
    chi2: float
    dof: int
    residuals: FloatArray
    residuals_norm: FloatArray
    bin_centers: FloatArray
    converged: bool = True

    @property
    def reduced_chi2(self) -> float | None:
        """``chi2 / dof``; None without degrees of freedom."""
        return self.chi2 / self.dof if self.dof > 0 else None

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary (excludes per-bin arrays)."""
        return {
            "pvalue": self.pvalue,
            "chi2": self.chi2,
            "dof": self.dof,
            "converged": self.converged,
        }


def evaluate_goodness_of_fit(
    shape: Shape,
    h: Histogram,
    params: ParamMapping,
    n_free: int | None = None,
    *,
    converged: bool = True,
) -> GoodnessOfFit:
    """p-value, chi-squared and residuals of ``shape`` at ``params`` on ``h``."""
    pvalue, chi2, dof = p_value_poissonll(shape, h, params, n_free)
    residuals, residuals_norm, _, bin_centers = get_residuals(shape, h, params)
    return GoodnessOfFit(
        pvalue=pvalue,
        chi2=chi2,
        dof=dof,
        residuals=residuals,
        residuals_norm=residuals_norm,
        bin_centers=bin_centers,
        converged=converged,
    )


__all__ = [
    "GoodnessOfFit",
    "chi2_pvalue",
    "evaluate_goodness_of_fit",
    "expected_bin_counts",
    "get_residuals",
    "p_value_poissonll",
]
