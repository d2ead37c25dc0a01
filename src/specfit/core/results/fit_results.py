"""Result and report containers of the fitting services.

Results hold the numbers consumed downstream (estimates, covariance,
goodness of fit). Reports hold what a plotting collaborator needs: the
fitted function as a callable of energy, its components and the residuals.
Both are immutable once returned.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import numpy as np
from scipy.special import ndtr

from specfit.core.lineshapes import f_fwhm

if TYPE_CHECKING:
    from specfit.core.domain.histogram import Histogram
    from specfit.core.lineshapes import Shape
    from specfit.core.results.estimates import ParameterEstimate
    from specfit.core.results.statistics import GoodnessOfFit
    from specfit.core.shared.typing import FloatArray


class FitState(str, Enum):
    """Terminal state of a peak fit."""

    CONVERGED_WITH_COV = "converged_with_cov"
    CONVERGED_NO_COV = "converged_no_cov"
    NOT_CONVERGED = "not_converged"

    @property
    def converged(self) -> bool:
        return self is not FitState.NOT_CONVERGED


def _covariance_dict(keys: tuple[str, ...], covariance: FloatArray | None) -> dict[str, Any] | None:
    if covariance is None:
        return None
    return {"keys": list(keys), "matrix": np.asarray(covariance).tolist()}


@dataclass(frozen=True, slots=True)
class PeakFitResult:
    """Outcome of a single-peak fit.

    Attributes
    ----------
        parameters: Estimates in canonical order
        fwhm: FWHM estimate, or None when undefined
        centroid: Signal centroid (``mu`` shifted by the tails)
        state: Terminal state of the fit
        keys: Canonical parameter order (rows/columns of ``covariance``)
        covariance: Projected covariance, None unless ``CONVERGED_WITH_COV``
        gof: Goodness of fit, None unless ``CONVERGED_WITH_COV``
        low_e_tail: Whether the reported model includes the low-energy tail
        retried: Whether the fit was repeated without the low-energy tail
        covariance_repaired: Whether the reported covariance needed the SPD projection
        fit_func: Shape selector of the fitted model
        unit: Energy unit of position-like estimates
    """

    parameters: dict[str, ParameterEstimate]
    fwhm: ParameterEstimate | None
    centroid: ParameterEstimate
    state: FitState
    keys: tuple[str, ...]
    covariance: FloatArray | None = None
    gof: GoodnessOfFit | None = None
    low_e_tail: bool = True
    retried: bool = False
    covariance_repaired: bool = False
    fit_func: str = "f_fit"
    unit: str = ""

    @property
    def converged(self) -> bool:
        return self.state.converged

    @property
    def pvalue(self) -> float | None:
        return None if self.gof is None else self.gof.pvalue

    def __getitem__(self, name: str) -> ParameterEstimate:
        return self.parameters[name]

    def values(self) -> dict[str, float]:
        """Best-fit values by parameter name."""
        return {key: est.value for key, est in self.parameters.items()}

    def std_errors(self) -> dict[str, float | None]:
        return {key: est.std_error for key, est in self.parameters.items()}

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "state": self.state.value,
            "fit_func": self.fit_func,
            "unit": self.unit,
            "parameters": {key: est.to_dict() for key, est in self.parameters.items()},
            "fwhm": None if self.fwhm is None else self.fwhm.to_dict(),
            "centroid": self.centroid.to_dict(),
            "gof": None if self.gof is None else self.gof.to_dict(),
            "covariance": _covariance_dict(self.keys, self.covariance),
            "low_e_tail": self.low_e_tail,
            "retried": self.retried,
            "covariance_repaired": self.covariance_repaired,
        }


@dataclass(frozen=True, slots=True)
class PeakFitReport:
    """Plotting view of a single-histogram fit.

    Attributes
    ----------
        v: Best-fit values by parameter name
        histogram: The fitted histogram
        shape: Shape variant that was fitted
        gof: Goodness of fit with residuals, None when not computed
    """

    v: Mapping[str, float]
    histogram: Histogram
    shape: Shape
    gof: GoodnessOfFit | None = None

    def f_fit(self, x: Any) -> Any:
        """Fitted density at energy ``x``."""
        return self.shape(np.asarray(x, dtype=float), self.v)

    @property
    def f_components(self) -> dict[str, Callable[[Any], Any]]:
        return self.shape.components(self.v)


@dataclass(frozen=True, slots=True)
class PeakFitEntry:
    """Per-line outcome of a multi-peak run.

    ``result`` and ``report`` are None when the fit raised; ``error`` then
    holds the message.
    """

    line: float
    result: PeakFitResult | None
    report: PeakFitReport | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class SubpeakFitResult:
    """Outcome of the simultaneous survived/cut fit.

    Attributes
    ----------
        parameters: Estimates of the joint parameters (``sf``, ``bsf``, ``sasf``, ...)
        state: Terminal state of the joint fit
        keys: Canonical order of the joint parameters
        covariance: Projected covariance of the joint parameters
        gof_survived: Goodness of fit of the survived histogram
        gof_cut: Goodness of fit of the cut histogram
        fwhm_survived: FWHM of the survived peak
        fwhm_cut: FWHM of the cut peak
    """

    parameters: dict[str, ParameterEstimate]
    state: FitState
    keys: tuple[str, ...]
    covariance: FloatArray | None = None
    gof_survived: GoodnessOfFit | None = None
    gof_cut: GoodnessOfFit | None = None
    fwhm_survived: ParameterEstimate | None = None
    fwhm_cut: ParameterEstimate | None = None
    covariance_repaired: bool = False

    @property
    def converged(self) -> bool:
        return self.state.converged

    @property
    def sf(self) -> ParameterEstimate:
        """Signal survival fraction."""
        return self.parameters["sf"]

    @property
    def bsf(self) -> ParameterEstimate:
        """Background survival fraction."""
        return self.parameters["bsf"]

    @property
    def sasf(self) -> ParameterEstimate:
        """Step-amplitude survival fraction."""
        return self.parameters["sasf"]

    def __getitem__(self, name: str) -> ParameterEstimate:
        return self.parameters[name]

    def to_dict(self) -> dict[str, object]:
        return {
            "state": self.state.value,
            "parameters": {key: est.to_dict() for key, est in self.parameters.items()},
            "covariance": _covariance_dict(self.keys, self.covariance),
            "gof_survived": None if self.gof_survived is None else self.gof_survived.to_dict(),
            "gof_cut": None if self.gof_cut is None else self.gof_cut.to_dict(),
            "fwhm_survived": None if self.fwhm_survived is None else self.fwhm_survived.to_dict(),
            "fwhm_cut": None if self.fwhm_cut is None else self.fwhm_cut.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class SubpeakFitReport:
    survived: PeakFitReport
    cut: PeakFitReport
    sf: ParameterEstimate
    bsf: ParameterEstimate


@dataclass(frozen=True, slots=True)
class ResolutionCurve:
    """FWHM(E) = sqrt(sum_i p_i E^i) fitted over calibration lines.

    Attributes
    ----------
        parameters: Coefficients ``p_i``, coefficient ``i`` in ``unit^(2-i)``
        covariance: Coefficient covariance, None without uncertainty
        peaks: Calibration energies (in ``e_unit``)
        fwhm: Fitted FWHM values at ``peaks`` (in ``e_unit``)
        fwhm_err: FWHM uncertainties used as weights (None if unweighted)
        qbb: Curve evaluated at the double-beta-decay Q-value
        chi2: Chi-squared of the data points
        dof: Degrees of freedom
        pvalue: Chi-squared p-value
        residuals_norm: Weighted residuals per calibration line
        func: Curve as an expression of the energy expression
        func_cal: Curve as an expression of the calibrated energy with units
        func_generic: Curve with symbolic coefficients
        e_unit: Energy unit of the curve
    """

    parameters: list[ParameterEstimate]
    covariance: FloatArray | None
    peaks: FloatArray
    fwhm: FloatArray
    fwhm_err: FloatArray | None
    qbb: ParameterEstimate
    chi2: float
    dof: int
    pvalue: float
    residuals_norm: FloatArray
    func: str
    func_cal: str
    func_generic: str
    e_unit: str = "keV"
    converged: bool = True

    @property
    def pol_order(self) -> int:
        return len(self.parameters) - 1

    @property
    def par(self) -> FloatArray:
        return np.array([est.value for est in self.parameters])

    def __call__(self, energy: Any) -> Any:
        """FWHM at ``energy`` (in ``e_unit``)."""
        return f_fwhm(np.asarray(energy, dtype=float), self.par)

    def to_dict(self) -> dict[str, object]:
        return {
            "parameters": [est.to_dict() for est in self.parameters],
            "qbb": self.qbb.to_dict(),
            "chi2": self.chi2,
            "dof": self.dof,
            "pvalue": self.pvalue,
            "func": self.func,
            "func_cal": self.func_cal,
            "func_generic": self.func_generic,
            "e_unit": self.e_unit,
            "peaks": np.asarray(self.peaks).tolist(),
            "fwhm": np.asarray(self.fwhm).tolist(),
        }


@dataclass(frozen=True, slots=True)
class ResolutionReport:
    """Plotting view of the resolution curve fit."""

    curve: ResolutionCurve
    x: FloatArray
    y: FloatArray
    y_err: FloatArray | None
    residuals_norm: FloatArray
    e_unit: str = "keV"
    type: str = "fwhm"

    def f_fit(self, energy: Any) -> Any:
        return self.curve(energy)

    @property
    def par(self) -> list[ParameterEstimate]:
        return self.curve.parameters

    @property
    def qbb(self) -> ParameterEstimate:
        return self.curve.qbb


@dataclass(frozen=True, slots=True)
class PeakCut:
    """Window in which a histogrammed peak stays above a fraction of its maximum.

    ``low``, ``high`` and ``maximum`` are lower bin edges of the histogram.
    """

    low: float
    high: float
    maximum: float
    unit: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"low": self.low, "high": self.high, "max": self.maximum, "unit": self.unit}


@dataclass(frozen=True, slots=True)
class WindowCut:
    """Symmetric ``center +- n_sigma * sigma`` window from a half-Gaussian fit.

    Attributes
    ----------
        low_cut: Lower edge of the window
        high_cut: Upper edge of the window
        center: Fitted (or fixed) peak center
        sigma: Fitted Gaussian width
        low_cut_fit: Lower edge of the fitted range
        high_cut_fit: Upper edge of the fitted range
        max_cut_fit: Peak maximum of the coarse cut
        n_sigma: Half width of the window in units of ``sigma``
        unit: Energy unit of all positions
        converged: Whether the width fit converged
    """

    low_cut: float
    high_cut: float
    center: ParameterEstimate
    sigma: ParameterEstimate
    low_cut_fit: float
    high_cut_fit: float
    max_cut_fit: float
    n_sigma: float
    unit: str = ""
    converged: bool = True

    def contains(self, x: Any) -> Any:
        """Boolean mask of the values of ``x`` inside the window."""
        x = np.asarray(x, dtype=float)
        return (x > self.low_cut) & (x < self.high_cut)

    def to_dict(self) -> dict[str, Any]:
        return {
            "low_cut": self.low_cut,
            "high_cut": self.high_cut,
            "center": self.center.to_dict(),
            "sigma": self.sigma.to_dict(),
            "low_cut_fit": self.low_cut_fit,
            "high_cut_fit": self.high_cut_fit,
            "max_cut_fit": self.max_cut_fit,
            "n_sigma": self.n_sigma,
            "unit": self.unit,
            "converged": self.converged,
        }


@dataclass(frozen=True, slots=True)
class WindowCutReport:
    """Plotting view of a window cut.

    Attributes
    ----------
        cut: The window cut result
        histogram: Events within five widths of the center
        density: ``histogram`` normalized to unit area
        x_fit: Grid over the fitted half of the peak
    """

    cut: WindowCut
    histogram: Histogram
    density: FloatArray
    x_fit: FloatArray

    def f_fit(self, x: Any) -> Any:
        """Fitted truncated-Gaussian density, zero outside the fitted range."""
        x = np.asarray(x, dtype=float)
        mu, sigma = self.cut.center.value, self.cut.sigma.value
        lower, upper = self.cut.low_cut_fit, self.cut.high_cut_fit
        norm = ndtr((upper - mu) / sigma) - ndtr((lower - mu) / sigma)
        z = (x - mu) / sigma
        pdf = np.exp(-0.5 * z * z) / (sigma * np.sqrt(2.0 * np.pi) * norm)
        return np.where((x >= lower) & (x <= upper), pdf, 0.0)


__all__ = [
    "FitState",
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
]
