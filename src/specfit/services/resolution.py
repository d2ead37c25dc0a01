"""Energy resolution curve: FWHM(E) = sqrt(p0 + p1·E + ... + pn·E^n).

The curve is fitted to the FWHM of the calibration lines by weighted
chi-squared minimization and evaluated at the 76Ge double-beta-decay
Q-value.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import jax
import jax.numpy as jnp
import numpy as np

from specfit.core.constants import FWHM_SLOPE_START, QBB_ENERGY_ERR_KEV, QBB_ENERGY_KEV
from specfit.core.domain.config import ResolutionFitConfig, coerce_config
from specfit.core.fitting.chi2 import PullTerm, chi2fit
from specfit.core.lineshapes import f_fwhm
from specfit.core.results.estimates import ParameterEstimate
from specfit.core.results.fit_results import ResolutionCurve, ResolutionReport
from specfit.core.shared.exceptions import InputError
from specfit.core.units import Quantity, conversion_factor, ustrip

if TYPE_CHECKING:
    from collections.abc import Sequence

    from specfit.core.shared.typing import FloatArray

logger = logging.getLogger(__name__)


def coefficient_unit(order: int, e_unit: str) -> str:
    """Unit of the coefficient of ``E^order`` under the square root."""
    power = 2 - order
    if power == 0:
        return ""
    return e_unit if power == 1 else f"{e_unit}^{power}"


def start_parameters(pol_order: int, e_unit: str = "keV") -> FloatArray:
    """Start coefficients ``[1 keV², 2.96e-3·0.11 keV, 0, ...]`` in ``e_unit``."""
    c = conversion_factor("keV", e_unit)
    p0 = np.zeros(pol_order + 1)
    p0[0] = 1.0 * c**2
    p0[1] = FWHM_SLOPE_START * c
    return p0


def default_pull_std(order: int, e_unit: str = "keV") -> float:
    """Default width of the pull on the coefficient of ``E^order``."""
    return 0.1 * FWHM_SLOPE_START ** (order + 1) * conversion_factor("keV", e_unit) ** (2 - order)


def build_pull_terms(config: ResolutionFitConfig) -> list[PullTerm]:
    """Pulls towards zero on the coefficients of order 2 and higher.

    Raises
    ------
        InputError: If a per-order ``pull_std`` has the wrong length or a
            non-positive entry
    """
    if not config.use_pull_t:
        return []
    orders = list(range(2, config.pol_order + 1))
    if config.pull_std is None:
        stds = [default_pull_std(order, config.e_unit) for order in orders]
    elif isinstance(config.pull_std, list):
        if len(config.pull_std) != len(orders):
            msg = f"Expected {len(orders)} pull widths for pol_order={config.pol_order}, got {len(config.pull_std)}"
            raise InputError(msg)
        stds = [float(std) for std in config.pull_std]
    else:
        stds = [float(config.pull_std)] * len(orders)
    if any(not std > 0 for std in stds):
        msg = f"Pull widths must be positive, got {stds}"
        raise InputError(msg)
    return [PullTerm(order, 0.0, std) for order, std in zip(orders, stds, strict=True)]


def _format_value(value: float) -> str:
    return repr(float(value))


def curve_expressions(par: Sequence[float], config: ResolutionFitConfig) -> tuple[str, str, str]:
    """Text forms ``(func, func_cal, func_generic)`` of the fitted curve."""
    e_unit, e_cal, e_expr = config.e_unit, config.e_type_cal, config.e_expression
    func = " + ".join(f"{_format_value(p)} * ({e_expr})^{i}" for i, p in enumerate(par))
    func_cal = " + ".join(
        f"{_format_value(p)} * {e_cal}^{i} * {e_unit}^{2 - i}" for i, p in enumerate(par)
    )
    func_generic = " + ".join(f"par[{i}] * {e_cal}^{i}" for i in range(len(par)))
    return f"sqrt({func}){e_unit}", f"sqrt({func_cal})", f"sqrt({func_generic})"


def evaluate_at_qbb(
    par: FloatArray, covariance: FloatArray | None, e_unit: str = "keV"
) -> ParameterEstimate:
    """FWHM at the Q-value with the coefficient and Q-value uncertainties propagated."""
    c = conversion_factor("keV", e_unit)
    qbb, qbb_err = QBB_ENERGY_KEV * c, QBB_ENERGY_ERR_KEV * c
    value = float(f_fwhm(np.asarray(qbb), par))
    if covariance is None:
        return ParameterEstimate("qbb", value, None, e_unit)

    grad_p, grad_e = jax.grad(lambda p, e: f_fwhm(e, p), argnums=(0, 1))(
        jnp.asarray(par, dtype=float), jnp.asarray(qbb, dtype=float)
    )
    grad_p = np.asarray(grad_p, dtype=float)
    variance = float(grad_p @ covariance @ grad_p) + float(grad_e) ** 2 * qbb_err**2
    return ParameterEstimate("qbb", value, float(np.sqrt(max(variance, 0.0))), e_unit)


def _strip(
    values: Sequence[float | Quantity] | FloatArray, unit: str, name: str
) -> FloatArray:
    array = np.atleast_1d(ustrip(values, unit)).astype(float)
    if array.ndim != 1:
        msg = f"{name} must be one-dimensional"
        raise InputError(msg)
    return array


def fit_resolution_curve(
    energies: Sequence[float | Quantity] | FloatArray,
    fwhms: Sequence[float | Quantity] | FloatArray,
    config: ResolutionFitConfig | None = None,
    fwhm_errors: Sequence[float | Quantity] | FloatArray | None = None,
    **overrides: Any,
) -> tuple[ResolutionCurve, ResolutionReport]:
    """Fit the FWHM of the calibration lines as a function of energy.

    Quantities are converted to ``config.e_unit``; plain numbers are taken
    to be in that unit already.

    Args:
        energies: Calibration line energies
        fwhms: Fitted FWHM of each line
        config: Fit options (defaults if None)
        fwhm_errors: FWHM uncertainties used as weights (unit weights if None)
        **overrides: Individual ``ResolutionFitConfig`` fields

    Returns
    -------
        ``(curve, report)``

    Raises
    ------
        InputError: On mismatched lengths, an invalid polynomial order,
            unit mismatches or invalid pull widths
    """
    config = coerce_config(ResolutionFitConfig, config, **overrides)
    e_unit = config.e_unit

    peaks = _strip(energies, e_unit, "energies")
    fwhm = _strip(fwhms, e_unit, "fwhms")
    if peaks.size != fwhm.size:
        msg = f"Energies and FWHM must have the same length, got {peaks.size} and {fwhm.size}"
        raise InputError(msg)
    if peaks.size == 0:
        msg = "Need at least one calibration line"
        raise InputError(msg)
    fwhm_err = None
    if fwhm_errors is not None:
        fwhm_err = _strip(fwhm_errors, e_unit, "fwhm_errors")
        if fwhm_err.size != peaks.size:
            msg = f"Expected {peaks.size} FWHM uncertainties, got {fwhm_err.size}"
            raise InputError(msg)

    fit = chi2fit(
        f_fwhm,
        peaks,
        fwhm,
        fwhm_err,
        p0=start_parameters(config.pol_order, e_unit),
        pulls=build_pull_terms(config),
        uncertainty=config.uncertainty,
    )
    parameters = [
        ParameterEstimate(
            f"p{i}",
            float(value),
            None if fit.std_errors is None else float(fit.std_errors[i]),
            coefficient_unit(i, e_unit),
        )
        for i, value in enumerate(fit.par)
    ]
    qbb = evaluate_at_qbb(fit.par, fit.covariance, e_unit)
    func, func_cal, func_generic = curve_expressions(fit.par, config)
    logger.info("FWHM curve: %s", func)
    logger.info("FWHM at Qbb: %s", qbb)

    curve = ResolutionCurve(
        parameters=parameters,
        covariance=fit.covariance,
        peaks=peaks,
        fwhm=fwhm,
        fwhm_err=fwhm_err,
        qbb=qbb,
        chi2=fit.chi2,
        dof=fit.dof,
        pvalue=fit.pvalue,
        residuals_norm=fit.residuals_norm,
        func=func,
        func_cal=func_cal,
        func_generic=func_generic,
        e_unit=e_unit,
        converged=fit.converged,
    )
    report = ResolutionReport(
        curve=curve,
        x=peaks,
        y=fwhm,
        y_err=fwhm_err,
        residuals_norm=fit.residuals_norm,
        e_unit=e_unit,
    )
    return curve, report


__all__ = [
    "build_pull_terms",
    "coefficient_unit",
    "curve_expressions",
    "evaluate_at_qbb",
    "f_fwhm",
    "fit_resolution_curve",
    "start_parameters",
]
