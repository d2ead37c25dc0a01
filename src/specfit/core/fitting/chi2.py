"""Weighted least-squares (chi-squared) fits with optional pull terms.

A pull term ``((p_i - mean_i) / std_i)**2`` is appended to the objective for
each constrained parameter, softly tying it to ``mean_i``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import jax
import jax.numpy as jnp
import numpy as np
from scipy.optimize import least_squares

from specfit.core.results.statistics import chi2_pvalue
from specfit.core.shared.exceptions import InputError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from specfit.core.shared.typing import FloatArray

logger = logging.getLogger(__name__)

_TOLERANCE = 1e-14


@dataclass(frozen=True, slots=True)
class PullTerm:
    """Gaussian constraint on one parameter."""

    index: int
    mean: float
    std: float


@dataclass(slots=True)
class Chi2FitResult:
    """Best-fit parameters and fit quality of a chi-squared fit."""

    par: FloatArray
    covariance: FloatArray | None
    std_errors: FloatArray | None
    chi2: float
    dof: int
    pvalue: float
    residuals: FloatArray
    residuals_norm: FloatArray
    converged: bool
    message: str


def _weights(y: FloatArray, y_err: Sequence[float] | FloatArray | None) -> FloatArray:
    """Per-point uncertainties; unit weights when errors are unusable."""
    if y_err is None:
        return np.ones_like(y)
    err = np.asarray(y_err, dtype=float)
    if err.shape != y.shape:
        msg = f"Expected {y.size} uncertainties, got {err.size}"
        raise InputError(msg)
    if not np.all(np.isfinite(err)) or np.any(err <= 0):
        logger.warning("Missing or non-positive uncertainties; using unit weights")
        return np.ones_like(y)
    return err


def chi2fit(
    model: Callable[[Any, Any], Any],
    x: Sequence[float] | FloatArray,
    y: Sequence[float] | FloatArray,
    y_err: Sequence[float] | FloatArray | None = None,
    *,
    p0: Sequence[float] | FloatArray,
    pulls: Sequence[PullTerm] = (),
    uncertainty: bool = True,
) -> Chi2FitResult:
    """Minimize ``sum(((y - model(x, p)) / y_err)**2)`` plus pull terms.

    Args:
        model: ``model(x, p)`` traceable by JAX
        x: Abscissae
        y: Observations
        y_err: Observation uncertainties (unit weights if None)
        p0: Start parameters
        pulls: Gaussian constraints on individual parameters
        uncertainty: Whether to compute the parameter covariance

    Returns
    -------
        Chi2FitResult; ``chi2`` and ``dof`` count data points only
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape or x.ndim != 1:
        msg = f"x and y must be 1-D sequences of equal length, got {x.shape} and {y.shape}"
        raise InputError(msg)
    sigma = _weights(y, y_err)
    p0 = np.asarray(p0, dtype=float)
    for pull in pulls:
        if not 0 <= pull.index < p0.size or not pull.std > 0:
            msg = f"Invalid pull term {pull}"
            raise InputError(msg)

    pull_idx = np.array([pull.index for pull in pulls], dtype=int)
    pull_mean = np.array([pull.mean for pull in pulls], dtype=float)
    pull_std = np.array([pull.std for pull in pulls], dtype=float)
    x_j, y_j, sigma_j = jnp.asarray(x), jnp.asarray(y), jnp.asarray(sigma)

    def residual_vector(p: Any) -> Any:
        data = (y_j - model(x_j, p)) / sigma_j
        if pull_idx.size == 0:
            return data
        return jnp.concatenate([data, (p[pull_idx] - pull_mean) / pull_std])

    residual_jac = jax.jit(jax.jacfwd(residual_vector))
    residual_fn = jax.jit(residual_vector)

    result = least_squares(
        lambda p: np.asarray(residual_fn(jnp.asarray(p)), dtype=float),
        p0,
        jac=lambda p: np.asarray(residual_jac(jnp.asarray(p)), dtype=float),
        method="trf",
        x_scale="jac",
        ftol=_TOLERANCE,
        xtol=_TOLERANCE,
        gtol=_TOLERANCE,
    )
    par = np.asarray(result.x, dtype=float)

    covariance = std_errors = None
    if uncertainty:
        jac = np.asarray(result.jac, dtype=float)
        try:
            covariance = np.linalg.inv(jac.T @ jac)
        except np.linalg.LinAlgError:
            logger.warning("Singular normal matrix; using the pseudo-inverse for the covariance")
            covariance = np.linalg.pinv(jac.T @ jac)
        std_errors = np.sqrt(np.abs(np.diag(covariance)))

    fitted = np.asarray(model(x, par), dtype=float)
    residuals = y - fitted
    residuals_norm = residuals / sigma
    chi2 = float(np.sum(residuals_norm**2))
    dof = max(int(x.size - par.size), 0)
    if not result.success:
        logger.warning("Chi-squared fit did not converge: %s", result.message)

    return Chi2FitResult(
        par=par,
        covariance=covariance,
        std_errors=std_errors,
        chi2=chi2,
        dof=dof,
        pvalue=chi2_pvalue(chi2, dof),
        residuals=residuals,
        residuals_norm=residuals_norm,
        converged=bool(result.success),
        message=str(result.message),
    )


__all__ = ["Chi2FitResult", "PullTerm", "chi2fit"]
