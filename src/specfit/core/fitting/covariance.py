"""Parameter covariance from the Hessian of the negative log-likelihood.

The Hessian is taken with JAX over the free parameters only; fixed
parameters get zero rows and columns in the reported matrix. The inverse
is always projected onto the nearest symmetric positive-definite matrix,
and whether the raw inverse already was positive definite is recorded for
the caller's retry policy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import jax
import jax.numpy as jnp
import numpy as np

from specfit.core.shared.exceptions import CovarianceError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from specfit.core.shared.typing import FloatArray

logger = logging.getLogger(__name__)

_MAX_SPD_ITERATIONS = 100


def is_positive_definite(matrix: FloatArray) -> bool:
    """True if ``matrix`` is finite and admits a Cholesky factorization."""
    matrix = np.asarray(matrix, dtype=float)
    if not np.all(np.isfinite(matrix)):
        return False
    try:
        np.linalg.cholesky(matrix)
    except np.linalg.LinAlgError:
        return False
    return True


def nearest_spd(matrix: FloatArray) -> FloatArray:
    """Nearest symmetric positive-definite matrix (Higham, 1988).

    The symmetric polar factor is averaged with the symmetric part; if
    rounding leaves a non-positive eigenvalue, a growing multiple of the
    identity is added until the Cholesky test passes.

    Raises
    ------
        CovarianceError: If ``matrix`` is not finite or cannot be repaired
    """
    a = np.asarray(matrix, dtype=float)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        msg = f"Expected a square matrix, got shape {a.shape}"
        raise CovarianceError(msg)
    if not np.all(np.isfinite(a)):
        msg = "Cannot project a non-finite matrix"
        raise CovarianceError(msg)
    if a.size == 0:
        return a.copy()

    b = 0.5 * (a + a.T)
    _, s, vt = np.linalg.svd(b)
    h = vt.T @ np.diag(s) @ vt
    a2 = 0.5 * (b + h)
    a3 = 0.5 * (a2 + a2.T)
    if is_positive_definite(a3):
        return a3

    spacing = np.spacing(np.linalg.norm(a))
    identity = np.eye(a.shape[0])
    for k in range(1, _MAX_SPD_ITERATIONS + 1):
        min_eig = float(np.min(np.linalg.eigvalsh(a3)))
        a3 = a3 + identity * (max(-min_eig, 0.0) * k**2 + spacing)
        if is_positive_definite(a3):
            return a3
    msg = "Nearest-SPD projection did not reach a positive-definite matrix"
    raise CovarianceError(msg)


def compute_hessian(
    nll_array: Callable[[Any], Any],
    point: Sequence[float] | FloatArray,
    free_indices: Sequence[int] | None = None,
) -> FloatArray:
    """Hessian of ``nll_array`` at ``point`` with respect to ``free_indices``.

    Entries not in ``free_indices`` are held at their value in ``point``.
    """
    full = jnp.asarray(np.asarray(point, dtype=float))
    if free_indices is None:
        free_indices = range(full.shape[0])
    idx = jnp.asarray(np.asarray(free_indices, dtype=int))

    def restricted(x_free: Any) -> Any:
        return nll_array(full.at[idx].set(x_free))

    return np.asarray(jax.hessian(restricted)(full[idx]), dtype=float)


@dataclass(slots=True)
class CovarianceEstimate:
    """Covariance over all canonical parameters.

    Attributes
    ----------
        covariance: Projected covariance, zero rows/columns for fixed parameters
        std_errors: Square roots of the diagonal
        raw_positive_definite: Whether the plain Hessian inverse was positive definite
        free_indices: Positions of the free parameters
    """

    covariance: FloatArray
    std_errors: FloatArray
    raw_positive_definite: bool
    free_indices: list[int]

    @property
    def repaired(self) -> bool:
        return not self.raw_positive_definite


def estimate_covariance(
    nll_array: Callable[[Any], Any],
    point: Sequence[float] | FloatArray,
    free_indices: Sequence[int] | None = None,
) -> CovarianceEstimate:
    """Invert the Hessian at the optimum and repair it to a valid covariance.

    Args:
        nll_array: Negative log-likelihood of the flat canonical parameter array
        point: Best-fit point in canonical order
        free_indices: Positions of the fitted parameters (all if None)

    Returns
    -------
        CovarianceEstimate indexed by all canonical parameters

    Raises
    ------
        CovarianceError: If the Hessian is non-finite or singular
    """
    point = np.asarray(point, dtype=float)
    n = point.size
    free = list(range(n)) if free_indices is None else [int(i) for i in free_indices]

    covariance = np.zeros((n, n))
    if not free:
        return CovarianceEstimate(covariance, np.zeros(n), True, free)

    hessian = compute_hessian(nll_array, point, free)
    if not np.all(np.isfinite(hessian)):
        msg = "Hessian of the negative log-likelihood is not finite"
        raise CovarianceError(msg)
    try:
        raw = np.linalg.inv(hessian)
    except np.linalg.LinAlgError as exc:
        msg = "Hessian of the negative log-likelihood is singular"
        raise CovarianceError(msg) from exc
    if not np.all(np.isfinite(raw)):
        msg = "Inverse Hessian is not finite"
        raise CovarianceError(msg)

    raw_pd = is_positive_definite(0.5 * (raw + raw.T))
    if not raw_pd:
        logger.debug("Raw inverse Hessian is not positive definite; projecting")
    projected = nearest_spd(raw)

    covariance[np.ix_(free, free)] = projected
    std_errors = np.sqrt(np.abs(np.diag(covariance)))
    return CovarianceEstimate(covariance, std_errors, raw_pd, free)


__all__ = [
    "CovarianceEstimate",
    "compute_hessian",
    "estimate_covariance",
    "is_positive_definite",
    "nearest_spd",
]
