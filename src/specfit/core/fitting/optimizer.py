"""Maximum-likelihood optimization in the prior's unconstrained space.

The negative log-likelihood is composed with the prior transform and
minimized with L-BFGS-B using exact JAX gradients. Running out of the time
or memory budget is reported as non-convergence, never raised.
"""

from __future__ import annotations

import functools
import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import jax
import jax.numpy as jnp
import numpy as np
from scipy.optimize import minimize

from specfit.core.constants import PEAK_FIT_MAX_ITERATIONS, STALLED_GRADIENT_TOLERANCE
from specfit.core.fitting.limits import ResourceLimits, TimeAndMemoryControl
from specfit.core.fitting.priors import Prior
from specfit.core.shared.exceptions import InputError, ResourceBudgetExceeded

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Mapping

    from specfit.core.shared.typing import FloatArray

logger = logging.getLogger(__name__)

# Objective value substituted for non-finite likelihoods so that the line
# search backtracks instead of failing.
_NONFINITE_PENALTY = 1e300


@dataclass(slots=True)
class OptimizationResult:
    """Outcome of one likelihood maximization."""

    params: dict[str, float]
    z: FloatArray
    nll: float
    converged: bool
    aborted: bool
    message: str
    n_iterations: int
    abort_reason: str | None = None


@functools.lru_cache(maxsize=32)
def compiled_objective(
    evaluate: Callable[[Any, Any, Mapping[str, Any]], Any],
    cache_key: Hashable,
    signature: tuple[tuple[str, type], ...],
) -> Callable[[Any, Any, Any], tuple[Any, Any]]:
    """Jitted value and gradient of the negative log-likelihood in z-space.

    Keyed on the static structure only; prior numbers and likelihood data
    are traced arguments, so fits of the same model layout and histogram
    size reuse one compilation.
    """

    def negative_loglike(z: Any, prior_params: Any, data: Any) -> Any:
        return -evaluate(cache_key, data, Prior.transform(signature, prior_params, z))

    return jax.jit(jax.value_and_grad(negative_loglike))


def _make_objective(
    loglike: Callable[[Mapping[str, Any]], Any], prior: Prior
) -> Callable[[FloatArray], tuple[float, FloatArray]]:
    if hasattr(loglike, "evaluate"):
        compiled = compiled_objective(loglike.evaluate, loglike.cache_key, prior.signature)
        prior_params, data = prior.transform_params(), loglike.data

        def value_and_grad(z: Any) -> tuple[Any, Any]:
            return compiled(z, prior_params, data)

    else:

        def negative_loglike(z: Any) -> Any:
            return -loglike(prior.from_unconstrained(z))

        value_and_grad = jax.jit(jax.value_and_grad(negative_loglike))

    def objective(z: FloatArray) -> tuple[float, FloatArray]:
        value, grad = value_and_grad(jnp.asarray(z, dtype=jnp.float64))
        value = float(value)
        grad = np.asarray(grad, dtype=float)
        if not np.isfinite(value) or not np.all(np.isfinite(grad)):
            return _NONFINITE_PENALTY, np.zeros_like(grad)
        return value, grad

    return objective


def _is_stalled_but_converged(result: Any) -> bool:
    """L-BFGS-B line-search stall at an already flat point."""
    message = str(result.message).upper()
    if "ABNORMAL" not in message:
        return False
    grad = np.asarray(getattr(result, "jac", np.inf), dtype=float)
    return bool(np.all(np.isfinite(grad)) and np.max(np.abs(grad)) < STALLED_GRADIENT_TOLERANCE)


def minimize_nll(
    loglike: Callable[[Mapping[str, Any]], Any],
    prior: Prior,
    *,
    limits: ResourceLimits | None = None,
    max_iterations: int = PEAK_FIT_MAX_ITERATIONS,
    start: Mapping[str, float] | None = None,
) -> OptimizationResult:
    """Maximize ``loglike`` over the free parameters of ``prior``.

    Args:
        loglike: Log-likelihood of named parameters, traceable by JAX. A
            likelihood object with ``evaluate``, ``cache_key`` and ``data``
            shares its compiled objective with other fits of the same layout
        prior: Prior providing the transform and the start point
        limits: Time/memory budget (process-wide default if None)
        max_iterations: Maximum number of L-BFGS-B iterations
        start: Start point in parameter space (prior mean if None)

    Returns
    -------
        OptimizationResult with the best-fit named parameters
    """
    z0 = prior.start_point() if start is None else prior.to_unconstrained(start)
    if not np.all(np.isfinite(z0)):
        msg = f"Start point is outside the prior support: {dict(zip(prior.free_keys, z0, strict=True))}"
        raise InputError(msg)

    if prior.n_free == 0:
        params = {key: float(value) for key, value in prior.from_unconstrained(z0).items()}
        nll = -float(loglike(params))
        return OptimizationResult(params, z0, nll, True, False, "no free parameters", 0)

    objective = _make_objective(loglike, prior)
    control = TimeAndMemoryControl(limits)
    # First evaluation compiles the objective; it counts as setup time.
    objective(z0)

    # The control records the abort reason itself.
    with suppress(ResourceBudgetExceeded):
        control.check()

    if control.aborted:
        z = z0
        nll, _ = objective(z0)
        success, message, nit = False, "budget exhausted during setup", 0
        stalled = False
    else:
        result = minimize(
            objective,
            z0,
            jac=True,
            method="L-BFGS-B",
            callback=control,
            options={"maxiter": max_iterations},
        )
        z = np.asarray(result.x, dtype=float)
        nll = float(result.fun)
        success = bool(result.success)
        message = str(result.message)
        nit = int(result.nit)
        stalled = not control.aborted and not success and _is_stalled_but_converged(result)

    aborted = control.aborted
    converged = not aborted and (success or stalled)
    params = {key: float(value) for key, value in prior.from_unconstrained(z).items()}

    if aborted:
        logger.warning("Optimization did not converge: %s", control.reason)
    elif not converged:
        logger.warning("Optimization did not converge: %s", message)
    logger.debug("Optimizer finished after %d iterations (nll=%.6g): %s", nit, nll, message)

    return OptimizationResult(
        params=params,
        z=z,
        nll=nll,
        converged=converged,
        aborted=aborted,
        message=message,
        n_iterations=nit,
        abort_reason=control.reason,
    )


__all__ = ["OptimizationResult", "compiled_objective", "minimize_nll"]
