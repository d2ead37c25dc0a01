"""Building blocks of the gamma-ray peak shape.

All functions accept plain floats, NumPy arrays or JAX arrays. The array
namespace is chosen from the inputs, so the same formula serves the
vectorized NumPy evaluation (goodness of fit, FWHM root finding) and the JAX
evaluation that is differentiated during optimization.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

import jax
import jax.numpy as jnp
import jax.scipy.special as jsp_special
import numpy as np
import scipy.special as sp_special

if TYPE_CHECKING:
    from types import ModuleType

_SQRT2 = math.sqrt(2.0)
_LOG2 = math.log(2.0)
_INV_SQRT_2PI = 1.0 / math.sqrt(2.0 * math.pi)

# Tails shorter than this fraction of sigma are indistinguishable from the core.
_MIN_TAIL_RATIO = 1e-5


def get_namespace(*values: Any) -> tuple[ModuleType, ModuleType]:
    """Return ``(array_module, special_module)`` suited to ``values``.

    JAX arrays (including tracers inside ``jit``/``grad``) select
    ``jax.numpy``/``jax.scipy.special``; everything else selects NumPy/SciPy.
    """
    if any(isinstance(value, jax.Array) for value in values):
        return jnp, jsp_special
    return np, sp_special


def gauss_pdf(x: Any, mu: Any, sigma: Any) -> Any:
    """Normal probability density."""
    xp, _ = get_namespace(x, mu, sigma)
    z = (x - mu) / sigma
    return xp.exp(-0.5 * z * z) * _INV_SQRT_2PI / sigma


def ex_gauss_pdf(x: Any, mu: Any, sigma: Any, theta: Any) -> Any:
    """Exponentially modified Gaussian with decay length ``theta`` towards high ``x``.

    ``exp(A) * erfc(B)`` is evaluated as ``exp(A + log 2 + log_ndtr(-sqrt(2) B))``,
    which stays finite far into both tails. Decay lengths below
    ``1e-5 * sigma`` fall back to the plain Gaussian.
    """
    xp, special = get_namespace(x, mu, sigma, theta)
    is_tail = theta > _MIN_TAIL_RATIO * sigma
    theta_safe = xp.where(is_tail, theta, sigma)

    d = x - mu
    a = -d / theta_safe + 0.5 * (sigma / theta_safe) ** 2
    b = (sigma / theta_safe - d / sigma) / _SQRT2
    emg = xp.exp(a + _LOG2 + special.log_ndtr(-_SQRT2 * b)) / (2.0 * theta_safe)
    return xp.where(is_tail, emg, gauss_pdf(x, mu, sigma))


def low_e_tail_pdf(x: Any, mu: Any, sigma: Any, theta: Any) -> Any:
    """Exponentially modified Gaussian mirrored about ``mu`` (tail towards low energy)."""
    return ex_gauss_pdf(-x, -mu, sigma, theta)


def step_fct(x: Any, mu: Any, sigma: Any) -> Any:
    """Smoothed step, 1 well below ``mu`` and 0 well above."""
    _, special = get_namespace(x, mu, sigma)
    return 0.5 * special.erfc((x - mu) / (_SQRT2 * sigma))


def gamma_signal(
    x: Any,
    mu: Any,
    sigma: Any,
    n: Any,
    skew_fraction: Any,
    skew_width: Any,
) -> Any:
    """Peak counts density: Gaussian core plus low-energy tail of relative width ``skew_width``."""
    skew = skew_width * mu
    return n * (
        (1.0 - skew_fraction) * gauss_pdf(x, mu, sigma)
        + skew_fraction * low_e_tail_pdf(x, mu, sigma, skew)
    )


def gamma_peakshape(
    x: Any,
    mu: Any,
    sigma: Any,
    n: Any,
    step_amplitude: Any,
    skew_fraction: Any,
    skew_width: Any,
) -> Any:
    """Gamma line: peak signal plus a step at ``mu`` (without flat background)."""
    return gamma_signal(x, mu, sigma, n, skew_fraction, skew_width) + step_amplitude * step_fct(
        x, mu, sigma
    )


def gamma_signal_two_tails(
    x: Any,
    mu: Any,
    sigma: Any,
    n: Any,
    skew_fraction: Any,
    skew_width: Any,
    skew_fraction_high: Any,
    skew_width_high: Any,
) -> Any:
    """Peak counts density with both a low- and a high-energy tail."""
    core = 1.0 - skew_fraction - skew_fraction_high
    return n * (
        core * gauss_pdf(x, mu, sigma)
        + skew_fraction * low_e_tail_pdf(x, mu, sigma, skew_width * mu)
        + skew_fraction_high * ex_gauss_pdf(x, mu, sigma, skew_width_high * mu)
    )


def f_fwhm(x: Any, p: Any) -> Any:
    """Energy resolution ``sqrt(sum_i p_i x**i)``; zero where the polynomial is negative."""
    xp, _ = get_namespace(x, p)
    poly = sum(p[i] * x**i for i in range(len(p)))
    positive = poly > 0
    return xp.where(positive, xp.sqrt(xp.where(positive, poly, 1.0)), 0.0)


__all__ = [
    "ex_gauss_pdf",
    "f_fwhm",
    "gamma_peakshape",
    "gamma_signal",
    "gamma_signal_two_tails",
    "gauss_pdf",
    "get_namespace",
    "low_e_tail_pdf",
    "step_fct",
]
