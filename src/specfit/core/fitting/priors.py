"""Pseudo-priors for the peak-shape parameters.

A pseudo-prior regularizes and initializes the maximum-likelihood fit: each
free parameter gets a weakly informative distribution whose quantile
function maps an unconstrained standard-normal coordinate onto the
parameter's support. Point masses (``ConstValue``) fix a parameter and are
dropped from the optimization vector.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from numbers import Real
from typing import TYPE_CHECKING, Any, ClassVar

import numpy as np
from scipy import stats
from scipy.optimize import brentq

from specfit.core.constants import DEFAULT_POSITION_WINDOW, WEIBULL_MX_PROBABILITY
from specfit.core.lineshapes import get_namespace, get_shape
from specfit.core.shared.exceptions import InputError

if TYPE_CHECKING:
    from specfit.core.domain.peakstats import PeakStats
    from specfit.core.shared.typing import FloatArray

logger = logging.getLogger(__name__)

# Keeps to_unconstrained finite at the edges of bounded supports.
_CDF_CLIP = 1e-15


# =============================================================================
# Distributions
# =============================================================================


class Distribution(ABC):
    """Prior of a single parameter.

    ``transform`` maps a standard-normal coordinate onto the support given
    the numbers returned by ``transform_params``. It is a pure function of
    both, so a compiled objective can take those numbers as arguments.
    """

    is_fixed: ClassVar[bool] = False

    @abstractmethod
    def mean(self) -> float: ...

    @abstractmethod
    def transform_params(self) -> tuple[float, ...]: ...

    @staticmethod
    @abstractmethod
    def transform(z: Any, params: tuple[Any, ...]) -> Any: ...

    @abstractmethod
    def frozen(self) -> Any:
        """Equivalent frozen ``scipy.stats`` distribution."""

    def from_unconstrained(self, z: Any) -> Any:
        """Map a standard-normal coordinate onto the support (NumPy or JAX)."""
        return self.transform(z, self.transform_params())

    def to_unconstrained(self, x: float) -> float:
        """Inverse of ``from_unconstrained`` for plain floats."""
        u = float(self.frozen().cdf(x))
        return float(stats.norm.ppf(min(max(u, _CDF_CLIP), 1.0 - _CDF_CLIP)))


@dataclass(frozen=True)
class ConstValue(Distribution):
    """Point mass: the parameter is fixed to ``value``."""

    value: float
    is_fixed: ClassVar[bool] = True

    def mean(self) -> float:
        return float(self.value)

    def transform_params(self) -> tuple[float, ...]:
        return (float(self.value),)

    @staticmethod
    def transform(z: Any, params: tuple[Any, ...]) -> Any:
        return params[0]

    def frozen(self) -> Any:
        return stats.uniform(loc=self.value, scale=0.0)

    def to_unconstrained(self, x: float) -> float:
        msg = "A fixed parameter has no unconstrained coordinate"
        raise InputError(msg)


@dataclass(frozen=True)
class Uniform(Distribution):
    low: float
    high: float

    def __post_init__(self) -> None:
        if not self.high > self.low:
            msg = f"Uniform prior needs high > low, got [{self.low}, {self.high}]"
            raise InputError(msg)

    def mean(self) -> float:
        return 0.5 * (self.low + self.high)

    def transform_params(self) -> tuple[float, ...]:
        return (float(self.low), float(self.high))

    @staticmethod
    def transform(z: Any, params: tuple[Any, ...]) -> Any:
        _, special = get_namespace(z)
        low, high = params
        return low + (high - low) * special.ndtr(z)

    def frozen(self) -> Any:
        return stats.uniform(loc=self.low, scale=self.high - self.low)


@dataclass(frozen=True)
class LogUniform(Distribution):
    low: float
    high: float

    def __post_init__(self) -> None:
        if not 0 < self.low < self.high:
            msg = f"LogUniform prior needs 0 < low < high, got [{self.low}, {self.high}]"
            raise InputError(msg)

    def mean(self) -> float:
        return float(self.frozen().mean())

    def transform_params(self) -> tuple[float, ...]:
        return (math.log(self.low), math.log(self.high))

    @staticmethod
    def transform(z: Any, params: tuple[Any, ...]) -> Any:
        xp, special = get_namespace(z)
        log_low, log_high = params
        return xp.exp(log_low + (log_high - log_low) * special.ndtr(z))

    def frozen(self) -> Any:
        return stats.loguniform(self.low, self.high)


@dataclass(frozen=True)
class Normal(Distribution):
    loc: float
    scale: float

    def __post_init__(self) -> None:
        if not self.scale > 0:
            msg = f"Normal prior needs a positive scale, got {self.scale}"
            raise InputError(msg)

    def mean(self) -> float:
        return float(self.loc)

    def transform_params(self) -> tuple[float, ...]:
        return (float(self.loc), float(self.scale))

    @staticmethod
    def transform(z: Any, params: tuple[Any, ...]) -> Any:
        loc, scale = params
        return loc + scale * z

    def frozen(self) -> Any:
        return stats.norm(loc=self.loc, scale=self.scale)


@dataclass(frozen=True)
class Weibull(Distribution):
    """Weibull distribution with shape ``k`` and scale ``lam``."""

    k: float
    lam: float

    def __post_init__(self) -> None:
        if not (self.k > 0 and self.lam > 0):
            msg = f"Weibull prior needs positive shape and scale, got k={self.k}, lam={self.lam}"
            raise InputError(msg)

    def mean(self) -> float:
        return self.lam * math.gamma(1.0 + 1.0 / self.k)

    def transform_params(self) -> tuple[float, ...]:
        return (float(self.k), float(self.lam))

    @staticmethod
    def transform(z: Any, params: tuple[Any, ...]) -> Any:
        # 1 - ndtr(z) == ndtr(-z), evaluated in log space for large z.
        _, special = get_namespace(z)
        k, lam = params
        return lam * (-special.log_ndtr(-z)) ** (1.0 / k)

    def frozen(self) -> Any:
        return stats.weibull_min(c=self.k, scale=self.lam)


@dataclass(frozen=True)
class TruncatedWeibull(Distribution):
    """``base`` restricted to ``[lower, upper]``."""

    base: Weibull
    lower: float
    upper: float

    def __post_init__(self) -> None:
        if not (0 <= self.lower < self.upper):
            msg = f"Truncation interval must satisfy 0 <= lower < upper, got [{self.lower}, {self.upper}]"
            raise InputError(msg)

    def mean(self) -> float:
        return float(self.frozen().mean())

    def transform_params(self) -> tuple[float, ...]:
        base = self.base.frozen()
        return (
            float(base.cdf(self.lower)),
            float(base.cdf(self.upper)),
            float(self.base.k),
            float(self.base.lam),
        )

    @staticmethod
    def transform(z: Any, params: tuple[Any, ...]) -> Any:
        xp, special = get_namespace(z)
        cdf_low, cdf_high, k, lam = params
        u = cdf_low + (cdf_high - cdf_low) * special.ndtr(z)
        return lam * (-xp.log1p(-u)) ** (1.0 / k)

    def frozen(self) -> Any:
        return stats.truncweibull_min(
            c=self.base.k,
            a=self.lower / self.base.lam,
            b=self.upper / self.base.lam,
            scale=self.base.lam,
        )


def weibull_from_mx(m: float, x: float, p_x: float = WEIBULL_MX_PROBABILITY) -> Weibull:
    """Weibull distribution with mode ``m`` whose CDF at ``x`` equals ``p_x``.

    A non-positive mode yields the exponential distribution (shape 1) with
    the requested quantile.

    Raises
    ------
        InputError: If ``x`` is not positive or not above ``m``
    """
    if not x > 0 or not x > m:
        msg = f"weibull_from_mx needs x > max(m, 0), got m={m}, x={x}"
        raise InputError(msg)
    log_q = -math.log1p(-p_x)
    if m <= 0:
        return Weibull(k=1.0, lam=x / log_q)

    target = math.log(m / x)

    def mode_mismatch(k: float) -> float:
        return math.log((k - 1.0) / (k * log_q)) / k - target

    k_low, k_high = 1.0 + 1e-9, 1e4
    if mode_mismatch(k_low) >= 0:
        # Mode indistinguishable from zero at this scale.
        return Weibull(k=1.0, lam=x / log_q)
    while mode_mismatch(k_high) < 0 and k_high < 1e12:
        k_high *= 100.0
    k = brentq(mode_mismatch, k_low, k_high, xtol=1e-12, maxiter=500)
    return Weibull(k=float(k), lam=x / log_q ** (1.0 / k))


# =============================================================================
# Prior over a parameter set
# =============================================================================


class Prior:
    """Ordered set of per-parameter distributions.

    The order of ``distributions`` is the canonical parameter order of the
    fit. ``free_keys`` lists the parameters that are optimized.
    """

    def __init__(self, distributions: Mapping[str, Distribution]) -> None:
        for key, dist in distributions.items():
            if not isinstance(dist, Distribution):
                msg = f"Prior for {key!r} must be a Distribution, got {type(dist).__name__}"
                raise InputError(msg)
        self.distributions: dict[str, Distribution] = dict(distributions)
        self.keys: tuple[str, ...] = tuple(self.distributions)
        self.free_keys: tuple[str, ...] = tuple(
            key for key, dist in self.distributions.items() if not dist.is_fixed
        )
        self.fixed_keys: tuple[str, ...] = tuple(
            key for key in self.keys if key not in self.free_keys
        )

    def __getitem__(self, key: str) -> Distribution:
        return self.distributions[key]

    def __contains__(self, key: object) -> bool:
        return key in self.distributions

    def __len__(self) -> int:
        return len(self.keys)

    @property
    def n_free(self) -> int:
        return len(self.free_keys)

    def mean(self) -> dict[str, float]:
        return {key: dist.mean() for key, dist in self.distributions.items()}

    def fixed_values(self) -> dict[str, float]:
        return {key: self.distributions[key].mean() for key in self.fixed_keys}

    @property
    def signature(self) -> tuple[tuple[str, type[Distribution]], ...]:
        """Hashable layout of the prior: parameter names and distribution types."""
        return tuple((key, type(dist)) for key, dist in self.distributions.items())

    def transform_params(self) -> tuple[tuple[float, ...], ...]:
        return tuple(dist.transform_params() for dist in self.distributions.values())

    @staticmethod
    def transform(
        signature: tuple[tuple[str, type[Distribution]], ...],
        params: tuple[tuple[Any, ...], ...],
        z: Any,
    ) -> dict[str, Any]:
        """Named parameters for ``z`` given a prior layout and its numbers.

        Fixed parameters take no coordinate; the others consume the entries
        of ``z`` in order.
        """
        values: dict[str, Any] = {}
        i = 0
        for (key, dist_type), dist_params in zip(signature, params, strict=True):
            if dist_type.is_fixed:
                values[key] = dist_type.transform(None, dist_params)
            else:
                values[key] = dist_type.transform(z[i], dist_params)
                i += 1
        return values

    def from_unconstrained(self, z: Any) -> dict[str, Any]:
        """Named parameters for an unconstrained vector ``z`` over ``free_keys``."""
        return self.transform(self.signature, self.transform_params(), z)

    def to_unconstrained(self, params: Mapping[str, float]) -> FloatArray:
        return np.array(
            [self.distributions[key].to_unconstrained(float(params[key])) for key in self.free_keys],
            dtype=float,
        )

    def start_point(self) -> FloatArray:
        """Unconstrained image of the prior mean."""
        return self.to_unconstrained(self.mean())

    def with_overrides(self, overrides: Mapping[str, Distribution | float] | None) -> Prior:
        """Replace the named entries, keeping all others.

        Plain numbers become point masses.

        Raises
        ------
            InputError: If an override names an unknown parameter
        """
        if not overrides:
            return self
        unknown = [key for key in overrides if key not in self.distributions]
        if unknown:
            msg = f"Pseudo priors can only have {list(self.keys)} as fields, got {unknown}"
            raise InputError(msg)
        merged = dict(self.distributions)
        for key, value in overrides.items():
            merged[key] = _as_distribution(key, value)
        return Prior(merged)

    def __repr__(self) -> str:
        body = ", ".join(f"{key}={dist!r}" for key, dist in self.distributions.items())
        return f"Prior({body})"


def _as_distribution(key: str, value: Any) -> Distribution:
    if isinstance(value, Distribution):
        return value
    if isinstance(value, Real) and not isinstance(value, bool):
        return ConstValue(float(value))
    msg = f"Prior override for {key!r} must be a Distribution or a number, got {type(value).__name__}"
    raise InputError(msg)


# =============================================================================
# PriorBuilder
# =============================================================================


def _widened(value: float, spread: float) -> float:
    """Upper reference point ``value + spread`` guaranteed to exceed ``max(value, 0)``."""
    if spread > 0 and math.isfinite(spread):
        return max(value, 0.0) + spread
    return max(value, 0.0) + max(abs(value), 1.0)


def build_pseudo_prior(
    stats_: PeakStats,
    fit_func: str = "f_fit",
    *,
    low_e_tail: bool = True,
    fixed_position: bool = False,
    position_window: float = DEFAULT_POSITION_WINDOW,
    overrides: Mapping[str, Distribution | float] | None = None,
) -> Prior:
    """Weakly informative prior for every parameter of ``fit_func``.

    Args:
        stats_: Rough peak and background estimates of the histogram
        fit_func: Shape selector; the prior covers its canonical parameters
        low_e_tail: If False, the tail collapses to ``skew_fraction = 0``
        fixed_position: If True, ``mu`` is fixed to the estimated position
        position_window: Half-width of the uniform prior on ``mu``
        overrides: Per-parameter replacements (distribution or fixed number)

    Returns
    -------
        Prior ordered like the shape's canonical parameters
    """
    param_names = get_shape(fit_func).param_names
    ps = stats_

    if fixed_position:
        mu: Distribution = ConstValue(ps.peak_pos)
    else:
        mu = Uniform(ps.peak_pos - position_window, ps.peak_pos + position_window)

    sigma = abs(ps.peak_sigma)
    counts = abs(ps.peak_counts)
    step = max(ps.mean_background_step, 0.0)
    bkg = max(ps.mean_background, 0.0)
    bkg_std = ps.mean_background_std

    if low_e_tail:
        skew_fraction: Distribution = TruncatedWeibull(weibull_from_mx(0.01, 0.05), 0.0, 0.1)
        skew_width: Distribution = weibull_from_mx(0.001, 0.01)
    else:
        skew_fraction = ConstValue(0.0)
        skew_width = ConstValue(1.0)

    slope_scale = bkg_std / position_window if bkg_std > 0 else max(bkg, 1.0) / position_window

    candidates: dict[str, Distribution] = {
        "mu": mu,
        "sigma": weibull_from_mx(sigma, _widened(sigma, sigma)),
        "n": weibull_from_mx(counts, _widened(counts, counts)),
        "step_amplitude": weibull_from_mx(step, _widened(step, 5.0 * bkg_std)),
        "skew_fraction": skew_fraction,
        "skew_width": skew_width,
        "background": weibull_from_mx(bkg, _widened(bkg, 5.0 * bkg_std)),
        "background_slope": Normal(0.0, slope_scale),
        "skew_fraction_highE": skew_fraction,
        "skew_width_highE": skew_width,
    }
    prior = Prior({name: candidates[name] for name in param_names})
    prior = prior.with_overrides(overrides)
    logger.debug("Pseudo prior for %s: %r", fit_func, prior)
    return prior


__all__ = [
    "ConstValue",
    "Distribution",
    "LogUniform",
    "Normal",
    "Prior",
    "TruncatedWeibull",
    "Uniform",
    "Weibull",
    "build_pseudo_prior",
    "weibull_from_mx",
]
