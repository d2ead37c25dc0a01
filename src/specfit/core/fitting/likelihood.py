"""Poisson log-likelihood of a peak shape against a binned histogram.

The expected count of a bin is the shape density at the bin center times
the bin width. ``HistogramLikelihood`` exposes the same value for named
parameters and for flat arrays in canonical order; the flat form is what
JAX differentiates.
"""

from __future__ import annotations

from dataclasses import astuple
from typing import TYPE_CHECKING, Any

import numpy as np

from specfit.core.fitting.parameters import array_to_params
from specfit.core.lineshapes import get_namespace

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from specfit.core.domain.histogram import Histogram
    from specfit.core.lineshapes import Shape
    from specfit.core.shared.typing import ParamMapping


def log_pdf_poisson(expected: Any, counts: Any) -> Any:
    """Per-bin Poisson log-probability ``k log(lambda) - lambda - log(k!)``.

    ``lambda == 0`` with ``k == 0`` contributes zero; ``lambda <= 0`` with
    ``k > 0`` and non-finite ``lambda`` contribute ``-inf``.
    """
    xp, special = get_namespace(expected, counts)
    valid = (expected > 0) & xp.isfinite(expected)
    safe = xp.where(valid, expected, 1.0)
    logp = special.xlogy(counts, safe) - safe - special.gammaln(counts + 1.0)
    empty = (expected == 0) & (counts == 0)
    return xp.where(valid, logp, xp.where(empty, 0.0, -xp.inf))


def expected_counts(f: Callable[[Any], Any], h: Histogram) -> Any:
    """Expected count per bin of the density ``f`` over ``h``."""
    return f(h.bin_centers) * h.bin_widths


def hist_loglike(f: Callable[[Any], Any], h: Histogram) -> Any:
    """Total Poisson log-likelihood of density ``f`` given histogram ``h``."""
    expected = expected_counts(f, h)
    xp, _ = get_namespace(expected)
    return xp.sum(log_pdf_poisson(expected, h.counts))


class HistogramLikelihood:
    """Log-likelihood of one shape variant on one histogram.

    ``evaluate`` is the pure form of ``loglike``: the static ``cache_key``
    selects the shape type, and ``data`` holds the numbers (shape fields and
    histogram arrays). Fits that differ only in ``data`` share one compiled
    objective.

    Args:
        shape: Shape variant evaluated as ``shape(x, params)``
        h: Observed histogram
        keys: Canonical parameter order of the flat interface (defaults to
            the shape's own parameter order)
    """

    def __init__(self, shape: Shape, h: Histogram, keys: Sequence[str] | None = None) -> None:
        self.shape = shape
        self.histogram = h
        self.keys: tuple[str, ...] = tuple(shape.param_names if keys is None else keys)
        self._centers = np.asarray(h.bin_centers, dtype=float)
        self._widths = np.asarray(h.bin_widths, dtype=float)
        self._counts = np.asarray(h.counts, dtype=float)

    @property
    def cache_key(self) -> type[Shape]:
        return type(self.shape)

    @property
    def data(self) -> tuple[Any, ...]:
        return (astuple(self.shape), self._centers, self._widths, self._counts)

    @staticmethod
    def evaluate(cache_key: type[Shape], data: tuple[Any, ...], params: ParamMapping) -> Any:
        shape_fields, centers, widths, counts = data
        expected = cache_key(*shape_fields)(centers, params) * widths
        xp, _ = get_namespace(expected)
        return xp.sum(log_pdf_poisson(expected, counts))

    def expected(self, params: ParamMapping) -> Any:
        return self.shape(self._centers, params) * self._widths

    def loglike(self, params: ParamMapping) -> Any:
        """Log-likelihood for named parameters."""
        return self.evaluate(self.cache_key, self.data, params)

    def loglike_array(self, values: Any) -> Any:
        """Log-likelihood for a flat array ordered like ``keys``."""
        return self.loglike(array_to_params(values, self.keys))

    def nll_array(self, values: Any) -> Any:
        return -self.loglike_array(values)

    __call__ = loglike


__all__ = [
    "HistogramLikelihood",
    "expected_counts",
    "hist_loglike",
    "log_pdf_poisson",
]
