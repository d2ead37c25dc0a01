"""Fitted parameter values with optional uncertainties.

An uncertainty of ``None`` means "undefined" (no covariance was computed, or
the fit did not converge); it is never encoded as NaN or a sentinel number.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from specfit.core.units import DIMENSIONLESS, Quantity, conversion_factor

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


@dataclass(frozen=True, slots=True)
class ParameterEstimate:
    """A fitted value with an optional standard error.

    Attributes
    ----------
        name: Parameter identifier (e.g. "mu", "fwhm", "sf")
        value: Best-fit estimate
        std_error: Standard deviation, or None when undefined
        unit: Energy unit tag ("" for dimensionless or uncalibrated values)

    Example:
        >>> est = ParameterEstimate("mu", 2614.5, 0.02, "keV")
        >>> est.relative_error
        7.649e-06
    """

    name: str
    value: float
    std_error: float | None = None
    unit: str = DIMENSIONLESS

    @property
    def has_error(self) -> bool:
        return self.std_error is not None

    @property
    def relative_error(self) -> float | None:
        if self.std_error is None or self.value == 0:
            return None
        return abs(self.std_error / self.value)

    @property
    def quantity(self) -> Quantity:
        return Quantity(self.value, self.unit)

    def scaled(self, factor: float, unit: str | None = None) -> ParameterEstimate:
        """Multiply value and error by ``factor``, optionally retagging the unit."""
        std_error = None if self.std_error is None else abs(factor) * self.std_error
        return ParameterEstimate(
            self.name, self.value * factor, std_error, self.unit if unit is None else unit
        )

    def to(self, unit: str) -> ParameterEstimate:
        """Convert to another energy unit."""
        return self.scaled(conversion_factor(self.unit, unit), unit)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "value": self.value,
            "std_error": self.std_error,
            "unit": self.unit,
        }

    def __str__(self) -> str:
        error = "undefined" if self.std_error is None else f"{self.std_error:.4g}"
        text = f"{self.name} = {self.value:.6g} ± {error}"
        return f"{text} {self.unit}" if self.unit else text


def build_estimates(
    keys: Sequence[str],
    values: Mapping[str, float],
    std_errors: Sequence[float] | None = None,
    units: Mapping[str, str] | None = None,
) -> dict[str, ParameterEstimate]:
    """Estimates for ``keys``; missing or non-finite errors become undefined."""
    units = units or {}
    estimates: dict[str, ParameterEstimate] = {}
    for i, key in enumerate(keys):
        error = None
        if std_errors is not None and math.isfinite(float(std_errors[i])):
            error = float(std_errors[i])
        estimates[key] = ParameterEstimate(
            key, float(values[key]), error, units.get(key, DIMENSIONLESS)
        )
    return estimates


__all__ = ["ParameterEstimate", "build_estimates"]
