"""Explicit physical-unit handling at the API boundary.

Numeric routines work on plain floats and arrays. Energies, widths and the
resolution curve are tagged with a unit when they leave the library, and
inputs are converted (or rejected) when they enter it.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import numpy as np

from specfit.core.shared.exceptions import UnitError

# Scale of each energy unit relative to keV; "" marks uncalibrated (ADC) values.
ENERGY_UNITS: dict[str, float] = {
    "eV": 1e-3,
    "keV": 1.0,
    "MeV": 1e3,
    "GeV": 1e6,
}
DIMENSIONLESS = ""


def check_unit(unit: str) -> str:
    """Return ``unit`` if it is a known energy unit or dimensionless."""
    if unit != DIMENSIONLESS and unit not in ENERGY_UNITS:
        msg = f"Unknown energy unit {unit!r}; expected one of {sorted(ENERGY_UNITS)} or ''"
        raise UnitError(msg)
    return unit


def conversion_factor(from_unit: str, to_unit: str) -> float:
    """Multiplicative factor converting values in ``from_unit`` to ``to_unit``."""
    check_unit(from_unit)
    check_unit(to_unit)
    if from_unit == to_unit:
        return 1.0
    if DIMENSIONLESS in (from_unit, to_unit):
        msg = f"Cannot convert between {from_unit or 'dimensionless'!r} and {to_unit or 'dimensionless'!r}"
        raise UnitError(msg)
    return ENERGY_UNITS[from_unit] / ENERGY_UNITS[to_unit]


@dataclass(frozen=True, slots=True)
class Quantity:
    """A scalar magnitude with an energy unit tag."""

    value: float
    unit: str = DIMENSIONLESS

    def __post_init__(self) -> None:
        check_unit(self.unit)

    @property
    def magnitude(self) -> float:
        return float(self.value)

    def to(self, unit: str) -> Quantity:
        """Convert to another energy unit."""
        return Quantity(self.value * conversion_factor(self.unit, unit), unit)

    def _coerce(self, other: Any) -> float:
        if isinstance(other, Quantity):
            return other.to(self.unit).value
        if self.unit == DIMENSIONLESS:
            return float(other)
        msg = f"Cannot combine a plain number with a quantity in {self.unit!r}"
        raise UnitError(msg)

    def __add__(self, other: Any) -> Quantity:
        return Quantity(self.value + self._coerce(other), self.unit)

    def __sub__(self, other: Any) -> Quantity:
        return Quantity(self.value - self._coerce(other), self.unit)

    def __neg__(self) -> Quantity:
        return Quantity(-self.value, self.unit)

    def __mul__(self, factor: float) -> Quantity:
        if isinstance(factor, Quantity):
            msg = "Products of two quantities are not supported"
            raise UnitError(msg)
        return Quantity(self.value * factor, self.unit)

    __rmul__ = __mul__

    def __truediv__(self, divisor: Any) -> Quantity | float:
        if isinstance(divisor, Quantity):
            # Ratio of two energies is a plain number.
            return self.value / divisor.to(self.unit).value
        return Quantity(self.value / divisor, self.unit)

    def isclose(self, other: Quantity, rel_tol: float = 1e-9, abs_tol: float = 0.0) -> bool:
        return math.isclose(self.value, self._coerce(other), rel_tol=rel_tol, abs_tol=abs_tol)

    def __str__(self) -> str:
        return f"{self.value:g} {self.unit}".rstrip()


def ustrip(values: Quantity | float | Iterable[Quantity | float], unit: str) -> np.ndarray:
    """Strip units from ``values`` after converting them to ``unit``.

    Plain numbers are assumed to be expressed in ``unit`` already. Mixing
    quantities and plain numbers in one sequence is rejected.
    """
    check_unit(unit)
    if isinstance(values, Quantity):
        return np.asarray(values.to(unit).value, dtype=float)
    if np.isscalar(values):
        return np.asarray(float(values), dtype=float)

    items = list(values)  # type: ignore[arg-type]
    tagged = [isinstance(item, Quantity) for item in items]
    if any(tagged) and not all(tagged):
        msg = "Sequence mixes quantities with plain numbers"
        raise UnitError(msg)
    if all(tagged) and items:
        return np.array([item.to(unit).value for item in items], dtype=float)
    return np.asarray(items, dtype=float)


def common_unit(values: Iterable[Quantity | float], default: str = DIMENSIONLESS) -> str:
    """Unit shared by all quantities in ``values`` (``default`` for plain numbers)."""
    units = {item.unit for item in values if isinstance(item, Quantity)}
    if len(units) > 1:
        msg = f"Inconsistent units {sorted(units)}"
        raise UnitError(msg)
    return units.pop() if units else check_unit(default)


__all__ = [
    "DIMENSIONLESS",
    "ENERGY_UNITS",
    "Quantity",
    "check_unit",
    "common_unit",
    "conversion_factor",
    "ustrip",
]
