"""Named parameter vectors and their flat-array representation.

Optimization and differentiation work on flat arrays; everything that is
reported or passed to a shape function uses named parameters. Both views
share one canonical key order so that the conversion is lossless.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any

import numpy as np

from specfit.core.shared.exceptions import InputError

if TYPE_CHECKING:
    from specfit.core.shared.typing import FloatArray


def params_to_array(params: Mapping[str, Any], keys: Sequence[str]) -> FloatArray:
    """Flatten ``params`` in the order of ``keys``."""
    missing = [key for key in keys if key not in params]
    if missing:
        msg = f"Missing parameters {missing}"
        raise InputError(msg)
    return np.array([float(params[key]) for key in keys], dtype=float)


def array_to_params(values: Any, keys: Sequence[str]) -> dict[str, Any]:
    """Name the entries of a flat array (NumPy or JAX) by ``keys``."""
    if len(values) != len(keys):
        msg = f"Expected {len(keys)} values for {list(keys)}, got {len(values)}"
        raise InputError(msg)
    return {key: values[i] for i, key in enumerate(keys)}


def free_indices(keys: Sequence[str], fixed: Sequence[str]) -> list[int]:
    """Positions in ``keys`` of the parameters not listed in ``fixed``."""
    fixed_set = set(fixed)
    return [i for i, key in enumerate(keys) if key not in fixed_set]


class ParameterVector(Mapping[str, float]):
    """Immutable mapping of parameter name to value in canonical key order."""

    __slots__ = ("_keys", "_values")

    def __init__(self, keys: Sequence[str], values: Sequence[float] | FloatArray) -> None:
        keys = tuple(keys)
        if len(set(keys)) != len(keys):
            msg = f"Duplicate parameter names in {keys}"
            raise InputError(msg)
        array = np.array(values, dtype=float).reshape(-1)
        if array.size != len(keys):
            msg = f"Expected {len(keys)} values for {list(keys)}, got {array.size}"
            raise InputError(msg)
        array.setflags(write=False)
        self._keys = keys
        self._values = array

    @classmethod
    def from_mapping(cls, params: Mapping[str, Any], keys: Sequence[str]) -> ParameterVector:
        """Build from a mapping, keeping only (and requiring all of) ``keys``."""
        return cls(keys, params_to_array(params, keys))

    @classmethod
    def from_array(cls, values: Sequence[float] | FloatArray, keys: Sequence[str]) -> ParameterVector:
        return cls(keys, values)

    @property
    def names(self) -> tuple[str, ...]:
        return self._keys

    def to_array(self) -> FloatArray:
        """Copy of the values as a flat float array."""
        return self._values.copy()

    def replace(self, **updates: float) -> ParameterVector:
        """Return a copy with some values replaced."""
        unknown = set(updates) - set(self._keys)
        if unknown:
            msg = f"Unknown parameters {sorted(unknown)}"
            raise InputError(msg)
        values = [updates.get(key, value) for key, value in zip(self._keys, self._values, strict=True)]
        return ParameterVector(self._keys, values)

    def __getitem__(self, key: str) -> float:
        try:
            return float(self._values[self._keys.index(key)])
        except ValueError:
            raise KeyError(key) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParameterVector):
            return NotImplemented
        return self._keys == other._keys and bool(np.array_equal(self._values, other._values))

    def __hash__(self) -> int:
        return hash((self._keys, self._values.tobytes()))

    def __repr__(self) -> str:
        body = ", ".join(f"{key}={value:.6g}" for key, value in zip(self._keys, self._values, strict=True))
        return f"ParameterVector({body})"
