"""Immutable one-dimensional histogram of a peak region."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from specfit.core.shared.exceptions import InputError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from specfit.core.shared.typing import FloatArray


def _readonly(array: np.ndarray) -> np.ndarray:
    array = np.array(array, dtype=float, copy=True)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class Histogram:
    """Binned counts with strictly increasing edges.

    Attributes
    ----------
        edges: Bin edges, length ``nbins + 1``
        counts: Non-negative bin contents, length ``nbins``
    """

    edges: FloatArray
    counts: FloatArray

    def __post_init__(self) -> None:
        edges = np.asarray(self.edges, dtype=float)
        counts = np.asarray(self.counts, dtype=float)

        if edges.ndim != 1 or counts.ndim != 1:
            msg = "Histogram edges and counts must be one-dimensional"
            raise InputError(msg)
        if edges.size != counts.size + 1:
            msg = f"Expected {counts.size + 1} bin edges for {counts.size} bins, got {edges.size}"
            raise InputError(msg)
        if counts.size == 0:
            msg = "Histogram must contain at least one bin"
            raise InputError(msg)
        if not np.all(np.isfinite(edges)) or np.any(np.diff(edges) <= 0):
            msg = "Histogram edges must be finite and strictly increasing"
            raise InputError(msg)
        if not np.all(np.isfinite(counts)) or np.any(counts < 0):
            msg = "Histogram counts must be finite and non-negative"
            raise InputError(msg)

        object.__setattr__(self, "edges", _readonly(edges))
        object.__setattr__(self, "counts", _readonly(counts))

    @classmethod
    def from_data(
        cls,
        values: Sequence[float] | FloatArray,
        bins: int | Sequence[float] | FloatArray,
        value_range: tuple[float, float] | None = None,
    ) -> Histogram:
        """Histogram raw energies with ``numpy.histogram`` semantics."""
        counts, edges = np.histogram(np.asarray(values, dtype=float), bins=bins, range=value_range)
        return cls(edges=edges, counts=counts)

    @property
    def nbins(self) -> int:
        return int(self.counts.size)

    @property
    def bin_centers(self) -> FloatArray:
        return 0.5 * (self.edges[:-1] + self.edges[1:])

    @property
    def bin_widths(self) -> FloatArray:
        return np.diff(self.edges)

    @property
    def total(self) -> float:
        return float(self.counts.sum())

    def __repr__(self) -> str:
        return (
            f"Histogram(nbins={self.nbins}, range=[{self.edges[0]:g}, {self.edges[-1]:g}], "
            f"total={self.total:g})"
        )
