"""Simple histogram statistics used to seed the peak-shape priors."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from pydantic import BaseModel, ConfigDict

from specfit.core.constants import GAUSSIAN_FWHM_FACTOR

if TYPE_CHECKING:
    from specfit.core.domain.histogram import Histogram


class PeakStats(BaseModel):
    """Rough peak and background estimates of one calibration line.

    Background levels and the step are densities (counts per energy unit),
    matching the convention of the peak-shape functions.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    peak_pos: float
    peak_fwhm: float
    peak_sigma: float
    peak_counts: float
    mean_background: float
    mean_background_step: float
    mean_background_std: float


def _sideband(counts: np.ndarray, mask: np.ndarray, fallback: slice) -> np.ndarray:
    selected = counts[mask]
    return selected if selected.size else counts[fallback]


def estimate_single_peak_stats(h: Histogram, sideband_fwhm: float = 2.0) -> PeakStats:
    """Estimate position, width, counts and background of the dominant peak.

    The position averages the maximum bin and the midpoint of the half-maximum
    interval. Background levels come from sidebands more than ``sideband_fwhm``
    FWHMs away from the peak (or the outer tenth of the histogram when the
    window is too narrow for that).
    """
    counts = np.asarray(h.counts, dtype=float)
    centers = h.bin_centers
    dx = float(np.mean(h.bin_widths))

    idx = int(np.argmax(counts))
    amplitude = counts[idx]
    left_level = 0.5 * (counts[0] + amplitude)
    right_level = 0.5 * (counts[-1] + amplitude)
    left = int(np.argmax(counts[: idx + 1] >= left_level))
    right = idx + int(np.nonzero(counts[idx:] >= right_level)[0][-1])

    peak_max_pos = centers[idx]
    peak_mid_pos = 0.5 * (centers[left] + centers[right])
    peak_pos = 0.5 * (peak_max_pos + peak_mid_pos)
    peak_fwhm = centers[right] - centers[left] + dx
    peak_sigma = peak_fwhm / GAUSSIAN_FWHM_FACTOR

    n_side = max(1, h.nbins // 10)
    left_counts = _sideband(
        counts, centers < peak_pos - sideband_fwhm * peak_fwhm, slice(0, n_side)
    )
    right_counts = _sideband(
        counts, centers > peak_pos + sideband_fwhm * peak_fwhm, slice(-n_side, None)
    )
    left_mean = float(np.mean(left_counts))
    right_mean = float(np.mean(right_counts))
    spread = 0.5 * (float(np.std(left_counts)) + float(np.std(right_counts)))
    spread = max(spread, float(np.sqrt(max(right_mean, 1.0))))

    peak_counts = float(np.sum(counts - right_mean))
    peak_counts = max(peak_counts, amplitude, 1.0)

    return PeakStats(
        peak_pos=float(peak_pos),
        peak_fwhm=float(peak_fwhm),
        peak_sigma=float(peak_sigma),
        peak_counts=peak_counts,
        mean_background=right_mean / dx,
        mean_background_step=(left_mean - right_mean) / dx,
        mean_background_std=spread / dx,
    )
