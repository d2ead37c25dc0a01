"""specfit - maximum-likelihood fitting of gamma-ray peaks.

Public API:
    - fit_single_peak: Fit one peak histogram
    - fit_subpeaks: Simultaneous survived/cut fit of one peak
    - fit_peaks: Calibration run over several lines
    - fit_resolution_curve: FWHM as a function of energy
    - cut_single_peak, get_centered_gaussian_window_cut: Energy windows around a peak

Configuration:
    - PeakFitConfig, SubpeakFitConfig, MultiPeakConfig, ResolutionFitConfig
    - set_timelimit, set_memlimit: Process-wide optimizer budget

Domain Objects:
    - Histogram, PeakStats, Quantity
"""

import contextlib
from importlib import metadata

__version__ = "0.1.0"

with contextlib.suppress(metadata.PackageNotFoundError):
    __version__ = metadata.version(__name__)

# Configuration
from specfit.core.domain import (
    Histogram,
    MultiPeakConfig,
    PeakFitConfig,
    PeakStats,
    ResolutionFitConfig,
    SubpeakFitConfig,
    estimate_single_peak_stats,
)
from specfit.core.fitting import set_memlimit, set_timelimit
from specfit.core.results import FitState
from specfit.core.shared.exceptions import InputError, SpecFitError, UnitError
from specfit.core.units import Quantity

# Services (primary API)
from specfit.services import (
    cut_single_peak,
    fit_peaks,
    fit_resolution_curve,
    fit_single_peak,
    fit_subpeaks,
    get_centered_gaussian_window_cut,
)

__all__ = [
    # Version
    "__version__",
    # Services
    "cut_single_peak",
    "fit_peaks",
    "fit_resolution_curve",
    "fit_single_peak",
    "fit_subpeaks",
    "get_centered_gaussian_window_cut",
    # Configuration
    "MultiPeakConfig",
    "PeakFitConfig",
    "ResolutionFitConfig",
    "SubpeakFitConfig",
    "set_memlimit",
    "set_timelimit",
    # Domain
    "FitState",
    "Histogram",
    "PeakStats",
    "Quantity",
    "estimate_single_peak_stats",
    # Errors
    "InputError",
    "SpecFitError",
    "UnitError",
]
