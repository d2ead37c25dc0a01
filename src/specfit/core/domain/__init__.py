"""Domain models: histograms, peak statistics and fit configuration."""

from specfit.core.domain.config import (
    MultiPeakConfig,
    PeakFitConfig,
    ResolutionFitConfig,
    SubpeakFitConfig,
    coerce_config,
)
from specfit.core.domain.histogram import Histogram
from specfit.core.domain.peakstats import PeakStats, estimate_single_peak_stats

__all__ = [
    "Histogram",
    "MultiPeakConfig",
    "PeakFitConfig",
    "PeakStats",
    "ResolutionFitConfig",
    "SubpeakFitConfig",
    "coerce_config",
    "estimate_single_peak_stats",
]
