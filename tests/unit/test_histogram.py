"""Tests for the histogram model and the peak statistics estimator."""

import numpy as np
import pytest

from specfit.core.domain import Histogram, PeakStats, estimate_single_peak_stats
from specfit.core.shared.exceptions import InputError


class TestHistogram:
    """Tests for Histogram validation and derived quantities."""

    def test_bin_geometry(self):
        h = Histogram(edges=[0.0, 1.0, 3.0], counts=[4, 6])
        np.testing.assert_allclose(h.bin_centers, [0.5, 2.0])
        np.testing.assert_allclose(h.bin_widths, [1.0, 2.0])
        assert h.nbins == 2
        assert h.total == pytest.approx(10.0)

    def test_edge_count_mismatch(self):
        """Edges must have exactly one more entry than counts."""
        with pytest.raises(InputError):
            Histogram(edges=[0.0, 1.0], counts=[1, 2])

    def test_non_increasing_edges(self):
        with pytest.raises(InputError):
            Histogram(edges=[0.0, 2.0, 1.0], counts=[1, 2])

    def test_negative_counts(self):
        with pytest.raises(InputError):
            Histogram(edges=[0.0, 1.0, 2.0], counts=[1, -2])

    def test_empty(self):
        with pytest.raises(InputError):
            Histogram(edges=[0.0], counts=[])

    def test_arrays_are_read_only(self):
        """Histograms never change after construction."""
        h = Histogram(edges=[0.0, 1.0, 2.0], counts=[1, 2])
        with pytest.raises(ValueError):
            h.counts[0] = 5.0

    def test_input_not_aliased(self):
        counts = np.array([1.0, 2.0])
        h = Histogram(edges=[0.0, 1.0, 2.0], counts=counts)
        counts[0] = 10.0
        assert h.counts[0] == 1.0

    def test_from_data(self, rng):
        values = rng.normal(50.0, 2.0, size=1000)
        h = Histogram.from_data(values, bins=np.arange(0.0, 101.0))
        assert h.nbins == 100
        assert h.total == pytest.approx(1000.0)


class TestPeakStats:
    """Tests for estimate_single_peak_stats."""

    def test_noiseless_peak(self, make_histogram, rng):
        """Estimates land close to the generating values."""
        h = make_histogram(rng, poisson=False)
        stats = estimate_single_peak_stats(h)

        assert isinstance(stats, PeakStats)
        assert stats.peak_pos == pytest.approx(50.0, abs=1.0)
        assert 1.0 < stats.peak_sigma < 3.0
        assert stats.peak_fwhm == pytest.approx(stats.peak_sigma * 2.0 * np.sqrt(2.0 * np.log(2.0)))
        assert stats.peak_counts == pytest.approx(10000.0, rel=0.02)
        assert stats.mean_background == pytest.approx(5.0, abs=0.1)
        assert stats.mean_background_std > 0

    def test_background_is_density(self, make_histogram, rng):
        """Background estimates are per energy unit, not per bin."""
        h = make_histogram(rng, poisson=False, edges=np.arange(0.0, 101.0, 2.0), background=10.0)
        stats = estimate_single_peak_stats(h)
        assert stats.mean_background == pytest.approx(5.0, abs=0.1)

    def test_noisy_peak(self, peak_histogram):
        stats = estimate_single_peak_stats(peak_histogram)
        assert stats.peak_pos == pytest.approx(50.0, abs=1.5)
        assert stats.mean_background == pytest.approx(5.0, abs=1.5)

    def test_stats_are_frozen(self, peak_stats):
        with pytest.raises(ValueError):
            peak_stats.peak_pos = 1.0
