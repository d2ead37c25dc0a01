"""Pytest fixtures for specfit tests."""

import numpy as np
import pytest
from scipy.stats import norm

from specfit.core.domain import Histogram, estimate_single_peak_stats


def simulate_peak_histogram(
    rng,
    *,
    mu=50.0,
    sigma=2.0,
    n=10000.0,
    background=5.0,
    edges=None,
    poisson=True,
):
    """Gaussian peak on a flat background (``background`` counts per bin)."""
    edges = np.arange(0.0, 101.0) if edges is None else np.asarray(edges, dtype=float)
    expected = n * np.diff(norm.cdf(edges, loc=mu, scale=sigma)) + background
    counts = rng.poisson(expected) if poisson else expected
    return Histogram(edges=edges, counts=counts)


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(42)


@pytest.fixture
def make_histogram():
    """Factory for synthetic single-peak histograms."""
    return simulate_peak_histogram


@pytest.fixture
def peak_histogram(rng):
    """Peak at 50 keV, sigma 2 keV, 10000 counts on 5 counts/bin."""
    return simulate_peak_histogram(rng)


@pytest.fixture
def peak_stats(peak_histogram):
    """Rough estimates of the standard peak histogram."""
    return estimate_single_peak_stats(peak_histogram)


@pytest.fixture
def gamma_params():
    """Parameters of an ``f_fit`` peak with a small low-energy tail."""
    return {
        "mu": 50.0,
        "sigma": 2.0,
        "n": 10000.0,
        "step_amplitude": 2.0,
        "skew_fraction": 0.05,
        "skew_width": 0.01,
        "background": 5.0,
    }


@pytest.fixture
def gaussian_params(gamma_params):
    """Pure Gaussian peak on a flat background."""
    return {**gamma_params, "step_amplitude": 0.0, "skew_fraction": 0.0, "skew_width": 1.0}
