"""Statistical coverage of the fitted uncertainties."""

import numpy as np
import pytest

from specfit import estimate_single_peak_stats, fit_peaks

POSITIONS = [30.0, 50.0, 70.0]
N_TRIALS = 20


@pytest.mark.slow
def test_position_error_coverage(make_histogram):
    """A calibration run recovers every line position within its standard errors."""
    rng = np.random.default_rng(42)
    pulls = []
    for _ in range(N_TRIALS):
        histograms = [make_histogram(rng, mu=mu) for mu in POSITIONS]
        stats = [estimate_single_peak_stats(h) for h in histograms]
        entries = fit_peaks(
            histograms, stats, POSITIONS, low_e_tail=False, mc_samples_cov=50, mc_samples_err=50, seed=1
        )
        for line, entry in entries.items():
            assert entry.ok
            mu = entry.result["mu"]
            assert mu.std_error is not None
            pulls.append((mu.value - line) / mu.std_error)

    pulls = np.asarray(pulls)
    assert pulls.size == N_TRIALS * len(POSITIONS)
    assert np.mean(np.abs(pulls) < 3.0) >= 0.95
    # One standard error covers about 68% of the trials.
    assert 0.5 <= np.mean(np.abs(pulls) < 1.0) <= 0.85
    assert abs(np.mean(pulls)) < 0.5
    assert 0.7 < np.std(pulls) < 1.4
