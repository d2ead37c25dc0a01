"""End-to-end tests of the single-peak fit."""

import dataclasses
import logging
from types import SimpleNamespace

import numpy as np
import pytest

from specfit import FitState, Histogram, PeakFitConfig, estimate_single_peak_stats, fit_single_peak
from specfit.core.fitting.covariance import estimate_covariance
from specfit.core.fitting.limits import ResourceLimits
from specfit.core.lineshapes import create_shape
from specfit.core.shared.exceptions import CovarianceError, InputError
from specfit.services.peak_fit import _select_after_retry, run_fit_attempt

GAUSS_FWHM = 2.0 * np.sqrt(2.0 * np.log(2.0)) * 2.0
# Keeps the Monte Carlo FWHM error cheap
FAST = {"mc_samples_cov": 400, "mc_samples_err": 200}


@pytest.fixture
def no_tail_fit(peak_histogram, peak_stats):
    return fit_single_peak(peak_histogram, peak_stats, low_e_tail=False, seed=42, **FAST)


class TestFitSinglePeak:
    """Fits of a Gaussian peak on a flat background."""

    def test_recovers_parameters(self, no_tail_fit):
        result, _ = no_tail_fit
        assert result.state is FitState.CONVERGED_WITH_COV
        assert 49.9 <= result["mu"].value <= 50.1
        assert 1.9 <= result["sigma"].value <= 2.1
        assert result["n"].value == pytest.approx(10000.0, rel=0.05)
        assert result["background"].value == pytest.approx(5.0, abs=1.0)
        assert result.fwhm.value == pytest.approx(GAUSS_FWHM, abs=0.2)

    def test_uncertainties(self, no_tail_fit):
        result, _ = no_tail_fit
        assert result["mu"].std_error == pytest.approx(2.0 / np.sqrt(10000.0), rel=0.3)
        assert result.fwhm.std_error is not None
        assert 0.0 < result.fwhm.std_error < 0.2
        assert result.centroid.value == pytest.approx(result["mu"].value)
        assert result.centroid.std_error == pytest.approx(result["mu"].std_error, rel=1e-6)

    def test_goodness_of_fit(self, no_tail_fit, peak_histogram):
        result, report = no_tail_fit
        assert 1e-3 < result.pvalue < 1.0
        # mu, sigma, n, step and background are free
        assert result.gof.dof == peak_histogram.nbins - 5
        assert report.gof is result.gof

    def test_tail_fixed_off(self, no_tail_fit):
        result, _ = no_tail_fit
        assert not result.low_e_tail
        assert result["skew_fraction"].value == 0.0
        assert result["skew_fraction"].std_error == 0.0

    def test_covariance(self, no_tail_fit):
        result, _ = no_tail_fit
        cov = result.covariance
        assert cov.shape == (len(result.keys), len(result.keys))
        np.testing.assert_allclose(cov, cov.T)
        assert np.linalg.eigvalsh(cov).min() >= -1e-12
        with pytest.raises(ValueError):
            cov[0, 0] = 1.0

    def test_report(self, no_tail_fit, peak_histogram):
        result, report = no_tail_fit
        assert report.v == result.values()
        expected = report.f_fit(peak_histogram.bin_centers)
        assert np.all(np.isfinite(expected))
        assert set(report.f_components()) >= {"gauss", "tail", "step", "background"}

    def test_default_model_with_tail(self, peak_histogram, peak_stats):
        """Default options on a Gaussian peak with 10000 counts over 5 counts per bin."""
        result, _ = fit_single_peak(peak_histogram, peak_stats, seed=1, **FAST)
        assert result.converged
        assert 49.8 <= result["mu"].value <= 50.2
        assert 1.9 <= result["sigma"].value <= 2.1
        assert result.fwhm.value == pytest.approx(GAUSS_FWHM, abs=0.2)
        assert result.pvalue is not None
        assert 0.01 < result.pvalue < 0.99
        assert result.low_e_tail
        assert 0.0 <= result["skew_fraction"].value <= 0.1

    def test_sloped_background(self, peak_histogram, peak_stats):
        result, _ = fit_single_peak(
            peak_histogram, peak_stats, fit_func="f_fit_bckSlope", low_e_tail=False, seed=1, **FAST
        )
        assert result.converged
        assert result.fit_func == "f_fit_bckSlope"
        assert result["background_slope"].value == pytest.approx(0.0, abs=0.05)

    def test_without_uncertainty(self, peak_histogram, peak_stats):
        result, report = fit_single_peak(peak_histogram, peak_stats, low_e_tail=False, uncertainty=False, **FAST)
        assert result.state is FitState.CONVERGED_NO_COV
        assert result.covariance is None
        assert result.gof is None
        assert report.gof is None
        assert all(est.std_error is None for est in result.parameters.values())
        assert result.fwhm.value == pytest.approx(GAUSS_FWHM, abs=0.2)
        assert result.fwhm.std_error is None

    def test_fixed_position(self, peak_histogram, peak_stats):
        result, _ = fit_single_peak(peak_histogram, peak_stats, low_e_tail=False, fixed_position=True, **FAST)
        assert result["mu"].value == peak_stats.peak_pos

    def test_prior_override(self, peak_histogram, peak_stats):
        result, _ = fit_single_peak(
            peak_histogram, peak_stats, low_e_tail=False, pseudo_prior={"step_amplitude": 0.0}, **FAST
        )
        assert result.converged
        assert result["step_amplitude"].value == 0.0

    def test_time_budget_exhausted(self, peak_histogram, peak_stats):
        """Running out of time is reported as non-convergence."""
        result, report = fit_single_peak(
            peak_histogram, peak_stats, limits=ResourceLimits(time_limit=0.0), **FAST
        )
        assert result.state is FitState.NOT_CONVERGED
        assert not result.converged
        assert result.covariance is None
        assert result.gof is None
        assert result.pvalue is None
        assert report.gof is None

    @pytest.mark.parametrize(
        "overrides",
        [{"fit_func": "f_unknown"}, {"pseudo_prior": {"unknown": 1.0}}, {"position_window": -1.0}],
    )
    def test_invalid_options(self, peak_histogram, peak_stats, overrides):
        with pytest.raises(InputError):
            fit_single_peak(peak_histogram, peak_stats, **overrides)


def _non_pd_first(monkeypatch, *, raise_error=False):
    """Make the first covariance estimate look unusable."""
    calls = []

    def fake(*args, **kwargs):
        calls.append(args)
        estimate = estimate_covariance(*args, **kwargs)
        if len(calls) == 1:
            if raise_error:
                raise CovarianceError("Hessian of the negative log-likelihood is singular")
            return dataclasses.replace(estimate, raw_positive_definite=False)
        return estimate

    monkeypatch.setattr("specfit.services.peak_fit.estimate_covariance", fake)
    return calls


class TestIterativeFit:
    """Refit without the low-energy tail when the covariance is unusable."""

    def test_retry_without_tail(self, monkeypatch, caplog, peak_histogram, peak_stats):
        calls = _non_pd_first(monkeypatch)
        with caplog.at_level(logging.INFO, logger="specfit"):
            result, _ = fit_single_peak(peak_histogram, peak_stats, iterative_fit=True, seed=3, **FAST)
        assert len(calls) == 2
        assert result.retried
        assert not result.low_e_tail
        assert result.state is FitState.CONVERGED_WITH_COV
        assert result["skew_fraction"].value == 0.0
        assert "repeat fit without low energy tail" in caplog.text
        assert "New covariance matrix is positive definite: True" in caplog.text

    def test_retry_after_covariance_error(self, monkeypatch, peak_histogram, peak_stats):
        _non_pd_first(monkeypatch, raise_error=True)
        result, _ = fit_single_peak(peak_histogram, peak_stats, iterative_fit=True, seed=3, **FAST)
        assert result.retried
        assert result.state is FitState.CONVERGED_WITH_COV

    def test_no_retry_without_iterative_fit(self, monkeypatch, peak_histogram, peak_stats):
        calls = _non_pd_first(monkeypatch)
        result, _ = fit_single_peak(
            peak_histogram, peak_stats, pseudo_prior={"skew_fraction": 0.05, "skew_width": 0.01}, seed=3, **FAST
        )
        assert len(calls) == 1
        assert not result.retried
        assert result.low_e_tail
        assert result.covariance_repaired
        assert result.state is FitState.CONVERGED_WITH_COV

    def test_covariance_error_without_retry(self, monkeypatch, peak_histogram, peak_stats):
        _non_pd_first(monkeypatch, raise_error=True)
        result, _ = fit_single_peak(peak_histogram, peak_stats, low_e_tail=False, seed=3, **FAST)
        assert result.state is FitState.CONVERGED_NO_COV
        assert result.covariance is None
        assert result.fwhm.std_error is None


@pytest.fixture
def high_energy_tail_histogram():
    """Noiseless peak whose only tail is on the high-energy side."""
    edges = np.arange(0.0, 101.0)
    centers = 0.5 * (edges[1:] + edges[:-1])
    params = {
        "mu": 50.0,
        "sigma": 2.0,
        "n": 100000.0,
        "step_amplitude": 2.0,
        "skew_fraction": 0.0,
        "skew_width": 1.0,
        "background": 5.0,
        "skew_fraction_highE": 0.2,
        "skew_width_highE": 0.02,
    }
    counts = create_shape("f_fit_tails", background_center=50.0)(centers, params) * np.diff(edges)
    return Histogram(edges=edges, counts=counts)


class TestDegenerateTail:
    """A low-energy tail the data cannot support leaves the Hessian indefinite."""

    def test_first_attempt_needs_retry(self, high_energy_tail_histogram):
        h = high_energy_tail_histogram
        stats = estimate_single_peak_stats(h)
        config = PeakFitConfig(seed=5, **FAST)
        shape = create_shape(config.fit_func, background_center=stats.peak_pos)
        attempt = run_fit_attempt(h, stats, shape, config, low_e_tail=True)
        assert attempt.converged
        assert attempt.optimization.params["skew_fraction"] < 1e-3
        assert attempt.needs_retry
        assert attempt.covariance is None or not attempt.covariance.raw_positive_definite

    def test_retry_gives_positive_definite_covariance(self, caplog, high_energy_tail_histogram):
        h = high_energy_tail_histogram
        with caplog.at_level(logging.INFO, logger="specfit"):
            result, _ = fit_single_peak(h, estimate_single_peak_stats(h), iterative_fit=True, seed=5, **FAST)
        assert "repeat fit without low energy tail" in caplog.text
        assert result.retried
        assert not result.low_e_tail
        assert result.state is FitState.CONVERGED_WITH_COV
        assert not result.covariance_repaired
        assert np.linalg.eigvalsh(result.covariance).min() >= -1e-12

    def test_without_retry_covariance_is_repaired(self, high_energy_tail_histogram):
        h = high_energy_tail_histogram
        result, _ = fit_single_peak(h, estimate_single_peak_stats(h), seed=5, **FAST)
        assert not result.retried
        assert result.low_e_tail
        if result.state is FitState.CONVERGED_WITH_COV:
            assert result.covariance_repaired
        else:
            assert result.state is FitState.CONVERGED_NO_COV

def _attempt(converged, has_cov):
    return SimpleNamespace(converged=converged, covariance=object() if has_cov else None)


class TestSelectAfterRetry:
    """Choice between the first attempt and the retry."""

    @pytest.mark.parametrize(
        ("first", "retry", "expected"),
        [
            ((True, False), (True, True), "retry"),
            ((True, True), (True, False), "first"),
            ((True, True), (True, True), "retry"),
            ((True, False), (True, False), "retry"),
            ((True, False), (False, False), "first"),
            ((False, False), (False, False), "first"),
        ],
    )
    def test_selection(self, first, retry, expected):
        attempts = {"first": _attempt(*first), "retry": _attempt(*retry)}
        assert _select_after_retry(attempts["first"], attempts["retry"]) is attempts[expected]
