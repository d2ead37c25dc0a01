"""Tests for the FWHM computation and its Monte Carlo uncertainty."""

import numpy as np
import pytest

from specfit.core.fitting.fwhm import (
    compute_fwhm,
    draw_parameter_samples,
    estimate_fwhm,
    fwhm_window,
    monte_carlo_fwhm_error,
    peak_fwhm,
)
from specfit.core.lineshapes import GAMMA_PARAMS, create_shape
from specfit.core.shared.exceptions import CovarianceError, InputError, RootFindingError

GAUSS_FWHM_FACTOR = 2.0 * np.sqrt(2.0 * np.log(2.0))


@pytest.fixture
def shape():
    return create_shape("f_fit", background_center=50.0)


class TestComputeFwhm:
    """Tests for the half-maximum root search."""

    def test_gaussian(self, shape, gaussian_params):
        assert compute_fwhm(shape, gaussian_params) == pytest.approx(GAUSS_FWHM_FACTOR * 2.0, rel=1e-8)

    def test_independent_of_step_and_background(self, shape, gaussian_params):
        params = {**gaussian_params, "step_amplitude": 50.0, "background": 100.0}
        assert compute_fwhm(shape, params) == pytest.approx(GAUSS_FWHM_FACTOR * 2.0, rel=1e-8)

    def test_tail_widens(self, shape, gaussian_params):
        """A low-energy tail widens the peak."""
        params = {**gaussian_params, "skew_fraction": 0.3, "skew_width": 0.05}
        assert compute_fwhm(shape, params) > GAUSS_FWHM_FACTOR * 2.0

    def test_window(self, gamma_params):
        assert fwhm_window(gamma_params) == (48.0, 52.0)
        low, high = fwhm_window({**gamma_params, "skew_fraction": 0.8, "skew_width": 0.1})
        assert (low, high) == pytest.approx((45.0, 55.0))

    def test_no_signal(self, shape, gaussian_params):
        with pytest.raises(RootFindingError):
            compute_fwhm(shape, {**gaussian_params, "n": 0.0})

    def test_undefined_is_none(self, shape, gaussian_params):
        assert estimate_fwhm(shape, {**gaussian_params, "n": 0.0}) is None
        assert estimate_fwhm(shape, {**gaussian_params, "sigma": -0.0}) is None


class TestFwhmUncertainty:
    """Tests for the Monte Carlo FWHM error."""

    def test_propagates_sigma_error(self, shape, gaussian_params):
        """For a Gaussian the FWHM error scales the sigma error."""
        keys = GAMMA_PARAMS
        std = np.zeros(len(keys))
        std[keys.index("sigma")] = 0.02
        error = monte_carlo_fwhm_error(shape, gaussian_params, keys, std, 2000, np.random.default_rng(42))
        assert error == pytest.approx(GAUSS_FWHM_FACTOR * 0.02, rel=0.1)

    def test_covariance_samples(self, rng):
        cov = np.array([[1.0, 0.5], [0.5, 2.0]])
        samples = draw_parameter_samples(np.zeros(2), cov, 20000, rng)
        np.testing.assert_allclose(np.cov(samples.T), cov, atol=0.1)

    def test_undefined_samples_dropped(self, shape, gaussian_params):
        """Samples with negative counts have no FWHM and are skipped."""
        keys = GAMMA_PARAMS
        std = np.zeros(len(keys))
        std[keys.index("n")] = 10000.0
        std[keys.index("sigma")] = 0.05
        error = monte_carlo_fwhm_error(shape, gaussian_params, keys, std, 500, np.random.default_rng(1))
        assert error is not None
        assert np.isfinite(error)

    def test_no_usable_samples(self, shape, gaussian_params):
        keys = GAMMA_PARAMS
        params = {**gaussian_params, "n": -1.0}
        error = monte_carlo_fwhm_error(shape, params, keys, np.zeros(len(keys)), 10, np.random.default_rng(1))
        assert error is None

    def test_central_value_only(self, shape, gaussian_params):
        fwhm, error = peak_fwhm(shape, gaussian_params, GAMMA_PARAMS)
        assert fwhm == pytest.approx(GAUSS_FWHM_FACTOR * 2.0)
        assert error is None

    def test_invalid_covariance_falls_back(self, shape, gaussian_params):
        """A covariance rejected by the sampler falls back to independent errors."""
        keys = GAMMA_PARAMS
        n = len(keys)
        cov = -np.eye(n)
        std = np.zeros(n)
        std[keys.index("sigma")] = 0.02
        fwhm, error = peak_fwhm(
            shape, gaussian_params, keys, covariance=cov, std_errors=std,
            mc_samples_err=500, rng=np.random.default_rng(3),
        )
        assert fwhm == pytest.approx(GAUSS_FWHM_FACTOR * 2.0)
        assert error == pytest.approx(GAUSS_FWHM_FACTOR * 0.02, rel=0.2)

    def test_invalid_covariance_without_errors(self, shape, gaussian_params):
        n = len(GAMMA_PARAMS)
        fwhm, error = peak_fwhm(shape, gaussian_params, GAMMA_PARAMS, covariance=-np.eye(n))
        assert fwhm is not None
        assert error is None

    def test_rejected_covariance_raises(self, rng):
        with pytest.raises(CovarianceError):
            draw_parameter_samples(np.zeros(2), -np.eye(2), 10, rng)

    def test_input_error_not_swallowed(self, shape, gaussian_params):
        """Unknown parameter names are reported, not mistaken for a bad covariance."""
        keys = (*GAMMA_PARAMS, "unknown")
        with pytest.raises(InputError, match="Missing parameters"):
            peak_fwhm(shape, gaussian_params, keys, covariance=np.eye(len(keys)))
