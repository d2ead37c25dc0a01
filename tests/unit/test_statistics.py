"""Tests for goodness of fit and p-values."""

import numpy as np
import pytest

from specfit.core.lineshapes import create_shape
from specfit.core.results.statistics import (
    chi2_pvalue,
    evaluate_goodness_of_fit,
    get_residuals,
    p_value_poissonll,
)


@pytest.fixture
def shape():
    return create_shape("f_fit", background_center=50.0)


class TestChi2Pvalue:
    """Tests for chi2_pvalue."""

    def test_median(self):
        assert chi2_pvalue(0.454936, 1) == pytest.approx(0.5, abs=1e-5)

    @pytest.mark.parametrize(("chi2", "dof", "expected"), [(0.0, 0, 1.0), (3.0, 0, 0.0), (np.inf, 5, 0.0)])
    def test_degenerate(self, chi2, dof, expected):
        assert chi2_pvalue(chi2, dof) == expected

    def test_negative_chi2_clipped(self):
        assert chi2_pvalue(-1.0, 3) == 1.0


class TestPoissonGoodnessOfFit:
    """Tests for the likelihood-ratio goodness of fit."""

    def test_true_model(self, shape, make_histogram, gaussian_params):
        """At the true parameters the p-value is not extreme."""
        h = make_histogram(np.random.default_rng(7))
        pvalue, chi2, dof = p_value_poissonll(shape, h, gaussian_params, n_free=4)
        assert 0.0 <= pvalue <= 1.0
        assert dof == h.nbins - 4
        assert chi2 == pytest.approx(dof, abs=5 * np.sqrt(2 * dof))

    def test_exact_expectation(self, shape, make_histogram, gaussian_params):
        """Counts equal to the expectation give chi2 near zero."""
        h = make_histogram(np.random.default_rng(0), poisson=False)
        counts = shape(h.bin_centers, gaussian_params) * h.bin_widths
        h = type(h)(edges=h.edges, counts=counts)
        pvalue, chi2, _ = p_value_poissonll(shape, h, gaussian_params, n_free=4)
        assert chi2 == pytest.approx(0.0, abs=1e-9)
        assert pvalue == pytest.approx(1.0)

    def test_wrong_model_rejected(self, shape, peak_histogram, gaussian_params):
        pvalue, _, _ = p_value_poissonll(shape, peak_histogram, {**gaussian_params, "mu": 45.0})
        assert pvalue < 1e-6

    def test_dof_defaults_to_all_parameters(self, shape, peak_histogram, gaussian_params):
        _, _, dof = p_value_poissonll(shape, peak_histogram, gaussian_params)
        assert dof == peak_histogram.nbins - len(shape.param_names)

    def test_dof_not_negative(self, shape, peak_histogram, gaussian_params):
        _, _, dof = p_value_poissonll(shape, peak_histogram, gaussian_params, n_free=1000)
        assert dof == 0

    def test_zero_expectation_bins_excluded(self, shape, peak_histogram, gaussian_params):
        params = {**gaussian_params, "background": 0.0, "step_amplitude": 0.0}
        _, chi2, dof = p_value_poissonll(shape, peak_histogram, params, n_free=0)
        assert np.isfinite(chi2)
        assert dof <= peak_histogram.nbins


class TestResiduals:
    """Tests for residuals and the result record."""

    def test_residuals(self, shape, peak_histogram, gaussian_params):
        residuals, residuals_norm, expected, centers = get_residuals(shape, peak_histogram, gaussian_params)
        np.testing.assert_allclose(residuals, peak_histogram.counts - expected)
        np.testing.assert_allclose(residuals_norm, residuals / np.sqrt(expected))
        np.testing.assert_allclose(centers, peak_histogram.bin_centers)

    def test_read_only(self, shape, peak_histogram, gaussian_params):
        gof = evaluate_goodness_of_fit(shape, peak_histogram, gaussian_params, n_free=4)
        with pytest.raises(ValueError):
            gof.residuals[0] = 1.0
        with pytest.raises(ValueError):
            gof.residuals_norm[0] = 1.0

    def test_to_dict(self, shape, peak_histogram, gaussian_params):
        gof = evaluate_goodness_of_fit(shape, peak_histogram, gaussian_params, n_free=4)
        assert gof.to_dict() == {"pvalue": gof.pvalue, "chi2": gof.chi2, "dof": gof.dof, "converged": True}
        assert gof.reduced_chi2 == pytest.approx(gof.chi2 / gof.dof)

    def test_reduced_chi2_undefined_without_dof(self, shape, peak_histogram, gaussian_params):
        gof = evaluate_goodness_of_fit(shape, peak_histogram, gaussian_params, n_free=1000)
        assert gof.dof == 0
        assert gof.reduced_chi2 is None
