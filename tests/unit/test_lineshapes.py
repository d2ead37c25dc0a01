"""Test peak-shape functions and shape variants."""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from specfit.core.lineshapes import (
    GAMMA_PARAMS,
    GammaPeakShapeBkgSlope,
    create_shape,
    ex_gauss_pdf,
    f_fwhm,
    gamma_signal,
    gauss_pdf,
    get_namespace,
    get_shape,
    list_shapes,
    low_e_tail_pdf,
    peak_centroid,
    step_fct,
)
from specfit.core.shared.exceptions import InputError

X = np.linspace(-60.0, 160.0, 220001)
DX = X[1] - X[0]


def integrate(y):
    return float(np.sum(y) * DX)


class TestDensities:
    """Tests for the elementary densities."""

    def test_gauss_normalized(self):
        assert integrate(gauss_pdf(X, 50.0, 2.0)) == pytest.approx(1.0, rel=1e-6)

    def test_ex_gauss_normalized(self):
        assert integrate(ex_gauss_pdf(X, 50.0, 2.0, 5.0)) == pytest.approx(1.0, rel=1e-6)

    def test_ex_gauss_mean_shift(self):
        """The exponential shifts the mean by its decay length."""
        y = ex_gauss_pdf(X, 50.0, 2.0, 5.0)
        assert integrate(X * y) == pytest.approx(55.0, rel=1e-5)

    def test_ex_gauss_short_tail_is_gaussian(self):
        np.testing.assert_allclose(ex_gauss_pdf(X, 50.0, 2.0, 1e-9), gauss_pdf(X, 50.0, 2.0))

    def test_ex_gauss_finite_far_from_peak(self):
        x = np.array([50.0 - 2000.0, 50.0 + 2000.0])
        y = ex_gauss_pdf(x, 50.0, 2.0, 0.5)
        assert np.all(np.isfinite(y))
        assert np.all(y >= 0)

    def test_low_e_tail_mirrored(self):
        """The low-energy tail is the high-energy EMG mirrored about mu."""
        d = np.linspace(0.0, 10.0, 11)
        np.testing.assert_allclose(
            low_e_tail_pdf(50.0 - d, 50.0, 2.0, 3.0), ex_gauss_pdf(50.0 + d, 50.0, 2.0, 3.0)
        )

    def test_step(self):
        assert step_fct(50.0, 50.0, 2.0) == pytest.approx(0.5)
        assert step_fct(0.0, 50.0, 2.0) == pytest.approx(1.0)
        assert step_fct(100.0, 50.0, 2.0) == pytest.approx(0.0, abs=1e-12)

    def test_gamma_signal_integrates_to_counts(self):
        y = gamma_signal(X, 50.0, 2.0, 1000.0, 0.2, 0.02)
        assert integrate(y) == pytest.approx(1000.0, rel=1e-5)


class TestNamespace:
    """Tests for the NumPy/JAX dispatch."""

    def test_numpy_inputs(self):
        xp, _ = get_namespace(np.ones(3), 1.0)
        assert xp is np

    def test_jax_inputs(self):
        xp, _ = get_namespace(np.ones(3), jnp.asarray(1.0))
        assert xp is jnp

    def test_gradient_through_shape(self, gamma_params):
        """Shapes are differentiable with JAX."""
        shape = create_shape("f_fit")
        x = jnp.linspace(40.0, 60.0, 21)

        def total(mu):
            return jnp.sum(shape(x, {**gamma_params, "mu": mu}))

        grad = jax.grad(total)(jnp.asarray(50.0))
        assert np.isfinite(float(grad))


class TestShapeRegistry:
    """Tests for shape selection by name."""

    def test_registered_shapes(self):
        assert {"f_fit", "f_fit_bckSlope", "f_fit_tails"} <= set(list_shapes())

    def test_unknown_shape(self):
        with pytest.raises(InputError):
            get_shape("f_unknown")

    def test_parameter_names(self):
        assert create_shape("f_fit").param_names == GAMMA_PARAMS
        assert create_shape("f_fit_bckSlope").param_names[-1] == "background_slope"
        assert create_shape("f_fit_tails").param_names[-2:] == ("skew_fraction_highE", "skew_width_highE")

    def test_missing_parameter(self, gamma_params):
        shape = create_shape("f_fit_bckSlope")
        with pytest.raises(InputError):
            shape.check_params(gamma_params)


class TestShapeVariants:
    """Tests for the shape variants."""

    def test_components_sum_to_total(self, gamma_params):
        shape = create_shape("f_fit")
        x = np.linspace(30.0, 70.0, 81)
        parts = shape.components(gamma_params)
        total = sum(component(x) for component in parts.values())
        np.testing.assert_allclose(total, shape(x, gamma_params))

    def test_sloped_background(self, gamma_params):
        """The background is linear around the reference energy."""
        shape = GammaPeakShapeBkgSlope(background_center=40.0)
        params = {**gamma_params, "background_slope": 0.5}
        assert float(shape.background(np.asarray(42.0), params)) == pytest.approx(6.0)

    def test_sloped_background_defaults_to_mu(self, gamma_params):
        shape = create_shape("f_fit_bckSlope")
        params = {**gamma_params, "background_slope": 0.5}
        assert float(shape.background(np.asarray(52.0), params)) == pytest.approx(6.0)

    def test_high_energy_tail_off_matches_f_fit(self, gamma_params):
        x = np.linspace(30.0, 70.0, 81)
        params = {**gamma_params, "skew_fraction_highE": 0.0, "skew_width_highE": 0.01}
        np.testing.assert_allclose(
            create_shape("f_fit_tails")(x, params), create_shape("f_fit")(x, gamma_params)
        )

    def test_centroid(self, gamma_params):
        """The low-energy tail pulls the centroid below mu."""
        expected = 50.0 - 0.05 * 50.0 * 0.01
        assert float(peak_centroid(gamma_params)) == pytest.approx(expected)

    def test_centroid_without_tail(self, gaussian_params):
        assert float(peak_centroid(gaussian_params)) == pytest.approx(50.0)


class TestResolutionFunction:
    """Tests for the FWHM(E) curve."""

    def test_square_root_of_polynomial(self):
        assert float(f_fwhm(np.asarray(100.0), np.array([1.0, 0.03]))) == pytest.approx(2.0)

    def test_negative_polynomial_is_zero(self):
        """A negative polynomial maps to zero instead of NaN."""
        assert float(f_fwhm(np.asarray(100.0), np.array([-10.0, 0.01]))) == 0.0

    def test_gradient_finite_where_negative(self):
        grad = jax.grad(lambda p: f_fwhm(jnp.asarray(100.0), p))(jnp.array([-10.0, 0.01]))
        assert np.all(np.isfinite(np.asarray(grad)))
