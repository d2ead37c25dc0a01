"""Tests for the energy windows around a single peak."""

import numpy as np
import pytest

from specfit import InputError, Quantity, cut_single_peak, get_centered_gaussian_window_cut

MU = 50.0
SIGMA = 2.0
HALF_MAX_OFFSET = SIGMA * np.sqrt(2.0 * np.log(2.0))


@pytest.fixture
def events():
    return np.random.default_rng(42).normal(MU, SIGMA, 100_000)


class TestCutSinglePeak:
    """Tests for cut_single_peak."""

    def test_half_maximum_window(self, events):
        cut = cut_single_peak(events, 40.0, 60.0)
        assert cut.maximum == pytest.approx(MU, abs=0.8)
        assert cut.low == pytest.approx(MU - HALF_MAX_OFFSET, abs=0.3)
        assert cut.high == pytest.approx(MU + HALF_MAX_OFFSET, abs=0.3)
        assert cut.low <= cut.maximum <= cut.high
        assert cut.unit == ""

    def test_fixed_binning_and_threshold(self, events):
        wide = cut_single_peak(events, 40.0, 60.0, n_bins=200, relative_cut=0.1)
        narrow = cut_single_peak(events, 40.0, 60.0, n_bins=200, relative_cut=0.5)
        assert wide.low < narrow.low
        assert wide.high > narrow.high

    def test_quantity_window(self, events):
        cut = cut_single_peak(events, Quantity(40.0, "keV"), Quantity(60.0, "keV"))
        assert cut.unit == "keV"
        assert cut.to_dict()["unit"] == "keV"

    def test_peak_without_high_side(self):
        rising = 10.0 * np.sqrt(np.random.default_rng(1).random(10_000))
        with pytest.raises(InputError, match="does not fall below"):
            cut_single_peak(rising, 0.0, 10.0, n_bins=20)

    @pytest.mark.parametrize(
        ("kwargs", "match"),
        [
            ({"relative_cut": 0.0}, "relative_cut"),
            ({"relative_cut": 1.5}, "relative_cut"),
            ({"n_bins": 0}, "n_bins"),
        ],
    )
    def test_invalid_options(self, events, kwargs, match):
        with pytest.raises(InputError, match=match):
            cut_single_peak(events, 40.0, 60.0, **kwargs)

    def test_invalid_window(self, events):
        with pytest.raises(InputError, match="must exceed"):
            cut_single_peak(events, 60.0, 40.0)
        with pytest.raises(InputError, match="at least two events"):
            cut_single_peak(events, 100.0, 110.0)


class TestCenteredGaussianWindowCut:
    """Tests for get_centered_gaussian_window_cut."""

    def test_fixed_center_high_side(self, events):
        cut, _ = get_centered_gaussian_window_cut(events, 40.0, 60.0, 2.0, center=MU)
        assert cut.converged
        assert cut.center.value == MU
        assert cut.center.std_error is None
        assert cut.sigma.value == pytest.approx(SIGMA, rel=0.05)
        assert cut.sigma.std_error is not None and 0.0 < cut.sigma.std_error < 0.1
        assert cut.low_cut == pytest.approx(MU - 2.0 * cut.sigma.value)
        assert cut.high_cut == pytest.approx(MU + 2.0 * cut.sigma.value)
        assert cut.low_cut_fit == MU
        assert cut.high_cut_fit > MU + SIGMA

    def test_fixed_center_low_side(self, events):
        cut, _ = get_centered_gaussian_window_cut(events, 40.0, 60.0, 3.0, center=MU, left=True)
        assert cut.sigma.value == pytest.approx(SIGMA, rel=0.05)
        assert cut.high_cut_fit == MU
        assert cut.low_cut_fit < MU - SIGMA
        assert cut.high_cut - cut.low_cut == pytest.approx(6.0 * cut.sigma.value)

    def test_free_center(self, events):
        cut, _ = get_centered_gaussian_window_cut(events, 40.0, 60.0, 2.0, fixed_center=False)
        assert cut.converged
        assert cut.center.value == pytest.approx(MU, abs=0.3)
        assert cut.center.std_error is not None
        assert cut.sigma.value == pytest.approx(SIGMA, rel=0.15)
        assert cut.low_cut_fit == cut.center.value
        assert cut.max_cut_fit == pytest.approx(MU, abs=0.8)

    def test_neighbour_on_other_flank(self, events):
        """A second peak below the center does not bias a fit of the high side."""
        neighbour = np.random.default_rng(7).normal(44.0, 1.0, 20_000)
        mixed = np.concatenate([events, neighbour])
        cut, _ = get_centered_gaussian_window_cut(mixed, 40.0, 60.0, 2.0, center=MU)
        assert cut.sigma.value == pytest.approx(SIGMA, rel=0.05)

    def test_quantity_center(self, events):
        cut, _ = get_centered_gaussian_window_cut(
            events, Quantity(40.0, "keV"), Quantity(60.0, "keV"), 2.0, center=Quantity(0.05, "MeV")
        )
        assert cut.unit == "keV"
        assert cut.center.value == pytest.approx(MU)
        assert cut.sigma.unit == "keV"

    def test_contains_and_to_dict(self, events):
        cut, _ = get_centered_gaussian_window_cut(events, 40.0, 60.0, 2.0, center=MU)
        inside = cut.contains(events)
        assert np.mean(inside) == pytest.approx(0.954, abs=0.02)
        data = cut.to_dict()
        assert data["n_sigma"] == 2.0
        assert data["sigma"]["value"] == cut.sigma.value
        assert {"low_cut", "high_cut", "low_cut_fit", "high_cut_fit", "max_cut_fit"} <= data.keys()

    def test_report(self, events):
        cut, report = get_centered_gaussian_window_cut(events, 40.0, 60.0, 2.0, center=MU)
        widths = report.histogram.bin_widths
        assert np.sum(report.density * widths) == pytest.approx(1.0)
        assert report.histogram.edges[0] == pytest.approx(MU - 5.0 * cut.sigma.value)
        assert report.x_fit[0] == cut.low_cut_fit
        assert report.x_fit[-1] == cut.high_cut_fit
        # The fitted density is normalized over the fitted flank.
        step = report.x_fit[1] - report.x_fit[0]
        assert np.sum(report.f_fit(report.x_fit)[:-1]) * step == pytest.approx(1.0, rel=0.01)
        assert report.f_fit(MU - 3.0) == 0.0

    def test_invalid_n_sigma(self, events):
        with pytest.raises(InputError, match="n_sigma"):
            get_centered_gaussian_window_cut(events, 40.0, 60.0, 0.0, center=MU)

    def test_center_outside_coarse_window(self, events):
        with pytest.raises(InputError, match="must exceed"):
            get_centered_gaussian_window_cut(events, 40.0, 60.0, 2.0, center=58.0)
