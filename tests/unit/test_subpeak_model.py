"""Tests for the joint survived/cut parametrization."""

import pytest

from specfit.core.domain.config import SubpeakFitConfig
from specfit.core.fitting.priors import ConstValue, TruncatedWeibull, Uniform, Weibull
from specfit.core.results.estimates import ParameterEstimate, build_estimates
from specfit.core.results.fit_results import FitState, PeakFitResult
from specfit.core.shared.exceptions import InputError
from specfit.services.subpeak_fit import SUBPEAK_PARAMS, build_subpeak_prior, split_params


@pytest.fixture
def joint_values():
    return {
        "mu": 50.0,
        "sigma_survived": 2.0,
        "sigma_cut": 2.5,
        "n": 10000.0,
        "sf": 0.9,
        "bsf": 0.4,
        "sasf": 0.7,
        "step_amplitude": 2.0,
        "skew_fraction_survived": 0.05,
        "skew_fraction_cut": 0.02,
        "skew_width_survived": 0.01,
        "skew_width_cut": 0.03,
        "background": 5.0,
    }


@pytest.fixture
def combined_result(gamma_params):
    keys = tuple(gamma_params)
    return PeakFitResult(
        parameters=build_estimates(keys, gamma_params),
        fwhm=None,
        centroid=ParameterEstimate("centroid", 50.0),
        state=FitState.CONVERGED_NO_COV,
        keys=keys,
    )


class TestSplitParams:
    """Tests for split_params."""

    def test_parts_sum_to_totals(self, joint_values):
        survived = split_params(joint_values, "survived")
        cut = split_params(joint_values, "cut")
        for key in ("n", "step_amplitude", "background"):
            assert survived[key] + cut[key] == pytest.approx(joint_values[key])

    def test_fractions(self, joint_values):
        survived = split_params(joint_values, "survived")
        assert survived["n"] == pytest.approx(9000.0)
        assert survived["background"] == pytest.approx(2.0)
        assert survived["step_amplitude"] == pytest.approx(1.4)

    def test_per_part_shape(self, joint_values):
        cut = split_params(joint_values, "cut")
        assert cut["mu"] == 50.0
        assert (cut["sigma"], cut["skew_fraction"], cut["skew_width"]) == (2.5, 0.02, 0.03)

    def test_unknown_part(self, joint_values):
        with pytest.raises(InputError):
            split_params(joint_values, "both")


class TestSubpeakPrior:
    """Tests for build_subpeak_prior."""

    def test_defaults(self, combined_result):
        prior = build_subpeak_prior(combined_result, SubpeakFitConfig())
        assert prior.keys == SUBPEAK_PARAMS
        assert prior.free_keys == ("sf", "bsf", "sasf")
        assert isinstance(prior["sf"], Uniform)
        assert prior["sigma_cut"] == ConstValue(2.0)
        assert prior["skew_fraction_survived"] == ConstValue(0.05)

    def test_free_widths_and_tails(self, combined_result):
        config = SubpeakFitConfig(fix_sigma=False, fix_skew_fraction=False, fix_skew_width=False)
        prior = build_subpeak_prior(combined_result, config)
        assert isinstance(prior["sigma_survived"], Weibull)
        assert isinstance(prior["skew_fraction_cut"], TruncatedWeibull)
        assert isinstance(prior["skew_width_cut"], Weibull)
        assert prior.n_free == 9

    def test_without_tail(self, combined_result):
        prior = build_subpeak_prior(combined_result, SubpeakFitConfig(low_e_tail=False, fix_skew_fraction=False))
        assert prior["skew_fraction_survived"] == ConstValue(0.0)
        assert prior["skew_width_cut"] == ConstValue(1.0)

    def test_overrides(self, combined_result):
        prior = build_subpeak_prior(combined_result, SubpeakFitConfig(pseudo_prior={"sasf": 1.0}))
        assert prior["sasf"] == ConstValue(1.0)
        assert prior.free_keys == ("sf", "bsf")

    def test_incomplete_combined_result(self):
        result = PeakFitResult(
            parameters=build_estimates(("mu",), {"mu": 50.0}),
            fwhm=None,
            centroid=ParameterEstimate("centroid", 50.0),
            state=FitState.CONVERGED_NO_COV,
            keys=("mu",),
        )
        with pytest.raises(InputError, match="lacks parameters"):
            build_subpeak_prior(result, SubpeakFitConfig())
