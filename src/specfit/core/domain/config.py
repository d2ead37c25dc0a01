"""Configuration models of the fitting services."""

from __future__ import annotations

from numbers import Real
from typing import Annotated, Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from specfit.core.constants import (
    DEFAULT_POSITION_WINDOW,
    MC_SAMPLES_COVARIANCE,
    MC_SAMPLES_INDEPENDENT,
    PEAK_FIT_MAX_ITERATIONS,
    SUBPEAK_FIT_MAX_ITERATIONS,
    SUBPEAK_FIT_TIME_LIMIT,
)
from specfit.core.fitting.limits import ResourceLimits
from specfit.core.fitting.priors import Distribution
from specfit.core.lineshapes import list_shapes
from specfit.core.shared.exceptions import InputError
from specfit.core.units import check_unit

ConfigT = TypeVar("ConfigT", bound=BaseModel)


def _check_pseudo_prior(value: dict[str, Any]) -> dict[str, Any]:
    for key, dist in value.items():
        if isinstance(dist, bool) or not isinstance(dist, Distribution | Real):
            msg = f"Prior for {key!r} must be a Distribution or a number"
            raise ValueError(msg)
    return value


class _MonteCarloConfig(BaseModel):
    """Monte Carlo settings of the FWHM uncertainty."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    mc_samples_cov: Annotated[int, Field(ge=2)] = Field(
        default=MC_SAMPLES_COVARIANCE,
        description="FWHM samples drawn from the full covariance matrix.",
    )
    mc_samples_err: Annotated[int, Field(ge=2)] = Field(
        default=MC_SAMPLES_INDEPENDENT,
        description="FWHM samples drawn from independent standard errors.",
    )
    seed: Annotated[int, Field(ge=0)] | None = Field(
        default=None,
        description="Seed of the Monte Carlo generator (None for fresh entropy).",
    )


class PeakFitConfig(_MonteCarloConfig):
    """Options of a single-peak fit.

    Example:
        >>> config = PeakFitConfig(low_e_tail=False, fit_func="f_fit_bckSlope")
    """

    uncertainty: bool = Field(default=True, description="Compute covariance, p-value and errors.")
    low_e_tail: bool = Field(default=True, description="Fit the low-energy tail.")
    iterative_fit: bool = Field(
        default=False,
        description="Refit once without the low-energy tail if the covariance is not positive definite.",
    )
    fixed_position: bool = Field(default=False, description="Fix mu to the estimated position.")
    fit_func: str = Field(default="f_fit", description="Peak-shape selector.")
    background_center: float | None = Field(
        default=None,
        description="Reference energy of a sloped background (estimated position if None).",
    )
    position_window: Annotated[float, Field(gt=0)] = Field(
        default=DEFAULT_POSITION_WINDOW,
        description="Half-width of the uniform prior on mu.",
    )
    pseudo_prior: dict[str, Any] = Field(
        default_factory=dict,
        description="Per-parameter prior overrides (Distribution or fixed number).",
    )
    limits: ResourceLimits | None = Field(
        default=None,
        description="Optimizer time/memory budget (process-wide default if None).",
    )
    max_iterations: Annotated[int, Field(gt=0)] = Field(default=PEAK_FIT_MAX_ITERATIONS)

    @field_validator("fit_func")
    @classmethod
    def _known_shape(cls, value: str) -> str:
        if value not in list_shapes():
            msg = f"Unknown fit function {value!r}; available: {list_shapes()}"
            raise ValueError(msg)
        return value

    @field_validator("pseudo_prior")
    @classmethod
    def _valid_prior(cls, value: dict[str, Any]) -> dict[str, Any]:
        return _check_pseudo_prior(value)


class SubpeakFitConfig(_MonteCarloConfig):
    """Options of the simultaneous survived/cut fit.

    Shared shape parameters are taken from the combined fit; the ``fix_*``
    flags control which of them are refitted per histogram.
    """

    uncertainty: bool = False
    low_e_tail: bool = True
    fix_sigma: bool = True
    fix_skew_fraction: bool = True
    fix_skew_width: bool = True
    fit_func: Literal["f_fit"] = "f_fit"
    background_center: float | None = Field(
        default=None,
        description="Reference energy of the background (combined-fit mu if None).",
    )
    pseudo_prior: dict[str, Any] = Field(default_factory=dict)
    limits: ResourceLimits = Field(
        default_factory=lambda: ResourceLimits(time_limit=SUBPEAK_FIT_TIME_LIMIT)
    )
    max_iterations: Annotated[int, Field(gt=0)] = Field(default=SUBPEAK_FIT_MAX_ITERATIONS)

    @field_validator("pseudo_prior")
    @classmethod
    def _valid_prior(cls, value: dict[str, Any]) -> dict[str, Any]:
        return _check_pseudo_prior(value)


class MultiPeakConfig(PeakFitConfig):
    """Options of a calibration run over several lines."""

    calib_type: str = Field(default="th228", description="Calibration source type.")
    e_unit: str = Field(default="", description="Energy unit attached to rescaled results.")
    m_cal_simple: Annotated[float, Field(gt=0)] = Field(
        default=1.0,
        description="Simple calibration slope; positions and widths are divided by it.",
    )
    n_workers: Annotated[int, Field(gt=0)] | None = Field(
        default=None,
        description="Worker threads (one per line, capped at the CPU count, if None).",
    )

    @field_validator("e_unit")
    @classmethod
    def _known_unit(cls, value: str) -> str:
        return check_unit(value)


class ResolutionFitConfig(BaseModel):
    """Options of the FWHM-vs-energy curve fit."""

    model_config = ConfigDict(extra="forbid")

    pol_order: Annotated[int, Field(ge=1)] = Field(
        default=1, description="Highest power of E under the square root."
    )
    uncertainty: bool = True
    use_pull_t: bool = Field(
        default=False, description="Constrain coefficients of order >= 2 towards 0."
    )
    pull_std: float | list[float] | None = Field(
        default=None,
        description="Pull widths: one value for all constrained orders, or one per order >= 2.",
    )
    e_unit: str = "keV"
    e_type_cal: str = "e_cal"
    e_expression: str = "e"

    @field_validator("e_unit")
    @classmethod
    def _known_unit(cls, value: str) -> str:
        check_unit(value)
        if not value:
            msg = "The resolution curve needs an energy unit"
            raise ValueError(msg)
        return value


def coerce_config(model: type[ConfigT], config: ConfigT | None = None, **overrides: Any) -> ConfigT:
    """Validate ``config`` (default instance if None) with keyword ``overrides``.

    Raises
    ------
        InputError: If validation fails
    """
    try:
        if config is None:
            return model(**overrides)
        if not isinstance(config, model):
            msg = f"Expected {model.__name__}, got {type(config).__name__}"
            raise InputError(msg)
        if not overrides:
            return config
        return model.model_validate({**dict(config), **overrides})
    except ValidationError as exc:
        raise InputError(str(exc)) from exc


__all__ = [
    "MultiPeakConfig",
    "PeakFitConfig",
    "ResolutionFitConfig",
    "SubpeakFitConfig",
    "coerce_config",
]
