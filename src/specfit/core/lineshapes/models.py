"""Peak-shape variants selectable by fit-function name.

Each variant declares its canonical parameter order and evaluates densities
(counts per energy unit) from a mapping of named parameters.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from specfit.core.lineshapes.functions import (
    ex_gauss_pdf,
    gamma_signal,
    gamma_signal_two_tails,
    gauss_pdf,
    get_namespace,
    low_e_tail_pdf,
    step_fct,
)
from specfit.core.lineshapes.registry import register_shape
from specfit.core.shared.exceptions import InputError

if TYPE_CHECKING:
    from collections.abc import Callable

    from specfit.core.shared.typing import ParamMapping

GAMMA_PARAMS = (
    "mu",
    "sigma",
    "n",
    "step_amplitude",
    "skew_fraction",
    "skew_width",
    "background",
)


@dataclass(frozen=True)
class PeakShape:
    """Base class for gamma-line shape variants."""

    name: ClassVar[str] = ""
    param_names: ClassVar[tuple[str, ...]] = GAMMA_PARAMS

    background_center: float | None = None

    def check_params(self, params: ParamMapping) -> None:
        """Raise ``InputError`` if ``params`` lacks a canonical parameter."""
        missing = [key for key in self.param_names if key not in params]
        if missing:
            msg = f"{self.name}: missing parameters {missing}"
            raise InputError(msg)

    def signal(self, x: Any, params: ParamMapping) -> Any:
        return gamma_signal(
            x,
            params["mu"],
            params["sigma"],
            params["n"],
            params["skew_fraction"],
            params["skew_width"],
        )

    def background(self, x: Any, params: ParamMapping) -> Any:
        xp, _ = get_namespace(x, params["background"])
        return params["background"] * xp.ones_like(x)

    def __call__(self, x: Any, params: ParamMapping) -> Any:
        step = params["step_amplitude"] * step_fct(x, params["mu"], params["sigma"])
        return self.signal(x, params) + step + self.background(x, params)

    def components(self, params: ParamMapping) -> dict[str, Callable[[Any], Any]]:
        """Component densities for plotting, each a callable of energy."""
        v = dict(params)
        return {
            "gauss": lambda x: v["n"]
            * (1.0 - v["skew_fraction"])
            * gauss_pdf(x, v["mu"], v["sigma"]),
            "tail": lambda x: v["n"]
            * v["skew_fraction"]
            * low_e_tail_pdf(x, v["mu"], v["sigma"], v["skew_width"] * v["mu"]),
            "step": lambda x: v["step_amplitude"] * step_fct(x, v["mu"], v["sigma"]),
            "background": lambda x: self.background(x, v),
        }


@register_shape("f_fit")
@dataclass(frozen=True)
class GammaPeakShape(PeakShape):
    """Gaussian core, low-energy tail, step and flat background."""

    name: ClassVar[str] = "f_fit"


@register_shape("f_fit_bckSlope")
@dataclass(frozen=True)
class GammaPeakShapeBkgSlope(PeakShape):
    """``f_fit`` with a linear background around ``background_center``."""

    name: ClassVar[str] = "f_fit_bckSlope"
    param_names: ClassVar[tuple[str, ...]] = (*GAMMA_PARAMS, "background_slope")

    def background(self, x: Any, params: ParamMapping) -> Any:
        center = params["mu"] if self.background_center is None else self.background_center
        return params["background"] + params["background_slope"] * (x - center)


@register_shape("f_fit_tails")
@dataclass(frozen=True)
class GammaPeakShapeTwoTails(PeakShape):
    """``f_fit`` with an additional high-energy tail."""

    name: ClassVar[str] = "f_fit_tails"
    param_names: ClassVar[tuple[str, ...]] = (
        *GAMMA_PARAMS,
        "skew_fraction_highE",
        "skew_width_highE",
    )

    def signal(self, x: Any, params: ParamMapping) -> Any:
        return gamma_signal_two_tails(
            x,
            params["mu"],
            params["sigma"],
            params["n"],
            params["skew_fraction"],
            params["skew_width"],
            params["skew_fraction_highE"],
            params["skew_width_highE"],
        )

    def components(self, params: ParamMapping) -> dict[str, Callable[[Any], Any]]:
        v = dict(params)
        parts = super().components(v)
        core = 1.0 - v["skew_fraction"] - v["skew_fraction_highE"]
        parts["gauss"] = lambda x: v["n"] * core * gauss_pdf(x, v["mu"], v["sigma"])
        parts["tail_highE"] = lambda x: (
            v["n"]
            * v["skew_fraction_highE"]
            * ex_gauss_pdf(x, v["mu"], v["sigma"], v["skew_width_highE"] * v["mu"])
        )
        return parts


def peak_centroid(params: ParamMapping) -> Any:
    """Centroid of the peak signal, shifted from ``mu`` by the tails."""
    centroid = params["mu"] - params["skew_fraction"] * (params["mu"] * params["skew_width"])
    if "skew_fraction_highE" in params:
        centroid = centroid + params["skew_fraction_highE"] * (
            params["mu"] * params["skew_width_highE"]
        )
    return centroid
