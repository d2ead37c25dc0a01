"""Gamma-line shape models.

Importing this package registers the shape variants under their fit-function
selectors (``f_fit``, ``f_fit_bckSlope``, ``f_fit_tails``).
"""

from specfit.core.lineshapes.functions import (
    ex_gauss_pdf,
    f_fwhm,
    gamma_peakshape,
    gamma_signal,
    gauss_pdf,
    get_namespace,
    low_e_tail_pdf,
    step_fct,
)
from specfit.core.lineshapes.models import (
    GAMMA_PARAMS,
    GammaPeakShape,
    GammaPeakShapeBkgSlope,
    GammaPeakShapeTwoTails,
    PeakShape,
    peak_centroid,
)
from specfit.core.lineshapes.registry import (
    SHAPES,
    Shape,
    create_shape,
    get_shape,
    list_shapes,
    register_shape,
)

__all__ = [
    "GAMMA_PARAMS",
    "SHAPES",
    "GammaPeakShape",
    "GammaPeakShapeBkgSlope",
    "GammaPeakShapeTwoTails",
    "PeakShape",
    "Shape",
    "create_shape",
    "ex_gauss_pdf",
    "f_fwhm",
    "gamma_peakshape",
    "gamma_signal",
    "gauss_pdf",
    "get_namespace",
    "get_shape",
    "list_shapes",
    "low_e_tail_pdf",
    "peak_centroid",
    "register_shape",
    "step_fct",
]
