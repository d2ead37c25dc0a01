"""Application service layer for the specfit workflows.

The services combine the fitting engine into the operations exposed to
callers: single-peak fits, survived/cut sub-peak fits, calibration runs over
several lines, the resolution curve and energy windows around a peak.
"""

from specfit.services.cuts import cut_single_peak, get_centered_gaussian_window_cut
from specfit.services.multi_peak import fit_peaks
from specfit.services.peak_fit import fit_single_peak, peak_centroid
from specfit.services.resolution import f_fwhm, fit_resolution_curve
from specfit.services.subpeak_fit import fit_subpeaks

__all__ = [
    "cut_single_peak",
    "f_fwhm",
    "fit_peaks",
    "fit_resolution_curve",
    "fit_single_peak",
    "fit_subpeaks",
    "get_centered_gaussian_window_cut",
    "peak_centroid",
]
