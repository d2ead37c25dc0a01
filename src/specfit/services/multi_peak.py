"""Calibration run: independent single-peak fits over several gamma lines.

Each line is fitted in its own worker thread with no shared mutable state;
the configuration and the line list are only read. Position-like results
are rescaled from the uncalibrated histogram scale into energy units with
the simple calibration slope.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import TYPE_CHECKING, Any

import numpy as np
from threadpoolctl import threadpool_limits

from specfit.core.domain.config import MultiPeakConfig, PeakFitConfig, coerce_config
from specfit.core.results.fit_results import PeakFitEntry
from specfit.core.shared.exceptions import InputError
from specfit.core.shared.reporter import LoggingReporter
from specfit.core.units import common_unit, ustrip
from specfit.services.peak_fit import fit_single_peak

if TYPE_CHECKING:
    from collections.abc import Sequence

    from specfit.core.domain.histogram import Histogram
    from specfit.core.domain.peakstats import PeakStats
    from specfit.core.results.fit_results import PeakFitReport, PeakFitResult
    from specfit.core.shared.reporter import Reporter
    from specfit.core.units import Quantity

logger = logging.getLogger(__name__)

SUPPORTED_CALIB_TYPES = ("th228",)
RESCALED_PARAMS = ("mu", "sigma")


def rescale_result(result: PeakFitResult, factor: float, unit: str) -> PeakFitResult:
    """Scale positions and widths of ``result`` by ``factor`` and tag them with ``unit``."""
    parameters = dict(result.parameters)
    for key in RESCALED_PARAMS:
        if key in parameters:
            parameters[key] = parameters[key].scaled(factor, unit)

    covariance = result.covariance
    if covariance is not None:
        scale = np.array([factor if key in RESCALED_PARAMS else 1.0 for key in result.keys])
        covariance = covariance * np.outer(scale, scale)
        covariance.setflags(write=False)

    return replace(
        result,
        parameters=parameters,
        fwhm=None if result.fwhm is None else result.fwhm.scaled(factor, unit),
        centroid=result.centroid.scaled(factor, unit),
        covariance=covariance,
        unit=unit,
    )


def _peak_config(config: MultiPeakConfig) -> PeakFitConfig:
    return PeakFitConfig(**{name: getattr(config, name) for name in PeakFitConfig.model_fields})


def _check_inputs(
    histograms: Sequence[Histogram],
    stats: Sequence[PeakStats],
    lines: Sequence[float],
    config: MultiPeakConfig,
) -> None:
    if config.calib_type not in SUPPORTED_CALIB_TYPES:
        msg = f"Calibration type {config.calib_type!r} not supported; expected one of {SUPPORTED_CALIB_TYPES}"
        raise InputError(msg)
    if not len(histograms) == len(stats) == len(lines):
        msg = (
            "Number of histograms, peak statistics and lines must match, got "
            f"{len(histograms)}, {len(stats)} and {len(lines)}"
        )
        raise InputError(msg)
    if len(set(lines)) != len(lines):
        msg = f"Calibration lines must be unique, got {list(lines)}"
        raise InputError(msg)


def fit_peaks(
    histograms: Sequence[Histogram],
    stats: Sequence[PeakStats],
    lines: Sequence[float | Quantity],
    config: MultiPeakConfig | None = None,
    *,
    reporter: Reporter | None = None,
    **overrides: Any,
) -> dict[float, PeakFitEntry]:
    """Fit every line and collect the results keyed by line energy.

    A fit that fails with anything but ``InputError`` does not stop the
    batch: its entry carries the error message instead of a result.

    Args:
        histograms: One histogram per line, in uncalibrated units
        stats: Peak statistics of each histogram
        lines: Known line energies (plain numbers or quantities)
        config: Fit options (defaults if None)
        reporter: Progress reporter (logging if None)
        **overrides: Individual ``MultiPeakConfig`` fields

    Returns
    -------
        Mapping from line energy (in ``e_unit``) to its entry, in input order

    Raises
    ------
        InputError: On unknown calibration type, mismatched lengths,
            duplicate lines or invalid options
        UnitError: If a line cannot be expressed in the result unit
    """
    config = coerce_config(MultiPeakConfig, config, **overrides)
    reporter = reporter if reporter is not None else LoggingReporter("specfit")
    # Keys, labels and rescaled results all use e_unit; incompatible units raise UnitError.
    e_unit = config.e_unit or common_unit(lines, default=config.e_unit)
    line_values = [float(value) for value in np.atleast_1d(ustrip(lines, e_unit))] if len(lines) else []
    _check_inputs(histograms, stats, line_values, config)

    peak_config = _peak_config(config)
    factor = 1.0 / config.m_cal_simple
    n_workers = config.n_workers or min(os.cpu_count() or 1, max(len(line_values), 1))

    def fit_line(index: int) -> tuple[PeakFitResult, PeakFitReport]:
        line = line_values[index]
        reporter.action(f"Fitting line {line:g} {e_unit}".rstrip())
        result, report = fit_single_peak(histograms[index], stats[index], peak_config)
        return rescale_result(result, factor, e_unit), report

    entries: dict[float, PeakFitEntry] = {}
    with threadpool_limits(limits=1, user_api="blas"), ThreadPoolExecutor(max_workers=n_workers) as pool:
        futures = [pool.submit(fit_line, i) for i in range(len(line_values))]
        for line, future in zip(line_values, futures, strict=True):
            try:
                result, report = future.result()
            except InputError:
                raise
            except Exception as exc:
                logger.debug("Fit of line %g failed", line, exc_info=True)
                reporter.error(f"Fit of line {line:g} failed: {exc}")
                entries[line] = PeakFitEntry(line, None, None, error=f"{type(exc).__name__}: {exc}")
                continue

            if result.state.converged:
                reporter.success(f"Line {line:g}: {result.state.value}, FWHM {result.fwhm}")
            else:
                reporter.warning(f"Line {line:g}: fit did not converge")
            entries[line] = PeakFitEntry(line, result, report)

    return entries


__all__ = ["SUPPORTED_CALIB_TYPES", "fit_peaks", "rescale_result"]
