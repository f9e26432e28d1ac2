"""Detector-response helpers for TPC/TOF particle identification."""

from __future__ import annotations

import math

from .config import TPCTOFAverage
from .models import CalibrationCurve


def bethe_bloch_aleph(
    bg: float, p1: float, p2: float, p3: float, p4: float, p5: float
) -> float:
    """ALEPH parametrisation of the mean specific energy loss.

    `bg` is `beta*gamma = p/m`; `p1..p5` are the shape parameters. Outside
    the domain of the parametrisation the result is NaN, which fails every
    window comparison.
    """
    if bg <= 0:
        return math.nan
    try:
        beta = bg / math.sqrt(1.0 + bg * bg)
        aa = beta**p4
        log_arg = p3 + bg ** (-p5)
    except (OverflowError, ZeroDivisionError):
        return math.nan
    if aa == 0 or not log_arg > 0:
        return math.nan
    return (p2 - aa - math.log(log_arg)) * p1 / aa


def recalibrated_nsigma(
    tpc_inner_param: float,
    tpc_signal: float,
    mass_inverse: float,
    curve: CalibrationCurve,
) -> float:
    """TPC deviation score of a track against a calibrated response curve.

    The expected signal is evaluated at `tpc_inner_param * mass_inverse` and
    its spread is the expected signal times the curve resolution.
    """
    expected = bethe_bloch_aleph(tpc_inner_param * mass_inverse, *curve.bethe_bloch)
    spread = expected * curve.resolution
    if math.isnan(spread) or spread == 0:
        return math.nan
    return (tpc_signal - expected) / spread


def combined_nsigma(tpc_nsigma: float, tof_nsigma: float, average: TPCTOFAverage) -> float:
    """Euclidean combination of bias-corrected TPC and TOF scores."""
    return math.hypot(tpc_nsigma - average.tpc_avg, tof_nsigma - average.tof_avg)
