"""
Plot-ready rate-through-time curves.

This is the data half of a rate-through-time plot: columns with missing
rates are dropped, quantile envelopes are paired into polygons and the
average line is computed. Rendering is left to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np
from statsmodels.nonparametric.smoothers_lowess import lowess

from rateshift.events import BammData
from rateshift.exceptions import InvalidArgumentError
from rateshift.rate_through_time import RateMatrix, get_rate_through_time_matrix
from rateshift.types.configs import RateCurveConfig, RateThroughTimeConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class RateCurves:
    """
    Coordinates for a rate-through-time plot.

    Attributes:
        times: Time before present of every kept grid column.
        avg: Mean or median rate per kept column.
        polygons: Closed (x, y) outlines, outermost quantile pair first. Each
            is an (2K, 2) array running forward along the lower quantile and
            back along the upper one.
        rate_label: Axis label for the plotted rate.
    """

    times: np.ndarray
    avg: np.ndarray
    polygons: Tuple[np.ndarray, ...]
    rate_label: str


def _smooth(y: np.ndarray, x: np.ndarray, span: float) -> np.ndarray:
    # it=0 gives plain local regression without robustness reweighting
    return lowess(y, x, frac=span, it=0, return_sorted=False)


def _resolve_matrix(
    source: Union[BammData, RateMatrix], config: RateCurveConfig
) -> RateMatrix:
    if isinstance(source, BammData):
        window = config.window
        if window is None:
            window = RateThroughTimeConfig(n_slices=config.n_bins)
        return get_rate_through_time_matrix(source, window)
    if isinstance(source, RateMatrix):
        if config.window is not None:
            raise InvalidArgumentError(
                "You cannot specify a time window or node if the rate matrix is "
                "being provided. Either provide the posterior samples instead or "
                "set the window when creating the rate matrix."
            )
        return source
    raise InvalidArgumentError(
        "source must be of type BammData or RateMatrix, "
        f"got {type(source).__name__}"
    )


def quantile_polygons(
    rate: np.ndarray, times: np.ndarray, intervals: Tuple[float, ...]
) -> Tuple[np.ndarray, ...]:
    """
    Pair quantiles from the outside in and outline the band between each pair.

    With quantiles q_1 < ... < q_n the polygons are (q_1, q_n), (q_2, q_{n-1}), ...
    """
    bounds = np.quantile(rate, intervals, axis=0)
    polygons = []
    lower, upper = 0, bounds.shape[0] - 1
    while lower < upper:
        x = np.concatenate([times, times[::-1]])
        y = np.concatenate([bounds[lower], bounds[upper][::-1]])
        polygons.append(np.column_stack([x, y]))
        lower += 1
        upper -= 1
    return tuple(polygons)


def rate_through_time_curves(
    source: Union[BammData, RateMatrix], config: Optional[RateCurveConfig] = None
) -> RateCurves:
    """
    Compute the average line and interval polygons of a rate-through-time plot.

    Args:
        source: Posterior samples (a rate matrix is computed with
            ``config.window`` or ``config.n_bins``) or a pre-built RateMatrix.
        config: Rate type, averaging, quantile intervals and smoothing.

    Raises:
        InvalidArgumentError: For an unsupported source, a window combined
            with a pre-built matrix, a rate type the matrix cannot provide,
            or when no grid column has a rate in every sample.
    """
    if config is None:
        config = RateCurveConfig()
    InvalidArgumentError.expect_instance(config, RateCurveConfig, "config")
    rmat = _resolve_matrix(source, config)

    rate, rate_label = rmat.rates(config.rate_type)
    keep = ~np.isnan(rate).any(axis=0)
    rate = rate[:, keep]
    times = rmat.times_before_present[keep]
    if times.shape[0] == 0:
        raise InvalidArgumentError("No grid time has a rate in every sample")
    if not keep.all():
        logger.debug("Dropped %d grid columns with missing rates", int((~keep).sum()))

    polygons: Tuple[np.ndarray, ...] = ()
    if config.intervals is not None:
        polygons = quantile_polygons(rate, times, config.intervals)

    if config.use_median:
        avg = np.median(rate, axis=0)
    else:
        avg = rate.mean(axis=0)

    if config.smooth:
        n = times.shape[0]
        smoothed = []
        for polygon in polygons:
            lower = _smooth(polygon[:n, 1], times, config.smooth_param)
            upper = _smooth(polygon[n:, 1], times[::-1], config.smooth_param)
            smoothed.append(np.column_stack([polygon[:, 0], np.concatenate([lower, upper])]))
        polygons = tuple(smoothed)
        avg = _smooth(avg, times, config.smooth_param)

    return RateCurves(times=times, avg=avg, polygons=polygons, rate_label=rate_label)
