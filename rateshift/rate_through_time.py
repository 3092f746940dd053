"""
Rate-through-time matrices from posterior samples.

Rates are sampled along imaginary vertical lines through the tree: at each
grid time the rate of every lineage alive at that moment is evaluated, and
the grid value for a sample is the mean over those lineages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np

from rateshift.events import BammData, EventAssignment
from rateshift.exceptions import InvalidArgumentError
from rateshift.rates import segment_rates
from rateshift.types.configs import RateThroughTimeConfig
from rateshift.types.enums import AnalysisType, NodeMode, RateType, coerce_enum

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class RateMatrix:
    """
    Samples x time-slices rate estimates.

    Diversification matrices carry ``lam`` and ``mu``; trait matrices carry
    ``beta``. Entries are NaN where no lineage qualified at a grid time.

    Attributes:
        kind: Which rate family the matrix holds.
        times: Absolute grid times (root = 0), strictly increasing.
        max_time: Time of the present, used for times before present.
    """

    kind: AnalysisType
    times: np.ndarray
    max_time: float
    lam: Optional[np.ndarray] = None
    mu: Optional[np.ndarray] = None
    beta: Optional[np.ndarray] = None

    def __post_init__(self):
        if self.kind is AnalysisType.DIVERSIFICATION:
            if self.lam is None or self.mu is None or self.beta is not None:
                raise InvalidArgumentError(
                    "A diversification rate matrix holds lam and mu only"
                )
        elif self.kind is AnalysisType.TRAIT:
            if self.beta is None or self.lam is not None or self.mu is not None:
                raise InvalidArgumentError("A trait rate matrix holds beta only")
        else:
            raise InvalidArgumentError(f"Unknown analysis type {self.kind!r}")

    @property
    def n_samples(self) -> int:
        return self._primary.shape[0]

    @property
    def n_slices(self) -> int:
        return self.times.shape[0]

    @property
    def times_before_present(self) -> np.ndarray:
        return self.max_time - self.times

    @property
    def _primary(self) -> np.ndarray:
        return self.beta if self.kind is AnalysisType.TRAIT else self.lam

    def rates(self, rate_type: Union[RateType, str] = RateType.AUTO) -> Tuple[np.ndarray, str]:
        """
        Resolve a rate type to a matrix and an axis label.

        ``auto`` (or its alias ``speciation``) is speciation for
        diversification matrices and beta for trait matrices. Trait matrices
        accept nothing else.

        Raises:
            InvalidArgumentError: For rate types the matrix cannot provide.
        """
        rate_type = coerce_enum(RateType, rate_type, "rate_type")
        if rate_type is RateType.SPECIATION:
            rate_type = RateType.AUTO

        if self.kind is AnalysisType.TRAIT:
            if rate_type is not RateType.AUTO:
                raise InvalidArgumentError(
                    "If the rate matrix is of type 'trait', rate_type can only be 'auto'"
                )
            return self.beta, "trait rate"

        if rate_type is RateType.AUTO:
            return self.lam, "speciation rate"
        if rate_type is RateType.EXTINCTION:
            return self.mu, "extinction rate"
        if rate_type is RateType.NETDIV:
            return self.lam - self.mu, "net diversification rate"
        raise InvalidArgumentError(f"Unhandled rate type {rate_type!r}")


def _qualifying_segments(
    sample: EventAssignment, clade: Optional[np.ndarray], node_mode: NodeMode
) -> np.ndarray:
    if clade is None:
        return np.arange(sample.n_segments)
    in_clade = np.isin(sample.seg_node, clade)
    if node_mode is NodeMode.INCLUDE:
        return np.flatnonzero(in_clade)
    if node_mode is NodeMode.EXCLUDE:
        return np.flatnonzero(~in_clade)
    raise InvalidArgumentError(f"Unhandled node mode {node_mode!r}")


def alive_mask(begin: np.ndarray, end: np.ndarray, times: np.ndarray) -> np.ndarray:
    """
    Boolean (segments, times) matrix of segments crossing each grid time.

    Segments are half-open ``[begin, end)``, except at the last grid time,
    which is sampled from the tipward side ``(begin, end]`` so that the
    present still sees the terminal branches.
    """
    b = begin[:, None]
    e = end[:, None]
    t = times[None, :]
    mask = (b <= t) & (t < e)
    mask[:, -1] = (begin < times[-1]) & (times[-1] <= end)
    return mask


def _grid_mean(rates: np.ndarray, mask: np.ndarray) -> np.ndarray:
    counts = mask.sum(axis=0)
    totals = np.where(mask, rates, 0.0).sum(axis=0)
    with np.errstate(invalid="ignore", divide="ignore"):
        return np.where(counts > 0, totals / np.maximum(counts, 1), np.nan)


def get_rate_through_time_matrix(
    ephy: BammData, config: Optional[RateThroughTimeConfig] = None
) -> RateMatrix:
    """
    Compute rate-through-time matrices for every posterior sample.

    Args:
        ephy: Tree and posterior samples.
        config: Time window, optional clade filter and number of slices.
            The window defaults to [root time, time of the tipmost tip].

    Returns:
        RateMatrix with one row per sample and one column per grid time.

    Raises:
        InvalidArgumentError: If ``ephy`` is not a BammData, the window is
            empty, or the filter node is not in the tree.
    """
    InvalidArgumentError.expect_instance(ephy, BammData, "ephy")
    if config is None:
        config = RateThroughTimeConfig()
    InvalidArgumentError.expect_instance(config, RateThroughTimeConfig, "config")

    tree = ephy.tree
    start = (
        float(tree.node_times[tree.root])
        if config.start_time is None
        else float(config.start_time)
    )
    end = tree.max_time if config.end_time is None else float(config.end_time)
    if start >= end:
        raise InvalidArgumentError(
            f"start_time ({start}) must precede end_time ({end})"
        )

    clade = None
    if config.node is not None:
        clade = tree.descendants(tree.check_node(config.node))

    times = np.linspace(start, end, config.n_slices)
    n_samples = ephy.n_samples
    primary = np.empty((n_samples, config.n_slices))
    secondary = (
        np.empty((n_samples, config.n_slices))
        if ephy.kind is AnalysisType.DIVERSIFICATION
        else None
    )

    logger.debug(
        "Rate-through-time grid: %d samples, %d slices over [%g, %g]",
        n_samples,
        config.n_slices,
        start,
        end,
    )

    for i, sample in enumerate(ephy.samples):
        segments = _qualifying_segments(sample, clade, config.node_mode)
        mask = alive_mask(sample.seg_begin[segments], sample.seg_end[segments], times)
        primary[i] = _grid_mean(
            segment_rates(sample, segments, times, "lam1", "lam2"), mask
        )
        if secondary is not None:
            secondary[i] = _grid_mean(
                segment_rates(sample, segments, times, "mu1", "mu2"), mask
            )

    n_empty = int(np.isnan(primary).any(axis=0).sum())
    if n_empty:
        logger.debug("%d grid times have no qualifying lineage in some sample", n_empty)

    primary.setflags(write=False)
    times.setflags(write=False)
    if ephy.kind is AnalysisType.TRAIT:
        return RateMatrix(
            kind=ephy.kind, times=times, max_time=tree.max_time, beta=primary
        )
    secondary.setflags(write=False)
    return RateMatrix(
        kind=ephy.kind,
        times=times,
        max_time=tree.max_time,
        lam=primary,
        mu=secondary,
    )
