"""Per-operation configuration objects.

Every option of an operation lives in one frozen dataclass and is validated
when the dataclass is constructed, so the engines can assume sane values.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

import numpy as np

from rateshift.exceptions import InvalidArgumentError
from rateshift.types.enums import (
    AnalysisType,
    EventMatchPolicy,
    NodeMode,
    RateType,
    ReturnType,
    coerce_enum,
)


@dataclass(frozen=True)
class RateThroughTimeConfig:
    """Time window, clade filter and grid resolution for rate-through-time."""

    start_time: Optional[float] = None
    end_time: Optional[float] = None
    node: Optional[int] = None
    node_mode: Union[NodeMode, str] = NodeMode.INCLUDE
    n_slices: int = 100

    def __post_init__(self):
        object.__setattr__(
            self, "node_mode", coerce_enum(NodeMode, self.node_mode, "node_mode")
        )
        if isinstance(self.n_slices, bool) or int(self.n_slices) != self.n_slices:
            raise InvalidArgumentError(
                f"n_slices must be an integer, got {self.n_slices!r}"
            )
        object.__setattr__(self, "n_slices", int(self.n_slices))
        if self.n_slices < 2:
            raise InvalidArgumentError(
                f"n_slices must be at least 2, got {self.n_slices}"
            )
        if (
            self.start_time is not None
            and self.end_time is not None
            and self.start_time >= self.end_time
        ):
            raise InvalidArgumentError(
                f"start_time ({self.start_time}) must precede end_time ({self.end_time})"
            )


@dataclass(frozen=True)
class CredibleSetConfig:
    """Options for distinct shift configurations and the credible set."""

    expected_number_of_shifts: float
    threshold: float = 5.0
    set_limit: float = 0.95
    match_policy: Union[EventMatchPolicy, str] = EventMatchPolicy.NODE
    time_tolerance: float = np.inf

    def __post_init__(self):
        object.__setattr__(
            self,
            "match_policy",
            coerce_enum(EventMatchPolicy, self.match_policy, "match_policy"),
        )
        if not self.expected_number_of_shifts > 0:
            raise InvalidArgumentError(
                "expected_number_of_shifts must be positive, "
                f"got {self.expected_number_of_shifts}"
            )
        if self.threshold < 0:
            raise InvalidArgumentError(
                f"threshold must be non-negative, got {self.threshold}"
            )
        if not 0 < self.set_limit <= 1:
            raise InvalidArgumentError(
                f"set_limit must lie in (0, 1], got {self.set_limit}"
            )
        if self.time_tolerance < 0:
            raise InvalidArgumentError(
                f"time_tolerance must be non-negative, got {self.time_tolerance}"
            )


@dataclass(frozen=True)
class TimeVariationConfig:
    prior_tv: float = 0.5
    return_type: Union[ReturnType, str] = ReturnType.POSTERIOR

    def __post_init__(self):
        object.__setattr__(
            self,
            "return_type",
            coerce_enum(ReturnType, self.return_type, "return_type"),
        )
        if not 0 < self.prior_tv < 1:
            raise InvalidArgumentError(
                f"prior_tv must lie in (0, 1), got {self.prior_tv}"
            )


def _default_intervals() -> Tuple[float, ...]:
    return tuple(np.round(np.linspace(0.0, 1.0, 101), 2))


@dataclass(frozen=True)
class RateCurveConfig:
    """Options for turning a rate matrix into plot-ready curves.

    ``window`` is only meaningful when curves are computed straight from
    posterior samples; a pre-built RateMatrix already fixes its window.
    """

    rate_type: Union[RateType, str] = RateType.AUTO
    use_median: bool = True
    intervals: Optional[Tuple[float, ...]] = field(default_factory=_default_intervals)
    smooth: bool = False
    smooth_param: float = 0.2
    n_bins: int = 100
    window: Optional[RateThroughTimeConfig] = None

    def __post_init__(self):
        object.__setattr__(
            self, "rate_type", coerce_enum(RateType, self.rate_type, "rate_type")
        )
        if not isinstance(self.use_median, bool):
            raise InvalidArgumentError("use_median must be either True or False")
        if not isinstance(self.smooth, bool):
            raise InvalidArgumentError("smooth must be either True or False")
        if self.intervals is not None:
            intervals = tuple(float(q) for q in self.intervals)
            if len(intervals) < 2:
                raise InvalidArgumentError(
                    "intervals must hold at least two quantiles or be None"
                )
            if any(q < 0 or q > 1 for q in intervals):
                raise InvalidArgumentError("intervals must be quantiles in [0, 1]")
            if list(intervals) != sorted(intervals):
                raise InvalidArgumentError("intervals must be sorted ascending")
            object.__setattr__(self, "intervals", intervals)
        if not 0 < self.smooth_param <= 1:
            raise InvalidArgumentError(
                f"smooth_param must lie in (0, 1], got {self.smooth_param}"
            )
        if self.n_bins < 2:
            raise InvalidArgumentError(f"n_bins must be at least 2, got {self.n_bins}")
        if self.window is not None and not isinstance(
            self.window, RateThroughTimeConfig
        ):
            raise InvalidArgumentError(
                "window must be a RateThroughTimeConfig or None"
            )


@dataclass(frozen=True)
class EventDataConfig:
    """Burn-in, thinning and analysis type for event-data ingestion."""

    burnin: float = 0.1
    nsamples: Optional[int] = None
    kind: Union[AnalysisType, str] = AnalysisType.DIVERSIFICATION

    def __post_init__(self):
        object.__setattr__(self, "kind", coerce_enum(AnalysisType, self.kind, "kind"))
        if not 0 <= self.burnin < 1:
            raise InvalidArgumentError(f"burnin must lie in [0, 1), got {self.burnin}")
        if self.nsamples is not None and self.nsamples < 1:
            raise InvalidArgumentError(
                f"nsamples must be positive, got {self.nsamples}"
            )
