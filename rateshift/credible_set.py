"""
Distinct shift configurations and credible sets of configurations.

A "core" shift is one sitting on a branch whose marginal posterior
probability of a shift is at least ``threshold`` times its prior
probability. Samples are grouped by the set of core shifts they contain;
groups ranked by frequency form the distinct shift configurations, and the
smallest frequency-ordered prefix reaching ``set_limit`` is the credible set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from rateshift.events import BammData, EventAssignment, ShiftEvent, build_event_assignment
from rateshift.exceptions import InvalidArgumentError
from rateshift.rates import tip_rates
from rateshift.tree import PhyloTree
from rateshift.types.configs import CredibleSetConfig
from rateshift.types.enums import AnalysisType, EventMatchPolicy

logger = logging.getLogger(__name__)

# Cumulative frequencies are sums of floats; allow for rounding when
# comparing against set_limit.
CUMULATIVE_TOLERANCE = 1e-9


# ===================================================================
# 1. BRANCH PRIORS AND MARGINAL PROBABILITIES
# ===================================================================


def get_branch_shift_priors(
    tree: PhyloTree, expected_number_of_shifts: float
) -> np.ndarray:
    """
    Prior probability of at least one shift on each edge.

    Shifts follow a Poisson process along the tree with rate
    ``expected_number_of_shifts / tree_length``, so an edge of length ``l``
    carries a shift with probability ``1 - exp(-rate * l)``.

    Returns:
        Array of prior probabilities in edge order.
    """
    InvalidArgumentError.expect_instance(tree, PhyloTree, "tree")
    if not expected_number_of_shifts > 0:
        raise InvalidArgumentError(
            "expected_number_of_shifts must be positive, "
            f"got {expected_number_of_shifts}"
        )
    rate = expected_number_of_shifts / tree.tree_length
    return 1.0 - np.exp(-rate * tree.edge_length)


def marginal_shift_probs(ephy: BammData) -> np.ndarray:
    """Fraction of samples with at least one shift on each edge, in edge order."""
    InvalidArgumentError.expect_instance(ephy, BammData, "ephy")
    tree = ephy.tree
    counts = np.zeros(tree.n_edges)
    for sample in ephy.samples:
        nodes = np.asarray(sample.shift_nodes, dtype=np.int64)
        if nodes.size:
            counts[tree.edge_indices(nodes)] += 1
    return counts / ephy.n_samples


def marginal_odds_ratios(posterior: np.ndarray, prior: np.ndarray) -> np.ndarray:
    """Posterior-to-prior ratio per edge; edges with zero prior get 0."""
    posterior = np.asarray(posterior, dtype=float)
    prior = np.asarray(prior, dtype=float)
    odds = np.zeros_like(posterior)
    np.divide(posterior, prior, out=odds, where=prior > 0)
    return odds


# ===================================================================
# 2. DISTINCT SHIFT CONFIGURATIONS
# ===================================================================


@dataclass(frozen=True, eq=False)
class DistinctShiftConfigurations:
    """
    All distinct core-shift configurations, most frequent first.

    ``shifts[i]`` is the sorted tuple of core shift nodes of configuration i
    and ``sample_sets[i]`` the 0-based indices of the samples showing it.
    Per-edge arrays (``marg_probs``, ``marg_odds``, ``prior_probs``) follow
    the tree's edge order.
    """

    shifts: Tuple[Tuple[int, ...], ...]
    sample_sets: Tuple[Tuple[int, ...], ...]
    frequency: np.ndarray
    cumulative: np.ndarray
    marg_probs: np.ndarray
    marg_odds: np.ndarray
    prior_probs: np.ndarray
    coreshifts: Tuple[int, ...]
    threshold: float

    @property
    def number_distinct(self) -> int:
        return len(self.shifts)


def core_shift_nodes(tree: PhyloTree, marg_odds: np.ndarray, threshold: float) -> Tuple[int, ...]:
    """Child nodes of edges whose marginal odds ratio reaches ``threshold``."""
    return tuple(sorted(int(node) for node in tree.edge[:, 1][marg_odds >= threshold]))


def distinct_shift_configurations(
    ephy: BammData, expected_number_of_shifts: float, threshold: float = 5.0
) -> DistinctShiftConfigurations:
    """
    Group posterior samples by their set of core shifts.

    Groups are ranked by descending size; groups of equal size keep the order
    in which they were first encountered in the sample sequence.

    Raises:
        InvalidArgumentError: If ``ephy`` is not a BammData, the expected
            number of shifts is not positive or the threshold is negative.
    """
    InvalidArgumentError.expect_instance(ephy, BammData, "ephy")
    if threshold < 0:
        raise InvalidArgumentError(f"threshold must be non-negative, got {threshold}")
    tree = ephy.tree

    prior = get_branch_shift_priors(tree, expected_number_of_shifts)
    marg_probs = marginal_shift_probs(ephy)
    marg_odds = marginal_odds_ratios(marg_probs, prior)
    coreshifts = core_shift_nodes(tree, marg_odds, threshold)
    core = set(coreshifts)

    groups: Dict[Tuple[int, ...], List[int]] = {}
    for i, sample in enumerate(ephy.samples):
        key = tuple(node for node in sample.shift_nodes if node in core)
        groups.setdefault(key, []).append(i)

    # sorted() is stable, so ties keep first-encountered order
    ranked = sorted(groups.items(), key=lambda item: -len(item[1]))
    frequency = np.array([len(indices) for _, indices in ranked]) / ephy.n_samples

    logger.info(
        "Found %d distinct shift configurations among %d samples (%d core shifts)",
        len(ranked),
        ephy.n_samples,
        len(coreshifts),
    )

    return DistinctShiftConfigurations(
        shifts=tuple(key for key, _ in ranked),
        sample_sets=tuple(tuple(indices) for _, indices in ranked),
        frequency=frequency,
        cumulative=np.cumsum(frequency),
        marg_probs=marg_probs,
        marg_odds=marg_odds,
        prior_probs=prior,
        coreshifts=coreshifts,
        threshold=threshold,
    )


# ===================================================================
# 3. CREDIBLE SET
# ===================================================================


@dataclass(frozen=True, eq=False)
class ShiftConfiguration:
    """
    One configuration of the credible set with parameters averaged over its samples.

    ``events`` holds the root event followed by one averaged event per core
    shift node; ``assignment`` maps those averaged events onto the tree.
    ``tip_lambda``/``tip_mu`` average each assigned sample's own tip rates.
    """

    rank: int
    shift_nodes: Tuple[int, ...]
    sample_indices: Tuple[int, ...]
    frequency: float
    cumulative_frequency: float
    events: Tuple[ShiftEvent, ...]
    assignment: EventAssignment
    tip_lambda: np.ndarray
    tip_mu: np.ndarray

    @property
    def number_of_events(self) -> int:
        return len(self.events)

    def event_frame(self) -> pd.DataFrame:
        return self.assignment.to_frame()


@dataclass(frozen=True, eq=False)
class CredibleShiftSet:
    tree: PhyloTree
    kind: AnalysisType
    configurations: Tuple[ShiftConfiguration, ...]
    expected_number_of_shifts: float
    threshold: float
    set_limit: float
    coreshifts: Tuple[int, ...]
    marg_probs: np.ndarray
    marg_odds: np.ndarray
    prior_probs: np.ndarray

    @property
    def number_distinct(self) -> int:
        return len(self.configurations)

    @property
    def frequency(self) -> np.ndarray:
        return np.array([c.frequency for c in self.configurations])

    @property
    def cumulative(self) -> np.ndarray:
        return np.array([c.cumulative_frequency for c in self.configurations])

    @property
    def shiftnodes(self) -> List[Tuple[int, ...]]:
        return [c.shift_nodes for c in self.configurations]

    @property
    def indices(self) -> List[Tuple[int, ...]]:
        return [c.sample_indices for c in self.configurations]

    def summary(self) -> pd.DataFrame:
        """One row per configuration: rank, probability, cumulative, core shifts."""
        return pd.DataFrame(
            {
                "rank": [c.rank for c in self.configurations],
                "probability": self.frequency,
                "cumulative": self.cumulative,
                "core_shifts": [len(c.shift_nodes) for c in self.configurations],
                "shift_nodes": self.shiftnodes,
            }
        )


def _matched_events(
    ephy: BammData,
    sample_indices: Tuple[int, ...],
    node: int,
    policy: EventMatchPolicy,
    time_tolerance: float,
) -> List[ShiftEvent]:
    """Pick, from each sample, the event standing for ``node`` in the configuration."""
    matched = []
    for i in sample_indices:
        candidates = [event for event in ephy.samples[i].events if event.node == node]
        if candidates:
            # events are time-ordered, so this is the earliest shift on the branch
            matched.append(candidates[0])

    if policy is EventMatchPolicy.NODE:
        return matched
    if policy is EventMatchPolicy.NODE_AND_TIME:
        center = float(np.median([event.time for event in matched]))
        close = [e for e in matched if abs(e.time - center) <= time_tolerance]
        if close:
            return close
        return [min(matched, key=lambda e: abs(e.time - center))]
    raise InvalidArgumentError(f"Unhandled match policy {policy!r}")


def _average_event(node: int, events: List[ShiftEvent]) -> ShiftEvent:
    return ShiftEvent(
        node=node,
        time=float(np.mean([e.time for e in events])),
        lam1=float(np.mean([e.lam1 for e in events])),
        lam2=float(np.mean([e.lam2 for e in events])),
        mu1=float(np.mean([e.mu1 for e in events])),
        mu2=float(np.mean([e.mu2 for e in events])),
    )


def _build_configuration(
    ephy: BammData,
    rank: int,
    shift_nodes: Tuple[int, ...],
    sample_indices: Tuple[int, ...],
    frequency: float,
    cumulative: float,
    config: CredibleSetConfig,
) -> ShiftConfiguration:
    tree = ephy.tree
    events = [
        _average_event(
            node,
            _matched_events(
                ephy, sample_indices, node, config.match_policy, config.time_tolerance
            ),
        )
        for node in (tree.root,) + shift_nodes
    ]

    tip_lambda = np.zeros(tree.n_tips)
    tip_mu = np.zeros(tree.n_tips)
    for i in sample_indices:
        lam, mu = tip_rates(tree, ephy.samples[i])
        tip_lambda += lam
        tip_mu += mu
    tip_lambda /= len(sample_indices)
    tip_mu /= len(sample_indices)

    return ShiftConfiguration(
        rank=rank,
        shift_nodes=shift_nodes,
        sample_indices=sample_indices,
        frequency=float(frequency),
        cumulative_frequency=float(cumulative),
        events=tuple(events),
        assignment=build_event_assignment(tree, events),
        tip_lambda=tip_lambda,
        tip_mu=tip_mu,
    )


def credible_shift_set(
    ephy: BammData, config: CredibleSetConfig
) -> CredibleShiftSet:
    """
    The credible set of distinct shift configurations.

    Keeps the most frequent configurations until their cumulative frequency
    reaches ``config.set_limit`` and averages the rate parameters of each
    kept configuration over the samples assigned to it. Events are paired
    across samples by the node they originate on (see ``EventMatchPolicy``).

    Raises:
        InvalidArgumentError: If ``ephy`` or ``config`` have the wrong type.
            Value checks on the options happen when the config is built.
    """
    InvalidArgumentError.expect_instance(ephy, BammData, "ephy")
    InvalidArgumentError.expect_instance(config, CredibleSetConfig, "config")

    dsc = distinct_shift_configurations(
        ephy, config.expected_number_of_shifts, config.threshold
    )
    reached = np.flatnonzero(dsc.cumulative >= config.set_limit - CUMULATIVE_TOLERANCE)
    # The last cumulative frequency is 1 up to rounding, so something is reached
    cut = int(reached[0]) + 1 if reached.size else dsc.number_distinct

    configurations = tuple(
        _build_configuration(
            ephy,
            rank=rank,
            shift_nodes=dsc.shifts[rank],
            sample_indices=dsc.sample_sets[rank],
            frequency=dsc.frequency[rank],
            cumulative=dsc.cumulative[rank],
            config=config,
        )
        for rank in range(cut)
    )

    logger.info(
        "%g credible set holds %d of %d distinct configurations",
        config.set_limit,
        cut,
        dsc.number_distinct,
    )

    return CredibleShiftSet(
        tree=ephy.tree,
        kind=ephy.kind,
        configurations=configurations,
        expected_number_of_shifts=config.expected_number_of_shifts,
        threshold=config.threshold,
        set_limit=config.set_limit,
        coreshifts=dsc.coreshifts,
        marg_probs=dsc.marg_probs,
        marg_odds=dsc.marg_odds,
        prior_probs=dsc.prior_probs,
    )


def best_shift_configuration(
    ephy: BammData, expected_number_of_shifts: float, threshold: float = 5.0
) -> ShiftConfiguration:
    """The maximum a posteriori configuration with its averaged parameters."""
    cset = credible_shift_set(
        ephy,
        CredibleSetConfig(
            expected_number_of_shifts=expected_number_of_shifts,
            threshold=threshold,
            set_limit=CUMULATIVE_TOLERANCE,
        ),
    )
    return cset.configurations[0]
