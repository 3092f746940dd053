"""
Posterior samples of rate-shift configurations mapped onto a tree.

Each posterior sample is an EventAssignment: the sample's shift events plus
the branch segments they govern. The segments of every edge partition the
edge's time span, and each segment points at the most recent event on the
path from the root.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Sequence, Tuple

import numpy as np
import pandas as pd

from rateshift.exceptions import EventDataError, InvalidArgumentError
from rateshift.tree import PhyloTree
from rateshift.types.enums import AnalysisType, coerce_enum

logger = logging.getLogger(__name__)

EVENT_COLUMNS: Tuple[str, ...] = ("node", "time", "lam1", "lam2", "mu1", "mu2", "index")

# Slack allowed when checking that an event lies on its branch; event times
# written to CSV are rounded.
TIME_TOLERANCE = 1e-8


@dataclass(frozen=True)
class ShiftEvent:
    """
    A rate-shift event.

    ``lam1``/``lam2`` parameterise speciation (or trait) rate and ``mu1``/``mu2``
    extinction rate. ``lam2`` and ``mu2`` are exponents; zero means the rate is
    constant through time.
    """

    node: int
    time: float
    lam1: float
    lam2: float = 0.0
    mu1: float = 0.0
    mu2: float = 0.0


def _frozen(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class EventAssignment:
    """
    One posterior sample: its events and the branch segments they govern.

    Event index ``i`` refers to ``events[i]``; index 0 is always the root event.
    Segment arrays are parallel and ordered by the tree's pre-order, then time.
    """

    events: Tuple[ShiftEvent, ...]
    seg_node: np.ndarray
    seg_begin: np.ndarray
    seg_end: np.ndarray
    seg_event: np.ndarray
    event_vector: np.ndarray
    tip_states: np.ndarray
    _params: np.ndarray = field(repr=False)

    @property
    def n_events(self) -> int:
        return len(self.events)

    @property
    def n_segments(self) -> int:
        return self.seg_node.shape[0]

    @property
    def shift_nodes(self) -> Tuple[int, ...]:
        """Nodes on which a non-root event originates, sorted and unique."""
        return tuple(sorted({event.node for event in self.events[1:]}))

    def event_param(self, name: str) -> np.ndarray:
        """Per-event column (``time``, ``lam1``, ``lam2``, ``mu1`` or ``mu2``)."""
        try:
            column = _PARAM_COLUMNS.index(name)
        except ValueError:
            raise InvalidArgumentError(f"Unknown event parameter {name!r}") from None
        return self._params[:, column]

    def segments_of(self, node: int) -> np.ndarray:
        """Row indices of the segments lying on the edge subtending ``node``."""
        return np.flatnonzero(self.seg_node == node)

    def to_frame(self) -> pd.DataFrame:
        """Event table with the standard columns; ``index`` counts from 1."""
        return pd.DataFrame(
            {
                "node": [event.node for event in self.events],
                "time": self.event_param("time"),
                "lam1": self.event_param("lam1"),
                "lam2": self.event_param("lam2"),
                "mu1": self.event_param("mu1"),
                "mu2": self.event_param("mu2"),
                "index": np.arange(1, self.n_events + 1),
            },
            columns=list(EVENT_COLUMNS),
        )


_PARAM_COLUMNS = ("time", "lam1", "lam2", "mu1", "mu2")


def _event_node(tree: PhyloTree, node) -> int:
    """Node id of an event as an int; integral floats from CSV input are accepted."""
    if isinstance(node, (float, np.floating)) and float(node).is_integer():
        node = int(node)
    if (
        isinstance(node, bool)
        or not isinstance(node, (int, np.integer))
        or not 1 <= node <= tree.n_nodes
    ):
        raise EventDataError(f"Event on unknown node {node!r}")
    return int(node)


def _order_events(tree: PhyloTree, events: Sequence[ShiftEvent]) -> List[ShiftEvent]:
    """Validate events and order them root event first, then by time."""
    root_events = [event for event in events if event.node == tree.root]
    if len(root_events) != 1:
        raise EventDataError(
            f"Each sample needs exactly one root event (node {tree.root}), "
            f"found {len(root_events)}"
        )
    root_event = root_events[0]
    if abs(root_event.time - tree.node_times[tree.root]) > TIME_TOLERANCE:
        raise EventDataError(
            f"Root event must occur at time 0, found time {root_event.time}"
        )

    root_event = replace(root_event, node=tree.root)

    others = []
    for event in events:
        if event.node == tree.root:
            continue
        event = replace(event, node=_event_node(tree, event.node))
        others.append(event)
        edge = tree.edge_index(event.node)
        if not (
            tree.begin[edge] - TIME_TOLERANCE
            <= event.time
            <= tree.end[edge] + TIME_TOLERANCE
        ):
            raise EventDataError(
                f"Event on node {event.node} at time {event.time} lies outside "
                f"its branch [{tree.begin[edge]}, {tree.end[edge]}]"
            )
    # sorted() is stable, so simultaneous events keep their input order
    others = sorted(others, key=lambda event: event.time)
    return [root_event] + others


def build_event_assignment(
    tree: PhyloTree, events: Iterable[ShiftEvent]
) -> EventAssignment:
    """
    Map one sample's events onto the tree as branch segments.

    Walks the tree in pre-order. Each edge inherits the event governing the
    tipward end of its parent edge; events originating on the edge split it
    into consecutive segments. Zero-length segments are dropped, except that
    every edge keeps its tipward-most segment.

    Raises:
        EventDataError: If the root event is missing or duplicated, an event
            sits on an unknown node, or an event time lies outside its branch.
    """
    ordered = _order_events(tree, list(events))

    on_node: List[List[int]] = [[] for _ in range(tree.n_nodes + 1)]
    for index, event in enumerate(ordered[1:], start=1):
        on_node[event.node].append(index)

    # Every edge yields one segment plus one per event on it.
    capacity = tree.n_edges + len(ordered) - 1
    seg_node = np.empty(capacity, dtype=np.int64)
    seg_begin = np.empty(capacity, dtype=float)
    seg_end = np.empty(capacity, dtype=float)
    seg_event = np.empty(capacity, dtype=np.int64)

    governing_at_end = np.zeros(tree.n_nodes + 1, dtype=np.int64)
    event_vector = np.empty(tree.n_edges, dtype=np.int64)
    used = 0
    for node in tree.downseq[1:]:
        edge = tree.edge_index(node)
        governor = governing_at_end[tree.parent(node)]
        cursor = tree.begin[edge]
        edge_end = tree.end[edge]
        for index in on_node[node]:
            # Clamp to the branch so rounded CSV times cannot leave a gap
            split = min(max(ordered[index].time, cursor), edge_end)
            if split > cursor:
                seg_node[used] = node
                seg_begin[used] = cursor
                seg_end[used] = split
                seg_event[used] = governor
                used += 1
            cursor = split
            governor = index
        seg_node[used] = node
        seg_begin[used] = cursor
        seg_end[used] = edge_end
        seg_event[used] = governor
        used += 1
        governing_at_end[node] = governor
        event_vector[edge] = governor

    params = np.array(
        [[getattr(event, name) for name in _PARAM_COLUMNS] for event in ordered],
        dtype=float,
    )
    tip_states = governing_at_end[1 : tree.n_tips + 1].copy()

    return EventAssignment(
        events=tuple(ordered),
        seg_node=_frozen(seg_node[:used].copy()),
        seg_begin=_frozen(seg_begin[:used].copy()),
        seg_end=_frozen(seg_end[:used].copy()),
        seg_event=_frozen(seg_event[:used].copy()),
        event_vector=_frozen(event_vector),
        tip_states=_frozen(tip_states),
        _params=_frozen(params),
    )


@dataclass(frozen=True, eq=False)
class BammData:
    """
    A tree together with its posterior samples of shift configurations.

    ``kind`` is the discriminant that decides whether event rates are read as
    speciation/extinction or as trait rates.
    """

    tree: PhyloTree
    samples: Tuple[EventAssignment, ...]
    kind: AnalysisType = AnalysisType.DIVERSIFICATION

    def __post_init__(self):
        InvalidArgumentError.expect_instance(self.tree, PhyloTree, "tree")
        object.__setattr__(self, "samples", tuple(self.samples))
        if not self.samples:
            raise EventDataError("At least one posterior sample is required")
        for sample in self.samples:
            InvalidArgumentError.expect_instance(sample, EventAssignment, "sample")
        object.__setattr__(self, "kind", coerce_enum(AnalysisType, self.kind, "kind"))

    @classmethod
    def from_events(
        cls,
        tree: PhyloTree,
        samples: Iterable[Iterable[ShiftEvent]],
        kind: AnalysisType = AnalysisType.DIVERSIFICATION,
    ) -> "BammData":
        assignments = tuple(build_event_assignment(tree, events) for events in samples)
        logger.debug(
            "Built %d event assignments on a tree with %d tips",
            len(assignments),
            tree.n_tips,
        )
        return cls(tree=tree, samples=assignments, kind=kind)

    @property
    def n_samples(self) -> int:
        return len(self.samples)

    def subset(self, indices: Sequence[int]) -> "BammData":
        """A BammData holding only the samples at ``indices`` (0-based)."""
        indices = list(indices)
        for i in indices:
            if (
                isinstance(i, bool)
                or not isinstance(i, (int, np.integer))
                or not 0 <= i < self.n_samples
            ):
                raise InvalidArgumentError(
                    f"Sample indices must lie in 0..{self.n_samples - 1}, got {i!r}"
                )
        chosen = tuple(self.samples[i] for i in indices)
        return BammData(tree=self.tree, samples=chosen, kind=self.kind)

    def event_frame(self) -> pd.DataFrame:
        """All events of all samples, with a 0-based ``sample`` column."""
        frames = []
        for i, sample in enumerate(self.samples):
            frame = sample.to_frame()
            frame.insert(0, "sample", i)
            frames.append(frame)
        return pd.concat(frames, ignore_index=True)
