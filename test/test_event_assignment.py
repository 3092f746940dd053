import numpy as np
import pandas as pd
import pytest

from rateshift.events import BammData, ShiftEvent, build_event_assignment
from rateshift.exceptions import EventDataError, InvalidArgumentError
from rateshift.types import AnalysisType

from conftest import root_event


def assert_partitions_edges(tree, assignment):
    """Segments of every edge tile [begin, end] without gaps or overlaps."""
    for edge, node in enumerate(tree.edge[:, 1]):
        rows = assignment.segments_of(node)
        assert rows.size >= 1
        begins = assignment.seg_begin[rows]
        ends = assignment.seg_end[rows]
        assert begins[0] == tree.begin[edge]
        assert ends[-1] == tree.end[edge]
        np.testing.assert_array_equal(begins[1:], ends[:-1])
        assert np.all(ends >= begins)


def test_segments_partition_every_edge(shift_samples):
    for sample in shift_samples.samples:
        assert_partitions_edges(shift_samples.tree, sample)


def test_root_only_sample(balanced_tree):
    assignment = build_event_assignment(balanced_tree, [root_event()])
    assert assignment.n_events == 1
    assert assignment.n_segments == balanced_tree.n_edges
    assert assignment.shift_nodes == ()
    assert np.all(assignment.seg_event == 0)
    assert np.all(assignment.event_vector == 0)
    assert np.all(assignment.tip_states == 0)


def test_shift_splits_its_branch(shift_samples):
    sample = shift_samples.samples[2]
    # events ordered root first, then by time: node 7 at 2.4 precedes node 5 at 2.5
    assert [event.node for event in sample.events] == [9, 7, 5]

    rows = sample.segments_of(5)
    np.testing.assert_array_equal(sample.seg_begin[rows], [2.0, 2.5])
    np.testing.assert_array_equal(sample.seg_end[rows], [2.5, 3.0])
    np.testing.assert_array_equal(sample.seg_event[rows], [0, 2])

    rows = sample.segments_of(7)
    np.testing.assert_array_equal(sample.seg_begin[rows], [2.0, 2.4])
    np.testing.assert_array_equal(sample.seg_event[rows], [0, 1])

    assert sample.tip_states.tolist() == [0, 0, 0, 0, 2, 0, 1, 0]
    assert sample.shift_nodes == (5, 7)


def test_shift_is_inherited_by_descendants(balanced_tree):
    events = [root_event(), ShiftEvent(13, 0.5, lam1=0.9)]
    assignment = build_event_assignment(balanced_tree, events)
    for node in balanced_tree.descendants(13)[1:]:
        rows = assignment.segments_of(node)
        assert np.all(assignment.seg_event[rows] == 1)
        assert assignment.event_vector[balanced_tree.edge_index(node)] == 1
    assert assignment.tip_states.tolist() == [0, 0, 0, 0, 1, 1, 1, 1]
    assert_partitions_edges(balanced_tree, assignment)


def test_zero_length_segments_are_dropped(balanced_tree):
    # a shift at the very start of a branch leaves no rootward piece
    events = [root_event(), ShiftEvent(11, 1.0, lam1=0.9)]
    assignment = build_event_assignment(balanced_tree, events)
    rows = assignment.segments_of(11)
    assert rows.size == 1
    assert assignment.seg_event[rows[0]] == 1

    # at the tipward end the branch keeps its last, zero-length piece
    events = [root_event(), ShiftEvent(11, 2.0, lam1=0.9)]
    assignment = build_event_assignment(balanced_tree, events)
    rows = assignment.segments_of(11)
    assert assignment.seg_begin[rows].tolist() == [1.0, 2.0]
    assert assignment.seg_end[rows].tolist() == [2.0, 2.0]
    assert assignment.event_vector[balanced_tree.edge_index(11)] == 1
    assert_partitions_edges(balanced_tree, assignment)


def test_two_shifts_on_one_branch(balanced_tree):
    events = [
        root_event(),
        ShiftEvent(5, 2.8, lam1=0.3),
        ShiftEvent(5, 2.2, lam1=0.4),
    ]
    assignment = build_event_assignment(balanced_tree, events)
    rows = assignment.segments_of(5)
    assert assignment.seg_begin[rows].tolist() == [2.0, 2.2, 2.8]
    assert assignment.seg_event[rows].tolist() == [0, 1, 2]
    assert assignment.event_param("lam1")[assignment.tip_states[4]] == 0.3
    assert assignment.shift_nodes == (5,)


def test_event_times_rounded_off_branch_are_clamped(balanced_tree):
    events = [root_event(), ShiftEvent(5, 3.0 + 1e-9, lam1=0.3)]
    assignment = build_event_assignment(balanced_tree, events)
    assert_partitions_edges(balanced_tree, assignment)


@pytest.mark.parametrize(
    "events",
    [
        [],
        [ShiftEvent(5, 2.5, lam1=0.3)],
        [root_event(), root_event()],
        [ShiftEvent(9, 0.5, lam1=0.2)],
        [root_event(), ShiftEvent(16, 1.0, lam1=0.3)],
        [root_event(), ShiftEvent(5, 1.5, lam1=0.3)],
        [root_event(), ShiftEvent(5, 3.5, lam1=0.3)],
        [root_event(), ShiftEvent(5.5, 2.5, lam1=0.3)],
        [root_event(), ShiftEvent(float("nan"), 2.5, lam1=0.3)],
        [root_event(), ShiftEvent("5", 2.5, lam1=0.3)],
        [root_event(), ShiftEvent(True, 2.5, lam1=0.3)],
    ],
)
def test_invalid_events(balanced_tree, events):
    with pytest.raises(EventDataError):
        build_event_assignment(balanced_tree, events)


def test_to_frame_columns(shift_samples):
    frame = shift_samples.samples[2].to_frame()
    assert list(frame.columns) == ["node", "time", "lam1", "lam2", "mu1", "mu2", "index"]
    assert frame["index"].tolist() == [1, 2, 3]
    assert frame["node"].tolist() == [9, 7, 5]


def test_event_param_unknown(shift_samples):
    with pytest.raises(InvalidArgumentError):
        shift_samples.samples[0].event_param("sigma")


def test_bamm_data(shift_samples):
    assert shift_samples.n_samples == 4
    assert shift_samples.kind is AnalysisType.DIVERSIFICATION

    frame = shift_samples.event_frame()
    assert isinstance(frame, pd.DataFrame)
    assert frame["sample"].tolist() == [0, 0, 1, 1, 2, 2, 2, 3]

    subset = shift_samples.subset([3, 0])
    assert subset.n_samples == 2
    assert subset.samples[0] is shift_samples.samples[3]
    with pytest.raises(InvalidArgumentError):
        shift_samples.subset([4])
    with pytest.raises(InvalidArgumentError):
        shift_samples.subset([-1])
    with pytest.raises(InvalidArgumentError):
        shift_samples.subset([1.0])


def test_bamm_data_validation(balanced_tree):
    with pytest.raises(EventDataError):
        BammData.from_events(balanced_tree, [])
    with pytest.raises(InvalidArgumentError):
        BammData.from_events(balanced_tree, [[root_event()]], kind="bogus")
    with pytest.raises(InvalidArgumentError):
        BammData(tree="((A:1,B:1));", samples=())

    trait = BammData.from_events(balanced_tree, [[root_event()]], kind="trait")
    assert trait.kind is AnalysisType.TRAIT


def test_integral_float_nodes_are_read_as_ids(balanced_tree):
    events = [ShiftEvent(9.0, 0.0, lam1=0.2), ShiftEvent(5.0, 2.5, lam1=0.4)]
    assignment = build_event_assignment(balanced_tree, events)
    assert [event.node for event in assignment.events] == [9, 5]
    assert all(type(event.node) is int for event in assignment.events)
    assert assignment.shift_nodes == (5,)
    assert assignment.tip_states[4] == 1
    assert_partitions_edges(balanced_tree, assignment)

    ephy = BammData.from_events(balanced_tree, [[root_event(), ShiftEvent(5.0, 2.5, lam1=0.4)]])
    assert ephy.samples[0].segments_of(5).size == 2
