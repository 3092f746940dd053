import numpy as np
import pandas as pd
import pytest

from rateshift.events import EVENT_COLUMNS
from rateshift.exceptions import EventDataError, InvalidArgumentError
from rateshift.io import (
    get_event_data,
    parse_tree,
    read_event_csv,
    read_newick,
    split_samples,
    write_event_csv,
    write_newick,
)
from rateshift.types import AnalysisType, EventDataConfig

from conftest import BALANCED_8


def event_table(n_samples: int) -> pd.DataFrame:
    """``n_samples`` samples; sample i carries a shift on node 5 at 2 + i / 10."""
    rows = []
    for i in range(n_samples):
        rows.append((9, 0.0, 0.2, 0.0, 0.05, 0.0, 1))
        rows.append((5, 2.0 + i / 10, 0.5 + i, -0.1, 0.1, 0.0, 2))
    return pd.DataFrame(rows, columns=list(EVENT_COLUMNS))


def test_newick_file_round_trip(tmp_path, balanced_tree):
    path = tmp_path / "tree.tre"
    write_newick(balanced_tree, path)
    again = read_newick(path)
    np.testing.assert_array_equal(again.edge, balanced_tree.edge)
    np.testing.assert_array_equal(again.edge_length, balanced_tree.edge_length)
    assert again.tip_labels == balanced_tree.tip_labels


def test_parse_tree():
    assert parse_tree(BALANCED_8).n_tips == 8


def test_split_samples():
    frame = event_table(3)
    samples = split_samples(frame)
    assert len(samples) == 3
    assert [len(sample) for sample in samples] == [2, 2, 2]
    assert samples[2]["time"].tolist() == pytest.approx([0.0, 2.2])


def test_split_samples_root_only():
    frame = pd.DataFrame(
        [(9, 0.0, 0.2, 0.0, 0.0, 0.0, 1)] * 3, columns=list(EVENT_COLUMNS)
    )
    assert len(split_samples(frame)) == 3


def test_get_event_data(balanced_tree):
    ephy = get_event_data(balanced_tree, event_table(4), EventDataConfig(burnin=0.0))
    assert ephy.n_samples == 4
    assert ephy.kind is AnalysisType.DIVERSIFICATION
    assert ephy.samples[1].events[1].time == pytest.approx(2.1)


def test_burnin_discards_leading_samples(balanced_tree):
    ephy = get_event_data(balanced_tree, event_table(4), EventDataConfig(burnin=0.5))
    assert ephy.n_samples == 2
    assert ephy.samples[0].events[1].lam1 == pytest.approx(2.5)

    # floor(0.1 * 4) = 0 samples are dropped
    ephy = get_event_data(balanced_tree, event_table(4))
    assert ephy.n_samples == 4


def test_thinning(balanced_tree):
    ephy = get_event_data(
        balanced_tree, event_table(4), EventDataConfig(burnin=0.0, nsamples=2)
    )
    assert ephy.n_samples == 2
    assert ephy.samples[0].events[1].lam1 == pytest.approx(0.5)
    assert ephy.samples[1].events[1].lam1 == pytest.approx(3.5)


def test_trait_kind(balanced_tree):
    ephy = get_event_data(
        balanced_tree, event_table(2), EventDataConfig(burnin=0.0, kind="trait")
    )
    assert ephy.kind is AnalysisType.TRAIT


def test_event_csv_round_trip(tmp_path, shift_samples):
    path = tmp_path / "event_data.txt"
    write_event_csv(shift_samples, path)
    with open(path) as f:
        assert f.readline().strip() == "node,time,lam1,lam2,mu1,mu2,index"

    frame = read_event_csv(path)
    assert len(frame) == 8
    again = get_event_data(shift_samples.tree, path, EventDataConfig(burnin=0.0))
    assert again.n_samples == shift_samples.n_samples
    for old, new in zip(shift_samples.samples, again.samples):
        assert old.events == new.events
        np.testing.assert_array_equal(old.seg_event, new.seg_event)


def test_malformed_event_tables(tmp_path, balanced_tree):
    with pytest.raises(EventDataError):
        split_samples(event_table(2).drop(columns=["mu2"]))
    with pytest.raises(EventDataError):
        split_samples(event_table(0))

    frame = event_table(2)
    frame.loc[1, "time"] = np.nan
    with pytest.raises(EventDataError):
        split_samples(frame)

    frame = event_table(2).astype({"lam1": object})
    frame.loc[1, "lam1"] = "fast"
    with pytest.raises(EventDataError):
        split_samples(frame)

    path = tmp_path / "events.csv"
    path.write_text("node,time\n9,0\n")
    with pytest.raises(EventDataError):
        read_event_csv(path)


def test_event_data_errors(balanced_tree):
    with pytest.raises(InvalidArgumentError):
        get_event_data(BALANCED_8, event_table(2))
    with pytest.raises(InvalidArgumentError):
        EventDataConfig(burnin=1.0)
    with pytest.raises(InvalidArgumentError):
        EventDataConfig(nsamples=0)

    bad = event_table(2)
    bad.loc[1, "node"] = 16
    with pytest.raises(EventDataError):
        get_event_data(balanced_tree, bad, EventDataConfig(burnin=0.0))
