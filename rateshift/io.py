import logging
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import pandas as pd

from rateshift.events import EVENT_COLUMNS, BammData, ShiftEvent
from rateshift.exceptions import EventDataError, InvalidArgumentError
from rateshift.tree import PhyloTree
from rateshift.types.configs import EventDataConfig

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def parse_tree(newick: str) -> PhyloTree:
    return PhyloTree.from_newick(newick)


def read_newick(path: PathLike) -> PhyloTree:
    with open(path) as f:
        newick_string: str = f.read()
    return parse_tree(newick_string)


def write_newick(tree: PhyloTree, path: PathLike) -> None:
    with open(path, mode="w") as f:
        f.write(tree.to_newick() + "\n")


def _validate_event_frame(frame: pd.DataFrame) -> pd.DataFrame:
    missing = [column for column in EVENT_COLUMNS if column not in frame.columns]
    if missing:
        raise EventDataError(f"Event data is missing columns: {', '.join(missing)}")
    frame = frame.loc[:, list(EVENT_COLUMNS)]
    if frame.empty:
        raise EventDataError("Event data holds no events")
    if frame.isna().any().any():
        raise EventDataError("Event data contains missing values")
    try:
        frame = frame.astype(
            {
                "node": np.int64,
                "time": float,
                "lam1": float,
                "lam2": float,
                "mu1": float,
                "mu2": float,
                "index": np.int64,
            }
        )
    except (TypeError, ValueError) as exc:
        raise EventDataError(f"Event data has non-numeric entries: {exc}") from exc
    return frame.reset_index(drop=True)


def read_event_csv(path: PathLike) -> pd.DataFrame:
    """
    Read an event-data CSV with the columns ``node,time,lam1,lam2,mu1,mu2,index``.

    Raises:
        EventDataError: If columns are missing or values are not numeric.
    """
    frame = pd.read_csv(path)
    frame.columns = [str(column).strip() for column in frame.columns]
    return _validate_event_frame(frame)


def split_samples(frame: pd.DataFrame) -> List[pd.DataFrame]:
    """
    Split an event table into per-sample tables.

    The ``index`` column counts events within a sample, so a sample starts
    wherever it fails to increase.
    """
    frame = _validate_event_frame(frame)
    starts = frame["index"].diff().fillna(0).le(0)
    sample_ids = starts.cumsum()
    return [group for _, group in frame.groupby(sample_ids, sort=False)]


def _events_from_frame(frame: pd.DataFrame) -> List[ShiftEvent]:
    return [
        ShiftEvent(
            node=int(row.node),
            time=float(row.time),
            lam1=float(row.lam1),
            lam2=float(row.lam2),
            mu1=float(row.mu1),
            mu2=float(row.mu2),
        )
        for row in frame.itertuples(index=False)
    ]


def get_event_data(
    tree: PhyloTree,
    events: Union[PathLike, pd.DataFrame],
    config: Optional[EventDataConfig] = None,
) -> BammData:
    """
    Assemble posterior samples from a tree and an event table.

    The first ``floor(burnin * n)`` samples are discarded; if ``nsamples`` is
    set, the remainder is thinned to that many evenly spaced samples.

    Args:
        tree: The analysed tree.
        events: Event table or path to an event CSV.
        config: Burn-in, thinning and analysis type.

    Raises:
        InvalidArgumentError: If ``tree`` is not a PhyloTree.
        EventDataError: If the table is malformed or burn-in leaves nothing.
    """
    InvalidArgumentError.expect_instance(tree, PhyloTree, "tree")
    if config is None:
        config = EventDataConfig()
    InvalidArgumentError.expect_instance(config, EventDataConfig, "config")

    frame = events if isinstance(events, pd.DataFrame) else read_event_csv(events)
    samples = split_samples(frame)

    discard = int(np.floor(config.burnin * len(samples)))
    samples = samples[discard:]
    if not samples:
        raise EventDataError("No samples remain after burn-in")

    if config.nsamples is not None and config.nsamples < len(samples):
        chosen = np.unique(
            np.round(np.linspace(0, len(samples) - 1, config.nsamples)).astype(int)
        )
        samples = [samples[i] for i in chosen]

    logger.info(
        "Read %d posterior samples (%d discarded as burn-in)", len(samples), discard
    )
    return BammData.from_events(
        tree, (_events_from_frame(sample) for sample in samples), kind=config.kind
    )


def write_event_csv(ephy: BammData, path: PathLike) -> None:
    """Write every sample's events with the standard columns, samples in order."""
    InvalidArgumentError.expect_instance(ephy, BammData, "ephy")
    frame = pd.concat(
        [sample.to_frame() for sample in ephy.samples], ignore_index=True
    )
    frame.to_csv(path, index=False)
