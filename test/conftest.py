import logging

import pytest

from rateshift.events import BammData, ShiftEvent
from rateshift.tree import PhyloTree

# Tips A..H are nodes 1..8, the root is 9 and internal nodes follow in
# pre-order: 10=(A,B,C,D) 11=(A,B) 12=(C,D) 13=(E,F,G,H) 14=(E,F) 15=(G,H).
BALANCED_8 = "(((A:1,B:1):1,(C:1,D:1):1):1,((E:1,F:1):1,(G:1,H:1):1):1);"


def pytest_configure(config):
    """Set up test environment before tests run."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@pytest.fixture
def balanced_tree() -> PhyloTree:
    return PhyloTree.from_newick(BALANCED_8)


def root_event(lam1: float = 0.2, lam2: float = 0.0, mu1: float = 0.05, mu2: float = 0.0):
    return ShiftEvent(node=9, time=0.0, lam1=lam1, lam2=lam2, mu1=mu1, mu2=mu2)


@pytest.fixture
def shift_samples(balanced_tree) -> BammData:
    """
    Four samples: {5}, {5}, {5, 7} and no shift.

    Node 5 (tip E) carries a shift in three of four samples, node 7 (tip G)
    in one.
    """
    samples = [
        [root_event(), ShiftEvent(5, 2.5, lam1=0.5, lam2=-0.1, mu1=0.1)],
        [root_event(), ShiftEvent(5, 2.2, lam1=0.7, lam2=-0.3, mu1=0.2)],
        [
            root_event(),
            ShiftEvent(5, 2.5, lam1=0.6, lam2=0.0, mu1=0.1),
            ShiftEvent(7, 2.4, lam1=0.9, lam2=0.05, mu1=0.3),
        ],
        [root_event()],
    ]
    return BammData.from_events(balanced_tree, samples)
