from typing import Tuple, Union

import numpy as np

from rateshift.events import EventAssignment
from rateshift.tree import PhyloTree

ArrayLike = Union[float, np.ndarray]


def exponential_rate(r1: ArrayLike, r2: ArrayLike, t: ArrayLike, t0: ArrayLike):
    """
    Instantaneous rate of an event's rate function at time ``t``.

    Constant ``r1`` when ``r2 == 0``, otherwise ``r1 * exp(r2 * (t - t0))``
    where ``t0`` is the event's origin time. Inputs broadcast like numpy
    arrays. Only meaningful for ``t >= t0``.
    """
    r1, r2, t, t0 = np.broadcast_arrays(
        np.asarray(r1, dtype=float),
        np.asarray(r2, dtype=float),
        np.asarray(t, dtype=float),
        np.asarray(t0, dtype=float),
    )
    with np.errstate(over="ignore", invalid="ignore"):
        rate = np.where(r2 == 0.0, r1, r1 * np.exp(r2 * (t - t0)))
    if rate.ndim == 0:
        return float(rate)
    return rate


def segment_rates(
    assignment: EventAssignment,
    segments: np.ndarray,
    times: np.ndarray,
    initial: str = "lam1",
    shape: str = "lam2",
) -> np.ndarray:
    """
    Rates of the selected segments on a time grid, shape (len(segments), len(times)).

    Each segment is evaluated with the rate function of its governing event.
    ``initial``/``shape`` choose the parameter pair (``lam1``/``lam2`` or
    ``mu1``/``mu2``).
    """
    governing = assignment.seg_event[segments]
    return exponential_rate(
        assignment.event_param(initial)[governing][:, None],
        assignment.event_param(shape)[governing][:, None],
        np.asarray(times, dtype=float)[None, :],
        assignment.event_param("time")[governing][:, None],
    )


def tip_rates(
    tree: PhyloTree, assignment: EventAssignment
) -> Tuple[np.ndarray, np.ndarray]:
    """Speciation (or trait) and extinction rates at every tip, in tip order."""
    states = assignment.tip_states
    t0 = assignment.event_param("time")[states]
    tip_lambda = exponential_rate(
        assignment.event_param("lam1")[states],
        assignment.event_param("lam2")[states],
        tree.tip_times,
        t0,
    )
    tip_mu = exponential_rate(
        assignment.event_param("mu1")[states],
        assignment.event_param("mu2")[states],
        tree.tip_times,
        t0,
    )
    return np.asarray(tip_lambda), np.asarray(tip_mu)
