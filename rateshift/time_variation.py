import logging
from typing import Optional

import numpy as np

from rateshift.events import BammData
from rateshift.exceptions import InvalidArgumentError
from rateshift.tree import PhyloTree
from rateshift.types.configs import TimeVariationConfig
from rateshift.types.enums import ReturnType

logger = logging.getLogger(__name__)

# A shape parameter at or below this magnitude counts as a constant-rate regime
TOL = np.finfo(float).eps * 10


def time_varying_probabilities(ephy: BammData) -> np.ndarray:
    """
    Per edge, the fraction of samples whose regime at the edge's tipward end
    is time-varying (``|lam2| > TOL``).
    """
    InvalidArgumentError.expect_instance(ephy, BammData, "ephy")
    counts = np.zeros(ephy.tree.n_edges)
    for sample in ephy.samples:
        shape = sample.event_param("lam2")[sample.event_vector]
        counts += np.abs(shape) > TOL
    return counts / ephy.n_samples


def time_variable_branches(
    ephy: BammData, config: Optional[TimeVariationConfig] = None
) -> PhyloTree:
    """
    Evidence that each branch is governed by a time-varying rate regime.

    Returns a copy of the tree whose edge lengths are replaced by the
    posterior probability of time variation or, for ``bayesfactor``, by
    ``(p / (1 - p)) * ((1 - prior_tv) / prior_tv)``. Branches that are
    time-varying in every sample get an infinite Bayes factor.

    Raises:
        InvalidArgumentError: If ``ephy`` is not a BammData, or the return
            type or prior are invalid.
    """
    InvalidArgumentError.expect_instance(ephy, BammData, "ephy")
    if config is None:
        config = TimeVariationConfig()
    InvalidArgumentError.expect_instance(config, TimeVariationConfig, "config")

    prob = time_varying_probabilities(ephy)

    if config.return_type is ReturnType.POSTERIOR:
        evidence = prob
    elif config.return_type is ReturnType.BAYESFACTOR:
        prior_odds = (1 - config.prior_tv) / config.prior_tv
        with np.errstate(divide="ignore"):
            evidence = (prob / (1 - prob)) * prior_odds
    else:
        raise InvalidArgumentError(f"Invalid return type {config.return_type!r}")

    logger.debug(
        "Time variation evidence (%s): %d of %d branches with p > 0.5",
        config.return_type.value,
        int((prob > 0.5).sum()),
        prob.shape[0],
    )
    return ephy.tree.with_edge_lengths(evidence)
