import numpy as np
import pytest

from rateshift.events import BammData, ShiftEvent
from rateshift.exceptions import InvalidArgumentError
from rateshift.time_variation import time_variable_branches, time_varying_probabilities
from rateshift.tree import PhyloTree
from rateshift.types import ReturnType, TimeVariationConfig


def test_probabilities(shift_samples):
    prob = time_varying_probabilities(shift_samples)
    assert prob[9] == 0.5
    assert prob[12] == 0.25
    assert np.count_nonzero(prob) == 2


def test_posterior_tree(shift_samples):
    evidence = time_variable_branches(shift_samples)
    assert isinstance(evidence, PhyloTree)
    np.testing.assert_array_equal(evidence.edge, shift_samples.tree.edge)
    np.testing.assert_allclose(evidence.edge_length, time_varying_probabilities(shift_samples))
    assert np.all((evidence.edge_length >= 0) & (evidence.edge_length <= 1))


def test_bayes_factor_with_even_prior_is_posterior_odds(shift_samples):
    config = TimeVariationConfig(prior_tv=0.5, return_type=ReturnType.BAYESFACTOR)
    evidence = time_variable_branches(shift_samples, config)
    prob = time_varying_probabilities(shift_samples)
    np.testing.assert_allclose(evidence.edge_length, prob / (1 - prob))
    assert evidence.edge_length[9] == pytest.approx(1.0)
    assert evidence.edge_length[12] == pytest.approx(1 / 3)


def test_bayes_factor_uses_prior(shift_samples):
    config = TimeVariationConfig(prior_tv=0.25, return_type="bayesfactor")
    evidence = time_variable_branches(shift_samples, config)
    assert evidence.edge_length[9] == pytest.approx(3.0)
    assert evidence.edge_length[12] == pytest.approx(1.0)


def test_always_time_varying_gives_infinite_bayes_factor():
    tree = PhyloTree.from_newick("(A:1,B:1);")
    ephy = BammData.from_events(tree, [[ShiftEvent(3, 0.0, lam1=1.0, lam2=-0.1)]])
    posterior = time_variable_branches(ephy)
    np.testing.assert_array_equal(posterior.edge_length, [1.0, 1.0])
    bayes = time_variable_branches(ephy, TimeVariationConfig(return_type="bayesfactor"))
    assert np.all(np.isinf(bayes.edge_length))


def test_tiny_shape_counts_as_constant():
    tree = PhyloTree.from_newick("(A:1,B:1);")
    ephy = BammData.from_events(tree, [[ShiftEvent(3, 0.0, lam1=1.0, lam2=1e-17)]])
    np.testing.assert_array_equal(time_varying_probabilities(ephy), [0.0, 0.0])


@pytest.mark.parametrize(
    "kwargs",
    [{"return_type": "odds"}, {"prior_tv": 0.0}, {"prior_tv": 1.0}],
)
def test_invalid_config(kwargs):
    with pytest.raises(InvalidArgumentError):
        TimeVariationConfig(**kwargs)


def test_invalid_samples():
    with pytest.raises(InvalidArgumentError):
        time_variable_branches("tree.tre")
