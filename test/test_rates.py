import numpy as np
import pytest

from rateshift.events import build_event_assignment, ShiftEvent
from rateshift.rates import exponential_rate, segment_rates, tip_rates

from conftest import root_event


def test_constant_rate_when_shape_is_zero():
    assert exponential_rate(0.3, 0.0, 10.0, 2.0) == 0.3


def test_exponential_rate_scalar():
    assert exponential_rate(0.5, -0.2, 3.0, 1.0) == pytest.approx(0.5 * np.exp(-0.4))
    assert isinstance(exponential_rate(0.5, -0.2, 3.0, 1.0), float)


def test_exponential_rate_broadcasts():
    times = np.array([0.0, 1.0, 2.0])
    rates = exponential_rate(np.array([[1.0], [2.0]]), np.array([[0.0], [0.1]]), times, 0.0)
    assert rates.shape == (2, 3)
    np.testing.assert_allclose(rates[0], [1.0, 1.0, 1.0])
    np.testing.assert_allclose(rates[1], 2.0 * np.exp(0.1 * times))


def test_segment_rates_use_governing_event(balanced_tree):
    events = [root_event(lam1=0.2, mu1=0.05), ShiftEvent(5, 2.5, lam1=0.5, lam2=-0.1, mu1=0.1, mu2=0.2)]
    assignment = build_event_assignment(balanced_tree, events)
    rows = assignment.segments_of(5)
    times = np.array([2.5, 3.0])

    lam = segment_rates(assignment, rows, times)
    np.testing.assert_allclose(lam[0], [0.2, 0.2])
    np.testing.assert_allclose(lam[1], [0.5, 0.5 * np.exp(-0.05)])

    mu = segment_rates(assignment, rows, times, "mu1", "mu2")
    np.testing.assert_allclose(mu[1], [0.1, 0.1 * np.exp(0.1)])


def test_tip_rates(shift_samples):
    lam, mu = tip_rates(shift_samples.tree, shift_samples.samples[0])
    assert lam.shape == (8,)
    assert lam[4] == pytest.approx(0.5 * np.exp(-0.05))
    assert mu[4] == pytest.approx(0.1)
    np.testing.assert_allclose(np.delete(lam, 4), 0.2)
    np.testing.assert_allclose(np.delete(mu, 4), 0.05)
