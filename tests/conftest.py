import itertools

import pytest

from microprop.nn import Network


def _cycle(values):
    it = itertools.cycle(values)
    return lambda: next(it)


@pytest.fixture
def make_source():
    """Factory for random sources replaying fixed values in a cycle."""
    return _cycle


@pytest.fixture
def source():
    return _cycle([0.1, 0.7, 0.4, 0.9, 0.2, 0.55, 0.35, 0.8, 0.05, 0.6, 0.25])


@pytest.fixture
def small_net(source):
    """A [2, 3, 2] network with deterministic weights."""
    return Network([2, 3, 2], source)


@pytest.fixture
def deep_net(source):
    """A [3, 4, 3, 2] network with deterministic weights."""
    return Network([3, 4, 3, 2], source)
