"""Shared fixtures for lsg tests."""
import numpy as np
import pytest

from lsg.record import RecordGenerator


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def records():
    return RecordGenerator()


@pytest.fixture
def many_records(records):
    """400 records across several seeds."""
    out = []
    for seed in range(4):
        r = np.random.default_rng(seed)
        out.extend(records.generate(r) for _ in range(100))
    return out
