# tests/conftest.py
"""Test configuration and fixtures."""

import logging
import random

import pytest

from fxdesk.config import DEFAULT_CONFIG, merge_config
from fxdesk.models import Client, Side


class ScriptedRandom(random.Random):
    """
    Random source whose random() replays queued values, then a constant.
    Every engine draws through rng.random(), so this pins down every outcome.
    """

    def __init__(self, values=(), default=0.5):
        super().__init__(0)
        self.values = list(values)
        self.default = default
        self.draws = 0

    def push(self, *values):
        self.values.extend(values)

    def random(self):
        self.draws += 1
        if self.values:
            return self.values.pop(0)
        return self.default


class ManualClock:
    """Wall clock in seconds that only moves when told to."""

    def __init__(self, start=1_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
        return self.now


def make_config(**sections):
    """DEFAULT_CONFIG with per-section overrides, e.g. make_config(market={'volatility': 0})."""
    return merge_config(DEFAULT_CONFIG, sections)


def make_client(competitiveness=0.5, direction=None, patience=(5, 10), size=(5, 25), banks=(5, 15)):
    return Client(
        id='test-client',
        name='Test Client',
        competitiveness=competitiveness,
        patience_range=patience,
        size_range=size,
        direction=direction,
        frequency_range=(30, 60),
        banks_asked_range=banks,
    )


@pytest.fixture(name="rng")
def rng_fixture():
    """Neutral scripted rng: every unscripted draw returns 0.5."""
    return ScriptedRandom()


@pytest.fixture(name="clock")
def clock_fixture():
    return ManualClock()


@pytest.fixture(name="config")
def config_fixture():
    """Quiet config: no random walk, no drift."""
    return make_config(market={'volatility': 0.0, 'drift': 0.0})


@pytest.fixture(name="logger")
def logger_fixture():
    return logging.getLogger("fxdesk.tests")


@pytest.fixture(name="sell_client")
def sell_client_fixture():
    return make_client(competitiveness=0.9, direction=Side.SELL)
