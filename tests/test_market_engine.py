# tests/test_market_engine.py
import math

import pytest

from conftest import ScriptedRandom, make_config
from fxdesk.market_engine import IMPACT_TICK_FRACTION, MarketEngine, banks_factor
from fxdesk.models import PIP, Side


@pytest.fixture
def engine(config, rng, clock, logger):
    return MarketEngine(config, logger, rng=rng, clock=clock)


def test_tick_applies_random_walk_within_volatility(clock, logger):
    cfg = make_config(market={'volatility': 0.00005, 'drift': 0.0})
    engine = MarketEngine(cfg, logger, rng=ScriptedRandom(default=1.0), clock=clock)

    price = engine.tick()

    assert price.mid == pytest.approx(1.0850 + 0.00005)
    assert price.bid == pytest.approx(price.mid - 0.00004)
    assert price.ask == pytest.approx(price.mid + 0.00004)
    assert price.timestamp == clock.now


def test_drift_is_added_every_tick(clock, logger):
    cfg = make_config(market={'volatility': 0.0, 'drift': 0.00001})
    engine = MarketEngine(cfg, logger, rng=ScriptedRandom(), clock=clock)
    for _ in range(3):
        engine.tick()
    assert engine.get_current_mid() == pytest.approx(1.0850 + 0.00003)


def test_hedge_impact_moves_mid_by_a_fraction(engine):
    engine.record_impact(4, Side.BUY)
    engine.tick()

    expected = math.sqrt(4) * 0.000005
    assert engine.get_current_impact() == pytest.approx(expected)
    assert engine.get_current_mid() == pytest.approx(1.0850 + expected * IMPACT_TICK_FRACTION)


def test_impact_halves_after_one_half_life(engine, clock):
    engine.record_impact(4, Side.SELL)
    clock.advance(1.0)
    engine.tick()
    assert engine.get_current_impact() == pytest.approx(-0.00001 * 0.5)


def test_impacts_older_than_five_half_lives_are_pruned(engine, clock):
    engine.record_impact(25, Side.BUY)
    clock.advance(5.001)
    mid_before = engine.get_current_mid()

    engine.tick()

    assert engine.impact_count == 0
    assert engine.get_current_impact() == 0.0
    assert engine.get_current_mid() == pytest.approx(mid_before)


def test_single_bank_client_leaves_no_footprint(engine):
    engine.record_impact(1000, Side.BUY, banks_asked=1)
    engine.tick()
    assert engine.get_current_impact() == 0.0
    assert engine.get_current_mid() == pytest.approx(1.0850)


def test_burst_of_trades_amplifies_impact(engine):
    engine.record_impact(4, Side.BUY)
    engine.record_impact(4, Side.BUY)
    engine.tick()
    burst = 1 + math.log(2) * 0.5
    assert engine.get_current_impact() == pytest.approx(2 * 0.00001 * burst)


def test_impact_is_clamped_to_max_pips(engine):
    engine.record_impact(10_000, Side.SELL)
    engine.tick()
    assert engine.get_current_impact() == pytest.approx(-3 * PIP)


def test_disabled_impact_is_ignored(rng, clock, logger):
    cfg = make_config(market={'volatility': 0.0}, impact={'enabled': False})
    engine = MarketEngine(cfg, logger, rng=rng, clock=clock)
    engine.record_impact(50, Side.BUY)
    engine.tick()
    assert engine.get_current_mid() == pytest.approx(1.0850)
    assert engine.get_current_impact() == 0.0


def test_apply_impact_shifts_mid_immediately(engine):
    engine.apply_impact(-5 * PIP)
    assert engine.get_current_mid() == pytest.approx(1.0845)


@pytest.mark.parametrize("banks, expected", [
    (None, 1.0),
    (0, 0.0),
    (1, 0.0),
    (5, 4 / 9),
    (10, 1.0),
    (20, 1.0),
])
def test_banks_factor(banks, expected):
    assert banks_factor(banks, 10) == pytest.approx(expected)


def test_half_banks_scales_client_impact(engine):
    engine.record_impact(4, Side.BUY, banks_asked=5)
    engine.tick()
    assert engine.get_current_impact() == pytest.approx(0.00001 * 4 / 9)


def test_set_spread_is_reflected_in_next_price(engine):
    engine.set_spread(0.0004)
    price = engine.tick()
    assert engine.get_current_spread() == 0.0004
    assert price.ask - price.bid == pytest.approx(0.0004)
