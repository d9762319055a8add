# tests/test_spread_engine.py
import random

import pytest

from conftest import ScriptedRandom, make_config
from fxdesk.spread_engine import SESSIONS, SpreadEngine, TIERS, get_session_for_hour, tier_for_size, tier_prices


@pytest.mark.parametrize("hour, name, multiplier", [
    (10, 'LDN', 1.2),
    (15, 'LDN/NY', 1.0),
    (20, 'NY', 1.4),
    (2, 'TK', 1.8),
    (8, 'LDN', 1.2),
    (13, 'LDN/NY', 1.0),
    (17, 'NY', 1.4),
    (22, 'TK', 1.8),
    (26, 'TK', 1.8),
])
def test_session_is_a_function_of_hour(hour, name, multiplier):
    session = get_session_for_hour(hour)
    assert session.name == name
    assert session.spread_multiplier == multiplier


@pytest.mark.parametrize("size, tier", [(1, '1'), (4, '1'), (5, '5'), (9, '5'), (10, '10'), (49, '10'), (50, '50'), (80, '50')])
def test_tier_for_size(size, tier):
    assert tier_for_size(size) == tier


def test_tiers_never_invert_across_many_ticks():
    cfg = make_config()
    engine = SpreadEngine(cfg, rng=random.Random(7))
    for i in range(2000):
        if i % 100 == 0:
            engine.set_volatility_factor((i // 100) % 4 * 0.5)
            engine.set_session_multiplier(SESSIONS[('TK', 'LDN', 'LDN/NY', 'NY')[(i // 100) % 4]].spread_multiplier)
        spreads = engine.tick()
        values = [spreads[t] for t in TIERS]
        assert values == sorted(values)
        for tier in TIERS:
            assert spreads[tier] >= cfg['spread']['tier_minimums'][tier]


def test_base_spread_stays_inside_band():
    cfg = make_config()
    widening = SpreadEngine(cfg, rng=ScriptedRandom(default=1.0))
    for _ in range(500):
        widening.tick()
    assert widening.get_base_spread() == pytest.approx(cfg['spread']['base_spread_max'])

    tightening = SpreadEngine(cfg, rng=ScriptedRandom(default=0.0))
    for _ in range(500):
        tightening.tick()
    assert tightening.get_base_spread() == pytest.approx(cfg['spread']['base_spread_min'])


def test_volatility_raises_the_ceiling():
    cfg = make_config()
    engine = SpreadEngine(cfg, rng=ScriptedRandom(default=1.0))
    engine.set_volatility_factor(1.0)
    for _ in range(500):
        engine.tick()
    assert engine.get_base_spread() == pytest.approx(cfg['spread']['base_spread_max'] * 2)


def test_multipliers_widen_every_tier():
    engine = SpreadEngine(make_config(), rng=ScriptedRandom())
    engine.set_session_multiplier(1.0)
    calm = engine.current_spreads()

    engine.set_volatility_factor(1.0)
    volatile = engine.current_spreads()

    assert calm['1'] == pytest.approx(0.0001)
    assert volatile['1'] == pytest.approx(0.0002)
    assert volatile['50'] == pytest.approx((0.0001 + 0.0002) * 2)


def test_setters_clamp():
    engine = SpreadEngine(make_config(), rng=ScriptedRandom())
    engine.set_volatility_factor(-0.3)
    engine.set_session_multiplier(0.1)
    assert engine.get_volatility_factor() == 0.0
    assert engine.get_session_multiplier() == 0.5


def test_tier_prices_centre_on_mid_with_skew_and_widen():
    plain = tier_prices(1.1, {'1': 0.0002})
    assert plain['1'].bid == pytest.approx(1.0999)
    assert plain['1'].ask == pytest.approx(1.1001)

    skewed = tier_prices(1.1, {'1': 0.0002}, skew=0.0001, widen=0.0002)
    assert skewed['1'].spread == pytest.approx(0.0004)
    assert skewed['1'].bid == pytest.approx(1.0999)
    assert skewed['1'].ask == pytest.approx(1.1003)
