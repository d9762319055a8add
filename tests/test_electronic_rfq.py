# tests/test_electronic_rfq.py
import pytest

from conftest import make_client
from fxdesk.electronic_rfq import ElectronicRfqEngine, URGENCY_WEIGHT, acceptance_probability
from fxdesk.models import ElectronicRfq, ElectronicStatus, Side, TierQuote
from fxdesk.spread_engine import TIERS

E_PRICES = {
    tier: TierQuote(bid=1.0850 - 0.0001 * (i + 1), ask=1.0850 + 0.0001 * (i + 1), spread=0.0002 * (i + 1))
    for i, tier in enumerate(TIERS)
}


def make_rfq(clock, side=Side.BUY, size=5, competitiveness=0.6, patience=8.0, rfq_id='e1'):
    now = clock()
    return ElectronicRfq(
        id=rfq_id,
        client=make_client(competitiveness, direction=side),
        side=side,
        size=size,
        request_time=now,
        expiry_time=now + patience,
        banks_asked=5,
    )


@pytest.fixture
def engine(config, rng, clock, logger):
    eng = ElectronicRfqEngine(config, logger, rng=rng, clock=clock)
    eng.next_rfq_time = float('inf')
    return eng


# ------------------------- Acceptance ------------------------- #

@pytest.mark.parametrize("competitiveness", [0.4, 0.7, 0.9])
def test_probability_bounds(clock, competitiveness):
    rfq = make_rfq(clock, competitiveness=competitiveness)
    assert acceptance_probability(rfq, rfq.request_time) == competitiveness
    assert acceptance_probability(rfq, rfq.expiry_time) == min(1.0, competitiveness + URGENCY_WEIGHT)


def test_probability_grows_with_elapsed_time(clock):
    rfq = make_rfq(clock, competitiveness=0.5, patience=10)
    assert acceptance_probability(rfq, rfq.request_time + 5) == pytest.approx(0.6)
    # clamped past expiry
    assert acceptance_probability(rfq, rfq.request_time + 50) == pytest.approx(0.7)


def test_zero_patience_counts_as_elapsed(clock):
    rfq = make_rfq(clock, competitiveness=0.5, patience=0)
    assert acceptance_probability(rfq, rfq.request_time) == pytest.approx(0.7)


# ------------------------- Lifecycle ------------------------- #

def test_generates_when_due(config, rng, clock, logger):
    eng = ElectronicRfqEngine(config, logger, rng=rng, clock=clock)
    assert eng.next_rfq_time == pytest.approx(clock.now + 14)

    clock.advance(14)
    # Bill's Bakery buys, size 3, patience 7.5, banks 4, next in 14s
    result = eng.tick(E_PRICES)

    [rfq] = result.new_rfqs
    assert rfq.client.name == "Bill's Bakery"
    assert rfq.side is Side.BUY
    assert rfq.size == 3
    assert rfq.banks_asked == 4
    assert rfq.expiry_time == pytest.approx(clock.now + 7.5)
    assert rfq.status is ElectronicStatus.QUOTING
    assert eng.next_rfq_time == pytest.approx(clock.now + 14)


def test_respects_max_active(engine, clock):
    for i in range(5):
        engine.rfqs.append(make_rfq(clock, rfq_id=f"e{i}"))
    engine.next_rfq_time = clock.now
    assert engine.tick(E_PRICES).new_rfqs == ()
    assert engine.quoting_count == 5


def test_client_buy_trades_on_tier_offer(engine, clock, rng):
    rfq = make_rfq(clock, side=Side.BUY, size=12)
    engine.rfqs.append(rfq)

    clock.advance(7)
    assert engine.tick(E_PRICES).traded == ()

    clock.advance(1)
    rng.push(0.0)
    result = engine.tick(E_PRICES)
    assert result.traded == (rfq,)
    assert rfq.status is ElectronicStatus.TRADED
    assert rfq.traded_price == E_PRICES['10'].ask
    assert rfq.traded_time == clock.now
    assert rfq.completed_time == clock.now


def test_client_walks_away(engine, clock, rng):
    rfq = make_rfq(clock, side=Side.SELL, competitiveness=0.4)
    engine.rfqs.append(rfq)
    clock.advance(8)
    rng.push(0.99)

    result = engine.tick(E_PRICES)
    assert result.expired == (rfq,)
    assert rfq.status is ElectronicStatus.EXPIRED
    assert rfq.traded_price is None
    assert rfq.completed_time == clock.now


def test_pass_stops_the_trade(engine, clock, rng):
    rfq = make_rfq(clock)
    engine.rfqs.append(rfq)

    assert engine.reject_rfq('e1') is True
    assert rfq.status is ElectronicStatus.PASSED
    assert engine.reject_rfq('e1') is False
    assert engine.reject_rfq('missing') is False

    clock.advance(10)
    rng.push(0.0)
    assert engine.tick(E_PRICES).traded == ()


def test_cleanup_keeps_recent_and_live_requests(engine, clock):
    done = make_rfq(clock, rfq_id='done')
    live = make_rfq(clock, rfq_id='live', patience=1000)
    engine.rfqs.extend([done, live])
    engine.reject_rfq('done')

    clock.advance(59)
    engine.cleanup_old_rfqs()
    assert [r.id for r in engine.get_all_rfqs()] == ['done', 'live']

    clock.advance(1)
    engine.cleanup_old_rfqs()
    assert [r.id for r in engine.get_all_rfqs()] == ['live']


def test_active_view_hides_finished_requests(engine, clock):
    engine.rfqs.extend([make_rfq(clock, rfq_id='a'), make_rfq(clock, rfq_id='b')])
    engine.reject_rfq('b')
    assert [r.id for r in engine.get_active_rfqs()] == ['a']
