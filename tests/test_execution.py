# tests/test_execution.py
import pytest

from conftest import make_client
from fxdesk.execution import ExecutionService, TwapExecution
from fxdesk.inventory import PositionLedger
from fxdesk.market_engine import MarketEngine
from fxdesk.models import ElectronicRfq, Side, TierQuote, TradeType
from fxdesk.risk_engine import RiskEngine
from fxdesk.spread_engine import TIERS

QUOTES = {tier: TierQuote(bid=1.0849, ask=1.0851, spread=0.0002) for tier in TIERS}


class FakeAudit:
    def __init__(self):
        self.trades = []

    def record_trade(self, trade):
        self.trades.append(trade)


@pytest.fixture
def market(config, rng, clock, logger):
    return MarketEngine(config, logger, rng=rng, clock=clock)


@pytest.fixture
def audit():
    return FakeAudit()


@pytest.fixture
def service(market, audit, logger, clock):
    return ExecutionService(PositionLedger(logger, clock=clock), market, logger, audit_log=audit)


# ------------------------- Risk checks ------------------------- #

def test_voice_quote_distance_check(config, logger):
    risk = RiskEngine(config, logger)
    assert risk.check_voice_quote(1.0880, 1.0850) == (True, "OK")
    assert risk.check_voice_quote(1.0820, 1.0850)[0] is True

    ok, reason = risk.check_voice_quote(1.0881, 1.0850)
    assert ok is False
    assert reason == "Price too far from market (31.0 pips)"


@pytest.mark.parametrize("side, size, price", [
    ("buy", 1, 1.1),
    (Side.BUY, 0, 1.1),
    (Side.SELL, -2, 1.1),
    (Side.SELL, 2, 0),
])
def test_bad_trade_args_are_refused(config, logger, side, size, price):
    ok, _ = RiskEngine(config, logger).check_trade_args(side, size, price)
    assert ok is False


def test_twap_slice_must_be_positive(config, logger):
    risk = RiskEngine(config, logger)
    assert risk.check_twap(Side.BUY, 10, 2)[0] is True
    assert risk.check_twap(Side.BUY, 10, 0)[0] is False
    assert risk.check_twap(None, 10, 2)[0] is False


# ------------------------- Fills ------------------------- #

def test_hedge_books_and_moves_market(service, market, audit):
    trade = service.execute_hedge(Side.BUY, 10, 1.0852)

    assert trade.type is TradeType.HEDGE
    assert trade.client_name == 'Market'
    assert service.ledger.get_position().amount == 10
    assert market.impact_count == 1
    assert audit.trades == [trade]


def test_client_fill_books_the_dealer_side(service, market, clock):
    rfq = ElectronicRfq(
        id='e1', client=make_client(direction=Side.SELL), side=Side.SELL, size=5,
        request_time=clock(), expiry_time=clock() + 5, banks_asked=1,
    )
    trade = service.execute_client_fill(rfq, 1.0848, TradeType.ELECTRONIC)

    assert trade.side is Side.BUY
    assert trade.price == 1.0848
    assert trade.client_id == 'test-client'
    # asked only us: recorded but weightless
    market.tick()
    assert market.get_current_impact() == 0.0


# ------------------------- TWAP ------------------------- #

def test_twap_fills_in_slices_and_stops(service, clock, logger):
    twap = TwapExecution(service, logger, clock=clock)
    twap.start(Side.SELL, 5, 2)

    fills = []
    finished = False
    while not finished:
        trade, finished = twap.execute_slice(QUOTES)
        fills.append(trade)

    assert [t.size for t in fills] == [2, 2, 1]
    assert all(t.price == 1.0849 and t.type is TradeType.ALGO for t in fills)
    assert twap.state.active is False
    assert twap.state.filled_size == 5
    assert service.ledger.get_position().amount == -5


def test_twap_stop_halts_fills(service, clock, logger):
    twap = TwapExecution(service, logger, clock=clock)
    twap.start(Side.BUY, 10, 4)
    twap.execute_slice(QUOTES)
    twap.stop()

    assert twap.execute_slice(QUOTES) == (None, True)
    assert twap.state.filled_size == 4
    assert twap.state.remaining == 6


def test_twap_fractional_slices_leave_no_residue(service, clock, logger):
    twap = TwapExecution(service, logger, clock=clock)
    twap.start(Side.BUY, 1.0, 0.1)

    fills = []
    finished = False
    while not finished:
        trade, finished = twap.execute_slice(QUOTES)
        fills.append(trade)

    assert len(fills) == 10
    assert sum(t.size for t in fills) == pytest.approx(1.0)
    assert twap.state.remaining == 0.0
    assert twap.state.active is False
    assert twap.execute_slice(QUOTES) == (None, True)
