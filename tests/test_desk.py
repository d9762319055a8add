# tests/test_desk.py
import asyncio
import io
import threading

import pytest
from rich.console import Console

from conftest import make_client, make_config
from fxdesk.dashboard import generate_dashboard
from fxdesk.models import ElectronicRfq, Side, TradeType
from fxdesk.scheduler import Simulation
from main import dispatch_command, pump_lines


@pytest.fixture
def sim(rng, clock, logger):
    cfg = make_config(market={'volatility': 0.0, 'drift': 0.0})
    return Simulation(cfg, logger, rng=rng, clock=clock)


def render(state):
    console = Console(file=io.StringIO(), width=160, height=60, record=True)
    console.print(generate_dashboard(state))
    return console.export_text()


def test_dashboard_renders_a_busy_desk(sim, clock):
    sim.execute_hedge_trade(Side.BUY, 10, 1.0852)
    now = clock()
    sim.electronic.rfqs.append(ElectronicRfq(
        id='abcdef123', client=make_client(), side=Side.SELL, size=5,
        request_time=now, expiry_time=now + 10, banks_asked=3,
    ))
    sim.reject_electronic_rfq('abcdef123')

    text = render(sim.state)
    assert "EUR/USD" in text
    assert "STOPPED" in text
    assert "abcdef" in text
    assert "passed" in text


def test_hedge_commands_hit_tier_prices(sim):
    assert dispatch_command(sim, "buy 12").startswith("Hedged buy 12M")
    assert dispatch_command(sim, "SELL 2").startswith("Hedged sell 2M")

    buy, sell = sim.state.trades
    assert buy.price == pytest.approx(sim.state.tier_prices['10'].ask)
    assert sell.price == pytest.approx(sim.state.tier_prices['1'].bid)
    assert all(t.type is TradeType.HEDGE for t in sim.state.trades)


def test_bad_arguments(sim):
    assert dispatch_command(sim, "buy lots").startswith("Bad arguments")
    assert sim.state.trades == []


def test_twap_needs_a_live_desk(sim):
    assert dispatch_command(sim, "twap buy 10 2") == "TWAP rejected: Simulation is not running"
    assert dispatch_command(sim, "twap stop") == "TWAP stopped"


def test_pass_by_id_prefix(sim, clock):
    now = clock()
    sim.electronic.rfqs.append(ElectronicRfq(
        id='fedcba987', client=make_client(), side=Side.BUY, size=1,
        request_time=now, expiry_time=now + 10, banks_asked=3,
    ))
    assert dispatch_command(sim, "pass fedc") == "Passed"
    assert dispatch_command(sim, "pass fedc") == "Too late to pass"
    assert dispatch_command(sim, "pass 0000") == "No such RFQ"


def test_skew_command(sim):
    assert dispatch_command(sim, "skew -1.5 2") == "E-pricing skew -1.5p widen 2p"


def test_anything_else_goes_to_voice_chat(sim):
    assert dispatch_command(sim, "52") == 'No active RFQ to respond to'
    assert dispatch_command(sim, "   ") == ""


@pytest.mark.asyncio
async def test_stdin_pump_feeds_lines_then_end_marker():
    queue = asyncio.Queue()
    reader = threading.Thread(target=pump_lines, daemon=True,
                              args=(io.StringIO("buy 1\nquit\n"), asyncio.get_running_loop(), queue))
    reader.start()

    lines = [await asyncio.wait_for(queue.get(), 1.0) for _ in range(3)]
    reader.join(1.0)
    assert lines == ["buy 1\n", "quit\n", ""]
    assert not reader.is_alive()
