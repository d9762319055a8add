# main.py
import asyncio
import os
import sys
import threading
import questionary
import yaml
from rich.live import Live
from rich.console import Console

from fxdesk.config import load_config, merge_config
from fxdesk.dashboard import generate_dashboard
from fxdesk.logger import setup_console_logger, AsyncAuditLogger
from fxdesk.scheduler import Simulation
from fxdesk.spread_engine import tier_for_size
from fxdesk.models import Side

START_TIMES = {
    "Tokyo close (07:00)": 7 * 60,
    "London morning (09:00)": 9 * 60,
    "London/NY overlap (13:30)": 13 * 60 + 30,
    "New York afternoon (18:00)": 18 * 60,
    "Tokyo night (23:00)": 23 * 60,
}

HELP = ("buy N | sell N | twap buy|sell TOTAL SLICE | twap stop | pass ID | "
        "skew PIPS [WIDEN] | restart | quit | <price> | care")

# --- UI HELPER FUNCTIONS ---

def startup_selection(config: dict) -> dict:
    """Interactive CLI to pick the start time and which news sources run."""
    print("\n💶 EUR/USD DEALING DESK \n")
    start = questionary.select("Start the day at:", choices=list(START_TIMES.keys())).ask()
    if start is None:
        print("Nothing selected. Exiting.")
        sys.exit()

    news_choices = [
        questionary.Choice("Random headlines", value="news_enabled", checked=config['news']['news_enabled']),
        questionary.Choice("Economic releases", value="releases_enabled", checked=config['news']['releases_enabled']),
    ]
    sources = questionary.checkbox("News sources:", choices=news_choices).ask() or []

    return merge_config(config, {
        'game': {'start_minutes': START_TIMES[start]},
        'news': {
            'news_enabled': 'news_enabled' in sources,
            'releases_enabled': 'releases_enabled' in sources,
        },
    })


def dispatch_command(sim: Simulation, text: str) -> str:
    """
    Routes one line typed at the desk. Anything that is not a desk command
    goes to the voice chat.
    """
    parts = text.strip().split()
    if not parts:
        return ""
    cmd = parts[0].lower()

    try:
        if cmd in ("buy", "sell") and len(parts) == 2:
            size = float(parts[1])
            side = Side(cmd)
            quote = sim.state.tier_prices[tier_for_size(size)]
            price = quote.ask if side is Side.BUY else quote.bid
            trade = sim.execute_hedge_trade(side, size, price)
            return f"Hedged {cmd} {size:g}M @ {price:.5f}" if trade else "Hedge rejected"

        if cmd == "twap" and len(parts) == 2 and parts[1].lower() == "stop":
            sim.stop_twap()
            return "TWAP stopped"

        if cmd == "twap" and len(parts) == 4:
            result = sim.start_twap(parts[1].lower(), float(parts[2]), float(parts[3]))
            return "TWAP started" if result.success else f"TWAP rejected: {result.message}"

        if cmd == "skew" and len(parts) in (2, 3):
            widen = float(parts[2]) if len(parts) == 3 else 0.0
            sim.set_e_pricing(float(parts[1]), widen)
            return f"E-pricing skew {float(parts[1]):+g}p widen {widen:g}p"
    except ValueError:
        return f"Bad arguments. {HELP}"

    if cmd == "pass" and len(parts) == 2:
        for rfq in sim.electronic.get_all_rfqs():
            if rfq.id.startswith(parts[1]):
                return "Passed" if sim.reject_electronic_rfq(rfq.id) else "Too late to pass"
        return "No such RFQ"

    if cmd == "restart":
        sim.restart()
        return "Restarted"

    if cmd == "help":
        return HELP

    result = sim.handle_chat_input(text)
    if result.success:
        return ""
    return result.message or "Not accepted"


def pump_lines(stream, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
    """
    Blocking reader for a daemon thread: hands each line to the event loop.
    An empty string marks end of input.
    """
    for line in iter(stream.readline, ""):
        try:
            loop.call_soon_threadsafe(queue.put_nowait, line)
        except RuntimeError:
            return  # loop closed
    try:
        loop.call_soon_threadsafe(queue.put_nowait, "")
    except RuntimeError:
        pass

# --- MAIN CONTROLLER ---

class DealingDesk:
    def __init__(self, config: dict):
        self.config = config
        self.logger = setup_console_logger("fxdesk", self.config['logging']['level'])
        self.audit_log = AsyncAuditLogger(self.config['audit']['trade_log'])
        self.sim = Simulation(self.config, self.logger, audit_log=self.audit_log)
        self.status = HELP
        self.quit = False

    async def read_commands(self, stream=None):
        queue = asyncio.Queue()
        threading.Thread(target=pump_lines, args=(stream or sys.stdin, asyncio.get_running_loop(), queue),
                         daemon=True, name="desk-stdin").start()
        while not self.quit:
            line = await queue.get()
            if not line:
                self.quit = True
                break
            if line.strip().lower() in ("quit", "exit", "q"):
                self.quit = True
                break
            self.status = dispatch_command(self.sim, line) or self.status

    async def run(self):
        await self.audit_log.start()
        self.sim.start()
        reader = asyncio.create_task(self.read_commands())
        try:
            console = Console()
            with Live(console=console, refresh_per_second=4) as live:
                while not self.quit:
                    live.update(generate_dashboard(self.sim.state, self.status))
                    await asyncio.sleep(0.25)
        finally:
            print("Shutting down desk...")
            reader.cancel()
            self.sim.stop()
            await self.audit_log.stop()

if __name__ == "__main__":
    config_path = "config.yaml" if os.path.exists("config.yaml") else None
    try:
        raw_conf = load_config(config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"❌ Bad config: {e}")
        sys.exit(1)
    try:
        desk = DealingDesk(startup_selection(raw_conf))
        try:
            import uvloop
            asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        except ImportError:
            pass
        asyncio.run(desk.run())
    except KeyboardInterrupt:
        print("\n🛑 Desk closed by user.")
        sys.exit()
