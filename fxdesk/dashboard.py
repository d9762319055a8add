# fxdesk/dashboard.py
from rich.console import Group
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import Direction, ElectronicStatus
from .spread_engine import TIERS
from .state import GameState
from .utils import (format_currency, format_game_time, format_millions, format_price,
                    format_spread_pips)

STATUS_STYLE = {
    ElectronicStatus.QUOTING: "yellow",
    ElectronicStatus.TRADED: "green",
    ElectronicStatus.EXPIRED: "dim",
    ElectronicStatus.PASSED: "red",
}


def _pnl_style(amount: float) -> str:
    return "green" if amount >= 0 else "red"


def price_ladder(state: GameState) -> Table:
    table = Table(title="📡 EUR/USD", expand=True)
    table.add_column("Tier", style="cyan")
    table.add_column("Bid", justify="right", style="green")
    table.add_column("Ask", justify="right", style="red")
    table.add_column("Spread", justify="right")
    table.add_column("E-Bid", justify="right", style="dim green")
    table.add_column("E-Ask", justify="right", style="dim red")

    for tier in TIERS:
        quote = state.tier_prices.get(tier)
        e_quote = state.e_tier_prices.get(tier)
        if quote is None:
            continue
        table.add_row(
            f"{tier}M",
            format_price(quote.bid),
            format_price(quote.ask),
            format_spread_pips(quote.spread),
            format_price(e_quote.bid if e_quote else None),
            format_price(e_quote.ask if e_quote else None),
        )
    return table


def risk_panel(state: GameState) -> Panel:
    pos = state.position
    pnl = state.pnl
    lines = [
        Text(f"Position: {pos.amount:+,.0f}M {pos.currency}", style="bold"),
        Text(f"Avg price: {format_price(pos.average_price) if pos.amount else '-'}"),
        Text(f"Realized: {format_currency(pnl.realized)}", style=_pnl_style(pnl.realized)),
        Text(f"Unrealized: {format_currency(pnl.unrealized)}", style=_pnl_style(pnl.unrealized)),
        Text(f"Total: {format_currency(pnl.total)}", style=f"bold {_pnl_style(pnl.total)}"),
    ]
    twap = state.twap
    if twap.active:
        lines.append(Text(
            f"TWAP {twap.side.value} {format_millions(twap.filled_size)}/{format_millions(twap.total_size)}",
            style="magenta"))
    return Panel(Group(*lines), title="💰 Risk")


def chat_panel(state: GameState, rows: int = 8) -> Panel:
    lines = []
    for message in state.chat_messages[-rows:]:
        style = "cyan" if message.sender == 'sales' else "bold white"
        prefix = "" if message.sender == 'sales' else "> "
        lines.append(Text(prefix + message.text, style=style))
    if not lines:
        lines.append(Text("No voice requests yet", style="dim"))
    return Panel(Group(*lines), title="☎ Voice")


def electronic_table(state: GameState, rows: int = 8) -> Table:
    table = Table(title="⚡ Electronic RFQs", expand=True)
    table.add_column("ID", style="dim")
    table.add_column("Client")
    table.add_column("Side")
    table.add_column("Size", justify="right")
    table.add_column("Status")
    table.add_column("Price", justify="right")

    for rfq in list(reversed(state.electronic_rfqs))[:rows]:
        table.add_row(
            rfq.id[:6],
            rfq.client.name,
            rfq.side.value.upper(),
            format_millions(rfq.size),
            Text(rfq.status.value, style=STATUS_STYLE[rfq.status]),
            format_price(rfq.traded_price),
        )
    return table


def news_panel(state: GameState, rows: int = 5) -> Panel:
    lines = []
    upcoming = state.upcoming_release
    if upcoming is not None:
        lines.append(Text(
            f"Next: {upcoming.type.short_name} at {format_game_time(upcoming.scheduled_game_minutes)} "
            f"(exp {upcoming.expected}{upcoming.type.unit})", style="yellow"))
    for item in state.news_history[:rows]:
        style = "green" if item.direction is Direction.BULLISH else "red"
        arrow = "▲" if item.direction is Direction.BULLISH else "▼"
        lines.append(Text(f"{format_game_time(item.timestamp)} {arrow} {item.headline}", style=style))
    if not lines:
        lines.append(Text("Quiet tape", style="dim"))
    return Panel(Group(*lines), title="📰 News")


def generate_dashboard(state: GameState, status: str = "") -> Layout:
    """
    Builds the desk layout from a published state snapshot.
    `status` is the reply to the last console command, shown in the footer.
    """
    layout = Layout()
    layout.split_column(
        Layout(name="top"),
        Layout(name="middle"),
        Layout(name="bottom"),
    )
    layout["top"].split_row(
        Layout(Panel(price_ladder(state)), ratio=2),
        Layout(risk_panel(state)),
    )
    layout["middle"].split_row(
        Layout(chat_panel(state)),
        Layout(Panel(electronic_table(state))),
    )
    layout["bottom"].split_column(
        Layout(news_panel(state)),
        Layout(name="footer", size=4),
    )

    running = "[green]LIVE[/green]" if state.is_running else "[red]STOPPED[/red]"
    footer = Panel(
        f"{running}  🕒 {state.game_time}  {state.session.label} ({state.session.spread_multiplier}x)  "
        f"Mid [bold]{format_price(state.market_mid)}[/bold]  "
        f"Vol {state.volatility_factor:.2f}  Impact {state.market_impact_pips:+.2f}p"
        f"\n{status}",
        style="white on blue",
    )
    layout["footer"].update(footer)
    return layout
