# fxdesk/utils.py
import random
from typing import Optional, Sequence, TypeVar

from .models import PIP

T = TypeVar("T")

# Module default; engines take their own rng so tests can script outcomes.
_default_rng = random.Random()


def default_rng() -> random.Random:
    return _default_rng


def random_between(rng, low: float, high: float) -> float:
    """Uniform draw in [low, high) using a single rng.random() call."""
    return low + rng.random() * (high - low)


def random_int(rng, low: int, high: int) -> int:
    """Inclusive integer draw."""
    return min(high, int(random_between(rng, low, high + 1)))


def random_choice(rng, items: Sequence[T]) -> T:
    index = min(len(items) - 1, int(rng.random() * len(items)))
    return items[index]


def random_sign_move(rng, amplitude: float) -> float:
    """Uniform draw in [-amplitude, +amplitude]."""
    return (rng.random() - 0.5) * 2 * amplitude


def to_pips(price_delta: float) -> float:
    return price_delta / PIP


def format_price(price: Optional[float]) -> str:
    """1.08503 -> '1.0850'"""
    if price is None:
        return "-"
    return f"{price:.4f}"


def format_spread_pips(spread: float) -> str:
    """0.0008 -> '8.0'"""
    return f"{to_pips(spread):.1f}"


def format_millions(amount: float) -> str:
    return f"{amount:,.0f}M"


def format_currency(amount: float) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.0f}"


def format_game_time(game_minutes: int) -> str:
    hours = (game_minutes // 60) % 24
    minutes = game_minutes % 60
    return f"{hours:02d}:{minutes:02d}"
