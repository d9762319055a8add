# fxdesk/spread_engine.py
import logging
from typing import Dict, Optional

from .models import SessionInfo, TierQuote
from .utils import default_rng, random_sign_move

TIERS = ('1', '5', '10', '50')

SESSIONS: Dict[str, SessionInfo] = {
    'TK': SessionInfo('TK', 'Tokyo', 1.8),
    'LDN': SessionInfo('LDN', 'London', 1.2),
    'LDN/NY': SessionInfo('LDN/NY', 'London/NY', 1.0),
    'NY': SessionInfo('NY', 'New York', 1.4),
}


def get_session_for_hour(hour: int) -> SessionInfo:
    """
    LDN 08-13, LDN/NY 13-17, NY 17-22, Tokyo otherwise.
    """
    hour = hour % 24
    if 8 <= hour < 13:
        return SESSIONS['LDN']
    if 13 <= hour < 17:
        return SESSIONS['LDN/NY']
    if 17 <= hour < 22:
        return SESSIONS['NY']
    return SESSIONS['TK']


def tier_for_size(size: float) -> str:
    """Largest bucket that does not exceed size; anything below 5 prices off the 1M tier."""
    if size >= 50:
        return '50'
    if size >= 10:
        return '10'
    if size >= 5:
        return '5'
    return '1'


def tier_prices(mid: float, spreads: Dict[str, float], skew: float = 0.0,
                widen: float = 0.0) -> Dict[str, TierQuote]:
    """Two-way price per tier centred on mid (plus optional skew/widening, price units)."""
    prices = {}
    for tier, spread in spreads.items():
        total = spread + widen
        prices[tier] = TierQuote(
            bid=mid - total / 2 + skew,
            ask=mid + total / 2 + skew,
            spread=total,
        )
    return prices


class SpreadEngine:
    """
    Mean-reverting base spread fanned out into size tiers.
    Volatility and session multipliers widen every tier by the same factor.
    """
    def __init__(self, config: dict, logger: Optional[logging.Logger] = None, rng=None):
        self.cfg = config['spread']
        self.logger = logger or logging.getLogger(__name__)
        self.rng = rng or default_rng()

        self.base_spread: float = self.cfg['base_spread_mean']
        self.volatility_factor = 0.0
        self.session_multiplier = 1.0

    def tick(self) -> Dict[str, float]:
        random_move = random_sign_move(self.rng, self.cfg['spread_volatility'])
        reversion = (self.cfg['base_spread_mean'] - self.base_spread) * self.cfg['mean_reversion_speed']
        self.base_spread += random_move + reversion

        max_spread = self.cfg['base_spread_max'] * (1 + self.volatility_factor)
        self.base_spread = max(self.cfg['base_spread_min'], min(max_spread, self.base_spread))
        return self.current_spreads()

    def current_spreads(self) -> Dict[str, float]:
        multiplier = (1 + self.volatility_factor) * self.session_multiplier
        additions = self.cfg['tier_additions']
        minimums = self.cfg['tier_minimums']
        return {
            tier: max(minimums[tier], (self.base_spread + additions[tier]) * multiplier)
            for tier in TIERS
        }

    def set_volatility_factor(self, factor: float):
        self.volatility_factor = max(0.0, factor)

    def get_volatility_factor(self) -> float:
        return self.volatility_factor

    def set_session_multiplier(self, multiplier: float):
        self.session_multiplier = max(0.5, multiplier)

    def get_session_multiplier(self) -> float:
        return self.session_multiplier

    def get_base_spread(self) -> float:
        return self.base_spread
