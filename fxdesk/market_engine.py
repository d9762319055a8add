# fxdesk/market_engine.py
import logging
import math
import time
from typing import Callable, List, Optional

from .models import MarketPrice, PIP, Side, TradeImpact
from .utils import default_rng, random_sign_move

# Fraction of the decayed impact folded into the mid on each price tick.
IMPACT_TICK_FRACTION = 0.1
# Impacts older than this many half-lives are dropped.
IMPACT_PRUNE_HALF_LIVES = 5


class MarketEngine:
    """
    Simulated EUR/USD mid.
    Each tick applies a uniform random walk, the configured drift and a
    fraction of the decaying trade impact. News shocks go through
    apply_impact() and bypass the decay model.
    """
    def __init__(self, config: dict, logger: Optional[logging.Logger] = None,
                 rng=None, clock: Callable[[], float] = time.time):
        self.cfg = config['market']
        self.impact_cfg = config['impact']
        self.logger = logger or logging.getLogger(__name__)
        self.rng = rng or default_rng()
        self.clock = clock

        self.current_mid: float = self.cfg['initial_mid']
        self.current_spread: float = self.cfg['base_spread']
        self._impacts: List[TradeImpact] = []
        self._current_impact = 0.0

    def tick(self) -> MarketPrice:
        now = self.clock()
        random_move = random_sign_move(self.rng, self.cfg['volatility'])
        impact_drift = self._calculate_impact_drift(now)
        self.current_mid += random_move + self.cfg['drift'] + impact_drift

        half_spread = self.current_spread / 2
        return MarketPrice(
            mid=self.current_mid,
            bid=self.current_mid - half_spread,
            ask=self.current_mid + half_spread,
            spread=self.current_spread,
            timestamp=now,
        )

    def record_impact(self, size: float, side: Side, banks_asked: Optional[int] = None,
                      max_banks: Optional[int] = None):
        """
        Registers an executed trade that moves the market.
        banks_asked=None means we hit the market ourselves (full impact);
        a client that only asked us leaves no footprint.
        """
        if max_banks is None:
            max_banks = self.impact_cfg.get('max_banks', 10)
        self._impacts.append(TradeImpact(
            timestamp=self.clock(),
            size=size,
            direction=side.sign,
            banks_factor=banks_factor(banks_asked, max_banks),
        ))

    def apply_impact(self, delta: float):
        """Instantaneous additive shock to the mid."""
        self.current_mid += delta

    def set_spread(self, spread: float):
        self.current_spread = spread

    def get_current_mid(self) -> float:
        return self.current_mid

    def get_current_spread(self) -> float:
        return self.current_spread

    def get_current_impact(self) -> float:
        """Clamped total impact (price units) as of the last tick."""
        return self._current_impact

    @property
    def impact_count(self) -> int:
        return len(self._impacts)

    def _calculate_impact_drift(self, now: float) -> float:
        if not self.impact_cfg['enabled']:
            self._current_impact = 0.0
            return 0.0

        half_life_ms = max(float(self.impact_cfg['half_life_ms']), 1e-9)
        max_age_ms = IMPACT_PRUNE_HALF_LIVES * half_life_ms
        self._impacts = [i for i in self._impacts if (now - i.timestamp) * 1000 <= max_age_ms]
        if not self._impacts:
            self._current_impact = 0.0
            return 0.0

        scale = self.impact_cfg['size_scale_factor']
        burst_window_ms = self.impact_cfg['burst_window_ms']
        total = 0.0
        burst_count = 0
        for impact in self._impacts:
            age_ms = (now - impact.timestamp) * 1000
            decay = 0.5 ** (age_ms / half_life_ms)
            total += math.sqrt(impact.size) * scale * impact.banks_factor * decay * impact.direction
            if age_ms <= burst_window_ms:
                burst_count += 1

        burst = min(self.impact_cfg['burst_multiplier_max'],
                    1 + math.log(max(1, burst_count)) * 0.5)
        total *= burst

        max_impact = self.impact_cfg['max_impact_pips'] * PIP
        total = max(-max_impact, min(max_impact, total))
        self._current_impact = total
        return total * IMPACT_TICK_FRACTION


def banks_factor(banks_asked: Optional[int], max_banks: int = 10) -> float:
    if banks_asked is None:
        return 1.0
    if banks_asked <= 1:
        return 0.0
    if max_banks <= 1:
        return 1.0
    return min(1.0, (banks_asked - 1) / (max_banks - 1))
