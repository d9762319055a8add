# fxdesk/risk_engine.py
import logging
from typing import Optional, Tuple

from .models import PIP, Side


class RiskEngine:
    """
    Gatekeeper for dealer actions coming in from the desk.
    Separates 'may this reach an engine?' from what the engines do with it.
    """
    def __init__(self, config: dict, logger: Optional[logging.Logger] = None):
        self.cfg = config['voice_rfq']
        self.logger = logger or logging.getLogger(__name__)

    def check_voice_quote(self, price: float, current_mid: float) -> Tuple[bool, str]:
        """
        Rejects a quote too far from mid on either side before the client sees it.
        """
        if price <= 0:
            return False, "Price must be positive"
        spread_pips = round(abs(price - current_mid) / PIP, 6)
        if spread_pips > self.cfg['max_spread_from_market_pips']:
            self.logger.warning(f"⛔ QUOTE BLOCKED: {price:.4f} is {spread_pips:.1f} pips from mid {current_mid:.5f}")
            return False, f"Price too far from market ({spread_pips:.1f} pips)"
        return True, "OK"

    def check_trade_args(self, side, size: float, price: Optional[float] = None) -> Tuple[bool, str]:
        """Trades reaching the ledger must have a side, positive size and (if given) positive price."""
        if not isinstance(side, Side):
            return False, f"Unknown side: {side!r}"
        if size is None or size <= 0:
            return False, f"Size must be positive, got {size}"
        if price is not None and price <= 0:
            return False, f"Price must be positive, got {price}"
        return True, "OK"

    def check_twap(self, side, total_size: float, size_per_interval: float) -> Tuple[bool, str]:
        ok, reason = self.check_trade_args(side, total_size)
        if not ok:
            return ok, reason
        if size_per_interval is None or size_per_interval <= 0:
            return False, f"Slice size must be positive, got {size_per_interval}"
        return True, "OK"
