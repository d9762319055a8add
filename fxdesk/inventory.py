# fxdesk/inventory.py
import logging
import time
import uuid
from typing import Callable, List, Optional

from .models import NOTIONAL_MULTIPLIER, SIZE_EPSILON, PnL, Position, Side, Trade, TradeType


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


class PositionLedger:
    """
    Net EUR position and P&L built from an append-only trade log.
    Sizes are in millions; P&L is in USD.
    """
    def __init__(self, logger: Optional[logging.Logger] = None,
                 clock: Callable[[], float] = time.time):
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self._position = Position()
        self._realized = 0.0
        self._trades: List[Trade] = []

    def execute_trade(self, side: Side, size: float, price: float, type: TradeType,
                      client_id: Optional[str] = None, client_name: Optional[str] = None) -> Trade:
        """Books a trade. Never rejects; limits are enforced upstream."""
        trade = Trade(
            id=str(uuid.uuid4()),
            side=side,
            size=size,
            price=price,
            timestamp=self.clock(),
            type=type,
            client_id=client_id,
            client_name=client_name,
        )

        pos = self._position
        trade_amount = size * side.sign
        old_amount = pos.amount
        new_amount = old_amount + trade_amount

        if old_amount != 0 and _sign(trade_amount) != _sign(old_amount):
            closed = min(abs(trade_amount), abs(old_amount))
            per_unit = (price - pos.average_price) if side is Side.SELL else (pos.average_price - price)
            self._realized += closed * per_unit * NOTIONAL_MULTIPLIER

        if abs(new_amount) < SIZE_EPSILON:
            new_amount = 0.0
        if new_amount == 0:
            pos.average_price = 0.0
        elif old_amount == 0 or _sign(trade_amount) == _sign(old_amount):
            # adding: notional-weighted blend
            pos.average_price = (old_amount * pos.average_price + trade_amount * price) / new_amount
        elif _sign(new_amount) != _sign(old_amount):
            # flipped through zero
            pos.average_price = price
        # reducing without flipping keeps the cost basis

        pos.amount = new_amount
        self._trades.append(trade)
        self.logger.info(f"TRADE {trade.type.value.upper()} {side.value} {size:g}M @ {price:.5f} "
                         f"| pos {pos.amount:+g}M")
        return trade

    def get_unrealized_pnl(self, current_mid: float) -> float:
        if self._position.amount == 0:
            return 0.0
        return self._position.amount * (current_mid - self._position.average_price) * NOTIONAL_MULTIPLIER

    def get_pnl(self, current_mid: float) -> PnL:
        unrealized = self.get_unrealized_pnl(current_mid)
        return PnL(realized=self._realized, unrealized=unrealized, total=self._realized + unrealized)

    def get_position(self) -> Position:
        pos = self._position
        return Position(amount=pos.amount, average_price=pos.average_price, currency=pos.currency)

    def get_trades(self) -> List[Trade]:
        return list(self._trades)
