# fxdesk/execution.py
import logging
import time
from typing import Callable, Dict, Optional, Tuple, Union

from .inventory import PositionLedger
from .logger import AsyncAuditLogger
from .market_engine import MarketEngine
from .models import ElectronicRfq, Side, TierQuote, Trade, TradeType, TwapState, VoiceRfq
from .spread_engine import tier_for_size


class ExecutionService:
    """
    The only path by which trades reach the ledger.
    Every fill is booked, fed back to the market as impact and audited.
    """
    def __init__(self, ledger: PositionLedger, market: MarketEngine,
                 logger: Optional[logging.Logger] = None,
                 audit_log: Optional[AsyncAuditLogger] = None):
        self.ledger = ledger
        self.market = market
        self.logger = logger or logging.getLogger(__name__)
        self.audit_log = audit_log

    def execute_hedge(self, side: Side, size: float, price: float) -> Trade:
        trade = self.ledger.execute_trade(side, size, price, TradeType.HEDGE, client_name='Market')
        # we hit the market ourselves: full impact
        self.market.record_impact(size, side)
        return self._audit(trade)

    def execute_client_fill(self, rfq: Union[VoiceRfq, ElectronicRfq], price: float,
                            trade_type: TradeType) -> Trade:
        """
        Books the dealer's side of a client trade. The market moves with the
        client's side, scaled by how many banks it asked.
        """
        trade = self.ledger.execute_trade(
            rfq.side.opposite, rfq.size, price, trade_type,
            client_id=rfq.client.id, client_name=rfq.client.name,
        )
        self.market.record_impact(rfq.size, rfq.side, banks_asked=rfq.banks_asked)
        return self._audit(trade)

    def execute_algo(self, side: Side, size: float, price: float) -> Trade:
        trade = self.ledger.execute_trade(side, size, price, TradeType.ALGO, client_name='TWAP Algo')
        self.market.record_impact(size, side)
        return self._audit(trade)

    def _audit(self, trade: Trade) -> Trade:
        if self.audit_log is not None:
            self.audit_log.record_trade(trade)
        return trade


class TwapExecution:
    """
    Time-weighted execution of one parent order in equal slices.
    Slices are priced off the tier matching the slice size.
    """
    def __init__(self, execution: ExecutionService, logger: Optional[logging.Logger] = None,
                 clock: Callable[[], float] = time.time):
        self.execution = execution
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.state = TwapState()

    def start(self, side: Side, total_size: float, size_per_interval: float) -> TwapState:
        self.state = TwapState(
            active=True,
            side=side,
            total_size=total_size,
            size_per_interval=size_per_interval,
            filled_size=0.0,
            start_time=self.clock(),
        )
        self.logger.info(f"TWAP START: {side.value} {total_size:g}M in {size_per_interval:g}M slices")
        return self.state

    def stop(self) -> TwapState:
        if self.state.active:
            self.logger.info(f"TWAP STOP: filled {self.state.filled_size:g}/{self.state.total_size:g}M")
        self.state.active = False
        return self.state

    def execute_slice(self, tier_quotes: Dict[str, TierQuote]) -> Tuple[Optional[Trade], bool]:
        """
        Fills the next slice at the current tier price.
        Returns (trade or None, finished).
        """
        state = self.state
        if not state.active:
            return None, True

        remaining = state.remaining
        if remaining <= 0:
            self.stop()
            return None, True

        slice_size = min(state.size_per_interval, remaining)
        quote = tier_quotes[tier_for_size(slice_size)]
        price = quote.ask if state.side is Side.BUY else quote.bid

        trade = self.execution.execute_algo(state.side, slice_size, price)
        state.filled_size += slice_size

        finished = state.remaining == 0.0
        if finished:
            self.stop()
        return trade, finished
