# fxdesk/electronic_rfq.py
import logging
import time
import uuid
from typing import Callable, Dict, List, Optional

from .clients import CLIENTS, draw_request_terms
from .models import ElectronicRfq, ElectronicStatus, ElectronicTickResult, Side, TierQuote
from .spread_engine import tier_for_size
from .utils import default_rng, random_between

URGENCY_WEIGHT = 0.2


def acceptance_probability(rfq: ElectronicRfq, now: float) -> float:
    """
    Competitiveness plus an urgency bonus that grows to URGENCY_WEIGHT at expiry.
    A zero-length patience window counts as fully elapsed.
    """
    total = rfq.expiry_time - rfq.request_time
    if total <= 0:
        time_ratio = 1.0
    else:
        time_ratio = max(0.0, min(1.0, (now - rfq.request_time) / total))
    return min(1.0, rfq.client.competitiveness + URGENCY_WEIGHT * time_ratio)


class ElectronicRfqEngine:
    """
    Streaming RFQs answered automatically off the electronic tier prices.
    The dealer can only pass; clients decide at the end of their patience.
    """
    def __init__(self, config: dict, logger: Optional[logging.Logger] = None,
                 rng=None, clock: Callable[[], float] = time.time):
        self.cfg = config['electronic_rfq']
        self.logger = logger or logging.getLogger(__name__)
        self.rng = rng or default_rng()
        self.clock = clock

        self.rfqs: List[ElectronicRfq] = []
        self.next_rfq_time = self.clock() + self._next_interval()

    def _next_interval(self) -> float:
        return random_between(self.rng, self.cfg['min_interval_seconds'], self.cfg['max_interval_seconds'])

    def generate_rfq(self, now: float) -> ElectronicRfq:
        client, side, size, patience, banks_asked = draw_request_terms(self.rng, CLIENTS)
        return ElectronicRfq(
            id=str(uuid.uuid4()),
            client=client,
            side=side,
            size=size,
            request_time=now,
            expiry_time=now + patience,
            banks_asked=banks_asked,
        )

    @property
    def quoting_count(self) -> int:
        return sum(1 for r in self.rfqs if r.status is ElectronicStatus.QUOTING)

    def tick(self, e_tier_prices: Dict[str, TierQuote]) -> ElectronicTickResult:
        now = self.clock()
        new_rfqs: List[ElectronicRfq] = []
        traded: List[ElectronicRfq] = []
        expired: List[ElectronicRfq] = []

        if now >= self.next_rfq_time and self.quoting_count < self.cfg['max_active_rfqs']:
            rfq = self.generate_rfq(now)
            self.rfqs.append(rfq)
            new_rfqs.append(rfq)
            self.next_rfq_time = now + self._next_interval()
            self.logger.debug(f"E-RFQ: {rfq.client.name} {rfq.side.value} {rfq.size}M")

        for rfq in self.rfqs:
            if rfq.status is not ElectronicStatus.QUOTING or now < rfq.expiry_time:
                continue

            quote = e_tier_prices[tier_for_size(rfq.size)]
            price = quote.ask if rfq.side is Side.BUY else quote.bid
            rfq.completed_time = now
            if self.rng.random() < acceptance_probability(rfq, now):
                rfq.status = ElectronicStatus.TRADED
                rfq.traded_price = price
                rfq.traded_time = now
                traded.append(rfq)
            else:
                rfq.status = ElectronicStatus.EXPIRED
                expired.append(rfq)

        return ElectronicTickResult(tuple(new_rfqs), tuple(traded), tuple(expired))

    def reject_rfq(self, rfq_id: str) -> bool:
        """Dealer passes on a live request."""
        for rfq in self.rfqs:
            if rfq.id == rfq_id:
                if rfq.status is not ElectronicStatus.QUOTING:
                    return False
                rfq.status = ElectronicStatus.PASSED
                rfq.completed_time = self.clock()
                return True
        return False

    def cleanup_old_rfqs(self):
        """Drops finished requests once they have been visible for the retention window."""
        cutoff = self.clock() - self.cfg['retention_seconds']
        self.rfqs = [
            r for r in self.rfqs
            if r.status is ElectronicStatus.QUOTING
            or r.completed_time is None
            or r.completed_time > cutoff
        ]

    def get_active_rfqs(self) -> List[ElectronicRfq]:
        return [r for r in self.rfqs if r.status in (ElectronicStatus.QUOTING, ElectronicStatus.TRADED)]

    def get_all_rfqs(self) -> List[ElectronicRfq]:
        return list(self.rfqs)
