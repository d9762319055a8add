# fxdesk/voice_rfq.py
import logging
import math
import re
import time
import uuid
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple

from .clients import CLIENTS, draw_request_terms
from .models import (ChatMessage, InputKind, ParsedInput, PIP, Side, VoiceRfq,
                     VoiceStatus, VoiceTickResult)
from .utils import default_rng, random_between, random_choice

SALESPEOPLE = ('Sarah', 'Mike', 'Emma', 'James', 'Lisa')

# Client buying: the salesperson wants our offer.
BUY_TEMPLATES = (
    "{client} is looking to buy {size}m EURUSD, what's your offer?",
    "I need an offer in {size}m for {client}!",
    "{client} wants to buy {size}m EUR, give me an offer?",
    "Can I get an offer in {size}m EURUSD for {client}?",
)
SELL_TEMPLATES = (
    "{client} is looking to sell {size}m EURUSD, what's your bid?",
    "I need a bid in {size}m for {client}!",
    "{client} wants to sell {size}m EUR, give me a bid?",
    "Can I get a bid in {size}m EURUSD for {client}?",
)
# Client bought, we sold.
DONE_BUY_TEMPLATES = ('MINE!', 'MINE at {pips}!', 'Done! You sold {size}m at {price}')
# Client sold, we bought.
DONE_SELL_TEMPLATES = ('YOURS!', 'YOURS at {pips}!', 'Done! You bought {size}m at {price}')
REJECTED_TEMPLATES = ('Nothing there', 'Traded away', 'Off, thanks', 'No good')
EXPIRED_TEMPLATES = ('Too slow, they went elsewhere', 'Lost it, took too long')
CALLED_OFF_TEMPLATES = ("Ok, I'll tell them you're off", 'Noted, calling it off')

CHAT_LOG_LIMIT = 500

_CALLOFF_RE = re.compile(r'^(care|ref|e+)$')
_FULL_PRICE_RE = re.compile(r'^(\d+\.\d{4})$')
_PIPS_ONLY_RE = re.compile(r'^(\d{1,2})$')
_FULL_PIPS_RE = re.compile(r'^(\d{3,4})$')


def parse_player_input(text: str, current_mid: float) -> ParsedInput:
    """
    Reads what the dealer typed into the voice chat.

    - 'care', 'ref', 'e'/'ee'/...: call off
    - '1.0852': full price
    - '52' / '5': pips on the current big figure (1.08 + 0.0052)
    - '852' / '0852': big figure and pips on the current handle (1 + 0.08 + 0.0052)
    """
    trimmed = text.strip().lower()
    if _CALLOFF_RE.match(trimmed):
        return ParsedInput(InputKind.CALLOFF)

    match = _FULL_PRICE_RE.match(trimmed)
    if match:
        return ParsedInput(InputKind.QUOTE, float(match.group(1)))

    match = _PIPS_ONLY_RE.match(trimmed)
    if match:
        big_figure = math.floor(current_mid * 100) / 100
        price = big_figure + int(match.group(1).zfill(2)) / 10000
        return ParsedInput(InputKind.QUOTE, round(price, 4))

    match = _FULL_PIPS_RE.match(trimmed)
    if match:
        digits = match.group(1).zfill(4)
        handle = math.floor(current_mid)
        price = handle + int(digits[:2]) / 100 + int(digits[2:]) / 10000
        return ParsedInput(InputKind.QUOTE, round(price, 4))

    return ParsedInput(InputKind.INVALID)


def quote_spread_pips(side: Side, quote: float, current_mid: float) -> float:
    """
    Distance of the quote from mid in the dealer's favour, in pips.
    Offer above mid when the client buys, bid below mid when it sells.
    """
    if side is Side.BUY:
        spread = (quote - current_mid) / PIP
    else:
        spread = (current_mid - quote) / PIP
    # float noise would otherwise push an exact boundary quote over the limit
    return round(spread, 6)


def acceptance_probability(competitiveness: float, spread_pips: float, max_spread_pips: float,
                           volatility_factor: float) -> float:
    spread_ratio = spread_pips / max_spread_pips if max_spread_pips > 0 else 1.0
    return min(1.0, competitiveness * (1 - 0.5 * spread_ratio) + volatility_factor * 0.2)


class VoiceRfqEngine:
    """
    Voice requests relayed by a salesperson; one at a time.
    The dealer quotes through chat, the client decides when its patience runs out.
    """
    def __init__(self, config: dict, logger: Optional[logging.Logger] = None,
                 rng=None, clock: Callable[[], float] = time.time):
        self.cfg = config['voice_rfq']
        self.logger = logger or logging.getLogger(__name__)
        self.rng = rng or default_rng()
        self.clock = clock

        self.active_rfqs: List[VoiceRfq] = []
        self.chat_messages: Deque[ChatMessage] = deque(maxlen=CHAT_LOG_LIMIT)
        self.next_rfq_time = self.clock() + self._next_interval()

    def _next_interval(self) -> float:
        return random_between(self.rng, self.cfg['min_interval_seconds'], self.cfg['max_interval_seconds'])

    def _message(self, text: str, rfq: VoiceRfq, sender: str = 'sales', now: Optional[float] = None) -> ChatMessage:
        if sender == 'sales':
            text = f"[{rfq.salesperson}] {text}"
        message = ChatMessage(
            id=str(uuid.uuid4()),
            timestamp=self.clock() if now is None else now,
            sender=sender,
            text=text,
            rfq_id=rfq.id,
        )
        self.chat_messages.append(message)
        return message

    def generate_rfq(self, now: float) -> VoiceRfq:
        client, side, size, patience, banks_asked = draw_request_terms(self.rng, CLIENTS)
        salesperson = random_choice(self.rng, SALESPEOPLE)
        return VoiceRfq(
            id=str(uuid.uuid4()),
            client=client,
            side=side,
            size=size,
            request_time=now,
            expiry_time=now + self.cfg['player_response_time_seconds'],
            salesperson=salesperson,
            decision_time=now + patience,
            banks_asked=banks_asked,
        )

    def tick(self, current_mid: float, volatility_factor: float) -> VoiceTickResult:
        now = self.clock()
        new_messages: List[ChatMessage] = []
        completed: List[VoiceRfq] = []
        executed: List[VoiceRfq] = []

        if now >= self.next_rfq_time and not self.active_rfqs:
            rfq = self.generate_rfq(now)
            templates = BUY_TEMPLATES if rfq.side is Side.BUY else SELL_TEMPLATES
            text = random_choice(self.rng, templates).format(client=rfq.client.name, size=rfq.size)
            self.active_rfqs.append(rfq)
            new_messages.append(self._message(text, rfq, now=now))
            self.next_rfq_time = now + self._next_interval()
            self.logger.info(f"VOICE RFQ: {rfq.client.name} {rfq.side.value} {rfq.size}M via {rfq.salesperson}")

        for rfq in self.active_rfqs:
            if not rfq.status.is_open:
                continue

            if rfq.called_off:
                # the call-off message went out when the dealer typed it
                rfq.status = VoiceStatus.REJECTED
                completed.append(rfq)
                continue

            if rfq.status is VoiceStatus.PENDING and now >= rfq.expiry_time:
                rfq.status = VoiceStatus.EXPIRED
                new_messages.append(self._message(random_choice(self.rng, EXPIRED_TEMPLATES), rfq, now=now))
                completed.append(rfq)
                continue

            if rfq.status is VoiceStatus.QUOTED and rfq.player_quote is not None and now >= rfq.decision_time:
                if self.evaluate_quote(rfq, current_mid, volatility_factor):
                    rfq.status = VoiceStatus.DONE
                    templates = DONE_BUY_TEMPLATES if rfq.side is Side.BUY else DONE_SELL_TEMPLATES
                    pips = round(rfq.player_quote * 10000) % 100
                    text = random_choice(self.rng, templates).format(
                        price=f"{rfq.player_quote:.4f}", pips=f"{pips:02d}", size=rfq.size)
                    executed.append(rfq)
                else:
                    rfq.status = VoiceStatus.REJECTED
                    text = random_choice(self.rng, REJECTED_TEMPLATES)
                new_messages.append(self._message(text, rfq, now=now))
                completed.append(rfq)

        if completed:
            self.active_rfqs = [r for r in self.active_rfqs if r not in completed]
        return VoiceTickResult(tuple(new_messages), tuple(completed), tuple(executed))

    def evaluate_quote(self, rfq: VoiceRfq, current_mid: float, volatility_factor: float) -> bool:
        if rfq.player_quote is None:
            return False
        max_spread = self.cfg['max_spread_from_market_pips']
        spread_pips = quote_spread_pips(rfq.side, rfq.player_quote, current_mid)
        if spread_pips > max_spread:
            return False
        probability = acceptance_probability(rfq.client.competitiveness, spread_pips,
                                             max_spread, volatility_factor)
        return self.rng.random() < probability

    def submit_quote(self, rfq_id: str, price: float) -> Tuple[bool, Optional[ChatMessage]]:
        rfq = self._find(rfq_id)
        if rfq is None or not rfq.status.is_open or rfq.called_off:
            return False, None
        rfq.player_quote = price
        rfq.status = VoiceStatus.QUOTED
        # decision_time stays put: quoting does not buy extra time
        return True, self._message(f"{price:.4f}", rfq, sender='player')

    def call_off(self, rfq_id: str, player_text: Optional[str] = None) -> Tuple[bool, List[ChatMessage]]:
        """
        Marks the request as called off. Returns the chat lines it produced:
        the dealer's own words (when given) followed by the salesperson's reply.
        """
        rfq = self._find(rfq_id)
        if rfq is None or not rfq.status.is_open or rfq.called_off:
            return False, []
        rfq.called_off = True
        messages = []
        if player_text:
            messages.append(self._message(player_text, rfq, sender='player'))
        messages.append(self._message(random_choice(self.rng, CALLED_OFF_TEMPLATES), rfq))
        return True, messages

    def parse_player_input(self, text: str, current_mid: float) -> ParsedInput:
        return parse_player_input(text, current_mid)

    def _find(self, rfq_id: str) -> Optional[VoiceRfq]:
        for rfq in self.active_rfqs:
            if rfq.id == rfq_id:
                return rfq
        return None

    def get_active_rfqs(self) -> List[VoiceRfq]:
        return list(self.active_rfqs)

    def get_most_recent_active_rfq(self) -> Optional[VoiceRfq]:
        for rfq in self.active_rfqs:
            if rfq.status.is_open and not rfq.called_off:
                return rfq
        return None

    def get_chat_messages(self) -> List[ChatMessage]:
        return list(self.chat_messages)
