# fxdesk/state.py
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .models import (ChatMessage, ElectronicRfq, MarketPrice, NewsItem, PnL, Position,
                     ScheduledRelease, SessionInfo, TierQuote, Trade, TwapState, VoiceRfq)
from .spread_engine import SESSIONS

Observer = Callable[[str, Any], None]
WILDCARD = '*'


@dataclass
class GameState:
    market_price: Optional[MarketPrice] = None
    market_mid: float = 0.0
    tier_spreads: Dict[str, float] = field(default_factory=dict)
    tier_prices: Dict[str, TierQuote] = field(default_factory=dict)
    e_tier_prices: Dict[str, TierQuote] = field(default_factory=dict)
    volatility_factor: float = 0.0
    market_impact_pips: float = 0.0
    position: Position = field(default_factory=Position)
    pnl: PnL = field(default_factory=PnL)
    trades: List[Trade] = field(default_factory=list)
    chat_messages: List[ChatMessage] = field(default_factory=list)
    active_voice_rfqs: List[VoiceRfq] = field(default_factory=list)
    electronic_rfqs: List[ElectronicRfq] = field(default_factory=list)
    news_history: List[NewsItem] = field(default_factory=list)
    latest_headline: Optional[NewsItem] = None
    upcoming_release: Optional[ScheduledRelease] = None
    game_minutes: int = 0
    game_time: str = "00:00"
    session: SessionInfo = field(default_factory=lambda: SESSIONS['TK'])
    twap: TwapState = field(default_factory=TwapState)
    price_history: Deque[Tuple[float, float]] = field(default_factory=deque)
    is_running: bool = False


STATE_FIELDS = frozenset(f.name for f in fields(GameState))


class StateBus:
    """Holds the GameState and fans out changes to subscribers."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._state = GameState()
        self._subs: Dict[str, List[Observer]] = defaultdict(list)

    @property
    def state(self) -> GameState:
        return self._state

    def reset(self, state: GameState):
        self._state = state
        for name in STATE_FIELDS:
            self._notify(name, getattr(state, name))

    # ------------------------------------------------------------------ #
    def subscribe(self, topic: str, fn: Observer) -> Callable[[], None]:
        if topic != WILDCARD and topic not in STATE_FIELDS:
            raise KeyError(f"Unknown state field: {topic}")
        self._subs[topic].append(fn)

        def unsubscribe():
            if fn in self._subs[topic]:
                self._subs[topic].remove(fn)
        return unsubscribe

    def publish(self, topic: str, value: Any):
        if topic not in STATE_FIELDS:
            raise KeyError(f"Unknown state field: {topic}")
        setattr(self._state, topic, value)
        self._notify(topic, value)

    def get(self, topic: str) -> Any:
        return getattr(self._state, topic)

    # ------------------------------------------------------------------ #
    def _notify(self, topic: str, value: Any):
        for fn in list(self._subs.get(topic, ())) + list(self._subs.get(WILDCARD, ())):
            try:
                fn(topic, value)
            except Exception:
                self.logger.exception(f"state observer failed on '{topic}'")
