# fxdesk/models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

PIP = 0.0001
NOTIONAL_MULTIPLIER = 1_000_000
# Sizes (millions) closer than this are the same size; absorbs float residue from fractional fills.
SIZE_EPSILON = 1e-9


class Side(Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def sign(self) -> int:
        return 1 if self is Side.BUY else -1

    @property
    def opposite(self) -> "Side":
        """The dealer's side when a client trades on this side."""
        return Side.SELL if self is Side.BUY else Side.BUY


class TradeType(Enum):
    HEDGE = "hedge"
    VOICE = "voice"
    ELECTRONIC = "electronic"
    ALGO = "algo"


class VoiceStatus(Enum):
    """
    Lifecycle of a voice request.
    PENDING -> QUOTED -> DONE | REJECTED, PENDING -> EXPIRED.
    """
    PENDING = "pending"
    QUOTED = "quoted"
    DONE = "done"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @property
    def is_open(self) -> bool:
        return self in (VoiceStatus.PENDING, VoiceStatus.QUOTED)


class ElectronicStatus(Enum):
    QUOTING = "quoting"
    TRADED = "traded"
    EXPIRED = "expired"
    PASSED = "passed"


class Direction(Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class NewsKind(Enum):
    NEWS = "news"
    RELEASE = "release"


class InputKind(Enum):
    QUOTE = "quote"
    CALLOFF = "calloff"
    INVALID = "invalid"


@dataclass(slots=True)
class MarketPrice:
    """Snapshot produced by one market tick."""
    mid: float
    bid: float
    ask: float
    spread: float
    timestamp: float


@dataclass(slots=True)
class TierQuote:
    bid: float
    ask: float
    spread: float


@dataclass(slots=True)
class Position:
    """
    Net exposure in millions of base currency (positive = long EUR).
    average_price is 0 whenever amount is 0.
    """
    amount: float = 0.0
    average_price: float = 0.0
    currency: str = "EUR"


@dataclass(frozen=True, slots=True)
class Trade:
    id: str
    side: Side
    size: float
    price: float
    timestamp: float
    type: TradeType
    client_id: Optional[str] = None
    client_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PnL:
    realized: float = 0.0
    unrealized: float = 0.0
    total: float = 0.0


@dataclass(slots=True)
class TradeImpact:
    timestamp: float
    size: float
    direction: int
    banks_factor: float


@dataclass(frozen=True, slots=True)
class Client:
    """Immutable behavioural profile of a client. Times in seconds, sizes in millions."""
    id: str
    name: str
    competitiveness: float
    patience_range: Tuple[float, float]
    size_range: Tuple[int, int]
    direction: Optional[Side]  # None = trades both ways
    frequency_range: Tuple[float, float]
    banks_asked_range: Tuple[int, int]


@dataclass(slots=True)
class VoiceRfq:
    id: str
    client: Client
    side: Side
    size: int
    request_time: float
    expiry_time: float
    salesperson: str
    decision_time: float
    banks_asked: int
    status: VoiceStatus = VoiceStatus.PENDING
    player_quote: Optional[float] = None
    called_off: bool = False


@dataclass(slots=True)
class ElectronicRfq:
    id: str
    client: Client
    side: Side
    size: int
    request_time: float
    expiry_time: float
    banks_asked: int
    status: ElectronicStatus = ElectronicStatus.QUOTING
    traded_price: Optional[float] = None
    traded_time: Optional[float] = None
    completed_time: Optional[float] = None


@dataclass(frozen=True, slots=True)
class ChatMessage:
    id: str
    timestamp: float
    sender: str  # 'sales' | 'player'
    text: str
    rfq_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class EconomicReleaseType:
    """
    Catalog entry for a scheduled data release.
    The sign of base_impact_pips encodes how a positive surprise moves EUR/USD.
    """
    id: str
    name: str
    short_name: str
    country: str
    typical_hour: int
    typical_minute: int
    expected_range: Tuple[float, float]
    surprise_range: Tuple[float, float]
    unit: str
    base_impact_pips: float
    drift_pips: float
    drift_minutes: int
    volatility_boost: float


@dataclass(slots=True)
class ScheduledRelease:
    id: str
    type: EconomicReleaseType
    scheduled_game_minutes: int
    expected: float
    actual: Optional[float] = None
    surprise: Optional[float] = None
    released: bool = False
    impact_direction: Optional[Direction] = None


@dataclass(frozen=True, slots=True)
class NewsTemplate:
    headline: str
    direction: Direction
    immediate_pips: float
    drift_pips: float
    drift_minutes: int
    volatility_boost: float
    min_hour: Optional[int] = None
    max_hour: Optional[int] = None


@dataclass(frozen=True, slots=True)
class ReleaseData:
    name: str
    actual: float
    expected: float
    unit: str


@dataclass(frozen=True, slots=True)
class NewsItem:
    id: str
    timestamp: int  # game minutes from midnight
    headline: str
    type: NewsKind
    direction: Direction
    impact_pips: float
    release_data: Optional[ReleaseData] = None


@dataclass(frozen=True, slots=True)
class SessionInfo:
    name: str
    label: str
    spread_multiplier: float


@dataclass(frozen=True, slots=True)
class ParsedInput:
    kind: InputKind
    price: Optional[float] = None


@dataclass(frozen=True, slots=True)
class ActionResult:
    success: bool
    message: Optional[str] = None


@dataclass(slots=True)
class TwapState:
    active: bool = False
    side: Side = Side.BUY
    total_size: float = 0.0
    size_per_interval: float = 0.0
    filled_size: float = 0.0
    start_time: Optional[float] = None

    @property
    def remaining(self) -> float:
        remaining = self.total_size - self.filled_size
        return remaining if remaining > SIZE_EPSILON else 0.0


@dataclass(frozen=True, slots=True)
class VoiceTickResult:
    new_messages: Tuple[ChatMessage, ...] = ()
    completed: Tuple[VoiceRfq, ...] = ()
    executed: Tuple[VoiceRfq, ...] = ()


@dataclass(frozen=True, slots=True)
class ElectronicTickResult:
    new_rfqs: Tuple[ElectronicRfq, ...] = ()
    traded: Tuple[ElectronicRfq, ...] = ()
    expired: Tuple[ElectronicRfq, ...] = ()


@dataclass(slots=True)
class NewsTickResult:
    new_items: list = field(default_factory=list)
