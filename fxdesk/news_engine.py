# fxdesk/news_engine.py
import logging
import math
import uuid
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple

from .models import (Direction, EconomicReleaseType, NewsItem, NewsKind, NewsTemplate,
                     NewsTickResult, ReleaseData, ScheduledRelease)
from .utils import default_rng, random_between, random_choice

MARKET_OPEN_HOUR = 7
MARKET_CLOSE_HOUR = 17  # inclusive, headlines stop at 18:00

# base_impact_pips is per unit of surprise; negative entries move EUR/USD up on a beat.
ECONOMIC_RELEASES: Tuple[EconomicReleaseType, ...] = (
    EconomicReleaseType('NFP', 'US Non-Farm Payrolls', 'NFP', 'US', 8, 30,
                        (150, 250), (-50, 50), 'k', 0.3, 10, 30, 0.8),
    EconomicReleaseType('CPI', 'US Consumer Price Index', 'CPI', 'US', 8, 30,
                        (2.5, 4.0), (-0.3, 0.3), '%', 30, 15, 20, 0.7),
    EconomicReleaseType('PMI', 'US ISM Manufacturing PMI', 'PMI', 'US', 10, 0,
                        (48, 55), (-3, 3), '', 3, 5, 15, 0.4),
    EconomicReleaseType('RETAIL', 'US Retail Sales', 'Retail', 'US', 8, 30,
                        (-0.5, 1.0), (-0.5, 0.5), '%', 15, 8, 15, 0.5),
    EconomicReleaseType('CLAIMS', 'US Initial Jobless Claims', 'Claims', 'US', 8, 30,
                        (200, 280), (-20, 20), 'k', -0.2, 3, 10, 0.3),
    EconomicReleaseType('GDP', 'US GDP Growth', 'GDP', 'US', 8, 30,
                        (1.5, 3.5), (-0.5, 0.5), '%', 20, 12, 25, 0.6),
    EconomicReleaseType('FOMC', 'FOMC Interest Rate Decision', 'FOMC', 'US', 14, 0,
                        (4.5, 5.5), (-0.25, 0.25), '%', 80, 20, 60, 1.0),
    EconomicReleaseType('EU_CPI', 'Eurozone CPI', 'EU CPI', 'EU', 5, 0,
                        (2.0, 3.5), (-0.2, 0.2), '%', -25, 10, 20, 0.5),
    EconomicReleaseType('EU_PMI', 'Eurozone Manufacturing PMI', 'EU PMI', 'EU', 4, 0,
                        (45, 52), (-2, 2), '', -2, 4, 15, 0.3),
    EconomicReleaseType('ECB', 'ECB Interest Rate Decision', 'ECB', 'EU', 7, 45,
                        (3.5, 4.5), (-0.25, 0.25), '%', -70, 18, 45, 0.9),
)

NEWS_TEMPLATES: Tuple[NewsTemplate, ...] = (
    # USD strength
    NewsTemplate('Fed Chair signals hawkish stance on inflation', Direction.BEARISH, 12, 8, 15, 0.4, 9, 17),
    NewsTemplate('US Treasury yields surge on strong economic data', Direction.BEARISH, 8, 5, 10, 0.3),
    NewsTemplate('Risk-off sentiment drives safe-haven flows to USD', Direction.BEARISH, 10, 6, 12, 0.5),
    NewsTemplate('US fiscal outlook improves, dollar rallies', Direction.BEARISH, 6, 4, 10, 0.2),
    NewsTemplate('Fed officials hint at prolonged higher rates', Direction.BEARISH, 9, 6, 15, 0.4, 10, 16),
    # EUR strength / USD weakness
    NewsTemplate('ECB signals further rate hikes ahead', Direction.BULLISH, 11, 7, 15, 0.4, 4, 12),
    NewsTemplate('Eurozone economic outlook improves', Direction.BULLISH, 7, 5, 12, 0.3),
    NewsTemplate('Fed dovish pivot speculation grows', Direction.BULLISH, 10, 7, 15, 0.5),
    NewsTemplate('US debt ceiling concerns weigh on dollar', Direction.BULLISH, 8, 5, 12, 0.4),
    NewsTemplate('European energy crisis fears ease', Direction.BULLISH, 6, 4, 10, 0.2),
    NewsTemplate('Risk appetite returns, USD safe-haven bid fades', Direction.BULLISH, 7, 4, 10, 0.3),
    NewsTemplate('ECB Lagarde strikes hawkish tone', Direction.BULLISH, 9, 6, 12, 0.4, 5, 14),
)

MarketImpactListener = Callable[[float, float, int], None]
VolatilityListener = Callable[[float], None]
NewsListener = Callable[[NewsItem], None]


def signed(direction: Direction, pips: float) -> float:
    """Bearish moves EUR/USD down."""
    return -abs(pips) if direction is Direction.BEARISH else abs(pips)


class NewsEngine:
    """
    Macro backdrop ticked once per game minute.

    Two sources share the tick: a single queued economic release that is
    replaced as soon as it fires, and random headlines during market hours.
    Both push a price shock, a drift and a volatility boost to listeners.
    """
    def __init__(self, config: dict, logger: Optional[logging.Logger] = None, rng=None):
        self.cfg = config['news']
        self.logger = logger or logging.getLogger(__name__)
        self.rng = rng or default_rng()

        self.scheduled_releases: List[ScheduledRelease] = []
        self.news_history: Deque[NewsItem] = deque(maxlen=self.cfg.get('history_limit', 50))
        self.last_news_minute = -999
        self.last_tick_minute: Optional[int] = None

        self._on_news: Optional[NewsListener] = None
        self._on_market_impact: Optional[MarketImpactListener] = None
        self._on_volatility_boost: Optional[VolatilityListener] = None

    # --- listeners ---

    def set_on_news(self, callback: Optional[NewsListener]):
        self._on_news = callback

    def set_on_market_impact(self, callback: Optional[MarketImpactListener]):
        """callback(immediate_pips, drift_pips, drift_minutes), signed in EUR/USD terms."""
        self._on_market_impact = callback

    def set_on_volatility_boost(self, callback: Optional[VolatilityListener]):
        self._on_volatility_boost = callback

    # --- scheduling ---

    def reset(self, start_minute: int):
        self.news_history.clear()
        self.scheduled_releases = []
        self.last_news_minute = -999
        self.last_tick_minute = None
        self.schedule_next_release(start_minute)

    def schedule_next_release(self, after_minute: int) -> ScheduledRelease:
        release_type = random_choice(self.rng, ECONOMIC_RELEASES)
        delay = math.floor(random_between(self.rng, self.cfg['release_delay_min'], self.cfg['release_delay_max']))
        expected = random_between(self.rng, *release_type.expected_range)
        release = ScheduledRelease(
            id=str(uuid.uuid4()),
            type=release_type,
            scheduled_game_minutes=after_minute + delay,
            expected=round(expected, 1),
        )
        self.scheduled_releases.append(release)
        return release

    def _ensure_upcoming_release(self, current_minute: int):
        self.scheduled_releases = [r for r in self.scheduled_releases if not r.released]
        if not self.scheduled_releases:
            self.schedule_next_release(current_minute)

    def get_upcoming_release(self) -> Optional[ScheduledRelease]:
        if not self.cfg['releases_enabled']:
            return None
        for release in self.scheduled_releases:
            if not release.released:
                return release
        return None

    def get_news_history(self) -> List[NewsItem]:
        return list(self.news_history)

    # --- tick ---

    def tick(self, game_minutes: int) -> NewsTickResult:
        result = NewsTickResult()
        if game_minutes == self.last_tick_minute:
            return result
        self.last_tick_minute = game_minutes

        if self.cfg['releases_enabled']:
            upcoming = self.get_upcoming_release()
            if upcoming is not None and game_minutes >= upcoming.scheduled_game_minutes:
                item = self._execute_release(upcoming, game_minutes)
                self._record(item, game_minutes)
                result.new_items.append(item)
                self._ensure_upcoming_release(game_minutes)

        if self.cfg['news_enabled'] and self._headline_window_open(game_minutes):
            if self.rng.random() < self.cfg['news_chance_per_minute']:
                item = self._generate_random_news(game_minutes)
                if item is not None:
                    self._record(item, game_minutes)
                    result.new_items.append(item)

        return result

    def _headline_window_open(self, game_minutes: int) -> bool:
        hour = (game_minutes // 60) % 24
        if not MARKET_OPEN_HOUR <= hour <= MARKET_CLOSE_HOUR:
            return False
        return game_minutes - self.last_news_minute >= self.cfg['min_news_between_minutes']

    def _record(self, item: NewsItem, game_minutes: int):
        self.news_history.appendleft(item)
        self.last_news_minute = game_minutes
        if self._on_news:
            self._on_news(item)

    def _fire(self, direction: Direction, immediate_pips: float, drift_pips: float,
              drift_minutes: int, volatility_boost: float):
        if self._on_market_impact:
            self._on_market_impact(signed(direction, immediate_pips), signed(direction, drift_pips), drift_minutes)
        if self._on_volatility_boost:
            self._on_volatility_boost(volatility_boost)

    def _execute_release(self, release: ScheduledRelease, game_minutes: int) -> NewsItem:
        rtype = release.type
        surprise = random_between(self.rng, *rtype.surprise_range)
        release.actual = round(release.expected + surprise, 1)
        release.surprise = round(surprise, 1)
        release.released = True

        impact_pips = surprise * rtype.base_impact_pips
        direction = Direction.BEARISH if impact_pips > 0 else Direction.BULLISH
        release.impact_direction = direction

        self._fire(direction, impact_pips, rtype.drift_pips, rtype.drift_minutes, rtype.volatility_boost)
        self.logger.info(f"RELEASE {rtype.short_name}: {release.actual}{rtype.unit} vs "
                         f"{release.expected}{rtype.unit} exp -> {direction.value} {abs(impact_pips):.1f} pips")

        return NewsItem(
            id=str(uuid.uuid4()),
            timestamp=game_minutes,
            headline=f"{rtype.short_name}: {release.actual}{rtype.unit} vs {release.expected}{rtype.unit} exp",
            type=NewsKind.RELEASE,
            direction=direction,
            impact_pips=abs(impact_pips),
            release_data=ReleaseData(rtype.name, release.actual, release.expected, rtype.unit),
        )

    def _generate_random_news(self, game_minutes: int) -> Optional[NewsItem]:
        hour = (game_minutes // 60) % 24
        valid = [
            t for t in NEWS_TEMPLATES
            if (t.min_hour is None or hour >= t.min_hour) and (t.max_hour is None or hour <= t.max_hour)
        ]
        if not valid:
            return None

        template = random_choice(self.rng, valid)
        self._fire(template.direction, template.immediate_pips, template.drift_pips,
                   template.drift_minutes, template.volatility_boost)
        self.logger.info(f"HEADLINE: {template.headline} ({template.direction.value})")

        return NewsItem(
            id=str(uuid.uuid4()),
            timestamp=game_minutes,
            headline=template.headline,
            type=NewsKind.NEWS,
            direction=template.direction,
            impact_pips=template.immediate_pips,
        )
