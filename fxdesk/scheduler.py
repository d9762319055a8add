# fxdesk/scheduler.py
import asyncio
import logging
import time
from collections import deque
from typing import Callable, List, Optional, Set

from .config import DEFAULT_CONFIG, merge_config
from .electronic_rfq import ElectronicRfqEngine
from .execution import ExecutionService, TwapExecution
from .inventory import PositionLedger
from .logger import AsyncAuditLogger
from .market_engine import MarketEngine
from .models import (ActionResult, ChatMessage, InputKind, NewsItem, PIP, PnL, Side, Trade,
                     TradeType, VoiceRfq)
from .news_engine import NewsEngine
from .risk_engine import RiskEngine
from .spread_engine import SpreadEngine, get_session_for_hour, tier_prices
from .state import GameState, Observer, StateBus
from .utils import format_game_time, to_pips
from .voice_rfq import VoiceRfqEngine


def as_side(value) -> Optional[Side]:
    if isinstance(value, Side):
        return value
    try:
        return Side(str(value).lower())
    except ValueError:
        return None


class Simulation:
    """
    Orchestrates the desk: one asyncio task per cadence (price, spread, voice,
    electronic, clock, TWAP) plus cancellable one-shot timers for news shocks
    and volatility decay. Every callback runs to completion on the event loop,
    so engines never see a half-applied update.

    start(), stop(), restart() and start_twap() must be called from inside a
    running event loop.
    """
    def __init__(self, config: Optional[dict] = None, logger: Optional[logging.Logger] = None,
                 rng=None, clock: Callable[[], float] = time.time,
                 audit_log: Optional[AsyncAuditLogger] = None):
        self.config = merge_config(DEFAULT_CONFIG, config)
        self.logger = logger or logging.getLogger("fxdesk")
        self.rng = rng
        self.clock = clock
        self.audit_log = audit_log

        self.bus = StateBus(self.logger)
        self._running = False
        self._tasks: List[asyncio.Task] = []
        self._twap_task: Optional[asyncio.Task] = None
        self._timers: Set[asyncio.TimerHandle] = set()

        self._build_engines()
        self._reset_state()

    # ------------------------------------------------------------------ #
    # construction
    # ------------------------------------------------------------------ #

    def _build_engines(self):
        cfg, log, rng, clock = self.config, self.logger, self.rng, self.clock
        self.market = MarketEngine(cfg, log, rng=rng, clock=clock)
        self.spread = SpreadEngine(cfg, log, rng=rng)
        self.ledger = PositionLedger(log, clock=clock)
        self.voice = VoiceRfqEngine(cfg, log, rng=rng, clock=clock)
        self.electronic = ElectronicRfqEngine(cfg, log, rng=rng, clock=clock)
        self.news = NewsEngine(cfg, log, rng=rng)
        self.risk = RiskEngine(cfg, log)
        self.execution = ExecutionService(self.ledger, self.market, log, audit_log=self.audit_log)
        self.twap = TwapExecution(self.execution, log, clock=clock)

        self.news.set_on_market_impact(self._on_news_impact)
        self.news.set_on_volatility_boost(self._on_volatility_boost)
        self.news.set_on_news(self._on_headline)

        self.game_minutes: int = cfg['game']['start_minutes']
        self.volatility_baseline = 0.0
        self._e_skew = 0.0
        self._e_widen = 0.0
        self._chat: deque = deque(maxlen=cfg['game']['chat_history_limit'])

    def _reset_state(self):
        session = get_session_for_hour(self.game_minutes // 60)
        self.spread.set_session_multiplier(session.spread_multiplier)
        mid = self.market.get_current_mid()
        spreads = self.spread.current_spreads()
        self.bus.reset(GameState(
            market_mid=mid,
            tier_spreads=spreads,
            tier_prices=tier_prices(mid, spreads),
            e_tier_prices=tier_prices(mid, spreads, self._e_skew, self._e_widen),
            volatility_factor=self.spread.get_volatility_factor(),
            position=self.ledger.get_position(),
            pnl=PnL(),
            game_minutes=self.game_minutes,
            game_time=format_game_time(self.game_minutes),
            session=session,
            twap=self.twap.state,
            price_history=deque(maxlen=self.config['game']['price_history_limit']),
        ))

    # ------------------------------------------------------------------ #
    # read-only surface
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> GameState:
        return self.bus.state

    def subscribe(self, topic: str, fn: Observer) -> Callable[[], None]:
        return self.bus.subscribe(topic, fn)

    def is_running(self) -> bool:
        return self._running

    @property
    def pending_timer_count(self) -> int:
        return len(self._timers)

    # ------------------------------------------------------------------ #
    # lifecycle
    # ------------------------------------------------------------------ #

    def start(self):
        if self._running:
            return
        self._running = True
        timing = self.config['timing']

        self.game_minutes = self.config['game']['start_minutes']
        self.news.reset(self.game_minutes)
        self._publish_clock()
        self.bus.publish('upcoming_release', self.news.get_upcoming_release())

        self._price_tick()
        self._spread_tick()

        self._tasks = [
            asyncio.create_task(self._every('price', timing['price_ms'], self._price_tick)),
            asyncio.create_task(self._every('spread', timing['spread_ms'], self._spread_tick)),
            asyncio.create_task(self._every('voice', timing['voice_rfq_ms'], self._voice_tick)),
            asyncio.create_task(self._every('electronic', timing['electronic_rfq_ms'], self._electronic_tick)),
            asyncio.create_task(self._every('clock', timing['clock_ms'], self._clock_tick)),
        ]
        self.bus.publish('is_running', True)
        self.logger.info(f"🟢 SIMULATION STARTED at {format_game_time(self.game_minutes)}")

    def stop(self):
        if self._twap_task is not None:
            self._twap_task.cancel()
            self._twap_task = None
        if self.twap.state.active:
            self.twap.stop()
            self.bus.publish('twap', self.twap.state)

        for task in self._tasks:
            task.cancel()
        self._tasks = []
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()

        if self._running:
            self._running = False
            self.bus.publish('is_running', False)
            self.logger.info("🔴 SIMULATION STOPPED")

    def restart(self, config: Optional[dict] = None):
        """Tears everything down and rebuilds every engine, optionally with a new config."""
        self.stop()
        if config is not None:
            self.config = merge_config(DEFAULT_CONFIG, config)
        self._build_engines()
        self._reset_state()
        self.logger.info("🔁 SIMULATION RESET")
        self.start()

    async def _every(self, name: str, interval_ms: float, callback: Callable[[], None]):
        interval = interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            self._guarded(name, callback)

    def _guarded(self, name: str, callback: Callable, *args):
        try:
            callback(*args)
        except Exception:
            self.logger.exception(f"{name} callback failed")

    def _call_later(self, delay_s: float, name: str, callback: Callable, *args) -> Optional[asyncio.TimerHandle]:
        """One-shot timer tracked so stop() can cancel it."""
        if not self._running:
            self.logger.debug(f"{name} dropped: simulation not running")
            return None
        loop = asyncio.get_running_loop()
        handle: Optional[asyncio.TimerHandle] = None

        def fire():
            self._timers.discard(handle)
            self._guarded(name, callback, *args)

        handle = loop.call_later(max(0.0, delay_s), fire)
        self._timers.add(handle)
        return handle

    # ------------------------------------------------------------------ #
    # ticks
    # ------------------------------------------------------------------ #

    def _price_tick(self):
        price = self.market.tick()
        self.bus.publish('market_price', price)
        self.bus.publish('market_mid', price.mid)
        self.bus.publish('market_impact_pips', to_pips(self.market.get_current_impact()))
        self.state.price_history.append((price.timestamp, price.mid))
        self._publish_tier_prices()
        self._publish_pnl()

    def _spread_tick(self):
        self.bus.publish('tier_spreads', self.spread.tick())
        self._publish_tier_prices()

    def _voice_tick(self):
        result = self.voice.tick(self.state.market_mid, self.spread.get_volatility_factor())
        for rfq in result.executed:
            self.execution.execute_client_fill(rfq, rfq.player_quote, TradeType.VOICE)
        self._append_chat(*result.new_messages)
        self.bus.publish('active_voice_rfqs', self.voice.get_active_rfqs())
        if result.executed:
            self._publish_book()

    def _electronic_tick(self):
        result = self.electronic.tick(self.state.e_tier_prices)
        for rfq in result.traded:
            self.execution.execute_client_fill(rfq, rfq.traded_price, TradeType.ELECTRONIC)
        self.electronic.cleanup_old_rfqs()
        self.bus.publish('electronic_rfqs', self.electronic.get_all_rfqs())
        if result.traded:
            self._publish_book()

    def _clock_tick(self):
        self.game_minutes += 1
        self._publish_clock()
        self.news.tick(self.game_minutes)
        self.bus.publish('news_history', self.news.get_news_history())
        self.bus.publish('upcoming_release', self.news.get_upcoming_release())

    def _twap_tick(self):
        trade, finished = self.twap.execute_slice(self.state.tier_prices)
        if trade is not None:
            self._publish_book()
        self.bus.publish('twap', self.twap.state)
        if finished and self._twap_task is not None:
            task, self._twap_task = self._twap_task, None
            task.cancel()

    # ------------------------------------------------------------------ #
    # cross-engine effects
    # ------------------------------------------------------------------ #

    def _on_news_impact(self, immediate_pips: float, drift_pips: float, drift_minutes: int):
        news_cfg = self.config['news']
        delay = news_cfg['shock_delay_ms'] / 1000
        self._call_later(delay, 'news shock', self._apply_price_shock, immediate_pips * PIP)

        if drift_minutes > 0 and drift_pips:
            minute = self.config['timing']['clock_ms'] / 1000
            step = drift_pips * PIP / drift_minutes
            for k in range(1, drift_minutes + 1):
                self._call_later(delay + k * minute, 'news drift', self._apply_price_shock, step)

    def _apply_price_shock(self, delta: float):
        self.market.apply_impact(delta)
        self.bus.publish('market_mid', self.market.get_current_mid())
        self._publish_tier_prices()
        self._publish_pnl()

    def _on_volatility_boost(self, boost: float):
        self._set_volatility(self.spread.get_volatility_factor() + boost)

        news_cfg = self.config['news']
        steps = max(1, int(news_cfg['volatility_decay_steps']))
        interval = news_cfg['volatility_decay_ms'] / 1000
        for k in range(1, steps + 1):
            self._call_later(k * interval, 'volatility decay', self._decay_volatility, boost / steps)

    def _decay_volatility(self, amount: float):
        self._set_volatility(max(self.volatility_baseline, self.spread.get_volatility_factor() - amount))

    def _set_volatility(self, factor: float):
        self.spread.set_volatility_factor(factor)
        self.bus.publish('volatility_factor', self.spread.get_volatility_factor())

    def _on_headline(self, item: NewsItem):
        self.bus.publish('latest_headline', item)

    # ------------------------------------------------------------------ #
    # publishing helpers
    # ------------------------------------------------------------------ #

    def _publish_clock(self):
        self.bus.publish('game_minutes', self.game_minutes)
        self.bus.publish('game_time', format_game_time(self.game_minutes))
        session = get_session_for_hour(self.game_minutes // 60)
        self.spread.set_session_multiplier(session.spread_multiplier)
        if session != self.state.session:
            self.logger.info(f"SESSION: {session.label} ({session.spread_multiplier}x)")
        self.bus.publish('session', session)

    def _publish_tier_prices(self):
        mid = self.market.get_current_mid()
        spreads = self.state.tier_spreads
        self.bus.publish('tier_prices', tier_prices(mid, spreads))
        self.bus.publish('e_tier_prices', tier_prices(mid, spreads, self._e_skew, self._e_widen))

    def _publish_pnl(self):
        self.bus.publish('pnl', self.ledger.get_pnl(self.market.get_current_mid()))

    def _publish_book(self):
        self.bus.publish('position', self.ledger.get_position())
        self.bus.publish('trades', self.ledger.get_trades())
        self._publish_pnl()

    def _append_chat(self, *messages: ChatMessage):
        if not messages:
            return
        self._chat.extend(messages)
        self.bus.publish('chat_messages', list(self._chat))

    # ------------------------------------------------------------------ #
    # trading actions
    # ------------------------------------------------------------------ #

    def execute_hedge_trade(self, side, size: float, price: float) -> Optional[Trade]:
        side = as_side(side)
        ok, reason = self.risk.check_trade_args(side, size, price)
        if not ok:
            self.logger.warning(f"⛔ HEDGE REJECTED: {reason}")
            return None
        trade = self.execution.execute_hedge(side, size, price)
        self._publish_book()
        return trade

    def start_twap(self, side, total_size: float, size_per_interval: float) -> ActionResult:
        side = as_side(side)
        ok, reason = self.risk.check_twap(side, total_size, size_per_interval)
        if not ok:
            return ActionResult(False, reason)
        if not self._running:
            return ActionResult(False, "Simulation is not running")

        if self._twap_task is not None:
            self._twap_task.cancel()
            self._twap_task = None

        self.twap.start(side, total_size, size_per_interval)
        self.bus.publish('twap', self.twap.state)
        self._twap_tick()
        if self.twap.state.active:
            self._twap_task = asyncio.create_task(
                self._every('twap', self.config['timing']['twap_ms'], self._twap_tick))
        return ActionResult(True)

    def stop_twap(self):
        if self._twap_task is not None:
            self._twap_task.cancel()
            self._twap_task = None
        self.twap.stop()
        self.bus.publish('twap', self.twap.state)

    def set_e_pricing(self, skew_pips: float = 0.0, widen_pips: float = 0.0):
        """Shifts and widens the electronic stream relative to the market tiers."""
        self._e_skew = skew_pips * PIP
        self._e_widen = max(0.0, widen_pips) * PIP
        self._publish_tier_prices()

    # ------------------------------------------------------------------ #
    # voice / electronic interaction
    # ------------------------------------------------------------------ #

    def handle_chat_input(self, text: str) -> ActionResult:
        current_mid = self.state.market_mid
        parsed = self.voice.parse_player_input(text, current_mid)
        if parsed.kind is InputKind.INVALID:
            return ActionResult(False, 'Invalid input')

        rfq = self.voice.get_most_recent_active_rfq()
        if rfq is None:
            return ActionResult(False, 'No active RFQ to respond to')

        if parsed.kind is InputKind.CALLOFF:
            ok, messages = self.voice.call_off(rfq.id, player_text=text.strip())
            if not ok:
                return ActionResult(False)
            self._append_chat(*messages)
            self.bus.publish('active_voice_rfqs', self.voice.get_active_rfqs())
            return ActionResult(True)

        ok, reason = self.risk.check_voice_quote(parsed.price, current_mid)
        if not ok:
            return ActionResult(False, reason)

        ok, message = self.voice.submit_quote(rfq.id, parsed.price)
        if not ok:
            return ActionResult(False)
        self._append_chat(message)
        self.bus.publish('active_voice_rfqs', self.voice.get_active_rfqs())
        return ActionResult(True)

    def get_active_voice_rfq(self) -> Optional[VoiceRfq]:
        return self.voice.get_most_recent_active_rfq()

    def reject_electronic_rfq(self, rfq_id: str) -> bool:
        passed = self.electronic.reject_rfq(rfq_id)
        if passed:
            self.bus.publish('electronic_rfqs', self.electronic.get_all_rfqs())
        return passed
