"""
Sniper Engine - Main orchestrator for the pool pipeline.

The engine coordinates all components:
1. Receives PoolCreated events from the feed
2. Evaluates each pool against the five scoring sources
3. Confirms the schedule window for admitted decisions
4. Checks the kill switch (and logs bankroll sizing)
5. Executes the buy and hands the trade event to the session
6. Runs the trailing stop on open positions (via PositionMonitor)

Every hop checks RunState first; nothing reaches the evaluator or the
trader while the engine is stopped.
"""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import asdict, dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set

from pool_sniper.execution import Position, TradeEvent, TradeEventType, Trader
from pool_sniper.ingestion import (
    FeedTerminalError,
    PoolCreated,
    PoolFeed,
    ScoringClient,
)
from pool_sniper.session import SessionManager
from pool_sniper.settings import TradingSettings, apply_mode

from .evaluator import Decision, Evaluator
from .position_monitor import PositionMonitor
from .risk import RiskGate

logger = logging.getLogger(__name__)

TradeCallback = Callable[[TradeEvent], Awaitable[None]]


class RunState(str, Enum):
    """Process-wide run flag, owned by one engine instance."""
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class EngineStats:
    """Runtime statistics for the engine."""

    pools_received: int = 0
    dropped_while_stopped: int = 0
    duplicate_pools: int = 0
    evaluations: int = 0
    admitted: int = 0
    schedule_drops: int = 0
    kill_switch_drops: int = 0
    buys: int = 0
    buy_failures: int = 0
    sells: int = 0
    sell_failures: int = 0
    trailing_checks: int = 0
    errors: int = 0


class SniperEngine:
    """
    Main pipeline orchestrator: Feed -> Evaluator -> RiskGate -> Trader -> Session.

    Usage:
        engine = SniperEngine(
            settings=TradingSettings(),
            scoring_client=ScoringClient(),
            trader=Trader(executor),
            session=SessionManager(),
            risk=RiskGate(),
            api_key="...",
        )

        await engine.start()
        # ... pools flow in from the feed ...
        await engine.stop()
        await engine.drain()
    """

    def __init__(
        self,
        settings: TradingSettings,
        scoring_client: ScoringClient,
        trader: Trader,
        session: SessionManager,
        risk: RiskGate,
        feed: Optional[PoolFeed] = None,
        evaluator: Optional[Evaluator] = None,
        alert_manager: Optional[Any] = None,
        on_trade: Optional[TradeCallback] = None,
        api_key: str = "",
        testnet: bool = False,
        price_poll_interval: Optional[float] = 15.0,
        max_seen_mints: int = 10_000,
        mode: str = "custom",
    ) -> None:
        """
        Initialize the engine.

        Args:
            settings: Initial trading settings snapshot
            scoring_client: Client for the five scoring sources
            trader: Swap execution
            session: Schedule window and position bookkeeping
            risk: Kill switch, bankroll and trailing stop
            feed: Optional pre-built feed (built from api_key/testnet if None)
            evaluator: Optional evaluator override
            alert_manager: Optional AlertManager for operator alerts
            on_trade: Optional callback for every trade event
            api_key: Feed API key
            testnet: Use the devnet feed endpoint
            price_poll_interval: Seconds between trailing-stop price polls
                (None disables the position monitor)
            max_seen_mints: How many recent mints the duplicate filter remembers
            mode: Name of the preset the initial settings came from
        """
        self._settings = settings
        self._scoring_client = scoring_client
        self._trader = trader
        self._session = session
        self._risk = risk
        self._alert_manager = alert_manager
        self._on_trade = on_trade

        self._evaluator = evaluator or Evaluator(scoring_client, settings)
        self._feed = feed or PoolFeed(
            on_pool=self.handle_pool,
            on_error=self._on_feed_error,
            on_terminal_error=self._on_feed_terminal_error,
            api_key=api_key,
            testnet=testnet,
        )
        self._monitor = (
            PositionMonitor(self, scoring_client.fetch_price, price_poll_interval)
            if price_poll_interval is not None
            else None
        )

        # State
        self._run_state = RunState.STOPPED
        self._mode = mode
        self._stats = EngineStats()
        self._max_seen_mints = max_seen_mints
        self._seen_mints: "OrderedDict[str, None]" = OrderedDict()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def run_state(self) -> RunState:
        return self._run_state

    @property
    def is_running(self) -> bool:
        """Whether the engine is currently running."""
        return self._run_state == RunState.RUNNING

    @property
    def stats(self) -> EngineStats:
        return self._stats

    @property
    def settings(self) -> TradingSettings:
        """Current settings snapshot."""
        return self._settings

    @property
    def feed(self) -> PoolFeed:
        return self._feed

    @property
    def in_flight(self) -> int:
        """Number of pool evaluations/executions still running."""
        return len(self._tasks)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the pipeline (idempotent)."""
        if self.is_running:
            logger.warning("Engine already running")
            return

        logger.info(f"Starting sniper engine ({'SIMULATED' if self._settings.simulated else 'LIVE'})")
        self._run_state = RunState.RUNNING
        self._seen_mints.clear()
        await self._feed.start()
        if self._monitor:
            await self._monitor.start()
        logger.info("Sniper engine started")

    async def stop(self) -> None:
        """
        Stop the pipeline (idempotent).

        New work is suppressed immediately and the feed is closed before
        returning. In-flight evaluations and executions, including a
        trailing-stop sell already under way, are not cancelled; use
        drain() to wait for them.
        """
        if not self.is_running:
            return

        logger.info("Stopping sniper engine...")
        self._run_state = RunState.STOPPED
        await self._feed.stop()
        if self._monitor:
            await self._monitor.stop()
        logger.info("Sniper engine stopped")

    async def drain(self) -> None:
        """Wait for in-flight pool tasks and any position-monitor pass to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        if self._monitor and not self.is_running:
            await self._monitor.wait_closed()

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def handle_pool(self, pool: PoolCreated) -> None:
        """
        Feed callback: schedule evaluation of one pool.

        Each pool runs in its own task so evaluations overlap and a slow
        pool never blocks the feed.
        """
        self._stats.pools_received += 1
        if not self.is_running:
            self._stats.dropped_while_stopped += 1
            logger.debug(f"Engine stopped, dropping pool {pool.mint}")
            return

        task = asyncio.create_task(self.process_pool(pool), name=f"pool_{pool.mint[:8]}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def process_pool(self, pool: PoolCreated) -> Optional[TradeEvent]:
        """
        Evaluate one pool and, if admitted, run it through the gates.

        Never raises; failures are isolated to this pool.
        """
        try:
            if not self.is_running:
                self._stats.dropped_while_stopped += 1
                return None

            if pool.mint in self._seen_mints or self._session.has_position_for(pool.mint):
                self._stats.duplicate_pools += 1
                logger.debug(f"Duplicate pool ignored: {pool.mint}")
                return None
            self._remember_mint(pool.mint)

            snapshot = self._settings
            self._stats.evaluations += 1
            decision = await self._evaluator.evaluate(pool, snapshot)
            if not decision.admit:
                return None

            self._stats.admitted += 1
            return await self.handle_decision(decision, snapshot)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._stats.errors += 1
            logger.exception(f"Error processing pool {pool.mint}: {e}")
            return None

    def _remember_mint(self, mint: str) -> None:
        self._seen_mints[mint] = None
        while len(self._seen_mints) > self._max_seen_mints:
            self._seen_mints.popitem(last=False)

    async def handle_decision(
        self,
        decision: Decision,
        settings: Optional[TradingSettings] = None,
    ) -> Optional[TradeEvent]:
        """
        Gate an admitted decision and execute it.

        Order: run state -> schedule window -> kill switch -> bankroll ->
        buy -> session tracking. Gate violations are silent drops.
        """
        snapshot = settings or self._settings
        pool = decision.pool

        if not decision.admit:
            return None

        if not self.is_running:
            self._stats.dropped_while_stopped += 1
            return None

        if not self._session.is_within_schedule():
            self._stats.schedule_drops += 1
            logger.debug(f"Outside schedule window, dropping {pool.mint}")
            return None

        if not self.is_running:
            self._stats.dropped_while_stopped += 1
            return None

        if await self._risk.check_kill_switch():
            self._stats.kill_switch_drops += 1
            logger.warning(f"Kill switch active, dropping {pool.mint}")
            self._notify("alert_kill_switch", pool.mint)
            return None

        if not self.is_running:
            self._stats.dropped_while_stopped += 1
            return None

        self._risk.check_bankroll(snapshot)
        event = await self._trader.buy(
            pool,
            snapshot.amount_to_spend_sol,
            decision.evidence.price,
            snapshot,
        )
        await self._record_trade(event)
        return event

    # =========================================================================
    # Positions
    # =========================================================================

    def open_positions(self) -> List[Position]:
        return self._session.get_open_positions()

    async def check_position(
        self,
        position: Position,
        current_price: Decimal,
        settings: Optional[TradingSettings] = None,
    ) -> Optional[TradeEvent]:
        """
        Run the trailing stop for one position, selling if it triggers.

        Serialized per position through the session's lock.
        """
        snapshot = settings or self._settings

        async with self._session.lock_for(position.position_id):
            if not position.is_open:
                return None

            self._stats.trailing_checks += 1
            if not self._risk.check_trailing_stop(
                position, current_price, snapshot.trailing_stop_percent
            ):
                return None

            logger.info(
                f"Trailing stop hit for {position.position_id} ({position.mint}): "
                f"price={current_price} stop={position.trailing_stop}"
            )
            event = await self._trader.sell(
                position,
                snapshot,
                exit_price=current_price,
                priority_fee=snapshot.priority_fee,
            )
            await self._record_trade(event)
            return event

    async def check_positions(self, prices: Mapping[str, Decimal]) -> List[TradeEvent]:
        """
        Run the trailing stop for every open position with a known price.

        Inert while the engine is stopped; a stop between positions ends the pass.
        """
        if not self.is_running:
            return []

        snapshot = self._settings
        events = []
        for position in self.open_positions():
            if not self.is_running:
                break
            price = prices.get(position.mint)
            if price is None:
                continue
            try:
                event = await self.check_position(position, price, snapshot)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._stats.errors += 1
                logger.exception(f"Error checking position {position.position_id}: {e}")
                continue
            if event is not None:
                events.append(event)
        return events

    async def _record_trade(self, event: TradeEvent) -> None:
        """Forward a trade event to the session, stats, alerts and on_trade."""
        self._session.track_position(event)

        if event.type == TradeEventType.BUY:
            self._stats.buys += 1
        elif event.type == TradeEventType.BUY_FAILED:
            self._stats.buy_failures += 1
        elif event.type == TradeEventType.SELL:
            self._stats.sells += 1
        elif event.type == TradeEventType.SELL_FAILED:
            self._stats.sell_failures += 1
            if event.position is not None and not event.position.simulated:
                self._dispatch(
                    self._risk.panic_alert,
                    f"Sell failed for {event.position.position_id} ({event.pool.mint}): {event.reason}",
                )

        self._notify("alert_trade", event)

        if self._on_trade:
            try:
                await self._on_trade(event)
            except Exception as e:
                logger.error(f"Error in trade callback: {e}")

    # =========================================================================
    # Configuration
    # =========================================================================

    def set_config(self, **params: Any) -> TradingSettings:
        """Swap in a new settings snapshot; in-flight decisions keep theirs."""
        self._settings = self._settings.with_overrides(**params)
        self._mode = "custom"
        if "schedule_start" in params or "schedule_end" in params:
            self._session.set_schedule(
                self._settings.schedule_start, self._settings.schedule_end
            )
        logger.info(f"Settings updated: {sorted(params)}")
        return self._settings

    def apply_mode(self, mode: str, params: Optional[Dict[str, Any]] = None) -> TradingSettings:
        """Apply a named preset (safe / turbo / yolo / custom)."""
        self._settings = apply_mode(self._settings, mode, params)
        self._mode = mode
        logger.info(f"Trading mode set to {mode}")
        return self._settings

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "mode": self._mode,
            "in_flight": self.in_flight,
            "feed_state": self._feed.state.value,
            "settings": self._settings.to_dict(),
            "open_positions": [p.to_dict() for p in self.open_positions()],
            "stats": asdict(self._stats),
        }

    # =========================================================================
    # Alerts
    # =========================================================================

    def _notify(self, method: str, *args: Any) -> None:
        """Fire-and-forget AlertManager call on a worker thread."""
        if self._alert_manager is None:
            return
        self._dispatch(getattr(self._alert_manager, method), *args)

    def _dispatch(self, func: Callable[..., Any], *args: Any) -> None:
        """Run a blocking alert function on the default executor."""
        try:
            loop = asyncio.get_running_loop()
            future = loop.run_in_executor(None, func, *args)
            future.add_done_callback(self._log_alert_failure)
        except Exception as e:
            logger.error(f"Failed to dispatch alert {getattr(func, '__name__', func)}: {e}")

    @staticmethod
    def _log_alert_failure(future: "asyncio.Future") -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Alert delivery failed: {error}")

    async def _on_feed_error(self, error: Exception) -> None:
        logger.warning(f"Feed error: {error}")

    async def _on_feed_terminal_error(self, error: Exception) -> None:
        if isinstance(error, FeedTerminalError):
            logger.error(f"Feed terminal failure after {error.attempts} attempts: {error}")
        else:
            logger.error(f"Feed terminal failure: {error}")
        self._notify("alert_feed_failure", str(error))


class BotManager:
    """
    Registry of independent engines keyed by user id.

    Usage:
        manager = BotManager()
        await manager.start_bot("user_1", lambda: build_engine(config))
        manager.status("user_1")
        await manager.stop_bot("user_1")
    """

    def __init__(self) -> None:
        self._bots: Dict[str, SniperEngine] = {}

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._bots

    async def start_bot(
        self,
        user_id: str,
        factory: Callable[[], SniperEngine],
    ) -> SniperEngine:
        """Start a bot for the user, or return the one already running."""
        existing = self._bots.get(user_id)
        if existing is not None:
            return existing

        bot = factory()
        await bot.start()
        self._bots[user_id] = bot
        logger.info(f"Started bot for {user_id}")
        return bot

    async def stop_bot(self, user_id: str) -> bool:
        bot = self._bots.pop(user_id, None)
        if bot is None:
            return False
        await bot.stop()
        logger.info(f"Stopped bot for {user_id}")
        return True

    def get_bot(self, user_id: str) -> Optional[SniperEngine]:
        return self._bots.get(user_id)

    def status(self, user_id: str) -> Optional[Dict[str, Any]]:
        bot = self._bots.get(user_id)
        return bot.status() if bot else None

    async def stop_all(self) -> None:
        for user_id in list(self._bots):
            await self.stop_bot(user_id)
