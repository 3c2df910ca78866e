"""
Pool Sniper - Main Entry Point

Usage:
    python -m pool_sniper.main [--dry-run] [--mode safe|turbo|yolo]
    pool-sniper --dry-run --log-level DEBUG

Configuration:
    The bot reads configuration from:
    1. Environment variables (a .env file in the working directory is loaded
       first; variables already set win)
    2. Command line arguments

Environment Variables:
    HELIUS_API_KEY            Pool feed API key (required)
    TESTNET                   Use the devnet feed endpoint (default: false)
    SIMULATED                 Paper trading, no swaps sent (default: true)
    AMOUNT_TO_SPEND_SOL       SOL spent per trade (default: 0.1)
    AMOUNT_TOKENS_TO_TRADE    Concurrent trades used for bankroll (default: 1)
    ENTRY_LIQUIDITY           Minimum USD liquidity to enter (default: 20000)
    MAX_HOLDERS               Holder count must be below this (default: 3000)
    MIN_QUALITY_SCORE         Minimum quality score (default: 60)
    SLIPPAGE                  Swap slippage percent (default: 2)
    PRIORITY_FEE              Priority fee in SOL (default: 0.00009)
    TRAILING_STOP_PERCENT     Trailing-stop distance percent (default: 10)
    SCHEDULE_TIME_START       Trading window start, HH:MM local (default: 00:00)
    SCHEDULE_TIME_END         Trading window end, HH:MM local (default: 00:00)
    TRADING_MODE              Preset: safe, turbo, yolo or custom (default: custom)
    REDIS_URL                 Kill-switch flag store (optional)
    SUPABASE_URL              Kill-switch control log base URL (optional)
    SUPABASE_KEY              Kill-switch control log API key (optional)
    KILL_SWITCH               Set to "true" to suppress all trading
    BIRDEYE_API_KEY           Reference price API key (optional)
    SOLSCAN_API_KEY           Holder count API key (optional)
    TELEGRAM_BOT_TOKEN        Telegram bot token for alerts
    TELEGRAM_CHAT_ID          Telegram chat ID for alerts
    SLACK_WEBHOOK_URL         Slack incoming webhook for alerts
    NOTIFICATIONS             Set to "false" to disable alerts (default: true)
    PRICE_POLL_INTERVAL_SECONDS  Trailing-stop price poll interval (default: 15)
    LOG_LEVEL                 Logging level (DEBUG/INFO/WARNING/ERROR)

Live Mode Requirements:
    When SIMULATED=false the bot requires a swap executor. Transaction
    signing and broadcast are not part of this package; pass an executor to
    SniperBot when embedding it. The CLI fails fast in live mode without one.
"""

from __future__ import annotations

import argparse
import asyncio
import atexit
import fcntl
import logging
import os
import signal
import sys
from contextlib import contextmanager
from dataclasses import dataclass, fields
from decimal import Decimal
from pathlib import Path
from typing import Generator, Optional

from pool_sniper.core import (
    ControlLogSource,
    RedisFlagSource,
    RiskGate,
    SniperEngine,
)
from pool_sniper.execution import SwapExecutor, Trader
from pool_sniper.ingestion import ScoringClient
from pool_sniper.monitoring import AlertManager
from pool_sniper.session import SessionManager
from pool_sniper.settings import MODE_PRESETS, TradingSettings, apply_mode

# Configure logging before anything else logs
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

DEFAULT_PID_FILE = "/tmp/pool-sniper.pid"


class SingletonBotError(Exception):
    """Raised when another bot instance is already running."""
    pass


@contextmanager
def singleton_lock(pid_file: str = DEFAULT_PID_FILE) -> Generator[None, None, None]:
    """
    Ensure only one bot instance runs at a time.

    Takes a non-blocking exclusive flock on the PID file; the lock is
    released when the context exits or the process dies.

    Raises:
        SingletonBotError: If another instance holds the lock
    """
    pid_path = Path(pid_file)

    # Read existing PID before opening (which would truncate)
    existing_pid = None
    try:
        existing_pid = pid_path.read_text().strip()
    except FileNotFoundError:
        pass

    fp = open(pid_path, "a+")

    try:
        fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        fp.close()
        if existing_pid:
            raise SingletonBotError(
                f"Another bot instance is already running (PID: {existing_pid}). "
                f"Kill it with: kill {existing_pid}"
            )
        raise SingletonBotError(
            "Another bot instance is already running. "
            "Check for existing processes: ps aux | grep pool-sniper"
        )

    fp.seek(0)
    fp.truncate()
    fp.write(str(os.getpid()))
    fp.flush()

    def cleanup():
        try:
            fcntl.flock(fp.fileno(), fcntl.LOCK_UN)
            fp.close()
            pid_path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"PID file cleanup failed: {e}")

    atexit.register(cleanup)

    try:
        logger.info(f"Acquired singleton lock (PID: {os.getpid()}, file: {pid_file})")
        yield
    finally:
        cleanup()
        atexit.unregister(cleanup)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() == "true"


@dataclass
class BotConfig:
    """Complete bot configuration."""

    # Feed
    helius_api_key: str = ""
    testnet: bool = False

    # Trading parameters
    simulated: bool = True
    amount_to_spend_sol: Decimal = Decimal("0.1")
    amount_tokens_to_trade: int = 1
    entry_liquidity: Decimal = Decimal("20000")
    max_holders: int = 3000
    min_quality_score: Decimal = Decimal("60")
    slippage: Decimal = Decimal("2")
    priority_fee: Decimal = Decimal("0.00009")
    trailing_stop_percent: Decimal = Decimal("10")
    schedule_start: str = "00:00"
    schedule_end: str = "00:00"
    trading_mode: str = "custom"

    # Kill switch
    redis_url: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Scoring sources
    birdeye_api_key: Optional[str] = None
    solscan_api_key: Optional[str] = None

    # Alerts
    notifications: bool = True
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    slack_webhook_url: Optional[str] = None

    # Background tasks
    price_poll_interval_seconds: float = 15.0

    @classmethod
    def from_env(cls) -> "BotConfig":
        """Load configuration from environment variables."""
        return cls(
            helius_api_key=os.environ.get("HELIUS_API_KEY", ""),
            testnet=_env_bool("TESTNET", "false"),
            simulated=_env_bool("SIMULATED", "true"),
            amount_to_spend_sol=Decimal(os.environ.get("AMOUNT_TO_SPEND_SOL", "0.1")),
            amount_tokens_to_trade=int(os.environ.get("AMOUNT_TOKENS_TO_TRADE", "1")),
            entry_liquidity=Decimal(os.environ.get("ENTRY_LIQUIDITY", "20000")),
            max_holders=int(os.environ.get("MAX_HOLDERS", "3000")),
            min_quality_score=Decimal(os.environ.get("MIN_QUALITY_SCORE", "60")),
            slippage=Decimal(os.environ.get("SLIPPAGE", "2")),
            priority_fee=Decimal(os.environ.get("PRIORITY_FEE", "0.00009")),
            trailing_stop_percent=Decimal(os.environ.get("TRAILING_STOP_PERCENT", "10")),
            schedule_start=os.environ.get("SCHEDULE_TIME_START", "00:00"),
            schedule_end=os.environ.get("SCHEDULE_TIME_END", "00:00"),
            trading_mode=os.environ.get("TRADING_MODE", "custom").lower(),
            redis_url=os.environ.get("REDIS_URL") or None,
            supabase_url=os.environ.get("SUPABASE_URL") or None,
            supabase_key=os.environ.get("SUPABASE_KEY") or None,
            birdeye_api_key=os.environ.get("BIRDEYE_API_KEY") or None,
            solscan_api_key=os.environ.get("SOLSCAN_API_KEY") or None,
            notifications=_env_bool("NOTIFICATIONS", "true"),
            telegram_bot_token=os.environ.get("TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=os.environ.get("TELEGRAM_CHAT_ID"),
            slack_webhook_url=os.environ.get("SLACK_WEBHOOK_URL"),
            price_poll_interval_seconds=float(os.environ.get("PRICE_POLL_INTERVAL_SECONDS", "15")),
        )

    def to_settings(self) -> TradingSettings:
        """Build the TradingSettings snapshot, applying the named preset."""
        settings = TradingSettings(
            amount_to_spend_sol=self.amount_to_spend_sol,
            concurrent_trades=self.amount_tokens_to_trade,
            entry_liquidity=self.entry_liquidity,
            max_holders=self.max_holders,
            min_quality_score=self.min_quality_score,
            slippage=self.slippage,
            priority_fee=self.priority_fee,
            simulated=self.simulated,
            trailing_stop_percent=self.trailing_stop_percent,
            schedule_start=self.schedule_start,
            schedule_end=self.schedule_end,
        )
        if self.trading_mode in MODE_PRESETS:
            settings = apply_mode(settings, self.trading_mode)
        return settings

    def redacted(self) -> dict:
        """Config as a dict with secrets masked, for startup logging."""
        secrets = {
            "helius_api_key",
            "supabase_key",
            "birdeye_api_key",
            "solscan_api_key",
            "telegram_bot_token",
        }
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            result[f.name] = "***" if f.name in secrets and value else value
        return result


class SniperBot:
    """
    Process-level runner.

    Builds every component from BotConfig, starts the engine, and runs until
    SIGINT/SIGTERM or request_shutdown().
    """

    def __init__(self, config: BotConfig, executor: Optional[SwapExecutor] = None):
        self.config = config
        self._executor = executor
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized on start)
        self._alert_manager: Optional[AlertManager] = None
        self._scoring_client: Optional[ScoringClient] = None
        self._flag_source: Optional[RedisFlagSource] = None
        self._control_log: Optional[ControlLogSource] = None
        self._engine: Optional[SniperEngine] = None

    @property
    def engine(self) -> Optional[SniperEngine]:
        return self._engine

    def build(self) -> SniperEngine:
        """Construct all components. Does not open any connection."""
        config = self.config
        settings = config.to_settings()

        self._alert_manager = AlertManager(
            telegram_bot_token=config.telegram_bot_token,
            telegram_chat_id=config.telegram_chat_id,
            slack_webhook_url=config.slack_webhook_url,
            enabled=config.notifications,
        )
        self._scoring_client = ScoringClient(
            birdeye_api_key=config.birdeye_api_key,
            solscan_api_key=config.solscan_api_key,
        )
        if config.redis_url:
            self._flag_source = RedisFlagSource.from_url(config.redis_url)
        if config.supabase_url and config.supabase_key:
            self._control_log = ControlLogSource(config.supabase_url, config.supabase_key)

        risk = RiskGate(
            flag_source=self._flag_source,
            control_log=self._control_log,
            alert_manager=self._alert_manager,
            trailing_stop_percent=settings.trailing_stop_percent,
        )
        self._engine = SniperEngine(
            settings=settings,
            scoring_client=self._scoring_client,
            trader=Trader(self._executor),
            session=SessionManager(settings.schedule_start, settings.schedule_end),
            risk=risk,
            alert_manager=self._alert_manager,
            api_key=config.helius_api_key,
            testnet=config.testnet,
            price_poll_interval=config.price_poll_interval_seconds,
            mode=config.trading_mode,
        )
        return self._engine

    async def start(self) -> None:
        """Start the bot and block until shutdown."""
        logger.info("=" * 60)
        logger.info("POOL SNIPER")
        logger.info("=" * 60)
        logger.info(f"Network: {'DEVNET' if self.config.testnet else 'MAINNET'}")
        logger.info(f"Trading: {'SIMULATED' if self.config.simulated else 'LIVE'}")
        logger.info(f"Mode: {self.config.trading_mode}")
        logger.info("=" * 60)
        logger.debug(f"Config: {self.config.redacted()}")

        self._running = True
        self._shutdown_event.clear()
        self._setup_signal_handlers()

        try:
            engine = self._engine or self.build()
            if self._shutdown_event.is_set():
                logger.info("Shutdown requested during startup")
                return

            await engine.start()

            logger.info("Bot started successfully")
            logger.info("Press Ctrl+C to stop")

            await self._run_loop()

        except Exception as e:
            logger.exception(f"Fatal error: {e}")
            raise
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the bot gracefully."""
        if not self._running:
            return

        logger.info("Shutting down...")
        self._running = False
        self._shutdown_event.set()

        if self._engine:
            try:
                await self._engine.stop()
                await self._engine.drain()
            except Exception as e:
                logger.warning(f"Error stopping engine: {e}")

        for name, resource in (
            ("scoring client", self._scoring_client),
            ("kill-switch flag", self._flag_source),
            ("control log", self._control_log),
        ):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"Error closing {name}: {e}")

        logger.info("Shutdown complete")

    async def request_shutdown(self, reason: str = "manual") -> None:
        if not self._running:
            return
        logger.warning(f"Shutdown requested: {reason}")
        self._shutdown_event.set()

    async def _run_loop(self) -> None:
        """Wait for shutdown, logging stats periodically."""
        stats_interval = 60

        while self._running:
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=stats_interval)
                break
            except asyncio.TimeoutError:
                pass

            if self._engine:
                stats = self._engine.stats
                logger.info(
                    f"Stats: pools={stats.pools_received}, "
                    f"admitted={stats.admitted}, buys={stats.buys}, "
                    f"sells={stats.sells}, feed={self._engine.feed.state.value}"
                )

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def handle_signal(sig):
            logger.info(f"Received signal {sig}")
            self._shutdown_event.set()

        try:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass


def load_env_file(path: str = ".env") -> None:
    """Load environment variables from .env file if it exists."""
    env_path = Path(path)
    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, _, value = line.partition("=")
                    value = value.strip().strip('"').strip("'")
                    os.environ.setdefault(key.strip(), value)


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Pool Sniper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run in simulated mode (no swaps sent)",
    )
    parser.add_argument(
        "--mode",
        choices=sorted(MODE_PRESETS),
        help="Trading preset (overrides TRADING_MODE)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level",
    )
    return parser.parse_args(argv)


async def main_async(args: argparse.Namespace) -> int:
    """Async main function."""
    config = BotConfig.from_env()

    if args.dry_run:
        config.simulated = True
    if args.mode:
        config.trading_mode = args.mode

    if not config.helius_api_key:
        logger.error("HELIUS_API_KEY environment variable is required")
        return 1

    if not config.simulated:
        logger.error("Live trading requires a swap executor; none is configured for the CLI")
        logger.error("Set SIMULATED=true or embed SniperBot with an executor")
        return 1

    try:
        bot = SniperBot(config)
        bot.build()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    try:
        await bot.start()
        return 0
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
        return 0
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


def main() -> int:
    """Main entry point."""
    load_env_file()
    args = parse_args()

    if args.log_level:
        logging.getLogger().setLevel(getattr(logging, args.log_level))

    try:
        with singleton_lock():
            try:
                return asyncio.run(main_async(args))
            except KeyboardInterrupt:
                return 0
    except SingletonBotError as e:
        logger.error(str(e))
        print(f"\n❌ {e}\n", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
