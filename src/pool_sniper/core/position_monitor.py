"""
PositionMonitor - periodic price polling for trailing-stop exits.

Every interval the monitor fetches a reference price for each open
position's mint and hands the prices to the engine, which runs the
trailing-stop rule under the per-position lock.
"""
from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, Optional

if TYPE_CHECKING:
    from pool_sniper.core.engine import SniperEngine

logger = logging.getLogger(__name__)

PriceFetcher = Callable[[str], Awaitable[Decimal]]


class PositionMonitor:
    """
    Background loop feeding price observations to the trailing stop.

    A failed iteration is logged and the loop keeps going. A zero price
    (the reference-price fail-safe default) is never passed on.

    Usage:
        monitor = PositionMonitor(engine, scoring_client.fetch_price)
        await monitor.start()
        # ... bot runs ...
        await monitor.stop()
        await monitor.wait_closed()
    """

    def __init__(
        self,
        engine: "SniperEngine",
        price_fetcher: PriceFetcher,
        interval_seconds: float = 15.0,
    ) -> None:
        self._engine = engine
        self._price_fetcher = price_fetcher
        self._interval = interval_seconds

        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self.iterations = 0
        self.exits_triggered = 0

    @property
    def is_running(self) -> bool:
        return (
            self._task is not None
            and not self._task.done()
            and not self._stop_event.is_set()
        )

    async def start(self) -> None:
        if self.is_running:
            logger.warning("PositionMonitor already running")
            return

        if self._task is not None:
            await self.wait_closed()

        self._stop_event.clear()
        self._task = asyncio.create_task(
            self._loop(self._stop_event), name="position_monitor"
        )
        logger.info(f"Started position monitor (interval={self._interval}s)")

    async def stop(self) -> None:
        """
        Signal the loop to exit after the current pass.

        A pass that is already selling is not cancelled; wait_closed()
        waits for it.
        """
        if not self._task:
            return

        self._stop_event.set()
        logger.info("Position monitor stopping")

    async def wait_closed(self) -> None:
        """Wait for the loop, including any in-flight pass, to finish."""
        task = self._task
        if task is None:
            return
        await asyncio.gather(task, return_exceptions=True)
        if self._task is task:
            self._task = None
        logger.info("Position monitor stopped")

    async def _loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Position monitor iteration failed: {e}")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

    async def fetch_prices(self, mints: list[str]) -> Dict[str, Decimal]:
        """Fetch reference prices concurrently, skipping zero prices."""
        results = await asyncio.gather(
            *(self._price_fetcher(mint) for mint in mints),
            return_exceptions=True,
        )
        prices: Dict[str, Decimal] = {}
        for mint, result in zip(mints, results):
            if isinstance(result, BaseException):
                logger.warning(f"Price fetch failed for {mint}: {result}")
                continue
            if result is None or result <= 0:
                logger.debug(f"No usable price for {mint}")
                continue
            prices[mint] = result
        return prices

    async def run_once(self) -> int:
        """
        One polling pass.

        Returns:
            Number of exits triggered
        """
        self.iterations += 1
        positions = self._engine.open_positions()
        if not positions:
            return 0

        mints = sorted({p.mint for p in positions})
        prices = await self.fetch_prices(mints)
        if not prices:
            return 0

        events = await self._engine.check_positions(prices)
        exits = sum(1 for e in events if not e.is_failure)
        self.exits_triggered += exits
        return exits
