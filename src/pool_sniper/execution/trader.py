"""
Trader - turns admitted decisions into swaps and trade events.

Building, signing and broadcasting transactions is an injected
capability (SwapExecutor). The trader treats each swap as atomic
success/failure and never raises: failures become buy-failed /
sell-failed events carrying the reason and the triggering pool.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Protocol, Tuple

from pool_sniper.settings import TradingSettings
from pool_sniper.ingestion import PoolCreated

from .models import (
    Position,
    PositionStatus,
    TradeEvent,
    TradeEventType,
    new_position_id,
)

logger = logging.getLogger(__name__)

SOL_MINT = "So11111111111111111111111111111111111111112"
DEFAULT_PRIORITY_FEE = Decimal("0.00009")


class SwapError(Exception):
    """A swap could not be executed."""
    pass


class SwapExecutor(Protocol):
    """Builds, signs and broadcasts one swap; returns the signature."""

    async def execute_swap(
        self,
        from_mint: str,
        to_mint: str,
        amount: Decimal,
        slippage: Decimal,
        priority_fee: Decimal,
    ) -> str:
        ...


class SimulatedSwapExecutor:
    """Paper-trading executor: records swaps, returns fake signatures."""

    def __init__(self) -> None:
        self.swaps: List[Tuple[str, str, Decimal, Decimal, Decimal]] = []

    async def execute_swap(
        self,
        from_mint: str,
        to_mint: str,
        amount: Decimal,
        slippage: Decimal,
        priority_fee: Decimal,
    ) -> str:
        self.swaps.append((from_mint, to_mint, amount, slippage, priority_fee))
        return f"sim_{uuid.uuid4().hex}"


class Trader:
    """
    Executes buys and sells through a SwapExecutor.

    In simulated mode no executor is called at all; positions are created
    and closed on paper.

    Usage:
        trader = Trader(executor)
        event = await trader.buy(pool, Decimal("0.1"), entry_price, settings)
        if event.is_failure:
            ...
    """

    def __init__(self, executor: Optional[SwapExecutor] = None) -> None:
        self._executor = executor

    @property
    def has_executor(self) -> bool:
        return self._executor is not None

    async def _swap(
        self,
        from_mint: str,
        to_mint: str,
        amount: Decimal,
        slippage: Decimal,
        priority_fee: Decimal,
    ) -> str:
        if self._executor is None:
            raise SwapError("No swap executor configured for live trading")
        signature = await self._executor.execute_swap(
            from_mint, to_mint, amount, slippage, priority_fee
        )
        if not signature:
            raise SwapError("Swap returned no signature")
        return signature

    async def buy(
        self,
        pool: PoolCreated,
        amount: Decimal,
        entry_price: Decimal,
        settings: TradingSettings,
    ) -> TradeEvent:
        """
        Buy `amount` SOL worth of the pool's token.

        Returns:
            TradeEvent of type buy (open position) or buy-failed (failed
            position with the reason)
        """
        position = Position(
            position_id=new_position_id(),
            pool=pool,
            amount=amount,
            entry_price=entry_price,
            entry_time=datetime.now(timezone.utc),
            simulated=settings.simulated,
        )

        if settings.simulated:
            logger.info(f"[SIMULATED] Bought {amount} SOL of {pool.mint} @ {entry_price}")
            return TradeEvent(type=TradeEventType.BUY, pool=pool, position=position)

        try:
            position.signature = await self._swap(
                SOL_MINT, pool.mint, amount, settings.slippage, settings.priority_fee
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = f"Swap failed: {e}"
            logger.error(f"Buy failed for {pool.mint}: {reason}")
            position.status = PositionStatus.FAILED
            position.failure_reason = reason
            return TradeEvent(
                type=TradeEventType.BUY_FAILED,
                pool=pool,
                position=position,
                reason=reason,
            )

        logger.info(f"Bought {amount} SOL of {pool.mint} (sig={position.signature})")
        return TradeEvent(type=TradeEventType.BUY, pool=pool, position=position)

    async def sell(
        self,
        position: Position,
        settings: TradingSettings,
        exit_price: Optional[Decimal] = None,
        priority_fee: Optional[Decimal] = None,
    ) -> TradeEvent:
        """
        Swap the position back to SOL.

        On failure the position stays open with failure_reason set so a
        later price observation can retry.
        """
        fee = priority_fee if priority_fee is not None else DEFAULT_PRIORITY_FEE

        if not position.simulated:
            try:
                position.exit_signature = await self._swap(
                    position.mint, SOL_MINT, position.amount, settings.slippage, fee
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                reason = f"Swap failed: {e}"
                logger.error(f"Sell failed for {position.position_id}: {reason}")
                position.failure_reason = reason
                return TradeEvent(
                    type=TradeEventType.SELL_FAILED,
                    pool=position.pool,
                    position=position,
                    reason=reason,
                )

        position.status = PositionStatus.CLOSED
        position.exit_price = exit_price
        position.closed_at = datetime.now(timezone.utc)
        position.failure_reason = None
        logger.info(
            f"{'[SIMULATED] ' if position.simulated else ''}Sold {position.position_id} "
            f"({position.mint}) @ {exit_price}"
        )
        return TradeEvent(type=TradeEventType.SELL, pool=position.pool, position=position)
