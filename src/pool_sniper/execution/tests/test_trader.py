"""
Tests for the Trader.

These tests verify:
- Live buys swap SOL into the pool's mint and open a position
- Simulated buys never reach the executor
- Swap failures become buy-failed / sell-failed events, never exceptions
- Sells close the position; failed sells leave it open
"""
import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from pool_sniper.execution import (
    DEFAULT_PRIORITY_FEE,
    SOL_MINT,
    PositionStatus,
    Trader,
    TradeEventType,
)


class TestBuy:
    """Tests for Trader.buy."""

    @pytest.mark.asyncio
    async def test_live_buy(self, trader, executor, pool, live_settings):
        event = await trader.buy(pool, Decimal("0.2"), Decimal("0.001"), live_settings)

        assert event.type == TradeEventType.BUY
        assert event.is_failure is False
        position = event.position
        assert position.status == PositionStatus.OPEN
        assert position.signature.startswith("sim_")
        assert position.amount == Decimal("0.2")
        assert position.entry_price == Decimal("0.001")
        assert position.simulated is False
        assert position.position_id.startswith("pos_")

        assert executor.swaps == [
            (SOL_MINT, pool.mint, Decimal("0.2"), Decimal("3"), Decimal("0.0001"))
        ]

    @pytest.mark.asyncio
    async def test_simulated_buy_skips_executor(self, trader, executor, pool, paper_settings):
        event = await trader.buy(pool, Decimal("0.1"), Decimal("0.001"), paper_settings)

        assert event.type == TradeEventType.BUY
        assert event.position.simulated is True
        assert event.position.signature is None
        assert executor.swaps == []

    @pytest.mark.asyncio
    async def test_swap_error_becomes_buy_failed(self, failing_executor, pool, live_settings):
        trader = Trader(failing_executor)

        event = await trader.buy(pool, Decimal("0.1"), Decimal("0.001"), live_settings)

        assert event.type == TradeEventType.BUY_FAILED
        assert event.is_failure is True
        assert event.pool is pool
        assert "rpc unavailable" in event.reason
        assert event.position.status == PositionStatus.FAILED

    @pytest.mark.asyncio
    async def test_no_executor_in_live_mode_fails(self, pool, live_settings):
        event = await Trader().buy(pool, Decimal("0.1"), Decimal("0.001"), live_settings)

        assert event.type == TradeEventType.BUY_FAILED
        assert "No swap executor" in event.reason

    @pytest.mark.asyncio
    async def test_empty_signature_fails(self, pool, live_settings):
        executor = MagicMock()
        executor.execute_swap = AsyncMock(return_value="")

        event = await Trader(executor).buy(pool, Decimal("0.1"), Decimal("0.001"), live_settings)

        assert event.type == TradeEventType.BUY_FAILED

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, pool, live_settings):
        executor = MagicMock()
        executor.execute_swap = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await Trader(executor).buy(pool, Decimal("0.1"), Decimal("0.001"), live_settings)


class TestSell:
    """Tests for Trader.sell."""

    @pytest.mark.asyncio
    async def test_live_sell(self, trader, executor, pool, live_settings):
        buy = await trader.buy(pool, Decimal("0.2"), Decimal("0.001"), live_settings)

        event = await trader.sell(buy.position, live_settings, exit_price=Decimal("0.0015"))

        assert event.type == TradeEventType.SELL
        position = event.position
        assert position.status == PositionStatus.CLOSED
        assert position.exit_price == Decimal("0.0015")
        assert position.exit_signature.startswith("sim_")
        assert position.closed_at is not None
        assert executor.swaps[-1] == (
            pool.mint, SOL_MINT, Decimal("0.2"), Decimal("3"), DEFAULT_PRIORITY_FEE
        )

    @pytest.mark.asyncio
    async def test_sell_uses_given_priority_fee(self, trader, executor, pool, live_settings):
        buy = await trader.buy(pool, Decimal("0.2"), Decimal("0.001"), live_settings)

        await trader.sell(buy.position, live_settings, priority_fee=Decimal("0.0005"))

        assert executor.swaps[-1][4] == Decimal("0.0005")

    @pytest.mark.asyncio
    async def test_simulated_position_closed_on_paper(self, trader, executor, pool, paper_settings):
        buy = await trader.buy(pool, Decimal("0.1"), Decimal("0.001"), paper_settings)

        event = await trader.sell(buy.position, paper_settings, exit_price=Decimal("0.002"))

        assert event.type == TradeEventType.SELL
        assert event.position.status == PositionStatus.CLOSED
        assert executor.swaps == []

    @pytest.mark.asyncio
    async def test_live_position_swaps_even_if_settings_now_simulated(
        self, trader, executor, pool, live_settings, paper_settings
    ):
        """A real holding is never closed on paper."""
        buy = await trader.buy(pool, Decimal("0.1"), Decimal("0.001"), live_settings)

        await trader.sell(buy.position, paper_settings)

        assert len(executor.swaps) == 2

    @pytest.mark.asyncio
    async def test_sell_failure_keeps_position_open(self, pool, live_settings):
        executor = MagicMock()
        executor.execute_swap = AsyncMock(side_effect=["sig_buy", ConnectionError("timeout")])
        trader = Trader(executor)
        buy = await trader.buy(pool, Decimal("0.1"), Decimal("0.001"), live_settings)

        event = await trader.sell(buy.position, live_settings)

        assert event.type == TradeEventType.SELL_FAILED
        assert event.position.is_open
        assert "timeout" in event.position.failure_reason


class TestEventSerialization:
    @pytest.mark.asyncio
    async def test_to_dict(self, trader, pool, paper_settings):
        event = await trader.buy(pool, Decimal("0.1"), Decimal("0.001"), paper_settings)

        data = event.to_dict()

        assert data["type"] == "buy"
        assert data["mint"] == pool.mint
        assert data["position"]["amount"] == "0.1"
        assert data["position"]["status"] == "open"
