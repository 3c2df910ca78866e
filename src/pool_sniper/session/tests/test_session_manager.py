"""
Tests for SessionManager.

These tests verify:
- Schedule window evaluation, including windows across midnight
- Position bookkeeping for each trade event type
- Per-position locks
"""
import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from pool_sniper.execution import Position, PositionStatus, TradeEvent, TradeEventType
from pool_sniper.ingestion import PoolCreated
from pool_sniper.session import SessionManager


def at(hour, minute=0):
    return datetime(2024, 6, 1, hour, minute)


@pytest.fixture
def position():
    return Position(
        position_id="pos_session",
        pool=PoolCreated(mint="SessionMint11111111111111111111111111111111"),
        amount=Decimal("0.1"),
        entry_price=Decimal("1"),
        entry_time=datetime.now(timezone.utc),
    )


def event(kind, position, reason=None):
    return TradeEvent(type=kind, pool=position.pool, position=position, reason=reason)


class TestSchedule:
    """Tests for is_within_schedule."""

    def test_equal_bounds_always_open(self):
        session = SessionManager("00:00", "00:00")

        assert session.is_within_schedule(at(3))
        assert session.is_within_schedule(at(23, 59))

    def test_daytime_window(self):
        session = SessionManager("08:00", "20:00")

        assert session.is_within_schedule(at(8)) is True
        assert session.is_within_schedule(at(12, 30)) is True
        assert session.is_within_schedule(at(20)) is False
        assert session.is_within_schedule(at(7, 59)) is False

    def test_window_across_midnight(self):
        session = SessionManager("22:00", "06:00")

        assert session.is_within_schedule(at(23)) is True
        assert session.is_within_schedule(at(2)) is True
        assert session.is_within_schedule(at(6)) is False
        assert session.is_within_schedule(at(12)) is False

    def test_set_schedule(self):
        session = SessionManager()

        session.set_schedule("09:00", "10:00")

        assert session.is_within_schedule(at(9, 30)) is True
        assert session.is_within_schedule(at(11)) is False


class TestTrackPosition:
    """Tests for track_position."""

    def test_buy_opens(self, position):
        session = SessionManager()

        session.track_position(event(TradeEventType.BUY, position))

        assert session.get_open_positions() == [position]
        assert session.has_position_for(position.mint)
        assert session.get_position(position.position_id) is position

    def test_buy_failed_recorded_not_open(self, position):
        session = SessionManager()

        session.track_position(event(TradeEventType.BUY_FAILED, position, "no funds"))

        assert session.get_open_positions() == []
        assert position.status == PositionStatus.FAILED
        assert position.failure_reason == "no funds"

    def test_sell_closes(self, position):
        session = SessionManager()
        session.track_position(event(TradeEventType.BUY, position))

        session.track_position(event(TradeEventType.SELL, position))

        assert session.get_open_positions() == []
        assert position.status == PositionStatus.CLOSED

    def test_sell_failed_stays_open(self, position):
        session = SessionManager()
        session.track_position(event(TradeEventType.BUY, position))

        session.track_position(event(TradeEventType.SELL_FAILED, position, "rpc timeout"))

        assert session.get_open_positions() == [position]
        assert position.failure_reason == "rpc timeout"

    def test_history_in_order(self, position):
        session = SessionManager()
        session.track_position(event(TradeEventType.BUY, position))
        session.track_position(event(TradeEventType.SELL, position))

        assert [e.type for e in session.get_history()] == [
            TradeEventType.BUY,
            TradeEventType.SELL,
        ]

    def test_event_without_position(self):
        session = SessionManager()
        pool = PoolCreated(mint="NoPosition")

        assert session.track_position(TradeEvent(type=TradeEventType.BUY_FAILED, pool=pool)) is None
        assert len(session.get_history()) == 1


class TestLocks:
    """Tests for lock_for."""

    def test_same_lock_per_position(self):
        session = SessionManager()

        assert session.lock_for("pos_a") is session.lock_for("pos_a")
        assert session.lock_for("pos_a") is not session.lock_for("pos_b")

    @pytest.mark.asyncio
    async def test_lock_serializes(self):
        session = SessionManager()
        order = []

        async def worker(name):
            async with session.lock_for("pos_a"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]
