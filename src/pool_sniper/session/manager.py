"""
SessionManager - schedule window and position bookkeeping.

Owns every Position for the lifetime of the process. Trailing-stop
evaluation reaches a position only through lock_for(position_id), which
serializes access per position.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time
from typing import Dict, List, Optional

from pool_sniper.execution.models import (
    Position,
    PositionStatus,
    TradeEvent,
    TradeEventType,
)

logger = logging.getLogger(__name__)


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(hour=int(hours), minute=int(minutes))


class SessionManager:
    """
    In-process session boundary.

    Usage:
        session = SessionManager(schedule_start="08:00", schedule_end="22:00")

        if session.is_within_schedule():
            ...

        session.track_position(trade_event)
        open_positions = session.get_open_positions()
    """

    def __init__(
        self,
        schedule_start: str = "00:00",
        schedule_end: str = "00:00",
    ) -> None:
        self._start = _parse_hhmm(schedule_start)
        self._end = _parse_hhmm(schedule_end)

        self._positions: Dict[str, Position] = {}
        self._history: List[TradeEvent] = []
        self._locks: Dict[str, asyncio.Lock] = {}

    def set_schedule(self, schedule_start: str, schedule_end: str) -> None:
        self._start = _parse_hhmm(schedule_start)
        self._end = _parse_hhmm(schedule_end)
        logger.info(f"Schedule window set to {schedule_start}-{schedule_end}")

    def is_within_schedule(self, now: Optional[datetime] = None) -> bool:
        """
        Whether the current local time falls in the schedule window.

        Windows that cross midnight (e.g. 22:00-06:00) wrap. Equal start
        and end means the window is always open.
        """
        current = (now or datetime.now()).time().replace(second=0, microsecond=0)

        if self._start == self._end:
            return True
        if self._start < self._end:
            return self._start <= current < self._end
        return current >= self._start or current < self._end

    def track_position(self, event: TradeEvent) -> Optional[Position]:
        """
        Record a trade event against its position.

        buy opens the position, buy-failed records it as failed, sell
        closes it, sell-failed leaves it open with the failure reason.
        """
        self._history.append(event)
        position = event.position
        if position is None:
            logger.warning(f"Trade event {event.type.value} for {event.pool.mint} has no position")
            return None

        if event.type == TradeEventType.BUY:
            position.status = PositionStatus.OPEN
        elif event.type == TradeEventType.BUY_FAILED:
            position.status = PositionStatus.FAILED
            position.failure_reason = position.failure_reason or event.reason
        elif event.type == TradeEventType.SELL:
            position.status = PositionStatus.CLOSED
            self._locks.pop(position.position_id, None)
        elif event.type == TradeEventType.SELL_FAILED:
            position.failure_reason = event.reason

        self._positions[position.position_id] = position
        logger.debug(f"Tracked {event.type.value} for {position.position_id}")
        return position

    def get_open_positions(self) -> List[Position]:
        return [p for p in self._positions.values() if p.is_open]

    def get_position(self, position_id: str) -> Optional[Position]:
        return self._positions.get(position_id)

    def get_history(self) -> List[TradeEvent]:
        return list(self._history)

    def has_position_for(self, mint: str) -> bool:
        """Whether an open position already exists for this mint."""
        return any(p.mint == mint for p in self.get_open_positions())

    def lock_for(self, position_id: str) -> asyncio.Lock:
        """Per-position lock serializing trailing-stop evaluation."""
        lock = self._locks.get(position_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[position_id] = lock
        return lock
