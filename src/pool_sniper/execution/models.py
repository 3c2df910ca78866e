"""
Position and trade event models.

A Position is created at buy execution, mutated by trailing-stop
evaluation on every price observation, and terminated at sell (closed) or
at failed execution (failed). It is owned by the session boundary; the
evaluator never sees it.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pool_sniper.ingestion import PoolCreated


class PositionStatus(str, Enum):
    """Lifecycle of a position."""
    OPEN = "open"
    CLOSED = "closed"
    FAILED = "failed"


class TradeEventType(str, Enum):
    """Kind of trade event emitted by the trader."""
    BUY = "buy"
    BUY_FAILED = "buy-failed"
    SELL = "sell"
    SELL_FAILED = "sell-failed"


def new_position_id() -> str:
    return f"pos_{uuid.uuid4().hex[:12]}"


@dataclass
class Position:
    """A live or simulated holding."""

    position_id: str
    pool: PoolCreated
    amount: Decimal
    entry_price: Decimal
    entry_time: datetime
    route: str = "phantom"
    simulated: bool = False
    signature: Optional[str] = None
    failure_reason: Optional[str] = None
    status: PositionStatus = PositionStatus.OPEN

    # Trailing stop state (seeded on first price observation)
    highest_price: Optional[Decimal] = None
    trailing_stop: Optional[Decimal] = None

    # Exit
    exit_price: Optional[Decimal] = None
    exit_signature: Optional[str] = None
    closed_at: Optional[datetime] = None

    @property
    def mint(self) -> str:
        return self.pool.mint

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_id": self.position_id,
            "mint": self.mint,
            "amount": str(self.amount),
            "entry_price": str(self.entry_price),
            "entry_time": self.entry_time.isoformat(),
            "route": self.route,
            "simulated": self.simulated,
            "signature": self.signature,
            "failure_reason": self.failure_reason,
            "status": self.status.value,
            "highest_price": str(self.highest_price) if self.highest_price is not None else None,
            "trailing_stop": str(self.trailing_stop) if self.trailing_stop is not None else None,
            "exit_price": str(self.exit_price) if self.exit_price is not None else None,
            "exit_signature": self.exit_signature,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
        }


@dataclass(frozen=True)
class TradeEvent:
    """
    Result of one execution attempt.

    Failure events carry the reason and the triggering pool and never raise
    up the pipeline.
    """

    type: TradeEventType
    pool: PoolCreated
    position: Optional[Position] = None
    reason: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_failure(self) -> bool:
        return self.type in (TradeEventType.BUY_FAILED, TradeEventType.SELL_FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "mint": self.pool.mint,
            "position": self.position.to_dict() if self.position else None,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }
