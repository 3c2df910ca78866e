"""
Execution Layer - Swap execution and trade records.

This module provides:
    - Trader: Buy/sell through a SwapExecutor, emitting TradeEvents
    - SwapExecutor: Protocol for the on-chain swap routine
    - SimulatedSwapExecutor: In-memory executor for dry runs and tests
    - Position / PositionStatus: Position record owned by the session
    - TradeEvent / TradeEventType: buy, buy-failed, sell, sell-failed
"""

from .models import (
    Position,
    PositionStatus,
    TradeEvent,
    TradeEventType,
    new_position_id,
)
from .trader import (
    DEFAULT_PRIORITY_FEE,
    SOL_MINT,
    SimulatedSwapExecutor,
    SwapError,
    SwapExecutor,
    Trader,
)

__all__ = [
    "Position",
    "PositionStatus",
    "TradeEvent",
    "TradeEventType",
    "new_position_id",
    "DEFAULT_PRIORITY_FEE",
    "SOL_MINT",
    "SimulatedSwapExecutor",
    "SwapError",
    "SwapExecutor",
    "Trader",
]
