"""
Data models for the ingestion layer.

These models represent:
- Pool creation events parsed from the streaming feed
- Feed connection state

Only one inbound message shape is recognized as a pool creation:
    {"type": "pool", "event": "create", "data": {"mint": "...", ...}}
Everything else is dropped by the feed without raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class FeedState(str, Enum):
    """Pool feed connection state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


@dataclass(frozen=True)
class PoolCreated:
    """
    A newly created liquidity pool announced by the feed.

    Immutable: produced by the feed, read by the evaluator, never mutated.

    Attributes:
        mint: The traded asset's mint address (unique pool identifier)
        received_at: When the feed received the creation message
        metadata: Any other fields the feed supplied, as a read-only mapping
    """
    mint: str
    received_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    metadata: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self):
        if not self.mint:
            raise ValueError("PoolCreated requires a non-empty mint")
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(
                self, "metadata", MappingProxyType(dict(self.metadata))
            )

    @property
    def age_seconds(self) -> float:
        """Seconds since the pool creation was received."""
        now = datetime.now(timezone.utc)
        return (now - self.received_at).total_seconds()

    @classmethod
    def from_message(cls, message: Any) -> Optional["PoolCreated"]:
        """
        Build a PoolCreated from a decoded feed message.

        Returns None for any message that is not a recognized pool
        creation (wrong type/event, missing data, missing mint).
        """
        if not isinstance(message, dict):
            return None
        if message.get("type") != "pool" or message.get("event") != "create":
            return None

        data = message.get("data")
        if not isinstance(data, dict):
            return None

        mint = data.get("mint")
        if not mint or not isinstance(mint, str):
            return None

        metadata = {k: v for k, v in data.items() if k != "mint"}
        return cls(mint=mint, metadata=metadata)
