"""
Ingestion Layer - Pool feed and scoring sources.

This module provides:
    - PoolFeed: websocket subscription to newly created pools with
      bounded linear-backoff reconnection
    - PoolCreated: immutable pool creation event
    - ScoringClient: async client for the five scoring sources, each with
      a fail-safe default that biases toward rejection

Usage:
    from pool_sniper.ingestion import PoolFeed, ScoringClient

    feed = PoolFeed(on_pool=handle_pool, api_key="...")
    await feed.start()

    async with ScoringClient() as client:
        holders = await client.fetch_holders(mint)

    await feed.stop()
"""

from .models import FeedState, PoolCreated

from .feed import FeedTerminalError, PoolFeed

from .scoring import (
    DEFAULT_FLAGS,
    DEFAULT_HOLDERS,
    DEFAULT_LIQUIDITY,
    DEFAULT_PRICE,
    DEFAULT_QUALITY_SCORE,
    RateLimitError,
    ScoringAPIError,
    ScoringClient,
    SpoofFlags,
)

__all__ = [
    # Models
    "FeedState",
    "PoolCreated",
    # Feed
    "PoolFeed",
    "FeedTerminalError",
    # Scoring
    "ScoringClient",
    "ScoringAPIError",
    "RateLimitError",
    "SpoofFlags",
    "DEFAULT_QUALITY_SCORE",
    "DEFAULT_LIQUIDITY",
    "DEFAULT_PRICE",
    "DEFAULT_FLAGS",
    "DEFAULT_HOLDERS",
]
