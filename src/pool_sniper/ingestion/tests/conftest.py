"""
Test fixtures for ingestion layer.

IMPORTANT: All external API calls must be mocked.
Never hit the real feed or scoring APIs in tests.
"""

import json
from unittest.mock import AsyncMock

import pytest

from pool_sniper.ingestion.feed import PoolFeed
from pool_sniper.ingestion.scoring import ScoringClient


MINT = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"


@pytest.fixture
def mint():
    return MINT


@pytest.fixture
def raw_pool_message():
    """JSON-encoded pool creation frame."""
    return json.dumps(
        {"type": "pool", "event": "create", "data": {"mint": MINT, "liquidity": "12000"}}
    )


@pytest.fixture
def feed():
    """Feed with mocked callbacks and no reconnect delay."""
    return PoolFeed(
        on_pool=AsyncMock(),
        on_error=AsyncMock(),
        on_terminal_error=AsyncMock(),
        api_key="test-key",
        reconnect_delay_step=0,
    )


@pytest.fixture
def scoring_client():
    """Scoring client with _request mocked out."""
    client = ScoringClient(max_retries=1, retry_delay=0)
    client._request = AsyncMock()
    return client
