"""
Core layer test fixtures.

Core tests verify decision and orchestration logic, so the scoring
sources, feed and swap execution are mocked.
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from pool_sniper.core import Evaluator, RiskGate, SignalSet, SniperEngine
from pool_sniper.execution import Position, Trader
from pool_sniper.ingestion import FeedState, PoolCreated, SpoofFlags
from pool_sniper.session import SessionManager
from pool_sniper.settings import TradingSettings


MINT = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def settings():
    """Default thresholds: score >= 60, liquidity >= 20000, holders < 3000."""
    return TradingSettings(
        amount_to_spend_sol=Decimal("0.5"),
        concurrent_trades=2,
        entry_liquidity=Decimal("20000"),
        max_holders=3000,
        min_quality_score=Decimal("60"),
        trailing_stop_percent=Decimal("10"),
        simulated=True,
    )


@pytest.fixture
def pool():
    return PoolCreated(mint=MINT)


@pytest.fixture
def good_signals():
    """Signals that pass every gate condition."""
    return SignalSet(
        quality_score=Decimal("70"),
        liquidity=Decimal("25000"),
        price=Decimal("0.0042"),
        is_spoof=False,
        ranked=False,
        holders=500,
    )


@pytest.fixture
def position(pool):
    """Open position bought at 100."""
    return Position(
        position_id="pos_test",
        pool=pool,
        amount=Decimal("0.5"),
        entry_price=Decimal("100"),
        entry_time=datetime.now(timezone.utc),
        simulated=True,
    )


# =============================================================================
# Collaborator Fixtures
# =============================================================================


@pytest.fixture
def scoring_client():
    """Scoring client whose five sources return admitting values."""
    client = MagicMock()
    client.fetch_quality_score = AsyncMock(return_value=Decimal("70"))
    client.fetch_liquidity = AsyncMock(return_value=Decimal("25000"))
    client.fetch_price = AsyncMock(return_value=Decimal("0.0042"))
    client.fetch_flags = AsyncMock(return_value=SpoofFlags(is_spoof=False, ranked=False))
    client.fetch_holders = AsyncMock(return_value=500)
    return client


@pytest.fixture
def mock_feed():
    feed = MagicMock()
    feed.start = AsyncMock()
    feed.stop = AsyncMock()
    feed.state = FeedState.DISCONNECTED
    return feed


@pytest.fixture
def session():
    return SessionManager()


@pytest.fixture
def risk():
    return RiskGate()


@pytest.fixture
def trader():
    return Trader()


@pytest.fixture
def engine(settings, scoring_client, trader, session, risk, mock_feed):
    """Engine with a mocked feed and no background price polling."""
    return SniperEngine(
        settings=settings,
        scoring_client=scoring_client,
        trader=trader,
        session=session,
        risk=risk,
        feed=mock_feed,
        price_poll_interval=None,
    )


@pytest.fixture
def evaluator(scoring_client, settings):
    return Evaluator(scoring_client, settings)
