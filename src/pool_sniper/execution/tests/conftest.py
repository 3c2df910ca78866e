"""
Execution layer test fixtures.

Swap execution is always mocked or simulated; no test signs or sends a
transaction.
"""
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from pool_sniper.execution import SimulatedSwapExecutor, Trader
from pool_sniper.ingestion import PoolCreated
from pool_sniper.settings import TradingSettings


@pytest.fixture
def pool():
    return PoolCreated(mint="TradeMint111111111111111111111111111111111")


@pytest.fixture
def live_settings():
    return TradingSettings(
        simulated=False,
        slippage=Decimal("3"),
        priority_fee=Decimal("0.0001"),
    )


@pytest.fixture
def paper_settings():
    return TradingSettings(simulated=True)


@pytest.fixture
def executor():
    return SimulatedSwapExecutor()


@pytest.fixture
def failing_executor():
    mock = MagicMock()
    mock.execute_swap = AsyncMock(side_effect=ConnectionError("rpc unavailable"))
    return mock


@pytest.fixture
def trader(executor):
    return Trader(executor)
